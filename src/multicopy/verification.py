"""
Checking copies against the digest of their source.
"""

import asyncio
import logging
from pathlib import Path

from .eviction import CacheEvictor, NoopCacheEvictor
from .exceptions import DigestMismatchError
from .hashing import BUFFER_SIZE, file_digest, file_digest_async

logger = logging.getLogger(__name__)


class CopyVerifier:
    """
    Re-read copies from their medium and compare digests.

    Parameters
    ----------
    hash_algorithm : str, default="xxh128"
        Must be the algorithm the expected digests were computed with
    evictor : CacheEvictor | None, default=None
        Drops a copy from OS caches before it is read; no eviction if None
    buffer_size : int, default=1MB
        Read size
    """

    def __init__(
        self,
        hash_algorithm: str = "xxh128",
        evictor: CacheEvictor | None = None,
        buffer_size: int = BUFFER_SIZE,
    ):
        self.hash_algorithm = hash_algorithm
        self.evictor = evictor if evictor is not None else NoopCacheEvictor()
        self.buffer_size = buffer_size

    def verify(self, expected: bytes, copy: Path) -> bytes:
        """
        Check one copy.

        Parameters
        ----------
        expected : bytes
            Digest of the source
        copy : Path
            The copy to check

        Returns
        -------
        bytes
            Digest of the copy (equal to ``expected``)

        Raises
        ------
        DigestMismatchError
            If the digests differ
        OSError
            If the copy can not be read
        """
        self.evictor.evict(copy)
        logger.info(f"getting checksum of {copy}")
        digest = file_digest(copy, self.hash_algorithm, self.buffer_size)
        return self._compare(expected, digest, copy)

    async def verify_async(self, expected: bytes, copy: Path) -> bytes:
        """Asynchronous variant of ``verify``."""
        await asyncio.to_thread(self.evictor.evict, copy)
        logger.info(f"getting checksum of {copy}")
        digest = await file_digest_async(copy, self.hash_algorithm, self.buffer_size)
        return self._compare(expected, digest, copy)

    async def verify_all_async(
        self, expected: bytes, copies: list[Path]
    ) -> list[Exception]:
        """
        Check several copies of the same source concurrently.

        A failing copy does not stop the others from being checked.

        Returns
        -------
        list[Exception]
            One error per failed copy, in the order of ``copies``
        """
        results = await asyncio.gather(
            *[self.verify_async(expected, copy) for copy in copies],
            return_exceptions=True,
        )
        failures = []
        for copy, result in zip(copies, results):
            if isinstance(result, Exception):
                if not isinstance(result, DigestMismatchError):
                    logger.error(f"could not check {copy}: {result}")
                failures.append(result)
            elif isinstance(result, BaseException):
                raise result
        return failures

    def verify_all(
        self,
        expected: bytes,
        copies: list[Path],
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> list[Exception]:
        """
        Blocking variant of ``verify_all_async``.

        Runs on ``loop`` if given, otherwise on a new event loop for this
        call only. Must not be called from a thread that runs an event loop.
        """
        if loop is None:
            return asyncio.run(self.verify_all_async(expected, copies))
        return loop.run_until_complete(self.verify_all_async(expected, copies))

    def _compare(self, expected: bytes, digest: bytes, copy: Path) -> bytes:
        if digest != expected:
            error = DigestMismatchError(copy, expected, digest)
            logger.error(str(error))
            raise error
        logger.info(f"{copy} has correct checksum {digest.hex()}")
        return digest
