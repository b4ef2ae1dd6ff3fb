"""
Digest calculation.

One 128-bit digest is used for everything: the digest cache and the
comparison of copies with their source. Cryptographic strength is not
needed, only change detection, so the default is xxhash's XXH3-128.
"""

import hashlib
from collections.abc import AsyncIterator, Iterator
from pathlib import Path

import aiofiles
import xxhash

BUFFER_SIZE = 1024 * 1024  # 1MB

SUPPORTED_ALGORITHMS = ("xxh128", "md5")


class HashCalculator:
    """
    Incremental digest of one of the supported 128-bit algorithms.

    Parameters
    ----------
    algorithm : str, default="xxh128"
        Hash algorithm to use. Supported: xxh128, md5

    Raises
    ------
    ValueError
        If the algorithm is not available
    """

    def __init__(self, algorithm: str = "xxh128"):
        self.algorithm = algorithm.lower()
        if self.algorithm == "xxh128":
            self._hasher = xxhash.xxh3_128()
        elif self.algorithm == "md5":
            self._hasher = hashlib.md5()
        else:
            raise ValueError(f"Unsupported hash algorithm: {algorithm}")

    def update(self, data: bytes) -> None:
        """
        Update hash with new data.

        Parameters
        ----------
        data : bytes
            Data chunk to add to the hash
        """
        self._hasher.update(data)

    def digest(self) -> bytes:
        """Get the final digest (16 bytes)."""
        return self._hasher.digest()

    def hexdigest(self) -> str:
        """Get the final digest as hexadecimal string."""
        return self._hasher.hexdigest()

    @staticmethod
    def hash_file(
        path: Path,
        algorithm: str = "xxh128",
        buffer_size: int = BUFFER_SIZE,
    ) -> Iterator[tuple[int, bytes]]:
        """
        Hash a file and yield progress.

        Parameters
        ----------
        path : Path
            Path to file to hash
        algorithm : str, default="xxh128"
            Hash algorithm to use
        buffer_size : int, default=1MB
            Read size

        Yields
        ------
        tuple[int, bytes]
            (bytes_hashed, final_digest_or_empty_bytes)
            Progress updates yield empty bytes, the final yield contains the digest
        """
        hasher = HashCalculator(algorithm)
        total_bytes = 0

        with open(path, "rb") as f:
            while chunk := f.read(buffer_size):
                hasher.update(chunk)
                total_bytes += len(chunk)
                yield (total_bytes, b"")

        yield (total_bytes, hasher.digest())

    @staticmethod
    async def hash_file_async(
        path: Path,
        algorithm: str = "xxh128",
        buffer_size: int = BUFFER_SIZE,
    ) -> AsyncIterator[tuple[int, bytes]]:
        """
        Hash a file asynchronously and yield progress.

        Same protocol as ``hash_file``.
        """
        hasher = HashCalculator(algorithm)
        total_bytes = 0

        async with aiofiles.open(path, "rb") as f:
            while chunk := await f.read(buffer_size):
                hasher.update(chunk)
                total_bytes += len(chunk)
                yield (total_bytes, b"")

        yield (total_bytes, hasher.digest())


def file_digest(path: Path, algorithm: str = "xxh128", buffer_size: int = BUFFER_SIZE) -> bytes:
    """Hash a file completely and return the final digest."""
    digest = b""
    for _, digest in HashCalculator.hash_file(path, algorithm, buffer_size):
        pass
    return digest


async def file_digest_async(
    path: Path, algorithm: str = "xxh128", buffer_size: int = BUFFER_SIZE
) -> bytes:
    """Asynchronous variant of ``file_digest``."""
    digest = b""
    async for _, digest in HashCalculator.hash_file_async(path, algorithm, buffer_size):
        pass
    return digest
