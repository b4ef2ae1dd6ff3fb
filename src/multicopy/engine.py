"""
multicopy engine - copy files to several destinations at once.

FileCopier expands the sources of all copy jobs, checks that the destinations
fit, then copies file after file. Each file is written to all of its
destinations in parallel, in lock-stepped slices, and optionally checked
afterwards against the digest of its source.

The engine is blocking and NOT thread safe: one copy operation per instance
at a time. Call it from a worker thread when used from asyncio code.
"""

import asyncio
import logging
import threading
from collections.abc import MutableMapping
from concurrent.futures import ThreadPoolExecutor, wait
from pathlib import Path
from typing import BinaryIO

from .config import CopierConfig
from .eviction import CacheEvictor, NoopCacheEvictor, create_cache_evictor
from .exceptions import CopyConfigurationError, DestinationConflictError, TransferError
from .hashing import HashCalculator
from .models import CopierState, CopyJob, CurrentlyProcessedFile, TransferState
from .progress import EventType, Listener, ProgressNotifier
from .scanner import scan_source
from .transfer import SlicePlan, Transferrer, direct_transfer_available
from .verification import CopyVerifier

logger = logging.getLogger(__name__)


class FileCopier:
    """
    Copies the sources of copy jobs to their destinations.

    Parameters
    ----------
    digest_cache : MutableMapping[str, bytes] | None, default=None
        Digests of source files by absolute path, shared across invocations.
        Entries are trusted for the lifetime of the cache.
    config : CopierConfig | None, default=None
        Engine configuration, defaults if None
    notifier : ProgressNotifier | None, default=None
        Progress listener registry, a new one if None
    evictor : CacheEvictor | None, default=None
        Cache eviction before checking copies; chosen by platform if None
    """

    def __init__(
        self,
        digest_cache: MutableMapping[str, bytes] | None = None,
        config: CopierConfig | None = None,
        notifier: ProgressNotifier | None = None,
        evictor: CacheEvictor | None = None,
    ):
        self.config = config if config else CopierConfig()
        self.digest_cache = digest_cache
        self.notifier = notifier if notifier else ProgressNotifier()
        self.state = TransferState(slice_size=self.config.initial_slice)

        if evictor is None:
            evictor = (
                create_cache_evictor() if self.config.evict_caches else NoopCacheEvictor()
            )
        self.verifier = CopyVerifier(
            self.config.hash_algorithm, evictor, self.config.verify_buffer_size
        )
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="multicopy"
        )
        self._loop: asyncio.AbstractEventLoop | None = None

    # ------------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------------

    def add_listener(self, event_type: EventType, listener: Listener) -> None:
        """Subscribe to progress events of this engine."""
        self.notifier.add_listener(event_type, listener)

    def remove_listener(self, event_type: EventType, listener: Listener) -> None:
        """Unsubscribe from progress events of this engine."""
        self.notifier.remove_listener(event_type, listener)

    @property
    def byte_count(self) -> int:
        """Byte count of all source files of the current invocation."""
        return self.state.byte_count

    @property
    def copied_bytes(self) -> int:
        """Sum of all bytes copied so far."""
        return self.state.copied_bytes

    @property
    def currently_processed_file(self) -> CurrentlyProcessedFile | None:
        return self.state.current_file

    @property
    def phase(self) -> CopierState:
        return self.state.phase

    def reset(self) -> None:
        """Reset the copier so that another copy operation can be started."""
        self._set_phase(CopierState.START)

    def copy(self, *copy_jobs: CopyJob, check_copies: bool = False) -> None:
        """
        Copy the sources of all jobs to their destinations.

        Parameters
        ----------
        *copy_jobs : CopyJob
            Jobs to execute in order; None entries are skipped
        check_copies : bool, default=False
            Check every copy against the digest of its source. All checks
            of an invocation share one event loop.

        Raises
        ------
        ValueError
            If a source has no pattern
        CopyConfigurationError
            If a job can not be executed as configured
        DestinationConflictError
            If destinations do not fit their sources (nothing is copied)
        TransferError
            If a file could not be transferred (raised after all other files)
        DigestMismatchError
            If a copy is corrupt (raised after all other files)
        """
        self.state.byte_count = 0
        self.state.copied_bytes = 0
        self.state.reported_bytes = 0
        jobs = [job for job in copy_jobs if job is not None]

        self._set_phase(CopierState.CHECKING_SOURCE)
        file_count = self._scan_jobs(jobs)
        if file_count == 0:
            logger.info("there are no files to copy")
            self._set_phase(CopierState.END)
            return

        self._check_jobs(jobs)

        self._set_phase(CopierState.COPYING)
        errors: list[Exception] = []
        # one event loop checks the copies of all files
        self._loop = asyncio.new_event_loop() if check_copies else None
        try:
            for job in jobs:
                for info, entry in job.files():
                    destinations = self._destination_files(
                        info.base_directory, entry, job.destinations
                    )
                    if entry.is_dir():
                        errors.extend(self._make_directories(entry, destinations))
                    else:
                        errors.extend(self._copy_file(check_copies, entry, destinations))
        finally:
            self._close_loop()

        if self.state.reported_bytes != self.state.copied_bytes:
            # the last slice was not reported
            self.notifier.fire(
                EventType.BYTE_COUNTER, self.state.reported_bytes, self.state.copied_bytes
            )
            self.state.reported_bytes = self.state.copied_bytes
        self._set_phase(CopierState.END)

        if errors:
            logger.error(f"{len(errors)} error(s) while copying, first: {errors[0]}")
            raise errors[0]

    def close(self) -> None:
        """Shut down the worker pool, waiting for pending closes."""
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "FileCopier":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ------------------------------------------------------------------------
    # Internal methods
    # ------------------------------------------------------------------------

    def _set_phase(self, phase: CopierState) -> None:
        previous = self.state.phase
        self.state.phase = phase
        self.notifier.fire(EventType.STATE, previous, phase)

    def _set_current_file(self, current: CurrentlyProcessedFile) -> None:
        self.state.current_file = current
        self.notifier.fire(EventType.FILE, None, Path(current.name))

    def _scan_jobs(self, jobs: list[CopyJob]) -> int:
        """
        Expand all sources and store the results in their jobs.

        Returns
        -------
        int
            Number of matched entries over all jobs
        """
        file_count = 0
        for job in jobs:
            directory_infos = []
            for source in job.sources:
                info = scan_source(source, self.notifier)
                if info is not None:
                    directory_infos.append(info)
                    self.state.byte_count += info.byte_count
                    file_count += len(info.files)
            job.directory_infos[:] = directory_infos

            if logger.isEnabledFor(logging.INFO):
                lines = ["source files:"]
                for info in directory_infos:
                    lines.append(f"source files in base directory {info.base_directory}:")
                    for entry in info.files:
                        lines.append(f"{'d' if entry.is_dir() else 'f'} {entry}")
                logger.info("\n".join(lines))
        return file_count

    def _check_jobs(self, jobs: list[CopyJob]) -> None:
        """
        Run all sanity checks before anything is written.

        Raises
        ------
        CopyConfigurationError
            If a job has no destination or more than the pool can serve
        DestinationConflictError
            If a destination can not take its sources
        """
        for job in jobs:
            entries = job.files()
            if not entries:
                continue

            if not job.destinations:
                raise CopyConfigurationError(f"no destinations for {len(entries)} source(s)")
            if len(job.destinations) > self.config.max_workers:
                raise CopyConfigurationError(
                    f"{len(job.destinations)} destinations exceed the worker limit "
                    f"of {self.config.max_workers}"
                )

            for destination in job.destinations:
                destination_file = Path(destination)
                if not destination_file.is_file():
                    continue
                if len(entries) == 1:
                    _, source_file = entries[0]
                    if source_file.is_dir():
                        raise DestinationConflictError(
                            f'can not overwrite file "{destination_file}" '
                            f'with directory "{source_file}"'
                        )
                else:
                    sources = "  ".join(str(entry) for _, entry in entries)
                    raise DestinationConflictError(
                        "can not copy several files to another file\n"
                        f" sources:  {sources} destination: {destination_file}"
                    )

            for info, entry in entries:
                if not entry.is_dir():
                    continue
                for destination_file in self._destination_files(
                    info.base_directory, entry, job.destinations
                ):
                    if destination_file.exists() and not destination_file.is_dir():
                        raise DestinationConflictError(
                            f'can not overwrite file "{destination_file}" '
                            f'with directory "{entry}"'
                        )

    @staticmethod
    def _destination_files(
        base_directory: Path, source_file: Path, destinations: tuple
    ) -> list[Path]:
        """
        Map a source entry to its path below every destination root.

        A destination that is an existing file is used as is.
        """
        destination_files = []
        for destination in destinations:
            destination_file = Path(destination)
            if destination_file.is_file():
                destination_files.append(destination_file)
            else:
                destination_files.append(
                    destination_file / source_file.relative_to(base_directory)
                )
        return destination_files

    def _make_directories(self, source: Path, destinations: list[Path]) -> list[Exception]:
        errors = []
        for destination in destinations:
            if destination.is_dir():
                logger.info(f'Directory "{destination}" already exists')
                continue
            logger.info(f'Creating directory "{destination}"')
            try:
                destination.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.error(f'Could not create directory "{destination}": {e}')
                errors.append(TransferError(source, destination, e))
        return errors

    def _copy_file(
        self, check_copies: bool, source: Path, destinations: list[Path]
    ) -> list[Exception]:
        """
        Copy one file to all of its destinations, then check the copies.

        Returns
        -------
        list[Exception]
            Transfer or verification errors of this file, already logged
        """
        source_key = str(source.absolute())
        current = CurrentlyProcessedFile(source_key)
        self._set_current_file(current)
        logger.info(
            "Copying file\n{}\nto the following destinations:\n{}".format(
                source, "\n".join(str(d) for d in destinations)
            )
        )

        try:
            # create the directory path, but DON'T create the file itself here
            for destination in destinations:
                if not destination.exists():
                    destination.parent.mkdir(parents=True, exist_ok=True)

            source_length = source.stat().st_size
            if source_length == 0:
                for destination in destinations:
                    open(destination, "wb").close()
                return []
        except OSError as e:
            logger.error(f"could not prepare copy of {source}: {e}")
            return [TransferError(source, None, e)]

        hasher = None
        if check_copies and (self.digest_cache is None or source_key not in self.digest_cache):
            hasher = HashCalculator(self.config.hash_algorithm)
        direct = (
            hasher is None and self.config.direct_transfer and direct_transfer_available()
        )

        plan = SlicePlan(
            self.state, source_length, self.notifier, self.config.target_interval_ms
        )
        barrier = threading.Barrier(len(destinations), action=plan.advance)
        transferrers = [
            Transferrer(
                source,
                destination,
                plan,
                barrier,
                self._close_async,
                # only one task feeds the digest
                hasher=hasher if index == 0 else None,
                direct=direct,
            )
            for index, destination in enumerate(destinations)
        ]

        plan.start()
        futures = [self._executor.submit(t.run) for t in transferrers]
        try:
            wait(futures)
        except BaseException:
            barrier.abort()
            raise

        failure = self._first_failure(transferrers, futures)
        if failure is not None:
            return [failure]

        if not check_copies:
            return []

        if hasher is None:
            logger.debug(f"taking {source_key} from digest cache")
            expected = self.digest_cache[source_key]
        else:
            expected = hasher.digest()
            if self.digest_cache is not None:
                logger.debug(f"adding {source_key} to digest cache")
                self.digest_cache[source_key] = expected

        self._set_current_file(current.checking())
        return self.verifier.verify_all(expected, destinations, self._loop)

    def _close_loop(self) -> None:
        loop, self._loop = self._loop, None
        if loop is None:
            return
        try:
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.run_until_complete(loop.shutdown_default_executor())
        finally:
            loop.close()

    @staticmethod
    def _first_failure(transferrers: list[Transferrer], futures: list) -> TransferError | None:
        """Pick the root cause; broken barriers only echo a sibling's failure."""
        failure = None
        for transferrer, future in zip(transferrers, futures):
            exc = future.exception()
            if exc is None:
                continue
            if failure is None or (
                isinstance(failure.cause, threading.BrokenBarrierError)
                and not isinstance(exc, threading.BrokenBarrierError)
            ):
                failure = TransferError(transferrer.source, transferrer.destination, exc)
        return failure

    def _close_async(self, handle: BinaryIO) -> None:
        self._executor.submit(self._close, handle)

    @staticmethod
    def _close(handle: BinaryIO) -> None:
        try:
            handle.close()
        except OSError:
            logger.exception(f"could not close {handle.name}")
