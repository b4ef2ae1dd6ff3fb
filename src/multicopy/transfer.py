"""
Lock-step transfer of one file to several destinations.

Every destination gets its own Transferrer task. The tasks copy the file in
slices and meet at a barrier after each slice; the barrier action
(SlicePlan.advance) runs exactly once per slice, accounts the progress and
sizes the next slice so that one slice takes about one second.
"""

import logging
import os
import sys
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import BinaryIO

from .hashing import HashCalculator
from .models import TransferState
from .progress import EventType, ProgressNotifier

logger = logging.getLogger(__name__)

# Constants
BUFFER_SIZE = 8 * 1024 * 1024  # 8MB, upper bound of a single read within a slice


def direct_transfer_available() -> bool:
    """Whether file-to-file zero-copy transfer (sendfile) works here."""
    return sys.platform.startswith("linux") and hasattr(os, "sendfile")


def adapt_slice(slice_size: int, volume: int, elapsed_ms: int, target_ms: int) -> int:
    """
    Move the slice size towards the size that would take ``target_ms``.

    The size implied by the measured bandwidth is never used directly, that
    overshoots. Instead the slice is doubled or halved towards it.

    Parameters
    ----------
    slice_size : int
        Current slice size in bytes
    volume : int
        Bytes transferred in the measured slice
    elapsed_ms : int
        Duration of the measured slice
    target_ms : int
        Wanted duration of a slice

    Returns
    -------
    int
        The next slice size: doubled, halved or unchanged
    """
    if elapsed_ms <= 0:
        # no bandwidth without time
        return slice_size
    ideal = volume * target_ms // elapsed_ms
    double_slice = slice_size * 2
    half_slice = slice_size // 2
    if ideal > double_slice:
        return double_slice
    if ideal < half_slice and half_slice > 0:
        return half_slice
    return slice_size


class SlicePlan:
    """
    Position and volume of the current slice of one file.

    Written only by ``advance``, the barrier action, while all tasks wait at
    the barrier; tasks read ``volume`` after the barrier released them.

    Parameters
    ----------
    state : TransferState
        Engine state holding byte counters and the adaptive slice size
    source_length : int
        Size of the file being copied
    notifier : ProgressNotifier
        Receives a byte counter event per slice
    target_interval_ms : int
        Wanted duration of a slice
    """

    def __init__(
        self,
        state: TransferState,
        source_length: int,
        notifier: ProgressNotifier,
        target_interval_ms: int,
    ):
        self.state = state
        self.source_length = source_length
        self.notifier = notifier
        self.target_interval_ms = target_interval_ms
        self.position = 0
        self.volume = min(state.slice_size, source_length)
        self._slice_start = time.monotonic()
        logger.debug(
            f"starting with slice = {state.slice_size:,} byte, "
            f"transferVolume = {self.volume:,} byte"
        )

    def start(self) -> None:
        """Start timing the first slice."""
        self._slice_start = time.monotonic()

    def advance(self) -> None:
        """Account the finished slice and plan the next one."""
        state = self.state
        self.position += self.volume
        logger.debug(f"new position: {self.position:,}")

        state.copied_bytes += self.volume
        self.notifier.fire(EventType.BYTE_COUNTER, state.reported_bytes, state.copied_bytes)
        state.reported_bytes = state.copied_bytes

        elapsed_ms = int((time.monotonic() - self._slice_start) * 1000)
        state.slice_time_ms = elapsed_ms
        logger.debug(f"time = {elapsed_ms:,} ms")
        state.slice_size = adapt_slice(
            state.slice_size, self.volume, elapsed_ms, self.target_interval_ms
        )
        self.volume = min(state.slice_size, self.source_length - self.position)
        logger.debug(f"slice = {state.slice_size:,} byte, transferVolume = {self.volume:,} byte")
        self._slice_start = time.monotonic()


class Transferrer:
    """
    Copies one source file to one destination, slice by slice.

    Parameters
    ----------
    source : Path
        Source file, opened by the task itself
    destination : Path
        Destination file, created or truncated by the task itself
    plan : SlicePlan
        Shared slice plan of the file
    barrier : threading.Barrier
        Shared by all tasks of the file, ``plan.advance`` is its action
    closer : Callable[[BinaryIO], None]
        Called with each handle when the task ends
    hasher : HashCalculator | None, default=None
        Digest accumulator; only one task per file gets it
    direct : bool, default=False
        Use zero-copy transfer (only without hasher)
    """

    def __init__(
        self,
        source: Path,
        destination: Path,
        plan: SlicePlan,
        barrier: threading.Barrier,
        closer: Callable[[BinaryIO], None],
        hasher: HashCalculator | None = None,
        direct: bool = False,
    ):
        if direct and hasher is not None:
            raise ValueError("direct transfer bypasses the digest")
        self.source = source
        self.destination = destination
        self.plan = plan
        self.barrier = barrier
        self.closer = closer
        self.hasher = hasher
        self.direct = direct

    def run(self) -> None:
        """
        Transfer the whole file.

        Raises
        ------
        OSError
            On read or write errors, or if the source is shorter than planned
        threading.BrokenBarrierError
            If a sibling task failed
        """
        source_file = None
        destination_file = None
        try:
            source_file = open(self.source, "rb", buffering=0)
            destination_file = open(self.destination, "wb", buffering=0)

            position = 0
            while position < self.plan.source_length:
                volume = self.plan.volume
                transferred = 0
                while transferred < volume:
                    count = min(volume - transferred, BUFFER_SIZE)
                    if self.direct:
                        n = os.sendfile(
                            destination_file.fileno(), source_file.fileno(), position, count
                        )
                    else:
                        n = self._copy_chunk(source_file, destination_file, count)
                    if n == 0:
                        raise OSError(f"unexpected end of file {self.source}")
                    position += n
                    transferred += n

                # wait for all other transferrers to finish their slice
                self.barrier.wait()

        except threading.BrokenBarrierError:
            logger.debug(f"transfer to {self.destination} stopped, a sibling failed")
            raise

        except BaseException:
            logger.exception(f"could not transfer data from {self.source} to {self.destination}")
            self.barrier.abort()
            raise

        finally:
            # closing happens off this thread so the next file can start
            for handle in (source_file, destination_file):
                if handle is not None:
                    self.closer(handle)

    def _copy_chunk(self, source_file: BinaryIO, destination_file: BinaryIO, count: int) -> int:
        chunk = source_file.read(count)
        if not chunk:
            return 0
        if self.hasher is not None:
            self.hasher.update(chunk)
        view = memoryview(chunk)
        while view:
            written = destination_file.write(view)
            view = view[written:]
        return len(chunk)
