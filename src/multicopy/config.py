"""Configuration for the copy engine."""

import argparse
from dataclasses import dataclass

from .hashing import SUPPORTED_ALGORITHMS
from .models import DEFAULT_SLICE

WANTED_TIME_MS = 1000
VERIFY_BUFFER_SIZE = 1024 * 1024
MAX_WORKERS = 64


@dataclass
class CopierConfig:
    """
    Configuration for FileCopier.

    Attributes
    ----------
    initial_slice : int, default=1 MiB
        Slice size used for the very first slice
    target_interval_ms : int, default=1000
        Wanted duration of one slice; the slice size adapts towards it
    hash_algorithm : str, default="xxh128"
        128-bit digest used for checking copies ('xxh128' or 'md5')
    verify_buffer_size : int, default=1 MiB
        Read size when re-hashing copies
    max_workers : int, default=64
        Upper bound of the worker pool; limits destinations per job
    evict_caches : bool, default=True
        Drop OS page caches of a copy before checking it
    direct_transfer : bool, default=True
        Use zero-copy transfer when no digest is needed and the platform
        supports it
    verbose : bool, default=False
        Enable debug logging
    """

    initial_slice: int = DEFAULT_SLICE
    target_interval_ms: int = WANTED_TIME_MS
    hash_algorithm: str = "xxh128"
    verify_buffer_size: int = VERIFY_BUFFER_SIZE
    max_workers: int = MAX_WORKERS
    evict_caches: bool = True
    direct_transfer: bool = True
    verbose: bool = False

    def __post_init__(self):
        """Validate configuration."""
        if self.initial_slice <= 0:
            raise ValueError(f"Slice size must be positive, got {self.initial_slice}")
        if self.target_interval_ms <= 0:
            raise ValueError(
                f"Target interval must be positive, got {self.target_interval_ms}"
            )
        if self.verify_buffer_size <= 0:
            raise ValueError(
                f"Buffer size must be positive, got {self.verify_buffer_size}"
            )
        if self.max_workers <= 0:
            raise ValueError(f"Worker count must be positive, got {self.max_workers}")

        if self.hash_algorithm.lower() not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"Invalid hash algorithm: {self.hash_algorithm}")
        self.hash_algorithm = self.hash_algorithm.lower()

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "CopierConfig":
        """Create config from command-line arguments."""
        return cls(
            hash_algorithm=args.hash if args.hash else "xxh128",
            evict_caches=not args.no_evict,
            verbose=args.verbose,
        )
