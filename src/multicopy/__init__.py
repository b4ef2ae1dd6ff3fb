"""
multicopy: copy files to several destinations at once.

Sources are expanded by pattern, every file is written to all destinations in
parallel using adaptively sized, lock-stepped slices, and copies can be
checked against the digest of their source, with an optional digest cache
and OS cache eviction before the check.
"""

from .config import CopierConfig
from .engine import FileCopier
from .eviction import CacheEvictor, LinuxCacheEvictor, NoopCacheEvictor, create_cache_evictor
from .exceptions import (
    CopierError,
    CopyConfigurationError,
    DestinationConflictError,
    DigestMismatchError,
    TransferError,
)
from .hashing import HashCalculator
from .main import main
from .models import (
    CopierState,
    CopyJob,
    CurrentlyProcessedFile,
    DirectoryInfo,
    FileState,
    Source,
    TransferState,
)
from .progress import CopyEvent, EventType, LoggingProgressReporter, ProgressNotifier
from .scanner import base_path_length, expand, scan_source
from .transfer import adapt_slice
from .verification import CopyVerifier

__version__ = "1.0.0"
__author__ = "multicopy project"
__description__ = "Multi-destination file copying with integrity verification"

__all__ = [
    "CacheEvictor",
    "CopierConfig",
    "CopierError",
    "CopierState",
    "CopyConfigurationError",
    "CopyEvent",
    "CopyJob",
    "CopyVerifier",
    "CurrentlyProcessedFile",
    "DestinationConflictError",
    "DigestMismatchError",
    "DirectoryInfo",
    "EventType",
    "FileCopier",
    "FileState",
    "HashCalculator",
    "LinuxCacheEvictor",
    "LoggingProgressReporter",
    "NoopCacheEvictor",
    "ProgressNotifier",
    "Source",
    "TransferError",
    "TransferState",
    "adapt_slice",
    "base_path_length",
    "create_cache_evictor",
    "expand",
    "main",
    "scan_source",
]
