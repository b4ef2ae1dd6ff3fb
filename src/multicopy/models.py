"""
Data models for multicopy.

Sources and copy jobs describe *what* to copy, directory infos hold the scan
results, and the state classes describe *where* a running copy operation is.
"""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path

# Constants
DEFAULT_SLICE = 1024 * 1024  # 1 MiB


class CopierState(Enum):
    """
    Lifecycle phase of a copy invocation.

    Attributes
    ----------
    START : str
        Initial phase, re-entered via ``FileCopier.reset()``
    CHECKING_SOURCE : str
        Scanning sources (file count and byte count)
    COPYING : str
        Copying (and optionally checking) files
    END : str
        All copy jobs processed
    """

    START = "start"
    CHECKING_SOURCE = "checking_source"
    COPYING = "copying"
    END = "end"


class FileState(Enum):
    """State of the file that is currently processed."""

    COPYING = "copying"
    CHECKING = "checking"


@dataclass(frozen=True)
class CurrentlyProcessedFile:
    """
    The file the engine is working on right now.

    Attributes
    ----------
    name : str
        Absolute path of the source file
    state : FileState, default=FileState.COPYING
        Whether the file is being copied or its copies are being checked
    """

    name: str
    state: FileState = FileState.COPYING

    def checking(self) -> "CurrentlyProcessedFile":
        """Return a replacement of this file in state CHECKING."""
        return replace(self, state=FileState.CHECKING)


@dataclass
class Source:
    """
    A base directory plus the pattern selecting entries below it.

    Parameters
    ----------
    base_directory : Path | str
        Directory the pattern is applied to
    pattern : str | re.Pattern | None
        Regular expression, fully matched against entry paths relative to
        ``base_directory``. A missing pattern is rejected when the source
        is expanded.
    recursive : bool, default=False
        Descend into subdirectories and copy matching directories themselves
    """

    base_directory: Path
    pattern: re.Pattern | None
    recursive: bool = False

    def __post_init__(self):
        self.base_directory = Path(self.base_directory)
        if isinstance(self.pattern, str):
            self.pattern = re.compile(self.pattern)


@dataclass
class DirectoryInfo:
    """
    Scan result for one base directory.

    Attributes
    ----------
    base_directory : Path
        The scanned directory
    files : list[Path]
        Matched entries, files and (in recursive mode) directories
    byte_count : int
        Sum of the sizes of the matched files; directories never count
    """

    base_directory: Path
    files: list[Path] = field(default_factory=list)
    byte_count: int = 0


@dataclass(frozen=True)
class CopyJob:
    """
    One or more sources copied to one or more destination roots.

    Parameters
    ----------
    sources : tuple[Source, ...]
        Sources in copy order
    destinations : tuple[str, ...]
        Destination roots; every source entry is copied to each of them
    """

    sources: tuple
    destinations: tuple
    directory_infos: list = field(default_factory=list, compare=False, repr=False)

    def __post_init__(self):
        # frozen: normalise through object.__setattr__
        object.__setattr__(self, "sources", tuple(self.sources))
        object.__setattr__(
            self, "destinations", tuple(str(d) for d in self.destinations)
        )

    @property
    def byte_count(self) -> int:
        """Total size of all matched files of this job."""
        return sum(info.byte_count for info in self.directory_infos)

    def files(self) -> list[tuple[DirectoryInfo, Path]]:
        """
        Flatten the scan results.

        Returns
        -------
        list[tuple[DirectoryInfo, Path]]
            Every matched entry with the directory info it belongs to, in
            scan order
        """
        return [(info, entry) for info in self.directory_infos for entry in info.files]


@dataclass
class TransferState:
    """
    Observable state of a copy engine.

    Only the engine mutates it; subscribers read it from within their
    progress callbacks.
    """

    phase: CopierState = CopierState.START
    byte_count: int = 0
    copied_bytes: int = 0
    reported_bytes: int = 0
    slice_size: int = DEFAULT_SLICE
    slice_time_ms: int = 0
    current_file: CurrentlyProcessedFile | None = None
