"""
Directory scanning.

Expands a Source into the concrete list of entries to copy. Patterns are
matched against paths relative to the source's base directory.
"""

import logging
import os
import re
from pathlib import Path

from .models import DirectoryInfo, Source
from .progress import EventType, ProgressNotifier

logger = logging.getLogger(__name__)


def base_path_length(base_directory: Path) -> int:
    """
    Number of characters to strip from entry paths to make them relative.

    File system roots ("/") already end with a separator, normal directories
    ("/etc") need one more character for the separator that follows them.
    """
    path = str(base_directory)
    if path.endswith(os.sep):
        return len(path)
    return len(path) + 1


def expand(
    base_length: int,
    directory: Path,
    pattern: re.Pattern | None,
    recursive: bool,
    notifier: ProgressNotifier | None = None,
) -> DirectoryInfo | None:
    """
    Collect all entries of a directory that match a pattern.

    Parameters
    ----------
    base_length : int
        Prefix length stripped from entry paths before matching
        (see ``base_path_length``)
    directory : Path
        Directory to scan
    pattern : re.Pattern | None
        Fully matched against the relative entry paths
    recursive : bool
        Descend into subdirectories and list matching directories
    notifier : ProgressNotifier | None, default=None
        Receives a file event for every scanned directory

    Returns
    -------
    DirectoryInfo | None
        The matched entries, or None if the directory is missing, no
        directory or unreadable. Matched files whose size can not be read
        (e.g. dangling symlinks) are listed but count 0 bytes.

    Raises
    ------
    ValueError
        If pattern is None
    """
    logger.info(f"current directory: {directory}, pattern: {pattern}")

    if notifier is not None:
        notifier.fire(EventType.FILE, None, directory)

    if not directory.exists():
        logger.warning(f"{directory} does not exist")
        return None
    if not directory.is_dir():
        logger.warning(f"{directory} is no directory")
        return None
    if not os.access(directory, os.R_OK):
        logger.warning(f"can not read {directory}")
        return None

    if pattern is None:
        raise ValueError("pattern must not be None")

    logger.debug(f"recursing directory {directory}")
    byte_count = 0
    files: list[Path] = []
    with os.scandir(directory) as entries:
        for entry in entries:
            entry_path = Path(entry.path)
            is_dir = entry.is_dir()

            relative_path = entry.path[base_length:]
            if pattern.fullmatch(relative_path):
                logger.debug(f"{entry.path} matches")
                if is_dir:
                    # directories are only copied themselves in recursive mode
                    if recursive:
                        files.append(entry_path)
                else:
                    files.append(entry_path)
                    try:
                        byte_count += entry.stat().st_size
                    except OSError as e:
                        # still listed, the copy of this entry fails on its own
                        logger.warning(f"can not get size of {entry.path}: {e}")
            else:
                logger.debug(f"{entry.path} does not match")

            # symlinked directories are not expanded
            if recursive and is_dir and not entry.is_symlink():
                info = expand(base_length, entry_path, pattern, recursive, notifier)
                if info is not None:
                    files.extend(info.files)
                    byte_count += info.byte_count

    return DirectoryInfo(base_directory=directory, files=files, byte_count=byte_count)


def scan_source(
    source: Source, notifier: ProgressNotifier | None = None
) -> DirectoryInfo | None:
    """
    Expand a source from its base directory.

    Parameters
    ----------
    source : Source
        The source to expand
    notifier : ProgressNotifier | None, default=None
        Receives a file event for every scanned directory

    Returns
    -------
    DirectoryInfo | None
        Scan result, None if the base directory is unusable
    """
    return expand(
        base_path_length(source.base_directory),
        source.base_directory,
        source.pattern,
        source.recursive,
        notifier,
    )
