"""
Dropping OS page caches before a copy is checked.

Reading a freshly written file usually hits the page cache, which checks the
memory instead of the storage medium. Where the platform allows it, the
evictor flushes the file and drops its cached pages first. Eviction is best
effort: failures are logged and never raised.
"""

import logging
import platform
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger(__name__)


class CacheEvictor(ABC):
    """Platform capability for evicting a file from OS caches."""

    @abstractmethod
    def evict(self, path: Path) -> bool:
        """
        Flush dirty pages of a file and drop it from the page cache.

        Parameters
        ----------
        path : Path
            File to evict

        Returns
        -------
        bool
            True if eviction was performed
        """

    @abstractmethod
    def get_platform_name(self) -> str:
        """Get platform name for logging."""


class NoopCacheEvictor(CacheEvictor):
    """Evictor for platforms without a supported eviction mechanism."""

    def evict(self, path: Path) -> bool:
        return False

    def get_platform_name(self) -> str:
        return platform.system().lower() or "unknown"


class LinuxCacheEvictor(CacheEvictor):
    """
    Evict via coreutils.

    ``sync FILE`` writes the file's dirty pages to the medium, then a
    zero-length ``dd`` with ``oflag=nocache`` drops its cached pages.

    Parameters
    ----------
    timeout : float, default=60.0
        Timeout per command in seconds
    """

    def __init__(self, timeout: float = 60.0):
        self.timeout = timeout

    def evict(self, path: Path) -> bool:
        commands = [
            ["sync", str(path)],
            [
                "dd",
                f"of={path}",
                "oflag=nocache",
                "conv=notrunc,fdatasync",
                "count=0",
            ],
        ]
        for cmd in commands:
            try:
                process = subprocess.run(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    timeout=self.timeout,
                    check=False,
                )
            except (OSError, subprocess.TimeoutExpired) as e:
                logger.debug(f"could not run {cmd[0]} for {path}: {e}")
                return False
            if process.returncode != 0:
                stderr = process.stderr.decode(errors="replace").strip()
                logger.debug(f"{cmd[0]} failed for {path}: {stderr}")
                return False
        return True

    def get_platform_name(self) -> str:
        return "linux"


def create_cache_evictor() -> CacheEvictor:
    """Create the evictor for the current platform."""
    if platform.system() == "Linux":
        return LinuxCacheEvictor()
    return NoopCacheEvictor()
