"""
Exceptions raised by multicopy.

Every error inherits from CopierError so callers can catch all of them with
one clause. They also inherit from the builtin they refine (ValueError or
OSError), which keeps ``except OSError`` handlers working.
"""

from pathlib import Path


class CopierError(Exception):
    """Base class for all multicopy errors."""


class CopyConfigurationError(CopierError, ValueError):
    """Raised when a copy invocation is misconfigured."""


class DestinationConflictError(CopierError, OSError):
    """
    Raised when the shape of a destination does not fit its sources.

    Detected before any file is written, e.g. several files copied onto one
    existing file or a directory copied onto an existing file.
    """


class TransferError(CopierError, OSError):
    """
    Raised when a file could not be transferred to a destination.

    Attributes
    ----------
    source : Path
        Source file
    destination : Path | None
        Destination whose task failed first, if known
    cause : BaseException | None
        The underlying error
    """

    def __init__(
        self,
        source: Path,
        destination: Path | None = None,
        cause: BaseException | None = None,
    ):
        self.source = source
        self.destination = destination
        self.cause = cause
        message = f"could not transfer {source}"
        if destination is not None:
            message += f" to {destination}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class DigestMismatchError(CopierError, OSError):
    """
    Raised when a copy does not have the digest of its source.

    Attributes
    ----------
    path : Path
        The copy that failed verification
    expected : bytes
        Digest of the source
    actual : bytes
        Digest of the copy
    """

    def __init__(self, path: Path, expected: bytes, actual: bytes):
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{path} was not correctly copied "
            f"(expected checksum: {expected.hex()}, actual checksum: {actual.hex()})"
        )
