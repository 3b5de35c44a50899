"""Error kinds for isnapshot.

Every failure the snapshot engine can report is a subclass of
SnapshotError. Each carries the offending path (when there is one) and an
ErrorCode so log lines can be grepped and explained.
"""

from enum import Enum
from typing import Dict, Optional


class ErrorCode(Enum):
    """Error codes attached to snapshot failures."""
    # Entry errors (1xxx)
    STAT_FAILED = "E1001"
    OPEN_FAILED = "E1002"
    CREATION_FAILED = "E1003"
    COPY_FAILED = "E1004"
    METADATA_FAILED = "E1005"
    UNRECOGNIZED_TYPE = "E1006"

    # Snapshot root errors (2xxx)
    LOCATOR_OPEN_FAILED = "E2001"
    SNAPSHOT_EXISTS = "E2002"

    # Invocation errors (3xxx)
    USAGE = "E3001"

    # General errors (0xxx)
    UNKNOWN_ERROR = "E0001"


ERROR_GUIDANCE: Dict[ErrorCode, str] = {
    ErrorCode.STAT_FAILED: "The entry could not be examined. It may have been removed during the run or be unreadable.",
    ErrorCode.OPEN_FAILED: "A file could not be opened. Check read permission on the source and write permission on the destination.",
    ErrorCode.CREATION_FAILED: "A directory, link or special file could not be created in the snapshot. Check destination permissions and free space.",
    ErrorCode.COPY_FAILED: "A file was only partially copied. The destination may be full.",
    ErrorCode.METADATA_FAILED: "Timestamps, ownership or permissions could not be applied. Run as the file owner or as root to preserve ownership.",
    ErrorCode.UNRECOGNIZED_TYPE: "The entry is not a file type isnapshot knows how to reproduce.",
    ErrorCode.LOCATOR_OPEN_FAILED: "The destination directory could not be read. Make sure it exists and is readable.",
    ErrorCode.SNAPSHOT_EXISTS: "A snapshot with this timestamp already exists. Wait a moment or use a finer date format.",
    ErrorCode.USAGE: "Check the command line arguments with --help.",
    ErrorCode.UNKNOWN_ERROR: "An unexpected error occurred. Run with --verbose for more details.",
}


def get_error_guidance(error_code: ErrorCode) -> str:
    """Return troubleshooting guidance for an error code."""
    return ERROR_GUIDANCE.get(error_code, ERROR_GUIDANCE[ErrorCode.UNKNOWN_ERROR])


class SnapshotError(Exception):
    """Base class for every failure raised while building a snapshot."""

    code = ErrorCode.UNKNOWN_ERROR

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class StatError(SnapshotError):
    """Raised when an entry's metadata cannot be read."""
    code = ErrorCode.STAT_FAILED


class OpenError(SnapshotError):
    """Raised when a source or destination file cannot be opened."""
    code = ErrorCode.OPEN_FAILED


class CreationError(SnapshotError):
    """Raised when a directory, fifo, device node or symlink cannot be created."""
    code = ErrorCode.CREATION_FAILED


class CopyError(SnapshotError):
    """Raised when file content is not fully transferred."""
    code = ErrorCode.COPY_FAILED


class MetadataError(SnapshotError):
    """Timestamps, ownership or permissions could not be applied.

    Logged without failing the entry, except when raised for a symlink's
    ownership, which fails it.
    """
    code = ErrorCode.METADATA_FAILED


class UnrecognizedTypeError(SnapshotError):
    """Raised for entries that are none of the handled kinds."""
    code = ErrorCode.UNRECOGNIZED_TYPE


class LocatorOpenError(SnapshotError):
    """Raised when the destination root cannot be enumerated."""
    code = ErrorCode.LOCATOR_OPEN_FAILED


class SnapshotExistsError(SnapshotError):
    """Raised when the new snapshot directory is already present."""
    code = ErrorCode.SNAPSHOT_EXISTS


class UsageError(SnapshotError):
    """Raised for invalid arguments or options."""
    code = ErrorCode.USAGE
