"""isnapshot - Incremental snapshot backups that symlink unchanged files."""

__version__ = "0.1.0"

from isnapshot.errors import (
    ErrorCode,
    SnapshotError,
    StatError,
    OpenError,
    CreationError,
    CopyError,
    MetadataError,
    UnrecognizedTypeError,
    LocatorOpenError,
    SnapshotExistsError,
    UsageError,
)
from isnapshot.paths import join_path, strip_leading_separators
from isnapshot.metadata import (
    EntryKind,
    FileStatus,
    capture_status,
    replicate_metadata,
)
from isnapshot.copier import copy_file
from isnapshot.links import mirror_link
from isnapshot.locator import (
    DEFAULT_DATE_FORMAT,
    SnapshotInfo,
    TimestampFormat,
    find_previous_snapshot,
    list_snapshots,
)
from isnapshot.directories import make_dirs
from isnapshot.walker import TreeWalker, WalkOptions, WalkResult, WalkStats
from isnapshot.snapshot import SnapshotEngine, SnapshotResult
from isnapshot.config import (
    Configuration,
    ConfigurationError,
    ValidationError,
    parse_config,
    format_config,
)
from isnapshot.logger import LoggingError, setup_logging, get_logger

__all__ = [
    "ErrorCode",
    "SnapshotError",
    "StatError",
    "OpenError",
    "CreationError",
    "CopyError",
    "MetadataError",
    "UnrecognizedTypeError",
    "LocatorOpenError",
    "SnapshotExistsError",
    "UsageError",
    "join_path",
    "strip_leading_separators",
    "EntryKind",
    "FileStatus",
    "capture_status",
    "replicate_metadata",
    "copy_file",
    "mirror_link",
    "DEFAULT_DATE_FORMAT",
    "SnapshotInfo",
    "TimestampFormat",
    "find_previous_snapshot",
    "list_snapshots",
    "make_dirs",
    "TreeWalker",
    "WalkOptions",
    "WalkResult",
    "WalkStats",
    "SnapshotEngine",
    "SnapshotResult",
    "Configuration",
    "ConfigurationError",
    "ValidationError",
    "parse_config",
    "format_config",
    "LoggingError",
    "setup_logging",
    "get_logger",
]
