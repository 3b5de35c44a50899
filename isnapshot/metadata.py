"""File status capture and metadata replication.

A FileStatus is read once per entry with lstat and then drives both the
copy-or-link decision and the metadata written onto the snapshot copy.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional
import logging
import os
import stat

from isnapshot.errors import MetadataError, StatError


logger = logging.getLogger(__name__)


class EntryKind(Enum):
    """Kinds of filesystem entries the walker distinguishes."""
    DIRECTORY = "directory"
    REGULAR = "regular"
    SYMLINK = "symlink"
    FIFO = "fifo"
    CHAR_DEVICE = "char_device"
    BLOCK_DEVICE = "block_device"
    SOCKET = "socket"
    UNKNOWN = "unknown"


def classify_mode(mode: int) -> EntryKind:
    """Map an st_mode value to its EntryKind."""
    if stat.S_ISDIR(mode):
        return EntryKind.DIRECTORY
    if stat.S_ISREG(mode):
        return EntryKind.REGULAR
    if stat.S_ISLNK(mode):
        return EntryKind.SYMLINK
    if stat.S_ISFIFO(mode):
        return EntryKind.FIFO
    if stat.S_ISCHR(mode):
        return EntryKind.CHAR_DEVICE
    if stat.S_ISBLK(mode):
        return EntryKind.BLOCK_DEVICE
    if stat.S_ISSOCK(mode):
        return EntryKind.SOCKET
    return EntryKind.UNKNOWN


@dataclass
class FileStatus:
    """Attributes of one entry, captured at visit time."""
    path: str
    mode: int
    size: int
    uid: int
    gid: int
    atime_ns: int
    mtime_ns: int
    rdev: int = 0
    blksize: int = 0
    link_target: Optional[str] = None

    @property
    def kind(self) -> EntryKind:
        return classify_mode(self.mode)

    @property
    def permissions(self) -> int:
        """Permission bits including setuid, setgid and sticky."""
        return stat.S_IMODE(self.mode)

    @classmethod
    def from_stat_result(
        cls,
        path: str,
        st: os.stat_result,
        link_target: Optional[str] = None,
    ) -> "FileStatus":
        return cls(
            path=path,
            mode=st.st_mode,
            size=st.st_size,
            uid=st.st_uid,
            gid=st.st_gid,
            atime_ns=st.st_atime_ns,
            mtime_ns=st.st_mtime_ns,
            rdev=getattr(st, "st_rdev", 0),
            blksize=getattr(st, "st_blksize", 0),
            link_target=link_target,
        )


def capture_status(path: str) -> FileStatus:
    """
    Read the status of path without following a final symlink.

    For symlinks the stored target string is read as well.

    Args:
        path: Entry to examine

    Returns:
        FileStatus for the entry

    Raises:
        StatError: If the entry cannot be examined or its link target read
    """
    try:
        st = os.lstat(path)
    except OSError as e:
        raise StatError(f"could not stat file {path}: {e.strerror}", path) from e

    link_target = None
    if stat.S_ISLNK(st.st_mode):
        try:
            link_target = os.readlink(path)
        except OSError as e:
            raise StatError(f"cannot read symlink `{path}': {e.strerror}", path) from e

    return FileStatus.from_stat_result(path, st, link_target)


def _report(error: MetadataError) -> None:
    logger.error(f"[{error.code.value}] {error}")


def replicate_metadata(
    path: str,
    status: FileStatus,
    mode: Optional[int] = None,
) -> bool:
    """
    Apply timestamps, ownership and permissions from status onto path.

    The steps run in that order and each one is attempted even when an
    earlier step failed. When ownership cannot be set the setuid and
    setgid bits are dropped before the permissions are applied.

    Args:
        path: Destination to update
        status: Captured status of the source entry
        mode: Permission bits to apply instead of status.permissions

    Returns:
        True only if every step succeeded
    """
    success = True
    permissions = status.permissions if mode is None else stat.S_IMODE(mode)

    try:
        os.utime(path, ns=(status.atime_ns, status.mtime_ns))
    except OSError as e:
        _report(MetadataError(f"could not set time on {path}: {e.strerror}", path))
        success = False

    try:
        os.chown(path, status.uid, status.gid)
    except OSError as e:
        _report(MetadataError(f"could not set ownership on {path}: {e.strerror}", path))
        permissions &= ~(stat.S_ISUID | stat.S_ISGID)
        success = False

    try:
        os.chmod(path, permissions)
    except OSError as e:
        _report(MetadataError(f"could not set permissions on {path}: {e.strerror}", path))
        success = False

    return success
