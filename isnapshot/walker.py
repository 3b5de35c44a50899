"""Tree walker: the copy-or-link decision engine.

The walker visits every entry below each source root, depth first, and
reproduces it inside the new snapshot:

- directories are always created fresh
- regular files are copied when new or changed, otherwise linked to the
  same path in the previous snapshot
- symlinks, FIFOs, device nodes and sockets are recreated as they are

A regular file counts as unchanged only when its modification time is
exactly equal to the one in the previous snapshot. Size and content are
never compared.

The first failing entry aborts the directory that contains it, and that
failure propagates up to the source root. Entries finished before the
failure are left in place.
"""

from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from typing import Iterable, List, Optional, Tuple
import logging
import os
import stat

from isnapshot.copier import copy_file
from isnapshot.directories import make_dirs
from isnapshot.errors import (
    CreationError,
    MetadataError,
    OpenError,
    SnapshotError,
    UnrecognizedTypeError,
)
from isnapshot.links import mirror_link
from isnapshot.metadata import EntryKind, FileStatus, capture_status, replicate_metadata
from isnapshot.paths import is_ignorable_name, join_path


logger = logging.getLogger(__name__)


@dataclass
class WalkOptions:
    """Per-run switches for the walker."""
    exclude_patterns: List[str] = field(default_factory=list)
    force_copy: bool = False
    count_bytes: bool = False

    def is_excluded(self, source: str) -> bool:
        """True if the absolute form of source matches an exclude pattern."""
        if not self.exclude_patterns:
            return False
        absolute = os.path.abspath(source)
        return any(fnmatchcase(absolute, pattern) for pattern in self.exclude_patterns)


@dataclass
class WalkStats:
    """Counters accumulated during one run."""
    total_bytes: int = 0  # Size of every regular file seen (count_bytes only)
    bytes_copied: int = 0  # Size of regular files copied (count_bytes only)
    files_copied: int = 0
    files_linked: int = 0
    directories: int = 0
    symlinks: int = 0
    special_files: int = 0
    excluded: int = 0


@dataclass
class WalkResult:
    """Outcome of walking one or more source roots."""
    success: bool
    stats: WalkStats
    failed_path: Optional[str] = None
    error: Optional[SnapshotError] = None


class TreeWalker:
    """
    Mirrors source trees into a snapshot directory.

    Each source path is reproduced at snapshot_root joined with the
    source path itself, so ``/home/me/src`` lands at
    ``<snapshot_root>/home/me/src``.
    """

    def __init__(
        self,
        snapshot_root: str,
        previous_root: Optional[str] = None,
        options: Optional[WalkOptions] = None,
        stats: Optional[WalkStats] = None,
    ):
        """
        Initialize the walker.

        Args:
            snapshot_root: Directory of the snapshot being built
            previous_root: Directory of the previous snapshot, if any
            options: Exclusion, force-copy and byte-count switches
            stats: Counters to update (a fresh set if omitted)
        """
        self.snapshot_root = os.fspath(snapshot_root)
        self.previous_root = os.fspath(previous_root) if previous_root is not None else None
        self.options = options or WalkOptions()
        self.stats = stats if stats is not None else WalkStats()
        self._failure: Optional[Tuple[str, SnapshotError]] = None

    def destination_for(self, source: str) -> str:
        """Path of source inside the new snapshot."""
        return join_path(self.snapshot_root, source)

    def previous_for(self, source: str) -> Optional[str]:
        """Path of source inside the previous snapshot, if there is one."""
        if self.previous_root is None:
            return None
        return join_path(self.previous_root, source)

    def walk(self, sources: Iterable[str]) -> WalkResult:
        """
        Process each source root in order, stopping at the first failure.

        Args:
            sources: Source paths to back up

        Returns:
            WalkResult with the counters and the first failure, if any
        """
        for source in sources:
            source = os.fspath(source)
            if not self.options.is_excluded(source):
                parent = os.path.dirname(self.destination_for(source).rstrip(os.sep))
                try:
                    make_dirs(parent)
                except SnapshotError as e:
                    self._fail(source, e)
                    return self._result(False)
            if not self.process(source):
                return self._result(False)
        return self._result(True)

    def process(self, source: str) -> bool:
        """
        Reproduce source, and everything below it, in the snapshot.

        Failures are logged here and reported as False so the caller can
        abandon its own remaining work.

        Args:
            source: Entry to process

        Returns:
            True if the entry and its whole subtree succeeded
        """
        try:
            return self._visit(source)
        except SnapshotError as e:
            self._fail(source, e)
            return False
        except OSError as e:
            self._fail(source, SnapshotError(f"{source}: {e.strerror}", source))
            return False

    def _fail(self, source: str, error: SnapshotError) -> None:
        logger.error(f"[{error.code.value}] {error}")
        if self._failure is None:
            self._failure = (error.path or source, error)

    def _result(self, success: bool) -> WalkResult:
        failed_path, error = self._failure if self._failure else (None, None)
        return WalkResult(
            success=success,
            stats=self.stats,
            failed_path=failed_path,
            error=error,
        )

    def _visit(self, source: str) -> bool:
        status = capture_status(source)

        if self.options.is_excluded(source):
            logger.debug(f"exclude {source}")
            self.stats.excluded += 1
            return True

        dest = self.destination_for(source)
        previous = self.previous_for(source)
        kind = status.kind

        if kind == EntryKind.DIRECTORY:
            return self._process_directory(source, dest, status)
        elif kind == EntryKind.REGULAR:
            self._process_regular(source, dest, previous, status)
        elif kind == EntryKind.SYMLINK:
            self._process_symlink(source, dest, status)
        elif kind == EntryKind.FIFO:
            self._process_fifo(source, dest, status)
        elif kind in (EntryKind.CHAR_DEVICE, EntryKind.BLOCK_DEVICE, EntryKind.SOCKET):
            self._process_node(source, dest, status)
        else:
            raise UnrecognizedTypeError(f"unrecognized file type: {source}", source)
        return True

    def _process_directory(self, source: str, dest: str, status: FileStatus) -> bool:
        # Owner rwx stays on while children are written; final bits come after.
        saved_umask = os.umask(0)
        try:
            make_dirs(dest, status.permissions | stat.S_IRWXU)
        finally:
            os.umask(saved_umask)

        try:
            names = os.listdir(source)
        except OSError as e:
            raise OpenError(f"could not open directory {source}: {e.strerror}", source) from e

        for name in names:
            if is_ignorable_name(name):
                continue
            if not self.process(join_path(source, name)):
                return False

        final_mode = status.permissions & ~saved_umask
        try:
            os.chmod(dest, final_mode)
        except OSError as e:
            raise CreationError(
                f"unable to change permissions of `{dest}': {e.strerror}", dest
            ) from e

        replicate_metadata(dest, status, mode=final_mode)
        self.stats.directories += 1
        return True

    def _needs_copy(self, status: FileStatus, previous: Optional[str]) -> bool:
        if previous is None or self.options.force_copy:
            return True
        try:
            previous_stat = os.stat(previous)
        except OSError:
            return True
        return status.mtime_ns != previous_stat.st_mtime_ns

    def _process_regular(
        self,
        source: str,
        dest: str,
        previous: Optional[str],
        status: FileStatus,
    ) -> None:
        count_bytes = self.options.count_bytes
        if count_bytes:
            self.stats.total_bytes += status.size

        if self._needs_copy(status, previous):
            copy_file(source, dest, status)
            replicate_metadata(dest, status)
            self.stats.files_copied += 1
            if count_bytes:
                self.stats.bytes_copied += status.size
        else:
            mirror_link(previous, dest)
            self.stats.files_linked += 1

    def _process_symlink(self, source: str, dest: str, status: FileStatus) -> None:
        try:
            os.symlink(status.link_target, dest)
        except OSError as e:
            raise CreationError(f"cannot create symlink `{dest}': {e.strerror}", dest) from e

        try:
            os.chown(dest, status.uid, status.gid, follow_symlinks=False)
        except OSError as e:
            raise MetadataError(
                f"unable to preserve ownership of `{dest}': {e.strerror}", dest
            ) from e

        logger.info(f"symlink {source}")
        self.stats.symlinks += 1

    def _set_permissions(self, dest: str, status: FileStatus) -> None:
        # mkfifo and mknod are subject to the umask
        try:
            os.chmod(dest, status.permissions)
        except OSError as e:
            error = MetadataError(
                f"could not set permissions on {dest}: {e.strerror}", dest
            )
            logger.error(f"[{error.code.value}] {error}")

    def _process_fifo(self, source: str, dest: str, status: FileStatus) -> None:
        try:
            os.mkfifo(dest, status.permissions)
        except OSError as e:
            raise CreationError(f"cannot create fifo `{dest}': {e.strerror}", dest) from e
        self._set_permissions(dest, status)
        logger.info(f"fifo {source}")
        self.stats.special_files += 1

    def _process_node(self, source: str, dest: str, status: FileStatus) -> None:
        try:
            os.mknod(dest, status.mode, status.rdev)
        except OSError as e:
            raise CreationError(f"unable to create node `{dest}': {e.strerror}", dest) from e
        self._set_permissions(dest, status)
        logger.info(f"node {source}")
        self.stats.special_files += 1
