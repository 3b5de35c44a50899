"""Snapshot engine for isnapshot.

This module provides the SnapshotEngine class that runs one backup:
it finds the previous snapshot, creates a new timestamped snapshot
directory and walks every source into it.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Union
import logging
import os
import time

from isnapshot.directories import make_dirs
from isnapshot.errors import (
    SnapshotError,
    SnapshotExistsError,
    UsageError,
)
from isnapshot.locator import (
    DEFAULT_DATE_FORMAT,
    SnapshotInfo,
    TimestampFormat,
    find_previous_snapshot,
    list_snapshots,
)
from isnapshot.paths import is_within, join_path
from isnapshot.walker import TreeWalker, WalkOptions, WalkStats


logger = logging.getLogger(__name__)


@dataclass
class SnapshotResult:
    """Result of a snapshot operation."""
    success: bool
    snapshot_path: Optional[Path]
    previous_snapshot: Optional[Path]
    stats: WalkStats = field(default_factory=WalkStats)
    duration_seconds: float = 0.0
    error_message: Optional[str] = None
    error: Optional[SnapshotError] = None


class SnapshotEngine:
    """
    Creates incremental snapshots using symlinks to the previous one.

    Snapshot directories are named with date_format (default
    MM-DD-YY-HH-MM-SS). Regular files whose modification time has not
    changed since the previous snapshot become symlinks into it.
    """

    # Mode for the snapshot directory and any missing ancestors
    SNAPSHOT_DIR_MODE = 0o755

    def __init__(
        self,
        destination: Union[str, Path],
        date_format: str = DEFAULT_DATE_FORMAT,
        exclude_patterns: Optional[List[str]] = None,
        force_copy: bool = False,
        count_bytes: bool = False,
    ):
        """
        Initialize the snapshot engine.

        Args:
            destination: Directory holding the snapshots. Made absolute so
                         links into older snapshots work from anywhere.
            date_format: strftime pattern naming and recognising snapshots
            exclude_patterns: Glob patterns matched against absolute source paths
            force_copy: Copy every regular file instead of linking
            count_bytes: Track total and copied bytes
        """
        self.destination = Path(os.path.abspath(destination))
        self.timestamp_format = TimestampFormat(date_format)
        self.options = WalkOptions(
            exclude_patterns=list(exclude_patterns or []),
            force_copy=force_copy,
            count_bytes=count_bytes,
        )

    def generate_snapshot_name(self, now: Optional[datetime] = None) -> str:
        """Format now (default: the current local time) as a snapshot name."""
        return self.timestamp_format.format(now)

    def find_previous_snapshot(self) -> Optional[Path]:
        """
        Find the most recent snapshot under the destination.

        Raises:
            LocatorOpenError: If the destination cannot be read
        """
        return find_previous_snapshot(self.destination, self.timestamp_format)

    def list_snapshots(self) -> List[SnapshotInfo]:
        """All snapshots under the destination, oldest first."""
        return list_snapshots(self.destination, self.timestamp_format)

    def validate_sources(self, sources: Sequence[Union[str, Path]]) -> None:
        """
        Reject requests that cannot produce a sane snapshot.

        Raises:
            UsageError: If no sources are given or the destination lies
                        inside a source directory without being excluded
        """
        if not sources:
            raise UsageError("no source given")
        if self.options.is_excluded(str(self.destination)):
            return
        for source in sources:
            if os.path.isdir(source) and is_within(self.destination, source):
                raise UsageError(
                    f"destination {self.destination} is inside source {source}",
                    os.fspath(source),
                )

    def create_snapshot(
        self,
        sources: Sequence[Union[str, Path]],
        now: Optional[datetime] = None,
    ) -> SnapshotResult:
        """
        Create a new incremental snapshot.

        Process:
        1. Validate the sources and the date format
        2. Create the destination if needed and find the previous snapshot
        3. Create the new timestamped snapshot directory (must not exist)
        4. Walk every source into it by absolute path, stopping at the
           first failure

        A failed run leaves the partial snapshot in place.

        Args:
            sources: Paths to back up, in order
            now: Time to name the snapshot after (default: current time)

        Returns:
            SnapshotResult with success status and counters
        """
        start_time = time.time()
        stats = WalkStats()
        snapshot_path: Optional[Path] = None
        previous: Optional[Path] = None

        try:
            self.validate_sources(sources)
            self.timestamp_format.check_round_trip(now)

            # A missing destination is a first run; an unreadable one is an error
            make_dirs(str(self.destination), self.SNAPSHOT_DIR_MODE)
            previous = self.find_previous_snapshot()

            snapshot_path = Path(
                join_path(str(self.destination), self.generate_snapshot_name(now))
            )
            logger.info(f"backing up to {snapshot_path}")

            if os.path.lexists(snapshot_path):
                raise SnapshotExistsError(
                    f"backup already exists for {snapshot_path}", str(snapshot_path)
                )

            make_dirs(str(snapshot_path), self.SNAPSHOT_DIR_MODE)

            if previous is not None:
                logger.info(f"using previous backup at {previous}")
        except SnapshotError as e:
            logger.error(f"[{e.code.value}] {e}")
            return SnapshotResult(
                success=False,
                snapshot_path=None,
                previous_snapshot=previous,
                stats=stats,
                duration_seconds=time.time() - start_time,
                error_message=str(e),
                error=e,
            )

        walker = TreeWalker(
            snapshot_root=str(snapshot_path),
            previous_root=str(previous) if previous is not None else None,
            options=self.options,
            stats=stats,
        )
        # Entries are keyed by absolute path; ".." components must not escape the snapshot
        walk_result = walker.walk([os.path.abspath(s) for s in sources])
        duration = time.time() - start_time

        if not walk_result.success:
            logger.debug(
                f"Partial counts: {stats.files_copied} copied, {stats.files_linked} linked, "
                f"{stats.bytes_copied} of {stats.total_bytes} bytes"
            )
            return SnapshotResult(
                success=False,
                snapshot_path=snapshot_path,
                previous_snapshot=previous,
                stats=stats,
                duration_seconds=duration,
                error_message=str(walk_result.error) if walk_result.error else "Unknown error",
                error=walk_result.error,
            )

        return SnapshotResult(
            success=True,
            snapshot_path=snapshot_path,
            previous_snapshot=previous,
            stats=stats,
            duration_seconds=duration,
        )
