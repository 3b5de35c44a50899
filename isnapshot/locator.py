"""Snapshot naming and previous-snapshot lookup.

Snapshot directories are named by formatting the local time with a
strftime pattern. The same pattern parses existing names back, so the
most recent snapshot is found by decoded time rather than by sorting
names.
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union
import logging
import os

from isnapshot.errors import LocatorOpenError, UsageError
from isnapshot.paths import is_ignorable_name


logger = logging.getLogger(__name__)

DEFAULT_DATE_FORMAT = "%m-%d-%y-%H-%M-%S"


class TimestampFormat:
    """A strftime/strptime pattern used to name and recognise snapshots."""

    def __init__(self, pattern: str = DEFAULT_DATE_FORMAT):
        self.pattern = pattern

    def __repr__(self) -> str:
        return f"TimestampFormat({self.pattern!r})"

    def format(self, moment: Optional[datetime] = None) -> str:
        """Render moment (default: now, local time) under the pattern."""
        if moment is None:
            moment = datetime.now()
        return moment.strftime(self.pattern)

    def parse(self, name: str) -> Optional[datetime]:
        """
        Decode a snapshot name.

        The whole name has to match; trailing characters make it invalid.

        Returns:
            The decoded datetime, or None if name does not match
        """
        try:
            return datetime.strptime(name, self.pattern)
        except ValueError:
            return None

    def check_round_trip(self, now: Optional[datetime] = None) -> datetime:
        """
        Verify that a freshly formatted name parses back.

        Args:
            now: Moment to test with (default: now)

        Returns:
            The decoded time

        Raises:
            UsageError: If the pattern cannot name snapshots
        """
        name = self.format(now)
        if not name:
            raise UsageError(f"date format {self.pattern!r} produces an empty name")
        if os.sep in name or is_ignorable_name(name):
            raise UsageError(
                f"date format {self.pattern!r} produces an invalid directory name {name!r}"
            )
        decoded = self.parse(name)
        if decoded is None:
            raise UsageError(
                f"date format {self.pattern!r} does not parse its own output {name!r}"
            )
        return decoded


@dataclass
class SnapshotInfo:
    """A snapshot directory and its decoded timestamp."""
    path: Path
    timestamp: datetime

    @property
    def name(self) -> str:
        return self.path.name


def list_snapshots(
    root: Union[str, Path],
    timestamp_format: TimestampFormat,
) -> List[SnapshotInfo]:
    """
    List the children of root whose names parse under timestamp_format.

    Names that do not parse are skipped silently.

    Args:
        root: Snapshot root directory
        timestamp_format: Pattern snapshot names were created with

    Returns:
        Snapshots ordered oldest first; equal timestamps ordered by name

    Raises:
        LocatorOpenError: If root cannot be read
    """
    root = Path(root)
    try:
        names = os.listdir(root)
    except OSError as e:
        raise LocatorOpenError(
            f"could not open root directory {root}: {e.strerror}", str(root)
        ) from e

    snapshots = []
    for name in names:
        if is_ignorable_name(name):
            continue
        timestamp = timestamp_format.parse(name)
        if timestamp is None:
            continue
        snapshots.append(SnapshotInfo(path=root / name, timestamp=timestamp))

    snapshots.sort(key=lambda info: (info.timestamp, info.name))
    return snapshots


def find_previous_snapshot(
    root: Union[str, Path],
    timestamp_format: TimestampFormat,
) -> Optional[Path]:
    """
    Find the most recent snapshot under root.

    When several names decode to the same time, the lexically greatest
    name is chosen so the result does not depend on directory order.

    Args:
        root: Snapshot root directory
        timestamp_format: Pattern snapshot names were created with

    Returns:
        Path of the latest snapshot, or None if no child name parses

    Raises:
        LocatorOpenError: If root cannot be read
    """
    snapshots = list_snapshots(root, timestamp_format)
    if not snapshots:
        logger.debug(f"No previous snapshot under {root}")
        return None
    return snapshots[-1].path
