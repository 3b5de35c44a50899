"""Symlinks pointing into the previous snapshot."""

import logging
import os
import stat

from isnapshot.errors import CreationError, StatError


logger = logging.getLogger(__name__)


def mirror_link(target: str, dest: str) -> str:
    """
    Create dest as a symlink to target, collapsing one level of links.

    An unchanged file in the previous snapshot is often itself a link to
    an older snapshot. In that case dest points at the older file
    directly, so link chains never grow past one hop.

    Args:
        target: File in the previous snapshot
        dest: Path of the new symlink

    Returns:
        The target string actually stored in dest

    Raises:
        StatError: If target cannot be examined or its link read
        CreationError: If the symlink cannot be created
    """
    try:
        st = os.lstat(target)
    except OSError as e:
        raise StatError(f"could not stat {target}: {e.strerror}", target) from e

    if stat.S_ISLNK(st.st_mode):
        try:
            target = os.readlink(target)
        except OSError as e:
            raise StatError(f"cannot read symlink `{target}': {e.strerror}", target) from e

    logger.info(f"mirror {target} ...")

    try:
        os.symlink(target, dest)
    except OSError as e:
        raise CreationError(f"cannot create symlink `{dest}': {e.strerror}", dest) from e

    return target
