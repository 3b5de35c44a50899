"""Recursive directory creation that reports what it made."""

from typing import Callable, List, Optional
import logging
import os
import stat

from isnapshot.errors import CreationError


logger = logging.getLogger(__name__)


def _is_directory(path: str) -> bool:
    try:
        return stat.S_ISDIR(os.stat(path).st_mode)
    except OSError:
        return False


def make_dirs(
    path: str,
    mode: int = 0o755,
    on_create: Optional[Callable[[str], None]] = None,
) -> List[str]:
    """
    Create path and any missing ancestors, parents first.

    An existing directory is left alone, so calling this twice on the
    same path is harmless. Each directory actually created is logged and
    handed to on_create.

    Args:
        path: Directory to create
        mode: Mode passed to mkdir (subject to the process umask)
        on_create: Called with every newly created directory

    Returns:
        Directories created by this call, parents first

    Raises:
        CreationError: If an ancestor or path itself cannot be created
    """
    created: List[str] = []
    _make_dirs(os.fspath(path), mode, on_create, created)
    return created


def _make_dirs(
    path: str,
    mode: int,
    on_create: Optional[Callable[[str], None]],
    created: List[str],
) -> None:
    parent = os.path.dirname(path.rstrip(os.sep))
    if parent and parent != path and not os.path.exists(parent):
        _make_dirs(parent, mode, on_create, created)

    if _is_directory(path):
        return

    try:
        os.mkdir(path, mode)
    except FileExistsError:
        if _is_directory(path):
            return
        raise CreationError(f"could not create dir {path}: not a directory", path)
    except OSError as e:
        raise CreationError(f"could not create dir {path}: {e.strerror}", path) from e

    logger.info(f"mkdir {path}")
    created.append(path)
    if on_create is not None:
        on_create(path)
