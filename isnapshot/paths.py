"""Path helpers shared by the locator and the walker."""

import os


def strip_leading_separators(name: str) -> str:
    """Remove every leading path separator from name."""
    return name.lstrip(os.sep)


def join_path(root: str, name: str) -> str:
    """
    Join two path segments with exactly one separator between them.

    Leading separators of name are dropped, so an absolute source path
    such as ``/home/me/a`` nests under root instead of replacing it.

    Args:
        root: Leading segment, usually a snapshot directory
        name: Trailing segment, usually a source path

    Returns:
        The joined path
    """
    name = strip_leading_separators(name)
    if root.endswith(os.sep):
        return root + name
    return root + os.sep + name


def is_ignorable_name(name: str) -> bool:
    """True for the ``.`` and ``..`` directory entries."""
    return name in (os.curdir, os.pardir)


def is_within(path: str, parent: str) -> bool:
    """True if path is parent itself or lies somewhere beneath it."""
    path = os.path.normpath(os.path.abspath(path))
    parent = os.path.normpath(os.path.abspath(parent))
    if path == parent:
        return True
    return path.startswith(parent.rstrip(os.sep) + os.sep)
