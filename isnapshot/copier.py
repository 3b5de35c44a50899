"""Streaming copy of regular file content."""

import logging
import os

from isnapshot.errors import CopyError, OpenError
from isnapshot.metadata import FileStatus


logger = logging.getLogger(__name__)

# Used when the filesystem does not report a preferred block size
DEFAULT_CHUNK_SIZE = 64 * 1024


def copy_file(source: str, dest: str, status: FileStatus) -> None:
    """
    Copy the bytes of source into dest.

    dest is created with the source's permission bits. Data moves in
    chunks of the source's preferred block size. A write that accepts
    fewer bytes than were read aborts the copy; whatever was written so
    far stays on disk.

    Args:
        source: Regular file to read
        dest: File to create or overwrite
        status: Captured status of source

    Raises:
        OpenError: If either file cannot be opened
        CopyError: If reading fails or a write is short
    """
    logger.info(f"copy {dest} ...")

    chunk_size = status.blksize if status.blksize > 0 else DEFAULT_CHUNK_SIZE

    try:
        in_fd = os.open(source, os.O_RDONLY)
    except OSError as e:
        raise OpenError(f"unable to open `{source}': {e.strerror}", source) from e

    try:
        try:
            out_fd = os.open(
                dest,
                os.O_WRONLY | os.O_CREAT | os.O_TRUNC,
                status.permissions,
            )
        except OSError as e:
            raise OpenError(f"unable to open `{dest}': {e.strerror}", dest) from e

        try:
            while True:
                try:
                    chunk = os.read(in_fd, chunk_size)
                except OSError as e:
                    raise CopyError(f"error reading {source}: {e.strerror}", source) from e
                if not chunk:
                    break
                try:
                    written = os.write(out_fd, chunk)
                except OSError as e:
                    raise CopyError(f"incomplete copy of file {source}: {e.strerror}", source) from e
                if written != len(chunk):
                    raise CopyError(f"incomplete copy of file {source}", source)
        finally:
            os.close(out_fd)
    finally:
        os.close(in_fd)
