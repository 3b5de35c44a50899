"""Logging configuration for isnapshot.

This module provides logging setup and utility functions for the
snapshot tool:
- narration of every operation on stdout in verbose mode
- warnings and errors on stderr, always
- an optional log file with automatic rotation and gzip compression
"""

import gzip
import logging
import os
import shutil
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Sequence, TextIO

from isnapshot.config import LoggingConfig, VALID_LOG_LEVELS
from isnapshot.errors import SnapshotError, get_error_guidance


# Logger name for the isnapshot package
LOGGER_NAME = "isnapshot"


class LoggingError(Exception):
    """Raised when logging setup fails."""
    pass


class _DebugInfoFilter(logging.Filter):
    """Only lets DEBUG and INFO records through."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno <= logging.INFO


class _ConsoleFormatter(logging.Formatter):
    """Formats records as ``error: message`` for the terminal."""

    def format(self, record: logging.LogRecord) -> str:
        return f"{record.levelname.lower()}: {record.getMessage()}"


class GzipRotatingFileHandler(RotatingFileHandler):
    """
    Rotating file handler that compresses rotated files with gzip.

    Rotated files are named with a .gz extension.
    """

    def rotation_filename(self, default_name: str) -> str:
        """
        Return the filename for a rotated log file.

        Args:
            default_name: The default rotated filename (e.g., "app.log.1")

        Returns:
            Filename with .gz extension (e.g., "app.log.1.gz")
        """
        return default_name + ".gz"

    def rotate(self, source: str, dest: str) -> None:
        """
        Compress source into dest and remove source.

        If compression fails the file is renamed without compression.
        """
        if not os.path.exists(source):
            return

        try:
            with open(source, 'rb') as f_in:
                with gzip.open(dest, 'wb') as f_out:
                    shutil.copyfileobj(f_in, f_out)
            os.remove(source)
        except OSError:
            if os.path.exists(source):
                fallback_dest = dest[:-3] if dest.endswith('.gz') else dest
                try:
                    os.rename(source, fallback_dest)
                except OSError:
                    pass  # Best effort - don't fail logging


def _ensure_log_directory(log_path: Path) -> None:
    """Ensure the parent directory for a log file exists."""
    log_dir = log_path.parent
    if not log_dir.exists():
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LoggingError(f"Failed to create log directory {log_dir}: {e}")


def _get_log_level(level_str: str) -> int:
    """Convert log level string to logging constant."""
    level_str = level_str.upper()
    if level_str not in VALID_LOG_LEVELS:
        raise LoggingError(
            f"Invalid log level '{level_str}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )
    return getattr(logging, level_str)


def setup_logging(
    config: Optional[LoggingConfig] = None,
    verbose: bool = False,
    stdout: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Configure logging for isnapshot.

    Sets up logging with:
    - A stdout handler for narration (DEBUG/INFO records), only when verbose
    - A stderr handler for warnings and errors
    - A rotating, gzip-compressing file handler when config.log_file is set

    Args:
        config: LoggingConfig with file settings (defaults if None)
        verbose: Narrate every operation on stdout
        stdout: Stream for narration (default sys.stdout)
        stderr: Stream for errors (default sys.stderr)

    Returns:
        Configured logger instance

    Raises:
        LoggingError: If log directory cannot be created or level is invalid
    """
    if config is None:
        config = LoggingConfig()

    file_level = _get_log_level(config.level)

    logger = logging.getLogger(LOGGER_NAME)

    # Clear any existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    # Allow all levels, handlers will filter
    logger.setLevel(logging.DEBUG)

    console_formatter = _ConsoleFormatter()

    if verbose:
        narration_handler = logging.StreamHandler(stdout or sys.stdout)
        narration_handler.setLevel(logging.INFO)
        narration_handler.addFilter(_DebugInfoFilter())
        narration_handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(narration_handler)

    error_handler = logging.StreamHandler(stderr or sys.stderr)
    error_handler.setLevel(logging.WARNING)
    error_handler.setFormatter(console_formatter)
    logger.addHandler(error_handler)

    if config.log_file is not None:
        log_file = Path(os.path.expanduser(str(config.log_file)))
        _ensure_log_directory(log_file)

        file_handler = GzipRotatingFileHandler(
            log_file,
            maxBytes=config.log_max_bytes,
            backupCount=config.log_backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(file_level)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        logger.addHandler(file_handler)

    return logger


def get_logger() -> logging.Logger:
    """
    Get the isnapshot logger instance.

    Returns:
        The isnapshot logger. If setup_logging hasn't been called,
        returns a logger with default configuration.
    """
    return logging.getLogger(LOGGER_NAME)


def log_snapshot_start(
    logger: logging.Logger,
    sources: Sequence,
    destination: Path,
) -> None:
    """
    Log the start of a snapshot run.

    Args:
        logger: Logger instance
        sources: Source paths being backed up
        destination: Snapshot root
    """
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    sources_str = ", ".join(str(s) for s in sources)
    logger.debug(f"Snapshot started at {timestamp}")
    logger.debug(f"Sources: {sources_str}")
    logger.debug(f"Destination: {destination}")


def _format_size(size_bytes: int) -> str:
    if size_bytes >= 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024 * 1024):.2f} GB"
    if size_bytes >= 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.2f} MB"
    if size_bytes >= 1024:
        return f"{size_bytes / 1024:.2f} KB"
    return f"{size_bytes} bytes"


def log_snapshot_completion(
    logger: logging.Logger,
    duration_seconds: float,
    files_copied: int,
    files_linked: int,
    bytes_copied: int,
    snapshot_path: Optional[Path] = None,
) -> None:
    """
    Log the completion of a snapshot run.

    Args:
        logger: Logger instance
        duration_seconds: How long the run took
        files_copied: Number of regular files copied
        files_linked: Number of regular files linked to the previous snapshot
        bytes_copied: Bytes copied (0 unless byte counting is on)
        snapshot_path: Path to the created snapshot
    """
    logger.debug("Snapshot completed successfully")
    logger.debug(f"Duration: {duration_seconds:.2f} seconds")
    logger.debug(f"Files copied: {files_copied}, linked: {files_linked}")
    logger.debug(f"Copied size: {_format_size(bytes_copied)}")
    if snapshot_path:
        logger.debug(f"Snapshot: {snapshot_path}")


def log_snapshot_error(
    logger: logging.Logger,
    error: Exception,
    context: Optional[str] = None,
) -> None:
    """
    Log a failed snapshot run, with guidance for known error kinds.

    A SnapshotError was already reported where it was raised, so its
    summary goes to DEBUG and stderr shows it only once.

    Args:
        logger: Logger instance
        error: The exception that ended the run
        context: Additional context about what was happening
    """
    level = logging.DEBUG if isinstance(error, SnapshotError) else logging.ERROR
    if context:
        logger.log(level, f"snapshot failed during {context}: {error}")
    else:
        logger.log(level, f"snapshot failed: {error}")

    if isinstance(error, SnapshotError):
        logger.debug(f"{error.code.value}: {get_error_guidance(error.code)}")
