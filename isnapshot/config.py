"""Configuration management for isnapshot.

This module provides dataclasses for configuration and functions for
parsing/formatting the optional TOML configuration file. Command-line
options are layered on top of the file by the CLI.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
import tomllib

from isnapshot.locator import DEFAULT_DATE_FORMAT


class ConfigurationError(Exception):
    """Raised when configuration file is missing or malformed."""
    pass


class ValidationError(Exception):
    """Raised when configuration values have invalid types."""
    pass


# Valid log levels
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class SnapshotConfig:
    """Options controlling how a snapshot is taken."""
    date_format: str = DEFAULT_DATE_FORMAT
    exclude_patterns: List[str] = field(default_factory=list)
    full: bool = False  # Copy every regular file instead of linking
    count_bytes: bool = False
    verbose: bool = False


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"  # Level for the log file
    log_file: Optional[Path] = None  # No log file unless configured
    log_max_size_mb: int = 10  # Maximum log file size in MB before rotation
    log_backup_count: int = 5  # Number of rotated log files to keep

    @property
    def log_max_bytes(self) -> int:
        """Return max size in bytes for use with RotatingFileHandler."""
        return self.log_max_size_mb * 1024 * 1024


@dataclass
class Configuration:
    """Main configuration for isnapshot."""
    snapshot: SnapshotConfig = field(default_factory=SnapshotConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


# Default config file path
DEFAULT_CONFIG_PATH = Path.home() / ".config/isnapshot/config.toml"


def _validate_type(value: Any, expected_type: type, key: str) -> None:
    """Validate that a value has the expected type."""
    if not isinstance(value, expected_type):
        raise ValidationError(
            f"Key '{key}' has invalid type: expected {expected_type.__name__}, "
            f"got {type(value).__name__}"
        )


def _parse_snapshot_config(data: Dict[str, Any]) -> SnapshotConfig:
    """Parse snapshot configuration from dict."""
    snapshot_data = data.get("snapshot", {})
    _validate_type(snapshot_data, dict, "snapshot")

    date_format = snapshot_data.get("date_format", DEFAULT_DATE_FORMAT)
    _validate_type(date_format, str, "snapshot.date_format")
    if not date_format:
        raise ValidationError("Key 'snapshot.date_format' must not be empty")

    exclude_patterns = snapshot_data.get("exclude_patterns", [])
    _validate_type(exclude_patterns, list, "snapshot.exclude_patterns")
    for i, pattern in enumerate(exclude_patterns):
        _validate_type(pattern, str, f"snapshot.exclude_patterns[{i}]")

    full = snapshot_data.get("full", False)
    _validate_type(full, bool, "snapshot.full")

    count_bytes = snapshot_data.get("count_bytes", False)
    _validate_type(count_bytes, bool, "snapshot.count_bytes")

    verbose = snapshot_data.get("verbose", False)
    _validate_type(verbose, bool, "snapshot.verbose")

    return SnapshotConfig(
        date_format=date_format,
        exclude_patterns=list(exclude_patterns),
        full=full,
        count_bytes=count_bytes,
        verbose=verbose,
    )


def _parse_logging_config(data: Dict[str, Any]) -> LoggingConfig:
    """Parse logging configuration from dict."""
    logging_data = data.get("logging", {})
    _validate_type(logging_data, dict, "logging")

    level = logging_data.get("level", "INFO")
    _validate_type(level, str, "logging.level")
    if level.upper() not in VALID_LOG_LEVELS:
        raise ValidationError(
            f"Key 'logging.level' must be one of {', '.join(VALID_LOG_LEVELS)}, got '{level}'"
        )

    log_file = logging_data.get("log_file")
    if log_file is not None:
        _validate_type(log_file, str, "logging.log_file")

    log_max_size_mb = logging_data.get("log_max_size_mb", 10)
    _validate_type(log_max_size_mb, int, "logging.log_max_size_mb")

    log_backup_count = logging_data.get("log_backup_count", 5)
    _validate_type(log_backup_count, int, "logging.log_backup_count")

    return LoggingConfig(
        level=level.upper(),
        log_file=Path(log_file).expanduser() if log_file else None,
        log_max_size_mb=log_max_size_mb,
        log_backup_count=log_backup_count,
    )


def parse_config_string(toml_content: str) -> Configuration:
    """
    Parse TOML string into Configuration object.

    Every key is optional; missing keys take their defaults.

    Args:
        toml_content: TOML formatted string

    Returns:
        Configuration object

    Raises:
        ConfigurationError: If the TOML cannot be parsed
        ValidationError: If value has wrong type
    """
    try:
        data = tomllib.loads(toml_content)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML format: {e}")

    return Configuration(
        snapshot=_parse_snapshot_config(data),
        logging=_parse_logging_config(data),
    )


def parse_config(
    config_path: Optional[Path] = None,
    required: bool = True,
) -> Configuration:
    """
    Parse TOML configuration file into Configuration object.

    Args:
        config_path: Path to config file. Defaults to ~/.config/isnapshot/config.toml
        required: If False, a missing file yields the default configuration

    Returns:
        Configuration object

    Raises:
        ConfigurationError: If file doesn't exist (and is required) or is malformed
        ValidationError: If value has wrong type
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if not config_path.exists():
        if not required:
            return Configuration()
        raise ConfigurationError(
            f"Configuration file not found: {config_path}"
        )

    try:
        content = config_path.read_text()
    except PermissionError:
        raise ConfigurationError(
            f"Permission denied reading configuration file: {config_path}"
        )
    except OSError as e:
        raise ConfigurationError(
            f"Error reading configuration file {config_path}: {e}"
        )

    return parse_config_string(content)


_TOML_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\b": "\\b",
    "\t": "\\t",
    "\n": "\\n",
    "\f": "\\f",
    "\r": "\\r",
}


def _escape_toml_string(s: str) -> str:
    """Escape a string for TOML basic string format."""
    out = []
    for ch in s:
        if ch in _TOML_ESCAPES:
            out.append(_TOML_ESCAPES[ch])
        elif ch < " " or ch == "\x7f":
            # Other control characters are not allowed unescaped
            out.append(f"\\u{ord(ch):04x}")
        else:
            out.append(ch)
    return "".join(out)


def _format_bool(value: bool) -> str:
    return "true" if value else "false"


def format_config(config: Configuration) -> str:
    """
    Format Configuration object back to TOML string.

    Args:
        config: Configuration object to format

    Returns:
        TOML formatted string
    """
    lines = []

    lines.append("[snapshot]")
    lines.append(f'date_format = "{_escape_toml_string(config.snapshot.date_format)}"')
    if config.snapshot.exclude_patterns:
        lines.append("exclude_patterns = [")
        for pattern in config.snapshot.exclude_patterns:
            lines.append(f'    "{_escape_toml_string(pattern)}",')
        lines.append("]")
    else:
        lines.append("exclude_patterns = []")
    lines.append(f"full = {_format_bool(config.snapshot.full)}")
    lines.append(f"count_bytes = {_format_bool(config.snapshot.count_bytes)}")
    lines.append(f"verbose = {_format_bool(config.snapshot.verbose)}")
    lines.append("")

    lines.append("[logging]")
    lines.append(f'level = "{_escape_toml_string(config.logging.level)}"')
    if config.logging.log_file is not None:
        lines.append(f'log_file = "{_escape_toml_string(str(config.logging.log_file))}"')
    lines.append(f"log_max_size_mb = {config.logging.log_max_size_mb}")
    lines.append(f"log_backup_count = {config.logging.log_backup_count}")

    return "\n".join(lines)
