"""Command-line interface for isnapshot.

    isnapshot [OPTION]... SOURCE... DESTINATION

Creates DESTINATION/<timestamp>/ holding every SOURCE. Files unchanged
since the previous snapshot are symlinked into it instead of copied.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from isnapshot import __version__
from isnapshot.config import (
    Configuration,
    ConfigurationError,
    ValidationError,
    parse_config,
    DEFAULT_CONFIG_PATH,
)
from isnapshot.locator import DEFAULT_DATE_FORMAT
from isnapshot.logger import (
    LoggingError,
    setup_logging,
    log_snapshot_start,
    log_snapshot_completion,
    log_snapshot_error,
)
from isnapshot.snapshot import SnapshotEngine


EXIT_SUCCESS = 0
EXIT_FAILURE = 1  # Any entry failure, usage or configuration error
EXIT_INTERRUPTED = 130  # Standard exit code for SIGINT


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that exits with EXIT_FAILURE on bad usage."""

    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(EXIT_FAILURE, f"{self.prog}: error: {message}\n")


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = _ArgumentParser(
        prog='isnapshot',
        usage='%(prog)s [OPTION]... SOURCE... DESTINATION',
        description=(
            'Incremental snapshot backup. Changed files are copied, unchanged '
            'files are symlinked to the previous snapshot.'
        ),
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Show verbose information'
    )
    parser.add_argument(
        '--full', '-f',
        action='store_true',
        help='Perform full backup. Default is incremental.'
    )
    parser.add_argument(
        '--count-bytes', '-c',
        action='store_true',
        help='Count the number of bytes copied compared to total backup'
    )
    parser.add_argument(
        '--date-format', '-d',
        metavar='FORMAT',
        help=f'Set backup folder date format (default {DEFAULT_DATE_FORMAT.replace("%", "%%")})'
    )
    parser.add_argument(
        '--exclude', '-e',
        dest='exclude_patterns',
        action='append',
        default=[],
        metavar='PATTERN',
        help='Exclude files whose absolute path matches PATTERN (repeatable)'
    )
    parser.add_argument(
        '--config',
        type=Path,
        metavar='PATH',
        help='Path to config file (default: ~/.config/isnapshot/config.toml if present)'
    )
    parser.add_argument(
        '--log-file',
        type=Path,
        metavar='PATH',
        help='Also write a rotating log to PATH'
    )
    parser.add_argument(
        'paths',
        nargs='+',
        metavar='PATH',
        help='One or more sources followed by the destination'
    )
    return parser


def load_configuration(args: argparse.Namespace) -> Configuration:
    """
    Build the effective configuration from the config file and arguments.

    An explicit --config file must exist; the default file is optional.
    Flags can only switch options on, --date-format replaces the file's
    format and --exclude patterns are added to the file's list.

    Raises:
        ConfigurationError: If the config file is missing or malformed
        ValidationError: If a config value has the wrong type
    """
    if args.config is not None:
        config = parse_config(args.config)
    else:
        config = parse_config(DEFAULT_CONFIG_PATH, required=False)

    snapshot = config.snapshot
    snapshot.verbose = snapshot.verbose or args.verbose
    snapshot.full = snapshot.full or args.full
    snapshot.count_bytes = snapshot.count_bytes or args.count_bytes
    if args.date_format is not None:
        snapshot.date_format = args.date_format
    snapshot.exclude_patterns = snapshot.exclude_patterns + list(args.exclude_patterns)

    if args.log_file is not None:
        config.logging.log_file = args.log_file

    return config


def run_snapshot(
    config: Configuration,
    sources: List[str],
    destination: str,
) -> int:
    """
    Take one snapshot and report the outcome.

    Returns:
        EXIT_SUCCESS or EXIT_FAILURE
    """
    logger = setup_logging(config.logging, verbose=config.snapshot.verbose)

    engine = SnapshotEngine(
        destination=destination,
        date_format=config.snapshot.date_format,
        exclude_patterns=config.snapshot.exclude_patterns,
        force_copy=config.snapshot.full,
        count_bytes=config.snapshot.count_bytes,
    )

    log_snapshot_start(logger, sources, engine.destination)
    result = engine.create_snapshot(sources)

    if not result.success:
        log_snapshot_error(
            logger,
            result.error or Exception(result.error_message or "Unknown error"),
        )
        return EXIT_FAILURE

    stats = result.stats
    if config.snapshot.count_bytes:
        print(f"Copied {stats.bytes_copied} of {stats.total_bytes} bytes total in backup.")

    log_snapshot_completion(
        logger,
        duration_seconds=result.duration_seconds,
        files_copied=stats.files_copied,
        files_linked=stats.files_linked,
        bytes_copied=stats.bytes_copied,
        snapshot_path=result.snapshot_path,
    )
    return EXIT_SUCCESS


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if len(args.paths) < 2:
        parser.error("not enough arguments")

    try:
        config = load_configuration(args)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except ValidationError as e:
        print(f"Validation error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    sources = [str(p) for p in args.paths[:-1]]
    destination = str(args.paths[-1])

    try:
        return run_snapshot(config, sources, destination)
    except LoggingError as e:
        print(f"Logging error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return EXIT_INTERRUPTED
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
