"""Command-line interface for dirbackup.

Usage:
    backup <source_dir>
    backup --dry-run <source_dir>
    backup --list [--json]
    backup --restore <artifact_name> --to <dir>
    backup --cleanup

Exit code 0 on success or no-op, 1 on any validation, lock, config or
I/O failure.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from dirbackup import __version__
from dirbackup.backup import RunResult, run
from dirbackup.errors import EXIT_FAILURE, EXIT_SUCCESS, UsageError
from dirbackup.logger import log_failure, setup_console_logging
from dirbackup.modes import BackupMode, CleanupMode, ListMode, Mode, RestoreMode


USAGE = (
    "backup [-c CONFIG] [-v] [--dry-run] <source_dir> | --list [--json] | "
    "--restore <artifact_name> --to <dir> | --cleanup"
)


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises UsageError instead of exiting with 2."""

    def error(self, message: str) -> None:
        raise UsageError(message)


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = _ArgumentParser(
        prog='backup',
        usage=USAGE,
        description='Archive a directory into a compressed, checksummed backup'
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )
    parser.add_argument(
        '--config', '-c',
        type=Path,
        help='Path to config file (default: ./backup.config)',
        metavar='PATH'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Show debug output on the terminal'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Log what a backup would do without writing anything'
    )
    parser.add_argument(
        '--list',
        action='store_true',
        help='List backups in the destination'
    )
    parser.add_argument(
        '--json',
        action='store_true',
        help='With --list, output as JSON'
    )
    parser.add_argument(
        '--restore',
        metavar='ARTIFACT_NAME',
        help='Backup file to restore (requires --to)'
    )
    parser.add_argument(
        '--to',
        type=Path,
        metavar='DIR',
        help='Directory to restore into'
    )
    parser.add_argument(
        '--cleanup',
        action='store_true',
        help='Delete all but the newest DAILY_KEEP backups'
    )
    parser.add_argument(
        'source',
        nargs='*',
        help='Directory to back up'
    )
    return parser


def resolve_mode(args: argparse.Namespace) -> Tuple[Mode, List[str]]:
    """
    Turn parsed arguments into exactly one Mode.

    Returns:
        The mode and any positional tokens it does not use

    Raises:
        UsageError: If the arguments don't select exactly one valid mode
    """
    restoring = args.restore is not None
    selected = [
        flag for flag, on in (
            ('--list', args.list),
            ('--restore', restoring),
            ('--cleanup', args.cleanup),
        ) if on
    ]
    if len(selected) > 1:
        raise UsageError(f"Choose only one of {', '.join(selected)}")
    if args.to is not None and not restoring:
        raise UsageError("--to requires --restore")
    if args.json and not args.list:
        raise UsageError("--json requires --list")
    if args.dry_run and selected:
        raise UsageError(f"--dry-run cannot be combined with {selected[0]}")

    positionals = list(args.source)

    if restoring:
        if args.to is None:
            raise UsageError("--restore requires --to <dir>")
        return RestoreMode(artifact_name=args.restore, target=args.to), positionals
    if args.list:
        return ListMode(as_json=args.json), positionals
    if args.cleanup:
        return CleanupMode(), positionals

    if not positionals:
        raise UsageError(f"no source directory given. Usage: {USAGE}")
    return BackupMode(source=Path(positionals[0]), dry_run=args.dry_run), positionals[1:]


def parse_mode(argv: Optional[List[str]] = None) -> Tuple[argparse.Namespace, Mode, List[str]]:
    """
    Parse a command line into its arguments, mode and ignored tokens.

    Raises:
        UsageError: On unknown options or an invalid combination
    """
    parser = create_parser()
    args = parser.parse_intermixed_args(argv)
    mode, ignored = resolve_mode(args)
    return args, mode, ignored


def cmd_list(result: RunResult, as_json: bool) -> None:
    """Print the artifacts found by a list run."""
    artifacts = result.artifacts

    if as_json:
        output = []
        for artifact in artifacts:
            output.append({
                "name": artifact.name,
                "path": str(artifact.path),
                "size_bytes": artifact.size,
                "created": artifact.created.isoformat(),
            })
        print(json.dumps(output, indent=2))
        return

    if not artifacts:
        print("No backups found.")
        return

    print(f"{'Name':<34} {'Size':>10} {'Created':>18}")
    print("-" * 64)
    for artifact in artifacts:
        created = artifact.created.strftime('%Y-%m-%d %H:%M')
        print(f"{artifact.name:<34} {_format_size(artifact.size):>10} {created:>18}")
    print("-" * 64)
    print(f"Total: {len(artifacts)} backup(s)")


def _format_size(size_bytes: int) -> str:
    """Format size in bytes to human-readable string."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.1f} GB"


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    logger = setup_console_logging()

    try:
        args, mode, ignored = parse_mode(argv)
    except UsageError as e:
        log_failure(logger, e)
        print(f"usage: {USAGE}", file=sys.stderr)
        return EXIT_FAILURE

    if ignored:
        logger.info(f"Ignoring extra arguments: {' '.join(ignored)}")

    try:
        result = run(mode, config_path=args.config, verbose=args.verbose)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130  # Standard exit code for SIGINT

    if result.success and isinstance(mode, ListMode):
        cmd_list(result, mode.as_json)

    return EXIT_SUCCESS if result.success else result.exit_code


if __name__ == "__main__":
    sys.exit(main())
