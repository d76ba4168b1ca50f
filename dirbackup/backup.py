"""Run lifecycle orchestration for dirbackup.

This module sequences the components for each mode:

- Backup:  validate source -> lock -> archive -> checksum -> verify -> unlock
- Cleanup: lock -> rank artifacts -> delete expired pairs -> unlock
- List:    rank artifacts (lock-free)
- Restore: locate artifact -> verify checksum -> extract (lock-free)

All error cases are handled with proper cleanup to ensure:
- The lock is always released (normal return, error, or signal)
- No partial archive is left behind and checksum creation is skipped
  when archival did not complete
- Each failure is logged as one line naming its kind and exits non-zero

A checksum verification failure after a backup is logged at ERROR but
does not fail the run.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional
import logging

from dirbackup.archive import ArchiveEngine, ArchiveResult, validate_source
from dirbackup.artifacts import (
    Artifact,
    checksum_path_for,
    default_artifact_matcher,
    list_artifacts,
)
from dirbackup.checksum import ChecksumEngine
from dirbackup.config import Configuration, parse_config
from dirbackup.errors import (
    EXIT_FAILURE,
    EXIT_SUCCESS,
    ArchivalFailed,
    ArtifactNotFound,
    BackupError,
    ChecksumMismatch,
    ExtractionFailed,
    SourceNotFound,
    UsageError,
)
from dirbackup.lock import LockManager
from dirbackup.logger import (
    LoggingError,
    get_logger,
    log_failure,
    log_success,
    setup_console_logging,
    setup_logging,
)
from dirbackup.modes import BackupMode, CleanupMode, ListMode, Mode, RestoreMode
from dirbackup.patterns import ExcludeMatcher, PathMatcher
from dirbackup.retention import RetentionManager, RetentionResult
from dirbackup.signal_handler import SignalHandler


@dataclass
class RunContext:
    """
    Everything a run needs, built once at startup and handed to each step.
    """
    config: Configuration
    logger: logging.Logger
    clock: Callable[[], datetime] = datetime.now
    exclude_matcher: Optional[PathMatcher] = None
    artifact_matcher: Optional[PathMatcher] = None
    signal_handler: Optional[SignalHandler] = None

    def __post_init__(self):
        if self.exclude_matcher is None:
            self.exclude_matcher = ExcludeMatcher(self.config.exclude_patterns)
        if self.artifact_matcher is None:
            self.artifact_matcher = default_artifact_matcher()

    @property
    def destination(self) -> Path:
        return self.config.destination_path

    def archive_engine(self) -> ArchiveEngine:
        return ArchiveEngine(
            destination=self.destination,
            exclude_matcher=self.exclude_matcher,
            timeout_seconds=self.config.archive_timeout_seconds,
            clock=self.clock,
        )

    def retention_manager(self) -> RetentionManager:
        return RetentionManager(
            destination=self.destination,
            keep=self.config.daily_keep,
            matcher=self.artifact_matcher,
        )


@dataclass
class RunResult:
    """Result of one invocation."""
    success: bool
    exit_code: int
    mode: Optional[Mode] = None
    archive_result: Optional[ArchiveResult] = None
    checksum_verified: Optional[bool] = None
    retention_result: Optional[RetentionResult] = None
    artifacts: List[Artifact] = field(default_factory=list)
    restored_to: Optional[Path] = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None


def _verify_and_report(ctx: RunContext, checksum_path: Path) -> bool:
    """Verify a checksum record, logging a mismatch without raising."""
    if ChecksumEngine().verify(checksum_path):
        log_success(ctx.logger, "Checksum verified")
        return True
    mismatch = ChecksumMismatch(
        f"Checksum verification failed for {checksum_path}", path=checksum_path
    )
    log_failure(ctx.logger, mismatch)
    return False


def run_backup(ctx: RunContext, mode: BackupMode) -> RunResult:
    """
    Archive the source directory and write its checksum record.

    Raises:
        SourceNotFound, PermissionDenied: If the source can't be archived
        ArchivalFailed: If the archive or its checksum record can't be written
    """
    source = validate_source(mode.source)
    ctx.logger.info(f"Starting backup of {source} into {ctx.destination}")

    if not mode.dry_run:
        try:
            ctx.destination.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ArchivalFailed(
                f"Cannot create backup destination {ctx.destination}: {e.strerror or e}",
                path=ctx.destination,
            )

    archive_result = ctx.archive_engine().create(
        source,
        dry_run=mode.dry_run,
        signal_handler=ctx.signal_handler,
    )

    checksum_engine = ChecksumEngine()
    if mode.dry_run:
        checksum_engine.create(archive_result.artifact_path, dry_run=True)
        return RunResult(
            success=True,
            exit_code=EXIT_SUCCESS,
            mode=mode,
            archive_result=archive_result,
        )

    # Until its record exists the artifact is still in progress: an
    # interrupt removes it just like a partial archive
    if ctx.signal_handler is not None:
        ctx.signal_handler.set_partial_path(archive_result.artifact_path)
    try:
        record = checksum_engine.create(archive_result.artifact_path)
    except ArchivalFailed:
        try:
            archive_result.artifact_path.unlink()
        except OSError as e:
            ctx.logger.error(
                f"Could not remove unpaired backup {archive_result.artifact_path}: {e}"
            )
        raise
    finally:
        if ctx.signal_handler is not None:
            ctx.signal_handler.set_partial_path(None)

    verified = _verify_and_report(ctx, record.path)

    return RunResult(
        success=True,
        exit_code=EXIT_SUCCESS,
        mode=mode,
        archive_result=archive_result,
        checksum_verified=verified,
    )


def run_cleanup(ctx: RunContext, mode: CleanupMode) -> RunResult:
    """
    Delete all but the newest DAILY_KEEP artifacts with their checksums.

    Individual deletion failures are logged and do not fail the run.

    Raises:
        SourceNotFound: If the destination directory doesn't exist
    """
    if not ctx.destination.is_dir():
        raise SourceNotFound(
            f"Backup directory not found: {ctx.destination}", path=ctx.destination
        )

    ctx.logger.info(f"Starting cleanup of old backups in {ctx.destination}")
    result = ctx.retention_manager().apply_retention()

    if result.deleted or result.failed:
        if result.failed:
            ctx.logger.error(
                f"{len(result.failed)} old backup(s) could not be deleted"
            )
        log_success(
            ctx.logger,
            f"Cleanup complete. Kept {len(result.kept)} latest backups.",
        )

    return RunResult(
        success=True,
        exit_code=EXIT_SUCCESS,
        mode=mode,
        retention_result=result,
        artifacts=result.kept,
    )


def run_list(ctx: RunContext, mode: ListMode) -> RunResult:
    """Enumerate the artifacts in the destination, newest first."""
    artifacts = list_artifacts(ctx.destination, ctx.artifact_matcher)
    ctx.logger.debug(f"Found {len(artifacts)} backup(s) in {ctx.destination}")
    return RunResult(
        success=True,
        exit_code=EXIT_SUCCESS,
        mode=mode,
        artifacts=artifacts,
    )


def run_restore(ctx: RunContext, mode: RestoreMode) -> RunResult:
    """
    Extract a named artifact into the target directory.

    The artifact is located before the target directory is created, so
    a missing artifact leaves the filesystem untouched.

    Raises:
        UsageError: If the artifact name has a directory component
        ArtifactNotFound: If the artifact isn't in the destination
        ExtractionFailed: If the target can't be created or extraction fails
    """
    name = mode.artifact_name
    if not name or Path(name).name != name or name in (".", ".."):
        raise UsageError(f"Backup name must be a plain file name: {name!r}")

    artifact_path = ctx.destination / name
    if not artifact_path.is_file():
        raise ArtifactNotFound(f"Backup not found: {artifact_path}", path=artifact_path)

    checksum_path = checksum_path_for(artifact_path)
    verified = None
    if checksum_path.exists():
        verified = _verify_and_report(ctx, checksum_path)

    target = Path(mode.target)
    try:
        target.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ExtractionFailed(
            f"Cannot create restore directory {target}: {e.strerror or e}", path=target
        )

    ctx.logger.info(f"Restoring {name} into {target}")
    ctx.archive_engine().extract(artifact_path, target)
    log_success(ctx.logger, f"Restored {name} -> {target}")

    return RunResult(
        success=True,
        exit_code=EXIT_SUCCESS,
        mode=mode,
        checksum_verified=verified,
        restored_to=target,
    )


_RUNNERS = {
    BackupMode: run_backup,
    CleanupMode: run_cleanup,
    ListMode: run_list,
    RestoreMode: run_restore,
}


def dispatch(ctx: RunContext, mode: Mode) -> RunResult:
    """
    Run ``mode``, holding the lock for modes that mutate the destination.

    The lock is acquired through the LockManager context manager and a
    SignalHandler is registered for its duration, so the marker is
    removed on every exit path.

    Raises:
        BackupError: Any fatal failure of the mode
    """
    runner = _RUNNERS[type(mode)]

    if not mode.mutates_destination:
        return runner(ctx, mode)

    with LockManager(ctx.config.lock_path) as lock_manager:
        ctx.logger.debug(f"Lock acquired: {lock_manager.lock_path}")
        signal_handler = SignalHandler()
        signal_handler.register(lock_manager=lock_manager)
        ctx.signal_handler = signal_handler
        try:
            return runner(ctx, mode)
        finally:
            signal_handler.unregister()
            ctx.signal_handler = None


def _failure(mode: Optional[Mode], error: BackupError) -> RunResult:
    return RunResult(
        success=False,
        exit_code=error.exit_code,
        mode=mode,
        error_kind=error.kind,
        error_message=str(error),
    )


def run(
    mode: Mode,
    config_path: Optional[Path] = None,
    config: Optional[Configuration] = None,
    clock: Callable[[], datetime] = datetime.now,
    verbose: bool = False,
) -> RunResult:
    """
    Run a complete invocation for an already-resolved mode.

    This function orchestrates the run:
    1. Load configuration (if not provided)
    2. Set up logging to the log file and terminal
    3. Build the RunContext
    4. Dispatch to the mode, under the lock for Backup and Cleanup
    5. Translate any failure into one log line and exit code 1

    Args:
        mode: The resolved run mode
        config_path: Path to configuration file. If None, uses ./backup.config
        config: Pre-loaded Configuration. If provided, config_path is ignored.
        clock: Source of artifact timestamps
        verbose: Show DEBUG lines on the terminal

    Returns:
        RunResult with success status, exit code and mode-specific details
    """
    console_level = "DEBUG" if verbose else None
    logger = get_logger()
    if not logger.handlers:
        logger = setup_console_logging(console_level or "INFO")

    if config is None:
        try:
            config = parse_config(config_path)
        except BackupError as e:
            log_failure(logger, e)
            return _failure(mode, e)

    try:
        logger = setup_logging(config.logging, console_level=console_level)
    except LoggingError as e:
        logger = setup_console_logging(console_level or config.logging.level)
        logger.error(f"Logging to terminal only: {e}")

    ctx = RunContext(config=config, logger=logger, clock=clock)

    try:
        return dispatch(ctx, mode)
    except BackupError as e:
        log_failure(logger, e)
        return _failure(mode, e)
    except Exception as e:
        # Catch-all for unexpected errors
        log_failure(logger, e)
        return RunResult(
            success=False,
            exit_code=EXIT_FAILURE,
            mode=mode,
            error_kind=type(e).__name__,
            error_message=f"Unexpected error: {e}",
        )
