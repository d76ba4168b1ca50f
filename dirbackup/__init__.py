"""dirbackup - Compressed, checksummed directory backups with retention."""

__version__ = "0.1.0"

from dirbackup.errors import (
    EXIT_SUCCESS,
    EXIT_FAILURE,
    BackupError,
    ConfigMissing,
    ConfigInvalid,
    AlreadyRunning,
    SourceNotFound,
    PermissionDenied,
    ArchivalFailed,
    ChecksumMismatch,
    ArtifactNotFound,
    ExtractionFailed,
    UsageError,
)
from dirbackup.config import (
    Configuration,
    LoggingConfig,
    parse_config,
    parse_config_string,
)
from dirbackup.lock import LockManager
from dirbackup.patterns import ExcludeMatcher, NameMatcher
from dirbackup.artifacts import Artifact, list_artifacts
from dirbackup.archive import ArchiveEngine, ArchiveResult
from dirbackup.checksum import ChecksumEngine, ChecksumRecord
from dirbackup.retention import RetentionManager, RetentionResult
from dirbackup.modes import BackupMode, ListMode, RestoreMode, CleanupMode
from dirbackup.backup import RunContext, RunResult, dispatch, run

__all__ = [
    "EXIT_SUCCESS",
    "EXIT_FAILURE",
    "BackupError",
    "ConfigMissing",
    "ConfigInvalid",
    "AlreadyRunning",
    "SourceNotFound",
    "PermissionDenied",
    "ArchivalFailed",
    "ChecksumMismatch",
    "ArtifactNotFound",
    "ExtractionFailed",
    "UsageError",
    "Configuration",
    "LoggingConfig",
    "parse_config",
    "parse_config_string",
    "LockManager",
    "ExcludeMatcher",
    "NameMatcher",
    "Artifact",
    "list_artifacts",
    "ArchiveEngine",
    "ArchiveResult",
    "ChecksumEngine",
    "ChecksumRecord",
    "RetentionManager",
    "RetentionResult",
    "BackupMode",
    "ListMode",
    "RestoreMode",
    "CleanupMode",
    "RunContext",
    "RunResult",
    "dispatch",
    "run",
]
