"""Error taxonomy for dirbackup.

Every fatal failure in a run is raised as a subclass of BackupError.
The lifecycle runners translate these into a single log line and a
process exit code; nothing below them prints or exits.
"""

from typing import Optional


EXIT_SUCCESS = 0
EXIT_FAILURE = 1


class BackupError(Exception):
    """Base exception for backup errors."""

    kind = "BackupError"

    def __init__(
        self,
        message: str,
        path: Optional[object] = None,
        exit_code: int = EXIT_FAILURE,
    ):
        super().__init__(message)
        self.path = path
        self.exit_code = exit_code

    def describe(self) -> str:
        """Return the one-line form used in the log: '<Kind>: <message>'."""
        return f"{self.kind}: {self}"


class ConfigMissing(BackupError):
    """Raised when the configuration file or a required key is absent."""
    kind = "ConfigMissing"


class ConfigInvalid(BackupError):
    """Raised when the configuration is unreadable or has invalid values."""
    kind = "ConfigInvalid"


class AlreadyRunning(BackupError):
    """Raised when the lock marker is held by another invocation."""
    kind = "AlreadyRunning"


class SourceNotFound(BackupError):
    """Raised when a directory the run depends on does not exist."""
    kind = "SourceNotFound"


class PermissionDenied(BackupError):
    """Raised when the source can't be read or the lock can't be written."""
    kind = "PermissionDenied"


class ArchivalFailed(BackupError):
    """Raised when the archive could not be fully written."""
    kind = "ArchivalFailed"


class ChecksumMismatch(BackupError):
    """Recorded digest does not match the artifact.

    Runs log this condition instead of raising it; see backup.run_backup.
    """
    kind = "ChecksumMismatch"


class ArtifactNotFound(BackupError):
    """Raised when a named artifact is not in the destination directory."""
    kind = "ArtifactNotFound"


class ExtractionFailed(BackupError):
    """Raised when an artifact exists but cannot be extracted."""
    kind = "ExtractionFailed"


class UsageError(BackupError):
    """Raised when the command line does not resolve to exactly one mode."""
    kind = "UsageError"
