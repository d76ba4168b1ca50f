"""Retention manager for dirbackup.

This module provides the RetentionManager class that keeps the newest
N artifacts in the destination and deletes the rest, each together with
its checksum record.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple
import logging

from dirbackup.artifacts import Artifact, list_artifacts
from dirbackup.patterns import PathMatcher


# Logger for retention operations
logger = logging.getLogger(__name__)


@dataclass
class RetentionResult:
    """Result of applying retention policy."""
    kept: List[Artifact] = field(default_factory=list)
    deleted: List[Artifact] = field(default_factory=list)
    failed: List[Tuple[Artifact, str]] = field(default_factory=list)
    freed_bytes: int = 0

    @property
    def nothing_to_delete(self) -> bool:
        return not self.deleted and not self.failed


class RetentionManager:
    """
    Keeps the ``keep`` most recent artifacts and deletes the others.

    Artifacts are ranked newest first by the timestamp in their name
    (ties broken by name). Deletions are independent: a failure is
    logged and the remaining expired artifacts are still processed.
    """

    def __init__(
        self,
        destination: Path,
        keep: int,
        matcher: Optional[PathMatcher] = None,
    ):
        """
        Initialize the retention manager.

        Args:
            destination: Path to the backup destination directory
            keep: Number of most recent artifacts to keep
            matcher: Selects artifact files by name
        """
        if keep < 0:
            raise ValueError(f"keep must be >= 0, got {keep}")
        self.destination = Path(destination)
        self.keep = keep
        self.matcher = matcher

    def partition(self, artifacts: List[Artifact]) -> Tuple[List[Artifact], List[Artifact]]:
        """Split a ranked artifact list into (kept, expired)."""
        return artifacts[:self.keep], artifacts[self.keep:]

    def apply_retention(self) -> RetentionResult:
        """
        Delete every artifact beyond the newest ``keep``.

        Returns:
            RetentionResult with kept, deleted and failed artifacts
        """
        artifacts = list_artifacts(self.destination, self.matcher)

        if not artifacts:
            logger.info("No backups found to clean up.")
            return RetentionResult()

        kept, expired = self.partition(artifacts)
        result = RetentionResult(kept=list(kept))

        if not expired:
            logger.info(f"Only {len(artifacts)} backups found. Nothing to delete.")
            return result

        for artifact in expired:
            logger.info(f"Deleting old backup: {artifact.name}")
            try:
                self._delete_pair(artifact)
            except OSError as e:
                reason = e.strerror or str(e)
                logger.error(f"Failed to delete old backup {artifact.path}: {reason}")
                result.failed.append((artifact, reason))
                continue
            result.deleted.append(artifact)
            result.freed_bytes += artifact.size

        return result

    def _delete_pair(self, artifact: Artifact) -> None:
        """
        Delete an artifact, then its checksum record.

        The artifact goes first so a failure never leaves an orphaned
        artifact without its record. A missing record is not an error.
        """
        try:
            artifact.path.unlink()
        except FileNotFoundError:
            pass

        try:
            artifact.checksum_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            # Artifact is gone; a leftover record is reported but not fatal
            logger.error(
                f"Deleted {artifact.name} but could not remove checksum "
                f"{artifact.checksum_path}: {e.strerror or e}"
            )
