"""Archive engine for dirbackup.

Builds one gzip-compressed tar archive of a source directory. Entries
are rooted at the source directory's base name, so extracting the
archive recreates ``<base_name>/...`` under the extraction target.

The archive is written to a hidden ``.<name>.partial`` file in the
destination and renamed into place only once complete, so a failed or
interrupted run never leaves a truncated artifact behind.
"""

import logging
import os
import tarfile
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from dirbackup.artifacts import Artifact, artifact_name, load_artifact
from dirbackup.errors import (
    ArchivalFailed,
    ExtractionFailed,
    PermissionDenied,
    SourceNotFound,
)
from dirbackup.logger import log_success
from dirbackup.patterns import ExcludeMatcher, PathMatcher


logger = logging.getLogger(__name__)


@dataclass
class ArchiveResult:
    """Result of an archive run (real or dry)."""
    artifact_name: str
    artifact_path: Path
    dry_run: bool
    artifact: Optional[Artifact] = None
    files_archived: int = 0
    files_excluded: int = 0
    duration_seconds: float = 0.0


def partial_path_for(artifact_path: Path) -> Path:
    """Return the hidden in-progress path used while writing an artifact."""
    return artifact_path.with_name(f".{artifact_path.name}.partial")


def validate_source(source: Path) -> Path:
    """
    Check that the source directory exists and is readable.

    Raises:
        SourceNotFound: If the source is missing or not a directory
        PermissionDenied: If the source can't be listed
    """
    source = Path(source)
    if not source.is_dir():
        raise SourceNotFound(f"Source folder not found: {source}", path=source)
    if not os.access(source, os.R_OK | os.X_OK):
        raise PermissionDenied(
            f"Cannot read source folder {source}: permission denied",
            path=source,
        )
    return source.resolve()


class ArchiveEngine:
    """
    Creates and extracts backup artifacts.

    Exclusions are delegated to a PathMatcher, which is asked about each
    entry's path relative to the source directory.
    """

    def __init__(
        self,
        destination: Path,
        exclude_matcher: Optional[PathMatcher] = None,
        timeout_seconds: int = 0,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize the archive engine.

        Args:
            destination: Directory artifacts are written to
            exclude_matcher: Selects paths to leave out of the archive
            timeout_seconds: Deadline for writing one archive; 0 disables it
            clock: Source of the artifact timestamp
        """
        self.destination = Path(destination)
        self.exclude_matcher = exclude_matcher if exclude_matcher is not None else ExcludeMatcher([])
        self.timeout_seconds = timeout_seconds
        self.clock = clock

    def plan(self) -> Path:
        """Return the artifact path a run started now would produce."""
        return self.destination / artifact_name(self.clock())

    def create(
        self,
        source: Path,
        dry_run: bool = False,
        signal_handler=None,
    ) -> ArchiveResult:
        """
        Archive ``source`` into a new artifact in the destination.

        Args:
            source: Directory to back up (already validated)
            dry_run: Log the intended action without touching the filesystem
            signal_handler: Told about the partial file so an interrupt
                can remove it

        Returns:
            ArchiveResult describing the artifact

        Raises:
            ArchivalFailed: On any error while writing the archive
        """
        source = Path(source)
        artifact_path = self.plan()
        name = artifact_path.name

        if dry_run:
            logger.info(f"DRY RUN: Would create tarball {artifact_path}")
            return ArchiveResult(artifact_name=name, artifact_path=artifact_path, dry_run=True)

        if artifact_path.exists():
            raise ArchivalFailed(
                f"Backup {artifact_path} already exists; refusing to overwrite",
                path=artifact_path,
            )

        logger.info(f"Creating backup {name}")
        start_time = time.monotonic()
        partial_path = partial_path_for(artifact_path)
        if signal_handler is not None:
            signal_handler.set_partial_path(partial_path)

        counts = {"archived": 0, "excluded": 0}
        deadline = start_time + self.timeout_seconds if self.timeout_seconds > 0 else None
        skip_name = self._destination_member_name(source)

        def member_filter(tarinfo: tarfile.TarInfo) -> Optional[tarfile.TarInfo]:
            if deadline is not None and time.monotonic() > deadline:
                raise ArchivalFailed(
                    f"Archiving {source} exceeded the {self.timeout_seconds}s deadline",
                    path=source,
                )
            if tarinfo.name == source.name:
                return tarinfo
            if skip_name is not None and tarinfo.name == skip_name:
                return None
            relative = tarinfo.name[len(source.name) + 1:]
            if self.exclude_matcher.matches(relative):
                counts["excluded"] += 1
                return None
            if tarinfo.isfile():
                counts["archived"] += 1
            return tarinfo

        try:
            with tarfile.open(partial_path, "w:gz") as tar:
                tar.add(source, arcname=source.name, recursive=True, filter=member_filter)
            if artifact_path.exists():
                raise ArchivalFailed(
                    f"Backup {artifact_path} appeared during archival; refusing to overwrite",
                    path=artifact_path,
                )
            os.replace(partial_path, artifact_path)
        except ArchivalFailed:
            self._discard(partial_path)
            raise
        except (OSError, tarfile.TarError) as e:
            self._discard(partial_path)
            detail = getattr(e, "strerror", None) or str(e)
            offending = getattr(e, "filename", None) or artifact_path
            raise ArchivalFailed(f"Failed to create {name}: {detail} ({offending})", path=offending)
        finally:
            if signal_handler is not None:
                signal_handler.set_partial_path(None)

        duration = time.monotonic() - start_time
        log_success(logger, f"Created backup {artifact_path}")

        return ArchiveResult(
            artifact_name=name,
            artifact_path=artifact_path,
            dry_run=False,
            artifact=load_artifact(artifact_path),
            files_archived=counts["archived"],
            files_excluded=counts["excluded"],
            duration_seconds=duration,
        )

    def extract(self, artifact_path: Path, target: Path) -> None:
        """
        Fully extract an artifact into ``target``.

        Uses tarfile's "data" filter, which rejects members that would
        land outside the target or carry unsafe metadata.

        Raises:
            ExtractionFailed: If the archive is unreadable or extraction fails
        """
        try:
            with tarfile.open(artifact_path, "r:gz") as tar:
                tar.extractall(path=target, filter="data")
        except (OSError, EOFError, tarfile.TarError) as e:
            detail = getattr(e, "strerror", None) or str(e)
            raise ExtractionFailed(
                f"Failed to extract {Path(artifact_path).name} into {target}: {detail}",
                path=artifact_path,
            )

    def _destination_member_name(self, source: Path) -> Optional[str]:
        """Archive name of the destination directory if it lies inside source."""
        try:
            relative = self.destination.resolve().relative_to(source.resolve())
        except (ValueError, OSError):
            return None
        if not relative.parts:
            return None
        return "/".join((source.name,) + relative.parts)

    @staticmethod
    def _discard(partial_path: Path) -> None:
        try:
            partial_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Could not remove partial archive {partial_path}: {e}")
