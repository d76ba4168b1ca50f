"""Backup artifact naming, discovery and ranking.

An artifact is one ``backup-YYYY-MM-DD-HHMM.tar.gz`` file in the
destination directory, paired with a ``<artifact>.sha256`` checksum
record. Artifacts are ranked newest first by the timestamp encoded in
their name, ties broken by name.
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from dirbackup.patterns import NameMatcher, PathMatcher


ARTIFACT_PREFIX = "backup-"
ARCHIVE_SUFFIX = ".tar.gz"
CHECKSUM_SUFFIX = ".sha256"

# Minute granularity keeps names sortable and unique under normal cadence
TIMESTAMP_FORMAT = "%Y-%m-%d-%H%M"

ARTIFACT_GLOB = f"{ARTIFACT_PREFIX}*{ARCHIVE_SUFFIX}"


@dataclass(frozen=True)
class Artifact:
    """A backup archive present in the destination directory."""
    name: str
    path: Path
    size: int
    created: datetime

    @property
    def checksum_path(self) -> Path:
        return checksum_path_for(self.path)


def artifact_name(timestamp: datetime) -> str:
    """Return the artifact file name for a creation timestamp."""
    return f"{ARTIFACT_PREFIX}{timestamp.strftime(TIMESTAMP_FORMAT)}{ARCHIVE_SUFFIX}"


def parse_artifact_timestamp(name: str) -> Optional[datetime]:
    """
    Parse the timestamp out of an artifact file name.

    Returns:
        Parsed datetime, or None if the name doesn't follow the format
    """
    if not (name.startswith(ARTIFACT_PREFIX) and name.endswith(ARCHIVE_SUFFIX)):
        return None
    stamp = name[len(ARTIFACT_PREFIX):-len(ARCHIVE_SUFFIX)]
    try:
        return datetime.strptime(stamp, TIMESTAMP_FORMAT)
    except ValueError:
        return None


def checksum_path_for(artifact_path: Path) -> Path:
    """Return the path of the checksum record paired with an artifact."""
    return artifact_path.with_name(artifact_path.name + CHECKSUM_SUFFIX)


def default_artifact_matcher() -> PathMatcher:
    return NameMatcher(ARTIFACT_GLOB)


def load_artifact(path: Path) -> Artifact:
    """Stat ``path`` and build its Artifact record."""
    stat = path.stat()
    created = parse_artifact_timestamp(path.name)
    if created is None:
        created = datetime.fromtimestamp(stat.st_mtime)
    return Artifact(name=path.name, path=path, size=stat.st_size, created=created)


def rank_artifacts(artifacts: List[Artifact]) -> List[Artifact]:
    """Order artifacts newest first; ties are broken by name, descending."""
    return sorted(artifacts, key=lambda a: (a.created, a.name), reverse=True)


def list_artifacts(
    destination: Path,
    matcher: Optional[PathMatcher] = None,
) -> List[Artifact]:
    """
    List all artifacts in the destination, newest first.

    Args:
        destination: Backup destination directory
        matcher: Selects artifact files by name. Defaults to backup-*.tar.gz

    Returns:
        Ranked list of artifacts; empty if the directory doesn't exist
    """
    if matcher is None:
        matcher = default_artifact_matcher()

    destination = Path(destination)
    if not destination.is_dir():
        return []

    artifacts = []
    for entry in destination.iterdir():
        if not matcher.matches(entry):
            continue
        if not entry.is_file():
            continue
        try:
            artifacts.append(load_artifact(entry))
        except OSError:
            # Vanished between listing and stat
            continue

    return rank_artifacts(artifacts)
