"""Run modes resolved from the command line.

Exactly one mode is active per invocation. Each variant carries only
the fields its mode needs.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Union


@dataclass(frozen=True)
class BackupMode:
    """Archive ``source`` into a new artifact."""
    source: Path
    dry_run: bool = False

    @property
    def mutates_destination(self) -> bool:
        return not self.dry_run


@dataclass(frozen=True)
class ListMode:
    """Enumerate artifacts in the destination."""
    as_json: bool = False

    @property
    def mutates_destination(self) -> bool:
        return False


@dataclass(frozen=True)
class RestoreMode:
    """Extract ``artifact_name`` into ``target``."""
    artifact_name: str
    target: Path

    @property
    def mutates_destination(self) -> bool:
        return False


@dataclass(frozen=True)
class CleanupMode:
    """Delete all but the newest DAILY_KEEP artifacts."""

    @property
    def mutates_destination(self) -> bool:
        return True


Mode = Union[BackupMode, ListMode, RestoreMode, CleanupMode]
