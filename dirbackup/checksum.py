"""Checksum records for backup artifacts.

This module provides the ChecksumEngine class for creating and verifying
the SHA-256 checksum record that sits next to each artifact. Records
use the ``sha256sum`` line format (``<hex digest>  <file name>``) so
they can also be checked with ``sha256sum -c`` from the destination
directory.
"""

import hashlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dirbackup.artifacts import CHECKSUM_SUFFIX, checksum_path_for
from dirbackup.errors import ArchivalFailed


logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class ChecksumRecord:
    """Digest of one artifact, as stored in its checksum file."""
    digest: str
    artifact_name: str
    path: Path

    def to_line(self) -> str:
        return f"{self.digest}  {self.artifact_name}\n"


def parse_record_line(line: str, path: Path) -> Optional[ChecksumRecord]:
    """
    Parse a ``sha256sum`` output line.

    Accepts both text (``  ``) and binary (`` *``) separators, and a full
    path in place of the name as written by ``sha256sum <path>``.
    """
    line = line.strip()
    digest, sep, name = line.partition(" ")
    if not sep or len(digest) != 64:
        return None
    try:
        int(digest, 16)
    except ValueError:
        return None
    name = name.lstrip(" ").lstrip("*")
    if not name:
        return None
    return ChecksumRecord(digest=digest.lower(), artifact_name=Path(name).name, path=path)


class ChecksumEngine:
    """Creates and verifies SHA-256 checksum records for artifacts."""

    def compute_digest(self, file_path: Path) -> str:
        """
        Calculate SHA-256 checksum of a file.

        Returns:
            Hex-encoded SHA-256 checksum
        """
        sha256_hash = hashlib.sha256()

        with open(file_path, "rb") as f:
            # Read in chunks to handle large files
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                sha256_hash.update(chunk)

        return sha256_hash.hexdigest()

    def create(self, artifact_path: Path, dry_run: bool = False) -> Optional[ChecksumRecord]:
        """
        Write the checksum record for ``artifact_path``.

        In dry-run mode nothing is read or written; the intended action
        is logged and None is returned.

        Raises:
            ArchivalFailed: If the artifact can't be read or the record
                can't be written
        """
        checksum_path = checksum_path_for(Path(artifact_path))

        if dry_run:
            logger.info(f"DRY RUN: Would create checksum {checksum_path}")
            return None

        try:
            digest = self.compute_digest(artifact_path)
        except OSError as e:
            raise ArchivalFailed(
                f"Cannot read artifact for checksum {artifact_path}: {e.strerror or e}",
                path=artifact_path,
            )

        record = ChecksumRecord(
            digest=digest,
            artifact_name=Path(artifact_path).name,
            path=checksum_path,
        )

        tmp_path = checksum_path.with_name(f".{checksum_path.name}.partial")
        try:
            tmp_path.write_text(record.to_line(), encoding="utf-8")
            os.replace(tmp_path, checksum_path)
        except OSError as e:
            try:
                tmp_path.unlink()
            except OSError:
                pass
            raise ArchivalFailed(
                f"Cannot write checksum file {checksum_path}: {e.strerror or e}",
                path=checksum_path,
            )

        logger.info(f"Created checksum file {checksum_path}")
        return record

    def read_record(self, checksum_path: Path) -> Optional[ChecksumRecord]:
        """Load a checksum record, or None if it is missing or malformed."""
        try:
            content = Path(checksum_path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return None

        for line in content.splitlines():
            if line.strip():
                return parse_record_line(line, Path(checksum_path))
        return None

    def verify(self, checksum_path: Path) -> bool:
        """
        Recompute the referenced artifact's digest and compare.

        The artifact is the checksum file's name without ``.sha256``,
        in the same directory. A record naming a different file, a
        missing or malformed record, or an unreadable artifact counts
        as a mismatch.

        Returns:
            True if the recorded digest matches the artifact
        """
        checksum_path = Path(checksum_path)
        record = self.read_record(checksum_path)
        if record is None:
            logger.debug(f"Checksum record missing or malformed: {checksum_path}")
            return False

        if checksum_path.name.endswith(CHECKSUM_SUFFIX):
            artifact_path = checksum_path.with_name(
                checksum_path.name[: -len(CHECKSUM_SUFFIX)]
            )
            if record.artifact_name != artifact_path.name:
                logger.debug(
                    f"Checksum record {checksum_path} names {record.artifact_name}, "
                    f"not {artifact_path.name}"
                )
                return False
        else:
            artifact_path = checksum_path.parent / record.artifact_name
        try:
            current = self.compute_digest(artifact_path)
        except OSError as e:
            logger.debug(f"Cannot read {artifact_path} for verification: {e}")
            return False

        return current == record.digest
