"""Tests for the archive engine."""

import os
import tarfile
import time
from datetime import datetime
from pathlib import Path

import hypothesis.strategies as st
import pytest
from hypothesis import given

from dirbackup.archive import ArchiveEngine, partial_path_for, validate_source
from dirbackup.errors import (
    ArchivalFailed,
    ExtractionFailed,
    PermissionDenied,
    SourceNotFound,
)
from dirbackup.patterns import ExcludeMatcher


def _members(artifact_path: Path) -> set:
    with tarfile.open(artifact_path, "r:gz") as tar:
        return set(tar.getnames())


class SlowMatcher:
    """Exclude matcher that takes a long time to decide."""

    def __init__(self, delay: float):
        self.delay = delay

    def matches(self, path) -> bool:
        time.sleep(self.delay)
        return False


class TestValidateSource:
    """Tests for validate_source."""

    def test_missing(self, tmp_path):
        with pytest.raises(SourceNotFound):
            validate_source(tmp_path / "missing")

    def test_not_a_directory(self, tmp_path):
        path = tmp_path / "file.txt"
        path.write_text("x")
        with pytest.raises(SourceNotFound):
            validate_source(path)

    @pytest.mark.skipif(os.geteuid() == 0, reason="root can read anything")
    def test_unreadable(self, tmp_path):
        locked = tmp_path / "locked"
        locked.mkdir()
        locked.chmod(0)
        try:
            with pytest.raises(PermissionDenied):
                validate_source(locked)
        finally:
            locked.chmod(0o755)

    def test_returns_resolved(self, source_dir):
        assert validate_source(source_dir / ".." / "app") == source_dir.resolve()


class TestCreate:
    """Tests for ArchiveEngine.create."""

    def test_members_rooted_at_base_name(self, tmp_path, source_dir, clock):
        engine = ArchiveEngine(tmp_path / "out", clock=clock)
        (tmp_path / "out").mkdir()

        result = engine.create(source_dir)

        assert result.artifact_name == "backup-2024-01-01-0900.tar.gz"
        assert result.artifact_path.exists()
        assert result.artifact.size == result.artifact_path.stat().st_size
        names = _members(result.artifact_path)
        assert "app" in names
        assert "app/src/main.py" in names
        assert "app/node_modules/pkg/index.js" in names
        assert all(n == "app" or n.startswith("app/") for n in names)
        assert result.files_archived == 5

    def test_excludes(self, tmp_path, source_dir, clock):
        (tmp_path / "out").mkdir()
        engine = ArchiveEngine(
            tmp_path / "out",
            exclude_matcher=ExcludeMatcher(["*.log", "node_modules", "*.pyc"]),
            clock=clock,
        )

        result = engine.create(source_dir)

        names = _members(result.artifact_path)
        assert "app/src/main.py" in names
        assert "app/README.md" in names
        assert "app/logs" in names
        assert "app/logs/app.log" not in names
        assert not any("node_modules" in n for n in names)
        assert "app/src/main.pyc" not in names
        assert result.files_excluded == 3

    def test_root_never_excluded(self, tmp_path, source_dir, clock):
        (tmp_path / "out").mkdir()
        engine = ArchiveEngine(tmp_path / "out", exclude_matcher=ExcludeMatcher(["app"]), clock=clock)

        result = engine.create(source_dir)

        assert "app" in _members(result.artifact_path)

    def test_destination_inside_source_is_skipped(self, source_dir, clock):
        destination = source_dir / "backups"
        destination.mkdir()
        engine = ArchiveEngine(destination, clock=clock)

        result = engine.create(source_dir)

        names = _members(result.artifact_path)
        assert "app/src/main.py" in names
        assert not any(n.startswith("app/backups") for n in names)

    def test_dry_run_touches_nothing(self, tmp_path, source_dir, clock, capsys):
        from dirbackup.logger import setup_console_logging
        setup_console_logging()
        destination = tmp_path / "out"
        engine = ArchiveEngine(destination, clock=clock)

        result = engine.create(source_dir, dry_run=True)

        assert result.dry_run
        assert result.artifact is None
        assert result.artifact_path == destination / "backup-2024-01-01-0900.tar.gz"
        assert not destination.exists()
        assert f"DRY RUN: Would create tarball {result.artifact_path}" in capsys.readouterr().err

    def test_refuses_existing_artifact(self, tmp_path, source_dir, clock):
        destination = tmp_path / "out"
        destination.mkdir()
        existing = destination / "backup-2024-01-01-0900.tar.gz"
        existing.write_bytes(b"earlier run")

        with pytest.raises(ArchivalFailed, match="already exists"):
            ArchiveEngine(destination, clock=clock).create(source_dir)

        assert existing.read_bytes() == b"earlier run"

    def test_failure_leaves_no_partial(self, tmp_path, source_dir, clock):
        destination = tmp_path / "missing-dir"
        engine = ArchiveEngine(destination, clock=clock)

        with pytest.raises(ArchivalFailed):
            engine.create(source_dir)

        assert not destination.exists()

    def test_deadline_exceeded(self, tmp_path, source_dir, clock):
        destination = tmp_path / "out"
        destination.mkdir()
        engine = ArchiveEngine(
            destination,
            exclude_matcher=SlowMatcher(1.1),
            timeout_seconds=1,
            clock=clock,
        )

        with pytest.raises(ArchivalFailed, match="deadline"):
            engine.create(source_dir)

        assert list(destination.iterdir()) == []

    def test_partial_path_reported_to_signal_handler(self, tmp_path, source_dir, clock):
        seen = []

        class Recorder:
            def set_partial_path(self, path):
                seen.append(path)

        destination = tmp_path / "out"
        destination.mkdir()
        result = ArchiveEngine(destination, clock=clock).create(source_dir, signal_handler=Recorder())

        assert seen == [partial_path_for(result.artifact_path), None]
        assert not partial_path_for(result.artifact_path).exists()


class TestExtract:
    """Tests for ArchiveEngine.extract."""

    def test_roundtrip(self, tmp_path, source_dir, clock):
        destination = tmp_path / "out"
        destination.mkdir()
        engine = ArchiveEngine(destination, exclude_matcher=ExcludeMatcher(["*.log"]), clock=clock)
        result = engine.create(source_dir)
        target = tmp_path / "restore"
        target.mkdir()

        engine.extract(result.artifact_path, target)

        assert (target / "app" / "src" / "main.py").read_text() == "print('hello')\n"
        assert (target / "app" / "src" / "main.pyc").read_bytes() == b"\x00\x01compiled"
        assert (target / "app" / "logs").is_dir()
        assert not (target / "app" / "logs" / "app.log").exists()

    def test_corrupt_archive(self, tmp_path):
        bogus = tmp_path / "backup-2024-01-01-0900.tar.gz"
        bogus.write_bytes(b"this is not gzip")

        with pytest.raises(ExtractionFailed):
            ArchiveEngine(tmp_path).extract(bogus, tmp_path / "restore")


segments = st.sampled_from(["a", "b", "c.txt", "d.log", "e"])
relative_paths = st.lists(segments, min_size=1, max_size=3).map("/".join)
exclude_sets = st.lists(
    st.sampled_from(["a", "b/", "*.log", "c*", "a/b", "nomatch"]), max_size=3
)


def _build_tree(root: Path, paths) -> dict:
    """Write each path as a file, skipping paths that clash with earlier ones."""
    files = {}
    for rel in paths:
        parts = rel.split("/")
        prefixes = {"/".join(parts[:i]) for i in range(1, len(parts))}
        if rel in files or prefixes & files.keys():
            continue
        if any(other.startswith(rel + "/") for other in files):
            continue
        target = root / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(f"content of {rel}")
        files[rel] = f"content of {rel}"
    return files


def _excluded(rel: str, matcher: ExcludeMatcher) -> bool:
    parts = rel.split("/")
    return any(matcher.matches("/".join(parts[:i])) for i in range(1, len(parts) + 1))


class TestRoundTripProperty:
    """Archive then restore reproduces the source minus excluded paths."""

    @given(st.lists(relative_paths, min_size=1, max_size=6), exclude_sets)
    def test_restore_matches_filtered_source(self, tmp_path_factory, paths, patterns):
        base = tmp_path_factory.mktemp("roundtrip")
        source = base / "src" / "project"
        source.mkdir(parents=True)
        files = _build_tree(source, paths)
        destination = base / "out"
        destination.mkdir()
        matcher = ExcludeMatcher(patterns)
        engine = ArchiveEngine(destination, exclude_matcher=matcher, clock=lambda: datetime(2024, 1, 1, 9, 0))

        result = engine.create(source)
        target = base / "restore"
        target.mkdir()
        engine.extract(result.artifact_path, target)

        restored_root = target / "project"
        restored = {
            p.relative_to(restored_root).as_posix(): p.read_text()
            for p in restored_root.rglob("*")
            if p.is_file()
        }
        expected = {rel: body for rel, body in files.items() if not _excluded(rel, matcher)}
        assert restored == expected
