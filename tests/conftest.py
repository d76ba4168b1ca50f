"""Pytest configuration and fixtures for dirbackup tests."""

from datetime import datetime, timedelta
from pathlib import Path

import pytest
from hypothesis import settings, Phase

from dirbackup.config import Configuration, LoggingConfig
from dirbackup.logger import close_logging

# Configure hypothesis to use fewer examples for faster test runs
# Disable shrinking phase to speed up tests further
settings.register_profile(
    "fast",
    max_examples=10,
    deadline=10000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate]
)
settings.register_profile("ci", max_examples=50, deadline=10000)
settings.register_profile("dev", max_examples=2, deadline=10000)

# Use the fast profile by default
settings.load_profile("fast")


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 9, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: int = 1) -> datetime:
        self.now = self.now + timedelta(minutes=minutes)
        return self.now


@pytest.fixture(autouse=True)
def cleanup_logger():
    """Detach dirbackup log handlers after each test."""
    yield
    close_logging()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    """A small source tree at <tmp>/data/app."""
    root = tmp_path / "data" / "app"
    (root / "src").mkdir(parents=True)
    (root / "logs").mkdir()
    (root / "node_modules" / "pkg").mkdir(parents=True)
    (root / "README.md").write_text("readme\n")
    (root / "src" / "main.py").write_text("print('hello')\n")
    (root / "src" / "main.pyc").write_bytes(b"\x00\x01compiled")
    (root / "logs" / "app.log").write_text("log line\n")
    (root / "node_modules" / "pkg" / "index.js").write_text("module.exports = 1;\n")
    return root


@pytest.fixture
def make_config(tmp_path: Path):
    """Factory for a Configuration rooted in the test's temp directory."""

    def _make(**overrides) -> Configuration:
        values = dict(
            destination_path=tmp_path / "backups",
            daily_keep=7,
            exclude_patterns=(),
            lock_path=tmp_path / "run" / "backup.lock",
            logging=LoggingConfig(log_file=tmp_path / "logs" / "backup.log"),
        )
        values.update(overrides)
        return Configuration(**values)

    return _make


@pytest.fixture
def config(make_config) -> Configuration:
    return make_config()
