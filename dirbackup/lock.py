"""Lock management for dirbackup.

This module provides the LockManager class that prevents concurrent
backup and cleanup runs using a marker file at a fixed path. The marker
is created with O_CREAT | O_EXCL so the existence check and the creation
are a single filesystem operation, and it records the holder's PID.

The lock is advisory: it only serializes cooperating invocations.
"""

import os
from pathlib import Path
from typing import Optional

from dirbackup.config import DEFAULT_LOCK_FILE
from dirbackup.errors import (
    AlreadyRunning,
    BackupError,
    ConfigInvalid,
    PermissionDenied,
)


class LockManager:
    """
    Manages the exclusive lock marker for a run.

    Implements context manager protocol for safe lock handling: the
    marker is removed however the enclosing block exits.
    """

    DEFAULT_LOCK_PATH = DEFAULT_LOCK_FILE

    def __init__(self, lock_path: Optional[Path] = None):
        """
        Initialize LockManager.

        Args:
            lock_path: Path to the lock marker. Defaults to <tmp>/dirbackup.lock
        """
        self.lock_path = Path(lock_path) if lock_path is not None else self.DEFAULT_LOCK_PATH
        self._acquired = False

    @property
    def acquired(self) -> bool:
        return self._acquired

    def acquire(self) -> bool:
        """
        Create the lock marker, failing if it already exists.

        Returns True if lock acquired.

        Raises:
            AlreadyRunning: If the marker already exists
            PermissionDenied: If the lock directory isn't writable
            ConfigInvalid: If the lock path can't hold a file
        """
        if self._acquired:
            return True

        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise self._creation_error(e)

        try:
            fd = os.open(
                str(self.lock_path),
                os.O_WRONLY | os.O_CREAT | os.O_EXCL,
                0o644,
            )
        except FileExistsError:
            holder_pid = self.get_lock_holder_pid()
            if holder_pid:
                raise AlreadyRunning(
                    f"Lock file {self.lock_path} exists (held by process {holder_pid}); "
                    f"another run in progress",
                    path=self.lock_path,
                )
            raise AlreadyRunning(
                f"Lock file {self.lock_path} exists; another run in progress",
                path=self.lock_path,
            )
        except OSError as e:
            raise self._creation_error(e)

        self._acquired = True
        try:
            os.write(fd, str(os.getpid()).encode())
        except OSError:
            pass  # Best effort; the marker itself is the lock
        finally:
            os.close(fd)
        return True

    def _creation_error(self, error: OSError) -> BackupError:
        detail = error.strerror or str(error)
        if isinstance(error, PermissionError):
            return PermissionDenied(
                f"Cannot create lock file {self.lock_path}: {detail}",
                path=self.lock_path,
            )
        return ConfigInvalid(
            f"Cannot create lock file {self.lock_path}: {detail}",
            path=self.lock_path,
        )

    def release(self) -> None:
        """Remove the lock marker if this manager created it. Idempotent."""
        if not self._acquired:
            return
        self._acquired = False
        try:
            self.lock_path.unlink()
        except FileNotFoundError:
            pass
        except OSError:
            pass  # Ignore errors during removal

    def is_locked(self) -> bool:
        """Check if the marker currently exists (held by any process)."""
        return self.lock_path.exists()

    def get_lock_holder_pid(self) -> Optional[int]:
        """Return PID recorded in the marker, or None."""
        try:
            content = self.lock_path.read_text().strip()
            if content:
                return int(content)
        except (OSError, ValueError):
            pass

        return None

    def __enter__(self) -> "LockManager":
        """Context manager entry - acquire lock."""
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        """Context manager exit - release lock."""
        self.release()
        return False  # Don't suppress exceptions
