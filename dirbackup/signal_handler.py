"""Termination-signal cleanup for backup and cleanup runs.

While a run holds the lock, SIGTERM and SIGINT are intercepted: the
partially written archive (if any) is removed and the lock marker is
released before the process exits with ``128 + signum``.
"""

import logging
import signal
import sys
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional

if TYPE_CHECKING:
    from dirbackup.lock import LockManager


HANDLED_SIGNALS = (signal.SIGTERM, signal.SIGINT)

logger = logging.getLogger(__name__)


def _in_main_thread() -> bool:
    return threading.current_thread() is threading.main_thread()


class SignalHandler:
    """
    Installs SIGTERM/SIGINT handlers for the duration of a locked run.

    Usage:
        handler = SignalHandler()
        handler.register(lock_manager=lock)
        handler.set_partial_path(path)
        # ... write archive ...
        handler.unregister()
    """

    def __init__(self):
        self._partial_path: Optional[Path] = None
        self._lock: Optional["LockManager"] = None
        self._previous: Dict[int, object] = {}
        self._active = False

    @property
    def is_registered(self) -> bool:
        return self._active

    def register(
        self,
        partial_path: Optional[Path] = None,
        lock_manager: Optional["LockManager"] = None,
    ) -> None:
        """
        Record what to clean up and install the handlers.

        Python only allows signal handlers in the main thread. Elsewhere
        the cleanup targets are still recorded, so cleanup() can be
        called directly, but no handler is installed.
        """
        self._partial_path = partial_path
        self._lock = lock_manager
        self._active = True

        if not _in_main_thread():
            logger.debug("Skipping signal handlers outside the main thread")
            return

        for signum in HANDLED_SIGNALS:
            self._previous[signum] = signal.signal(signum, self._handle_signal)

    def set_partial_path(self, path: Optional[Path]) -> None:
        """Point cleanup at the archive currently being written, or None."""
        self._partial_path = path

    def unregister(self) -> None:
        """Put back whatever handlers were installed before register()."""
        if not self._active:
            return

        if self._previous and _in_main_thread():
            for signum, previous in self._previous.items():
                signal.signal(signum, previous)

        self._previous = {}
        self._partial_path = None
        self._lock = None
        self._active = False

    def _handle_signal(self, signum: int, frame) -> None:
        logger.error(f"Interrupted: received {signal.Signals(signum).name}, aborting run")
        self.cleanup()
        sys.exit(128 + signum)

    def cleanup(self) -> bool:
        """
        Remove the partial archive and release the lock.

        Returns:
            True if anything was cleaned up
        """
        did_work = False

        partial = self._partial_path
        if partial is not None and partial.exists():
            try:
                partial.unlink()
            except OSError as e:
                logger.error(f"Could not remove partial archive {partial}: {e}")
            else:
                logger.info(f"Removed partial archive {partial}")
                did_work = True

        if self._lock is not None:
            self._lock.release()
            did_work = True

        return did_work
