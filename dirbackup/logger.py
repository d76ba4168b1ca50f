"""Logging configuration for dirbackup.

Every state transition and terminal outcome of a run is written as one
``[<timestamp>] <LEVEL>: <message>`` line to both the log file and the
terminal. LEVEL is INFO, SUCCESS or ERROR; SUCCESS is a custom level
registered between INFO and WARNING. Rotated log files are gzipped.
"""

import gzip
import logging
import os
import shutil
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from dirbackup.config import LoggingConfig


# Logger name for the dirbackup package
LOGGER_NAME = "dirbackup"

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

LOG_FORMAT = "[%(asctime)s] %(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

DEFAULT_MAX_BYTES = 10 * 1024 * 1024


class LoggingError(Exception):
    """Raised when the log file can't be prepared."""


class GzipRotatingFileHandler(RotatingFileHandler):
    """
    RotatingFileHandler whose rotated files are gzip-compressed
    (``backup.log.1.gz``, ``backup.log.2.gz``, ...).
    """

    def rotation_filename(self, default_name: str) -> str:
        return f"{default_name}.gz"

    def rotate(self, source: str, dest: str) -> None:
        src = Path(source)
        if not src.exists():
            return

        try:
            with src.open("rb") as plain, gzip.open(dest, "wb") as packed:
                shutil.copyfileobj(plain, packed)
        except OSError:
            # Fall back to an uncompressed rotated file
            os.replace(src, dest.removesuffix(".gz"))
        else:
            src.unlink()


def _ensure_log_file(log_path: Path) -> None:
    """Create the log file and its parent directory if missing."""
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        log_path.touch(exist_ok=True)
    except OSError as e:
        raise LoggingError(f"Failed to create log file {log_path}: {e}")


def _build_formatter() -> logging.Formatter:
    return logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)


def close_logging() -> None:
    """Flush and detach all handlers so log files are released."""
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def setup_console_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure terminal-only logging.

    Used before the configuration (and so the log file path) is known.
    """
    close_logging()
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(getattr(logging, level.upper()))
    console_handler.setFormatter(_build_formatter())
    logger.addHandler(console_handler)
    return logger


def setup_logging(
    config: Optional[LoggingConfig] = None,
    console_level: Optional[str] = None,
) -> logging.Logger:
    """
    Configure logging for dirbackup.

    Sets up:
    - A rotating, gzip-compressing file handler appending to the log file
    - Console output for immediate feedback

    Args:
        config: LoggingConfig with file path, level and rotation settings
        console_level: Terminal level override, e.g. "DEBUG" for --verbose

    Returns:
        Configured logger instance

    Raises:
        LoggingError: If the log file cannot be created
    """
    if config is None:
        config = LoggingConfig()

    log_file = Path(os.path.expanduser(str(config.log_file)))
    _ensure_log_file(log_file)

    logger = setup_console_logging(console_level or config.level)
    log_level = getattr(logging, config.level.upper())

    file_handler = GzipRotatingFileHandler(
        log_file,
        maxBytes=config.log_max_bytes or DEFAULT_MAX_BYTES,
        backupCount=config.log_backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(_build_formatter())
    logger.addHandler(file_handler)

    return logger


def get_logger() -> logging.Logger:
    """Get the dirbackup logger instance."""
    return logging.getLogger(LOGGER_NAME)


def log_success(logger: logging.Logger, message: str) -> None:
    """Log ``message`` at the SUCCESS level."""
    logger.log(SUCCESS, message)


def log_failure(logger: logging.Logger, error: Exception) -> None:
    """
    Log a fatal failure as a single line naming its kind.

    BackupError subclasses supply their own '<Kind>: <message>' form;
    anything else is reported by exception class name only, without a
    traceback.
    """
    describe = getattr(error, "describe", None)
    if describe is not None:
        logger.error(describe())
    else:
        logger.error(f"{type(error).__name__}: {error}")
