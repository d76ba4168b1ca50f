"""Configuration management for dirbackup.

This module provides dataclasses for configuration and functions for
parsing the two supported configuration formats:

- the shell-style ``KEY=VALUE`` file (``backup.config``)
- TOML (``*.toml``), read with tomllib
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import os
import shlex
import tempfile
import tomllib

from dirbackup.errors import ConfigInvalid, ConfigMissing


# Default config file path (relative to the working directory)
DEFAULT_CONFIG_PATH = Path("backup.config")

DEFAULT_DAILY_KEEP = 7
DEFAULT_LOG_FILE = "backup.log"
DEFAULT_LOCK_FILE = Path(tempfile.gettempdir()) / "dirbackup.lock"

# Required keys in configuration
REQUIRED_KEYS = ["BACKUP_DESTINATION"]

VALID_LOG_LEVELS = {"DEBUG", "INFO", "ERROR"}


@dataclass(frozen=True)
class LoggingConfig:
    """Configuration for logging."""
    log_file: Path = field(default_factory=lambda: Path(DEFAULT_LOG_FILE))
    level: str = "INFO"  # "DEBUG", "INFO", "ERROR"
    log_max_size_mb: int = 10  # Maximum log file size in MB before rotation
    log_backup_count: int = 5  # Number of rotated log files to keep

    @property
    def log_max_bytes(self) -> int:
        """Return max size in bytes for use with RotatingFileHandler."""
        return self.log_max_size_mb * 1024 * 1024


@dataclass(frozen=True)
class Configuration:
    """Main configuration for dirbackup."""
    destination_path: Path
    daily_keep: int = DEFAULT_DAILY_KEEP
    exclude_patterns: Tuple[str, ...] = ()
    lock_path: Path = DEFAULT_LOCK_FILE
    archive_timeout_seconds: int = 0  # 0 = no deadline
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def log_path(self) -> Path:
        return self.logging.log_file


def _expand(value: str) -> Path:
    """Expand ``~`` and ``$VAR`` / ``${VAR}`` the way a sourcing shell would."""
    return Path(os.path.expandvars(os.path.expanduser(value)))


def split_patterns(value: str) -> List[str]:
    """Split a comma-separated glob list, dropping blank entries."""
    return [p.strip() for p in value.split(",") if p.strip()]


def _as_int(value: Any, key: str, minimum: int = 0) -> int:
    """Coerce a config value to an int no smaller than ``minimum``."""
    if isinstance(value, bool):
        raise ConfigInvalid(f"Key '{key}' has invalid type: expected integer, got bool")
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise ConfigInvalid(f"Key '{key}' must be an integer, got {value!r}")
    if not isinstance(value, int):
        raise ConfigInvalid(
            f"Key '{key}' has invalid type: expected integer, got {type(value).__name__}"
        )
    if value < minimum:
        raise ConfigInvalid(f"Key '{key}' must be >= {minimum}, got {value}")
    return value


def _as_str(value: Any, key: str) -> str:
    if not isinstance(value, str):
        raise ConfigInvalid(
            f"Key '{key}' has invalid type: expected string, got {type(value).__name__}"
        )
    return value


def _parse_patterns(value: Any) -> List[str]:
    if isinstance(value, str):
        return split_patterns(value)
    if isinstance(value, list):
        patterns = []
        for i, pattern in enumerate(value):
            patterns.append(_as_str(pattern, f"EXCLUDE_PATTERNS[{i}]").strip())
        return [p for p in patterns if p]
    raise ConfigInvalid(
        f"Key 'EXCLUDE_PATTERNS' has invalid type: expected list or string, "
        f"got {type(value).__name__}"
    )


def parse_shell_assignments(content: str) -> Dict[str, str]:
    """
    Parse ``KEY=VALUE`` lines as written in a sourced shell config.

    Quotes are honoured, ``#`` starts a comment and a leading ``export``
    is ignored. Later assignments override earlier ones.

    Raises:
        ConfigInvalid: If a line is not a valid assignment
    """
    values: Dict[str, str] = {}
    for lineno, line in enumerate(content.splitlines(), start=1):
        try:
            tokens = shlex.split(line, comments=True)
        except ValueError as e:
            raise ConfigInvalid(f"Invalid syntax on line {lineno}: {e}")
        if not tokens:
            continue
        if tokens[0] == "export":
            tokens = tokens[1:]
        if len(tokens) != 1 or "=" not in tokens[0]:
            raise ConfigInvalid(f"Invalid assignment on line {lineno}: {line.strip()!r}")
        key, _, value = tokens[0].partition("=")
        if not key.isidentifier():
            raise ConfigInvalid(f"Invalid key on line {lineno}: {key!r}")
        values[key] = value
    return values


def _parse_toml(content: str) -> Dict[str, Any]:
    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError as e:
        raise ConfigInvalid(f"Invalid TOML format: {e}")

    # Get main section (may be nested under [main] or at root)
    main_data = data.get("main", data)
    return {key.upper(): value for key, value in main_data.items()}


def build_configuration(values: Dict[str, Any]) -> Configuration:
    """
    Build a Configuration from upper-case keyed raw values.

    Raises:
        ConfigMissing: If a required key is missing
        ConfigInvalid: If a value has the wrong type or range
    """
    for key in REQUIRED_KEYS:
        if not values.get(key):
            raise ConfigMissing(f"Missing required configuration key: '{key}'")

    destination = _as_str(values["BACKUP_DESTINATION"], "BACKUP_DESTINATION")

    level = _as_str(values.get("LOG_LEVEL", "INFO"), "LOG_LEVEL").upper()
    if level not in VALID_LOG_LEVELS:
        raise ConfigInvalid(
            f"Invalid log level '{level}'. Must be one of: {', '.join(sorted(VALID_LOG_LEVELS))}"
        )

    logging_config = LoggingConfig(
        log_file=_expand(_as_str(values.get("LOG_FILE") or DEFAULT_LOG_FILE, "LOG_FILE")),
        level=level,
        log_max_size_mb=_as_int(values.get("LOG_MAX_SIZE_MB", 10), "LOG_MAX_SIZE_MB", minimum=1),
        log_backup_count=_as_int(values.get("LOG_BACKUP_COUNT", 5), "LOG_BACKUP_COUNT"),
    )

    lock_file = values.get("LOCK_FILE")
    return Configuration(
        destination_path=_expand(destination),
        daily_keep=_as_int(values.get("DAILY_KEEP", DEFAULT_DAILY_KEEP), "DAILY_KEEP"),
        exclude_patterns=tuple(_parse_patterns(values.get("EXCLUDE_PATTERNS", []))),
        lock_path=_expand(_as_str(lock_file, "LOCK_FILE")) if lock_file else DEFAULT_LOCK_FILE,
        archive_timeout_seconds=_as_int(values.get("ARCHIVE_TIMEOUT", 0), "ARCHIVE_TIMEOUT"),
        logging=logging_config,
    )


def parse_config_string(content: str, fmt: str = "shell") -> Configuration:
    """
    Parse configuration text into a Configuration object.

    Args:
        content: Raw configuration text
        fmt: "shell" for KEY=VALUE files, "toml" for TOML

    Returns:
        Configuration object

    Raises:
        ConfigMissing: If a required key is missing
        ConfigInvalid: If the text is malformed or a value is invalid
    """
    if fmt == "toml":
        values = _parse_toml(content)
    elif fmt == "shell":
        values = parse_shell_assignments(content)
    else:
        raise ValueError(f"Unknown configuration format: {fmt}")
    return build_configuration(values)


def parse_config(config_path: Optional[Path] = None) -> Configuration:
    """
    Parse a configuration file into a Configuration object.

    The format is chosen by suffix: ``.toml`` files are TOML, anything
    else is treated as a shell-style assignment file.

    Args:
        config_path: Path to config file. Defaults to ./backup.config

    Raises:
        ConfigMissing: If file doesn't exist or required key missing
        ConfigInvalid: If the file can't be read or a value is invalid
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
    config_path = Path(config_path)

    if not config_path.is_file():
        raise ConfigMissing(f"Configuration file not found: {config_path}", path=config_path)

    try:
        content = config_path.read_text(encoding="utf-8")
    except PermissionError:
        raise ConfigInvalid(
            f"Permission denied reading configuration file: {config_path}",
            path=config_path,
        )
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigInvalid(
            f"Error reading configuration file {config_path}: {e}",
            path=config_path,
        )

    fmt = "toml" if config_path.suffix == ".toml" else "shell"
    return parse_config_string(content, fmt)
