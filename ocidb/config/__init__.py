"""Global configuration management.

Config is loaded at module import time and available globally via:
    from ocidb.config import config
"""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from ocidb.constants import (
    DEFAULT_BUSY_TIMEOUT_MS,
    DEFAULT_CONFIG_FILE,
    DEFAULT_DB_FILE,
    DEFAULT_HOME_DIR,
    DEFAULT_LOG_LEVEL,
    ENV_CONFIG_PATH,
    ENV_DB_PATH,
    ENV_DOTENV_PATH,
)
# Project root (relative to this file)
_project_root = Path(__file__).parent.parent.parent

_ENV_REF_RE = re.compile(r"\$\{([^}]+)\}")


@dataclass
class DatabaseConfig:
    _configured_path: str
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS

    @property
    def path(self) -> str:
        """Get database path (lazy-loaded from env var for test compatibility).

        A leading ~ is expanded for both sources so callers can pass the value to sqlite as is.
        """
        env_path = os.getenv(ENV_DB_PATH)
        if env_path:
            return str(Path(env_path).expanduser())
        return self._configured_path


@dataclass
class LoggingConfig:
    level: str = DEFAULT_LOG_LEVEL


@dataclass
class Config:
    database: DatabaseConfig
    logging: LoggingConfig


# Default configuration values (single source of truth for user-configurable keys)
DEFAULT_CONFIG: dict[str, object] = {
    "database": {
        "path": f"{DEFAULT_HOME_DIR}/{DEFAULT_DB_FILE}",
        "busy_timeout_ms": DEFAULT_BUSY_TIMEOUT_MS,
    },
    "logging": {
        "level": DEFAULT_LOG_LEVEL,
    },
}


def default_config_path() -> Path:
    """Resolve config.yml location, honouring OCIDB_CONFIG_PATH."""
    env_path = os.getenv(ENV_CONFIG_PATH)
    if env_path:
        return Path(env_path).expanduser()
    return Path(DEFAULT_HOME_DIR).expanduser() / DEFAULT_CONFIG_FILE


def load_env(env_path: Optional[Path] = None) -> None:
    """Load .env into the process environment without overriding existing values."""
    if env_path is None:
        configured = os.getenv(ENV_DOTENV_PATH)
        env_path = Path(configured).expanduser() if configured else _project_root / ".env"
    if not env_path.is_absolute():
        env_path = (_project_root / env_path).resolve()
    load_dotenv(env_path)


def _expand_env(value: object) -> object:
    """Replace ${VAR} in string values; unknown variables are left as written."""
    if not isinstance(value, str):
        return value
    return _ENV_REF_RE.sub(lambda match: os.getenv(match.group(1), match.group(0)), value)


def _merge_sections(defaults: dict[str, object], user_config: dict[str, Any]) -> dict[str, Any]:
    """Overlay user sections on the defaults, one key at a time, expanding env refs."""
    merged: dict[str, Any] = {}
    for section, default_values in defaults.items():
        user_values = user_config.get(section, {})
        if not isinstance(user_values, dict):
            merged[section] = user_values
            continue
        values = dict(default_values)  # type: ignore[call-overload]
        values.update({key: _expand_env(value) for key, value in user_values.items()})
        merged[section] = values
    return merged


def _build_config(raw: dict[str, Any]) -> Config:
    """Build typed Config from raw dict with proper type conversion."""
    db_raw = raw["database"]
    logging_raw = raw["logging"]

    if not isinstance(db_raw, dict):
        raise ValueError("config: 'database' must be a mapping")
    if not isinstance(logging_raw, dict):
        raise ValueError("config: 'logging' must be a mapping")

    db_path = str(Path(str(db_raw["path"])).expanduser())
    return Config(
        database=DatabaseConfig(
            _configured_path=db_path,
            busy_timeout_ms=int(db_raw["busy_timeout_ms"]),
        ),
        logging=LoggingConfig(level=str(logging_raw["level"]).upper()),
    )


def load_config(config_path: Optional[Path] = None, env_path: Optional[Path] = None) -> Config:
    """Load configuration from .env and an optional YAML file.

    Args:
        config_path: YAML config location (defaults to OCIDB_CONFIG_PATH or ~/.ocidb/config.yml)
        env_path: .env location (defaults to OCIDB_ENV_PATH or the project root .env)

    Returns:
        Typed configuration with defaults filled in

    Raises:
        ValueError: If the YAML document is not a mapping of known sections
    """
    load_env(env_path)

    if config_path is None:
        config_path = default_config_path()

    user_config: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            raw_user_config = yaml.safe_load(f)
        if raw_user_config is not None and not isinstance(raw_user_config, dict):
            raise ValueError(f"config: {config_path} must contain a mapping")
        user_config = raw_user_config or {}

    return _build_config(_merge_sections(DEFAULT_CONFIG, user_config))


config = load_config()
