"""Runtime configuration for AI Shortcuts.

This module handles process-level configuration: where durable state
lives, which directory stands in for the syncing store, and the limits
applied to outbound calls and the model cache. User settings (endpoint,
model overrides, voice) live in the settings store, not here.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from aishortcuts.utils.log import get_logger


logger = get_logger()

CONFIG_FILE_NAME = "config.json"
DEFAULT_HOME_DIR_NAME = ".aishortcuts"
DEFAULT_REQUEST_TIMEOUT = 120.0
DEFAULT_MODELS_CACHE_TTL = 300.0

_ENV_HOME = "AISHORTCUTS_HOME"
_ENV_SYNC_DIR = "AISHORTCUTS_SYNC_DIR"
_ENV_REQUEST_TIMEOUT = "AISHORTCUTS_REQUEST_TIMEOUT"
_ENV_MODELS_TTL = "AISHORTCUTS_MODELS_TTL"
_ENV_LOG_LEVEL = "AISHORTCUTS_LOG_LEVEL"


def default_home_dir() -> Path:
    return Path.home() / DEFAULT_HOME_DIR_NAME


class RuntimeConfig(BaseModel):
    """Process-level configuration stored in ~/.aishortcuts/config.json"""

    home_dir: Path = Field(default_factory=default_home_dir)
    # Directory backing the syncing tiers. None means sync is unavailable.
    sync_dir: Optional[Path] = None
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    models_cache_ttl: float = DEFAULT_MODELS_CACHE_TTL
    log_level: str = "WARNING"
    file_logging: bool = False

    @field_validator("request_timeout", "models_cache_ttl")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return (value or "WARNING").strip().upper()

    @property
    def local_settings_path(self) -> Path:
        return self.home_dir / "settings.json"

    @property
    def local_credentials_path(self) -> Path:
        return self.home_dir / "credentials.json"

    @property
    def synced_settings_path(self) -> Optional[Path]:
        return self.sync_dir / "settings.json" if self.sync_dir else None

    @property
    def synced_credentials_path(self) -> Optional[Path]:
        return self.sync_dir / "credentials.json" if self.sync_dir else None


def _read_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.debug("[config] Runtime config not found; using defaults", extra={"path": str(path)})
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
        logger.warning(
            "Error loading runtime config: %s: %s",
            type(e).__name__,
            e,
            extra={"path": str(path)},
        )
        return {}
    if not isinstance(data, dict):
        logger.warning("[config] Runtime config root must be an object", extra={"path": str(path)})
        return {}
    return data


def _env_float(name: str) -> Optional[float]:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw)
    except ValueError:
        logger.warning("[config] Ignoring non-numeric %s=%r", name, raw)
        return None
    if value <= 0:
        logger.warning("[config] Ignoring non-positive %s=%r", name, raw)
        return None
    return value


def load_runtime_config(home_dir: Optional[Path] = None) -> RuntimeConfig:
    """Load runtime configuration from disk, then apply environment overrides."""
    env_home = os.environ.get(_ENV_HOME)
    if home_dir is None:
        home_dir = Path(env_home).expanduser() if env_home else default_home_dir()

    data = _read_config_file(home_dir / CONFIG_FILE_NAME)
    data["home_dir"] = home_dir

    env_sync = os.environ.get(_ENV_SYNC_DIR)
    if env_sync:
        data["sync_dir"] = Path(env_sync).expanduser()
    timeout = _env_float(_ENV_REQUEST_TIMEOUT)
    if timeout is not None:
        data["request_timeout"] = timeout
    ttl = _env_float(_ENV_MODELS_TTL)
    if ttl is not None:
        data["models_cache_ttl"] = ttl
    level = os.environ.get(_ENV_LOG_LEVEL)
    if level:
        data["log_level"] = level

    try:
        config = RuntimeConfig(**data)
    except (ValueError, TypeError) as e:
        logger.warning(
            "Invalid runtime config, falling back to defaults: %s: %s",
            type(e).__name__,
            e,
        )
        config = RuntimeConfig(home_dir=home_dir)

    logger.debug(
        "[config] Loaded runtime configuration",
        extra={
            "home_dir": str(config.home_dir),
            "sync_dir": str(config.sync_dir) if config.sync_dir else None,
            "request_timeout": config.request_timeout,
            "models_cache_ttl": config.models_cache_ttl,
        },
    )
    return config
