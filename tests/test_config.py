"""Test runtime configuration loading."""

import json

import pytest
from pydantic import ValidationError

from aishortcuts.core.config import (
    DEFAULT_MODELS_CACHE_TTL,
    DEFAULT_REQUEST_TIMEOUT,
    RuntimeConfig,
    load_runtime_config,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "AISHORTCUTS_HOME",
        "AISHORTCUTS_SYNC_DIR",
        "AISHORTCUTS_REQUEST_TIMEOUT",
        "AISHORTCUTS_MODELS_TTL",
        "AISHORTCUTS_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults(tmp_path):
    config = load_runtime_config(tmp_path)
    assert config.home_dir == tmp_path
    assert config.sync_dir is None
    assert config.request_timeout == DEFAULT_REQUEST_TIMEOUT == 120.0
    assert config.models_cache_ttl == DEFAULT_MODELS_CACHE_TTL == 300.0
    assert config.log_level == "WARNING"
    assert config.local_settings_path == tmp_path / "settings.json"
    assert config.synced_settings_path is None


def test_config_file_is_read(tmp_path):
    (tmp_path / "config.json").write_text(
        json.dumps({"sync_dir": str(tmp_path / "sync"), "models_cache_ttl": 30}),
        encoding="utf-8",
    )
    config = load_runtime_config(tmp_path)
    assert config.sync_dir == tmp_path / "sync"
    assert config.models_cache_ttl == 30
    assert config.synced_credentials_path == tmp_path / "sync" / "credentials.json"


def test_malformed_config_file_falls_back_to_defaults(tmp_path):
    (tmp_path / "config.json").write_text("{broken", encoding="utf-8")
    config = load_runtime_config(tmp_path)
    assert config.request_timeout == DEFAULT_REQUEST_TIMEOUT


def test_invalid_values_fall_back_to_defaults(tmp_path):
    (tmp_path / "config.json").write_text(json.dumps({"request_timeout": -5}), encoding="utf-8")
    config = load_runtime_config(tmp_path)
    assert config.request_timeout == DEFAULT_REQUEST_TIMEOUT
    assert config.home_dir == tmp_path


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("AISHORTCUTS_HOME", str(tmp_path))
    monkeypatch.setenv("AISHORTCUTS_SYNC_DIR", str(tmp_path / "cloud"))
    monkeypatch.setenv("AISHORTCUTS_REQUEST_TIMEOUT", "15")
    monkeypatch.setenv("AISHORTCUTS_MODELS_TTL", "not-a-number")
    monkeypatch.setenv("AISHORTCUTS_LOG_LEVEL", "debug")

    config = load_runtime_config()
    assert config.home_dir == tmp_path
    assert config.sync_dir == tmp_path / "cloud"
    assert config.request_timeout == 15.0
    assert config.models_cache_ttl == DEFAULT_MODELS_CACHE_TTL
    assert config.log_level == "DEBUG"


def test_runtime_config_rejects_non_positive_limits():
    with pytest.raises(ValidationError):
        RuntimeConfig(models_cache_ttl=0)
