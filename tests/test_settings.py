"""Tests for the settings store."""

import json
from datetime import datetime

import pytest

from aishortcuts.core.kv_store import LocalKeyValueStore, SyncedKeyValueStore
from aishortcuts.core.settings import (
    SETTING_SPECS,
    SettingKey,
    SettingsChange,
    SettingsChangeReason,
    SettingsStore,
)

from conftest import sign_in

STRING_VALUES = {
    SettingKey.ENDPOINT_HOST: "openrouter.ai",
    SettingKey.ENDPOINT_BASE_PATH: "/api/v1",
    SettingKey.ENDPOINT_SCHEME: "http",
    SettingKey.DEFAULT_MODEL: "gpt-4o",
    SettingKey.IMAGE_MODEL: "dall-e-3",
    SettingKey.TRANSCRIPTION_MODEL: "gpt-4o-transcribe",
    SettingKey.TTS_MODEL: "tts-1-hd",
    SettingKey.DEFAULT_VOICE: "nova",
}


def test_defaults_when_nothing_stored(settings):
    assert settings.endpoint_host == ""
    assert settings.endpoint_base_path == ""
    assert settings.endpoint_scheme == "https"
    assert settings.endpoint_port == 0
    assert settings.default_voice == "alloy"
    assert settings.default_model == ""


@pytest.mark.parametrize("key", list(STRING_VALUES))
def test_string_write_then_read(settings, key):
    settings.set(key, STRING_VALUES[key])
    assert settings.get(key) == STRING_VALUES[key]
    assert settings.is_set(key)

    settings.set(key, "")
    assert settings.get(key) == SETTING_SPECS[key].default
    assert not settings.is_set(key)


def test_whitespace_only_string_is_unset(settings):
    settings.endpoint_host = "example.com"
    settings.endpoint_host = "   "
    assert settings.endpoint_host == ""
    assert not settings.is_set(SettingKey.ENDPOINT_HOST)


@pytest.mark.parametrize("sentinel", [0, -1])
def test_port_write_then_read(settings, sentinel):
    settings.endpoint_port = 8443
    assert settings.endpoint_port == 8443
    settings.endpoint_port = sentinel
    assert settings.endpoint_port == 0
    assert not settings.is_set(SettingKey.ENDPOINT_PORT)


def test_writes_reach_both_backends(settings, sync_dir, home_dir):
    settings.default_model = "gpt-5"
    durable = json.loads((sync_dir / "settings.json").read_text(encoding="utf-8"))
    local = json.loads((home_dir / "settings.json").read_text(encoding="utf-8"))
    assert durable["values"]["default_model"] == "gpt-5"
    assert local["default_model"] == "gpt-5"


def test_reads_fall_back_to_local_when_signed_out(tmp_path, home_dir):
    local_path = home_dir / "settings.json"
    LocalKeyValueStore(local_path).set("endpoint_host", "local.example")
    store = SettingsStore(SyncedKeyValueStore(tmp_path / "signed-out"), LocalKeyValueStore(local_path))
    assert not store.sync_available
    assert store.endpoint_host == "local.example"


def test_remote_value_wins_over_local(sync_dir, home_dir):
    local_path = home_dir / "settings.json"
    LocalKeyValueStore(local_path).set("default_voice", "echo")
    (sync_dir / "settings.json").write_text(
        json.dumps({"values": {"default_voice": "shimmer"}}), encoding="utf-8"
    )
    store = SettingsStore(SyncedKeyValueStore(sync_dir), LocalKeyValueStore(local_path))
    assert store.sync_available
    assert store.default_voice == "shimmer"


def test_local_writes_are_announced(settings):
    changes = []
    unsubscribe = settings.subscribe(changes.append)
    settings.tts_model = "tts-1"
    assert changes == [
        SettingsChange(SettingsChangeReason.LOCAL_WRITE, frozenset({"tts_model"}))
    ]
    assert not changes[0].touches_endpoint

    unsubscribe()
    settings.tts_model = "tts-1-hd"
    assert len(changes) == 1


def test_external_change_is_announced_with_sync_date(settings, sync_dir):
    stamp = datetime(2024, 5, 1, 12, 0, 0)
    settings._now = lambda: stamp
    changes = []
    settings.subscribe(changes.append)

    (sync_dir / "settings.json").write_text(
        json.dumps({"values": {"endpoint_host": "remote.example"}}), encoding="utf-8"
    )
    assert settings.synchronize() is True

    assert settings.endpoint_host == "remote.example"
    assert changes[-1].reason == SettingsChangeReason.SERVER_CHANGE
    assert changes[-1].touches_endpoint
    assert settings.last_sync_date == stamp


def test_account_change_rechecks_availability(tmp_path, home_dir):
    sync_dir = tmp_path / "later"
    store = SettingsStore(SyncedKeyValueStore(sync_dir), LocalKeyValueStore(home_dir / "s.json"))
    assert not store.sync_available

    sign_in(sync_dir)
    store.synchronize()
    assert store.sync_available


def test_failing_subscriber_does_not_block_others(settings):
    seen = []

    def broken(change):
        raise ValueError("nope")

    settings.subscribe(broken)
    settings.subscribe(seen.append)
    settings.default_voice = "onyx"
    assert len(seen) == 1


def test_as_dict_lists_every_setting(settings):
    settings.endpoint_port = 8080
    snapshot = settings.as_dict()
    assert set(snapshot) == {key.value for key in SettingKey}
    assert snapshot["endpoint_port"] == 8080
    assert snapshot["endpoint_scheme"] == "https"


def test_endpoint_change_scope():
    assert SettingsChange(SettingsChangeReason.LOCAL_WRITE, frozenset({"endpoint_port"})).touches_endpoint
    assert SettingsChange(SettingsChangeReason.ACCOUNT_CHANGE).touches_endpoint
    assert not SettingsChange(
        SettingsChangeReason.SERVER_CHANGE, frozenset({"default_voice"})
    ).touches_endpoint
