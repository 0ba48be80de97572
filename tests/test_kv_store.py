"""Tests for the local and syncing key/value backends."""

import json

from aishortcuts.core.kv_store import (
    LocalKeyValueStore,
    StoreChangeReason,
    SyncedKeyValueStore,
    read_sync_identity,
    read_with_fallback,
    write_through,
)

from conftest import sign_in, sign_out


def _write_durable(sync_dir, values):
    (sync_dir / "settings.json").write_text(json.dumps({"values": values}), encoding="utf-8")


def _read_durable(sync_dir):
    return json.loads((sync_dir / "settings.json").read_text(encoding="utf-8"))["values"]


def test_local_store_persists_across_instances(tmp_path):
    path = tmp_path / "settings.json"
    store = LocalKeyValueStore(path)
    store.set("endpoint_host", "example.com")
    store.set("endpoint_port", 8080)

    reloaded = LocalKeyValueStore(path)
    assert reloaded.get("endpoint_host") == "example.com"
    assert reloaded.get("endpoint_port") == 8080

    reloaded.remove("endpoint_host")
    reloaded.remove("missing")
    assert LocalKeyValueStore(path).snapshot() == {"endpoint_port": 8080}


def test_local_store_tolerates_corrupt_file(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")
    store = LocalKeyValueStore(path)
    assert store.get("anything") is None
    store.set("key", "value")
    assert LocalKeyValueStore(path).get("key") == "value"


def test_read_sync_identity(tmp_path):
    assert read_sync_identity(None) is None
    assert read_sync_identity(tmp_path / "missing") is None
    sign_in(tmp_path / "sync", "  abc  \n")
    assert read_sync_identity(tmp_path / "sync") == "abc"


def test_synced_store_writes_pending_changes_on_synchronize(sync_dir):
    store = SyncedKeyValueStore(sync_dir)
    store.set("default_model", "gpt-5")
    assert store.get("default_model") == "gpt-5"
    assert not (sync_dir / "settings.json").exists()

    assert store.synchronize() is True
    assert _read_durable(sync_dir) == {"default_model": "gpt-5"}

    store.remove("default_model")
    assert store.synchronize() is True
    assert _read_durable(sync_dir) == {}


def test_synced_store_unavailable_keeps_changes_in_memory(tmp_path):
    store = SyncedKeyValueStore(tmp_path / "not-signed-in")
    assert not store.is_available
    store.set("key", "value")
    assert store.synchronize() is False
    assert store.get("key") == "value"

    no_dir = SyncedKeyValueStore(None)
    assert no_dir.path is None
    assert no_dir.synchronize() is False


def test_initial_sync_adopts_durable_values(sync_dir):
    _write_durable(sync_dir, {"endpoint_host": "proxy.local"})
    store = SyncedKeyValueStore(sync_dir)
    events = []
    store.add_observer(events.append)

    assert store.synchronize() is True
    assert store.get("endpoint_host") == "proxy.local"
    assert [event.reason for event in events] == [StoreChangeReason.INITIAL_SYNC]
    assert events[0].keys == frozenset({"endpoint_host"})


def test_server_change_reported_after_first_sync(sync_dir):
    store = SyncedKeyValueStore(sync_dir)
    store.synchronize()
    events = []
    store.add_observer(events.append)

    _write_durable(sync_dir, {"tts_model": "tts-1-hd"})
    store.synchronize()
    assert store.get("tts_model") == "tts-1-hd"
    assert events[-1].reason == StoreChangeReason.SERVER_CHANGE
    assert events[-1].keys == frozenset({"tts_model"})

    _write_durable(sync_dir, {})
    store.synchronize()
    assert store.get("tts_model") is None
    assert events[-1].keys == frozenset({"tts_model"})


def test_pending_local_write_wins_over_durable_copy(sync_dir):
    store = SyncedKeyValueStore(sync_dir)
    store.synchronize()
    _write_durable(sync_dir, {"default_model": "gpt-4o", "image_model": "dall-e-3"})
    store.set("default_model", "gpt-5")

    store.synchronize()
    assert store.get("default_model") == "gpt-5"
    assert store.get("image_model") == "dall-e-3"
    assert _read_durable(sync_dir) == {"default_model": "gpt-5", "image_model": "dall-e-3"}


def test_quota_violation_is_reported_and_not_persisted(sync_dir):
    store = SyncedKeyValueStore(sync_dir, max_keys=2)
    events = []
    remove = store.add_observer(events.append)
    for index in range(3):
        store.set(f"key{index}", index)

    assert store.synchronize() is False
    assert events[-1].reason == StoreChangeReason.QUOTA_VIOLATION
    assert not (sync_dir / "settings.json").exists()
    assert store.get("key2") == 2

    remove()
    store.synchronize()
    assert len(events) == 1


def test_quota_by_size(sync_dir):
    store = SyncedKeyValueStore(sync_dir, quota_bytes=64)
    store.set("big", "x" * 100)
    assert store.synchronize() is False


def test_account_change_replaces_contents(sync_dir):
    _write_durable(sync_dir, {"endpoint_host": "a.example"})
    store = SyncedKeyValueStore(sync_dir)
    store.synchronize()
    events = []
    store.add_observer(events.append)

    sign_out(sync_dir)
    assert store.synchronize() is False
    assert store.get("endpoint_host") is None
    assert events[-1].reason == StoreChangeReason.ACCOUNT_CHANGE
    assert "endpoint_host" in events[-1].keys

    sign_in(sync_dir, "account-2")
    assert store.synchronize() is True
    assert events[-1].reason == StoreChangeReason.ACCOUNT_CHANGE
    assert store.get("endpoint_host") == "a.example"


def test_observer_failure_does_not_break_others(sync_dir):
    _write_durable(sync_dir, {"key": "value"})
    store = SyncedKeyValueStore(sync_dir)
    seen = []

    def broken(event):
        raise RuntimeError("boom")

    store.add_observer(broken)
    store.add_observer(seen.append)
    store.synchronize()
    assert len(seen) == 1


def test_fallback_prefers_earlier_tier(tmp_path):
    first = LocalKeyValueStore(tmp_path / "a.json")
    second = LocalKeyValueStore(tmp_path / "b.json")
    second.set("key", "local")
    assert read_with_fallback((first, second), "key") == "local"

    write_through((first, second), "key", "both")
    assert first.get("key") == "both"
    assert second.get("key") == "both"

    write_through((first, second), "key", None)
    assert read_with_fallback((first, second), "key") is None
