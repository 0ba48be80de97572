"""Key/value backends behind the settings store.

Two backends share one interface: a local JSON document that is always
available, and a syncing store whose durable copy lives in a sync
directory. The syncing store keeps an in-memory view plus pending writes
and reconciles them on ``synchronize()``, reporting what it observed to
registered observers.

Precedence between the two is expressed once, in :func:`read_with_fallback`
and :func:`write_through`.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence, Set

from aishortcuts.utils.json_utils import read_json_object, write_json_atomic
from aishortcuts.utils.log import get_logger

logger = get_logger()

SYNC_IDENTITY_FILE = ".identity"
# Limits mirror the platform key/value sync service.
DEFAULT_SYNC_QUOTA_BYTES = 1024 * 1024
DEFAULT_SYNC_MAX_KEYS = 1024


def read_sync_identity(sync_dir: Optional[Path]) -> Optional[str]:
    """Return the account identity token of a sync directory, if signed in."""
    if sync_dir is None or not sync_dir.is_dir():
        return None
    try:
        token = (sync_dir / SYNC_IDENTITY_FILE).read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError):
        return None
    return token or None


class KeyValueStore(ABC):
    """Minimal key/value backend."""

    name: str = "store"

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the stored value or ``None`` when absent."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store a value."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove a key; removing an absent key is a no-op."""

    def contains(self, key: str) -> bool:
        return self.get(key) is not None

    def synchronize(self) -> bool:
        """Flush/reconcile with durable storage. Returns True on success."""
        return True


class LocalKeyValueStore(KeyValueStore):
    """JSON document on local disk, written through on every change."""

    name = "local"

    def __init__(self, path: Path) -> None:
        self.path = path
        self._values: Optional[Dict[str, Any]] = None

    def _load(self) -> Dict[str, Any]:
        if self._values is None:
            payload = read_json_object(self.path, component="kv_store")
            self._values = dict(payload or {})
        return self._values

    def _persist(self) -> None:
        try:
            write_json_atomic(self.path, self._load())
        except OSError as exc:
            logger.warning(
                "[kv_store] Failed to persist local settings: %s: %s",
                type(exc).__name__,
                exc,
                extra={"path": str(self.path)},
            )

    def get(self, key: str) -> Optional[Any]:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        self._load()[key] = value
        self._persist()

    def remove(self, key: str) -> None:
        values = self._load()
        if key in values:
            del values[key]
            self._persist()

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._load())


class StoreChangeReason(str, Enum):
    """Why the syncing store's contents changed outside this process."""

    SERVER_CHANGE = "server_change"
    INITIAL_SYNC = "initial_sync"
    QUOTA_VIOLATION = "quota_violation"
    ACCOUNT_CHANGE = "account_change"


@dataclass(frozen=True)
class StoreChangeEvent:
    """Notification emitted by :class:`SyncedKeyValueStore`."""

    reason: StoreChangeReason
    keys: FrozenSet[str] = field(default_factory=frozenset)


StoreObserver = Callable[[StoreChangeEvent], None]

_REMOVED = object()


class SyncedKeyValueStore(KeyValueStore):
    """Key/value store mirrored through a sync directory.

    Writes land in memory immediately and are marked pending; they reach
    the durable copy on the next ``synchronize()``. Values that changed in
    the durable copy since the last reconcile (and are not pending locally)
    are adopted and reported as external changes.
    """

    name = "synced"

    def __init__(
        self,
        sync_dir: Optional[Path],
        *,
        file_name: str = "settings.json",
        quota_bytes: int = DEFAULT_SYNC_QUOTA_BYTES,
        max_keys: int = DEFAULT_SYNC_MAX_KEYS,
    ) -> None:
        self.sync_dir = sync_dir
        self.file_name = file_name
        self.quota_bytes = quota_bytes
        self.max_keys = max_keys
        self._values: Dict[str, Any] = {}
        self._pending: Dict[str, Any] = {}
        self._last_synced: Dict[str, Any] = {}
        self._identity: Optional[str] = None
        self._has_synced = False
        self._observers: List[StoreObserver] = []

    @property
    def path(self) -> Optional[Path]:
        return self.sync_dir / self.file_name if self.sync_dir else None

    @property
    def is_available(self) -> bool:
        return read_sync_identity(self.sync_dir) is not None

    def add_observer(self, observer: StoreObserver) -> Callable[[], None]:
        """Register an observer; returns a callable that removes it."""
        self._observers.append(observer)

        def _remove() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _remove

    def _notify(self, event: StoreChangeEvent) -> None:
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception as exc:  # noqa: BLE001 - one observer must not break the others
                logger.warning(
                    "[kv_store] Change observer failed: %s: %s",
                    type(exc).__name__,
                    exc,
                    extra={"reason": event.reason.value},
                )

    def get(self, key: str) -> Optional[Any]:
        return self._values.get(key)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value
        self._pending[key] = value

    def remove(self, key: str) -> None:
        self._values.pop(key, None)
        self._pending[key] = _REMOVED

    def _read_durable(self) -> Optional[Dict[str, Any]]:
        path = self.path
        if path is None:
            return None
        payload = read_json_object(path, component="kv_store")
        if payload is None:
            return None
        values = payload.get("values", {})
        return dict(values) if isinstance(values, dict) else {}

    def _handle_account_change(self, identity: Optional[str]) -> None:
        previous_keys = set(self._values)
        self._identity = identity
        self._pending.clear()
        durable = self._read_durable() if identity else None
        self._values = dict(durable or {})
        self._last_synced = dict(self._values)
        self._has_synced = True
        logger.info(
            "[kv_store] Sync account changed",
            extra={"signed_in": identity is not None},
        )
        self._notify(
            StoreChangeEvent(
                StoreChangeReason.ACCOUNT_CHANGE,
                frozenset(previous_keys | set(self._values)),
            )
        )

    def _exceeds_quota(self, merged: Dict[str, Any]) -> bool:
        if len(merged) > self.max_keys:
            return True
        encoded = json.dumps({"values": merged}, ensure_ascii=False, sort_keys=True)
        return len(encoded.encode("utf-8")) > self.quota_bytes

    def synchronize(self) -> bool:
        """Reconcile with the durable copy. Returns False when nothing was persisted."""
        identity = read_sync_identity(self.sync_dir)
        if self._has_synced and identity != self._identity:
            self._handle_account_change(identity)
            return identity is not None
        if identity is None:
            logger.debug("[kv_store] Sync unavailable; keeping changes in memory")
            return False
        self._identity = identity

        durable = self._read_durable()
        if durable is None:
            # Unreadable durable copy: do not overwrite it blindly.
            return False

        external: Set[str] = set()
        for key in set(durable) | set(self._last_synced):
            if key in self._pending:
                continue
            if durable.get(key) != self._last_synced.get(key):
                external.add(key)
                if key in durable:
                    self._values[key] = durable[key]
                else:
                    self._values.pop(key, None)

        merged = dict(durable)
        for key, value in self._pending.items():
            if value is _REMOVED:
                merged.pop(key, None)
            else:
                merged[key] = value

        first_sync = not self._has_synced
        self._has_synced = True

        if self._exceeds_quota(merged):
            logger.warning(
                "[kv_store] Sync quota exceeded; pending changes kept in memory",
                extra={"keys": len(merged), "quota_bytes": self.quota_bytes},
            )
            self._last_synced = dict(durable)
            if external:
                self._notify_external(external, first_sync)
            self._notify(
                StoreChangeEvent(StoreChangeReason.QUOTA_VIOLATION, frozenset(self._pending))
            )
            return False

        if self._pending or merged != durable:
            path = self.path
            assert path is not None
            try:
                write_json_atomic(path, {"values": merged})
            except OSError as exc:
                logger.warning(
                    "[kv_store] Failed to write synced settings: %s: %s",
                    type(exc).__name__,
                    exc,
                    extra={"path": str(path)},
                )
                self._last_synced = dict(durable)
                if external:
                    self._notify_external(external, first_sync)
                return False

        self._pending.clear()
        self._last_synced = merged
        if external:
            self._notify_external(external, first_sync)
        return True

    def _notify_external(self, keys: Set[str], first_sync: bool) -> None:
        reason = StoreChangeReason.INITIAL_SYNC if first_sync else StoreChangeReason.SERVER_CHANGE
        logger.debug(
            "[kv_store] Adopted external changes",
            extra={"reason": reason.value, "keys": sorted(keys)},
        )
        self._notify(StoreChangeEvent(reason, frozenset(keys)))


def read_with_fallback(tiers: Sequence[KeyValueStore], key: str) -> Optional[Any]:
    """Return the value from the first tier that has *key* (earlier tiers win)."""
    for tier in tiers:
        value = tier.get(key)
        if value is not None:
            return value
    return None


def write_through(tiers: Sequence[KeyValueStore], key: str, value: Optional[Any]) -> None:
    """Write *value* to every tier, or remove *key* everywhere when ``None``."""
    for tier in tiers:
        if value is None:
            tier.remove(key)
        else:
            tier.set(key, value)
