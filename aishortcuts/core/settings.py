"""User settings backed by a syncing store with a local fallback.

Every write goes to both backends; every read prefers the syncing store
and falls back to the local one. Empty strings and non-positive integers
are "unset" and remove the key from both backends instead of being
stored. External changes reported by the syncing store are re-announced
to subscribers as :class:`SettingsChange` events.

All methods are expected to run on the coordinating thread (the event
loop thread for async callers); the store does no locking of its own.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from aishortcuts.core.kv_store import (
    KeyValueStore,
    StoreChangeEvent,
    StoreChangeReason,
    SyncedKeyValueStore,
    read_with_fallback,
    write_through,
)
from aishortcuts.utils.log import get_logger

logger = get_logger()


class SettingKey(str, Enum):
    """Names of persisted settings."""

    ENDPOINT_HOST = "endpoint_host"
    ENDPOINT_BASE_PATH = "endpoint_base_path"
    ENDPOINT_SCHEME = "endpoint_scheme"
    ENDPOINT_PORT = "endpoint_port"
    DEFAULT_MODEL = "default_model"
    IMAGE_MODEL = "image_model"
    TRANSCRIPTION_MODEL = "transcription_model"
    TTS_MODEL = "tts_model"
    DEFAULT_VOICE = "default_voice"


@dataclass(frozen=True)
class SettingSpec:
    key: SettingKey
    kind: type
    default: Any
    description: str


SETTING_SPECS: Dict[SettingKey, SettingSpec] = {
    spec.key: spec
    for spec in (
        SettingSpec(SettingKey.ENDPOINT_HOST, str, "", "Custom API host (empty for api.openai.com)"),
        SettingSpec(SettingKey.ENDPOINT_BASE_PATH, str, "", "Custom base path (empty for /v1)"),
        SettingSpec(SettingKey.ENDPOINT_SCHEME, str, "https", "URL scheme"),
        SettingSpec(SettingKey.ENDPOINT_PORT, int, 0, "Port (0 for the scheme default)"),
        SettingSpec(SettingKey.DEFAULT_MODEL, str, "", "Chat model override"),
        SettingSpec(SettingKey.IMAGE_MODEL, str, "", "Image generation model override"),
        SettingSpec(SettingKey.TRANSCRIPTION_MODEL, str, "", "Transcription model override"),
        SettingSpec(SettingKey.TTS_MODEL, str, "", "Text-to-speech model override"),
        SettingSpec(SettingKey.DEFAULT_VOICE, str, "alloy", "Default text-to-speech voice"),
    )
}

ENDPOINT_KEYS: FrozenSet[str] = frozenset(
    {
        SettingKey.ENDPOINT_HOST.value,
        SettingKey.ENDPOINT_BASE_PATH.value,
        SettingKey.ENDPOINT_SCHEME.value,
        SettingKey.ENDPOINT_PORT.value,
    }
)


class SettingsChangeReason(str, Enum):
    LOCAL_WRITE = "local_write"
    SERVER_CHANGE = "server_change"
    INITIAL_SYNC = "initial_sync"
    ACCOUNT_CHANGE = "account_change"


@dataclass(frozen=True)
class SettingsChange:
    """Announcement that one or more settings may have changed."""

    reason: SettingsChangeReason
    keys: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def touches_endpoint(self) -> bool:
        # Account changes can replace everything, so treat unknown scope as endpoint-wide.
        return not self.keys or bool(self.keys & ENDPOINT_KEYS)


SettingsObserver = Callable[[SettingsChange], None]

_EXTERNAL_REASONS = {
    StoreChangeReason.SERVER_CHANGE: SettingsChangeReason.SERVER_CHANGE,
    StoreChangeReason.INITIAL_SYNC: SettingsChangeReason.INITIAL_SYNC,
    StoreChangeReason.ACCOUNT_CHANGE: SettingsChangeReason.ACCOUNT_CHANGE,
}


class SettingsStore:
    """Settings storage across a syncing backend and a local backend."""

    def __init__(
        self,
        remote: KeyValueStore,
        local: KeyValueStore,
        *,
        now: Callable[[], datetime] = datetime.now,
        sync_on_init: bool = True,
    ) -> None:
        self.remote = remote
        self.local = local
        self._now = now
        self._subscribers: List[SettingsObserver] = []
        self.last_sync_date: Optional[datetime] = None
        self.sync_available = False

        if isinstance(remote, SyncedKeyValueStore):
            remote.add_observer(self._handle_store_change)
        self._check_sync_availability()
        if sync_on_init:
            self.remote.synchronize()

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, observer: SettingsObserver) -> Callable[[], None]:
        """Register for change announcements; returns an unsubscribe callable."""
        self._subscribers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._subscribers:
                self._subscribers.remove(observer)

        return _unsubscribe

    def _announce(self, change: SettingsChange) -> None:
        for observer in list(self._subscribers):
            try:
                observer(change)
            except Exception as exc:  # noqa: BLE001 - keep fan-out going for other subscribers
                logger.warning(
                    "[settings] Subscriber failed: %s: %s",
                    type(exc).__name__,
                    exc,
                    extra={"reason": change.reason.value},
                )

    def _check_sync_availability(self) -> None:
        available = getattr(self.remote, "is_available", True)
        self.sync_available = bool(available)

    def _handle_store_change(self, event: StoreChangeEvent) -> None:
        if event.reason == StoreChangeReason.QUOTA_VIOLATION:
            logger.warning(
                "[settings] Sync store quota exceeded",
                extra={"keys": sorted(event.keys)},
            )
            return
        if event.reason == StoreChangeReason.ACCOUNT_CHANGE:
            self._check_sync_availability()
        reason = _EXTERNAL_REASONS.get(event.reason)
        if reason is None:
            return
        self.last_sync_date = self._now()
        logger.debug(
            "[settings] Settings changed externally",
            extra={"reason": reason.value, "keys": sorted(event.keys)},
        )
        self._announce(SettingsChange(reason, event.keys))

    def synchronize(self) -> bool:
        """Force a reconcile with the syncing store."""
        self._check_sync_availability()
        ok = self.remote.synchronize()
        self.last_sync_date = self._now()
        return ok

    # ------------------------------------------------------------------
    # Generic typed access
    # ------------------------------------------------------------------

    def get(self, key: SettingKey) -> Any:
        spec = SETTING_SPECS[key]
        if spec.kind is int:
            return self._get_int(key.value, spec.default)
        return self._get_string(key.value, spec.default)

    def set(self, key: SettingKey, value: Any) -> None:
        spec = SETTING_SPECS[key]
        if spec.kind is int:
            self._set_int(key.value, _coerce_int(value))
        else:
            text = "" if value is None else str(value)
            self._set_string(key.value, text if text.strip() else None)
        self._announce(SettingsChange(SettingsChangeReason.LOCAL_WRITE, frozenset({key.value})))

    def unset(self, key: SettingKey) -> None:
        spec = SETTING_SPECS[key]
        self.set(key, 0 if spec.kind is int else "")

    def is_set(self, key: SettingKey) -> bool:
        return read_with_fallback((self.remote, self.local), key.value) is not None

    def as_dict(self) -> Dict[str, Any]:
        return {key.value: self.get(key) for key in SettingKey}

    # ------------------------------------------------------------------
    # Named accessors
    # ------------------------------------------------------------------

    @property
    def endpoint_host(self) -> str:
        return self.get(SettingKey.ENDPOINT_HOST)

    @endpoint_host.setter
    def endpoint_host(self, value: str) -> None:
        self.set(SettingKey.ENDPOINT_HOST, value)

    @property
    def endpoint_base_path(self) -> str:
        return self.get(SettingKey.ENDPOINT_BASE_PATH)

    @endpoint_base_path.setter
    def endpoint_base_path(self, value: str) -> None:
        self.set(SettingKey.ENDPOINT_BASE_PATH, value)

    @property
    def endpoint_scheme(self) -> str:
        return self.get(SettingKey.ENDPOINT_SCHEME)

    @endpoint_scheme.setter
    def endpoint_scheme(self, value: str) -> None:
        self.set(SettingKey.ENDPOINT_SCHEME, value)

    @property
    def endpoint_port(self) -> int:
        return self.get(SettingKey.ENDPOINT_PORT)

    @endpoint_port.setter
    def endpoint_port(self, value: int) -> None:
        self.set(SettingKey.ENDPOINT_PORT, value)

    @property
    def default_model(self) -> str:
        return self.get(SettingKey.DEFAULT_MODEL)

    @default_model.setter
    def default_model(self, value: str) -> None:
        self.set(SettingKey.DEFAULT_MODEL, value)

    @property
    def image_model(self) -> str:
        return self.get(SettingKey.IMAGE_MODEL)

    @image_model.setter
    def image_model(self, value: str) -> None:
        self.set(SettingKey.IMAGE_MODEL, value)

    @property
    def transcription_model(self) -> str:
        return self.get(SettingKey.TRANSCRIPTION_MODEL)

    @transcription_model.setter
    def transcription_model(self, value: str) -> None:
        self.set(SettingKey.TRANSCRIPTION_MODEL, value)

    @property
    def tts_model(self) -> str:
        return self.get(SettingKey.TTS_MODEL)

    @tts_model.setter
    def tts_model(self, value: str) -> None:
        self.set(SettingKey.TTS_MODEL, value)

    @property
    def default_voice(self) -> str:
        return self.get(SettingKey.DEFAULT_VOICE)

    @default_voice.setter
    def default_voice(self, value: str) -> None:
        self.set(SettingKey.DEFAULT_VOICE, value)

    # ------------------------------------------------------------------
    # Backend helpers
    # ------------------------------------------------------------------

    def _get_string(self, key: str, default: str) -> str:
        value = read_with_fallback((self.remote, self.local), key)
        if isinstance(value, str) and value:
            return value
        return default

    def _set_string(self, key: str, value: Optional[str]) -> None:
        write_through((self.remote, self.local), key, value)
        self.remote.synchronize()

    def _get_int(self, key: str, default: int) -> int:
        value = read_with_fallback((self.remote, self.local), key)
        parsed = _coerce_int(value)
        return parsed if parsed > 0 else default

    def _set_int(self, key: str, value: int) -> None:
        write_through((self.remote, self.local), key, value if value > 0 else None)
        self.remote.synchronize()


def _coerce_int(value: Any) -> int:
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return 0
