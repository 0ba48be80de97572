"""Client resolution: endpoint, credential and the outbound client handle.

``ClientResolver`` turns the stored settings and API key into one
effective configuration, owns the provider client built from it, and
rebuilds that client (clearing the endpoint-specific model catalog)
whenever the credential or an endpoint setting changes.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Set

from aishortcuts.core.config import (
    DEFAULT_MODELS_CACHE_TTL,
    DEFAULT_REQUEST_TIMEOUT,
    RuntimeConfig,
    load_runtime_config,
)
from aishortcuts.core.credentials import CredentialStore, FileSecretTier, SyncedSecretTier
from aishortcuts.core.endpoint import EndpointConfig, resolve_endpoint
from aishortcuts.core.errors import (
    CredentialMissingError,
    FeatureNotSupportedError,
    FetchFailedError,
    NotConfiguredError,
)
from aishortcuts.core.kv_store import LocalKeyValueStore, SyncedKeyValueStore
from aishortcuts.core.model_catalog import ModelCatalogCache
from aishortcuts.core.model_filters import CAPABILITY_PROFILES, Capability
from aishortcuts.core.providers import ClientFactory, ProviderClient, create_openai_client
from aishortcuts.core.settings import SettingsChange, SettingsStore
from aishortcuts.utils.log import get_logger

logger = get_logger()

_UNSUPPORTED_REASONS = {
    Capability.IMAGE: (
        "Image generation requires the official OpenAI API. Custom endpoints like OpenRouter "
        "typically don't support the Images API. Please use the default OpenAI endpoint or "
        "check if your provider supports /v1/images/generations."
    ),
    Capability.SPEECH: (
        "TTS requires the official OpenAI API. Custom endpoints typically don't support the "
        "/v1/audio/speech endpoint. Please use the default OpenAI endpoint or check if your "
        "provider supports this feature."
    ),
    Capability.TRANSCRIPTION: (
        "Whisper transcription requires the official OpenAI API. Custom endpoints typically "
        "don't support the /v1/audio/transcriptions endpoint. Please use the default OpenAI "
        "endpoint or check if your provider supports this feature."
    ),
}


class ConnectionState(str, Enum):
    UNKNOWN = "unknown"
    VERIFYING = "verifying"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class ConnectionStatus:
    """Result of the most recent connection verification."""

    state: ConnectionState = ConnectionState.UNKNOWN
    reason: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.state == ConnectionState.SUCCESS

    @classmethod
    def unknown(cls) -> "ConnectionStatus":
        return cls(ConnectionState.UNKNOWN)

    @classmethod
    def verifying(cls) -> "ConnectionStatus":
        return cls(ConnectionState.VERIFYING)

    @classmethod
    def success(cls) -> "ConnectionStatus":
        return cls(ConnectionState.SUCCESS)

    @classmethod
    def failure(cls, reason: str) -> "ConnectionStatus":
        return cls(ConnectionState.FAILURE, reason)


@dataclass(frozen=True)
class FeatureGateResult:
    """Outcome of the pre-flight endpoint check for a feature."""

    feature: Capability
    supported: bool
    reason: Optional[str] = None

    def raise_for_status(self) -> None:
        if not self.supported:
            raise FeatureNotSupportedError(
                CAPABILITY_PROFILES[self.feature].display_name,
                self.reason or "Not supported by the configured endpoint.",
            )


class ClientResolver:
    """Derives the effective endpoint and owns the outbound client."""

    def __init__(
        self,
        credentials: CredentialStore,
        settings: SettingsStore,
        *,
        client_factory: ClientFactory = create_openai_client,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        models_cache_ttl: float = DEFAULT_MODELS_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.credentials = credentials
        self.settings = settings
        self.client_factory = client_factory
        self.request_timeout = request_timeout
        self.catalog = ModelCatalogCache(
            settings,
            client_provider=lambda: self._client,
            is_official=self.is_official_endpoint,
            ttl=models_cache_ttl,
            clock=clock,
        )

        self._client: Optional[ProviderClient] = None
        self._retired_clients: List[ProviderClient] = []
        # Clients with a verification in flight; closed when it finishes.
        self._clients_in_use: Dict[int, int] = {}
        self._closing: Set["asyncio.Task[None]"] = set()
        self.connection_status = ConnectionStatus.unknown()
        self._verifications = 0
        self._verify_generation = 0

        self._unsubscribe = settings.subscribe(self._on_settings_changed)
        self.refresh_client()

    # ------------------------------------------------------------------
    # Effective configuration
    # ------------------------------------------------------------------

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    @property
    def is_verifying(self) -> bool:
        return self._verifications > 0

    def effective_config(self) -> EndpointConfig:
        return resolve_endpoint(self.settings)

    def is_official_endpoint(self) -> bool:
        return self.effective_config().is_official

    @property
    def effective_endpoint_description(self) -> str:
        return self.effective_config().description

    @property
    def client(self) -> ProviderClient:
        """The configured client; raises when no API key is stored."""
        if self._client is None:
            raise CredentialMissingError()
        return self._client

    def refresh_client(self) -> None:
        """Rebuild the client from current settings and drop the model cache."""
        self.catalog.cancel()
        if self._client is not None:
            self._retire(self._client)
            self._client = None

        api_key = self.credentials.get()
        if api_key:
            endpoint = self.effective_config()
            self._client = self.client_factory(api_key, endpoint, self.request_timeout)
            logger.debug(
                "[client] Client configured",
                extra={"endpoint": endpoint.description, "official": endpoint.is_official},
            )
        else:
            logger.debug("[client] No API key stored; client not configured")

        self.catalog.clear()
        self.mark_connection_needs_verification()

    def set_api_key(self, api_key: Optional[str]) -> None:
        """Store (or with ``None``/empty, delete) the API key and rebuild the client."""
        self.credentials.set(api_key)
        self.refresh_client()

    def _retire(self, client: ProviderClient) -> None:
        self._retired_clients.append(client)
        self._close_retired_soon()

    def _close_retired_soon(self) -> None:
        """Schedule closing of idle retired clients.

        Without a running loop they wait for :meth:`aclose`.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        idle = [c for c in self._retired_clients if not self._clients_in_use.get(id(c))]
        for client in idle:
            self._retired_clients.remove(client)
            task = loop.create_task(client.aclose())
            self._closing.add(task)
            task.add_done_callback(self._on_client_closed)

    def _on_client_closed(self, task: "asyncio.Task[None]") -> None:
        self._closing.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(
                "[client] Failed to close retired client: %s: %s",
                type(exc).__name__,
                exc,
            )

    def _on_settings_changed(self, change: SettingsChange) -> None:
        if change.touches_endpoint:
            logger.debug(
                "[client] Endpoint settings changed; rebuilding client",
                extra={"reason": change.reason.value, "keys": sorted(change.keys)},
            )
            self.refresh_client()

    # ------------------------------------------------------------------
    # Feature gates
    # ------------------------------------------------------------------

    def feature_gate(self, feature: Capability) -> FeatureGateResult:
        """Cheap pre-check; the provider may still accept or reject the call."""
        reason = _UNSUPPORTED_REASONS.get(feature)
        if reason is None or self.is_official_endpoint():
            return FeatureGateResult(feature, True)
        return FeatureGateResult(feature, False, reason)

    def check_feature_support(self, feature: Capability) -> None:
        self.feature_gate(feature).raise_for_status()

    # ------------------------------------------------------------------
    # Connection verification
    # ------------------------------------------------------------------

    def mark_connection_needs_verification(self) -> None:
        """Reset a stale status while fields are edited, unless a verification is running."""
        if not self.is_configured:
            self.connection_status = ConnectionStatus.unknown()
            return
        if self.is_verifying:
            return
        self.connection_status = ConnectionStatus.unknown()

    async def verify_connection(self) -> ConnectionStatus:
        """List models against the configured endpoint and record the outcome."""
        client = self._client
        if client is None:
            self.connection_status = ConnectionStatus.failure(NotConfiguredError().message)
            return self.connection_status

        self._verify_generation += 1
        generation = self._verify_generation
        self._verifications += 1
        self._clients_in_use[id(client)] = self._clients_in_use.get(id(client), 0) + 1
        self.connection_status = ConnectionStatus.verifying()
        try:
            try:
                await client.list_models()
            except FetchFailedError as exc:
                status = ConnectionStatus.failure(exc.reason)
            except Exception as exc:  # noqa: BLE001 - a failed check is a status, not a crash
                status = ConnectionStatus.failure(f"Unexpected error ({type(exc).__name__}): {exc}")
            else:
                status = ConnectionStatus.success()
            if generation == self._verify_generation:
                self.connection_status = status
            logger.info(
                "[client] Connection verification finished",
                extra={"state": status.state.value, "endpoint": client.endpoint.description},
            )
            if status.is_success:
                await self.catalog.refresh(force=True)
        finally:
            self._verifications -= 1
            remaining = self._clients_in_use.pop(id(client)) - 1
            if remaining:
                self._clients_in_use[id(client)] = remaining
            else:
                self._close_retired_soon()
            if (
                generation == self._verify_generation
                and self.connection_status.state == ConnectionState.VERIFYING
            ):
                # Cancelled before an outcome was recorded.
                self.connection_status = ConnectionStatus.unknown()
        return self.connection_status

    # ------------------------------------------------------------------
    # Model defaults
    # ------------------------------------------------------------------

    def default_model(self, feature: Capability) -> str:
        return self.catalog.default_model(feature)

    @property
    def default_chat_model(self) -> str:
        return self.default_model(Capability.CHAT)

    @property
    def default_image_model(self) -> str:
        return self.default_model(Capability.IMAGE)

    @property
    def default_tts_model(self) -> str:
        return self.default_model(Capability.SPEECH)

    @property
    def default_transcription_model(self) -> str:
        return self.default_model(Capability.TRANSCRIPTION)

    async def aclose(self) -> None:
        """Cancel background work and close every client this resolver created."""
        self.catalog.cancel()
        self._unsubscribe()
        if self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)
        clients = list(self._retired_clients)
        if self._client is not None:
            clients.append(self._client)
        self._retired_clients.clear()
        for client in clients:
            await client.aclose()


def build_client_resolver(
    config: Optional[RuntimeConfig] = None,
    *,
    client_factory: ClientFactory = create_openai_client,
) -> ClientResolver:
    """Composition root: one settings store, credential store and resolver per process."""
    config = config or load_runtime_config()
    settings = SettingsStore(
        SyncedKeyValueStore(config.sync_dir),
        LocalKeyValueStore(config.local_settings_path),
    )
    credentials = CredentialStore(
        SyncedSecretTier(config.sync_dir),
        FileSecretTier(config.local_credentials_path),
    )
    return ClientResolver(
        credentials,
        settings,
        client_factory=client_factory,
        request_timeout=config.request_timeout,
        models_cache_ttl=config.models_cache_ttl,
    )
