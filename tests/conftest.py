"""Pytest configuration and fixtures for all tests."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List, Optional

import pytest

from aishortcuts.core.client import ClientResolver
from aishortcuts.core.credentials import CredentialStore, FileSecretTier, SyncedSecretTier
from aishortcuts.core.endpoint import EndpointConfig
from aishortcuts.core.errors import FetchFailedError
from aishortcuts.core.kv_store import SYNC_IDENTITY_FILE, LocalKeyValueStore, SyncedKeyValueStore
from aishortcuts.core.providers.base import ProviderClient
from aishortcuts.core.settings import SettingsStore


class FakeClient(ProviderClient):
    """In-memory provider client; optionally blocks until released."""

    def __init__(
        self,
        endpoint: EndpointConfig,
        models: Optional[List[str]] = None,
        *,
        error: Optional[str] = None,
        gate: Optional[asyncio.Event] = None,
    ) -> None:
        super().__init__(endpoint)
        self.models = list(models or [])
        self.error = error
        self.gate = gate
        self.calls = 0
        self.closed = False

    async def list_models(self) -> List[str]:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise FetchFailedError(self.error)
        return list(self.models)

    async def aclose(self) -> None:
        self.closed = True


class FakeClientFactory:
    """Client factory that records every client it builds."""

    def __init__(self, models: Optional[List[str]] = None, **client_kwargs) -> None:
        self.models = list(models or [])
        self.client_kwargs = client_kwargs
        self.built: List[FakeClient] = []
        self.api_keys: List[str] = []

    def __call__(self, api_key: str, endpoint: EndpointConfig, timeout: float) -> FakeClient:
        client = FakeClient(endpoint, self.models, **self.client_kwargs)
        self.api_keys.append(api_key)
        self.built.append(client)
        return client

    @property
    def last(self) -> FakeClient:
        return self.built[-1]


def sign_in(sync_dir: Path, identity: str = "account-1") -> None:
    sync_dir.mkdir(parents=True, exist_ok=True)
    (sync_dir / SYNC_IDENTITY_FILE).write_text(identity, encoding="utf-8")


def sign_out(sync_dir: Path) -> None:
    (sync_dir / SYNC_IDENTITY_FILE).unlink()


@pytest.fixture
def sync_dir(tmp_path) -> Path:
    """A signed-in sync directory."""
    path = tmp_path / "sync"
    sign_in(path)
    return path


@pytest.fixture
def home_dir(tmp_path) -> Path:
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def settings(sync_dir, home_dir) -> SettingsStore:
    return SettingsStore(
        SyncedKeyValueStore(sync_dir),
        LocalKeyValueStore(home_dir / "settings.json"),
    )


@pytest.fixture
def credentials(sync_dir, home_dir) -> CredentialStore:
    return CredentialStore(
        SyncedSecretTier(sync_dir),
        FileSecretTier(home_dir / "credentials.json"),
    )


@pytest.fixture
def client_factory() -> FakeClientFactory:
    return FakeClientFactory(["gpt-4o", "gpt-5", "whisper-1", "tts-1", "gpt-image-1"])


@pytest.fixture
def resolver(credentials, settings, client_factory) -> ClientResolver:
    credentials.set("sk-test-key")
    return ClientResolver(credentials, settings, client_factory=client_factory)
