"""Cached catalog of the model identifiers an endpoint advertises.

The catalog is refreshed on demand. A refresh is skipped while the cache
is non-empty and younger than the TTL, and at most one fetch is in flight
at any time: non-forced callers join the running fetch, forced callers
cancel it and start a new one. Each fetch carries a generation number and
only commits its result if it is still the newest one, so a cancelled or
superseded fetch can never overwrite newer state.

Capability subsets and per-feature defaults are derived from the catalog.
Subsets are only filtered for the official endpoint; other providers use
their own naming, so their full catalog is offered unfiltered.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from aishortcuts.core.config import DEFAULT_MODELS_CACHE_TTL
from aishortcuts.core.errors import FetchFailedError, NotConfiguredError
from aishortcuts.core.model_filters import (
    CAPABILITY_PROFILES,
    Capability,
    has_capability,
    highest_version_model_id,
)
from aishortcuts.core.providers.base import ProviderClient
from aishortcuts.core.settings import SettingKey, SettingsStore
from aishortcuts.utils.log import get_logger

logger = get_logger()

OVERRIDE_SETTINGS: Dict[Capability, SettingKey] = {
    Capability.CHAT: SettingKey.DEFAULT_MODEL,
    Capability.IMAGE: SettingKey.IMAGE_MODEL,
    Capability.SPEECH: SettingKey.TTS_MODEL,
    Capability.TRANSCRIPTION: SettingKey.TRANSCRIPTION_MODEL,
}


class ModelRecord(BaseModel):
    """One model advertised by the endpoint."""

    model_config = ConfigDict(frozen=True)

    id: str


class ModelCatalogCache:
    """Owns the model list for the current endpoint."""

    def __init__(
        self,
        settings: SettingsStore,
        *,
        client_provider: Callable[[], Optional[ProviderClient]],
        is_official: Callable[[], bool],
        ttl: float = DEFAULT_MODELS_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self._client_provider = client_provider
        self._is_official = is_official
        self.ttl = ttl
        self._clock = clock

        self._models: List[ModelRecord] = []
        self._fetched_at: Optional[float] = None
        self._last_error: Optional[str] = None
        self._is_loading = False
        self._task: Optional["asyncio.Task[None]"] = None
        self._generation = 0

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def models(self) -> List[ModelRecord]:
        return list(self._models)

    @property
    def model_ids(self) -> List[str]:
        return [record.id for record in self._models]

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def last_fetch_time(self) -> Optional[float]:
        return self._fetched_at

    @property
    def in_flight(self) -> Optional["asyncio.Task[None]"]:
        return self._task

    def is_fresh(self) -> bool:
        if not self._models or self._fetched_at is None:
            return False
        return self._clock() - self._fetched_at < self.ttl

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh(self, force: bool = False) -> None:
        """Refresh the catalog, joining or replacing any in-flight fetch.

        Failures of any kind are recorded in :attr:`last_error` and never
        raised; cancellation of a superseded fetch returns quietly.
        """
        if not force and self.is_fresh():
            return
        task = self.start_refresh(force=force)
        while task is not None:
            try:
                await asyncio.shield(task)
                return
            except asyncio.CancelledError:
                if not task.cancelled():
                    # Our own caller was cancelled, not the fetch.
                    raise
                replacement = self._task
                if replacement is None or replacement is task:
                    return
                task = replacement
            except Exception:  # noqa: BLE001 - already recorded in last_error by _on_refresh_done
                return

    def start_refresh(self, force: bool = False) -> Optional["asyncio.Task[None]"]:
        """Start (or join) a refresh owned by the cache. Must run inside the event loop."""
        if force:
            self._cancel_in_flight()
        elif self._task is not None:
            return self._task
        elif self.is_fresh():
            return None

        self._generation += 1
        generation = self._generation
        self._is_loading = True
        task = asyncio.get_running_loop().create_task(self._run_refresh(generation))
        self._task = task
        task.add_done_callback(lambda done: self._on_refresh_done(done, generation))
        logger.debug(
            "[model_catalog] Refresh started",
            extra={"generation": generation, "force": force},
        )
        return task

    def cancel(self) -> None:
        """Cancel any in-flight refresh without touching the cached catalog."""
        self._cancel_in_flight()

    def clear(self) -> None:
        """Drop the catalog (e.g. after the endpoint or credential changed)."""
        self._cancel_in_flight()
        self._models = []
        self._fetched_at = None
        logger.debug("[model_catalog] Cache cleared")

    def _cancel_in_flight(self) -> None:
        task = self._task
        self._task = None
        # Bumping the generation makes any late completion a no-op.
        self._generation += 1
        self._is_loading = False
        if task is not None and not task.done():
            task.cancel()

    async def _run_refresh(self, generation: int) -> None:
        client = self._client_provider()
        if client is None:
            if generation == self._generation:
                self._last_error = NotConfiguredError().message
                self._is_loading = False
            return

        if generation == self._generation:
            self._last_error = None
        try:
            identifiers = await client.list_models()
        except FetchFailedError as exc:
            if generation == self._generation:
                self._last_error = f"Failed to fetch models: {exc.reason}"
                self._is_loading = False
            logger.warning(
                "[model_catalog] Model fetch failed",
                extra={"error": exc.reason, "generation": generation},
            )
            return

        if generation != self._generation:
            logger.debug(
                "[model_catalog] Discarding superseded result",
                extra={"generation": generation, "current": self._generation},
            )
            return

        self._models = [ModelRecord(id=model_id) for model_id in sorted(set(identifiers))]
        self._fetched_at = self._clock()
        self._last_error = None
        self._is_loading = False
        logger.debug(
            "[model_catalog] Catalog refreshed",
            extra={"models": len(self._models), "generation": generation},
        )

    def _on_refresh_done(self, task: "asyncio.Task[None]", generation: int) -> None:
        if self._task is task:
            self._task = None
        if task.cancelled():
            logger.debug("[model_catalog] Refresh cancelled", extra={"generation": generation})
            return
        exc = task.exception()
        if exc is not None and generation == self._generation:
            self._last_error = f"Failed to fetch models: {exc}"
            self._is_loading = False
            logger.warning(
                "[model_catalog] Unexpected refresh failure: %s: %s",
                type(exc).__name__,
                exc,
            )

    # ------------------------------------------------------------------
    # Capability subsets
    # ------------------------------------------------------------------

    def models_for(self, capability: Capability) -> List[ModelRecord]:
        if not self._is_official():
            return list(self._models)
        return [record for record in self._models if has_capability(record.id, capability)]

    @property
    def chat_models(self) -> List[ModelRecord]:
        return self.models_for(Capability.CHAT)

    @property
    def image_models(self) -> List[ModelRecord]:
        return self.models_for(Capability.IMAGE)

    @property
    def tts_models(self) -> List[ModelRecord]:
        return self.models_for(Capability.SPEECH)

    @property
    def transcription_models(self) -> List[ModelRecord]:
        return self.models_for(Capability.TRANSCRIPTION)

    # ------------------------------------------------------------------
    # Defaults
    # ------------------------------------------------------------------

    def inferred_default(self, capability: Capability) -> str:
        """Highest-versioned match, else first in the subset, else the fallback constant."""
        profile = CAPABILITY_PROFILES[capability]
        ids = [record.id for record in self.models_for(capability)]
        best = highest_version_model_id(ids, profile.version_prefix)
        if best is not None:
            return best
        return ids[0] if ids else profile.fallback_model

    def default_model(self, capability: Capability) -> str:
        """The explicit override from settings if set, else the inferred default."""
        override = self.settings.get(OVERRIDE_SETTINGS[capability])
        return override if override else self.inferred_default(capability)

    @property
    def inferred_default_chat_model(self) -> str:
        return self.inferred_default(Capability.CHAT)

    @property
    def inferred_default_image_model(self) -> str:
        return self.inferred_default(Capability.IMAGE)

    @property
    def inferred_default_tts_model(self) -> str:
        return self.inferred_default(Capability.SPEECH)

    @property
    def inferred_default_transcription_model(self) -> str:
        return self.inferred_default(Capability.TRANSCRIPTION)
