"""Shared abstractions for provider clients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, List

from aishortcuts.core.endpoint import EndpointConfig


class ProviderClient(ABC):
    """Outbound call capability consumed by the model catalog and verification."""

    def __init__(self, endpoint: EndpointConfig) -> None:
        self.endpoint = endpoint

    @abstractmethod
    async def list_models(self) -> List[str]:
        """Return the model identifiers advertised by the endpoint.

        Raises :class:`aishortcuts.core.errors.FetchFailedError` on failure.
        """

    async def aclose(self) -> None:
        """Release transport resources."""
        return None


ClientFactory = Callable[[str, EndpointConfig, float], ProviderClient]
