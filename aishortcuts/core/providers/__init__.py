"""Provider client registry."""

from __future__ import annotations

from aishortcuts.core.providers.base import ClientFactory, ProviderClient
from aishortcuts.core.providers.openai import OpenAIClient, create_openai_client, map_openai_error

__all__ = [
    "ClientFactory",
    "OpenAIClient",
    "ProviderClient",
    "create_openai_client",
    "map_openai_error",
]
