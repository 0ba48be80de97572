"""OpenAI-compatible provider client."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List

import httpx
import openai
from openai import AsyncOpenAI

from aishortcuts.core.config import DEFAULT_REQUEST_TIMEOUT
from aishortcuts.core.endpoint import EndpointConfig
from aishortcuts.core.errors import FetchFailedError
from aishortcuts.core.providers.base import ProviderClient
from aishortcuts.utils.log import get_logger

logger = get_logger()


def map_openai_error(exc: BaseException) -> FetchFailedError:
    """Classify an OpenAI SDK exception into a user-facing fetch failure."""
    exc_type = type(exc).__name__
    exc_msg = str(exc)

    if isinstance(exc, openai.AuthenticationError):
        return FetchFailedError(f"Authentication failed: {exc_msg}")
    if isinstance(exc, openai.PermissionDeniedError):
        if "balance" in exc_msg.lower() or "insufficient" in exc_msg.lower():
            return FetchFailedError(f"Insufficient balance: {exc_msg}")
        return FetchFailedError(f"Permission denied: {exc_msg}")
    if isinstance(exc, openai.NotFoundError):
        return FetchFailedError(
            f"Models endpoint not found (check host and base path): {exc_msg}"
        )
    if isinstance(exc, openai.RateLimitError):
        return FetchFailedError(f"Rate limit exceeded: {exc_msg}", retryable=True)
    if isinstance(exc, (openai.APITimeoutError, httpx.TimeoutException, asyncio.TimeoutError)):
        return FetchFailedError(f"Request timed out: {exc_msg}", retryable=True)
    if isinstance(exc, openai.APIConnectionError):
        return FetchFailedError(f"Connection error: {exc_msg}", retryable=True)
    if isinstance(exc, httpx.TransportError):
        return FetchFailedError(f"Connection error: {exc_msg}", retryable=True)
    if isinstance(exc, openai.APIStatusError):
        return FetchFailedError(f"API error ({exc.status_code}): {exc_msg}")

    return FetchFailedError(f"Unexpected error ({exc_type}): {exc_msg}")


class OpenAIClient(ProviderClient):
    """Thin wrapper over ``AsyncOpenAI`` bound to one endpoint and key."""

    def __init__(
        self,
        api_key: str,
        endpoint: EndpointConfig,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        *,
        max_retries: int = 2,
    ) -> None:
        super().__init__(endpoint)
        kwargs: Dict[str, Any] = {
            "api_key": api_key,
            "timeout": timeout,
            "max_retries": max_retries,
        }
        if not endpoint.is_official:
            kwargs["base_url"] = endpoint.base_url
        self.sdk = AsyncOpenAI(**kwargs)

    async def list_models(self) -> List[str]:
        logger.debug(
            "[openai] Listing models",
            extra={"base_url": self.endpoint.base_url},
        )
        try:
            return [model.id async for model in self.sdk.models.list()]
        except (openai.OpenAIError, httpx.HTTPError, asyncio.TimeoutError) as exc:
            raise map_openai_error(exc) from exc

    async def aclose(self) -> None:
        await self.sdk.close()


def create_openai_client(
    api_key: str, endpoint: EndpointConfig, timeout: float = DEFAULT_REQUEST_TIMEOUT
) -> OpenAIClient:
    return OpenAIClient(api_key, endpoint, timeout)
