"""Endpoint resolution from stored settings."""

from __future__ import annotations

from typing import Protocol

from pydantic import BaseModel, ConfigDict

OFFICIAL_HOST = "api.openai.com"
DEFAULT_BASE_PATH = "/v1"
DEFAULT_SCHEME = "https"


class EndpointSettings(Protocol):
    endpoint_host: str
    endpoint_base_path: str
    endpoint_scheme: str
    endpoint_port: int


class EndpointConfig(BaseModel):
    """Effective connection target derived from settings."""

    model_config = ConfigDict(frozen=True)

    scheme: str = DEFAULT_SCHEME
    host: str = OFFICIAL_HOST
    port: int = 443
    base_path: str = DEFAULT_BASE_PATH
    is_official: bool = True

    @property
    def base_url(self) -> str:
        if self.is_official:
            return f"https://{OFFICIAL_HOST}{DEFAULT_BASE_PATH}"
        # Always include the port for custom endpoints to reduce ambiguity.
        return f"{self.scheme}://{self.host}:{self.port}{self.base_path}"

    @property
    def description(self) -> str:
        """User-facing description of the effective API base URL."""
        return self.base_url


def is_official_endpoint(host: str, base_path: str, port: int, scheme: str) -> bool:
    """Official iff nothing is overridden and the scheme is https."""
    effective_scheme = scheme or DEFAULT_SCHEME
    return (
        not host
        and not base_path
        and port <= 0
        and effective_scheme.lower() == DEFAULT_SCHEME
    )


def default_port(scheme: str) -> int:
    return 443 if scheme.lower() == "https" else 80


def _normalize_base_path(base_path: str) -> str:
    path = base_path.strip()
    if not path:
        return DEFAULT_BASE_PATH
    if not path.startswith("/"):
        path = "/" + path
    return path.rstrip("/") or "/"


def resolve_endpoint(settings: EndpointSettings) -> EndpointConfig:
    """Build the effective endpoint, filling defaults for unset fields."""
    host = settings.endpoint_host.strip()
    base_path = settings.endpoint_base_path
    port = settings.endpoint_port
    scheme = (settings.endpoint_scheme or DEFAULT_SCHEME).strip() or DEFAULT_SCHEME

    if is_official_endpoint(host, base_path.strip(), port, scheme):
        return EndpointConfig()

    return EndpointConfig(
        scheme=scheme.lower(),
        host=host or OFFICIAL_HOST,
        port=port if port > 0 else default_port(scheme),
        base_path=_normalize_base_path(base_path),
        is_official=False,
    )
