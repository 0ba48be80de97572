"""Two-tier credential storage for the provider API key.

The synced tier lives in the sync directory and follows the user across
machines; the local tier stays on this machine. Writes prefer the synced
tier and fall back to the local one, reads try synced first. Both tiers
are JSON documents keyed by service and account, written with 0600
permissions.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

from aishortcuts.core.errors import StorageTierError
from aishortcuts.core.kv_store import read_sync_identity
from aishortcuts.utils.json_utils import read_json_object, write_json_atomic
from aishortcuts.utils.log import get_logger

logger = get_logger()

SERVICE_NAME = "com.aishortcuts.credentials"
API_KEY_ACCOUNT = "openai-api-key"


class SecretTier(ABC):
    """One durability tier for secrets."""

    name: str = "tier"

    @property
    def is_available(self) -> bool:
        return True

    @abstractmethod
    def add(self, account: str, secret: str) -> None:
        """Store a secret. Raises :class:`StorageTierError` when rejected."""

    @abstractmethod
    def lookup(self, account: str) -> Optional[str]:
        """Return the secret, ``None`` on a miss. Raises on storage failure."""

    @abstractmethod
    def delete(self, account: str) -> None:
        """Remove a secret. Deleting a missing secret is not an error."""


class FileSecretTier(SecretTier):
    """Secrets kept in a JSON document, namespaced by service."""

    name = "local"

    def __init__(self, path: Optional[Path], *, service: str = SERVICE_NAME) -> None:
        self._path = path
        self.service = service

    @property
    def path(self) -> Path:
        if self._path is None:
            raise StorageTierError(self.name, "no storage location configured")
        return self._path

    @property
    def is_available(self) -> bool:
        return self._path is not None

    def _read_all(self) -> Dict[str, Dict[str, str]]:
        payload = read_json_object(self.path, component="credentials")
        if payload is None:
            raise StorageTierError(self.name, f"unreadable credential file {self.path}")
        return payload

    def _accounts(self, payload: Dict[str, Dict[str, str]]) -> Dict[str, str]:
        accounts = payload.get(self.service)
        return dict(accounts) if isinstance(accounts, dict) else {}

    def _write_accounts(self, payload: Dict[str, Dict[str, str]], accounts: Dict[str, str]) -> None:
        if accounts:
            payload[self.service] = accounts
        else:
            payload.pop(self.service, None)
        try:
            write_json_atomic(self.path, payload, mode=0o600)
        except OSError as exc:
            raise StorageTierError(self.name, f"{type(exc).__name__}: {exc}") from exc

    def add(self, account: str, secret: str) -> None:
        if not self.is_available:
            raise StorageTierError(self.name, "tier unavailable")
        payload = self._read_all()
        accounts = self._accounts(payload)
        if account in accounts:
            raise StorageTierError(self.name, "duplicate item")
        accounts[account] = secret
        self._write_accounts(payload, accounts)

    def lookup(self, account: str) -> Optional[str]:
        if not self.is_available:
            raise StorageTierError(self.name, "tier unavailable")
        value = self._accounts(self._read_all()).get(account)
        return value if isinstance(value, str) and value else None

    def delete(self, account: str) -> None:
        # Not gated on availability: a signed-out delete must still reach the
        # synced copy, or the old secret returns on the next sign-in.
        if self._path is None or not self._path.exists():
            return
        payload = self._read_all()
        accounts = self._accounts(payload)
        if account not in accounts:
            return
        del accounts[account]
        self._write_accounts(payload, accounts)


class SyncedSecretTier(FileSecretTier):
    """Secret tier stored in the sync directory; unavailable when signed out."""

    name = "synced"

    def __init__(self, sync_dir: Optional[Path], *, service: str = SERVICE_NAME) -> None:
        self.sync_dir = sync_dir
        super().__init__(sync_dir / "credentials.json" if sync_dir else None, service=service)

    @property
    def is_available(self) -> bool:
        return read_sync_identity(self.sync_dir) is not None


class CredentialStore:
    """Stores one secret across a synced and a local tier.

    ``get`` cannot distinguish "never set" from "every write failed"; both
    read as ``None``.
    """

    def __init__(
        self,
        synced: SecretTier,
        local: SecretTier,
        *,
        account: str = API_KEY_ACCOUNT,
    ) -> None:
        self.synced = synced
        self.local = local
        self.account = account

    @property
    def sync_available(self) -> bool:
        return self.synced.is_available

    @property
    def api_key(self) -> Optional[str]:
        return self.get()

    @api_key.setter
    def api_key(self, value: Optional[str]) -> None:
        self.set(value)

    def get(self) -> Optional[str]:
        """Return the effective secret: synced tier first, then local."""
        for tier in (self.synced, self.local):
            try:
                value = tier.lookup(self.account)
            except StorageTierError as exc:
                logger.debug(
                    "[credentials] Lookup failed; trying next tier",
                    extra={"tier": tier.name, "error": str(exc)},
                )
                continue
            if value:
                return value
        return None

    def set(self, value: Optional[str]) -> None:
        """Replace the secret. ``None`` or an empty string deletes it."""
        self.delete()
        if not value:
            return
        try:
            self.synced.add(self.account, value)
            logger.debug("[credentials] Saved secret", extra={"tier": self.synced.name})
            return
        except StorageTierError as exc:
            logger.debug(
                "[credentials] Synced write rejected; falling back to local tier",
                extra={"error": str(exc)},
            )
        try:
            self.local.add(self.account, value)
            logger.debug("[credentials] Saved secret", extra={"tier": self.local.name})
        except StorageTierError as exc:
            logger.warning(
                "[credentials] Failed to store secret in any tier",
                extra={"error": str(exc)},
            )

    def delete(self) -> None:
        """Remove the secret from both tiers."""
        for tier in (self.synced, self.local):
            try:
                tier.delete(self.account)
            except StorageTierError as exc:
                logger.debug(
                    "[credentials] Delete failed",
                    extra={"tier": tier.name, "error": str(exc)},
                )


def mask_api_key(api_key: str, visible_chars: int = 4) -> str:
    """Mask an API key for safe display.

    Example: ``"sk-abcdefghijk"`` → ``"sk-*******hijk"``
    """
    if not api_key:
        return ""
    if len(api_key) <= visible_chars:
        return "*" * len(api_key)
    prefix = api_key[:3] if len(api_key) > 3 else ""
    suffix = api_key[-visible_chars:]
    hidden_len = len(api_key) - len(prefix) - visible_chars
    return f"{prefix}{'*' * max(hidden_len, 4)}{suffix}"
