"""Error taxonomy shared by the settings, credential and model layers."""

from __future__ import annotations


class AIShortcutsError(Exception):
    """Base error carrying a stable code and a user-facing message."""

    def __init__(self, error_code: str, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.retryable = retryable


class CredentialMissingError(AIShortcutsError):
    """No API key is stored in either credential tier."""

    def __init__(
        self,
        message: str = "No API key configured. Run `aishortcuts auth set-key` to set up your API key.",
    ) -> None:
        super().__init__("credential_missing", message)


class NotConfiguredError(AIShortcutsError):
    """An operation needs a configured client that does not exist yet."""

    def __init__(self, message: str = "API key not configured") -> None:
        super().__init__("not_configured", message)


class FeatureNotSupportedError(AIShortcutsError):
    """Pre-flight rejection of a feature the current endpoint is unlikely to serve."""

    def __init__(self, feature: str, reason: str) -> None:
        super().__init__("feature_not_supported", f"{feature} is not available: {reason}")
        self.feature = feature
        self.reason = reason


class FetchFailedError(AIShortcutsError):
    """The outbound model listing failed."""

    def __init__(self, reason: str, *, retryable: bool = False) -> None:
        super().__init__("fetch_failed", reason, retryable=retryable)
        self.reason = reason


class StorageTierError(Exception):
    """A single storage tier rejected a read or write.

    Always recovered by the owning store through tier fallback.
    """

    def __init__(self, tier: str, message: str) -> None:
        super().__init__(f"{tier}: {message}")
        self.tier = tier
