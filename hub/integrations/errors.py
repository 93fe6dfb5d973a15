"""
Integration Hub error taxonomy.

Adapters raise these; the registry isolates per-record failures and the API
layer maps them to HTTP status codes:
- ConfigurationError: operator error, missing platform secret or key
- AuthenticationError / ReauthenticationRequired: credentials rejected
- UsageLimitExceeded / IntegrationNotPermitted: entitlement failures
- ProviderError: non-2xx or transport failure from the external API
- DecryptionError: ciphertext failed integrity checks
- UnknownActionError / UnknownProviderError: caller asked for something
  that does not exist
- InvalidParamsError: an action was called with missing parameters
- IntegrationNotFoundError: no such integration for this tenant
"""
from __future__ import annotations


class IntegrationError(Exception):
    """Base class for every error raised by the integration layer."""

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(message)
        self.message = message
        self.provider = provider


class ConfigurationError(IntegrationError):
    pass


class AuthenticationError(IntegrationError):
    pass


class ReauthenticationRequired(AuthenticationError):
    """OAuth tokens can no longer be refreshed; the user must reconnect."""

    def __init__(self, provider: str, reason: str | None = None):
        message = f"{provider} access has expired or been revoked. Please reconnect the integration."
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, provider=provider)
        self.reason = reason


class UsageLimitExceeded(IntegrationError):
    def __init__(self, message: str, channel: str, used: int, limit: int, plan: str):
        super().__init__(message)
        self.channel = channel
        self.used = used
        self.limit = limit
        self.plan = plan


class IntegrationNotPermitted(IntegrationError):
    """The acting agent's allow-list excludes this integration."""


class ProviderError(IntegrationError):
    def __init__(self, provider: str, message: str, status_code: int | None = None):
        prefix = f"{provider} API error"
        if status_code is not None:
            prefix = f"{prefix} ({status_code})"
        super().__init__(f"{prefix}: {message}", provider=provider)
        self.status_code = status_code
        self.detail = message


class DecryptionError(IntegrationError):
    def __init__(self, message: str = "Failed to decrypt credentials"):
        super().__init__(message)


class UnknownActionError(IntegrationError):
    def __init__(self, action: str, provider: str):
        super().__init__(f"Unknown action '{action}' for provider '{provider}'", provider=provider)
        self.action = action


class UnknownProviderError(IntegrationError):
    def __init__(self, provider: str):
        super().__init__(f"Unknown integration provider: {provider}", provider=provider)


class InvalidParamsError(IntegrationError):
    """An action was called without a required parameter."""


class IntegrationNotFoundError(IntegrationError):
    def __init__(self, integration_id: str):
        super().__init__(f"Integration not found: {integration_id}")
        self.integration_id = integration_id
