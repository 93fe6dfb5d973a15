"""
Integration Hub — multi-tenant adapter layer for third-party services.

Provides:
- CredentialCipher: AES-256-GCM encryption of credentials at rest
- IntegrationAdapter / OAuthAdapter: uniform action surface per provider
- PROVIDER_ADAPTERS: Resend, Twilio, Google (Calendar, Gmail, Drive, Docs,
  Sheets), HubSpot, Notion, Stripe, outbound webhooks
- IntegrationRegistry: tenant/agent scoped adapter loading
- WebhookDispatcher: event fan-out to webhook destinations
"""
from hub.integrations.adapter_base import (
    AdapterDeps,
    AuthType,
    ConfigField,
    ConfigSchema,
    ConnectionTestResult,
    IntegrationAdapter,
    IntegrationRecord,
    IntegrationStatus,
    IntegrationType,
)
from hub.integrations.agents import AgentDirectory, AgentExecutor, SqlAgentDirectory
from hub.integrations.cipher import CredentialCipher
from hub.integrations.errors import (
    AuthenticationError,
    ConfigurationError,
    DecryptionError,
    IntegrationError,
    IntegrationNotFoundError,
    IntegrationNotPermitted,
    InvalidParamsError,
    ProviderError,
    ReauthenticationRequired,
    UnknownActionError,
    UnknownProviderError,
    UsageLimitExceeded,
)
from hub.integrations.oauth_manager import (
    OAuthAdapter,
    OAuthProviderConfig,
    OAuthToken,
    OAuthTokenManager,
    TokenState,
)
from hub.integrations.providers import PROVIDER_ADAPTERS, get_adapter_class, normalize_provider
from hub.integrations.registry import IntegrationRegistry
from hub.integrations.usage import PLAN_LIMITS, SqlUsageTracker, UsageRecord, UsageTracker
from hub.integrations.webhooks import (
    DeliveryResult,
    DispatchSummary,
    WebhookAdapter,
    WebhookDispatcher,
    WebhookFilter,
)

__all__ = [
    "AdapterDeps",
    "AgentDirectory",
    "AgentExecutor",
    "AuthType",
    "AuthenticationError",
    "ConfigField",
    "ConfigSchema",
    "ConfigurationError",
    "ConnectionTestResult",
    "CredentialCipher",
    "DecryptionError",
    "DeliveryResult",
    "DispatchSummary",
    "IntegrationAdapter",
    "IntegrationError",
    "IntegrationNotFoundError",
    "IntegrationNotPermitted",
    "IntegrationRecord",
    "IntegrationRegistry",
    "IntegrationStatus",
    "IntegrationType",
    "InvalidParamsError",
    "OAuthAdapter",
    "OAuthProviderConfig",
    "OAuthToken",
    "OAuthTokenManager",
    "PLAN_LIMITS",
    "PROVIDER_ADAPTERS",
    "ProviderError",
    "ReauthenticationRequired",
    "SqlAgentDirectory",
    "SqlUsageTracker",
    "TokenState",
    "UnknownActionError",
    "UnknownProviderError",
    "UsageLimitExceeded",
    "UsageRecord",
    "UsageTracker",
    "WebhookAdapter",
    "WebhookDispatcher",
    "WebhookFilter",
    "get_adapter_class",
    "normalize_provider",
]
