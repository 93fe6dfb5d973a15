"""Dataclass-based settings for the integration hub.

Platform secrets (encryption key, shared Resend/Twilio credentials, OAuth
client registrations) are grouped into frozen dataclasses and passed
explicitly into the cipher, registry, and adapters. Nothing below the API
layer reads these values from the environment at call time.

Usage::

    settings = HubSettings.from_env()
    registry = IntegrationRegistry(session, settings)
"""

import os
from dataclasses import dataclass, field


# ---------------------------------------------------------------------------
# OAuth client registrations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GoogleOAuthSettings:
    """One Google OAuth client shared by Calendar, Gmail, Drive, Docs, Sheets."""

    client_id: str = ""
    client_secret: str = ""
    # Overrides the per-provider callback URL when set
    redirect_uri: str = ""


@dataclass(frozen=True)
class HubSpotOAuthSettings:
    client_id: str = ""
    client_secret: str = ""


@dataclass(frozen=True)
class NotionOAuthSettings:
    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = ""


# ---------------------------------------------------------------------------
# Platform-shared credentials
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PlatformCredentials:
    """Fallback credentials used when a tenant supplies none."""

    resend_api_key: str = ""
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_from_number: str = ""


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HubSettings:
    """Complete configuration for the integration hub."""

    encryption_key: str = ""
    app_url: str = "http://localhost:3000"
    inbound_email_secret: str = ""
    # Agent runtime that executes agents on inbound messages
    agent_runtime_url: str = ""

    google: GoogleOAuthSettings = field(default_factory=GoogleOAuthSettings)
    hubspot: HubSpotOAuthSettings = field(default_factory=HubSpotOAuthSettings)
    notion: NotionOAuthSettings = field(default_factory=NotionOAuthSettings)
    platform: PlatformCredentials = field(default_factory=PlatformCredentials)

    webhook_timeout_seconds: float = 10.0
    request_timeout_seconds: float = 30.0
    webhook_user_agent: str = "AgentHub-Webhook/1.0"

    def callback_url(self, provider: str) -> str:
        """Redirect URI registered with an OAuth provider for *provider*."""
        return f"{self.app_url.rstrip('/')}/api/integrations/{provider}/callback"

    @classmethod
    def from_env(cls, prefix: str = "") -> "HubSettings":
        """Create settings from environment variables.

        Example: ENCRYPTION_KEY=... GOOGLE_CLIENT_ID=... RESEND_API_KEY=re_...
        A prefix lets several deployments share one environment.
        """

        def env(name: str, default: str = "") -> str:
            return os.getenv(f"{prefix}{name}", default)

        overrides = {}
        timeout = env("WEBHOOK_TIMEOUT_SECONDS")
        if timeout:
            overrides["webhook_timeout_seconds"] = float(timeout)
        request_timeout = env("REQUEST_TIMEOUT_SECONDS")
        if request_timeout:
            overrides["request_timeout_seconds"] = float(request_timeout)

        return cls(
            encryption_key=env("ENCRYPTION_KEY"),
            app_url=env("APP_URL", "http://localhost:3000"),
            inbound_email_secret=env("INBOUND_EMAIL_SECRET"),
            agent_runtime_url=env("AGENT_RUNTIME_URL"),
            google=GoogleOAuthSettings(
                client_id=env("GOOGLE_CLIENT_ID"),
                client_secret=env("GOOGLE_CLIENT_SECRET"),
                redirect_uri=env("GOOGLE_REDIRECT_URI"),
            ),
            hubspot=HubSpotOAuthSettings(
                client_id=env("HUBSPOT_CLIENT_ID"),
                client_secret=env("HUBSPOT_CLIENT_SECRET"),
            ),
            notion=NotionOAuthSettings(
                client_id=env("NOTION_CLIENT_ID"),
                client_secret=env("NOTION_CLIENT_SECRET"),
                redirect_uri=env("NOTION_REDIRECT_URI"),
            ),
            platform=PlatformCredentials(
                resend_api_key=env("RESEND_API_KEY"),
                twilio_account_sid=env("TWILIO_ACCOUNT_SID"),
                twilio_auth_token=env("TWILIO_AUTH_TOKEN"),
                twilio_from_number=env("TWILIO_FROM_NUMBER"),
            ),
            **overrides,
        )
