"""Provider id -> adapter class dispatch table."""
from __future__ import annotations

from hub.integrations.adapter_base import IntegrationAdapter
from hub.integrations.errors import UnknownProviderError
from hub.integrations.providers.email import ResendEmailAdapter
from hub.integrations.providers.gmail import GmailAdapter
from hub.integrations.providers.google_calendar import GoogleCalendarAdapter
from hub.integrations.providers.google_docs import GoogleDocsAdapter
from hub.integrations.providers.google_drive import GoogleDriveAdapter
from hub.integrations.providers.google_sheets import GoogleSheetsAdapter
from hub.integrations.providers.hubspot import HubSpotAdapter
from hub.integrations.providers.notion import NotionAdapter
from hub.integrations.providers.stripe import StripeAdapter
from hub.integrations.providers.twilio import TwilioSmsAdapter
from hub.integrations.webhooks import WebhookAdapter

PROVIDER_ADAPTERS: dict[str, type[IntegrationAdapter]] = {
    cls.provider: cls
    for cls in (
        ResendEmailAdapter,
        TwilioSmsAdapter,
        GoogleCalendarAdapter,
        HubSpotAdapter,
        StripeAdapter,
        GoogleDriveAdapter,
        GoogleDocsAdapter,
        GoogleSheetsAdapter,
        NotionAdapter,
        GmailAdapter,
        WebhookAdapter,
    )
}

# Ids written by older clients
PROVIDER_ALIASES = {
    "resend": "email",
    "sms": "twilio",
}


def normalize_provider(provider: str) -> str:
    """Canonical provider id: lower-case, hyphenated, aliases resolved."""
    key = (provider or "").strip().lower().replace("_", "-")
    return PROVIDER_ALIASES.get(key, key)


def get_adapter_class(provider: str) -> type[IntegrationAdapter]:
    try:
        return PROVIDER_ADAPTERS[normalize_provider(provider)]
    except KeyError:
        raise UnknownProviderError(provider) from None


__all__ = [
    "PROVIDER_ADAPTERS",
    "PROVIDER_ALIASES",
    "GmailAdapter",
    "GoogleCalendarAdapter",
    "GoogleDocsAdapter",
    "GoogleDriveAdapter",
    "GoogleSheetsAdapter",
    "HubSpotAdapter",
    "NotionAdapter",
    "ResendEmailAdapter",
    "StripeAdapter",
    "TwilioSmsAdapter",
    "WebhookAdapter",
    "get_adapter_class",
    "normalize_provider",
]
