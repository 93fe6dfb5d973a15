"""Outbound and inbound email through Resend.

Tenants may bring their own Resend key; otherwise the platform key is used.
Inbound events must carry X-Inbound-Signature, the hex HMAC-SHA256 of
X-Inbound-Timestamp + raw body keyed by INBOUND_EMAIL_SECRET.
"""
from __future__ import annotations
from datetime import datetime, timezone
from html import escape
from typing import Any
import hashlib
import hmac
import logging
import time

from hub.integrations.adapter_base import (
    AuthType,
    ConfigField,
    ConfigSchema,
    ConnectionTestResult,
    IntegrationType,
    require_params,
)
from hub.integrations.errors import AuthenticationError, ConfigurationError
from hub.integrations.providers.metered import MeteredAdapter

logger = logging.getLogger(__name__)

DEFAULT_SENDER_NAME = "Agent Hub"

SIGNATURE_HEADER = "X-Inbound-Signature"
TIMESTAMP_HEADER = "X-Inbound-Timestamp"
REPLAY_WINDOW_SECONDS = 300


def inbound_signature(secret: str, body: bytes, timestamp: str) -> str:
    return hmac.new(secret.encode("utf-8"), timestamp.encode("utf-8") + body, hashlib.sha256).hexdigest()


def verify_inbound_request(
    secret: str,
    body: bytes,
    headers: dict[str, str],
    now: float | None = None,
) -> bool:
    """Check the inbound signature and that the timestamp is within the replay window.

    *headers* must have lower-case keys (as ``dict(request.headers)`` does).
    """
    if not secret:
        raise ConfigurationError(
            "INBOUND_EMAIL_SECRET is not set; inbound email cannot be verified", provider="email"
        )
    signature = headers.get(SIGNATURE_HEADER.lower())
    timestamp = headers.get(TIMESTAMP_HEADER.lower())
    if not signature or not timestamp:
        return False
    try:
        sent_at = int(timestamp)
    except ValueError:
        return False
    if abs((now or time.time()) - sent_at) > REPLAY_WINDOW_SECONDS:
        logger.warning("Rejecting inbound email with stale timestamp %s", timestamp)
        return False
    return hmac.compare_digest(inbound_signature(secret, body, timestamp), signature)


class ResendEmailAdapter(MeteredAdapter):
    provider = "email"
    integration_type = IntegrationType.EMAIL
    auth_type = AuthType.API_KEY
    channel = "email"
    base_url = "https://api.resend.com"
    actions = {
        "send_email": "send_email",
        "parse_inbound": "parse_inbound",
    }

    @classmethod
    def get_config_schema(cls) -> ConfigSchema:
        return ConfigSchema(
            type=AuthType.API_KEY,
            auth_url="https://resend.com/domains",
            fields=[
                ConfigField(
                    key="from_email",
                    label="From Email Address",
                    type="email",
                    required=True,
                    description="Address to send from. Must be on a domain verified with Resend.",
                    placeholder="support@yourcompany.com",
                ),
                ConfigField(
                    key="from_name",
                    label="From Name",
                    description="Display name for outgoing emails",
                    placeholder="Support Team",
                ),
                ConfigField(
                    key="api_key",
                    label="Custom Resend API Key (Optional)",
                    type="password",
                    description="Leave empty to use the platform email service.",
                    placeholder="re_xxxxxxxxxxxx",
                ),
            ],
        )

    # --- Credentials ---

    def _api_key(self) -> str:
        key = self.credentials.get("api_key") or self.settings.platform.resend_api_key
        if not key:
            raise ConfigurationError("Resend API key not configured (platform or custom)", provider=self.provider)
        return key

    async def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key()}"}

    async def authenticate(self, credentials: dict[str, Any]) -> None:
        if not credentials.get("from_email"):
            raise AuthenticationError("A from_email address is required", provider=self.provider)
        custom_key = credentials.get("api_key")
        if custom_key:
            if not custom_key.startswith("re_"):
                raise AuthenticationError("Invalid Resend API key format", provider=self.provider)
        elif not self.settings.platform.resend_api_key:
            raise ConfigurationError("Platform Resend API key is not configured", provider=self.provider)

    async def test_connection(self) -> ConnectionTestResult:
        # Resend has no side-effect-free verification endpoint; check what we can
        if not self.credentials.get("from_email"):
            return ConnectionTestResult.failed("from_email is not configured")
        key = self.credentials.get("api_key") or self.settings.platform.resend_api_key
        if not key:
            return ConnectionTestResult.failed("No Resend API key available (platform or custom)")
        if not key.startswith("re_"):
            return ConnectionTestResult.failed("Invalid Resend API key format")
        source = "custom" if self.credentials.get("api_key") else "platform"
        return ConnectionTestResult.ok(f"Email configured (using {source} credentials)")

    # --- Actions ---

    def _default_sender(self) -> str:
        name = self.credentials.get("from_name") or DEFAULT_SENDER_NAME
        return f"{name} <{self.credentials.get('from_email')}>"

    async def send_email(self, params: dict[str, Any], *, billable: bool = True) -> dict[str, Any]:
        """Send one email.

        ``billable`` is keyword-only so it cannot arrive through action params;
        only internal callers may skip the plan limit.
        """
        require_params(self.provider, "send_email", params, "to")
        to = params["to"]
        recipients = to if isinstance(to, list) else [to]

        if billable:
            await self._check_limit()

        body = params.get("body") or params.get("text") or ""
        data = await self._request(
            "POST",
            "/emails",
            json={
                "from": params.get("from") or self._default_sender(),
                "to": recipients,
                "subject": params.get("subject", ""),
                "text": body,
                "html": params.get("html") or body,
            },
        )
        message_id = (data or {}).get("id")

        await self._record_usage(
            recipient=recipients[0],
            sender=self.credentials.get("from_email"),
            agent_id=params.get("agent_id"),
            provider_message_id=message_id,
            billable=billable,
        )
        return {"success": True, "message_id": message_id}

    async def parse_inbound(self, params: dict[str, Any]) -> dict[str, Any]:
        email = params.get("email_data") or params
        to = email.get("to") or []
        return {
            "from": email.get("from"),
            "to": to if isinstance(to, list) else [to],
            "subject": email.get("subject", ""),
            "body": email.get("text", ""),
            "html": email.get("html"),
            "attachments": email.get("attachments") or [],
            "timestamp": email.get("timestamp"),
        }

    # --- Inbound ---

    def verify_webhook_signature(
        self, url: str, params: dict[str, Any], headers: dict[str, str], body: bytes = b""
    ) -> bool:
        return verify_inbound_request(self.settings.inbound_email_secret, body, headers)

    async def handle_webhook(self, payload: dict[str, Any]) -> dict[str, Any]:
        email = await self.parse_inbound(payload)
        if not email["to"]:
            return {"handled": False, "reason": "no recipient"}

        agent, reply = await self._route_inbound(
            email["to"][0],
            {
                "type": "email",
                "from": email["from"],
                "to": email["to"],
                "subject": email["subject"],
                "body": email["body"],
                "html": email["html"],
                "attachments": email["attachments"],
                "timestamp": email["timestamp"] or datetime.now(timezone.utc).isoformat(),
            },
        )
        if agent is None:
            return {"handled": False, "reason": "no agent"}

        if reply:
            subject = email["subject"]
            if not subject.startswith("Re:"):
                subject = f"Re: {subject}"
            await self.send_email(
                {
                    "to": email["from"],
                    "subject": subject,
                    "body": reply,
                    "html": format_reply_html(reply),
                    "agent_id": agent["id"],
                }
            )
        logger.info("Inbound email for agent %s processed (replied=%s)", agent["id"], bool(reply))
        return {"handled": True, "agent_id": agent["id"], "replied": bool(reply)}


def format_reply_html(message: str) -> str:
    body = escape(message).replace("\n", "<br>")
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">'
        f'<p style="color: #333; line-height: 1.6; margin: 0;">{body}</p>'
        "</div>"
    )
