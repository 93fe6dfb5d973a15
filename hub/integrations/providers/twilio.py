"""SMS/MMS through the Twilio Messages API.

Custom Twilio accounts are optional; without one the platform account and
number are used.
"""
from __future__ import annotations
from datetime import datetime, timezone
from typing import Any
import base64
import hashlib
import hmac
import logging

from hub.integrations.adapter_base import (
    AuthType,
    ConfigField,
    ConfigSchema,
    ConnectionTestResult,
    IntegrationType,
    require_params,
)
from hub.integrations.errors import (
    AuthenticationError,
    ConfigurationError,
    IntegrationError,
)
from hub.integrations.providers.metered import MeteredAdapter

logger = logging.getLogger(__name__)

CUSTOM_FIELDS = ("account_sid", "auth_token", "from_number")


def validate_custom_credentials(credentials: dict[str, Any]) -> None:
    """Format checks for a tenant-supplied Twilio account."""
    if not str(credentials.get("account_sid") or "").startswith("AC"):
        raise AuthenticationError("Invalid Account SID format. Must start with 'AC'", provider="twilio")
    if not credentials.get("auth_token"):
        raise AuthenticationError("Auth Token required when using custom Account SID", provider="twilio")
    if not str(credentials.get("from_number") or "").startswith("+"):
        raise AuthenticationError(
            "Phone number must be in E.164 format (e.g., +15551234567)", provider="twilio"
        )


class TwilioSmsAdapter(MeteredAdapter):
    provider = "twilio"
    integration_type = IntegrationType.SMS
    auth_type = AuthType.API_KEY
    channel = "sms"
    base_url = "https://api.twilio.com/2010-04-01"
    actions = {
        "send_sms": "send_sms",
        "send_mms": "send_mms",
        "get_sms_history": "get_sms_history",
    }

    @classmethod
    def get_config_schema(cls) -> ConfigSchema:
        return ConfigSchema(
            type=AuthType.API_KEY,
            auth_url="https://www.twilio.com/console",
            fields=[
                ConfigField(
                    key="account_sid",
                    label="Custom Account SID (Optional)",
                    description="Leave empty to use the platform SMS service.",
                    placeholder="ACxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxx",
                ),
                ConfigField(
                    key="auth_token",
                    label="Custom Auth Token (Optional)",
                    type="password",
                    description="Required when a custom Account SID is set.",
                ),
                ConfigField(
                    key="from_number",
                    label="Custom From Phone Number (Optional)",
                    description="A Twilio number on your account, E.164 format (+15551234567).",
                    placeholder="+15551234567",
                ),
            ],
        )

    # --- Credentials ---

    @property
    def uses_custom_account(self) -> bool:
        return bool(self.credentials.get("account_sid"))

    def _account(self) -> tuple[str, str]:
        platform = self.settings.platform
        sid = self.credentials.get("account_sid") or platform.twilio_account_sid
        token = self.credentials.get("auth_token") or platform.twilio_auth_token
        if not sid or not token:
            raise ConfigurationError(
                "Twilio not configured. Provide credentials or set TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN.",
                provider=self.provider,
            )
        return sid, token

    def _from_number(self) -> str:
        number = self.credentials.get("from_number") or self.settings.platform.twilio_from_number
        if not number:
            raise ConfigurationError(
                "Twilio from number not configured. Provide from_number or set TWILIO_FROM_NUMBER.",
                provider=self.provider,
            )
        return number

    async def _twilio(self, method: str, path: str, **kwargs: Any) -> Any:
        sid, token = self._account()
        return await self._request(method, f"/Accounts/{sid}{path}", auth=(sid, token), **kwargs)

    async def authenticate(self, credentials: dict[str, Any]) -> None:
        if not any(credentials.get(k) for k in CUSTOM_FIELDS):
            platform = self.settings.platform
            if not (platform.twilio_account_sid and platform.twilio_auth_token and platform.twilio_from_number):
                raise ConfigurationError("Platform Twilio account is not configured", provider=self.provider)
            return

        validate_custom_credentials(credentials)
        sid, token = credentials["account_sid"], credentials["auth_token"]
        try:
            await self._request("GET", f"/Accounts/{sid}.json", auth=(sid, token))
        except IntegrationError as exc:
            raise AuthenticationError(
                "Failed to authenticate with Twilio. Check your credentials.", provider=self.provider
            ) from exc

    async def test_connection(self) -> ConnectionTestResult:
        try:
            sid, _ = self._account()
            from_number = self._from_number()
        except ConfigurationError as exc:
            return ConnectionTestResult.failed(str(exc))
        if not sid.startswith("AC"):
            return ConnectionTestResult.failed("Invalid Account SID format")
        if not from_number.startswith("+"):
            return ConnectionTestResult.failed("Invalid phone number format")
        try:
            await self._twilio("GET", ".json")
        except IntegrationError as exc:
            return ConnectionTestResult.failed(str(exc))
        source = "custom" if self.uses_custom_account else "platform"
        return ConnectionTestResult.ok(f"Twilio connection verified (using {source} credentials)")

    # --- Actions ---

    async def send_sms(self, params: dict[str, Any]) -> dict[str, Any]:
        require_params(self.provider, "send_sms", params, "to")
        body = params.get("message") or params.get("body") or ""
        from_number = params.get("from") or self._from_number()
        media = params.get("media_url") or params.get("mediaUrl") or []
        if isinstance(media, str):
            media = [media]

        await self._check_limit()

        form: dict[str, Any] = {"From": from_number, "To": params["to"], "Body": body}
        if media:
            form["MediaUrl"] = media
        data = await self._twilio("POST", "/Messages.json", data=form)

        await self._record_usage(
            recipient=params["to"],
            sender=from_number,
            agent_id=params.get("agent_id"),
            provider_message_id=data.get("sid"),
        )
        return {"success": True, "message_sid": data.get("sid"), "status": data.get("status")}

    async def send_mms(self, params: dict[str, Any]) -> dict[str, Any]:
        if not (params.get("media_url") or params.get("mediaUrl")):
            require_params(self.provider, "send_mms", params, "media_url")
        return await self.send_sms(params)

    async def get_sms_history(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        query: dict[str, Any] = {"PageSize": params.get("limit") or 20}
        if params.get("date_from"):
            query["DateSent>"] = _date_param(params["date_from"])
        if params.get("date_to"):
            query["DateSent<"] = _date_param(params["date_to"])
        data = await self._twilio("GET", "/Messages.json", params=query)
        return [
            {
                "sid": m.get("sid"),
                "from": m.get("from"),
                "to": m.get("to"),
                "body": m.get("body"),
                "status": m.get("status"),
                "direction": m.get("direction"),
                "date_sent": m.get("date_sent"),
                "date_created": m.get("date_created"),
                "num_media": m.get("num_media"),
            }
            for m in data.get("messages", [])
        ]

    # --- Inbound ---

    def verify_webhook_signature(
        self, url: str, params: dict[str, Any], headers: dict[str, str], body: bytes = b""
    ) -> bool:
        """Check X-Twilio-Signature: base64 HMAC-SHA1 of the URL plus sorted form params."""
        signature = headers.get("x-twilio-signature")
        if not signature:
            return False
        _, token = self._account()
        expected = twilio_signature(token, url, params)
        return hmac.compare_digest(expected, signature)

    async def handle_webhook(self, payload: dict[str, Any]) -> dict[str, Any]:
        sender, recipient, body = payload.get("From"), payload.get("To"), payload.get("Body", "")
        if not sender or not recipient:
            return {"handled": False, "reason": "missing From/To"}

        await self._record_usage(
            recipient=recipient,
            sender=sender,
            provider_message_id=payload.get("MessageSid"),
            direction="inbound",
            billable=False,
        )
        agent, reply = await self._route_inbound(
            recipient,
            {
                "type": "sms",
                "from": sender,
                "to": recipient,
                "message": body,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )
        if agent is None:
            return {"handled": False, "reason": "no agent"}

        if reply:
            await self.send_sms({"to": sender, "message": reply, "agent_id": agent["id"]})
        logger.info("Inbound SMS for agent %s processed (replied=%s)", agent["id"], bool(reply))
        return {"handled": True, "agent_id": agent["id"], "replied": bool(reply)}


def _date_param(value: Any) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    return str(value)[:10]


def twilio_signature(auth_token: str, url: str, params: dict[str, Any]) -> str:
    data = url + "".join(f"{k}{params[k]}" for k in sorted(params))
    digest = hmac.new(auth_token.encode("utf-8"), data.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")
