"""Gmail adapter: read, search and send from the connected mailbox."""
from __future__ import annotations
from email.message import EmailMessage
from typing import Any
import asyncio
import base64

from hub.integrations.adapter_base import (
    AuthType,
    ConfigSchema,
    ConnectionTestResult,
    IntegrationType,
    require_params,
)
from hub.integrations.errors import IntegrationError
from hub.integrations.providers.google import GoogleOAuthAdapter


def _b64url_decode(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def build_raw_message(params: dict[str, Any]) -> str:
    """RFC 822 message encoded the way messages.send expects (base64url, no padding)."""
    msg = EmailMessage()
    msg["To"] = params["to"]
    if params.get("cc"):
        msg["Cc"] = params["cc"]
    if params.get("bcc"):
        msg["Bcc"] = params["bcc"]
    msg["Subject"] = params.get("subject", "")
    msg.set_content(params.get("body", ""), subtype="html")
    return base64.urlsafe_b64encode(msg.as_bytes()).decode("ascii").rstrip("=")


def parse_message(message: dict[str, Any]) -> dict[str, Any]:
    payload = message.get("payload") or {}
    headers = {h.get("name", "").lower(): h.get("value", "") for h in payload.get("headers", [])}

    body = ""
    if (payload.get("body") or {}).get("data"):
        body = _b64url_decode(payload["body"]["data"])
    else:
        parts = payload.get("parts") or []
        part = next((p for p in parts if p.get("mimeType") == "text/plain"), None) or next(
            (p for p in parts if p.get("mimeType") == "text/html"), None
        )
        if part and (part.get("body") or {}).get("data"):
            body = _b64url_decode(part["body"]["data"])

    labels = message.get("labelIds") or []
    return {
        "id": message.get("id"),
        "thread_id": message.get("threadId"),
        "from": headers.get("from", ""),
        "to": headers.get("to", ""),
        "subject": headers.get("subject", ""),
        "date": headers.get("date", ""),
        "snippet": message.get("snippet"),
        "body": body,
        "labels": labels,
        "is_unread": "UNREAD" in labels,
    }


class GmailAdapter(GoogleOAuthAdapter):
    provider = "gmail"
    integration_type = IntegrationType.EMAIL
    base_url = "https://gmail.googleapis.com/gmail/v1/users/me"
    test_path = "/profile"
    display_name = "Gmail"
    actions = {
        "get_recent_emails": "get_recent_emails",
        "get_emails": "get_recent_emails",
        "search_emails": "search_emails",
        "get_email": "get_email",
        "send_email": "send_email",
        "get_unread_count": "get_unread_count",
        "get_labels": "get_labels",
    }

    @classmethod
    def get_config_schema(cls) -> ConfigSchema:
        return ConfigSchema(type=AuthType.OAUTH, auth_url=f"/api/integrations/{cls.provider}/authorize")

    async def test_connection(self) -> ConnectionTestResult:
        try:
            profile = await self._request("GET", "/profile")
        except IntegrationError as exc:
            return ConnectionTestResult.failed(str(exc))
        return ConnectionTestResult.ok(f"Connected as {profile.get('emailAddress')}")

    async def _fetch_messages(self, query: str, limit: int) -> list[dict[str, Any]]:
        listing = await self._request("GET", "/messages", params={"maxResults": limit, "q": query})
        ids = [m["id"] for m in (listing or {}).get("messages", [])[:limit]]
        if not ids:
            return []
        return list(await asyncio.gather(*(self.get_email({"id": i}) for i in ids)))

    async def get_recent_emails(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        return await self._fetch_messages(params.get("query") or "in:inbox", int(params.get("limit") or 10))

    async def search_emails(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        return await self._fetch_messages(params.get("query") or "", 20)

    async def get_email(self, params: dict[str, Any]) -> dict[str, Any]:
        require_params(self.provider, "get_email", params, "id")
        message = await self._request("GET", f"/messages/{params['id']}", params={"format": "full"})
        return parse_message(message)

    async def send_email(self, params: dict[str, Any]) -> dict[str, Any]:
        require_params(self.provider, "send_email", params, "to")
        data = await self._request("POST", "/messages/send", json={"raw": build_raw_message(params)})
        return {"success": True, "message_id": (data or {}).get("id")}

    async def get_unread_count(self, params: dict[str, Any]) -> int:
        data = await self._request("GET", "/messages", params={"maxResults": 1, "q": "is:unread"})
        return int((data or {}).get("resultSizeEstimate") or 0)

    async def get_labels(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        data = await self._request("GET", "/labels")
        return (data or {}).get("labels", [])
