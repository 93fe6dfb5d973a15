"""
Outbound webhooks.

WebhookAdapter delivers signed JSON events to one tenant-configured URL.
WebhookDispatcher fans an event out to every webhook destination of a
tenant, applying each destination's filter before any network call.

Payload shape::

    {"event_type": "agent.completed", "timestamp": "...Z",
     "tenant_id": "...", "integration_id": "...", "data": {...}}

Signature header: ``X-Webhook-Signature: sha256=<hex HMAC-SHA256(secret, body)>``
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol
from urllib.parse import urlparse
import asyncio
import hashlib
import hmac
import json
import logging

import httpx

from hub.integrations.adapter_base import (
    AuthType,
    ConfigField,
    ConfigSchema,
    ConnectionTestResult,
    IntegrationAdapter,
    IntegrationType,
    require_params,
)
from hub.integrations.errors import (
    AuthenticationError,
    ConfigurationError,
    IntegrationError,
    ProviderError,
)

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"
DEFAULT_EVENT_TYPES = ("agent.completed", "agent.failed")
STATUS_FILTERS = ("all", "success", "failure")


def sign_payload(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WebhookFilter:
    """Which events a destination receives.

    An empty agent_ids tuple means every agent.
    """
    event_types: tuple[str, ...] = DEFAULT_EVENT_TYPES
    agent_ids: tuple[str, ...] = ()
    status_filter: str = "all"

    @classmethod
    def from_credentials(cls, creds: dict[str, Any]) -> "WebhookFilter":
        status = creds.get("status_filter") or "all"
        if status not in STATUS_FILTERS:
            status = "all"
        # An explicit empty list subscribes to nothing
        event_types = creds.get("event_types")
        if event_types is None:
            event_types = DEFAULT_EVENT_TYPES
        return cls(
            event_types=tuple(event_types),
            agent_ids=tuple(creds.get("agent_ids") or ()),
            status_filter=status,
        )

    def matches(self, event_type: str, agent_id: str | None, success: bool | None) -> bool:
        if event_type not in self.event_types:
            return False
        if self.agent_ids and agent_id not in self.agent_ids:
            return False
        if self.status_filter == "success" and not success:
            return False
        if self.status_filter == "failure" and success:
            return False
        return True


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------

class WebhookAdapter(IntegrationAdapter):
    provider = "webhook"
    integration_type = IntegrationType.WEBHOOK
    auth_type = AuthType.CUSTOM
    actions = {
        "send": "send",
        "test": "test",
        "should_send": "should_send",
    }

    @classmethod
    def get_config_schema(cls) -> ConfigSchema:
        return ConfigSchema(
            type=AuthType.CUSTOM,
            fields=[
                ConfigField(
                    key="webhook_url",
                    label="Webhook URL",
                    type="url",
                    required=True,
                    placeholder="https://your-domain.com/webhook",
                    description="Where events are POSTed (Zapier, Make.com, or your own endpoint)",
                ),
                ConfigField(
                    key="webhook_secret",
                    label="Webhook Secret (Optional)",
                    type="password",
                    description=f"Adds an {SIGNATURE_HEADER} header so you can verify each delivery",
                ),
            ],
        )

    @property
    def url(self) -> str | None:
        return self.credentials.get("webhook_url") or self.record.webhook_url

    @property
    def filters(self) -> WebhookFilter:
        return WebhookFilter.from_credentials(self.credentials)

    async def authenticate(self, credentials: dict[str, Any]) -> None:
        url = credentials.get("webhook_url")
        if not url:
            raise AuthenticationError("Webhook URL is required", provider=self.provider)
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise AuthenticationError("Invalid webhook URL format", provider=self.provider)

    def should_send_event(self, event_type: str, agent_id: str | None, success: bool | None) -> bool:
        allowed = self.filters.matches(event_type, agent_id, success)
        if not allowed:
            logger.debug("Webhook %s filtered out %s (agent=%s)", self.integration_id, event_type, agent_id)
        return allowed

    def build_payload(self, event_type: str, data: dict[str, Any]) -> dict[str, Any]:
        return {
            "event_type": event_type,
            "timestamp": _timestamp(),
            "tenant_id": self.tenant_id,
            "integration_id": self.integration_id,
            "data": data,
        }

    async def send_webhook(self, payload: dict[str, Any]) -> None:
        url = self.url
        if not url:
            raise ConfigurationError("Webhook URL not configured", provider=self.provider)

        body = json.dumps(payload).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self.settings.webhook_user_agent,
        }
        secret = self.credentials.get("webhook_secret")
        if secret:
            headers[SIGNATURE_HEADER] = f"sha256={sign_payload(body, secret)}"

        try:
            async with self._client(timeout=self.settings.webhook_timeout_seconds) as client:
                resp = await client.post(url, content=body, headers=headers)
        except httpx.HTTPError as exc:
            raise ProviderError(self.provider, f"delivery failed: {str(exc) or type(exc).__name__}") from exc

        if not resp.is_success:
            raise ProviderError(
                self.provider,
                f"Webhook failed: {resp.status_code} {resp.reason_phrase}",
                status_code=resp.status_code,
            )
        logger.info("Webhook %s delivered %s (HTTP %s)", self.integration_id, payload.get("event_type"), resp.status_code)

    async def test_connection(self) -> ConnectionTestResult:
        payload = self.build_payload(
            "test", {"message": "This is a test webhook from Agent Hub", "test": True}
        )
        try:
            await self.send_webhook(payload)
        except IntegrationError as exc:
            return ConnectionTestResult.failed(str(exc))
        return ConnectionTestResult.ok("Test webhook delivered")

    # --- Actions ---

    async def send(self, params: dict[str, Any]) -> dict[str, Any]:
        require_params(self.provider, "send", params, "payload")
        await self.send_webhook(params["payload"])
        return {"success": True}

    async def test(self, params: dict[str, Any]) -> dict[str, Any]:
        return (await self.test_connection()).to_dict()

    async def should_send(self, params: dict[str, Any]) -> bool:
        return self.should_send_event(
            params.get("event_type", ""), params.get("agent_id"), params.get("success")
        )


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

class WebhookSource(Protocol):
    async def get_tenant_adapters(self, tenant_id: str, provider: str | None = None) -> list[IntegrationAdapter]:
        ...


@dataclass
class DeliveryResult:
    integration_id: str
    delivered: bool
    skipped: bool = False
    error: str | None = None


@dataclass
class DispatchSummary:
    event_type: str
    results: list[DeliveryResult] = field(default_factory=list)

    @property
    def delivered(self) -> int:
        return sum(1 for r in self.results if r.delivered)

    @property
    def failed(self) -> list[DeliveryResult]:
        return [r for r in self.results if r.error]


class WebhookDispatcher:
    """Sends one event to every matching webhook destination of a tenant.

    Delivery failures are logged and reported, never raised: a broken
    destination must not fail the agent run that produced the event.
    """

    def __init__(self, source: WebhookSource):
        self.source = source

    async def dispatch(self, tenant_id: str, event_type: str, data: dict[str, Any]) -> DispatchSummary:
        summary = DispatchSummary(event_type=event_type)
        adapters = await self.source.get_tenant_adapters(tenant_id, provider=WebhookAdapter.provider)
        destinations = [a for a in adapters if isinstance(a, WebhookAdapter)]
        if not destinations:
            logger.debug("No webhook destinations for tenant %s", tenant_id)
            return summary

        summary.results = list(
            await asyncio.gather(*(self._deliver(d, event_type, data) for d in destinations))
        )
        logger.info(
            "Dispatched %s for tenant %s: %d delivered, %d failed, %d skipped",
            event_type,
            tenant_id,
            summary.delivered,
            len(summary.failed),
            sum(1 for r in summary.results if r.skipped),
        )
        return summary

    async def _deliver(self, adapter: WebhookAdapter, event_type: str, data: dict[str, Any]) -> DeliveryResult:
        if not adapter.should_send_event(event_type, data.get("agent_id"), data.get("success")):
            return DeliveryResult(adapter.integration_id, delivered=False, skipped=True)
        try:
            await adapter.send_webhook(adapter.build_payload(event_type, data))
        except IntegrationError as exc:
            logger.warning("Webhook %s failed for %s: %s", adapter.integration_id, event_type, exc)
            return DeliveryResult(adapter.integration_id, delivered=False, error=str(exc))
        return DeliveryResult(adapter.integration_id, delivered=True)

    async def agent_completed(
        self,
        tenant_id: str,
        agent_id: str,
        agent_name: str,
        input_message: dict[str, Any],
        output: dict[str, Any],
        duration_ms: int | None = None,
    ) -> DispatchSummary:
        return await self.dispatch(
            tenant_id,
            "agent.completed",
            {
                "agent_id": agent_id,
                "agent_name": agent_name,
                "input_type": input_message.get("type"),
                "message": output.get("message"),
                "actions_count": len(output.get("actions") or []),
                "duration_ms": duration_ms,
                "success": True,
            },
        )

    async def agent_failed(
        self,
        tenant_id: str,
        agent_id: str,
        agent_name: str,
        input_message: dict[str, Any],
        error: str,
    ) -> DispatchSummary:
        return await self.dispatch(
            tenant_id,
            "agent.failed",
            {
                "agent_id": agent_id,
                "agent_name": agent_name,
                "input_type": input_message.get("type"),
                "error_message": error,
                "success": False,
            },
        )
