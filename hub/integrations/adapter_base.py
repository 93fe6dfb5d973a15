"""
Integration Hub Adapter Contract.

Every external service (email, SMS, calendar, CRM, payments, document
stores, outbound webhooks) is wrapped by an IntegrationAdapter subclass.
Provides:
- One dispatch table per adapter (action name -> coroutine)
- Uniform authenticate / test_connection / execute_action surface
- Declarative config schema for the connect form
- A shared httpx request helper that turns non-2xx responses into ProviderError
- Tracing span around every action
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, ClassVar
import logging

import httpx
from opentelemetry import trace
from pydantic import BaseModel, Field

from hub.config import HubSettings
from hub.integrations.errors import (
    AuthenticationError,
    IntegrationError,
    InvalidParamsError,
    ProviderError,
    UnknownActionError,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer("hub.integrations")


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class AuthType(str, Enum):
    OAUTH = "oauth"
    API_KEY = "api_key"
    CUSTOM = "custom"


class IntegrationType(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    CALENDAR = "calendar"
    CRM = "crm"
    PAYMENT = "payment"
    DOCUMENT = "document"
    STORAGE = "storage"
    WEBHOOK = "webhook"


class IntegrationStatus(str, Enum):
    CONNECTED = "connected"
    ERROR = "error"
    DISCONNECTED = "disconnected"


# ---------------------------------------------------------------------------
# Config schema (consumed by the connect form)
# ---------------------------------------------------------------------------

class ConfigField(BaseModel):
    key: str
    label: str
    type: str = "text"  # text, password, email, url
    required: bool = False
    description: str | None = None
    placeholder: str | None = None


class ConfigSchema(BaseModel):
    type: AuthType
    fields: list[ConfigField] = Field(default_factory=list)
    auth_url: str | None = None


# ---------------------------------------------------------------------------
# Records and results
# ---------------------------------------------------------------------------

@dataclass
class IntegrationRecord:
    """In-memory view of an integrations row with decrypted credentials."""
    id: str
    tenant_id: str
    provider: str
    type: str = ""
    status: str = IntegrationStatus.CONNECTED.value
    credentials: dict[str, Any] = field(default_factory=dict)
    config: dict[str, Any] = field(default_factory=dict)
    webhook_url: str | None = None
    name: str | None = None
    created_at: datetime | str | None = None
    updated_at: datetime | str | None = None


@dataclass
class ConnectionTestResult:
    """Unified result of test_connection for every provider."""
    success: bool
    message: str | None = None
    error: str | None = None

    @classmethod
    def ok(cls, message: str = "Connection successful") -> "ConnectionTestResult":
        return cls(success=True, message=message)

    @classmethod
    def failed(cls, error: str) -> "ConnectionTestResult":
        return cls(success=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.message:
            data["message"] = self.message
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class AdapterDeps:
    """Collaborators injected into every adapter.

    usage: UsageTracker for metered channels (email, SMS)
    agents: AgentDirectory used by inbound webhooks to find the target agent
    executor: AgentExecutor that runs an agent on an inbound message
    transport: optional httpx transport (tests pass httpx.MockTransport)
    """
    settings: HubSettings = field(default_factory=HubSettings)
    usage: Any = None
    agents: Any = None
    executor: Any = None
    transport: httpx.AsyncBaseTransport | None = None


ActionHandler = Callable[[dict[str, Any]], Awaitable[Any]]


# ---------------------------------------------------------------------------
# IntegrationAdapter
# ---------------------------------------------------------------------------

class IntegrationAdapter(ABC):
    """
    Base class for all provider adapters.

    Subclasses must set:
        provider: str                 - provider id stored on the row
        integration_type: IntegrationType
        auth_type: AuthType
        actions: dict[str, str]       - action name -> handler method name

    Handlers are coroutines taking the action's params dict.
    """

    provider: ClassVar[str] = ""
    integration_type: ClassVar[IntegrationType] = IntegrationType.WEBHOOK
    auth_type: ClassVar[AuthType] = AuthType.API_KEY
    base_url: ClassVar[str] = ""
    actions: ClassVar[dict[str, str]] = {}

    def __init__(self, record: IntegrationRecord, deps: AdapterDeps | None = None):
        self.record = record
        self.deps = deps or AdapterDeps()
        self.settings = self.deps.settings
        self.credentials: dict[str, Any] = dict(record.credentials or {})

    # --- Identity ---

    @property
    def integration_id(self) -> str:
        return self.record.id

    @property
    def tenant_id(self) -> str:
        return self.record.tenant_id

    # --- Contract ---

    @abstractmethod
    async def authenticate(self, credentials: dict[str, Any]) -> None:
        """Validate credentials; raise AuthenticationError/ConfigurationError on failure."""

    @abstractmethod
    async def test_connection(self) -> ConnectionTestResult:
        """Cheap, side-effect-free call proving the stored credentials work."""

    @classmethod
    @abstractmethod
    def get_config_schema(cls) -> ConfigSchema:
        ...

    @classmethod
    def get_capabilities(cls) -> list[str]:
        return list(cls.actions)

    async def handle_webhook(self, payload: dict[str, Any]) -> dict[str, Any]:
        raise IntegrationError(
            f"Provider '{self.provider}' does not accept inbound webhooks",
            provider=self.provider,
        )

    def verify_webhook_signature(
        self, url: str, params: dict[str, Any], headers: dict[str, str], body: bytes = b""
    ) -> bool:
        """Inbound requests are refused unless the provider overrides this to verify them."""
        return False

    @property
    def accepts_webhooks(self) -> bool:
        return type(self).handle_webhook is not IntegrationAdapter.handle_webhook

    async def execute_action(self, action: str, params: dict[str, Any] | None = None) -> Any:
        """Single dynamic-dispatch entry point used by the agent engine."""
        method_name = self.actions.get(action)
        if method_name is None:
            raise UnknownActionError(action, self.provider)
        handler: ActionHandler = getattr(self, method_name)

        with tracer.start_as_current_span(
            f"integration.{self.provider}.{action}",
            attributes={
                "integration.provider": self.provider,
                "integration.id": self.integration_id,
                "tenant.id": self.tenant_id,
            },
        ):
            logger.debug("Executing %s.%s for tenant %s", self.provider, action, self.tenant_id)
            return await handler(params or {})

    # --- HTTP ---

    def _client(self, timeout: float | None = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self.deps.transport,
            timeout=timeout if timeout is not None else self.settings.request_timeout_seconds,
        )

    async def _auth_headers(self) -> dict[str, str]:
        return {}

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send one authenticated request and return the raw response."""
        headers = {**await self._auth_headers(), **kwargs.pop("headers", {})}
        if not url.startswith("http"):
            url = f"{self.base_url.rstrip('/')}/{url.lstrip('/')}"
        try:
            async with self._client() as client:
                resp = await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise ProviderError(self.provider, str(exc) or type(exc).__name__) from exc

        if resp.status_code == 401:
            self._on_unauthorized(resp)
        if not resp.is_success:
            raise ProviderError(self.provider, _error_detail(resp), status_code=resp.status_code)
        return resp

    def _on_unauthorized(self, resp: httpx.Response) -> None:
        raise AuthenticationError(
            f"{self.provider} rejected the stored credentials: {_error_detail(resp)}",
            provider=self.provider,
        )

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        """Send a request and decode the JSON body (None for empty responses)."""
        resp = await self._send(method, url, **kwargs)
        if resp.status_code == 204 or not resp.content:
            return None
        if "json" in resp.headers.get("content-type", ""):
            return resp.json()
        return resp.text


def _error_detail(resp: httpx.Response) -> str:
    """Best-effort provider message for error reporting."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:500] or resp.reason_phrase
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict):
            return str(err.get("message") or err)
        if err:
            return str(body.get("error_description") or err)
        if body.get("message"):
            return str(body["message"])
    return str(body)[:500]


def require_params(provider: str, action: str, params: dict[str, Any], *keys: str) -> None:
    missing = [k for k in keys if params.get(k) in (None, "")]
    if missing:
        raise InvalidParamsError(
            f"{action} requires {', '.join(repr(k) for k in missing)}", provider=provider
        )
