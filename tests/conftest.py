"""Shared fixtures: in-memory database, settings and fake collaborators."""
from typing import Any

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from hub.config import (
    GoogleOAuthSettings,
    HubSettings,
    HubSpotOAuthSettings,
    NotionOAuthSettings,
    PlatformCredentials,
)
from hub.integrations.adapter_base import AdapterDeps, IntegrationRecord
from hub.integrations.agents import AgentDirectory, AgentExecutor, trigger_matches
from hub.integrations.usage import UsageRecord, UsageTracker
from hub.models import integration  # noqa: F401
from hub.models.base import Base

TENANT = "tenant-1"


def make_settings(**overrides: Any) -> HubSettings:
    values: dict[str, Any] = {
        "encryption_key": "test-encryption-key",
        "app_url": "https://hub.test",
        "google": GoogleOAuthSettings(client_id="google-client", client_secret="google-secret"),
        "hubspot": HubSpotOAuthSettings(client_id="hubspot-client", client_secret="hubspot-secret"),
        "notion": NotionOAuthSettings(client_id="notion-client", client_secret="notion-secret"),
        "platform": PlatformCredentials(
            resend_api_key="re_platform",
            twilio_account_sid="ACplatform",
            twilio_auth_token="platform-token",
            twilio_from_number="+15550001111",
        ),
    }
    values.update(overrides)
    return HubSettings(**values)


@pytest.fixture
def settings() -> HubSettings:
    return make_settings()


@pytest_asyncio.fixture
async def session():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as db:
        yield db
    await engine.dispose()


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeUsage(UsageTracker):
    def __init__(self, plan: str = "pro", counts: dict[str, int] | None = None):
        self.plan = plan
        self.counts = dict(counts or {})
        self.records: list[UsageRecord] = []

    async def get_plan(self, tenant_id: str) -> str:
        return self.plan

    async def count_this_month(self, tenant_id: str, channel: str) -> int:
        return self.counts.get(channel, 0)

    async def _write(self, record: UsageRecord) -> None:
        self.records.append(record)


class FakeAgents(AgentDirectory):
    def __init__(self, agents: list[dict] | None = None):
        self.agents = list(agents or [])

    async def get_agent(self, agent_id: str, tenant_id: str) -> dict | None:
        return next(
            (a for a in self.agents if a["id"] == agent_id and a.get("tenant_id", tenant_id) == tenant_id),
            None,
        )

    async def find_by_trigger(self, channel: str, address: str) -> dict | None:
        return next((a for a in self.agents if trigger_matches(a, channel, address)), None)


class FakeExecutor(AgentExecutor):
    def __init__(self, reply: str | None = "Thanks, we got your message."):
        self.reply = reply
        self.calls: list[tuple[str, dict]] = []

    async def execute(self, agent_id: str, message: dict) -> dict:
        self.calls.append((agent_id, message))
        return {"message": self.reply, "actions": []}


class MockApi:
    """Route table on top of httpx.MockTransport that records every request.

    Routes are ``(method, path_suffix) -> httpx.Response | callable(request)``,
    matched in insertion order.
    """

    def __init__(self, routes: dict | None = None):
        self.routes = dict(routes or {})
        self.requests: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for (method, suffix), answer in self.routes.items():
            if request.method == method and request.url.path.endswith(suffix):
                return answer(request) if callable(answer) else answer
        return httpx.Response(404, json={"error": {"message": f"no route for {request.url.path}"}})


def make_adapter(
    cls,
    settings: HubSettings,
    credentials: dict | None = None,
    config: dict | None = None,
    api: MockApi | None = None,
    **deps: Any,
):
    record = IntegrationRecord(
        id="int-1",
        tenant_id=TENANT,
        provider=cls.provider,
        credentials=credentials or {},
        config=config or {},
    )
    return cls(record, AdapterDeps(settings=settings, transport=api.transport if api else None, **deps))
