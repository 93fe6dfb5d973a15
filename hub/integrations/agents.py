"""
Agent-side collaborators of the integration layer.

The hub does not run agents. It needs two things from the agent platform:
- AgentDirectory: look up an agent's allow-list and find the agent that owns
  an inbound email address or phone number
- AgentExecutor: run an agent on an inbound message and return its reply
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any
import logging

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from hub.integrations.errors import ConfigurationError, ProviderError
from hub.integrations.repository import AgentRepository, TenantRepository

logger = logging.getLogger(__name__)

# Trigger key holding the inbound address for each channel
TRIGGER_KEYS = {"email": "email_address", "sms": "phone_number"}


class AgentDirectory(ABC):
    @abstractmethod
    async def get_agent(self, agent_id: str, tenant_id: str) -> dict[str, Any] | None:
        """The agent row (with its allow-list config) if it belongs to *tenant_id*."""

    @abstractmethod
    async def find_by_trigger(self, channel: str, address: str) -> dict[str, Any] | None:
        """First active agent routed to *address* on *channel*, if any."""


class AgentExecutor(ABC):
    @abstractmethod
    async def execute(self, agent_id: str, message: dict[str, Any]) -> dict[str, Any]:
        """Run the agent; the reply text is under ``"message"`` when there is one."""


def trigger_matches(agent: dict[str, Any], channel: str, address: str) -> bool:
    key = TRIGGER_KEYS.get(channel)
    for trigger in agent.get("triggers") or []:
        if trigger.get("type") != channel:
            continue
        value = trigger.get(key) or (trigger.get("config") or {}).get(key)
        if value and str(value).lower() == address.lower():
            return True
    return False


class SqlAgentDirectory(AgentDirectory):
    def __init__(self, session: AsyncSession):
        self.agents = AgentRepository(session)
        self.tenants = TenantRepository(session)

    async def get_agent(self, agent_id: str, tenant_id: str) -> dict[str, Any] | None:
        return await self.agents.get(agent_id, tenant_id)

    async def find_by_trigger(self, channel: str, address: str) -> dict[str, Any] | None:
        active = await self.agents.list_active()
        for agent in active:
            if trigger_matches(agent, channel, address):
                return agent

        # Inbound mail to <anything>@<tenant-slug> goes to that tenant's first agent
        if channel == "email" and "@" in address:
            tenant = await self.tenants.get_by_slug(address.split("@", 1)[1].lower())
            if tenant:
                owned = [a for a in active if a["tenant_id"] == tenant["id"]]
                if owned:
                    return owned[0]

        logger.info("No agent routed for inbound %s to %s", channel, address)
        return None


class HttpAgentExecutor(AgentExecutor):
    """Runs agents through the agent runtime's HTTP API.

    POST {base_url}/api/agents/{agent_id}/run with the inbound message as JSON;
    the runtime answers ``{"message": "...", "actions": [...]}``.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not base_url:
            raise ConfigurationError("AGENT_RUNTIME_URL is not set; inbound messages cannot be routed")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def execute(self, agent_id: str, message: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}/api/agents/{agent_id}/run"
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
                resp = await client.post(url, json={"input": message})
        except httpx.HTTPError as exc:
            raise ProviderError("agent-runtime", str(exc) or type(exc).__name__) from exc
        if not resp.is_success:
            raise ProviderError("agent-runtime", resp.text[:300], status_code=resp.status_code)
        return resp.json()
