"""
Shared behaviour for metered, platform-backed channels (email, SMS).

- Usage limit check before every billable send
- Best-effort usage recording after a successful send
- Inbound routing: resolve the target agent, run it, hand back its reply
"""
from __future__ import annotations
from typing import Any, ClassVar
import logging

from hub.integrations.adapter_base import IntegrationAdapter
from hub.integrations.errors import ConfigurationError
from hub.integrations.usage import UsageRecord, UsageTracker

logger = logging.getLogger(__name__)


class MeteredAdapter(IntegrationAdapter):
    channel: ClassVar[str] = ""

    @property
    def usage(self) -> UsageTracker:
        if self.deps.usage is None:
            raise ConfigurationError(
                f"No usage tracker configured for metered provider '{self.provider}'",
                provider=self.provider,
            )
        return self.deps.usage

    async def _check_limit(self) -> None:
        await self.usage.check_limit(self.tenant_id, self.channel)

    async def _record_usage(self, **fields: Any) -> None:
        await self.usage.record(
            UsageRecord(
                tenant_id=self.tenant_id,
                channel=self.channel,
                integration_id=self.integration_id,
                **fields,
            )
        )

    async def _route_inbound(self, address: str, message: dict[str, Any]) -> tuple[dict | None, str | None]:
        """Run the agent that owns *address*; returns (agent, reply text)."""
        if self.deps.agents is None or self.deps.executor is None:
            raise ConfigurationError(
                "Inbound routing needs an agent directory and executor", provider=self.provider
            )
        agent = await self.deps.agents.find_by_trigger(self.channel, address)
        if agent is None:
            logger.info("No agent found for inbound %s to %s", self.channel, address)
            return None, None

        response = await self.deps.executor.execute(agent["id"], message)
        return agent, (response or {}).get("message")
