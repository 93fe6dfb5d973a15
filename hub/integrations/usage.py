"""
Integration Hub metered-channel limits.

Email and SMS sends are counted per tenant per calendar month against the
tenant's plan:
- PLAN_LIMITS: monthly ceilings per plan (-1 unlimited, 0 unavailable)
- UsageTracker: check before sending, record after sending
- SqlUsageTracker: tenants + usage_events tables
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from hub.integrations.errors import UsageLimitExceeded
from hub.integrations.repository import TenantRepository, UsageRepository

logger = logging.getLogger(__name__)

UNLIMITED = -1

DEFAULT_PLAN = "free"

PLAN_LIMITS: dict[str, dict[str, int]] = {
    "free": {"email": 10, "sms": 0},
    "starter": {"email": 100, "sms": 20},
    "pro": {"email": 500, "sms": 100},
    "business": {"email": 2000, "sms": 500},
    "enterprise": {"email": UNLIMITED, "sms": UNLIMITED},
}

_CHANNEL_NOUNS = {"email": ("Email", "emails"), "sms": ("SMS", "SMS")}


def get_plan_limit(plan: str | None, channel: str) -> int:
    limits = PLAN_LIMITS.get(plan or DEFAULT_PLAN, PLAN_LIMITS[DEFAULT_PLAN])
    return limits.get(channel, 0)


def month_start(now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


@dataclass
class UsageRecord:
    """One message sent (or received) on a metered channel."""
    tenant_id: str
    channel: str
    recipient: str
    integration_id: str | None = None
    sender: str | None = None
    agent_id: str | None = None
    provider_message_id: str | None = None
    direction: str = "outbound"
    billable: bool = True


# ---------------------------------------------------------------------------
# Tracker
# ---------------------------------------------------------------------------

class UsageTracker(ABC):
    """Plan lookup, monthly counting and usage recording."""

    @abstractmethod
    async def get_plan(self, tenant_id: str) -> str:
        ...

    @abstractmethod
    async def count_this_month(self, tenant_id: str, channel: str) -> int:
        ...

    @abstractmethod
    async def _write(self, record: UsageRecord) -> None:
        ...

    async def check_limit(self, tenant_id: str, channel: str) -> int:
        """Raise UsageLimitExceeded when the tenant may not send on *channel*.

        Returns the current month's count.
        """
        plan = await self.get_plan(tenant_id)
        limit = get_plan_limit(plan, channel)
        label, plural = _CHANNEL_NOUNS.get(channel, (channel, channel))

        if limit == 0:
            raise UsageLimitExceeded(
                f"{label} is not available on your {plan} plan. Please upgrade to use {label} features.",
                channel=channel, used=0, limit=0, plan=plan,
            )

        used = await self.count_this_month(tenant_id, channel)
        if limit != UNLIMITED and used >= limit:
            raise UsageLimitExceeded(
                f"{label} limit reached ({used}/{limit}). Please upgrade your plan to send more {plural}.",
                channel=channel, used=used, limit=limit, plan=plan,
            )
        return used

    async def record(self, record: UsageRecord) -> None:
        """Best-effort write; a tracking failure never fails the send."""
        try:
            await self._write(record)
        except Exception:
            logger.exception(
                "Failed to record %s usage for tenant %s", record.channel, record.tenant_id
            )


class SqlUsageTracker(UsageTracker):
    """Usage rows share the request's session.

    Each insert runs in its own SAVEPOINT so a failed write rolls back alone
    and leaves the request's transaction (sent message, refreshed tokens)
    committable.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.tenants = TenantRepository(session)
        self.events = UsageRepository(session)

    async def get_plan(self, tenant_id: str) -> str:
        tenant = await self.tenants.get(tenant_id)
        return (tenant or {}).get("subscription_plan") or DEFAULT_PLAN

    async def count_this_month(self, tenant_id: str, channel: str) -> int:
        return await self.events.count_since(tenant_id, channel, month_start())

    async def _write(self, record: UsageRecord) -> None:
        async with self.session.begin_nested():
            await self.events.create(
                record.tenant_id,
                {
                    "channel": record.channel,
                    "direction": record.direction,
                    "integration_id": record.integration_id,
                    "agent_id": record.agent_id,
                    "recipient": record.recipient,
                    "sender": record.sender,
                    "provider_message_id": record.provider_message_id,
                    "billable": record.billable,
                },
            )
