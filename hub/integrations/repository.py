"""Repositories for integration rows, agents, tenants and usage events.

All rows are returned as dicts via ``to_dict()``. Integration credentials stay
encrypted at this layer; the registry owns the cipher.
"""

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hub.models.integration import Agent, Integration, Tenant, UsageEvent
from hub.repository import BaseRepository


class IntegrationRepository(BaseRepository[Integration]):
    model = Integration

    async def list_for_tenant(
        self, tenant_id: str, status: str | None = None, provider: str | None = None
    ) -> list[dict]:
        """Rows for a tenant, most recently updated first."""
        stmt = select(Integration).where(Integration.tenant_id == tenant_id)
        if status:
            stmt = stmt.where(Integration.status == status)
        if provider:
            stmt = stmt.where(Integration.provider == provider)
        stmt = stmt.order_by(Integration.updated_at.desc())
        result = await self.session.execute(stmt)
        return [r.to_dict() for r in result.scalars().all()]

    async def get_by_id(self, integration_id: str) -> dict | None:
        """Unscoped lookup for inbound webhooks, which carry no tenant header."""
        row = await self._load(integration_id, None)
        return row.to_dict() if row else None

    async def save_credentials(self, integration_id: str, encrypted: str) -> dict | None:
        """Single-row credentials write (last writer wins)."""
        return await self.update(integration_id, None, {"credentials": encrypted})

    async def set_status(
        self, integration_id: str, tenant_id: str, status: str, error: str | None = None
    ) -> dict | None:
        return await self.update(
            integration_id, tenant_id, {"status": status, "last_error": error}
        )


class AgentRepository(BaseRepository[Agent]):
    model = Agent

    async def list_active(self, tenant_id: str | None = None) -> list[dict]:
        stmt = select(Agent).where(Agent.status == "active")
        if tenant_id:
            stmt = stmt.where(Agent.tenant_id == tenant_id)
        stmt = stmt.order_by(Agent.created_at)
        result = await self.session.execute(stmt)
        return [r.to_dict() for r in result.scalars().all()]


class TenantRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, tenant_id: str) -> dict | None:
        row = await self.session.get(Tenant, tenant_id)
        return row.to_dict() if row else None

    async def get_by_slug(self, slug: str) -> dict | None:
        result = await self.session.execute(select(Tenant).where(Tenant.slug == slug))
        row = result.scalar_one_or_none()
        return row.to_dict() if row else None

    async def create(self, tenant_id: str, name: str, slug: str | None = None, plan: str = "free") -> dict:
        row = Tenant(id=tenant_id, name=name, slug=slug, subscription_plan=plan)
        self.session.add(row)
        await self.session.flush()
        return row.to_dict()


class UsageRepository(BaseRepository[UsageEvent]):
    model = UsageEvent

    async def count_since(
        self,
        tenant_id: str,
        channel: str,
        since: datetime,
        billable_only: bool = True,
    ) -> int:
        """Outbound events on *channel* since *since*."""
        stmt = select(func.count()).select_from(UsageEvent).where(
            UsageEvent.tenant_id == tenant_id,
            UsageEvent.channel == channel,
            UsageEvent.direction == "outbound",
            UsageEvent.created_at >= since,
        )
        if billable_only:
            stmt = stmt.where(UsageEvent.billable.is_(True))
        result = await self.session.execute(stmt)
        return result.scalar() or 0

