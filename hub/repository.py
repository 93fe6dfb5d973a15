"""Async repository pattern for database access.

Generic base repository with tenant-isolated CRUD. The integration layer
subclasses it for integration rows, agents and usage events.
"""

from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hub.models.base import Base

# ---------------------------------------------------------------------------
# Type variable for model classes
# ---------------------------------------------------------------------------

ModelT = TypeVar("ModelT", bound=Base)


def as_uuid(item_id: str | UUID) -> UUID | None:
    """Coerce a path/str id to UUID; malformed ids resolve to None."""
    if isinstance(item_id, UUID):
        return item_id
    try:
        return UUID(str(item_id))
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Base repository
# ---------------------------------------------------------------------------

class BaseRepository(Generic[ModelT]):
    """Generic async repository with tenant-isolated CRUD.

    Subclass and set `model` to your SQLAlchemy model::

        class IntegrationRepository(BaseRepository[Integration]):
            model = Integration
    """

    model: type[ModelT]

    def __init__(self, session: AsyncSession):
        self.session = session

    # -- Get by ID --

    async def _load(self, item_id: str | UUID, tenant_id: str | None) -> ModelT | None:
        key = as_uuid(item_id)
        if key is None:
            return None
        stmt = select(self.model).where(self.model.id == key)
        if tenant_id is not None:
            stmt = stmt.where(self.model.tenant_id == tenant_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, item_id: str | UUID, tenant_id: str) -> dict | None:
        """Get a single item by ID with tenant isolation."""
        row = await self._load(item_id, tenant_id)
        return row.to_dict() if row else None

    # -- Create --

    async def create(self, tenant_id: str, data: dict[str, Any]) -> dict:
        item = self.model(tenant_id=tenant_id, **data)
        self.session.add(item)
        await self.session.flush()
        return item.to_dict()

    # -- Update --

    async def update(
        self, item_id: str | UUID, tenant_id: str | None, data: dict[str, Any]
    ) -> dict | None:
        """Update an existing item. Returns None if not found.

        ``tenant_id=None`` skips the tenant check; only trusted internal
        callers (token persistence) pass it.
        """
        item = await self._load(item_id, tenant_id)
        if not item:
            return None

        for key, value in data.items():
            if hasattr(item, key) and key not in ("id", "tenant_id", "created_at"):
                setattr(item, key, value)

        await self.session.flush()
        return item.to_dict()

    # -- Delete --

    async def delete(self, item_id: str | UUID, tenant_id: str) -> bool:
        """Delete an item. Returns True if deleted, False if not found."""
        item = await self._load(item_id, tenant_id)
        if not item:
            return False

        await self.session.delete(item)
        await self.session.flush()
        return True
