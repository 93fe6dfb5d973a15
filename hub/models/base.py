"""Base model and mixins for all SQLAlchemy models.

Provides:
- Base: Declarative base class for all models
- TenantMixin: Adds tenant_id, UUID primary key, and timestamps

Column types are dialect-neutral (``Uuid``, ``JSON``) so the same models run
on PostgreSQL in production and SQLite in tests.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, String, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Declarative base for all hub models."""
    pass


class TenantMixin:
    """Multi-tenant isolation and standard audit columns.

    Adds:
    - id: UUID primary key (auto-generated)
    - tenant_id: Indexed string for tenant isolation
    - created_at: Timestamp set on insert
    - updated_at: Timestamp updated on every change
    """

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    tenant_id: Mapped[str] = mapped_column(
        String(64),
        index=True,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
