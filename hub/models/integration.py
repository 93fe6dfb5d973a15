"""SQLAlchemy models for tenants, agents, integrations and usage.

Each tenant-owned model uses TenantMixin. ``to_dict()`` is the serialisation
interface used by repositories; integration rows expose their credentials
only in encrypted form.
"""

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from hub.models.base import Base, TenantMixin, utcnow


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class Tenant(Base):
    """Billing and ownership unit."""

    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str | None] = mapped_column(String(100), unique=True, nullable=True)
    subscription_plan: Mapped[str] = mapped_column(String(30), nullable=False, default="free")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "subscription_plan": self.subscription_plan,
            "created_at": _iso(self.created_at),
        }


class Agent(TenantMixin, Base):
    """An agent as seen by the integration layer.

    ``config["integration_ids"]`` is the allow-list: absent means every
    integration, an empty list means none. ``triggers`` holds inbound routes
    such as ``{"type": "sms", "phone_number": "+15551234567"}``.
    """

    __tablename__ = "agents"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active", index=True)
    config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    triggers: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "tenant_id": self.tenant_id,
            "name": self.name,
            "status": self.status,
            "config": self.config or {},
            "triggers": self.triggers or [],
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Integration(TenantMixin, Base):
    """One tenant's connection to one provider."""

    __tablename__ = "integrations"

    provider: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="connected", index=True)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    # Cipher output; never plaintext
    credentials: Mapped[str | None] = mapped_column(Text, nullable=True)
    config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    webhook_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "tenant_id": self.tenant_id,
            "provider": self.provider,
            "type": self.type,
            "status": self.status,
            "name": self.name,
            "credentials": self.credentials,
            "config": self.config or {},
            "webhook_url": self.webhook_url,
            "last_error": self.last_error,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class UsageEvent(TenantMixin, Base):
    """A billable (or free) message sent or received through a channel."""

    __tablename__ = "usage_events"

    channel: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    direction: Mapped[str] = mapped_column(String(10), nullable=False, default="outbound")
    integration_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    agent_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    recipient: Mapped[str] = mapped_column(String(320), nullable=False)
    sender: Mapped[str | None] = mapped_column(String(320), nullable=True)
    provider_message_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    billable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="sent")

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "tenant_id": self.tenant_id,
            "channel": self.channel,
            "direction": self.direction,
            "integration_id": self.integration_id,
            "agent_id": self.agent_id,
            "recipient": self.recipient,
            "sender": self.sender,
            "provider_message_id": self.provider_message_id,
            "billable": self.billable,
            "status": self.status,
            "created_at": _iso(self.created_at),
        }
