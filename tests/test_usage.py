"""Test plan limits and usage tracking."""
import logging
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import text

from conftest import TENANT, FakeUsage
from hub.integrations.errors import UsageLimitExceeded
from hub.integrations.repository import TenantRepository, UsageRepository
from hub.integrations.usage import (
    PLAN_LIMITS,
    SqlUsageTracker,
    UsageRecord,
    get_plan_limit,
    month_start,
)


def test_plan_table():
    assert PLAN_LIMITS["free"] == {"email": 10, "sms": 0}
    assert PLAN_LIMITS["business"] == {"email": 2000, "sms": 500}
    assert get_plan_limit("enterprise", "sms") == -1


def test_unknown_plan_falls_back_to_free():
    assert get_plan_limit("platinum", "email") == 10
    assert get_plan_limit(None, "sms") == 0


def test_month_start():
    assert month_start(datetime(2026, 3, 17, 8, 30, tzinfo=timezone.utc)) == datetime(2026, 3, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_under_limit_returns_count():
    assert await FakeUsage(plan="starter", counts={"sms": 19}).check_limit(TENANT, "sms") == 19


@pytest.mark.asyncio
async def test_limit_reached_message():
    with pytest.raises(UsageLimitExceeded) as exc_info:
        await FakeUsage(plan="starter", counts={"sms": 20}).check_limit(TENANT, "sms")
    error = exc_info.value
    assert error.message == "SMS limit reached (20/20). Please upgrade your plan to send more SMS."
    assert (error.channel, error.used, error.limit, error.plan) == ("sms", 20, 20, "starter")


@pytest.mark.asyncio
async def test_channel_unavailable_message():
    with pytest.raises(UsageLimitExceeded) as exc_info:
        await FakeUsage(plan="free").check_limit(TENANT, "sms")
    assert exc_info.value.message == "SMS is not available on your free plan. Please upgrade to use SMS features."


@pytest.mark.asyncio
async def test_unlimited_plan_never_blocks():
    assert await FakeUsage(plan="enterprise", counts={"email": 10**6}).check_limit(TENANT, "email") == 10**6


@pytest.mark.asyncio
async def test_record_failure_is_logged_not_raised(caplog):
    class BrokenUsage(FakeUsage):
        async def _write(self, record):
            raise RuntimeError("database down")

    with caplog.at_level(logging.ERROR, logger="hub.integrations.usage"):
        await BrokenUsage().record(UsageRecord(tenant_id=TENANT, channel="sms", recipient="+1555"))
    assert "Failed to record sms usage" in caplog.text


# ============================================================================
# SQL tracker
# ============================================================================

@pytest.mark.asyncio
async def test_sql_tracker_reads_plan(session):
    tracker = SqlUsageTracker(session)
    assert await tracker.get_plan(TENANT) == "free"
    await TenantRepository(session).create(TENANT, "Acme", slug="acme", plan="business")
    assert await tracker.get_plan(TENANT) == "business"


@pytest.mark.asyncio
async def test_sql_tracker_counts_billable_outbound_this_month(session):
    tracker = SqlUsageTracker(session)
    await TenantRepository(session).create(TENANT, "Acme", plan="starter")

    await tracker.record(UsageRecord(tenant_id=TENANT, channel="sms", recipient="+1555", provider_message_id="SM1"))
    await tracker.record(UsageRecord(tenant_id=TENANT, channel="sms", recipient="+1556"))
    await tracker.record(UsageRecord(tenant_id=TENANT, channel="sms", recipient="+1557", billable=False))
    await tracker.record(
        UsageRecord(tenant_id=TENANT, channel="sms", recipient="+1558", direction="inbound", billable=False)
    )
    await tracker.record(UsageRecord(tenant_id=TENANT, channel="email", recipient="a@b.com"))
    await tracker.record(UsageRecord(tenant_id="tenant-2", channel="sms", recipient="+1559"))

    last_month = month_start() - timedelta(days=3)
    await UsageRepository(session).create(
        TENANT, {"channel": "sms", "recipient": "+1560", "created_at": last_month, "updated_at": last_month}
    )

    assert await tracker.count_this_month(TENANT, "sms") == 2
    assert await tracker.count_this_month(TENANT, "email") == 1
    assert await tracker.check_limit(TENANT, "sms") == 2


@pytest.mark.asyncio
async def test_failed_usage_write_keeps_request_transaction(session, caplog):
    await session.execute(text(
        "CREATE TRIGGER reject_usage BEFORE INSERT ON usage_events "
        "BEGIN SELECT RAISE(ABORT, 'usage table unavailable'); END"
    ))
    await session.commit()

    await TenantRepository(session).create(TENANT, "Acme", plan="pro")
    tracker = SqlUsageTracker(session)
    with caplog.at_level(logging.ERROR, logger="hub.integrations.usage"):
        await tracker.record(UsageRecord(tenant_id=TENANT, channel="sms", recipient="+1555"))
    assert "Failed to record sms usage" in caplog.text

    await session.commit()
    assert await tracker.get_plan(TENANT) == "pro"
    assert await tracker.count_this_month(TENANT, "sms") == 0
