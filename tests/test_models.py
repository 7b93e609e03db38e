"""Tests for persistence models and repository helpers."""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from entitlements import repository
from entitlements.models import AppendOnlyViolation, QuotaCounter, UsageRecord
from entitlements.schema import (
    Capability,
    OrgRole,
    OverrideEffect,
    PlanTier,
    ResourceType,
    SubscriptionStatus,
)
from tests.helpers import ORG_ID, USER_ID

pytestmark = pytest.mark.integration


class TestSubscriptionProvisioning:
    """Test subscription upserts."""

    @pytest.mark.asyncio
    async def test_first_upsert_creates_zeroed_counters(self, make_subscription, session_factory):
        subscription = await make_subscription(tier=PlanTier.PRO)

        async with session_factory() as session:
            counters = await repository.get_counters(session, subscription.id)

        assert counters == {rt.value: 0 for rt in ResourceType}

    @pytest.mark.asyncio
    async def test_second_upsert_updates_in_place(self, make_subscription, session_factory):
        first = await make_subscription(tier=PlanTier.BASIC)
        second = await make_subscription(tier=PlanTier.AGENCY, status=SubscriptionStatus.PAST_DUE)

        async with session_factory() as session:
            state = await repository.load_subscription(session, ORG_ID)
            rows = (await session.execute(select(QuotaCounter))).scalars().all()

        assert second.id == first.id
        assert (state.tier, state.status) == ("agency", "past_due")
        assert len(rows) == len(ResourceType)

    @pytest.mark.asyncio
    async def test_counter_cannot_go_negative(self, make_subscription, session_factory):
        subscription = await make_subscription()

        with pytest.raises(IntegrityError):
            async with session_factory() as session, session.begin():
                await repository.set_counter(session, subscription.id, ResourceType.RECORDS, -1)


class TestMembershipLoading:
    """Test membership snapshots."""

    @pytest.mark.asyncio
    async def test_snapshot_includes_overrides(self, member_of, session_factory):
        await member_of(role=OrgRole.MEMBER)
        async with session_factory() as session, session.begin():
            row = await repository.get_membership_row(session, USER_ID, ORG_ID)
            await repository.add_override(session, row.id, Capability.API_ACCESS, OverrideEffect.GRANT)
            await repository.add_override(session, row.id, Capability.RECORDS_READ, OverrideEffect.DENY)

        async with session_factory() as session:
            state = await repository.load_membership(session, USER_ID, ORG_ID)

        assert state.role == "member"
        assert state.status == "active"
        assert {(o.capability, o.is_deny) for o in state.overrides} == {
            (Capability.API_ACCESS, False),
            (Capability.RECORDS_READ, True),
        }

    @pytest.mark.asyncio
    async def test_missing_membership(self, session_factory):
        async with session_factory() as session:
            assert await repository.load_membership(session, USER_ID, ORG_ID) is None


class TestUsageRecordAppendOnly:
    """Test usage records cannot be changed once written."""

    @pytest.mark.asyncio
    async def test_update_is_rejected(self, make_subscription, ledger, session_factory):
        await make_subscription()
        await ledger.reserve(ORG_ID, ResourceType.RECORDS)

        with pytest.raises(AppendOnlyViolation):
            async with session_factory() as session, session.begin():
                record = (await session.execute(select(UsageRecord))).scalar_one()
                record.quantity = 99

    @pytest.mark.asyncio
    async def test_delete_is_rejected(self, make_subscription, ledger, session_factory):
        await make_subscription()
        await ledger.reserve(ORG_ID, ResourceType.RECORDS)

        with pytest.raises(AppendOnlyViolation):
            async with session_factory() as session, session.begin():
                record = (await session.execute(select(UsageRecord))).scalar_one()
                await session.delete(record)

        async with session_factory() as session:
            assert len(await repository.list_usage_records(session, ORG_ID)) == 1
