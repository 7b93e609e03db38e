"""
Data access for subscriptions, memberships, counters and the usage ledger.

All functions take an ``AsyncSession`` and leave transaction control to the
caller, so a counter mutation and its usage record can share one commit.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from entitlements.logging import get_logger
from entitlements.models import (
    Membership,
    MembershipOverride,
    MembershipState,
    Override,
    QuotaCounter,
    Subscription,
    SubscriptionState,
    UsageRecord,
)
from entitlements.plans import UNLIMITED
from entitlements.schema import (
    Capability,
    MembershipStatus,
    OrgRole,
    OverrideEffect,
    PlanTier,
    ResourceType,
    SubscriptionStatus,
    UsageAction,
    coerce,
)

logger = get_logger(__name__)


# ==================== Subscriptions ====================


def _subscription_state(row: Subscription) -> SubscriptionState:
    return SubscriptionState(
        id=row.id,
        organization_id=row.organization_id,
        tier=row.tier,
        status=row.status,
        current_period_start=row.current_period_start,
        current_period_end=row.current_period_end,
    )


async def get_subscription_row(session: AsyncSession, organization_id: str) -> Subscription | None:
    result = await session.execute(
        select(Subscription).where(Subscription.organization_id == organization_id)
    )
    return result.scalar_one_or_none()


async def load_subscription(session: AsyncSession, organization_id: str) -> SubscriptionState | None:
    """Snapshot of an organization's subscription, or None when it has none."""
    row = await get_subscription_row(session, organization_id)
    return _subscription_state(row) if row is not None else None


async def upsert_subscription(
    session: AsyncSession,
    organization_id: str,
    tier: PlanTier | str,
    status: SubscriptionStatus | str,
    current_period_start: datetime | None = None,
    current_period_end: datetime | None = None,
) -> SubscriptionState:
    """
    Store already-validated subscription state from the billing collaborator.

    Creates the subscription and one zeroed counter per resource type on first
    call; later calls update tier, status and period bounds only.
    """
    row = await get_subscription_row(session, organization_id)
    tier_value = getattr(tier, "value", tier)
    status_value = getattr(status, "value", status)

    if row is None:
        row = Subscription(
            organization_id=organization_id,
            tier=tier_value,
            status=status_value,
            current_period_start=current_period_start,
            current_period_end=current_period_end,
        )
        session.add(row)
        await session.flush()
        for resource_type in ResourceType:
            session.add(QuotaCounter(subscription_id=row.id, resource_type=resource_type.value))
        await session.flush()
        logger.info(
            "entitlements.subscription.created",
            organization_id=organization_id,
            tier=tier_value,
            status=status_value,
        )
    else:
        row.tier = tier_value
        row.status = status_value
        if current_period_start is not None:
            row.current_period_start = current_period_start
        if current_period_end is not None:
            row.current_period_end = current_period_end
        await session.flush()

    return _subscription_state(row)


# ==================== Memberships ====================


async def get_membership_row(
    session: AsyncSession, user_id: str, organization_id: str
) -> Membership | None:
    result = await session.execute(
        select(Membership).where(
            Membership.user_id == user_id, Membership.organization_id == organization_id
        )
    )
    return result.scalar_one_or_none()


async def load_overrides(session: AsyncSession, membership_id: UUID) -> tuple[Override, ...]:
    """Override entries of a membership; entries naming unknown values are skipped."""
    result = await session.execute(
        select(MembershipOverride.capability, MembershipOverride.effect)
        .where(MembershipOverride.membership_id == membership_id)
        .order_by(MembershipOverride.created_at)
    )
    overrides: list[Override] = []
    for capability_value, effect_value in result.all():
        capability = coerce(Capability, capability_value)
        effect = coerce(OverrideEffect, effect_value)
        if capability is None or effect is None:
            logger.error(
                "entitlements.config.unknown_override",
                membership_id=str(membership_id),
                capability=capability_value,
                effect=effect_value,
            )
            continue
        overrides.append(Override(capability, effect))
    return tuple(overrides)


async def load_membership(
    session: AsyncSession, user_id: str, organization_id: str
) -> MembershipState | None:
    """Snapshot of a membership including its overrides."""
    row = await get_membership_row(session, user_id, organization_id)
    if row is None:
        return None
    return MembershipState(
        user_id=row.user_id,
        organization_id=row.organization_id,
        role=row.role,
        status=row.status,
        overrides=await load_overrides(session, row.id),
    )


async def upsert_membership(
    session: AsyncSession,
    user_id: str,
    organization_id: str,
    role: OrgRole | str,
    status: MembershipStatus | str = MembershipStatus.ACTIVE,
) -> Membership:
    """Store membership state from the organization-management collaborator."""
    row = await get_membership_row(session, user_id, organization_id)
    role_value = getattr(role, "value", role)
    status_value = getattr(status, "value", status)
    if row is None:
        row = Membership(
            user_id=user_id,
            organization_id=organization_id,
            role=role_value,
            status=status_value,
        )
        session.add(row)
    else:
        row.role = role_value
        row.status = status_value
    await session.flush()
    return row


async def add_override(
    session: AsyncSession,
    membership_id: UUID,
    capability: Capability,
    effect: OverrideEffect,
    created_by: str | None = None,
) -> bool:
    """Add an override entry; returns False when the same entry already exists."""
    existing = await session.execute(
        select(MembershipOverride.id).where(
            MembershipOverride.membership_id == membership_id,
            MembershipOverride.capability == capability.value,
            MembershipOverride.effect == effect.value,
        )
    )
    if existing.first() is not None:
        return False

    session.add(
        MembershipOverride(
            membership_id=membership_id,
            capability=capability.value,
            effect=effect.value,
            created_by=created_by,
        )
    )
    await session.flush()
    return True


async def remove_overrides(
    session: AsyncSession,
    membership_id: UUID,
    capability: Capability,
    effect: OverrideEffect | None = None,
) -> int:
    """Remove override entries for a capability (one effect, or both); returns rows removed."""
    stmt = delete(MembershipOverride).where(
        MembershipOverride.membership_id == membership_id,
        MembershipOverride.capability == capability.value,
    )
    if effect is not None:
        stmt = stmt.where(MembershipOverride.effect == effect.value)
    result = await session.execute(stmt)
    return int(result.rowcount or 0)


# ==================== Counters ====================


def _counter_filter(subscription_id: UUID, resource_type: ResourceType) -> tuple[Any, ...]:
    return (
        QuotaCounter.subscription_id == subscription_id,
        QuotaCounter.resource_type == resource_type.value,
    )


async def get_counter_value(
    session: AsyncSession, subscription_id: UUID, resource_type: ResourceType
) -> int | None:
    """Current counter value, or None when the counter row does not exist."""
    result = await session.execute(
        select(QuotaCounter.current).where(*_counter_filter(subscription_id, resource_type))
    )
    return result.scalar_one_or_none()


async def get_counters(session: AsyncSession, subscription_id: UUID) -> dict[str, int]:
    result = await session.execute(
        select(QuotaCounter.resource_type, QuotaCounter.current).where(
            QuotaCounter.subscription_id == subscription_id
        )
    )
    return {resource_type: current for resource_type, current in result.all()}


async def increment_within_limit(
    session: AsyncSession,
    subscription_id: UUID,
    resource_type: ResourceType,
    quantity: int,
    limit: int,
) -> bool:
    """
    Atomically add ``quantity`` to a counter if the result stays within ``limit``.

    A single conditional UPDATE: there is no read between the check and the
    write. Returns False when no row matched (limit reached or no counter).
    """
    stmt = update(QuotaCounter).where(*_counter_filter(subscription_id, resource_type))
    if limit != UNLIMITED:
        stmt = stmt.where(QuotaCounter.current + quantity <= limit)
    stmt = stmt.values(current=QuotaCounter.current + quantity)
    result = await session.execute(stmt.execution_options(synchronize_session=False))
    return result.rowcount == 1


async def lock_counter(
    session: AsyncSession, subscription_id: UUID, resource_type: ResourceType
) -> int | None:
    """
    Take the counter's write lock for the rest of the transaction and read it.

    A no-op UPDATE locks the row on PostgreSQL and takes the database write
    lock on SQLite, where ``SELECT ... FOR UPDATE`` is not available. Returns
    None when the counter row does not exist.
    """
    result = await session.execute(
        update(QuotaCounter)
        .where(*_counter_filter(subscription_id, resource_type))
        .values(current=QuotaCounter.current)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return None
    return await get_counter_value(session, subscription_id, resource_type)


async def decrement_clamped(
    session: AsyncSession,
    subscription_id: UUID,
    resource_type: ResourceType,
    quantity: int,
) -> int:
    """
    Atomically subtract ``quantity`` from a counter, never going below zero.

    Returns the amount actually subtracted; less than ``quantity`` means the
    counter was clamped to zero.
    """
    current = await lock_counter(session, subscription_id, resource_type)
    if current is None:
        return 0

    await session.execute(
        update(QuotaCounter)
        .where(*_counter_filter(subscription_id, resource_type))
        .values(
            current=case(
                (QuotaCounter.current >= quantity, QuotaCounter.current - quantity),
                else_=0,
            )
        )
        .execution_options(synchronize_session=False)
    )
    return min(current, quantity)


async def set_counter(
    session: AsyncSession,
    subscription_id: UUID,
    resource_type: ResourceType,
    value: int,
) -> int | None:
    """
    Overwrite a counter under its write lock.

    Returns the value it replaced, or None when the counter row does not exist.
    """
    previous = await lock_counter(session, subscription_id, resource_type)
    if previous is None or previous == value:
        return previous

    await session.execute(
        update(QuotaCounter)
        .where(*_counter_filter(subscription_id, resource_type))
        .values(current=value)
        .execution_options(synchronize_session=False)
    )
    return previous


# ==================== Usage ledger ====================


def append_usage(
    session: AsyncSession,
    subscription: SubscriptionState,
    resource_type: ResourceType,
    action: UsageAction,
    quantity: int,
    metadata: dict[str, Any] | None = None,
) -> UsageRecord:
    """Stage an append-only usage record in the caller's transaction."""
    record = UsageRecord(
        subscription_id=subscription.id,
        organization_id=subscription.organization_id,
        resource_type=resource_type.value,
        action=action.value,
        quantity=quantity,
        metadata_json=dict(metadata or {}),
    )
    session.add(record)
    return record


async def aggregate_usage(
    session: AsyncSession,
    organization_id: str,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[tuple[str, str, int, int]]:
    """(resource_type, action, event count, summed quantity) rows for a window."""
    stmt = select(
        UsageRecord.resource_type,
        UsageRecord.action,
        func.count(UsageRecord.id),
        func.coalesce(func.sum(UsageRecord.quantity), 0),
    ).where(UsageRecord.organization_id == organization_id)
    if start is not None:
        stmt = stmt.where(UsageRecord.created_at >= start)
    if end is not None:
        stmt = stmt.where(UsageRecord.created_at <= end)
    stmt = stmt.group_by(UsageRecord.resource_type, UsageRecord.action)

    result = await session.execute(stmt)
    return [(rt, action, int(count), int(total)) for rt, action, count, total in result.all()]


async def list_usage_records(
    session: AsyncSession, organization_id: str, resource_type: ResourceType | None = None
) -> list[UsageRecord]:
    stmt = select(UsageRecord).where(UsageRecord.organization_id == organization_id)
    if resource_type is not None:
        stmt = stmt.where(UsageRecord.resource_type == resource_type.value)
    result = await session.execute(stmt.order_by(UsageRecord.created_at))
    return list(result.scalars().all())


__all__ = [
    "get_subscription_row",
    "load_subscription",
    "upsert_subscription",
    "get_membership_row",
    "load_overrides",
    "load_membership",
    "upsert_membership",
    "add_override",
    "remove_overrides",
    "get_counter_value",
    "get_counters",
    "increment_within_limit",
    "lock_counter",
    "decrement_clamped",
    "set_counter",
    "append_usage",
    "aggregate_usage",
    "list_usage_records",
]
