"""
Quota ledger: per-organization resource counters and the usage audit trail.

The counter row is the source of truth for quota checks. Usage records are an
append-only log for statistics and dispute resolution; counters are never
rebuilt by replaying them.
"""

from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from entitlements import repository
from entitlements.exceptions import (
    ConfigurationError,
    EntitlementError,
    NoSubscriptionError,
    QuotaExceededError,
)
from entitlements.logging import get_logger, log_audit_event
from entitlements.models import QuotaCounter, SubscriptionState
from entitlements.plans import UNLIMITED, is_unlimited, limit_for
from entitlements.schema import ResourceType, UsageAction, coerce
from entitlements.settings import Settings, get_settings

logger = get_logger(__name__)


# ==================== Resource policies ====================


@dataclass(frozen=True)
class ResourcePolicy:
    """Whether a counter restarts every billing period or tracks live state."""

    resource_type: ResourceType
    periodic: bool
    description: str


RESOURCE_POLICIES: MappingProxyType[ResourceType, ResourcePolicy] = MappingProxyType(
    {
        ResourceType.RECORDS: ResourcePolicy(
            ResourceType.RECORDS, True, "Records created in the current billing period"
        ),
        ResourceType.LISTINGS: ResourcePolicy(
            ResourceType.LISTINGS, True, "Listings created in the current billing period"
        ),
        ResourceType.CAMPAIGN_ASSETS: ResourcePolicy(
            ResourceType.CAMPAIGN_ASSETS, False, "Campaign assets currently stored"
        ),
        ResourceType.AUTOMATION_RULES: ResourcePolicy(
            ResourceType.AUTOMATION_RULES, False, "Automation rules currently defined"
        ),
        ResourceType.INTEGRATIONS: ResourcePolicy(
            ResourceType.INTEGRATIONS, False, "Integrations currently connected"
        ),
        ResourceType.USER_SEATS: ResourcePolicy(
            ResourceType.USER_SEATS, False, "Members of the organization"
        ),
    }
)


def periodic_resources() -> list[ResourceType]:
    return [rt for rt, policy in RESOURCE_POLICIES.items() if policy.periodic]


# ==================== Result models ====================


class QuotaCheck(BaseModel):
    """Point-in-time headroom for one resource type."""

    model_config = ConfigDict(frozen=True)

    resource_type: ResourceType = Field(description="Resource type checked")
    allowed: bool = Field(description="Whether the requested quantity fits")
    limit: int = Field(description="Tier limit, -1 when unlimited")
    current: int = Field(description="Current counter value")
    remaining: int = Field(description="Headroom left, -1 when unlimited")
    unlimited: bool = Field(description="Whether the resource is uncapped")


class ResourceUsage(BaseModel):
    """Usage of one resource type inside ``UsageStats``."""

    current: int = Field(description="Current counter value")
    limit: int = Field(description="Tier limit, -1 when unlimited")
    percentage: int = Field(description="Share of the limit used, 0 when unlimited")
    unlimited: bool = Field(description="Whether the resource is uncapped")
    periodic: bool = Field(description="Whether the counter resets every billing period")


class UsageStats(BaseModel):
    """Snapshot of an organization's quota usage."""

    organization_id: str
    tier: str
    status: str
    period_start: datetime | None = None
    period_end: datetime | None = None
    resources: dict[ResourceType, ResourceUsage] = Field(default_factory=dict)


class UsageSummaryEntry(BaseModel):
    resource_type: str
    action: str
    events: int
    quantity: int


class UsageSummary(BaseModel):
    """Usage records aggregated by resource type and action."""

    organization_id: str
    start: datetime | None = None
    end: datetime | None = None
    entries: list[UsageSummaryEntry] = Field(default_factory=list)

    @property
    def total_events(self) -> int:
        return sum(entry.events for entry in self.entries)

    def net_quantity(self, resource_type: ResourceType | str) -> int:
        value = getattr(resource_type, "value", resource_type)
        return sum(entry.quantity for entry in self.entries if entry.resource_type == value)


def _percentage(current: int, limit: int) -> int:
    if is_unlimited(limit):
        return 0
    if limit <= 0:
        return 100
    return round(current / limit * 100)


def _build_check(resource_type: ResourceType, limit: int, current: int, quantity: int) -> QuotaCheck:
    if is_unlimited(limit):
        return QuotaCheck(
            resource_type=resource_type,
            allowed=True,
            limit=UNLIMITED,
            current=current,
            remaining=UNLIMITED,
            unlimited=True,
        )
    return QuotaCheck(
        resource_type=resource_type,
        allowed=current + quantity <= limit,
        limit=limit,
        current=current,
        remaining=max(limit - current, 0),
        unlimited=False,
    )


# ==================== Ledger ====================


class QuotaLedger:
    """Atomic reserve and release against tier-derived limits."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()

    @staticmethod
    def _resource(resource_type: ResourceType | str) -> ResourceType | ConfigurationError:
        member = coerce(ResourceType, resource_type)
        if member is not None:
            return member
        error = ConfigurationError(
            f"Unknown resource type {resource_type!r}",
            context={"resource_type": str(resource_type)},
        )
        logger.error("entitlements.config.unknown_resource_type", **error.to_dict())
        return error

    @staticmethod
    def _validate_quantity(quantity: int) -> None:
        if quantity < 1:
            raise ValueError(f"quantity must be a positive integer, got {quantity}")

    async def _ensure_counter(self, subscription_id: Any, resource_type: ResourceType) -> None:
        """Create a missing counter row in its own transaction."""
        try:
            async with self.session_factory() as session, session.begin():
                session.add(
                    QuotaCounter(subscription_id=subscription_id, resource_type=resource_type.value)
                )
        except IntegrityError:
            # Created concurrently.
            pass

    async def check_quota(
        self, organization_id: str, resource_type: ResourceType | str, quantity: int = 1
    ) -> QuotaCheck:
        """
        Report whether ``quantity`` more units fit under the tier limit.

        Advisory only: ``reserve`` re-checks atomically. Raises
        ``NoSubscriptionError`` when the organization has no subscription and
        ``ConfigurationError`` for an unknown resource type.
        """
        self._validate_quantity(quantity)
        resource = self._resource(resource_type)
        if isinstance(resource, ConfigurationError):
            raise resource

        async with self.session_factory() as session:
            subscription = await repository.load_subscription(session, organization_id)
            if subscription is None:
                raise NoSubscriptionError(organization_id)
            current = await repository.get_counter_value(session, subscription.id, resource) or 0

        return _build_check(resource, limit_for(subscription.tier, resource), current, quantity)

    async def reserve(
        self,
        organization_id: str,
        resource_type: ResourceType | str,
        quantity: int = 1,
        metadata: dict[str, Any] | None = None,
    ) -> EntitlementError | None:
        """
        Atomically consume ``quantity`` units.

        The conditional increment and the ``created`` usage record commit in
        one transaction. Returns ``QuotaExceededError`` without mutating
        anything when the limit would be crossed.
        """
        self._validate_quantity(quantity)
        resource = self._resource(resource_type)
        if isinstance(resource, ConfigurationError):
            return resource

        async with self.session_factory() as session:
            subscription = await repository.load_subscription(session, organization_id)
            if subscription is None:
                return NoSubscriptionError(organization_id)
            limit = limit_for(subscription.tier, resource)

            if await repository.get_counter_value(session, subscription.id, resource) is None:
                await self._ensure_counter(subscription.id, resource)

            try:
                reserved = await repository.increment_within_limit(
                    session, subscription.id, resource, quantity, limit
                )
                if not reserved:
                    current = await repository.get_counter_value(session, subscription.id, resource)
                    await session.rollback()
                    logger.info(
                        "entitlements.quota.exceeded",
                        organization_id=organization_id,
                        resource_type=resource.value,
                        limit=limit,
                        current=current,
                        quantity=quantity,
                    )
                    return QuotaExceededError(resource.value, limit, current or 0)

                repository.append_usage(
                    session, subscription, resource, UsageAction.CREATED, quantity, metadata
                )
                await session.commit()
            except Exception:
                await session.rollback()
                raise

        logger.debug(
            "entitlements.quota.reserved",
            organization_id=organization_id,
            resource_type=resource.value,
            quantity=quantity,
        )
        return None

    async def release(
        self,
        organization_id: str,
        resource_type: ResourceType | str,
        quantity: int = 1,
        metadata: dict[str, Any] | None = None,
    ) -> EntitlementError | None:
        """
        Atomically return ``quantity`` units.

        A release that would take the counter below zero clamps it to zero and
        logs a warning. The usage record carries the amount actually released
        and is flagged ``clamped`` with the ``requested`` quantity.
        """
        self._validate_quantity(quantity)
        resource = self._resource(resource_type)
        if isinstance(resource, ConfigurationError):
            return resource

        async with self.session_factory() as session:
            subscription = await repository.load_subscription(session, organization_id)
            if subscription is None:
                return NoSubscriptionError(organization_id)

            try:
                released = await repository.decrement_clamped(
                    session, subscription.id, resource, quantity
                )
                record_metadata = dict(metadata or {})
                if released < quantity:
                    record_metadata.update(clamped=True, requested=quantity)
                    logger.warning(
                        "entitlements.quota.release_clamped",
                        organization_id=organization_id,
                        resource_type=resource.value,
                        quantity=quantity,
                        released=released,
                    )
                repository.append_usage(
                    session, subscription, resource, UsageAction.DELETED, -released, record_metadata
                )
                await session.commit()
            except Exception:
                await session.rollback()
                raise

        return None

    async def stats(self, organization_id: str) -> UsageStats:
        """Current usage of every resource type; raises ``NoSubscriptionError``."""
        async with self.session_factory() as session:
            subscription = await repository.load_subscription(session, organization_id)
            if subscription is None:
                raise NoSubscriptionError(organization_id)
            counters = await repository.get_counters(session, subscription.id)

        resources: dict[ResourceType, ResourceUsage] = {}
        for resource in ResourceType:
            limit = limit_for(subscription.tier, resource)
            current = counters.get(resource.value, 0)
            resources[resource] = ResourceUsage(
                current=current,
                limit=limit,
                percentage=_percentage(current, limit),
                unlimited=is_unlimited(limit),
                periodic=RESOURCE_POLICIES[resource].periodic,
            )

        return UsageStats(
            organization_id=organization_id,
            tier=subscription.tier,
            status=subscription.status,
            period_start=subscription.current_period_start,
            period_end=subscription.current_period_end,
            resources=resources,
        )

    async def reset_period(
        self,
        organization_id: str,
        period_start: datetime | None = None,
        period_end: datetime | None = None,
    ) -> dict[ResourceType, int]:
        """
        Start a new billing period.

        Zeroes periodic counters only, appending an ``adjusted`` record per
        non-zero counter, and stores the new period bounds. Returns the
        amounts subtracted per resource type.
        """
        reset: dict[ResourceType, int] = {}
        async with self.session_factory() as session, session.begin():
            row = await repository.get_subscription_row(session, organization_id)
            if row is None:
                raise NoSubscriptionError(organization_id)
            subscription = SubscriptionState(
                id=row.id,
                organization_id=row.organization_id,
                tier=row.tier,
                status=row.status,
            )

            for resource in periodic_resources():
                previous = await repository.set_counter(session, row.id, resource, 0)
                if not previous:
                    continue
                repository.append_usage(
                    session,
                    subscription,
                    resource,
                    UsageAction.ADJUSTED,
                    -previous,
                    {"reason": "period_reset"},
                )
                reset[resource] = previous

            if period_start is not None:
                row.current_period_start = period_start
            if period_end is not None:
                row.current_period_end = period_end

        log_audit_event(
            "entitlements.quota.period_reset",
            "quota",
            organization_id=organization_id,
            reset={rt.value: amount for rt, amount in reset.items()},
        )
        return reset

    async def sync_counter(
        self,
        organization_id: str,
        resource_type: ResourceType | str,
        live_count: int,
        metadata: dict[str, Any] | None = None,
    ) -> int:
        """
        Re-base a durable counter on a live count (e.g. seats from membership).

        Returns the applied delta; a non-zero delta appends an ``adjusted``
        record.
        """
        if live_count < 0:
            raise ValueError(f"live_count must not be negative, got {live_count}")
        resource = self._resource(resource_type)
        if isinstance(resource, ConfigurationError):
            raise resource

        async with self.session_factory() as session:
            subscription = await repository.load_subscription(session, organization_id)
            if subscription is None:
                raise NoSubscriptionError(organization_id)
            if await repository.get_counter_value(session, subscription.id, resource) is None:
                await self._ensure_counter(subscription.id, resource)

            try:
                previous = await repository.set_counter(
                    session, subscription.id, resource, live_count
                )
                delta = live_count - (previous or 0)
                if delta:
                    repository.append_usage(
                        session,
                        subscription,
                        resource,
                        UsageAction.ADJUSTED,
                        delta,
                        {"reason": "sync", **(metadata or {})},
                    )
                await session.commit()
            except Exception:
                await session.rollback()
                raise

        if delta:
            logger.info(
                "entitlements.quota.synced",
                organization_id=organization_id,
                resource_type=resource.value,
                live_count=live_count,
                delta=delta,
            )
        return delta

    async def usage_summary(
        self,
        organization_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> UsageSummary:
        """Aggregate usage records in ``[start, end]`` for reporting and disputes."""
        async with self.session_factory() as session:
            rows = await repository.aggregate_usage(session, organization_id, start, end)

        return UsageSummary(
            organization_id=organization_id,
            start=start,
            end=end,
            entries=[
                UsageSummaryEntry(resource_type=rt, action=action, events=events, quantity=total)
                for rt, action, events, total in sorted(rows)
            ],
        )


__all__ = [
    "RESOURCE_POLICIES",
    "ResourcePolicy",
    "QuotaCheck",
    "ResourceUsage",
    "UsageStats",
    "UsageSummary",
    "UsageSummaryEntry",
    "QuotaLedger",
    "periodic_resources",
]
