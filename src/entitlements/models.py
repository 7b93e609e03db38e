"""
Entitlement persistence models and domain snapshots.

Tier, role and status columns are stored as plain strings rather than
database enums so that a value the code does not know survives loading and
is then rejected (fail closed) by the resolvers.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from entitlements.db import Base, TimestampMixin
from entitlements.schema import Capability, OverrideEffect

# ==========================================
# Tables
# ==========================================


class Subscription(Base, TimestampMixin):
    """Organization subscription as last reported by the billing collaborator."""

    __tablename__ = "subscriptions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    organization_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    tier: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    current_period_start: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    current_period_end: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"<Subscription(org={self.organization_id!r}, tier={self.tier}, status={self.status})>"
        )


class QuotaCounter(Base, TimestampMixin):
    """Current consumption of one resource type; the source of truth for quota checks."""

    __tablename__ = "quota_counters"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    subscription_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False
    )
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)
    current: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("subscription_id", "resource_type", name="uq_quota_counters_sub_resource"),
        CheckConstraint("current >= 0", name="ck_quota_counters_non_negative"),
    )


class Membership(Base, TimestampMixin):
    """Binds a user to an organization with one role."""

    __tablename__ = "memberships"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    organization_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "organization_id", name="uq_memberships_user_org"),
    )


class MembershipOverride(Base):
    """One grant or deny exception layered on top of tier and role resolution."""

    __tablename__ = "membership_overrides"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    membership_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("memberships.id", ondelete="CASCADE"), nullable=False, index=True
    )
    capability: Mapped[str] = mapped_column(String(64), nullable=False)
    effect: Mapped[str] = mapped_column(String(10), nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "membership_id", "capability", "effect", name="uq_membership_overrides_entry"
        ),
    )


class UsageRecord(Base):
    """
    Append-only audit entry for a quota mutation.

    Used for statistics and dispute resolution. Counters are never rebuilt by
    replaying these rows.
    """

    __tablename__ = "usage_records"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    subscription_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False
    )
    organization_id: Mapped[str] = mapped_column(String(255), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    metadata_json: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )

    __table_args__ = (
        Index("ix_usage_records_subscription_created", "subscription_id", "created_at"),
        Index("ix_usage_records_org_resource", "organization_id", "resource_type"),
    )


class AppendOnlyViolation(RuntimeError):
    """Raised when code attempts to modify a usage record."""


@event.listens_for(UsageRecord, "before_update")
def _reject_usage_update(mapper: Any, connection: Any, target: UsageRecord) -> None:
    raise AppendOnlyViolation(f"Usage record {target.id} is immutable")


@event.listens_for(UsageRecord, "before_delete")
def _reject_usage_delete(mapper: Any, connection: Any, target: UsageRecord) -> None:
    raise AppendOnlyViolation(f"Usage record {target.id} cannot be deleted")


# ==========================================
# Domain snapshots
# ==========================================


@dataclass(frozen=True)
class Override:
    """Tagged override entry: a capability plus grant or deny."""

    capability: Capability
    effect: OverrideEffect

    @classmethod
    def grant(cls, capability: Capability) -> "Override":
        return cls(capability, OverrideEffect.GRANT)

    @classmethod
    def deny(cls, capability: Capability) -> "Override":
        return cls(capability, OverrideEffect.DENY)

    @property
    def is_deny(self) -> bool:
        return self.effect == OverrideEffect.DENY


@dataclass(frozen=True)
class MembershipState:
    """Read-only view of a membership and its overrides."""

    user_id: str
    organization_id: str
    role: str
    status: str
    overrides: tuple[Override, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class SubscriptionState:
    """Read-only view of an organization's subscription."""

    id: UUID
    organization_id: str
    tier: str
    status: str
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None


__all__ = [
    "Subscription",
    "QuotaCounter",
    "Membership",
    "MembershipOverride",
    "UsageRecord",
    "AppendOnlyViolation",
    "Override",
    "MembershipState",
    "SubscriptionState",
]
