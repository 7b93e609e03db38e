"""
Permission resolution.

A member's effective capability set is::

    (tier_capabilities(tier) & role_capabilities(role)) | grants) - denies

evaluated only after the membership and subscription preconditions hold.
Denials come back as ``EntitlementError`` values; only storage faults raise.
"""

from typing import NamedTuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from entitlements import repository
from entitlements.caching import SnapshotCache
from entitlements.exceptions import (
    ConfigurationError,
    EntitlementError,
    MembershipInactiveError,
    NoMembershipError,
    NoSubscriptionError,
    PermissionDeniedError,
    RoleRequiredError,
    SubscriptionInactiveError,
)
from entitlements.logging import get_logger, log_audit_event
from entitlements.models import MembershipState, SubscriptionState
from entitlements.plans import required_tier_for, tier_capabilities
from entitlements.roles import is_admin_role, role_capabilities
from entitlements.schema import (
    Capability,
    MembershipStatus,
    OrgRole,
    OverrideEffect,
    PlanTier,
    SubscriptionStatus,
    coerce,
)
from entitlements.settings import Settings, get_settings

logger = get_logger(__name__)


class Resolution(NamedTuple):
    """Effective capabilities of a member, or the precondition that failed."""

    capabilities: frozenset[Capability]
    error: EntitlementError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class _Snapshot(NamedTuple):
    membership: MembershipState | None
    subscription: SubscriptionState | None


class PermissionEngine:
    """Resolves capabilities from subscription tier, member role and overrides."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
        cache: SnapshotCache | None = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.cache = cache if cache is not None else SnapshotCache(settings=self.settings)
        config = self.settings.entitlements
        self._usable_statuses = frozenset(config.usable_subscription_statuses)
        self._trial_restricted = frozenset(config.trial_restricted_capabilities)

    # ==================== Loading ====================

    async def _snapshot(self, user_id: str, organization_id: str) -> _Snapshot:
        cached = self.cache.get(user_id, organization_id)
        if cached is not None:
            return cached

        async with self.session_factory() as session:
            snapshot = _Snapshot(
                membership=await repository.load_membership(session, user_id, organization_id),
                subscription=await repository.load_subscription(session, organization_id),
            )
        self.cache.set(user_id, organization_id, snapshot)
        return snapshot

    def invalidate(self, user_id: str, organization_id: str) -> None:
        """Forget the cached snapshot of one membership."""
        self.cache.invalidate(user_id, organization_id)

    def invalidate_organization(self, organization_id: str) -> None:
        """Forget every cached snapshot of an organization (subscription changed)."""
        removed = self.cache.invalidate_organization(organization_id)
        logger.debug(
            "entitlements.cache.invalidated", organization_id=organization_id, entries=removed
        )

    # ==================== Resolution ====================

    def _restricted_for(self, subscription: SubscriptionState) -> frozenset[Capability]:
        if coerce(SubscriptionStatus, subscription.status) == SubscriptionStatus.TRIALING:
            return self._trial_restricted
        return frozenset()

    def _evaluate(self, user_id: str, organization_id: str, snapshot: _Snapshot) -> Resolution:
        membership, subscription = snapshot

        if membership is None:
            return Resolution(frozenset(), NoMembershipError(user_id, organization_id))
        if coerce(MembershipStatus, membership.status) != MembershipStatus.ACTIVE:
            return Resolution(
                frozenset(), MembershipInactiveError(user_id, organization_id, membership.status)
            )
        if subscription is None:
            return Resolution(frozenset(), NoSubscriptionError(organization_id))
        if coerce(SubscriptionStatus, subscription.status) not in self._usable_statuses:
            return Resolution(
                frozenset(), SubscriptionInactiveError(organization_id, subscription.status)
            )

        base = tier_capabilities(subscription.tier) & role_capabilities(membership.role)
        grants = {o.capability for o in membership.overrides if not o.is_deny}
        denies = {o.capability for o in membership.overrides if o.is_deny}

        effective = (base | grants) - denies - self._restricted_for(subscription)
        return Resolution(frozenset(effective))

    async def resolve(self, user_id: str, organization_id: str) -> Resolution:
        """Effective capability set of a member; empty with an error when a precondition fails."""
        snapshot = await self._snapshot(user_id, organization_id)
        return self._evaluate(user_id, organization_id, snapshot)

    async def get_user_capabilities(
        self, user_id: str, organization_id: str
    ) -> frozenset[Capability]:
        return (await self.resolve(user_id, organization_id)).capabilities

    # ==================== Checks ====================

    async def check(
        self, user_id: str, organization_id: str, capability: Capability | str
    ) -> EntitlementError | None:
        """
        Explain whether a member holds a capability.

        Returns None when allowed, otherwise the first failing precondition
        or a ``PermissionDeniedError``. Unknown capability names are a
        configuration error and are never granted.
        """
        member = coerce(Capability, capability)
        if member is None:
            error = ConfigurationError(
                f"Unknown capability {capability!r}", context={"capability": str(capability)}
            )
            logger.error("entitlements.config.unknown_capability", **error.to_dict())
            return error

        snapshot = await self._snapshot(user_id, organization_id)
        resolution = self._evaluate(user_id, organization_id, snapshot)
        if resolution.error is not None:
            logger.debug(
                "entitlements.permission.denied",
                user_id=user_id,
                organization_id=organization_id,
                capability=member.value,
                reason=resolution.error.reason.value,
            )
            return resolution.error

        if member in resolution.capabilities:
            return None

        subscription = snapshot.subscription
        if subscription is None:
            return NoSubscriptionError(organization_id)
        if member in self._restricted_for(subscription):
            return SubscriptionInactiveError(organization_id, subscription.status, member.value)

        required_tier = None
        if member not in tier_capabilities(subscription.tier):
            tier = required_tier_for(member)
            required_tier = tier.value if tier is not None else None

        logger.debug(
            "entitlements.permission.denied",
            user_id=user_id,
            organization_id=organization_id,
            capability=member.value,
            reason="permission_denied",
            required_tier=required_tier,
        )
        return PermissionDeniedError(user_id, organization_id, member.value, required_tier)

    async def has_capability(
        self, user_id: str, organization_id: str, capability: Capability | str
    ) -> bool:
        """True iff every precondition holds and the capability is in the effective set."""
        return await self.check(user_id, organization_id, capability) is None

    async def has_any_capability(
        self, user_id: str, organization_id: str, capabilities: list[Capability | str]
    ) -> bool:
        for capability in capabilities:
            if await self.has_capability(user_id, organization_id, capability):
                return True
        return False

    async def has_all_capabilities(
        self, user_id: str, organization_id: str, capabilities: list[Capability | str]
    ) -> bool:
        for capability in capabilities:
            if not await self.has_capability(user_id, organization_id, capability):
                return False
        return True

    async def check_role(
        self, user_id: str, organization_id: str, roles: list[OrgRole | str]
    ) -> EntitlementError | None:
        """Require an active membership holding one of ``roles``."""
        snapshot = await self._snapshot(user_id, organization_id)
        membership = snapshot.membership
        if membership is None:
            return NoMembershipError(user_id, organization_id)
        if coerce(MembershipStatus, membership.status) != MembershipStatus.ACTIVE:
            return MembershipInactiveError(user_id, organization_id, membership.status)

        required = [getattr(role, "value", role) for role in roles]
        if membership.role in required:
            return None
        return RoleRequiredError(user_id, organization_id, required, membership.role)

    # ==================== Lookups ====================

    async def get_role(self, user_id: str, organization_id: str) -> OrgRole | None:
        """Role of a member regardless of membership status; None when not a member."""
        membership = (await self._snapshot(user_id, organization_id)).membership
        if membership is None:
            return None
        return coerce(OrgRole, membership.role)

    async def is_owner(self, user_id: str, organization_id: str) -> bool:
        return await self.get_role(user_id, organization_id) == OrgRole.OWNER

    async def is_admin_or_owner(self, user_id: str, organization_id: str) -> bool:
        return is_admin_role(await self.get_role(user_id, organization_id))

    async def get_tier(self, organization_id: str) -> PlanTier | None:
        async with self.session_factory() as session:
            subscription = await repository.load_subscription(session, organization_id)
        if subscription is None:
            return None
        return coerce(PlanTier, subscription.tier)

    async def check_subscription(self, organization_id: str) -> EntitlementError | None:
        """Require a subscription whose status is a usable one."""
        async with self.session_factory() as session:
            subscription = await repository.load_subscription(session, organization_id)
        if subscription is None:
            return NoSubscriptionError(organization_id)
        if coerce(SubscriptionStatus, subscription.status) not in self._usable_statuses:
            return SubscriptionInactiveError(organization_id, subscription.status)
        return None

    async def has_active_subscription(self, organization_id: str) -> bool:
        return await self.check_subscription(organization_id) is None

    # ==================== Overrides ====================

    def _require_capability(self, capability: Capability | str) -> Capability:
        member = coerce(Capability, capability)
        if member is None:
            raise ConfigurationError(
                f"Unknown capability {capability!r}", context={"capability": str(capability)}
            )
        return member

    async def _add_override(
        self,
        user_id: str,
        organization_id: str,
        capability: Capability | str,
        effect: OverrideEffect,
        actor_id: str | None,
    ) -> bool:
        member = self._require_capability(capability)
        try:
            async with self.session_factory() as session, session.begin():
                row = await repository.get_membership_row(session, user_id, organization_id)
                if row is None:
                    raise NoMembershipError(user_id, organization_id)
                changed = await repository.add_override(session, row.id, member, effect, actor_id)
        except IntegrityError:
            # Same entry inserted concurrently.
            changed = False

        if changed:
            self.invalidate(user_id, organization_id)
            log_audit_event(
                f"entitlements.override.{effect.value}",
                "permission",
                user_id=user_id,
                organization_id=organization_id,
                capability=member.value,
                actor_id=actor_id,
            )
        return changed

    async def grant_override(
        self,
        user_id: str,
        organization_id: str,
        capability: Capability | str,
        actor_id: str | None = None,
    ) -> bool:
        """Grant a capability beyond tier and role; returns False if already granted."""
        return await self._add_override(
            user_id, organization_id, capability, OverrideEffect.GRANT, actor_id
        )

    async def deny_override(
        self,
        user_id: str,
        organization_id: str,
        capability: Capability | str,
        actor_id: str | None = None,
    ) -> bool:
        """Deny a capability regardless of tier, role and grants."""
        return await self._add_override(
            user_id, organization_id, capability, OverrideEffect.DENY, actor_id
        )

    async def revoke_override(
        self,
        user_id: str,
        organization_id: str,
        capability: Capability | str,
        effect: OverrideEffect | None = None,
        actor_id: str | None = None,
    ) -> bool:
        """
        Remove override entries for a capability.

        With ``effect`` None both the grant and the deny entry are removed.
        Revoking an absent override is a no-op that returns False.
        """
        member = self._require_capability(capability)
        async with self.session_factory() as session, session.begin():
            row = await repository.get_membership_row(session, user_id, organization_id)
            if row is None:
                raise NoMembershipError(user_id, organization_id)
            removed = await repository.remove_overrides(session, row.id, member, effect)

        if removed:
            self.invalidate(user_id, organization_id)
            log_audit_event(
                "entitlements.override.revoked",
                "permission",
                user_id=user_id,
                organization_id=organization_id,
                capability=member.value,
                effect=effect.value if effect else None,
                actor_id=actor_id,
            )
        return removed > 0


__all__ = ["PermissionEngine", "Resolution"]
