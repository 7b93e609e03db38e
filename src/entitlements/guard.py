"""
Guard: the single entry point callers consult before mutating state.

``authorize`` checks capability and quota headroom without reserving
anything. Callers reserve with ``commit_reservation`` only after their own
write succeeded, and give capacity back with ``release_reservation``.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from entitlements.db import get_async_session_maker
from entitlements.exceptions import (
    ConfigurationError,
    EntitlementError,
    NoSubscriptionError,
    PermissionDeniedError,
    QuotaExceededError,
)
from entitlements.logging import get_logger
from entitlements.permissions import PermissionEngine
from entitlements.quota import QuotaCheck, QuotaLedger
from entitlements.schema import Capability, DenialReason, OrgRole, ResourceType, coerce
from entitlements.settings import Settings

logger = get_logger(__name__)


class Decision(BaseModel):
    """Outcome of an authorization request."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: DenialReason | None = None
    message: str | None = None
    error_code: str | None = None
    status_code: int | None = None
    limit_info: QuotaCheck | None = None
    required_tier: str | None = None

    @classmethod
    def allow(cls, limit_info: QuotaCheck | None = None) -> "Decision":
        return cls(allowed=True, limit_info=limit_info)

    @classmethod
    def deny(cls, error: EntitlementError, limit_info: QuotaCheck | None = None) -> "Decision":
        required_tier = error.required_tier if isinstance(error, PermissionDeniedError) else None
        return cls(
            allowed=False,
            reason=error.reason,
            message=error.message,
            error_code=error.error_code,
            status_code=error.status_code,
            limit_info=limit_info,
            required_tier=required_tier,
        )


class Guard:
    """Combines the permission engine and the quota ledger into decisions."""

    def __init__(self, permissions: PermissionEngine, quotas: QuotaLedger):
        self.permissions = permissions
        self.quotas = quotas

    @classmethod
    def from_session_factory(
        cls,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        settings: Settings | None = None,
    ) -> "Guard":
        """Build a guard over one session factory, defaulting to the configured database."""
        factory = session_factory or get_async_session_maker()
        return cls(PermissionEngine(factory, settings), QuotaLedger(factory, settings))

    # ==================== Helpers ====================

    @staticmethod
    def _configuration_denial(kind: str, value: Any) -> Decision:
        error = ConfigurationError(f"Unknown {kind} {value!r}", context={kind: str(value)})
        logger.error("entitlements.guard.configuration_error", **error.to_dict())
        return Decision.deny(error)

    @staticmethod
    def _denied(
        user_id: str | None,
        organization_id: str,
        error: EntitlementError,
        limit_info: QuotaCheck | None = None,
    ) -> Decision:
        logger.info(
            "entitlements.guard.denied",
            user_id=user_id,
            organization_id=organization_id,
            reason=error.reason.value,
            error_code=error.error_code,
        )
        return Decision.deny(error, limit_info)

    async def _quota_decision(
        self,
        user_id: str,
        organization_id: str,
        resource_type: ResourceType | str | None,
        quantity: int,
    ) -> Decision:
        if resource_type is None:
            return Decision.allow()

        resource = coerce(ResourceType, resource_type)
        if resource is None:
            return self._configuration_denial("resource_type", resource_type)

        try:
            check = await self.quotas.check_quota(organization_id, resource, quantity)
        except NoSubscriptionError as e:
            return self._denied(user_id, organization_id, e)

        if not check.allowed:
            error = QuotaExceededError(resource.value, check.limit, check.current)
            return self._denied(user_id, organization_id, error, limit_info=check)
        return Decision.allow(limit_info=check)

    # ==================== Authorization ====================

    async def authorize(
        self,
        user_id: str,
        organization_id: str,
        capability: Capability | str,
        resource_type: ResourceType | str | None = None,
        quantity: int = 1,
    ) -> Decision:
        """
        Decide whether a member may perform an action.

        Checks the capability first and, when ``resource_type`` is given, quota
        headroom for ``quantity`` units. Never reserves quota.
        """
        if coerce(Capability, capability) is None:
            return self._configuration_denial("capability", capability)

        error = await self.permissions.check(user_id, organization_id, capability)
        if error is not None:
            return self._denied(user_id, organization_id, error)

        return await self._quota_decision(user_id, organization_id, resource_type, quantity)

    async def authorize_all(
        self,
        user_id: str,
        organization_id: str,
        capabilities: list[Capability | str],
        resource_type: ResourceType | str | None = None,
        quantity: int = 1,
    ) -> Decision:
        """Require every capability; the first failure is reported."""
        for capability in capabilities:
            if coerce(Capability, capability) is None:
                return self._configuration_denial("capability", capability)
            error = await self.permissions.check(user_id, organization_id, capability)
            if error is not None:
                return self._denied(user_id, organization_id, error)

        return await self._quota_decision(user_id, organization_id, resource_type, quantity)

    async def authorize_any(
        self,
        user_id: str,
        organization_id: str,
        capabilities: list[Capability | str],
        resource_type: ResourceType | str | None = None,
        quantity: int = 1,
    ) -> Decision:
        """Require at least one capability; on failure the first denial is reported."""
        first_error: EntitlementError | None = None
        for capability in capabilities:
            if coerce(Capability, capability) is None:
                return self._configuration_denial("capability", capability)
            error = await self.permissions.check(user_id, organization_id, capability)
            if error is None:
                return await self._quota_decision(
                    user_id, organization_id, resource_type, quantity
                )
            first_error = first_error or error

        if first_error is None:
            return self._configuration_denial("capability", capabilities)
        return self._denied(user_id, organization_id, first_error)

    async def authorize_role(
        self, user_id: str, organization_id: str, *roles: OrgRole | str
    ) -> Decision:
        """Require an active membership holding one of ``roles``."""
        error = await self.permissions.check_role(user_id, organization_id, list(roles))
        if error is not None:
            return self._denied(user_id, organization_id, error)
        return Decision.allow()

    async def require_active_subscription(self, organization_id: str) -> Decision:
        """Require a subscription in a usable status."""
        error = await self.permissions.check_subscription(organization_id)
        if error is not None:
            return self._denied(None, organization_id, error)
        return Decision.allow()

    # ==================== Reservations ====================

    async def commit_reservation(
        self,
        organization_id: str,
        resource_type: ResourceType | str,
        quantity: int = 1,
        metadata: dict[str, Any] | None = None,
    ) -> EntitlementError | None:
        """Reserve quota after the caller's write succeeded."""
        return await self.quotas.reserve(organization_id, resource_type, quantity, metadata)

    async def release_reservation(
        self,
        organization_id: str,
        resource_type: ResourceType | str,
        quantity: int = 1,
        metadata: dict[str, Any] | None = None,
    ) -> EntitlementError | None:
        """Give back quota after the caller deleted a resource."""
        return await self.quotas.release(organization_id, resource_type, quantity, metadata)


__all__ = ["Decision", "Guard"]
