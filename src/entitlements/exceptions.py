"""
Entitlement engine exceptions.

Denials are expected outcomes: the engine returns these objects as values on
its public boundary instead of raising them. They still derive from
``Exception`` so a caller that prefers to raise can do so, and so that
configuration defects found while loading tables can be raised directly.
"""

from typing import Any

from entitlements.schema import DenialReason


class EntitlementError(Exception):
    """
    Base entitlement error with enhanced context.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code for API responses
        status_code: HTTP status code a caller should map this error to
        reason: Denial reason used for telemetry and decisions
        context: Additional context data about the error
        recovery_hint: Suggested action to resolve the error
    """

    reason: DenialReason = DenialReason.PERMISSION_DENIED

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int = 403,
        context: dict[str, Any] | None = None,
        recovery_hint: str | None = None,
    ):
        self.message = message
        self.error_code = error_code or "ENTITLEMENT_ERROR"
        self.status_code = status_code
        self.context = context or {}
        self.recovery_hint = recovery_hint
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for API responses."""
        return {
            "error_code": self.error_code,
            "reason": self.reason.value,
            "message": self.message,
            "status_code": self.status_code,
            "context": self.context,
            "recovery_hint": self.recovery_hint,
        }


class AccessPreconditionError(EntitlementError):
    """A precondition for resolving capabilities was not met."""


class NoMembershipError(AccessPreconditionError):
    """User is not a member of the organization."""

    reason = DenialReason.NO_MEMBERSHIP

    def __init__(self, user_id: str, organization_id: str) -> None:
        super().__init__(
            f"User {user_id} is not a member of organization {organization_id}",
            "NO_MEMBERSHIP",
            context={"user_id": user_id, "organization_id": organization_id},
            recovery_hint="Ask an organization administrator for an invitation",
        )


class MembershipInactiveError(AccessPreconditionError):
    """Membership exists but is suspended or still an invitation."""

    reason = DenialReason.MEMBERSHIP_INACTIVE

    def __init__(self, user_id: str, organization_id: str, status: str) -> None:
        super().__init__(
            f"Membership of user {user_id} in organization {organization_id} is {status}",
            "MEMBERSHIP_INACTIVE",
            context={"user_id": user_id, "organization_id": organization_id, "status": status},
            recovery_hint="Accept the pending invitation or contact an organization administrator",
        )


class NoSubscriptionError(AccessPreconditionError):
    """Organization has no subscription."""

    reason = DenialReason.NO_SUBSCRIPTION

    def __init__(self, organization_id: str) -> None:
        super().__init__(
            f"Organization {organization_id} has no subscription",
            "NO_SUBSCRIPTION",
            status_code=402,
            context={"organization_id": organization_id},
            recovery_hint="Start a trial or choose a plan",
        )


class SubscriptionInactiveError(AccessPreconditionError):
    """Subscription status does not allow the requested access."""

    reason = DenialReason.SUBSCRIPTION_INACTIVE

    def __init__(
        self, organization_id: str, status: str, capability: str | None = None
    ) -> None:
        context: dict[str, Any] = {"organization_id": organization_id, "status": status}
        if capability:
            context["capability"] = capability
        super().__init__(
            f"Subscription for organization {organization_id} is {status}",
            "SUBSCRIPTION_INACTIVE",
            status_code=402,
            context=context,
            recovery_hint="Update the payment method or reactivate the subscription",
        )


class PermissionDeniedError(EntitlementError):
    """Preconditions passed but the capability is not in the effective set."""

    reason = DenialReason.PERMISSION_DENIED

    def __init__(
        self,
        user_id: str,
        organization_id: str,
        capability: str,
        required_tier: str | None = None,
    ) -> None:
        context: dict[str, Any] = {
            "user_id": user_id,
            "organization_id": organization_id,
            "capability": capability,
        }
        hint = "Ask an organization administrator to grant this capability"
        if required_tier:
            context["required_tier"] = required_tier
            hint = f"Requires the {required_tier} plan or an administrator grant"
        super().__init__(
            f"User {user_id} lacks {capability} in organization {organization_id}",
            "PERMISSION_DENIED",
            context=context,
            recovery_hint=hint,
        )
        self.capability = capability
        self.required_tier = required_tier


class RoleRequiredError(EntitlementError):
    """Member does not hold one of the required roles."""

    reason = DenialReason.ROLE_REQUIRED

    def __init__(
        self, user_id: str, organization_id: str, required: list[str], current: str | None
    ) -> None:
        super().__init__(
            f"User {user_id} does not hold a required role in organization {organization_id}",
            "ROLE_REQUIRED",
            context={
                "user_id": user_id,
                "organization_id": organization_id,
                "required": required,
                "current": current,
            },
        )


class QuotaExceededError(EntitlementError):
    """Organization has no headroom left for the resource type."""

    reason = DenialReason.QUOTA_EXCEEDED

    def __init__(self, resource_type: str, limit: int, current: int) -> None:
        super().__init__(
            f"{resource_type} limit exceeded. You've reached {current} of {limit} "
            f"allowed {resource_type}.",
            "QUOTA_EXCEEDED",
            status_code=402,
            context={"resource_type": resource_type, "limit": limit, "current": current},
            recovery_hint="Upgrade the plan or remove unused items",
        )
        self.resource_type = resource_type
        self.limit = limit
        self.current = current


class ConfigurationError(EntitlementError):
    """Unknown tier, role, capability or resource type: a deployment defect."""

    reason = DenialReason.CONFIGURATION_ERROR

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(
            message,
            "CONFIGURATION_ERROR",
            status_code=500,
            context=context,
            recovery_hint="Check the entitlement tables and the stored subscription data",
        )


__all__ = [
    "EntitlementError",
    "AccessPreconditionError",
    "NoMembershipError",
    "MembershipInactiveError",
    "NoSubscriptionError",
    "SubscriptionInactiveError",
    "PermissionDeniedError",
    "RoleRequiredError",
    "QuotaExceededError",
    "ConfigurationError",
]
