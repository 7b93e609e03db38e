"""
DotMac Entitlements - plan, role and quota enforcement for organizations.

This package answers two questions before any write:
- Does the acting member's effective capability set include the action?
  (plan tier x organization role x per-member overrides)
- Does the organization's subscription still have headroom for the resource?
  (atomic counters with an append-only usage ledger)

Callers normally go through ``Guard``.
"""

from entitlements.exceptions import (
    ConfigurationError,
    EntitlementError,
    MembershipInactiveError,
    NoMembershipError,
    NoSubscriptionError,
    PermissionDeniedError,
    QuotaExceededError,
    RoleRequiredError,
    SubscriptionInactiveError,
)
from entitlements.guard import Decision, Guard
from entitlements.permissions import PermissionEngine, Resolution
from entitlements.plans import UNLIMITED
from entitlements.quota import QuotaCheck, QuotaLedger, UsageStats, UsageSummary
from entitlements.schema import (
    Capability,
    DenialReason,
    MembershipStatus,
    OrgRole,
    OverrideEffect,
    PlanTier,
    ResourceType,
    SubscriptionStatus,
    UsageAction,
)

__version__ = "1.0.0"
__author__ = "DotMac Team"
__email__ = "dev@dotmac.com"


def get_version() -> str:
    """Get entitlements package version."""
    return __version__


__all__ = [
    "__version__",
    "get_version",
    # Facade
    "Guard",
    "Decision",
    "PermissionEngine",
    "Resolution",
    "QuotaLedger",
    "QuotaCheck",
    "UsageStats",
    "UsageSummary",
    "UNLIMITED",
    # Vocabulary
    "Capability",
    "PlanTier",
    "OrgRole",
    "SubscriptionStatus",
    "MembershipStatus",
    "ResourceType",
    "UsageAction",
    "OverrideEffect",
    "DenialReason",
    # Errors
    "EntitlementError",
    "NoMembershipError",
    "MembershipInactiveError",
    "NoSubscriptionError",
    "SubscriptionInactiveError",
    "PermissionDeniedError",
    "RoleRequiredError",
    "QuotaExceededError",
    "ConfigurationError",
]
