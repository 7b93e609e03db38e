"""
Plan tier resolver.

Each tier owns only the capabilities it newly unlocks; the effective set for
a tier is the union of its own increment and every increment below it, so
tiers can only add capabilities. Resource limits are also tier-derived here,
with ``UNLIMITED`` (-1) as the sentinel for "no limit".
"""

from types import MappingProxyType

from entitlements.exceptions import ConfigurationError
from entitlements.logging import get_logger
from entitlements.schema import Capability, PlanTier, ResourceType, coerce

logger = get_logger(__name__)

UNLIMITED = -1

C = Capability

_TIER_INCREMENTS: dict[PlanTier, frozenset[Capability]] = {
    PlanTier.BASIC: frozenset(
        {
            C.RECORDS_READ,
            C.RECORDS_WRITE,
            C.LISTINGS_READ,
            C.LISTINGS_WRITE,
            C.CAMPAIGNS_READ,
            C.REPORTS_VIEW_BASIC,
            C.INTEGRATIONS_READ,
            C.ORG_MEMBERS_READ,
        }
    ),
    PlanTier.PRO: frozenset(
        {
            C.RECORDS_DELETE,
            C.RECORDS_EXPORT,
            C.RECORDS_BULK_ACTIONS,
            C.RECORDS_ASSIGN,
            C.LISTINGS_DELETE,
            C.LISTINGS_PUBLISH,
            C.LISTINGS_ASSIGN_AGENT,
            C.LISTINGS_IMPORT,
            C.CAMPAIGNS_WRITE,
            C.CAMPAIGNS_DELETE,
            C.CAMPAIGNS_ACTIVATE,
            C.CAMPAIGNS_VIEW_ANALYTICS,
            C.AUTOMATIONS_READ,
            C.AUTOMATIONS_WRITE,
            C.AUTOMATIONS_EXECUTE,
            C.INTEGRATIONS_WRITE,
            C.INTEGRATIONS_SYNC,
            C.REPORTS_VIEW_ADVANCED,
            C.REPORTS_EXPORT,
        }
    ),
    PlanTier.AGENCY: frozenset(
        {
            C.AUTOMATIONS_DELETE,
            C.INTEGRATIONS_DELETE,
            C.REPORTS_SCHEDULE,
            C.REPORTS_CUSTOM,
            C.CAMPAIGNS_MANAGE_BUDGET,
            C.ORG_SETTINGS,
            C.ORG_INVITE_MEMBERS,
            C.ORG_MEMBERS_WRITE,
            C.API_ACCESS,
            C.WHITE_LABEL,
            C.BULK_OPERATIONS,
            C.ADVANCED_ANALYTICS,
        }
    ),
    PlanTier.ENTERPRISE: frozenset(
        {
            C.CUSTOM_INTEGRATIONS,
            C.DEDICATED_SUPPORT,
            C.ORG_MEMBERS_DELETE,
            C.ORG_BILLING,
        }
    ),
}

TIER_INCREMENTS: MappingProxyType[PlanTier, frozenset[Capability]] = MappingProxyType(
    _TIER_INCREMENTS
)

R = ResourceType

PLAN_LIMITS: MappingProxyType[PlanTier, MappingProxyType[ResourceType, int]] = MappingProxyType(
    {
        PlanTier.BASIC: MappingProxyType(
            {
                R.USER_SEATS: 1,
                R.RECORDS: 100,
                R.LISTINGS: 50,
                R.CAMPAIGN_ASSETS: 3,
                R.AUTOMATION_RULES: 0,
                R.INTEGRATIONS: 2,
            }
        ),
        PlanTier.PRO: MappingProxyType(
            {
                R.USER_SEATS: 5,
                R.RECORDS: 1000,
                R.LISTINGS: 500,
                R.CAMPAIGN_ASSETS: 20,
                R.AUTOMATION_RULES: 10,
                R.INTEGRATIONS: 10,
            }
        ),
        PlanTier.AGENCY: MappingProxyType({resource: UNLIMITED for resource in ResourceType}),
        PlanTier.ENTERPRISE: MappingProxyType({resource: UNLIMITED for resource in ResourceType}),
    }
)

# UI feature gates, each unlocked by one capability
FEATURE_GATES: MappingProxyType[str, Capability] = MappingProxyType(
    {
        "automations": C.AUTOMATIONS_READ,
        "advanced_reports": C.REPORTS_VIEW_ADVANCED,
        "api_access": C.API_ACCESS,
        "white_label": C.WHITE_LABEL,
        "custom_integrations": C.CUSTOM_INTEGRATIONS,
        "bulk_operations": C.BULK_OPERATIONS,
        "advanced_analytics": C.ADVANCED_ANALYTICS,
    }
)


def _cumulative(tier: PlanTier) -> frozenset[Capability]:
    capabilities: set[Capability] = set()
    for lower in tier.tiers_up_to():
        capabilities |= _TIER_INCREMENTS.get(lower, frozenset())
    return frozenset(capabilities)


_CUMULATIVE: MappingProxyType[PlanTier, frozenset[Capability]] = MappingProxyType(
    {tier: _cumulative(tier) for tier in PlanTier}
)


def tier_capabilities(tier: PlanTier | str) -> frozenset[Capability]:
    """
    Cumulative capability set for a subscription tier.

    Unknown tiers are a configuration defect and resolve to the empty set.
    """
    member = coerce(PlanTier, tier)
    if member is None:
        error = ConfigurationError(f"Unknown plan tier {tier!r}", context={"tier": str(tier)})
        logger.error("entitlements.config.unknown_tier", **error.to_dict())
        return frozenset()
    return _CUMULATIVE[member]


def required_tier_for(capability: Capability | str) -> PlanTier | None:
    """Lowest tier whose cumulative set contains ``capability``."""
    member = coerce(Capability, capability)
    if member is None:
        return None
    for tier in PlanTier:
        if member in _CUMULATIVE[tier]:
            return tier
    return None


def plan_has_feature(tier: PlanTier | str, feature: str) -> bool:
    """Check whether a tier unlocks a named UI feature gate."""
    capability = FEATURE_GATES.get(feature)
    if capability is None:
        logger.warning("entitlements.config.unknown_feature_gate", feature=feature)
        return False
    return capability in tier_capabilities(tier)


def limit_for(tier: PlanTier | str, resource_type: ResourceType | str) -> int:
    """
    Tier-derived limit for a resource type.

    Returns ``UNLIMITED`` for uncapped resources and ``0`` (no headroom) when
    the tier or resource type is unknown.
    """
    tier_member = coerce(PlanTier, tier)
    resource_member = coerce(ResourceType, resource_type)
    if tier_member is None or resource_member is None:
        error = ConfigurationError(
            "Unknown plan tier or resource type",
            context={"tier": str(tier), "resource_type": str(resource_type)},
        )
        logger.error("entitlements.config.unknown_limit", **error.to_dict())
        return 0
    return PLAN_LIMITS[tier_member].get(resource_member, 0)


def is_unlimited(limit: int) -> bool:
    return limit == UNLIMITED


__all__ = [
    "UNLIMITED",
    "TIER_INCREMENTS",
    "PLAN_LIMITS",
    "FEATURE_GATES",
    "tier_capabilities",
    "required_tier_for",
    "plan_has_feature",
    "limit_for",
    "is_unlimited",
]
