"""
Capability catalog.

Static registry of every capability the platform knows about, with the
human description shown in the admin UI and the informational subject group.
The engine itself treats the catalog as a flat set.
"""

from types import MappingProxyType

from entitlements.exceptions import ConfigurationError
from entitlements.schema import Capability, CapabilityGroup, coerce

C = Capability

_DESCRIPTIONS: dict[Capability, str] = {
    C.RECORDS_READ: "View records and their details",
    C.RECORDS_WRITE: "Create and edit records",
    C.RECORDS_DELETE: "Delete records",
    C.RECORDS_EXPORT: "Export records to CSV/Excel",
    C.RECORDS_BULK_ACTIONS: "Perform bulk operations on records",
    C.RECORDS_ASSIGN: "Assign records to team members",
    C.LISTINGS_READ: "View listings and their details",
    C.LISTINGS_WRITE: "Create and edit listings",
    C.LISTINGS_DELETE: "Delete listings",
    C.LISTINGS_PUBLISH: "Publish listings to external channels",
    C.LISTINGS_ASSIGN_AGENT: "Assign listings to agents",
    C.LISTINGS_IMPORT: "Import listings from external sources",
    C.CAMPAIGNS_READ: "View campaigns and their performance",
    C.CAMPAIGNS_WRITE: "Create and edit campaigns",
    C.CAMPAIGNS_DELETE: "Delete campaigns",
    C.CAMPAIGNS_ACTIVATE: "Activate and pause campaigns",
    C.CAMPAIGNS_VIEW_ANALYTICS: "View detailed campaign analytics",
    C.CAMPAIGNS_MANAGE_BUDGET: "Manage campaign budgets",
    C.AUTOMATIONS_READ: "View automation workflows",
    C.AUTOMATIONS_WRITE: "Create and edit automations",
    C.AUTOMATIONS_DELETE: "Delete automations",
    C.AUTOMATIONS_EXECUTE: "Manually trigger automations",
    C.INTEGRATIONS_READ: "View connected integrations",
    C.INTEGRATIONS_WRITE: "Connect and configure integrations",
    C.INTEGRATIONS_DELETE: "Disconnect integrations",
    C.INTEGRATIONS_SYNC: "Trigger manual syncs",
    C.REPORTS_VIEW_BASIC: "View basic reports and dashboards",
    C.REPORTS_VIEW_ADVANCED: "View advanced analytics and insights",
    C.REPORTS_EXPORT: "Export reports to PDF/Excel",
    C.REPORTS_SCHEDULE: "Schedule automated report delivery",
    C.REPORTS_CUSTOM: "Create custom reports",
    C.ORG_SETTINGS: "Manage organization settings",
    C.ORG_BILLING: "Access billing and subscription management",
    C.ORG_MEMBERS_READ: "View organization members",
    C.ORG_MEMBERS_WRITE: "Manage member roles and permissions",
    C.ORG_MEMBERS_DELETE: "Remove members from the organization",
    C.ORG_INVITE_MEMBERS: "Invite new members to the organization",
    C.API_ACCESS: "Access API keys and documentation",
    C.WHITE_LABEL: "Customize branding and white-label features",
    C.CUSTOM_INTEGRATIONS: "Create custom integrations and webhooks",
    C.DEDICATED_SUPPORT: "Access dedicated support channels",
    C.BULK_OPERATIONS: "Perform advanced bulk operations",
    C.ADVANCED_ANALYTICS: "Access advanced analytics and AI insights",
}

_GROUP_PREFIXES: tuple[tuple[str, CapabilityGroup], ...] = (
    ("RECORDS_", CapabilityGroup.RECORDS),
    ("LISTINGS_", CapabilityGroup.LISTINGS),
    ("CAMPAIGNS_", CapabilityGroup.CAMPAIGNS),
    ("AUTOMATIONS_", CapabilityGroup.AUTOMATIONS),
    ("INTEGRATIONS_", CapabilityGroup.INTEGRATIONS),
    ("REPORTS_", CapabilityGroup.REPORTS),
    ("ORG_", CapabilityGroup.ORGANIZATION),
)


def _group_for(capability: Capability) -> CapabilityGroup:
    for prefix, group in _GROUP_PREFIXES:
        if capability.value.startswith(prefix):
            return group
    return CapabilityGroup.PLATFORM


def _validate_catalog() -> None:
    missing = [c.value for c in Capability if not _DESCRIPTIONS.get(c)]
    if missing:
        raise ConfigurationError(
            "Capability catalog entries without a description",
            context={"capabilities": missing},
        )


_validate_catalog()

CATALOG: MappingProxyType[Capability, str] = MappingProxyType(_DESCRIPTIONS)
GROUPS: MappingProxyType[Capability, CapabilityGroup] = MappingProxyType(
    {capability: _group_for(capability) for capability in Capability}
)


def is_valid(value: object) -> bool:
    """True when ``value`` names a capability in the catalog."""
    capability = coerce(Capability, value)
    return capability is not None and capability in CATALOG


def describe(capability: Capability | str) -> str:
    """Human description of a capability; unknown values get an empty string."""
    member = coerce(Capability, capability)
    if member is None:
        return ""
    return CATALOG[member]


def group_of(capability: Capability | str) -> CapabilityGroup | None:
    member = coerce(Capability, capability)
    return GROUPS[member] if member is not None else None


def capabilities_in(group: CapabilityGroup) -> frozenset[Capability]:
    """All capabilities belonging to one subject group."""
    return frozenset(c for c, g in GROUPS.items() if g == group)


def all_capabilities() -> frozenset[Capability]:
    return frozenset(CATALOG)


__all__ = [
    "CATALOG",
    "GROUPS",
    "is_valid",
    "describe",
    "group_of",
    "capabilities_in",
    "all_capabilities",
]
