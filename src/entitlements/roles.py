"""
Role resolver.

Roles do not inherit from one another: every role lists its full capability
set. ``validate_role_table`` runs at import so an OWNER that is missing a
capability another role has stops the process instead of silently shipping.
"""

from types import MappingProxyType

from entitlements.catalog import CATALOG
from entitlements.exceptions import ConfigurationError
from entitlements.logging import get_logger
from entitlements.schema import Capability, OrgRole, coerce

logger = get_logger(__name__)

C = Capability

_VIEWER = frozenset(
    {
        C.RECORDS_READ,
        C.LISTINGS_READ,
        C.CAMPAIGNS_READ,
        C.REPORTS_VIEW_BASIC,
    }
)

_MEMBER = frozenset(
    {
        C.RECORDS_READ,
        C.RECORDS_WRITE,
        C.LISTINGS_READ,
        C.LISTINGS_WRITE,
        C.CAMPAIGNS_READ,
        C.CAMPAIGNS_VIEW_ANALYTICS,
        C.AUTOMATIONS_READ,
        C.INTEGRATIONS_READ,
        C.REPORTS_VIEW_BASIC,
    }
)

_MANAGER = frozenset(
    {
        C.RECORDS_READ,
        C.RECORDS_WRITE,
        C.RECORDS_DELETE,
        C.RECORDS_EXPORT,
        C.RECORDS_ASSIGN,
        C.LISTINGS_READ,
        C.LISTINGS_WRITE,
        C.LISTINGS_DELETE,
        C.LISTINGS_PUBLISH,
        C.LISTINGS_ASSIGN_AGENT,
        C.CAMPAIGNS_READ,
        C.CAMPAIGNS_WRITE,
        C.CAMPAIGNS_DELETE,
        C.CAMPAIGNS_ACTIVATE,
        C.CAMPAIGNS_VIEW_ANALYTICS,
        C.AUTOMATIONS_READ,
        C.AUTOMATIONS_WRITE,
        C.AUTOMATIONS_EXECUTE,
        C.INTEGRATIONS_READ,
        C.INTEGRATIONS_WRITE,
        C.INTEGRATIONS_SYNC,
        C.REPORTS_VIEW_BASIC,
        C.REPORTS_VIEW_ADVANCED,
        C.REPORTS_EXPORT,
        C.ORG_MEMBERS_READ,
    }
)

# Everything except billing, member removal and dedicated support
_ADMIN = frozenset(
    {
        C.RECORDS_READ,
        C.RECORDS_WRITE,
        C.RECORDS_DELETE,
        C.RECORDS_EXPORT,
        C.RECORDS_BULK_ACTIONS,
        C.RECORDS_ASSIGN,
        C.LISTINGS_READ,
        C.LISTINGS_WRITE,
        C.LISTINGS_DELETE,
        C.LISTINGS_PUBLISH,
        C.LISTINGS_ASSIGN_AGENT,
        C.LISTINGS_IMPORT,
        C.CAMPAIGNS_READ,
        C.CAMPAIGNS_WRITE,
        C.CAMPAIGNS_DELETE,
        C.CAMPAIGNS_ACTIVATE,
        C.CAMPAIGNS_VIEW_ANALYTICS,
        C.CAMPAIGNS_MANAGE_BUDGET,
        C.AUTOMATIONS_READ,
        C.AUTOMATIONS_WRITE,
        C.AUTOMATIONS_DELETE,
        C.AUTOMATIONS_EXECUTE,
        C.INTEGRATIONS_READ,
        C.INTEGRATIONS_WRITE,
        C.INTEGRATIONS_DELETE,
        C.INTEGRATIONS_SYNC,
        C.REPORTS_VIEW_BASIC,
        C.REPORTS_VIEW_ADVANCED,
        C.REPORTS_EXPORT,
        C.REPORTS_SCHEDULE,
        C.REPORTS_CUSTOM,
        C.ORG_SETTINGS,
        C.ORG_MEMBERS_READ,
        C.ORG_MEMBERS_WRITE,
        C.ORG_INVITE_MEMBERS,
        C.API_ACCESS,
        C.WHITE_LABEL,
        C.CUSTOM_INTEGRATIONS,
        C.BULK_OPERATIONS,
        C.ADVANCED_ANALYTICS,
    }
)

_OWNER = frozenset(CATALOG)

ROLE_CAPABILITIES: MappingProxyType[OrgRole, frozenset[Capability]] = MappingProxyType(
    {
        OrgRole.OWNER: _OWNER,
        OrgRole.ADMIN: _ADMIN,
        OrgRole.MANAGER: _MANAGER,
        OrgRole.MEMBER: _MEMBER,
        OrgRole.VIEWER: _VIEWER,
    }
)

# Most to least privileged
ROLE_ORDER: tuple[OrgRole, ...] = (
    OrgRole.OWNER,
    OrgRole.ADMIN,
    OrgRole.MANAGER,
    OrgRole.MEMBER,
    OrgRole.VIEWER,
)


def validate_role_table(
    table: MappingProxyType[OrgRole, frozenset[Capability]] | dict[OrgRole, frozenset[Capability]],
) -> None:
    """
    Check the hand-maintained role lists.

    Raises:
        ConfigurationError: a role is missing from the table, or OWNER is not a
            superset of every other role.
    """
    missing_roles = [role.value for role in OrgRole if role not in table]
    if missing_roles:
        raise ConfigurationError(
            "Role capability table is incomplete", context={"roles": missing_roles}
        )

    owner = table[OrgRole.OWNER]
    for role, capabilities in table.items():
        extra = capabilities - owner
        if extra:
            raise ConfigurationError(
                f"Role {role.value} holds capabilities the owner does not",
                context={"role": role.value, "capabilities": sorted(c.value for c in extra)},
            )

    # Lower roles are expected, not required, to be subsets of higher ones
    for higher, lower in zip(ROLE_ORDER, ROLE_ORDER[1:]):
        drift = table[lower] - table[higher]
        if drift:
            logger.warning(
                "entitlements.config.role_drift",
                higher=higher.value,
                lower=lower.value,
                capabilities=sorted(c.value for c in drift),
            )


validate_role_table(ROLE_CAPABILITIES)


def role_capabilities(role: OrgRole | str) -> frozenset[Capability]:
    """Capability set of an organizational role; unknown roles resolve to the empty set."""
    member = coerce(OrgRole, role)
    if member is None:
        error = ConfigurationError(f"Unknown organizational role {role!r}", context={"role": str(role)})
        logger.error("entitlements.config.unknown_role", **error.to_dict())
        return frozenset()
    return ROLE_CAPABILITIES[member]


def is_admin_role(role: OrgRole | str | None) -> bool:
    return coerce(OrgRole, role) in (OrgRole.OWNER, OrgRole.ADMIN)


def permission_matrix() -> dict[str, dict[str, bool]]:
    """Capability x role grid for the organization admin screen."""
    return {
        capability.value: {
            role.value: capability in ROLE_CAPABILITIES[role] for role in ROLE_ORDER
        }
        for capability in CATALOG
    }


__all__ = [
    "ROLE_CAPABILITIES",
    "ROLE_ORDER",
    "validate_role_table",
    "role_capabilities",
    "is_admin_role",
    "permission_matrix",
]
