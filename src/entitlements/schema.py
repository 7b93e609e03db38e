"""
Shared entitlement schema.

Every enumeration used by the catalog, resolvers, engine and ledger is defined
here once. Values are the persisted and serialized form, so renaming a value
is a data migration and must bump ``SCHEMA_VERSION``.
"""

from enum import Enum
from typing import TypeVar

SCHEMA_VERSION = "1.0"

E = TypeVar("E", bound=Enum)


class Capability(str, Enum):
    """Atomic, named permission to perform one kind of action."""

    # Records
    RECORDS_READ = "RECORDS_READ"
    RECORDS_WRITE = "RECORDS_WRITE"
    RECORDS_DELETE = "RECORDS_DELETE"
    RECORDS_EXPORT = "RECORDS_EXPORT"
    RECORDS_BULK_ACTIONS = "RECORDS_BULK_ACTIONS"
    RECORDS_ASSIGN = "RECORDS_ASSIGN"

    # Listings
    LISTINGS_READ = "LISTINGS_READ"
    LISTINGS_WRITE = "LISTINGS_WRITE"
    LISTINGS_DELETE = "LISTINGS_DELETE"
    LISTINGS_PUBLISH = "LISTINGS_PUBLISH"
    LISTINGS_ASSIGN_AGENT = "LISTINGS_ASSIGN_AGENT"
    LISTINGS_IMPORT = "LISTINGS_IMPORT"

    # Campaigns
    CAMPAIGNS_READ = "CAMPAIGNS_READ"
    CAMPAIGNS_WRITE = "CAMPAIGNS_WRITE"
    CAMPAIGNS_DELETE = "CAMPAIGNS_DELETE"
    CAMPAIGNS_ACTIVATE = "CAMPAIGNS_ACTIVATE"
    CAMPAIGNS_VIEW_ANALYTICS = "CAMPAIGNS_VIEW_ANALYTICS"
    CAMPAIGNS_MANAGE_BUDGET = "CAMPAIGNS_MANAGE_BUDGET"

    # Automations
    AUTOMATIONS_READ = "AUTOMATIONS_READ"
    AUTOMATIONS_WRITE = "AUTOMATIONS_WRITE"
    AUTOMATIONS_DELETE = "AUTOMATIONS_DELETE"
    AUTOMATIONS_EXECUTE = "AUTOMATIONS_EXECUTE"

    # Integrations
    INTEGRATIONS_READ = "INTEGRATIONS_READ"
    INTEGRATIONS_WRITE = "INTEGRATIONS_WRITE"
    INTEGRATIONS_DELETE = "INTEGRATIONS_DELETE"
    INTEGRATIONS_SYNC = "INTEGRATIONS_SYNC"

    # Reports
    REPORTS_VIEW_BASIC = "REPORTS_VIEW_BASIC"
    REPORTS_VIEW_ADVANCED = "REPORTS_VIEW_ADVANCED"
    REPORTS_EXPORT = "REPORTS_EXPORT"
    REPORTS_SCHEDULE = "REPORTS_SCHEDULE"
    REPORTS_CUSTOM = "REPORTS_CUSTOM"

    # Organization administration
    ORG_SETTINGS = "ORG_SETTINGS"
    ORG_BILLING = "ORG_BILLING"
    ORG_MEMBERS_READ = "ORG_MEMBERS_READ"
    ORG_MEMBERS_WRITE = "ORG_MEMBERS_WRITE"
    ORG_MEMBERS_DELETE = "ORG_MEMBERS_DELETE"
    ORG_INVITE_MEMBERS = "ORG_INVITE_MEMBERS"

    # Platform features
    API_ACCESS = "API_ACCESS"
    WHITE_LABEL = "WHITE_LABEL"
    CUSTOM_INTEGRATIONS = "CUSTOM_INTEGRATIONS"
    DEDICATED_SUPPORT = "DEDICATED_SUPPORT"
    BULK_OPERATIONS = "BULK_OPERATIONS"
    ADVANCED_ANALYTICS = "ADVANCED_ANALYTICS"


class CapabilityGroup(str, Enum):
    """Informational subject grouping of capabilities."""

    RECORDS = "records"
    LISTINGS = "listings"
    CAMPAIGNS = "campaigns"
    AUTOMATIONS = "automations"
    INTEGRATIONS = "integrations"
    REPORTS = "reports"
    ORGANIZATION = "organization"
    PLATFORM = "platform"


class PlanTier(str, Enum):
    """Subscription pricing level, lowest to highest."""

    BASIC = "basic"
    PRO = "pro"
    AGENCY = "agency"
    ENTERPRISE = "enterprise"

    @property
    def rank(self) -> int:
        return list(PlanTier).index(self)

    def tiers_up_to(self) -> list["PlanTier"]:
        """This tier and every tier ranked below it, in rank order."""
        return list(PlanTier)[: self.rank + 1]


class OrgRole(str, Enum):
    """Organizational position held by a member."""

    OWNER = "owner"
    ADMIN = "admin"
    MANAGER = "manager"
    MEMBER = "member"
    VIEWER = "viewer"


class SubscriptionStatus(str, Enum):
    """Subscription status as maintained by the billing collaborator."""

    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    TRIALING = "trialing"
    INCOMPLETE = "incomplete"


class MembershipStatus(str, Enum):
    """Membership status as maintained by organization management."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    INVITED = "invited"


class ResourceType(str, Enum):
    """Consumable resources counted against plan limits."""

    RECORDS = "records"
    LISTINGS = "listings"
    CAMPAIGN_ASSETS = "campaign_assets"
    AUTOMATION_RULES = "automation_rules"
    INTEGRATIONS = "integrations"
    USER_SEATS = "user_seats"


class UsageAction(str, Enum):
    """Kind of quota mutation recorded in the usage ledger."""

    CREATED = "created"
    DELETED = "deleted"
    ADJUSTED = "adjusted"


class OverrideEffect(str, Enum):
    """Effect of a per-membership override entry."""

    GRANT = "grant"
    DENY = "deny"


class DenialReason(str, Enum):
    """Why an authorization or reservation was refused."""

    NO_MEMBERSHIP = "no_membership"
    MEMBERSHIP_INACTIVE = "membership_inactive"
    NO_SUBSCRIPTION = "no_subscription"
    SUBSCRIPTION_INACTIVE = "subscription_inactive"
    PERMISSION_DENIED = "permission_denied"
    ROLE_REQUIRED = "role_required"
    QUOTA_EXCEEDED = "quota_exceeded"
    CONFIGURATION_ERROR = "configuration_error"


def coerce(enum_cls: type[E], value: object) -> E | None:
    """Return ``value`` as a member of ``enum_cls``, or None when it is not one."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None


__all__ = [
    "SCHEMA_VERSION",
    "Capability",
    "CapabilityGroup",
    "PlanTier",
    "OrgRole",
    "SubscriptionStatus",
    "MembershipStatus",
    "ResourceType",
    "UsageAction",
    "OverrideEffect",
    "DenialReason",
    "coerce",
]
