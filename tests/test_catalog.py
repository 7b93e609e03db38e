"""Tests for the capability vocabulary and catalog."""

import pytest

from entitlements.catalog import (
    CATALOG,
    all_capabilities,
    capabilities_in,
    describe,
    group_of,
    is_valid,
)
from entitlements.schema import (
    SCHEMA_VERSION,
    Capability,
    CapabilityGroup,
    OrgRole,
    PlanTier,
    ResourceType,
    coerce,
)

pytestmark = pytest.mark.unit


class TestCatalog:
    """Test the capability catalog."""

    def test_every_capability_has_a_description(self):
        """Test each enum member is cataloged with non-empty text."""
        assert set(CATALOG) == set(Capability)
        assert all(CATALOG[c] for c in Capability)

    def test_is_valid_accepts_enum_and_string(self):
        """Test validity check for members and their string values."""
        assert is_valid(Capability.RECORDS_WRITE)
        assert is_valid("RECORDS_WRITE")

    def test_is_valid_rejects_unknown_values(self):
        """Test unknown names are not capabilities."""
        assert not is_valid("RECORDS_TELEPORT")
        assert not is_valid("records_write")
        assert not is_valid(None)

    def test_describe(self):
        """Test descriptions for known and unknown capabilities."""
        assert describe(Capability.ORG_BILLING) == CATALOG[Capability.ORG_BILLING]
        assert describe("NOT_A_CAPABILITY") == ""

    def test_groups(self):
        """Test capabilities are grouped by subject."""
        assert group_of(Capability.RECORDS_EXPORT) == CapabilityGroup.RECORDS
        assert group_of("ORG_MEMBERS_READ") == CapabilityGroup.ORGANIZATION
        assert group_of(Capability.API_ACCESS) == CapabilityGroup.PLATFORM
        assert group_of("UNKNOWN") is None

    def test_groups_partition_the_catalog(self):
        """Test every capability lands in exactly one group."""
        groups = [capabilities_in(group) for group in CapabilityGroup]
        union = frozenset().union(*groups)

        assert union == all_capabilities()
        assert sum(len(g) for g in groups) == len(all_capabilities())

    def test_reports_group(self):
        """Test group membership lists."""
        assert capabilities_in(CapabilityGroup.REPORTS) == {
            Capability.REPORTS_VIEW_BASIC,
            Capability.REPORTS_VIEW_ADVANCED,
            Capability.REPORTS_EXPORT,
            Capability.REPORTS_SCHEDULE,
            Capability.REPORTS_CUSTOM,
        }


class TestSchema:
    """Test enum helpers."""

    def test_schema_version(self):
        assert SCHEMA_VERSION == "1.0"

    def test_tier_rank_is_ordered(self):
        """Test tiers rank lowest to highest."""
        ranks = [tier.rank for tier in (PlanTier.BASIC, PlanTier.PRO, PlanTier.AGENCY, PlanTier.ENTERPRISE)]
        assert ranks == [0, 1, 2, 3]

    def test_tiers_up_to(self):
        assert PlanTier.BASIC.tiers_up_to() == [PlanTier.BASIC]
        assert PlanTier.AGENCY.tiers_up_to() == [PlanTier.BASIC, PlanTier.PRO, PlanTier.AGENCY]

    @pytest.mark.parametrize(
        ("enum_cls", "value", "expected"),
        [
            (PlanTier, "pro", PlanTier.PRO),
            (PlanTier, PlanTier.AGENCY, PlanTier.AGENCY),
            (PlanTier, "platinum", None),
            (OrgRole, "owner", OrgRole.OWNER),
            (OrgRole, "OWNER", None),
            (ResourceType, "user_seats", ResourceType.USER_SEATS),
            (ResourceType, None, None),
        ],
    )
    def test_coerce(self, enum_cls, value, expected):
        """Test coercion returns None instead of raising."""
        assert coerce(enum_cls, value) == expected
