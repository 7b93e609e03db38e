"""Tests for tier capability sets and plan limits."""

import pytest

from entitlements.plans import (
    FEATURE_GATES,
    PLAN_LIMITS,
    TIER_INCREMENTS,
    UNLIMITED,
    is_unlimited,
    limit_for,
    plan_has_feature,
    required_tier_for,
    tier_capabilities,
)
from entitlements.schema import Capability, PlanTier, ResourceType

pytestmark = pytest.mark.unit


class TestTierCapabilities:
    """Test cumulative tier resolution."""

    def test_tiers_are_monotonic(self):
        """Test each tier contains every capability of the tier below."""
        tiers = list(PlanTier)
        for lower, higher in zip(tiers, tiers[1:]):
            assert tier_capabilities(lower) <= tier_capabilities(higher)

    def test_enterprise_unlocks_everything(self):
        assert tier_capabilities(PlanTier.ENTERPRISE) == frozenset(Capability)

    def test_increments_do_not_overlap(self):
        """Test a capability is introduced by exactly one tier."""
        seen: set[Capability] = set()
        for tier in PlanTier:
            assert not (TIER_INCREMENTS[tier] & seen)
            seen |= TIER_INCREMENTS[tier]

    def test_basic_tier_contents(self):
        basic = tier_capabilities(PlanTier.BASIC)
        assert Capability.RECORDS_WRITE in basic
        assert Capability.RECORDS_EXPORT not in basic
        assert Capability.AUTOMATIONS_READ not in basic

    def test_accepts_string_tier(self):
        assert tier_capabilities("pro") == tier_capabilities(PlanTier.PRO)

    def test_unknown_tier_resolves_to_empty_set(self):
        """Test an unknown tier fails closed."""
        assert tier_capabilities("platinum") == frozenset()


class TestRequiredTier:
    """Test upgrade hints."""

    @pytest.mark.parametrize(
        ("capability", "tier"),
        [
            (Capability.RECORDS_READ, PlanTier.BASIC),
            (Capability.RECORDS_EXPORT, PlanTier.PRO),
            (Capability.API_ACCESS, PlanTier.AGENCY),
            (Capability.ORG_BILLING, PlanTier.ENTERPRISE),
            ("AUTOMATIONS_DELETE", PlanTier.AGENCY),
        ],
    )
    def test_lowest_unlocking_tier(self, capability, tier):
        assert required_tier_for(capability) == tier

    def test_unknown_capability(self):
        assert required_tier_for("TIME_TRAVEL") is None


class TestFeatureGates:
    """Test UI feature gates."""

    def test_gates_reference_catalog_capabilities(self):
        assert all(isinstance(c, Capability) for c in FEATURE_GATES.values())

    def test_plan_has_feature(self):
        assert not plan_has_feature(PlanTier.BASIC, "automations")
        assert plan_has_feature(PlanTier.PRO, "automations")
        assert not plan_has_feature(PlanTier.PRO, "white_label")
        assert plan_has_feature(PlanTier.AGENCY, "white_label")

    def test_unknown_feature_is_off(self):
        assert not plan_has_feature(PlanTier.ENTERPRISE, "teleportation")


class TestPlanLimits:
    """Test tier-derived quota limits."""

    def test_every_tier_limits_every_resource(self):
        for tier in PlanTier:
            assert set(PLAN_LIMITS[tier]) == set(ResourceType)

    @pytest.mark.parametrize(
        ("tier", "resource_type", "limit"),
        [
            (PlanTier.BASIC, ResourceType.RECORDS, 100),
            (PlanTier.BASIC, ResourceType.USER_SEATS, 1),
            (PlanTier.BASIC, ResourceType.AUTOMATION_RULES, 0),
            (PlanTier.PRO, ResourceType.LISTINGS, 500),
            (PlanTier.PRO, ResourceType.USER_SEATS, 5),
            (PlanTier.AGENCY, ResourceType.RECORDS, UNLIMITED),
            (PlanTier.ENTERPRISE, ResourceType.USER_SEATS, UNLIMITED),
        ],
    )
    def test_limit_for(self, tier, resource_type, limit):
        assert limit_for(tier, resource_type) == limit

    def test_limit_for_accepts_strings(self):
        assert limit_for("basic", "records") == 100

    def test_unknown_tier_or_resource_has_no_headroom(self):
        assert limit_for("platinum", ResourceType.RECORDS) == 0
        assert limit_for(PlanTier.PRO, "spaceships") == 0

    def test_is_unlimited(self):
        assert is_unlimited(UNLIMITED)
        assert not is_unlimited(0)
        assert not is_unlimited(100)
