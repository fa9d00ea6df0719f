"""
Fuel-Efficiency Tier Resolver Unit Tests
"""

import pytest
from pydantic import ValidationError

from fleet_engines.schemas.incentive import FuelEfficiencyConfig, FuelEfficiencyTier
from fleet_engines.services.fuel_tiers import (
    DEFAULT_FUEL_TIERS,
    get_default_fuel_config,
    match_fuel_tier,
    resolve_fuel_bonus,
)


class TestResolveFuelBonus:
    """Test half-open tier matching."""

    def test_upper_bound_goes_to_next_tier(self, fuel_config):
        """2.0 is excluded from [1.5, 2.0) and included in [2.0, 2.5)."""
        assert resolve_fuel_bonus(2.0, fuel_config) == 20

    def test_lower_bound_inclusive(self, fuel_config):
        assert resolve_fuel_bonus(1.5, fuel_config) == 10

    def test_inside_first_tier(self, fuel_config):
        assert resolve_fuel_bonus(1.999, fuel_config) == 10

    def test_above_highest_tier(self, fuel_config):
        assert resolve_fuel_bonus(2.6, fuel_config) == 0

    def test_at_highest_maximum(self, fuel_config):
        """The top tier's maximum is exclusive too."""
        assert resolve_fuel_bonus(2.5, fuel_config) == 0

    def test_below_lowest_tier(self, fuel_config):
        assert resolve_fuel_bonus(1.49, fuel_config) == 0

    @pytest.mark.parametrize("efficiency", [None, float("nan")])
    def test_missing_reading(self, fuel_config, efficiency):
        assert resolve_fuel_bonus(efficiency, fuel_config) == 0

    def test_disabled_config(self, fuel_config):
        fuel_config.enabled = False
        assert resolve_fuel_bonus(2.1, fuel_config) == 0

    def test_first_match_wins_in_stored_order(self):
        config = FuelEfficiencyConfig(
            tiers=[
                FuelEfficiencyTier(min_efficiency=2.0, max_efficiency=3.0, bonus_amount=5),
                FuelEfficiencyTier(min_efficiency=1.0, max_efficiency=2.5, bonus_amount=50),
            ]
        )
        assert resolve_fuel_bonus(2.2, config) == 5

    def test_match_returns_tier_label(self, fuel_config):
        tier = match_fuel_tier(2.1, fuel_config)
        assert tier is not None
        assert tier.label == "2.0-2.5 km/L"


class TestDefaultTiers:
    """Test the built-in tier sets."""

    def test_local_defaults(self):
        config = get_default_fuel_config("local")
        assert resolve_fuel_bonus(2.1, config) == 40
        assert resolve_fuel_bonus(2.3, config) == 80

    def test_export_defaults_pay_more(self):
        config = get_default_fuel_config("export")
        assert resolve_fuel_bonus(2.1, config) == 50
        assert resolve_fuel_bonus(2.3, config) == 100

    def test_defaults_are_copied(self):
        """Callers can modify the returned config without touching the built-ins."""
        config = get_default_fuel_config("local")
        config.tiers.clear()
        assert len(DEFAULT_FUEL_TIERS["local"].tiers) == 4


class TestTierValidation:
    def test_empty_range_rejected(self):
        with pytest.raises(ValidationError):
            FuelEfficiencyTier(min_efficiency=2.0, max_efficiency=2.0, bonus_amount=10)

    def test_negative_bonus_rejected(self):
        with pytest.raises(ValidationError):
            FuelEfficiencyTier(min_efficiency=1.0, max_efficiency=2.0, bonus_amount=-1)
