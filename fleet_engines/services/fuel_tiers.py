"""
Fuel-Efficiency Tier Resolver

Maps a km/L reading to a flat bonus through half-open tier ranges.
"""

import math

from fleet_engines.schemas.incentive import (
    DriverType,
    FuelEfficiencyConfig,
    FuelEfficiencyTier,
)

# Built-in tier sets, used when no active configuration is stored
DEFAULT_FUEL_TIERS: dict[str, FuelEfficiencyConfig] = {
    "local": FuelEfficiencyConfig(
        enabled=True,
        tiers=[
            FuelEfficiencyTier(id="1", min_efficiency=1.95, max_efficiency=2.05, bonus_amount=20),
            FuelEfficiencyTier(id="2", min_efficiency=2.05, max_efficiency=2.15, bonus_amount=40),
            FuelEfficiencyTier(id="3", min_efficiency=2.15, max_efficiency=2.25, bonus_amount=60),
            FuelEfficiencyTier(id="4", min_efficiency=2.25, max_efficiency=2.35, bonus_amount=80),
        ],
    ),
    "export": FuelEfficiencyConfig(
        enabled=True,
        tiers=[
            FuelEfficiencyTier(id="1", min_efficiency=1.95, max_efficiency=2.05, bonus_amount=25),
            FuelEfficiencyTier(id="2", min_efficiency=2.05, max_efficiency=2.15, bonus_amount=50),
            FuelEfficiencyTier(id="3", min_efficiency=2.15, max_efficiency=2.25, bonus_amount=75),
            FuelEfficiencyTier(id="4", min_efficiency=2.25, max_efficiency=2.35, bonus_amount=100),
        ],
    ),
}


def get_default_fuel_config(driver_type: DriverType) -> FuelEfficiencyConfig:
    """Return a copy of the built-in tier set for a driver type."""
    return DEFAULT_FUEL_TIERS[driver_type].model_copy(deep=True)


def match_fuel_tier(
    efficiency: float | None,
    config: FuelEfficiencyConfig,
) -> FuelEfficiencyTier | None:
    """
    Find the first tier whose [min, max) range contains the efficiency.

    Returns None for a missing/NaN reading, a disabled config,
    or a reading outside every tier.
    """
    if efficiency is None or math.isnan(efficiency) or not config.enabled:
        return None

    for tier in config.tiers:
        if tier.min_efficiency <= efficiency < tier.max_efficiency:
            return tier
    return None


def resolve_fuel_bonus(efficiency: float | None, config: FuelEfficiencyConfig) -> float:
    """Flat bonus for the matching tier, or 0."""
    tier = match_fuel_tier(efficiency, config)
    return tier.bonus_amount if tier else 0.0
