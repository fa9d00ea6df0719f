"""
Test Configuration and Fixtures

Provides engine settings isolated from the environment and shared
scorecard/incentive fixtures.
"""

import pytest

from fleet_engines.config import Settings
from fleet_engines.schemas.scorecard import ScoringRule
from tests.factories import default_scoring_rules, make_fuel_config


@pytest.fixture
def settings() -> Settings:
    """Default engine settings, ignoring any .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def scoring_rules() -> list[ScoringRule]:
    return default_scoring_rules()


@pytest.fixture
def fuel_config():
    return make_fuel_config()
