"""
Configuration Loader Unit Tests

Stored settings, formula, and scoring-rule rows validated into typed
models, with every substitution reported.
"""

import json

import pytest

from fleet_engines.schemas.incentive import FuelEfficiencyConfig
from fleet_engines.schemas.settings import IncentiveSetting
from fleet_engines.services.config_loader import (
    get_divisor,
    get_fuel_efficiency_config,
    load_custom_formulas,
    load_scoring_rules,
    load_settings,
    parse_fuel_tiers,
    select_fuel_config,
)
from fleet_engines.services.fuel_tiers import resolve_fuel_bonus


def _setting(key, value, **overrides):
    return IncentiveSetting(setting_key=key, setting_value=value, **overrides)


class TestGetDivisor:
    """Test divisor lookup per driver type."""

    @pytest.mark.parametrize("value, expected", [(10, 10.0), ("12.5", 12.5), ({"value": 8}, 8.0)])
    def test_accepted_shapes(self, value, expected):
        divisor, issues = get_divisor([_setting("incentive_divisor_local", value)], "local")
        assert divisor == expected
        assert issues == []

    def test_absent_uses_default(self):
        divisor, issues = get_divisor([], "export", default=3.0)
        assert divisor == 3.0
        assert issues == []

    def test_driver_types_separate(self):
        rows = [_setting("incentive_divisor_local", 10), _setting("incentive_divisor_export", 20)]
        assert get_divisor(rows, "local")[0] == 10
        assert get_divisor(rows, "export")[0] == 20

    @pytest.mark.parametrize("value", ["ten", None, 0, -5, True, "nan", {"value": "x"}])
    def test_unusable_value_reported(self, value):
        divisor, issues = get_divisor([_setting("incentive_divisor_local", value)], "local")

        assert divisor == 1.0
        assert len(issues) == 1
        assert issues[0].source == "incentive_divisor_local"
        assert issues[0].reason.endswith("using 1.0")

    def test_inactive_setting_ignored(self):
        rows = [
            _setting("incentive_divisor_local", 99, is_active=False),
            _setting("incentive_divisor_local", 10),
        ]
        assert get_divisor(rows, "local")[0] == 10

    def test_mapping_rows_accepted(self):
        rows = [{"setting_key": "incentive_divisor_local", "setting_value": "15"}]
        assert get_divisor(rows, "local") == (15.0, [])

    def test_malformed_row_reported(self):
        rows = [{"setting_value": 3}, {"setting_key": "incentive_divisor_local", "setting_value": 4}]

        divisor, issues = get_divisor(rows, "local")

        assert divisor == 4.0
        assert issues[0].source == "settings"


class TestLoadSettings:
    """Test one-pass validation of stored setting rows."""

    def test_bad_row_reported_once(self):
        rows = [
            {"setting_value": 3},
            {"setting_key": "incentive_divisor_local", "setting_value": 10},
        ]

        settings, issues = load_settings(rows)

        assert [s.setting_key for s in settings] == ["incentive_divisor_local"]
        assert len(issues) == 1
        assert issues[0].source == "settings"

    def test_lookups_on_validated_rows_add_no_issues(self):
        settings, _ = load_settings(
            [{"setting_value": 3}, {"setting_key": "incentive_divisor_local", "setting_value": 10}]
        )

        assert get_divisor(settings, "local") == (10.0, [])
        assert get_fuel_efficiency_config(settings, "local") == (None, [])


class TestFuelTiers:
    """Test tier validation and fuel config loading."""

    def test_overlapping_tier_dropped(self):
        raw = [
            {"min_efficiency": 1.5, "max_efficiency": 2.0, "bonus_amount": 10},
            {"min_efficiency": 1.8, "max_efficiency": 2.2, "bonus_amount": 99},
            {"min_efficiency": 2.0, "max_efficiency": 2.5, "bonus_amount": 20},
        ]

        tiers, issues = parse_fuel_tiers(raw)

        assert [t.bonus_amount for t in tiers] == [10, 20]
        assert issues[0].item == "tier[1]"
        assert "overlaps" in issues[0].reason

    def test_invalid_tiers_dropped(self):
        raw = [
            {"min_efficiency": 2.0, "max_efficiency": 1.0, "bonus_amount": 10},
            {"min_efficiency": 1.0, "bonus_amount": 10},
            {"min_efficiency": 1.0, "max_efficiency": 2.0, "bonus_amount": -5},
            {"min_efficiency": 1.0, "max_efficiency": 2.0, "bonus_amount": 5},
        ]

        tiers, issues = parse_fuel_tiers(raw)

        assert len(tiers) == 1
        assert [i.item for i in issues] == ["tier[0]", "tier[1]", "tier[2]"]

    def test_tiers_not_a_list(self):
        tiers, issues = parse_fuel_tiers({"min_efficiency": 1})
        assert tiers == []
        assert len(issues) == 1

    def test_config_from_json_string(self):
        value = json.dumps(
            {
                "enabled": True,
                "tiers": [{"min_efficiency": 2.0, "max_efficiency": 2.5, "bonus_amount": 30}],
            }
        )

        config, issues = get_fuel_efficiency_config(
            [_setting("fuel_efficiency_bonus_export", value)], "export"
        )

        assert config.enabled is True
        assert config.tiers[0].bonus_amount == 30
        assert issues == []

    def test_invalid_json_reported(self):
        config, issues = get_fuel_efficiency_config(
            [_setting("fuel_efficiency_bonus_local", "{not json")], "local"
        )
        assert config is None
        assert "Invalid JSON" in issues[0].reason

    def test_enabled_defaults_to_false(self):
        config, _ = get_fuel_efficiency_config(
            [_setting("fuel_efficiency_bonus_local", {"tiers": []})], "local"
        )
        assert config.enabled is False

    def test_missing_setting(self):
        assert get_fuel_efficiency_config([], "local") == (None, [])

    def test_string_false_keeps_config_disabled(self):
        """A stored "false" string must not switch the bonus on."""
        value = {
            "enabled": "false",
            "tiers": [{"min_efficiency": 1, "max_efficiency": 3, "bonus_amount": 99}],
        }

        config, issues = get_fuel_efficiency_config(
            [_setting("fuel_efficiency_bonus_local", value)], "local"
        )

        assert config.enabled is False
        assert issues == []
        assert resolve_fuel_bonus(2.0, select_fuel_config(config, "local")) == 0

    def test_string_true_enables_config(self):
        value = {
            "enabled": "true",
            "tiers": [{"min_efficiency": 1, "max_efficiency": 3, "bonus_amount": 99}],
        }

        config, _ = get_fuel_efficiency_config(
            [_setting("fuel_efficiency_bonus_local", value)], "local"
        )

        assert config.enabled is True

    @pytest.mark.parametrize("flag", ["maybe", None, [1]])
    def test_unreadable_enabled_flag_disables_config(self, flag):
        value = {
            "enabled": flag,
            "tiers": [{"min_efficiency": 1, "max_efficiency": 3, "bonus_amount": 99}],
        }

        config, issues = get_fuel_efficiency_config(
            [_setting("fuel_efficiency_bonus_local", value)], "local"
        )

        assert config.enabled is False
        assert len(config.tiers) == 1
        assert issues[0].source == "fuel_efficiency_bonus_local"
        assert "enabled" in issues[0].reason


class TestSelectFuelConfig:
    def test_unconfigured_uses_defaults(self):
        config = select_fuel_config(None, "export")
        assert config.enabled is True
        assert [t.bonus_amount for t in config.tiers] == [25, 50, 75, 100]

    def test_enabled_without_tiers_uses_defaults(self):
        config = select_fuel_config(FuelEfficiencyConfig(enabled=True, tiers=[]), "local")
        assert [t.bonus_amount for t in config.tiers] == [20, 40, 60, 80]

    def test_disabled_stays_disabled(self):
        disabled = FuelEfficiencyConfig(enabled=False, tiers=[])
        assert select_fuel_config(disabled, "local") is disabled

    def test_configured_kept(self, fuel_config):
        assert select_fuel_config(fuel_config, "local") is fuel_config


class TestLoadCustomFormulas:
    """Test formula row validation."""

    def test_stored_column_names(self):
        rows = [
            {
                "formula_key": "safety_bonus",
                "formula_expression": "base_salary * 0.05",
                "formula_name": "Safety Bonus",
                "applies_to": "local",
                "priority": 2,
            }
        ]

        formulas, issues = load_custom_formulas(rows)

        assert issues == []
        assert formulas[0].key == "safety_bonus"
        assert formulas[0].expression == "base_salary * 0.05"
        assert formulas[0].name == "Safety Bonus"
        assert formulas[0].is_active is True

    @pytest.mark.parametrize(
        "row",
        [
            {"formula_key": "1st_bonus", "formula_expression": "1"},
            {"formula_key": "bonus-x", "formula_expression": "1"},
            {"formula_key": "ok", "formula_expression": "1", "applies_to": "contract"},
            {"formula_expression": "1"},
        ],
    )
    def test_invalid_row_reported(self, row):
        formulas, issues = load_custom_formulas([row])
        assert formulas == []
        assert issues[0].item == "row[0]"

    def test_chained_formulas_clean(self):
        rows = [
            {"formula_key": "a", "formula_expression": "actual_km * 2", "priority": 1},
            {"formula_key": "b", "formula_expression": "a + fuel_bonus", "priority": 2},
        ]

        formulas, issues = load_custom_formulas(rows)

        assert len(formulas) == 2
        assert issues == []

    def test_reference_to_later_formula_reported(self):
        rows = [
            {"formula_key": "a", "formula_expression": "b + 1", "priority": 1},
            {"formula_key": "b", "formula_expression": "2", "priority": 2},
        ]

        formulas, issues = load_custom_formulas(rows)

        assert [f.key for f in formulas] == ["a", "b"]
        assert [(i.item, i.reason) for i in issues] == [("a", "References 'b' before it is computed")]

    def test_unknown_reference_reported(self):
        formulas, issues = load_custom_formulas(
            [{"formula_key": "x", "formula_expression": "deduction_rate * 2"}]
        )

        assert len(formulas) == 1
        assert issues[0].reason == "References unknown variable 'deduction_rate'"

    def test_reference_to_other_driver_type_reported(self):
        rows = [
            {"formula_key": "export_base", "formula_expression": "100", "applies_to": "export", "priority": 1},
            {"formula_key": "extra", "formula_expression": "export_base * 2", "priority": 2},
        ]

        _, issues = load_custom_formulas(rows)

        assert issues[0].item == "extra"
        assert "only for export drivers" in issues[0].reason

    def test_inactive_formula_not_available(self):
        rows = [
            {"formula_key": "old", "formula_expression": "1", "is_active": False},
            {"formula_key": "uses_old", "formula_expression": "old + 1", "priority": 1},
        ]

        _, issues = load_custom_formulas(rows)

        assert issues[0].reason == "References unknown variable 'old'"

    def test_invalid_expression_reported_and_kept(self):
        formulas, issues = load_custom_formulas(
            [{"formula_key": "broken", "formula_expression": "actual_km / /"}]
        )

        assert len(formulas) == 1
        assert issues[0].reason.startswith("Invalid expression")

    def test_key_colliding_with_input_reported(self):
        _, issues = load_custom_formulas([{"formula_key": "actual_km", "formula_expression": "1"}])
        assert issues[0].reason == "Key collides with an input variable"

    def test_custom_known_variables(self):
        _, issues = load_custom_formulas(
            [{"formula_key": "x", "formula_expression": "headcount * 2"}],
            known_variables={"headcount"},
        )
        assert issues == []

    def test_duplicate_key_dropped(self):
        rows = [
            {"formula_key": "bonus", "formula_expression": "1"},
            {"formula_key": "bonus", "formula_expression": "2"},
        ]

        formulas, issues = load_custom_formulas(rows)

        assert [f.expression for f in formulas] == ["1"]
        assert "Duplicate" in issues[0].reason


class TestLoadScoringRules:
    """Test scoring band table construction."""

    def _rows(self):
        return [
            {"min_achievement": 0, "max_achievement": 50, "score": 50},
            {"min_achievement": 50, "max_achievement": 100, "score": 80},
            {"role_id": "role-A", "min_achievement": 0, "max_achievement": 100, "score": 70},
        ]

    def test_role_rules_preferred(self):
        rules, issues = load_scoring_rules(self._rows(), role_id="role-A")
        assert [r.score for r in rules] == [70]
        assert issues == []

    def test_global_rules_fallback(self):
        rules, _ = load_scoring_rules(self._rows(), role_id="role-B")
        assert [r.score for r in rules] == [50, 80]

    def test_no_role_uses_global(self):
        rules, _ = load_scoring_rules(self._rows())
        assert all(r.role_id is None for r in rules)

    def test_sorted_by_minimum(self):
        rows = list(reversed(self._rows()[:2]))
        rules, _ = load_scoring_rules(rows)
        assert [r.min_achievement for r in rules] == [0, 50]

    def test_overlap_dropped(self):
        rows = self._rows()[:2] + [{"min_achievement": 40, "max_achievement": 60, "score": 99}]

        rules, issues = load_scoring_rules(rows)

        assert [r.score for r in rules] == [50, 80]
        assert "overlaps" in issues[0].reason

    def test_gap_reported(self):
        rows = [
            {"min_achievement": 0, "max_achievement": 50, "score": 50},
            {"min_achievement": 60, "max_achievement": 100, "score": 80},
        ]

        rules, issues = load_scoring_rules(rows)

        assert len(rules) == 2
        assert issues[0].item == "60.0-100.0"
        assert "Gap after 50.0" in issues[0].reason

    def test_invalid_band_reported(self):
        rows = [{"min_achievement": 50, "max_achievement": 50, "score": 50}]
        rules, issues = load_scoring_rules(rows)
        assert rules == []
        assert issues[0].item == "row[0]"
