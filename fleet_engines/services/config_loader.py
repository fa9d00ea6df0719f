"""
Configuration Loader

Validates loosely-typed configuration rows from storage (settings JSON,
formula rows, scoring-rule rows) into typed models before they reach the
calculation core. Malformed items are dropped or defaulted, never raised;
every such substitution is returned as a ConfigIssue.
"""

import json
import logging
import math
from collections.abc import Collection, Mapping
from typing import Any

from pydantic import TypeAdapter, ValidationError

from fleet_engines.exceptions import ConfigurationError, FormulaSyntaxError
from fleet_engines.schemas.incentive import (
    CustomFormula,
    DriverType,
    FuelEfficiencyConfig,
    FuelEfficiencyTier,
)
from fleet_engines.schemas.scorecard import ScoringRule
from fleet_engines.schemas.settings import ConfigIssue, IncentiveSetting
from fleet_engines.services.formula_evaluator import FORMULA_VARIABLES
from fleet_engines.services.formula_parser import parse_expression, referenced_variables
from fleet_engines.services.fuel_tiers import get_default_fuel_config

logger = logging.getLogger(__name__)

DIVISOR_SETTING_KEYS: dict[str, str] = {
    "local": "incentive_divisor_local",
    "export": "incentive_divisor_export",
}

FUEL_SETTING_KEYS: dict[str, str] = {
    "local": "fuel_efficiency_bonus_local",
    "export": "fuel_efficiency_bonus_export",
}

SettingRow = IncentiveSetting | Mapping[str, Any]

# Lax bool parsing: true/false, "true"/"false", "yes"/"no", 1/0
_BOOL = TypeAdapter(bool)


def _issue(issues: list[ConfigIssue], source: str, item: str, reason: str) -> None:
    logger.warning(f"Config issue in {source} [{item}]: {reason}")
    issues.append(ConfigIssue(source=source, item=item, reason=reason))


def _validation_reason(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'value'}: {err['msg']}"
        for err in error.errors()
    )


def load_settings(
    rows: list[SettingRow],
) -> tuple[list[IncentiveSetting], list[ConfigIssue]]:
    """
    Validate stored setting rows once.

    Pass the returned settings to the per-key lookups so a malformed row
    is reported a single time rather than once per lookup.
    """
    issues: list[ConfigIssue] = []
    settings: list[IncentiveSetting] = []
    for row in rows:
        try:
            settings.append(
                row if isinstance(row, IncentiveSetting) else IncentiveSetting.model_validate(row)
            )
        except ValidationError as e:
            _issue(issues, "settings", str(row), _validation_reason(e))
    return settings, issues


def _find_active_setting(
    rows: list[SettingRow],
    key: str,
    issues: list[ConfigIssue],
) -> IncentiveSetting | None:
    settings, row_issues = load_settings(rows)
    issues.extend(row_issues)
    return next((s for s in settings if s.setting_key == key and s.is_active), None)


def _parse_divisor(raw: Any) -> float:
    """Accept a number, a numeric string, or {"value": number}."""
    value = raw.get("value") if isinstance(raw, Mapping) else raw
    if isinstance(value, bool):
        raise ConfigurationError("Boolean is not a divisor")
    try:
        divisor = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError("Non-numeric divisor")
    if not (divisor > 0 and math.isfinite(divisor)):
        raise ConfigurationError("Divisor must be positive and finite")
    return divisor


def get_divisor(
    rows: list[SettingRow],
    driver_type: DriverType,
    default: float = 1.0,
) -> tuple[float, list[ConfigIssue]]:
    """
    Look up the active incentive divisor for a driver type.

    Falls back to `default` when the setting is absent, non-numeric,
    or not positive.
    """
    issues: list[ConfigIssue] = []
    key = DIVISOR_SETTING_KEYS[driver_type]
    setting = _find_active_setting(rows, key, issues)

    if setting is None:
        return default, issues

    try:
        divisor = _parse_divisor(setting.setting_value)
    except ConfigurationError as e:
        _issue(issues, key, repr(setting.setting_value), f"{e}; using {default}")
        return default, issues

    return divisor, issues


def parse_fuel_tiers(
    raw_tiers: Any,
    source: str = "fuel_tiers",
) -> tuple[list[FuelEfficiencyTier], list[ConfigIssue]]:
    """
    Validate tier rows in stored order.

    Drops tiers with missing fields, an empty range, a negative bonus,
    or a range overlapping an earlier accepted tier.
    """
    issues: list[ConfigIssue] = []
    tiers: list[FuelEfficiencyTier] = []

    if not isinstance(raw_tiers, list):
        if raw_tiers is not None:
            _issue(issues, source, repr(raw_tiers), "Tiers must be a list")
        return tiers, issues

    for index, raw in enumerate(raw_tiers):
        try:
            tier = FuelEfficiencyTier.model_validate(raw)
        except ValidationError as e:
            _issue(issues, source, f"tier[{index}]", _validation_reason(e))
            continue

        overlapping = next(
            (
                t for t in tiers
                if tier.min_efficiency < t.max_efficiency and t.min_efficiency < tier.max_efficiency
            ),
            None,
        )
        if overlapping:
            _issue(
                issues,
                source,
                f"tier[{index}]",
                f"Range {tier.label} overlaps {overlapping.label}; dropped",
            )
            continue

        tiers.append(tier)

    return tiers, issues


def get_fuel_efficiency_config(
    rows: list[SettingRow],
    driver_type: DriverType,
) -> tuple[FuelEfficiencyConfig | None, list[ConfigIssue]]:
    """
    Load the active fuel-efficiency tier config for a driver type.

    Returns None when no active setting exists or the value cannot be read
    at all; callers then fall back to the built-in tiers.
    """
    issues: list[ConfigIssue] = []
    key = FUEL_SETTING_KEYS[driver_type]
    setting = _find_active_setting(rows, key, issues)

    if setting is None:
        return None, issues

    value = setting.setting_value
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            _issue(issues, key, value[:80], f"Invalid JSON: {e}")
            return None, issues

    if not isinstance(value, Mapping):
        _issue(issues, key, repr(value), "Fuel config must be an object")
        return None, issues

    try:
        enabled = _BOOL.validate_python(value.get("enabled", False))
    except ValidationError:
        _issue(issues, key, repr(value.get("enabled")), "Invalid enabled flag; config disabled")
        enabled = False

    tiers, tier_issues = parse_fuel_tiers(value.get("tiers"), source=key)
    issues.extend(tier_issues)

    return FuelEfficiencyConfig(enabled=enabled, tiers=tiers), issues


def select_fuel_config(
    config: FuelEfficiencyConfig | None,
    driver_type: DriverType,
) -> FuelEfficiencyConfig:
    """
    Resolve the tier config actually used for a driver type.

    Built-in defaults apply when nothing is configured or an enabled
    config has no tiers. A config explicitly disabled stays disabled.
    """
    if config is None or (config.enabled and not config.tiers):
        return get_default_fuel_config(driver_type)
    return config


def _check_formula_references(
    formulas: list[CustomFormula],
    known_variables: Collection[str],
    issues: list[ConfigIssue],
) -> None:
    active = [f for f in formulas if f.is_active]
    active_keys = {f.key for f in active}
    computed: dict[str, str] = {}

    for formula in sorted(active, key=lambda f: f.priority):
        if formula.key in known_variables:
            _issue(issues, "custom_formulas", formula.key, "Key collides with an input variable")
            continue

        try:
            names = referenced_variables(parse_expression(formula.expression))
        except FormulaSyntaxError as e:
            _issue(issues, "custom_formulas", formula.key, f"Invalid expression: {e}")
            continue

        for name in sorted(names - set(known_variables)):
            if name in computed:
                if computed[name] in ("all", formula.applies_to):
                    continue
                reason = f"References {name!r}, which is computed only for {computed[name]} drivers"
            elif name in active_keys:
                reason = f"References {name!r} before it is computed"
            else:
                reason = f"References unknown variable {name!r}"
            _issue(issues, "custom_formulas", formula.key, reason)

        computed[formula.key] = formula.applies_to


def load_custom_formulas(
    rows: list[Mapping[str, Any]],
    known_variables: Collection[str] = FORMULA_VARIABLES,
) -> tuple[list[CustomFormula], list[ConfigIssue]]:
    """
    Validate formula rows.

    Rows that fail validation, and later rows reusing an accepted key, are
    dropped. Accepted formulas are then checked in run order: invalid
    expressions, references to unknown names, and references to formulas
    that run later (or only for another driver type) are reported but kept,
    since evaluation skips and reports them per driver.
    """
    issues: list[ConfigIssue] = []
    formulas: list[CustomFormula] = []
    seen: set[str] = set()

    for index, row in enumerate(rows):
        try:
            formula = CustomFormula.model_validate(row)
        except ValidationError as e:
            _issue(issues, "custom_formulas", f"row[{index}]", _validation_reason(e))
            continue

        if formula.key in seen:
            _issue(issues, "custom_formulas", formula.key, "Duplicate formula key; dropped")
            continue

        seen.add(formula.key)
        formulas.append(formula)

    _check_formula_references(formulas, known_variables, issues)
    return formulas, issues


def load_scoring_rules(
    rows: list[Mapping[str, Any]],
    role_id: str | None = None,
) -> tuple[list[ScoringRule], list[ConfigIssue]]:
    """
    Build the scoring-band table for a role.

    Uses the role's own rules when it has any, otherwise the global rules
    (role_id None). Rules are sorted by min_achievement; empty or
    overlapping bands are dropped and gaps between bands are reported.
    """
    issues: list[ConfigIssue] = []
    parsed: list[ScoringRule] = []

    for index, row in enumerate(rows):
        try:
            parsed.append(ScoringRule.model_validate(row))
        except ValidationError as e:
            _issue(issues, "scoring_rules", f"row[{index}]", _validation_reason(e))

    role_rules = [r for r in parsed if role_id is not None and r.role_id == role_id]
    candidates = role_rules or [r for r in parsed if r.role_id is None]

    rules: list[ScoringRule] = []
    for rule in sorted(candidates, key=lambda r: r.min_achievement):
        band = f"{rule.min_achievement}-{rule.max_achievement}"
        if rules and rule.min_achievement < rules[-1].max_achievement:
            _issue(issues, "scoring_rules", band, "Band overlaps the previous band; dropped")
            continue
        if rules and rule.min_achievement > rules[-1].max_achievement:
            _issue(
                issues,
                "scoring_rules",
                band,
                f"Gap after {rules[-1].max_achievement}; achievements in the gap score 0",
            )
        rules.append(rule)

    return rules, issues
