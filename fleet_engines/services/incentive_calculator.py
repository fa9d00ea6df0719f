"""
Driver Incentive Calculator

Monthly incentive breakdown for one driver, plus the batch, what-if,
persistence, and approval-workflow helpers built on it.

Only the base computation (target share, per-km rate, km incentive,
fuel tier) is fixed. Performance bonus, safety bonus, extra payments and
formula deductions all come from custom formulas.
"""

import logging
import math
from collections.abc import Callable, Mapping
from typing import TypeVar

from fleet_engines.config import Settings, get_settings
from fleet_engines.schemas.incentive import (
    BatchCalculationResult,
    BatchFailure,
    BatchSummary,
    Budget,
    CustomFormula,
    Driver,
    FormulaEvaluation,
    IncentiveCalculationRecord,
    IncentiveInput,
    IncentiveResult,
    PerformancePeriod,
    ScenarioDifference,
    ScenarioRequest,
    WhatIfScenario,
    WorkflowStatus,
    WorkflowTransition,
)
from fleet_engines.services.achievement import calculate_achievement
from fleet_engines.services.config_loader import (
    SettingRow,
    get_divisor,
    get_fuel_efficiency_config,
    load_settings,
    select_fuel_config,
)
from fleet_engines.services.formula_evaluator import evaluate_formulas
from fleet_engines.services.fuel_tiers import match_fuel_tier
from fleet_engines.services.rates import derive_rate_per_km

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _guarded(step: str, compute: Callable[[], T], fallback: T, notes: list[str]) -> T:
    """Run one calculation step, degrading to `fallback` instead of aborting."""
    try:
        return compute()
    except (ArithmeticError, TypeError, ValueError) as e:
        logger.warning(f"Incentive step {step!r} failed, using {fallback!r}: {e}")
        notes.append(f"{step} could not be calculated ({e}); used {fallback}")
        return fallback


def build_formula_context(
    input_data: IncentiveInput,
    target_km_per_truck: float,
    rate_per_km: float,
    km_incentive: float,
    fuel_bonus: float,
    achievement: float,
) -> dict[str, float]:
    """Variables visible to custom formulas."""
    performance = input_data.performance
    budget = input_data.budget

    context: dict[str, float] = {
        "actual_km": performance.actual_kilometers,
        "target_km": target_km_per_truck,
        "rate_per_km": rate_per_km,
        "base_salary": input_data.driver.base_salary,
        "accident_count": float(input_data.accident_count),
        "incident_count": float(input_data.incident_count),
        "trips_completed": float(performance.trips_completed),
        "km_incentive": km_incentive,
        "fuel_bonus": fuel_bonus,
        "achievement_percent": achievement,
        "budget_km": budget.budgeted_kilometers if budget else 0.0,
        "truck_count": float(budget.truck_count if budget else 1),
    }

    # Optional readings are exposed only when recorded
    for name in ("fuel_efficiency", "on_time_delivery_rate", "safety_score", "customer_rating"):
        value = getattr(performance, name)
        if value is not None and math.isfinite(value):
            context[name] = value

    return context


def calculate_driver_incentive(
    input_data: IncentiveInput,
    settings: Settings | None = None,
) -> IncentiveResult:
    """
    Calculate the full incentive breakdown for one driver-month.

    Algorithm:
    1. Target per truck = budgeted km / truck count (0 without a budget)
    2. Rate per km = divisor / target per truck
    3. Km incentive = actual km x rate per km
    4. Fuel bonus from the first matching efficiency tier
    5. Build the formula variable context
    6. Evaluate active custom formulas in priority order
    7. Reserved formula keys become the performance and safety bonuses
    8. Negative formula results and deduction-suffixed keys become deductions
    9. Totals

    A failing step contributes zero and is recorded in calculation_notes.

    Example:
        Budget 60,000 km over 5 trucks, divisor 10, 3,200 km driven,
        fuel efficiency 2.1 in a $20 tier:
        - Rate: 10 / 12,000 = 0.000833 per km
        - Km incentive: 3,200 x 0.000833 = 2.67
        - Total incentive: 2.67 + 20 = 22.67
    """
    settings = settings or get_settings()
    notes: list[str] = []

    driver = input_data.driver
    performance = input_data.performance
    budget = input_data.budget
    actual_km = performance.actual_kilometers

    # Step 1: per-truck target
    budget_km = budget.budgeted_kilometers if budget else 0.0
    truck_count = budget.truck_count if budget else 1
    target_km_per_truck = budget_km / max(1, truck_count) if budget else 0.0
    if budget is None:
        notes.append("No budget for this period; km incentive is 0")

    # Step 2: rate
    rate_per_km = _guarded(
        "rate_per_km",
        lambda: derive_rate_per_km(budget_km, input_data.divisor, truck_count),
        0.0,
        notes,
    )
    if budget is not None and rate_per_km == 0:
        notes.append(
            f"Rate per km is 0 (budget {budget_km:,.0f} km, divisor {input_data.divisor})"
        )

    # Step 3: km incentive
    km_incentive = _guarded("km_incentive", lambda: actual_km * rate_per_km, 0.0, notes)
    achievement = _guarded(
        "achievement",
        lambda: calculate_achievement(actual_km, target_km_per_truck, "higher_better"),
        0.0,
        notes,
    )

    # Step 4: fuel bonus
    fuel_config = select_fuel_config(input_data.fuel_config, driver.driver_type)
    tier = _guarded(
        "fuel_bonus",
        lambda: match_fuel_tier(performance.fuel_efficiency, fuel_config),
        None,
        notes,
    )
    fuel_bonus = tier.bonus_amount if tier else 0.0
    efficiency = performance.fuel_efficiency
    if tier is None and fuel_config.enabled and efficiency is not None:
        notes.append(f"Fuel efficiency {efficiency} matched no tier")
        logger.warning(
            f"Driver {driver.id} fuel efficiency {efficiency} matched no "
            f"{driver.driver_type} tier"
        )

    # Steps 5-6: custom formulas
    context = build_formula_context(
        input_data, target_km_per_truck, rate_per_km, km_incentive, fuel_bonus, achievement
    )
    evaluation = _guarded(
        "custom_formulas",
        lambda: evaluate_formulas(input_data.formulas, context, driver.driver_type),
        FormulaEvaluation(),
        notes,
    )

    # Steps 7-8: split formula values into bonuses, extras, and deductions
    performance_bonus = 0.0
    safety_bonus = 0.0
    formula_deductions = 0.0
    deduction_keys: list[str] = []
    additive: dict[str, float] = {}

    for key, value in evaluation.results.items():
        if value < 0:
            formula_deductions += -value
            deduction_keys.append(key)
            notes.append(f"Formula {key} is negative ({value:.2f}); counted as a deduction")
        elif key.endswith(settings.deduction_key_suffix):
            formula_deductions += value
            deduction_keys.append(key)
        elif key == settings.performance_bonus_key:
            performance_bonus = value
        elif key == settings.safety_bonus_key:
            safety_bonus = value
        else:
            additive[key] = value

    deductions = input_data.deductions + formula_deductions
    reasons = [r for r in (input_data.deduction_reason,) if r]
    if deduction_keys:
        reasons.append(f"Formula deductions: {', '.join(deduction_keys)}")
    deduction_reason = "; ".join(reasons) or None

    # Step 9: totals
    total_incentive = (
        km_incentive
        + fuel_bonus
        + performance_bonus
        + safety_bonus
        + sum(additive.values())
        - deductions
    )
    total_earnings = driver.base_salary + total_incentive

    return IncentiveResult(
        driver_id=driver.id,
        driver_name=driver.full_name,
        year=performance.year,
        month=performance.month,
        base_salary=driver.base_salary,
        actual_km=actual_km,
        budget_km=budget_km,
        truck_count=truck_count,
        target_km_per_truck=target_km_per_truck,
        divisor=input_data.divisor,
        rate_per_km=rate_per_km,
        achievement=achievement,
        km_incentive=km_incentive,
        fuel_bonus=fuel_bonus,
        fuel_efficiency_tier=tier.label if tier else None,
        fuel_tier_matched=tier is not None,
        performance_bonus=performance_bonus,
        safety_bonus=safety_bonus,
        custom_formula_results=additive,
        formula_values=dict(evaluation.results),
        skipped_formulas=list(evaluation.failures),
        deductions=deductions,
        deduction_reason=deduction_reason,
        total_incentive=total_incentive,
        total_earnings=total_earnings,
        calculation_notes=notes,
    )


def batch_calculate_incentives(
    drivers: list[Driver],
    performances: list[PerformancePeriod],
    budgets: list[Budget],
    settings_rows: list[SettingRow],
    formulas: list[CustomFormula],
    year: int,
    month: int,
    accident_counts: Mapping[str, int] | None = None,
    incident_counts: Mapping[str, int] | None = None,
    settings: Settings | None = None,
) -> BatchCalculationResult:
    """
    Calculate incentives for every active driver in a period.

    Each driver is independent: a missing performance record or any
    error is recorded under `failed` and the loop continues.
    """
    settings = settings or get_settings()
    accident_counts = accident_counts or {}
    incident_counts = incident_counts or {}

    valid_rows, config_issues = load_settings(settings_rows)
    divisors: dict[str, float] = {}
    fuel_configs = {}
    for driver_type in ("local", "export"):
        divisors[driver_type], issues = get_divisor(
            valid_rows, driver_type, default=settings.default_divisor
        )
        config_issues.extend(issues)
        fuel_configs[driver_type], issues = get_fuel_efficiency_config(valid_rows, driver_type)
        config_issues.extend(issues)

    result = BatchCalculationResult(config_issues=config_issues)
    active_drivers = [d for d in drivers if d.status == "active"]

    for driver in active_drivers:
        try:
            # A later entry for the same key supersedes earlier ones
            performance = next(
                (
                    p for p in reversed(performances)
                    if p.driver_id == driver.id and p.year == year and p.month == month
                ),
                None,
            )
            if performance is None:
                result.failed.append(
                    BatchFailure(
                        driver_id=driver.id,
                        driver_name=driver.full_name,
                        reason="No performance record for this period",
                    )
                )
                continue

            budget = next(
                (
                    b for b in budgets
                    if b.year == year and b.month == month and b.driver_type == driver.driver_type
                ),
                None,
            )

            calculation = calculate_driver_incentive(
                IncentiveInput(
                    driver=driver,
                    performance=performance,
                    budget=budget,
                    divisor=divisors[driver.driver_type],
                    formulas=formulas,
                    fuel_config=fuel_configs[driver.driver_type],
                    accident_count=accident_counts.get(driver.id, 0),
                    incident_count=incident_counts.get(driver.id, 0),
                ),
                settings=settings,
            )
            result.success.append(calculation)

        except Exception as e:
            logger.error(f"Incentive calculation failed for driver {driver.id}: {e}")
            result.failed.append(
                BatchFailure(driver_id=driver.id, driver_name=driver.full_name, reason=str(e))
            )

    result.summary = BatchSummary(
        total_processed=len(active_drivers),
        success_count=len(result.success),
        failed_count=len(result.failed),
        total_incentives=sum(r.total_incentive for r in result.success),
        total_earnings=sum(r.total_earnings for r in result.success),
    )
    logger.info(
        f"Batch {year}-{month:02d}: {result.summary.success_count} calculated, "
        f"{result.summary.failed_count} failed"
    )
    return result


def _round_half_up(value: float) -> float:
    return float(math.floor(value + 0.5))


def generate_default_scenarios(current_km: float, target_km: float) -> list[ScenarioRequest]:
    """Common what-if scenarios for a driver's current kilometers."""
    scenarios: list[ScenarioRequest] = []

    if current_km < target_km:
        scenarios.append(ScenarioRequest(name="Reach 100% Target", additional_km=target_km - current_km))

    scenarios.append(ScenarioRequest(name="+10% More KM", additional_km=_round_half_up(current_km * 0.1)))
    scenarios.append(ScenarioRequest(name="+500 KM", additional_km=500))
    scenarios.append(ScenarioRequest(name="+1,000 KM", additional_km=1000))

    if current_km < target_km * 1.1:
        scenarios.append(
            ScenarioRequest(
                name="Reach 110% Target",
                additional_km=_round_half_up(target_km * 1.1 - current_km),
            )
        )

    return scenarios


def calculate_what_if_scenarios(
    current: IncentiveResult,
    scenarios: list[ScenarioRequest],
) -> list[WhatIfScenario]:
    """
    Project earnings for additional kilometers at the current rate.

    Everything except the km incentive is held constant.
    """
    fixed_components = (
        current.fuel_bonus
        + current.performance_bonus
        + current.safety_bonus
        + sum(current.custom_formula_results.values())
        - current.deductions
    )

    projections: list[WhatIfScenario] = []
    for scenario in scenarios:
        projected_km = current.actual_km + scenario.additional_km
        projected_incentive = projected_km * current.rate_per_km + fixed_components
        projected_earnings = current.base_salary + projected_incentive
        projected_achievement = calculate_achievement(
            projected_km, current.target_km_per_truck, "higher_better"
        )

        projections.append(
            WhatIfScenario(
                scenario_name=scenario.name,
                additional_km=scenario.additional_km,
                projected_km=projected_km,
                projected_incentive=projected_incentive,
                projected_earnings=projected_earnings,
                projected_achievement=projected_achievement,
                difference=ScenarioDifference(
                    km=scenario.additional_km,
                    incentive=projected_incentive - current.total_incentive,
                    earnings=projected_earnings - current.total_earnings,
                    achievement=projected_achievement - current.achievement,
                ),
            )
        )

    return projections


def result_to_incentive_record(
    result: IncentiveResult,
    status: WorkflowStatus = "draft",
) -> IncentiveCalculationRecord:
    """Shape a result for persistence (upsert on driver_id, year, month)."""
    return IncentiveCalculationRecord(
        driver_id=result.driver_id,
        year=result.year,
        month=result.month,
        base_salary=result.base_salary,
        km_incentive=result.km_incentive,
        performance_bonus=result.performance_bonus,
        safety_bonus=result.safety_bonus,
        deductions=result.deductions,
        deduction_reason=result.deduction_reason,
        total_incentive=result.total_incentive,
        total_earnings=result.total_earnings,
        calculation_details={
            "budget_km": result.budget_km,
            "truck_count": result.truck_count,
            "target_km_per_truck": result.target_km_per_truck,
            "divisor": result.divisor,
            "rate_per_km": result.rate_per_km,
            "actual_km": result.actual_km,
            "achievement": result.achievement,
            "fuel_bonus": result.fuel_bonus,
            "fuel_efficiency_tier": result.fuel_efficiency_tier,
            "custom_formula_results": result.custom_formula_results,
            "formula_values": result.formula_values,
            "skipped_formulas": [f.model_dump() for f in result.skipped_formulas],
            "calculation_notes": result.calculation_notes,
        },
        status=status,
    )


WORKFLOW_TRANSITIONS: tuple[WorkflowTransition, ...] = (
    WorkflowTransition(from_status="draft", to_status="pending_approval", label="Submit for Approval"),
    WorkflowTransition(
        from_status="pending_approval", to_status="approved", label="Approve", requires_approver=True
    ),
    WorkflowTransition(from_status="pending_approval", to_status="draft", label="Return to Draft"),
    WorkflowTransition(from_status="approved", to_status="paid", label="Mark as Paid"),
    WorkflowTransition(
        from_status="approved", to_status="draft", label="Revert to Draft", requires_approver=True
    ),
)


def get_available_transitions(status: WorkflowStatus) -> list[WorkflowTransition]:
    """Status changes allowed from a record's current status. "paid" is final."""
    return [t for t in WORKFLOW_TRANSITIONS if t.from_status == status]
