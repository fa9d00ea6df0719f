"""
Custom Formula Evaluator

Runs user-authored incentive formulas in priority order, feeding each
result into the formulas that follow. A bad formula is skipped and
reported; it never aborts the batch.
"""

import logging
from collections.abc import Mapping

from fleet_engines.exceptions import FormulaError
from fleet_engines.schemas.incentive import (
    CustomFormula,
    DriverType,
    FormulaEvaluation,
    FormulaFailure,
)
from fleet_engines.services.formula_parser import evaluate_expression

logger = logging.getLogger(__name__)

# Names the incentive calculator puts in the formula context. The optional
# readings (fuel_efficiency onward) are present only when recorded.
FORMULA_VARIABLES: frozenset[str] = frozenset(
    {
        "actual_km",
        "target_km",
        "rate_per_km",
        "base_salary",
        "accident_count",
        "incident_count",
        "trips_completed",
        "km_incentive",
        "fuel_bonus",
        "achievement_percent",
        "budget_km",
        "truck_count",
        "fuel_efficiency",
        "on_time_delivery_rate",
        "safety_score",
        "customer_rating",
    }
)


def applicable_formulas(
    formulas: list[CustomFormula],
    driver_type: DriverType,
) -> list[CustomFormula]:
    """Active formulas for the driver type, lowest priority first (stable on ties)."""
    selected = [
        f for f in formulas
        if f.is_active and f.applies_to in ("all", driver_type)
    ]
    return sorted(selected, key=lambda f: f.priority)


def evaluate_formulas(
    formulas: list[CustomFormula],
    context: Mapping[str, float],
    driver_type: DriverType,
) -> FormulaEvaluation:
    """
    Evaluate formulas against a variable context.

    Each formula sees the original context plus every earlier formula
    result under that formula's key. Failures (syntax errors, unknown
    variables, division by zero, non-finite results, key collisions)
    are recorded in FormulaEvaluation.failures and evaluation continues.
    """
    evaluation = FormulaEvaluation()
    variables: dict[str, float] = dict(context)

    for formula in applicable_formulas(formulas, driver_type):
        evaluation.evaluated_order.append(formula.key)

        if formula.key in context:
            reason = "Formula key collides with an input variable"
        elif formula.key in evaluation.results:
            reason = "Duplicate formula key"
        else:
            try:
                value = evaluate_expression(formula.expression, variables)
            except FormulaError as e:
                reason = str(e)
            else:
                evaluation.results[formula.key] = value
                variables[formula.key] = value
                logger.debug(f"Formula {formula.key} = {value}")
                continue

        logger.warning(f"Skipping formula {formula.key!r} ({formula.expression!r}): {reason}")
        evaluation.failures.append(
            FormulaFailure(key=formula.key, expression=formula.expression, reason=reason)
        )

    return evaluation
