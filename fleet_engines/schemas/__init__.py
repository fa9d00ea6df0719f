"""Pydantic models for the fleet calculation engines."""

from fleet_engines.schemas.incentive import (
    BatchCalculationResult,
    Budget,
    CustomFormula,
    Driver,
    FormulaEvaluation,
    FormulaFailure,
    FuelEfficiencyConfig,
    FuelEfficiencyTier,
    IncentiveInput,
    IncentiveResult,
    PerformancePeriod,
    WorkflowTransition,
)
from fleet_engines.schemas.scorecard import (
    RoleWithKRAs,
    ScorecardEntry,
    ScorecardKPI,
    ScorecardKRA,
    ScorecardResult,
    ScorecardSummary,
    ScorecardTarget,
    ScoringRule,
)
from fleet_engines.schemas.settings import ConfigIssue, IncentiveSetting

__all__ = [
    "Driver",
    "PerformancePeriod",
    "Budget",
    "FuelEfficiencyTier",
    "FuelEfficiencyConfig",
    "CustomFormula",
    "FormulaFailure",
    "FormulaEvaluation",
    "IncentiveInput",
    "IncentiveResult",
    "BatchCalculationResult",
    "WorkflowTransition",
    "RoleWithKRAs",
    "ScorecardKRA",
    "ScorecardKPI",
    "ScorecardTarget",
    "ScoringRule",
    "ScorecardResult",
    "ScorecardEntry",
    "ScorecardSummary",
    "IncentiveSetting",
    "ConfigIssue",
]
