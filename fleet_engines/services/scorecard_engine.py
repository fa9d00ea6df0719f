"""
Scorecard Scoring Engine

Maps an employee's monthly KPI actuals to a weighted 0-100 score and a
qualitative rating:

    KPI:   achievement % -> band score -> score x KPI weighting / 100
    KRA:   sum(KPI weighted scores) x KRA weighting / 100
    Total: sum(KRA final scores)

Weightings that do not sum to 100 are reported, not rejected.
"""

import logging
from collections.abc import Mapping

from fleet_engines.config import Settings, get_settings
from fleet_engines.schemas.scorecard import (
    KPIScore,
    KRAScore,
    RoleWithKRAs,
    ScorecardEntry,
    ScorecardKPI,
    ScorecardResult,
    ScorecardSummary,
    ScorecardTarget,
    ScoringRule,
)
from fleet_engines.services.achievement import calculate_achievement

logger = logging.getLogger(__name__)

# Lower bounds are inclusive: exactly 80 rates "Very Good", exactly 90 "Excellent".
# Anything below the last bound (including NaN) is "Unsatisfactory".
RATING_THRESHOLDS: tuple[tuple[float, str], ...] = (
    (90.0, "Excellent"),
    (80.0, "Very Good"),
    (70.0, "Good"),
    (60.0, "Satisfactory"),
    (50.0, "Needs Improvement"),
)
LOWEST_RATING = "Unsatisfactory"


def get_final_rating(
    total_score: float,
    thresholds: tuple[tuple[float, str], ...] = RATING_THRESHOLDS,
    lowest: str = LOWEST_RATING,
) -> str:
    """Rating band for a total weighted score. Every float maps to exactly one band."""
    for minimum, rating in thresholds:
        if total_score >= minimum:
            return rating
    return lowest


def match_scoring_rule(achievement: float, rules: list[ScoringRule]) -> ScoringRule | None:
    """
    First band with min <= achievement < max.

    The band with the highest minimum also includes its upper bound, so a
    table ending at 150 still scores an achievement of exactly 150.
    """
    ordered = sorted(rules, key=lambda r: r.min_achievement)
    for rule in ordered:
        if rule.min_achievement <= achievement < rule.max_achievement:
            return rule

    if ordered and achievement == ordered[-1].max_achievement:
        return ordered[-1]
    return None


def lookup_score(achievement: float, rules: list[ScoringRule]) -> float:
    """Score for an achievement percentage; 0 when no band matches."""
    rule = match_scoring_rule(achievement, rules)
    return rule.score if rule else 0.0


def resolve_target(
    kpi: ScorecardKPI,
    targets: list[ScorecardTarget],
    year: int | None = None,
    month: int | None = None,
) -> float:
    """
    Target for a KPI: the period's target row, else the KPI default, else 0.

    When year/month are omitted, `targets` is assumed to be already
    filtered to the scored period.
    """
    for target in targets:
        if target.kpi_id != kpi.id:
            continue
        if year is not None and target.year != year:
            continue
        if month is not None and target.month != month:
            continue
        return target.target_value

    if kpi.default_target is not None:
        return kpi.default_target
    return 0.0


def _check_weightings(label: str, weightings: list[float], tolerance: float) -> str | None:
    if not weightings:
        return None
    total = sum(weightings)
    if abs(total - 100) > tolerance:
        return f"{label} weightings sum to {total:g}, not 100"
    return None


def score_employee(
    role: RoleWithKRAs,
    entries: Mapping[str, float],
    targets: list[ScorecardTarget],
    scoring_rules: list[ScoringRule],
    year: int | None = None,
    month: int | None = None,
    settings: Settings | None = None,
) -> ScorecardResult:
    """
    Score one employee-month against their role's scorecard.

    Only active KRAs and KPIs count, in sort order. A KPI without a
    supplied actual is scored with actual 0.

    Example:
        One KRA weighted 100% with two KPIs weighted 50/50, both scoring 80:
        - KRA weighted score: 80 x 0.5 + 80 x 0.5 = 80
        - Total: 80 x 1.0 = 80 -> "Very Good"
    """
    settings = settings or get_settings()
    tolerance = settings.weighting_tolerance

    kra_scores: list[KRAScore] = []
    unmatched: list[str] = []
    weighting_issues: list[str] = []

    kras = sorted((k for k in role.kras if k.is_active), key=lambda k: k.sort_order)

    issue = _check_weightings(f"Role {role.role_name} KRA", [k.weighting for k in kras], tolerance)
    if issue:
        weighting_issues.append(issue)

    for kra in kras:
        kpis = sorted((k for k in kra.kpis if k.is_active), key=lambda k: k.sort_order)

        issue = _check_weightings(f"KRA {kra.kra_name} KPI", [k.weighting for k in kpis], tolerance)
        if issue:
            weighting_issues.append(issue)

        kpi_scores: list[KPIScore] = []
        for kpi in kpis:
            actual = entries.get(kpi.id, 0.0)
            target = resolve_target(kpi, targets, year, month)
            achievement = calculate_achievement(actual, target, kpi.target_direction)

            rule = match_scoring_rule(achievement, scoring_rules)
            if rule is None:
                unmatched.append(kpi.id)
                logger.warning(
                    f"KPI {kpi.kpi_name} achievement {achievement:.2f}% matched no scoring band"
                )
            score = rule.score if rule else 0.0

            kpi_scores.append(
                KPIScore(
                    kpi_id=kpi.id,
                    kpi_name=kpi.kpi_name,
                    unit=kpi.unit,
                    target=target,
                    actual=actual,
                    achievement_percent=achievement,
                    score=score,
                    weighted_score=score * (kpi.weighting / 100),
                    band_label=rule.label if rule else None,
                    band_matched=rule is not None,
                )
            )

        kra_weighted_score = sum(k.weighted_score for k in kpi_scores)
        kra_scores.append(
            KRAScore(
                kra_id=kra.id,
                kra_name=kra.kra_name,
                weighting=kra.weighting,
                kpi_scores=kpi_scores,
                kra_weighted_score=kra_weighted_score,
                final_kra_score=kra_weighted_score * (kra.weighting / 100),
            )
        )

    for issue in weighting_issues:
        logger.warning(issue)

    total = sum(k.final_kra_score for k in kra_scores)
    return ScorecardResult(
        role_id=role.id,
        kra_scores=kra_scores,
        total_weighted_score=total,
        rating=get_final_rating(total),
        unmatched_kpis=unmatched,
        weighting_issues=weighting_issues,
    )


def build_scorecard_entries(
    employee_id: str,
    year: int,
    month: int,
    result: ScorecardResult,
) -> list[ScorecardEntry]:
    """
    One persistable entry per scored KPI.

    The stored weighted_score is the KPI's contribution to the total
    (score x KPI weighting x KRA weighting).
    """
    return [
        ScorecardEntry(
            employee_id=employee_id,
            kpi_id=kpi.kpi_id,
            year=year,
            month=month,
            actual_value=kpi.actual,
            target_value=kpi.target,
            achievement_percentage=kpi.achievement_percent,
            score=kpi.score,
            weighted_score=kpi.weighted_score * (kra.weighting / 100),
        )
        for kra in result.kra_scores
        for kpi in kra.kpi_scores
    ]


def build_scorecard_summary(
    employee_id: str,
    year: int,
    month: int,
    result: ScorecardResult,
    safety_incidents: int = 0,
    settings: Settings | None = None,
) -> ScorecardSummary:
    """Monthly summary row; bonus eligibility follows the configured threshold."""
    settings = settings or get_settings()
    return ScorecardSummary(
        employee_id=employee_id,
        year=year,
        month=month,
        total_weighted_score=result.total_weighted_score,
        final_rating=result.rating,
        safety_incidents=safety_incidents,
        bonus_eligible=result.total_weighted_score >= settings.bonus_eligibility_threshold,
    )
