"""
Achievement Calculator

Direction-aware conversion of (actual, target) into an achievement percentage.
"""

from fleet_engines.schemas.scorecard import TargetDirection


def _floor_at_zero(value: float) -> float:
    # NaN < 0 is False, so NaN passes through unchanged
    return 0.0 if value < 0 else value


def calculate_achievement(
    actual: float,
    target: float,
    direction: TargetDirection,
) -> float:
    """
    Calculate achievement percentage for one KPI reading.

    - higher_better: actual / target x 100 (0 when target <= 0)
    - lower_better: 100 at or below zero usage; otherwise degrades linearly
      as actual exceeds target and floors at 0. No upper clamp, so beating
      the target scores above 100.
    - exact: 100 on an exact hit, otherwise a proportional penalty floored at 0

    Never raises. NaN inputs produce NaN.
    """
    if direction == "higher_better":
        if target <= 0:
            return 0.0
        return (actual / target) * 100

    if direction == "lower_better":
        if target <= 0:
            return 100.0 if actual <= 0 else 0.0
        if actual <= 0:
            return 100.0
        return _floor_at_zero((1 - (actual - target) / target) * 100)

    # exact
    if actual == target:
        return 100.0
    return _floor_at_zero(100 - abs(actual - target) / max(target, 1) * 100)
