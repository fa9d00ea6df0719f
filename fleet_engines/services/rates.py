"""
Rate Deriver

Per-kilometer incentive rate from a monthly budget and divisor.
"""


def target_per_truck(budgeted_kilometers: float, truck_count: int) -> float:
    """Share of the monthly kilometer budget expected from one truck."""
    return budgeted_kilometers / truck_count if truck_count > 0 else 0.0


def derive_rate_per_km(
    budgeted_kilometers: float,
    divisor: float,
    truck_count: int,
) -> float:
    """
    Derive the per-km incentive rate.

    The divisor is a fixed monthly incentive pool spread evenly across the
    kilometers expected from one truck:

        rate_per_km = divisor / (budgeted_kilometers / truck_count)

    Returns 0 when there is no positive per-truck target or no positive divisor.

    Example:
        60,000 km budget over 5 trucks = 12,000 km per truck
        divisor 10 -> 10 / 12,000 = 0.000833 per km
    """
    per_truck = target_per_truck(budgeted_kilometers, truck_count)
    if per_truck > 0 and divisor > 0:
        return divisor / per_truck
    return 0.0
