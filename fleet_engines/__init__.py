"""
Fleet Incentive Engines

Deterministic calculation engines for the fleet-operations admin tool:
- Driver incentives: per-km rate, fuel-efficiency tiers, custom formulas
- Employee scorecards: weighted KRA/KPI scoring and final rating
"""

__version__ = "0.1.0"
