"""
Scorecard Schemas

Role -> KRA -> KPI configuration, monthly targets, scoring bands,
and the scored results produced for one employee-month.
"""

from typing import Literal

from pydantic import BaseModel, Field, model_validator

TargetDirection = Literal["higher_better", "lower_better", "exact"]


class ScorecardKPI(BaseModel):
    """A single measured quantity inside a KRA."""

    id: str
    kra_id: str | None = None
    kpi_name: str
    description: str | None = None
    measurement_type: Literal[
        "percentage", "number", "currency", "ratio", "count", "yes_no"
    ] = "number"
    target_direction: TargetDirection = "higher_better"
    weighting: float = Field(..., ge=0, description="Percent of the parent KRA")
    unit: str | None = None
    default_target: float | None = None
    sort_order: int = 0
    is_active: bool = True


class ScorecardKRA(BaseModel):
    """Key Result Area: a weighted group of KPIs."""

    id: str
    role_id: str | None = None
    kra_name: str
    weighting: float = Field(..., ge=0, description="Percent of the role total")
    sort_order: int = 0
    is_active: bool = True
    kpis: list[ScorecardKPI] = Field(default_factory=list)


class RoleWithKRAs(BaseModel):
    """A scorecard role with its KRAs and their KPIs loaded."""

    id: str
    role_name: str
    role_code: str = ""
    description: str | None = None
    is_active: bool = True
    kras: list[ScorecardKRA] = Field(default_factory=list)


class ScorecardTarget(BaseModel):
    """Monthly target overriding a KPI's default. Natural key: (kpi_id, year, month)."""

    kpi_id: str
    year: int = Field(..., ge=2000, le=2100)
    month: int = Field(..., ge=1, le=12)
    target_value: float
    notes: str | None = None


class ScoringRule(BaseModel):
    """Achievement band [min_achievement, max_achievement) mapped to a flat score."""

    role_id: str | None = Field(default=None, description="None applies to every role")
    min_achievement: float = Field(..., allow_inf_nan=False)
    max_achievement: float = Field(..., allow_inf_nan=False)
    score: float = Field(..., ge=0, le=100)
    label: str | None = None

    @model_validator(mode="after")
    def check_band(self) -> "ScoringRule":
        if self.min_achievement >= self.max_achievement:
            raise ValueError(
                f"min_achievement {self.min_achievement} must be below "
                f"max_achievement {self.max_achievement}"
            )
        return self


class KPIScore(BaseModel):
    kpi_id: str
    kpi_name: str
    unit: str | None = None
    target: float
    actual: float
    achievement_percent: float
    score: float
    weighted_score: float = Field(..., description="score x KPI weighting / 100")
    band_label: str | None = None
    band_matched: bool = True


class KRAScore(BaseModel):
    kra_id: str
    kra_name: str
    weighting: float
    kpi_scores: list[KPIScore] = Field(default_factory=list)
    kra_weighted_score: float
    final_kra_score: float = Field(..., description="kra_weighted_score x KRA weighting / 100")


class ScorecardResult(BaseModel):
    """Weighted score and rating for one employee-month."""

    role_id: str
    kra_scores: list[KRAScore] = Field(default_factory=list)
    total_weighted_score: float
    rating: str

    # Data-quality conditions surfaced to operators
    unmatched_kpis: list[str] = Field(
        default_factory=list,
        description="KPI ids whose achievement matched no scoring band",
    )
    weighting_issues: list[str] = Field(default_factory=list)


class ScorecardEntry(BaseModel):
    """Persistable per-KPI row. Callers upsert on (employee_id, kpi_id, year, month)."""

    employee_id: str
    kpi_id: str
    year: int
    month: int
    actual_value: float
    target_value: float
    achievement_percentage: float
    score: float
    weighted_score: float = Field(..., description="Contribution to the total weighted score")
    status: Literal["draft", "submitted", "approved", "rejected"] = "submitted"


class ScorecardSummary(BaseModel):
    """Persistable monthly summary. Callers upsert on (employee_id, year, month)."""

    employee_id: str
    year: int
    month: int
    total_weighted_score: float
    final_rating: str
    safety_incidents: int = 0
    bonus_eligible: bool = False
    bonus_amount: float | None = None
    status: Literal["pending", "reviewed", "finalized"] = "pending"
