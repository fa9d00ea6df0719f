"""
Driver Incentive Schemas

Input/output models for the monthly driver incentive calculation.
"""

from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from fleet_engines.schemas.settings import ConfigIssue

DriverType = Literal["local", "export"]
WorkflowStatus = Literal["draft", "pending_approval", "approved", "paid"]


class Driver(BaseModel):
    """Driver attributes the incentive calculation reads."""

    id: str = Field(..., description="Unique driver identifier")
    first_name: str = ""
    last_name: str = ""
    driver_type: DriverType = Field(..., description="Local or export driver")
    base_salary: float = Field(..., ge=0, allow_inf_nan=False, description="Monthly base salary")
    status: str = Field(default="active", description="Only active drivers are batch calculated")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class PerformancePeriod(BaseModel):
    """
    One driver's recorded performance for a calendar month.

    Natural key: (driver_id, year, month).
    """

    driver_id: str
    year: int = Field(..., ge=2000, le=2100)
    month: int = Field(..., ge=1, le=12)

    actual_kilometers: float = Field(..., ge=0, allow_inf_nan=False)
    trips_completed: int = Field(default=0, ge=0)

    # Optional readings; a missing reading is a neutral input, not an error
    fuel_efficiency: float | None = Field(default=None, description="km per litre")
    on_time_delivery_rate: float | None = None
    safety_score: float | None = None
    customer_rating: float | None = None


class Budget(BaseModel):
    """Monthly kilometer budget for a driver type."""

    year: int = Field(..., ge=2000, le=2100)
    month: int = Field(..., ge=1, le=12)
    driver_type: DriverType
    budgeted_kilometers: float = Field(..., ge=0, allow_inf_nan=False)
    truck_count: int = Field(default=1, ge=1, description="Trucks sharing the budget")


class FuelEfficiencyTier(BaseModel):
    """A half-open efficiency range [min_efficiency, max_efficiency) paying a flat bonus."""

    id: str | None = None
    min_efficiency: float = Field(..., allow_inf_nan=False)
    max_efficiency: float = Field(..., allow_inf_nan=False)
    bonus_amount: float = Field(..., ge=0, allow_inf_nan=False)

    @model_validator(mode="after")
    def check_range(self) -> "FuelEfficiencyTier":
        if self.min_efficiency >= self.max_efficiency:
            raise ValueError(
                f"min_efficiency {self.min_efficiency} must be below "
                f"max_efficiency {self.max_efficiency}"
            )
        return self

    @property
    def label(self) -> str:
        return f"{self.min_efficiency}-{self.max_efficiency} km/L"


class FuelEfficiencyConfig(BaseModel):
    """Ordered, non-overlapping fuel tiers for one driver type."""

    enabled: bool = True
    tiers: list[FuelEfficiencyTier] = Field(default_factory=list)


class CustomFormula(BaseModel):
    """
    User-authored incentive formula.

    Formulas run in ascending priority; each result is visible to later
    formulas under its key.
    """

    key: str = Field(
        ...,
        min_length=1,
        pattern=r"^[A-Za-z_][A-Za-z0-9_]*$",
        validation_alias=AliasChoices("key", "formula_key"),
    )
    expression: str = Field(
        ...,
        validation_alias=AliasChoices("expression", "formula_expression"),
    )
    name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("name", "formula_name"),
    )
    applies_to: Literal["all", "local", "export"] = "all"
    priority: int = 0
    is_active: bool = True


class FormulaFailure(BaseModel):
    """A formula that was skipped, with the reason."""

    key: str
    expression: str
    reason: str


class FormulaEvaluation(BaseModel):
    """Outcome of one formula batch."""

    results: dict[str, float] = Field(default_factory=dict)
    failures: list[FormulaFailure] = Field(default_factory=list)
    evaluated_order: list[str] = Field(
        default_factory=list,
        description="Keys of applicable formulas in the order they ran",
    )


class IncentiveInput(BaseModel):
    """Everything needed to calculate one driver-month."""

    driver: Driver
    performance: PerformancePeriod
    budget: Budget | None = None
    divisor: float = Field(..., ge=0, allow_inf_nan=False, description="Monthly incentive pool")
    formulas: list[CustomFormula] = Field(default_factory=list)
    fuel_config: FuelEfficiencyConfig | None = Field(
        default=None,
        description="Fuel tiers for the driver's type; built-in defaults when absent",
    )

    accident_count: int = Field(default=0, ge=0)
    incident_count: int = Field(default=0, ge=0)
    deductions: float = Field(
        default=0.0,
        ge=0,
        allow_inf_nan=False,
        description="Caller-supplied deduction magnitude",
    )
    deduction_reason: str | None = None


class IncentiveResult(BaseModel):
    """
    Full incentive breakdown for one driver-month.

    total_incentive = km_incentive + fuel_bonus + performance_bonus
                      + safety_bonus + sum(custom_formula_results) - deductions
    total_earnings  = base_salary + total_incentive
    """

    driver_id: str
    driver_name: str = ""
    year: int
    month: int

    base_salary: float
    actual_km: float
    budget_km: float
    truck_count: int
    target_km_per_truck: float
    divisor: float
    rate_per_km: float
    achievement: float = Field(..., description="Km achievement against the per-truck target (%)")

    km_incentive: float
    fuel_bonus: float
    fuel_efficiency_tier: str | None = None
    fuel_tier_matched: bool = False
    performance_bonus: float
    safety_bonus: float
    custom_formula_results: dict[str, float] = Field(
        default_factory=dict,
        description="Additive formula values included in the total",
    )
    formula_values: dict[str, float] = Field(
        default_factory=dict,
        description="Every successfully evaluated formula value",
    )
    skipped_formulas: list[FormulaFailure] = Field(default_factory=list)

    deductions: float
    deduction_reason: str | None = None
    total_incentive: float
    total_earnings: float

    calculation_notes: list[str] = Field(default_factory=list)


class IncentiveCalculationRecord(BaseModel):
    """Persistable incentive row. Callers upsert on (driver_id, year, month)."""

    driver_id: str
    year: int
    month: int
    base_salary: float
    km_incentive: float
    performance_bonus: float
    safety_bonus: float
    deductions: float
    deduction_reason: str | None = None
    total_incentive: float
    total_earnings: float
    calculation_details: dict
    status: WorkflowStatus = "draft"


class WorkflowTransition(BaseModel):
    """An allowed status change for a persisted incentive record."""

    model_config = ConfigDict(frozen=True)

    from_status: WorkflowStatus
    to_status: WorkflowStatus
    label: str
    requires_approver: bool = False


class BatchFailure(BaseModel):
    """A driver whose calculation could not be completed."""

    driver_id: str
    driver_name: str
    reason: str


class BatchSummary(BaseModel):
    total_processed: int = 0
    success_count: int = 0
    failed_count: int = 0
    total_incentives: float = 0.0
    total_earnings: float = 0.0


class BatchCalculationResult(BaseModel):
    """Per-driver results of a monthly batch, with success/failure tally."""

    success: list[IncentiveResult] = Field(default_factory=list)
    failed: list[BatchFailure] = Field(default_factory=list)
    summary: BatchSummary = Field(default_factory=BatchSummary)
    config_issues: list[ConfigIssue] = Field(default_factory=list)


class ScenarioRequest(BaseModel):
    name: str
    additional_km: float


class ScenarioDifference(BaseModel):
    km: float
    incentive: float
    earnings: float
    achievement: float


class WhatIfScenario(BaseModel):
    """Projected earnings if the driver covered additional kilometers."""

    scenario_name: str
    additional_km: float
    projected_km: float
    projected_incentive: float
    projected_earnings: float
    projected_achievement: float
    difference: ScenarioDifference
