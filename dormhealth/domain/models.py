"""
Domain models for weekly community health trend analysis.

These models represent the core business concepts and are framework-agnostic.
They use Pydantic for validation; value objects are frozen so a single analysis
run can pass them between components without copying.
"""

from datetime import UTC, date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


class SymptomCategory(str, Enum):
    """Symptom taxonomy buckets. Declaration order breaks ties."""

    RESPIRATORY = "respiratory"
    GASTROINTESTINAL = "gastrointestinal"
    SYSTEMIC = "systemic"
    OTHER = "other"


class Severity(str, Enum):
    """Notification severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RiskLevel(str, Enum):
    """Coarse risk bucket derived from a trend score."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TrendDirection(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"
    INSUFFICIENT_DATA = "insufficient_data"


class AlertTrigger(str, Enum):
    """Which alerting path produced a decision."""

    RISK_SCORE = "risk_score"  # weekly batch over persisted trend scores
    ON_DEMAND = "on_demand"  # manual generation over the live aggregate


class SurveyResponse(BaseModel):
    """One anonymous weekly survey row as handed over by the survey store."""

    model_config = ConfigDict(frozen=True)

    unit_id: str = Field(min_length=1)
    week_start: date
    symptoms: list[str] | str = Field(
        default_factory=list,
        description="Decoded symptom labels, or the store's raw JSON payload",
    )
    severity_level: int = Field(ge=1, le=5)


class SymptomCount(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    count: int = Field(ge=0)


class WeeklyUnitAggregate(BaseModel):
    """Per-unit counts for one week. Recomputed on every run, never persisted."""

    model_config = ConfigDict(frozen=True)

    unit_id: str
    week_start: date
    total_responses: int = Field(ge=0)
    sick_count: int = Field(ge=0)
    high_severity_count: int = Field(ge=0)
    avg_severity: float = Field(ge=0.0, le=5.0)
    symptoms: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def counts_are_nested(self) -> "WeeklyUnitAggregate":
        if self.sick_count > self.total_responses:
            raise ValueError("sick_count cannot exceed total_responses")
        if self.high_severity_count > self.sick_count:
            raise ValueError("high_severity_count cannot exceed sick_count")
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def sick_pct(self) -> float:
        return self.sick_count / self.total_responses if self.total_responses > 0 else 0.0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def high_severity_pct(self) -> float:
        if self.total_responses == 0:
            return 0.0
        return self.high_severity_count / self.total_responses


class SymptomAnalysis(BaseModel):
    """Classifier output for one unit-week."""

    model_config = ConfigDict(frozen=True)

    top_symptoms: list[SymptomCount]
    category_scores: dict[SymptomCategory, int]
    dominant_category: SymptomCategory
    total_symptom_reports: int = Field(ge=0)


class ScoreBreakdown(BaseModel):
    """
    Components of a trend score.

    `diversity` is reported for telemetry only and is not part of `score`.
    """

    model_config = ConfigDict(frozen=True)

    sick_component: float
    high_severity_component: float
    severity_component: float
    base: float
    diversity: float
    concentration_ratio: float
    concentration_bonus: float
    score: float = Field(ge=0.0, le=100.0)


class TrendRecord(BaseModel):
    """The only durable output of an analysis run; keyed by (unit_id, week_start)."""

    model_config = ConfigDict(frozen=True)

    unit_id: str
    week_start: date
    total_responses: int = Field(ge=0)
    sick_count: int = Field(ge=0)
    common_symptoms: list[SymptomCount] = Field(default_factory=list, max_length=5)
    trend_score: float = Field(ge=0.0, le=100.0)
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def sick_pct(self) -> float:
        return self.sick_count / self.total_responses if self.total_responses > 0 else 0.0


class ScorePoint(BaseModel):
    """A single (week, score) observation fed to the predictor."""

    model_config = ConfigDict(frozen=True)

    week: date | int
    score: float


class Prediction(BaseModel):
    model_config = ConfigDict(frozen=True)

    unit_id: str = ""
    direction: TrendDirection
    confidence_percent: int = Field(ge=0, le=100)
    slope: float = 0.0
    next_week_estimate: float = 0.0


class AlertDecision(BaseModel):
    """What the alert policy wants done. Severity is None when no alert applies."""

    model_config = ConfigDict(frozen=True)

    unit_id: str
    severity: Severity | None
    message: str = ""
    should_emit: bool
    trigger: AlertTrigger = AlertTrigger.RISK_SCORE


class Notification(BaseModel):
    """Notification row as stored by the notification collaborator."""

    id: int
    unit_id: str
    message: str
    severity: Severity
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    active: bool = True


class GeneratedAlert(BaseModel):
    """A notification that was actually written by an alerting run."""

    model_config = ConfigDict(frozen=True)

    notification_id: int
    unit_id: str
    severity: Severity
    score: float
    trigger: AlertTrigger


class RiskAssessment(BaseModel):
    """Current-week risk snapshot for one unit, computed from the live aggregate."""

    model_config = ConfigDict(frozen=True)

    unit_id: str
    total_responses: int
    sick_count: int
    sick_pct: float
    avg_severity: float
    risk_score: float
    risk_level: RiskLevel


class UnitInsights(BaseModel):
    """Read-side summary of a unit's recent trend records."""

    unit_id: str
    current_trend: TrendRecord | None
    average_score: float
    trend_direction: TrendDirection
    risk_level: RiskLevel


class WeeklyAnalysisReport(BaseModel):
    """Outcome of one weekly batch run. Partial success is expected."""

    week_start: date
    records: list[TrendRecord] = Field(default_factory=list)
    predictions: list[Prediction] = Field(default_factory=list)
    alerts: list[GeneratedAlert] = Field(default_factory=list)
    failed_units: list[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    duration_seconds: float = Field(default=0.0, ge=0.0)

    @property
    def analyzed_units(self) -> list[str]:
        return [record.unit_id for record in self.records]
