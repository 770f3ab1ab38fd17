"""Request/response schemas for the model governance endpoints."""

import math
from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pipelines.retrain.trigger import ConditionType

EXPERIMENT_ID_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9._-]*$"
MODEL_NAME_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9._ -]*$"

ExperimentId = Annotated[str, Field(pattern=EXPERIMENT_ID_PATTERN, max_length=128)]


def finite_or_none(value: float | None) -> float | None:
    """JSON has no infinity; unbounded values are reported as null."""
    if value is None or not math.isfinite(value):
        return None
    return value


class ApiModel(BaseModel):
    model_config = ConfigDict(protected_namespaces=())


# ----------------------------------------------------------------------
# Requests
# ----------------------------------------------------------------------


class CompareRequest(ApiModel):
    """Compare a candidate against a baseline, or production when omitted."""

    model_config = ConfigDict(extra="forbid")

    candidate_experiment_id: ExperimentId
    baseline_experiment_id: ExperimentId | None = None


class EvaluateRequest(ApiModel):
    """Promotion policy to evaluate a candidate against."""

    model_config = ConfigDict(extra="forbid")

    candidate_experiment_id: ExperimentId
    minimum_improvement: float = Field(default=0.0, description="Minimum improvement in percent")
    require_comparison_with_production: bool = True
    require_test_data_validation: bool = True
    required_metrics: list[str] = Field(default_factory=list)


class PromoteRequest(ApiModel):
    model_config = ConfigDict(extra="forbid")

    experiment_id: ExperimentId
    create_backup: bool | None = Field(
        default=None, description="Back up current production; server default when omitted"
    )


class RollbackRequest(ApiModel):
    model_config = ConfigDict(extra="forbid")

    target_experiment_id: ExperimentId | None = Field(
        default=None, description="Experiment to restore; previous promotion when omitted"
    )


class AutoPromoteRequest(ApiModel):
    model_config = ConfigDict(extra="forbid")

    experiment_id: ExperimentId
    primary_metric: str = Field(..., min_length=1)
    class_count: int | None = Field(default=None, ge=1)


class ConditionPayload(ApiModel):
    model_config = ConfigDict(extra="forbid")

    type: ConditionType
    name: str = Field(..., min_length=1)
    threshold: float
    description: str | None = None


class TriggerRequest(ApiModel):
    model_config = ConfigDict(extra="forbid")

    conditions: list[ConditionPayload] = Field(..., min_length=1)
    now: datetime | None = None


# ----------------------------------------------------------------------
# Responses
# ----------------------------------------------------------------------


class ModelListResponse(ApiModel):
    models: list[str]


class ExperimentListResponse(ApiModel):
    model_name: str
    experiments: list[str]
    production_experiment_id: str | None = None


class ExperimentMetricsResponse(ApiModel):
    model_name: str
    experiment_id: str
    metrics: dict[str, float]


class ProductionResponse(ApiModel):
    model_name: str
    experiment_id: str
    model_path: str | None = None
    promoted_at: datetime | None = None


class MetricComparisonResponse(ApiModel):
    metric_name: str
    candidate_value: float
    baseline_value: float
    difference: float
    is_better: bool


class ComparisonResponse(ApiModel):
    """Comparison result. ``improvement`` is null when there is no baseline."""

    candidate_experiment_id: str
    baseline_experiment_id: str
    candidate_is_better: bool
    candidate_score: float
    baseline_score: float
    improvement: float | None
    metric_details: dict[str, MetricComparisonResponse]
    recommendation: str

    @field_validator("improvement", mode="before")
    @classmethod
    def _finite_improvement(cls, v: Any) -> Any:
        return finite_or_none(v)


class BestExperimentResponse(ApiModel):
    model_name: str
    primary_metric: str
    experiment_id: str | None


class PromotionDecisionResponse(ApiModel):
    approved: bool
    reason: str
    checks_passed: list[str]
    checks_failed: list[str]


class PromotionOutcomeResponse(ApiModel):
    success: bool
    model_name: str
    experiment_id: str
    previous_experiment_id: str | None = None
    backup_path: str | None = None
    timestamp: datetime
    error: str | None = None
    message: str | None = None


class RollbackOutcomeResponse(ApiModel):
    success: bool
    model_name: str
    from_experiment_id: str | None = None
    to_experiment_id: str | None = None
    timestamp: datetime
    error: str | None = None
    message: str | None = None


class AutoPromotionResponse(ApiModel):
    promoted: bool
    decision: PromotionDecisionResponse
    outcome: PromotionOutcomeResponse | None = None


class PromotionRecordResponse(ApiModel):
    model_name: str
    experiment_id: str
    previous_experiment_id: str | None = None
    action: str
    reason: str | None = None
    timestamp: datetime


class HistoryResponse(ApiModel):
    model_name: str
    records: list[PromotionRecordResponse]


class ConditionResultResponse(ApiModel):
    condition: ConditionPayload
    is_met: bool
    current_value: float | None = Field(
        ..., description="Days since last training; null when the model was never trained"
    )
    details: str

    @field_validator("current_value", mode="before")
    @classmethod
    def _finite_value(cls, v: Any) -> Any:
        return finite_or_none(v)


class TriggerEvaluationResponse(ApiModel):
    model_name: str
    should_retrain: bool
    condition_results: list[ConditionResultResponse]
    recommended_action: str | None = None
    evaluated_at: datetime
