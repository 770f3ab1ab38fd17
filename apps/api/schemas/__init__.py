"""API Pydantic schemas."""

from apps.api.schemas.models import (
    AutoPromoteRequest,
    AutoPromotionResponse,
    BestExperimentResponse,
    CompareRequest,
    ComparisonResponse,
    ConditionPayload,
    EvaluateRequest,
    ExperimentListResponse,
    ExperimentMetricsResponse,
    HistoryResponse,
    ModelListResponse,
    ProductionResponse,
    PromoteRequest,
    PromotionDecisionResponse,
    PromotionOutcomeResponse,
    RollbackOutcomeResponse,
    RollbackRequest,
    TriggerEvaluationResponse,
    TriggerRequest,
)

__all__ = [
    "AutoPromoteRequest",
    "AutoPromotionResponse",
    "BestExperimentResponse",
    "CompareRequest",
    "ComparisonResponse",
    "ConditionPayload",
    "EvaluateRequest",
    "ExperimentListResponse",
    "ExperimentMetricsResponse",
    "HistoryResponse",
    "ModelListResponse",
    "ProductionResponse",
    "PromoteRequest",
    "PromotionDecisionResponse",
    "PromotionOutcomeResponse",
    "RollbackOutcomeResponse",
    "RollbackRequest",
    "TriggerEvaluationResponse",
    "TriggerRequest",
]
