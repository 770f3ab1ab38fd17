"""Retraining triggers and batch governance flows."""

from pipelines.retrain.trigger import (
    ConditionResult,
    ConditionType,
    RetrainingCondition,
    TimeBasedTrigger,
    TriggerEvaluation,
)

__all__ = [
    "ConditionResult",
    "ConditionType",
    "RetrainingCondition",
    "TimeBasedTrigger",
    "TriggerEvaluation",
]
