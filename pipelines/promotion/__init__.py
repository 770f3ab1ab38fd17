"""Comparison, promotion policy and promotion management."""

from pipelines.promotion.comparator import (
    ComparisonCriteria,
    ComparisonResult,
    MetricComparator,
    MetricComparison,
    compare_metrics,
    is_lower_better_metric,
)
from pipelines.promotion.manager import (
    AutoPromotionResult,
    PromotionErrorKind,
    PromotionManager,
    PromotionOutcome,
    RollbackOutcome,
)
from pipelines.promotion.policy import (
    PromotionDecision,
    PromotionPolicy,
    PromotionPolicyEvaluator,
    QualityGate,
    get_minimum_metric_threshold,
    is_classification_degenerate_model,
    is_error_metric,
)

__all__ = [
    "AutoPromotionResult",
    "ComparisonCriteria",
    "ComparisonResult",
    "MetricComparator",
    "MetricComparison",
    "PromotionDecision",
    "PromotionErrorKind",
    "PromotionManager",
    "PromotionOutcome",
    "PromotionPolicy",
    "PromotionPolicyEvaluator",
    "QualityGate",
    "RollbackOutcome",
    "compare_metrics",
    "get_minimum_metric_threshold",
    "is_classification_degenerate_model",
    "is_error_metric",
    "is_lower_better_metric",
]
