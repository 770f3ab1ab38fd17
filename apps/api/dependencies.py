"""FastAPI dependency providers for the governance services."""

from fastapi import Depends

from pipelines.promotion import MetricComparator, PromotionManager, PromotionPolicyEvaluator
from pipelines.retrain.trigger import TimeBasedTrigger
from shared.storage import MetricStore


def get_store() -> MetricStore:
    """Store rooted at the configured project. Overridden in tests."""
    return MetricStore()


def get_comparator(store: MetricStore = Depends(get_store)) -> MetricComparator:
    return MetricComparator(store)


def get_evaluator(store: MetricStore = Depends(get_store)) -> PromotionPolicyEvaluator:
    return PromotionPolicyEvaluator(store)


def get_manager(store: MetricStore = Depends(get_store)) -> PromotionManager:
    return PromotionManager(store)


def get_trigger(store: MetricStore = Depends(get_store)) -> TimeBasedTrigger:
    return TimeBasedTrigger(store)
