"""File-based storage of experiments, the production pointer and promotion history."""

from shared.storage.errors import (
    ExperimentNotFoundError,
    GovernanceError,
    HistoryCorruptedError,
    MetricsNotFoundError,
)
from shared.storage.layout import ModelLayout, sanitize_model_name
from shared.storage.locking import ModelLockTimeout, model_lock
from shared.storage.metric_store import MetricStore
from shared.storage.schemas import (
    ExperimentMetadata,
    ModelRegistryFile,
    ProductionEntry,
    PromotionRecord,
)

__all__ = [
    "ExperimentMetadata",
    "ExperimentNotFoundError",
    "GovernanceError",
    "HistoryCorruptedError",
    "MetricStore",
    "MetricsNotFoundError",
    "ModelLayout",
    "ModelLockTimeout",
    "ModelRegistryFile",
    "ProductionEntry",
    "PromotionRecord",
    "model_lock",
    "sanitize_model_name",
]
