"""Time-based retraining trigger.

Looks at the completed experiments of a model and reports whether it is due
for retraining. Only ``TIME_BASED`` conditions are evaluated here; the other
condition types need feedback or drift data sources and are reported as
unsupported.
"""

import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from shared.config import get_settings
from shared.storage import MetricStore, sanitize_model_name
from shared.storage.schemas import as_utc, utc_now
from shared.utils import get_logger, get_metrics, governance_context

logger = get_logger(__name__)
app_metrics = get_metrics()

SECONDS_PER_DAY = 86400.0


class ConditionType(str, Enum):
    """Kinds of retraining conditions."""

    TIME_BASED = "time_based"
    ACCURACY_DROP = "accuracy_drop"
    DATA_DRIFT = "data_drift"
    FEEDBACK_VOLUME = "feedback_volume"
    PERFORMANCE_DEGRADATION = "performance_degradation"


@dataclass(frozen=True)
class RetrainingCondition:
    """A named retraining rule. For ``TIME_BASED`` the threshold is in days."""

    type: ConditionType
    name: str
    threshold: float
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "name": self.name,
            "threshold": self.threshold,
            "description": self.description,
        }


@dataclass
class ConditionResult:
    condition: RetrainingCondition
    is_met: bool
    current_value: float
    details: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "condition": self.condition.to_dict(),
            "is_met": self.is_met,
            "current_value": self.current_value,
            "details": self.details,
        }


@dataclass
class TriggerEvaluation:
    """Result of evaluating all conditions for one model."""

    model_name: str
    should_retrain: bool
    condition_results: list[ConditionResult] = field(default_factory=list)
    recommended_action: str | None = None
    evaluated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "model_name": self.model_name,
            "should_retrain": self.should_retrain,
            "condition_results": [r.to_dict() for r in self.condition_results],
            "recommended_action": self.recommended_action,
            "evaluated_at": self.evaluated_at.isoformat(),
        }


class TimeBasedTrigger:
    """Recommends retraining once a model's last training is old enough."""

    def __init__(
        self,
        store: MetricStore | None = None,
        retraining_interval_days: int | None = None,
    ) -> None:
        """Initialize trigger.

        Args:
            store: Metric store; defaults to the configured project.
            retraining_interval_days: Threshold of the default condition.
        """
        self.store = store or MetricStore()
        self.retraining_interval_days = (
            retraining_interval_days
            if retraining_interval_days is not None
            else get_settings().default_retraining_interval_days
        )

    def get_default_conditions(self, model_name: str) -> list[RetrainingCondition]:
        days = self.retraining_interval_days
        return [
            RetrainingCondition(
                type=ConditionType.TIME_BASED,
                name="Scheduled Retraining",
                threshold=days,
                description=f"Retrain if more than {days} days since last training",
            )
        ]

    def get_last_training_time(self, model_name: str) -> datetime | None:
        """Latest timestamp among completed experiments, in UTC."""
        latest: datetime | None = None
        for experiment_id in self.store.list_experiments(model_name):
            metadata = self.store.load_experiment_metadata(model_name, experiment_id)
            if metadata is None or not metadata.is_completed or metadata.timestamp is None:
                continue
            timestamp = as_utc(metadata.timestamp)
            if latest is None or timestamp > latest:
                latest = timestamp
        return latest

    def evaluate(
        self,
        model_name: str,
        conditions: Iterable[RetrainingCondition] | None = None,
        now: datetime | None = None,
    ) -> TriggerEvaluation:
        """Evaluate conditions for a model.

        Args:
            model_name: Model to check.
            conditions: Conditions to evaluate; the defaults when omitted.
            now: Evaluation time, UTC now when omitted.

        Returns:
            TriggerEvaluation; ``should_retrain`` if any condition is met.
        """
        evaluated_at = as_utc(now) if now is not None else utc_now()
        if conditions is None:
            conditions = self.get_default_conditions(model_name)

        name = sanitize_model_name(model_name)
        with governance_context(name, "trigger"):
            last_training = self.get_last_training_time(model_name)
            results = [
                self._evaluate_condition(condition, last_training, evaluated_at)
                for condition in conditions
            ]

            met = [r.condition.name for r in results if r.is_met]
            should_retrain = bool(met)
            recommended_action = None
            if should_retrain:
                recommended_action = (
                    f"Retrain model '{model_name}' - conditions met: {', '.join(met)}"
                )

            logger.info(
                "retraining_trigger_evaluated",
                should_retrain=should_retrain,
                conditions_met=met,
                last_training=last_training.isoformat() if last_training else None,
            )
        app_metrics.record_trigger_evaluation(name, should_retrain)

        return TriggerEvaluation(
            model_name=model_name,
            should_retrain=should_retrain,
            condition_results=results,
            recommended_action=recommended_action,
            evaluated_at=evaluated_at,
        )

    def _evaluate_condition(
        self,
        condition: RetrainingCondition,
        last_training: datetime | None,
        evaluated_at: datetime,
    ) -> ConditionResult:
        if condition.type is not ConditionType.TIME_BASED:
            return ConditionResult(
                condition=condition,
                is_met=False,
                current_value=0.0,
                details=(
                    f"Condition type '{condition.type.value}' is not supported by "
                    "TimeBasedTrigger; it needs feedback or drift data sources"
                ),
            )

        if last_training is None:
            return ConditionResult(
                condition=condition,
                is_met=True,
                current_value=math.inf,
                details="No training history found - initial training recommended",
            )

        days_since = (evaluated_at - last_training).total_seconds() / SECONDS_PER_DAY
        is_met = days_since >= condition.threshold
        details = (
            f"Last training was {days_since:.1f} days ago "
            f"(threshold: {condition.threshold:g} days)"
        )
        if not is_met:
            details += " - no retraining needed"

        return ConditionResult(
            condition=condition,
            is_met=is_met,
            current_value=days_since,
            details=details,
        )
