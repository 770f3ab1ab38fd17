"""Candidate vs baseline comparison over persisted experiment metrics.

Polarity is decided by metric name: names containing an error/loss token are
lower-is-better, everything else is higher-is-better. The aggregate score is
the plain mean of raw values across the union of metric names, so it mixes
polarities; it is a tiebreak-free summary, not a normalized composite.
"""

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from shared.storage import MetricsNotFoundError, MetricStore, sanitize_model_name
from shared.utils import get_logger, get_metrics

logger = get_logger(__name__)
app_metrics = get_metrics()

LOWER_IS_BETTER_TOKENS = ("error", "loss", "mae", "mse", "rmse")
NO_BASELINE = "(none)"


def is_lower_better_metric(metric_name: str) -> bool:
    """Whether a smaller value of ``metric_name`` is better."""
    lower_name = metric_name.lower()
    return any(token in lower_name for token in LOWER_IS_BETTER_TOKENS)


@dataclass(frozen=True)
class MetricComparison:
    """Comparison of a single metric."""

    metric_name: str
    candidate_value: float
    baseline_value: float
    difference: float
    is_better: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric_name": self.metric_name,
            "candidate_value": self.candidate_value,
            "baseline_value": self.baseline_value,
            "difference": self.difference,
            "is_better": self.is_better,
        }


@dataclass
class ComparisonResult:
    """Result of comparing a candidate experiment against a baseline."""

    candidate_experiment_id: str
    baseline_experiment_id: str
    candidate_is_better: bool
    candidate_score: float
    baseline_score: float
    improvement: float
    metric_details: dict[str, MetricComparison]
    recommendation: str

    @property
    def better_count(self) -> int:
        return sum(1 for m in self.metric_details.values() if m.is_better)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "candidate_experiment_id": self.candidate_experiment_id,
            "baseline_experiment_id": self.baseline_experiment_id,
            "candidate_is_better": self.candidate_is_better,
            "candidate_score": self.candidate_score,
            "baseline_score": self.baseline_score,
            "improvement": self.improvement,
            "metric_details": {k: v.to_dict() for k, v in self.metric_details.items()},
            "recommendation": self.recommendation,
        }


@dataclass(frozen=True)
class ComparisonCriteria:
    """Criteria for picking the best experiment of a model.

    ``minimum_improvement`` is a fraction (0.05 = 5%) over production.
    """

    primary_metric: str
    minimum_improvement: float = 0.0
    secondary_metrics: Sequence[str] = field(default_factory=tuple)


def compare_metrics(
    candidate_metrics: Mapping[str, float],
    baseline_metrics: Mapping[str, float],
    candidate_experiment_id: str = "candidate",
    baseline_experiment_id: str = "baseline",
) -> ComparisonResult:
    """Compare two metric mappings metric by metric.

    A metric present on one side only is compared against ``0.0`` on the
    other. The candidate wins when strictly more than half of the metrics
    (integer half) favor it, so an exact split keeps the baseline.

    Args:
        candidate_metrics: Metrics of the candidate experiment.
        baseline_metrics: Metrics of the baseline experiment.
        candidate_experiment_id: Label used in the result and recommendation.
        baseline_experiment_id: Label used in the result and recommendation.

    Returns:
        ComparisonResult with per-metric details and an overall verdict.
    """
    metric_names = list(candidate_metrics)
    metric_names.extend(name for name in baseline_metrics if name not in candidate_metrics)

    details: dict[str, MetricComparison] = {}
    candidate_total = 0.0
    baseline_total = 0.0
    better_count = 0

    for name in metric_names:
        candidate_value = float(candidate_metrics.get(name, 0.0))
        baseline_value = float(baseline_metrics.get(name, 0.0))

        if is_lower_better_metric(name):
            is_better = candidate_value < baseline_value
        else:
            is_better = candidate_value > baseline_value

        details[name] = MetricComparison(
            metric_name=name,
            candidate_value=candidate_value,
            baseline_value=baseline_value,
            difference=candidate_value - baseline_value,
            is_better=is_better,
        )

        candidate_total += candidate_value
        baseline_total += baseline_value
        if is_better:
            better_count += 1

    total_count = len(metric_names)
    candidate_score = candidate_total / total_count if total_count else 0.0
    baseline_score = baseline_total / total_count if total_count else 0.0

    if baseline_score != 0:
        improvement = (candidate_score - baseline_score) / abs(baseline_score) * 100
    else:
        improvement = 100.0 if candidate_score > 0 else 0.0

    candidate_is_better = better_count > total_count // 2

    if candidate_is_better:
        recommendation = (
            f"Promote {candidate_experiment_id} - better on {better_count}/{total_count} "
            f"metrics ({improvement:.1f}% improvement)"
        )
    else:
        recommendation = (
            f"Keep {baseline_experiment_id} - baseline is better on "
            f"{total_count - better_count}/{total_count} metrics"
        )

    return ComparisonResult(
        candidate_experiment_id=candidate_experiment_id,
        baseline_experiment_id=baseline_experiment_id,
        candidate_is_better=candidate_is_better,
        candidate_score=candidate_score,
        baseline_score=baseline_score,
        improvement=improvement,
        metric_details=details,
        recommendation=recommendation,
    )


def _relative_gain(value: float, reference: float) -> float:
    """(value - reference) / |reference| with IEEE semantics for a zero reference."""
    if reference != 0:
        return (value - reference) / abs(reference)
    if value > reference:
        return math.inf
    if value < reference:
        return -math.inf
    return math.nan


class MetricComparator:
    """Compares experiments of a model using metrics read from the store."""

    def __init__(self, store: MetricStore | None = None) -> None:
        """Initialize comparator.

        Args:
            store: Metric store; defaults to one rooted at the configured project.
        """
        self.store = store or MetricStore()

    def compare(
        self,
        model_name: str,
        candidate_experiment_id: str,
        baseline_experiment_id: str,
    ) -> ComparisonResult:
        """Compare two experiments of the same model.

        Raises:
            MetricsNotFoundError: If either experiment has no metrics.json.
        """
        candidate_metrics = self.store.load_metrics(model_name, candidate_experiment_id)
        baseline_metrics = self.store.load_metrics(model_name, baseline_experiment_id)

        result = compare_metrics(
            candidate_metrics,
            baseline_metrics,
            candidate_experiment_id,
            baseline_experiment_id,
        )

        logger.info(
            "comparison_complete",
            model_name=model_name,
            candidate=candidate_experiment_id,
            baseline=baseline_experiment_id,
            candidate_is_better=result.candidate_is_better,
            better_count=result.better_count,
            metric_count=len(result.metric_details),
            improvement=result.improvement,
        )
        app_metrics.record_comparison(sanitize_model_name(model_name), result.candidate_is_better)
        return result

    def compare_with_production(
        self, model_name: str, candidate_experiment_id: str
    ) -> ComparisonResult:
        """Compare a candidate against the current production experiment.

        With no production model the candidate wins by default and the
        improvement is reported as infinite.
        """
        production_id = self.store.get_production_experiment_id(model_name)
        if production_id:
            return self.compare(model_name, candidate_experiment_id, production_id)

        candidate_metrics = self.store.load_metrics(model_name, candidate_experiment_id)
        candidate_score = next(iter(candidate_metrics.values()), 0.0)

        logger.info(
            "no_production_model",
            model_name=model_name,
            candidate=candidate_experiment_id,
        )
        app_metrics.record_comparison(sanitize_model_name(model_name), True)

        return ComparisonResult(
            candidate_experiment_id=candidate_experiment_id,
            baseline_experiment_id=NO_BASELINE,
            candidate_is_better=True,
            candidate_score=candidate_score,
            baseline_score=0.0,
            improvement=math.inf,
            metric_details={
                name: MetricComparison(name, value, 0.0, value, True)
                for name, value in candidate_metrics.items()
            },
            recommendation=f"Promote {candidate_experiment_id} - no existing production model",
        )

    def find_best_experiment(self, model_name: str, criteria: ComparisonCriteria) -> str | None:
        """Find the experiment with the highest primary metric.

        Higher always wins here, whatever the metric's polarity. Experiments
        without the primary metric or without readable metrics are skipped.
        When ``criteria.minimum_improvement`` is positive and production has
        the primary metric, the winner must beat it by that fraction.

        Returns:
            Experiment id, or None if nothing qualifies.
        """
        best_id: str | None = None
        best_score = -math.inf

        for experiment_id in self.store.list_experiments(model_name):
            try:
                metrics = self.store.load_metrics(model_name, experiment_id)
            except OSError as e:
                logger.debug(
                    "experiment_skipped",
                    model_name=model_name,
                    experiment_id=experiment_id,
                    error=str(e),
                )
                continue

            score = metrics.get(criteria.primary_metric)
            if score is not None and score > best_score:
                best_score = score
                best_id = experiment_id

        if best_id is None or criteria.minimum_improvement <= 0:
            return best_id

        production_id = self.store.get_production_experiment_id(model_name)
        if not production_id:
            return best_id

        try:
            production_metrics = self.store.load_metrics(model_name, production_id)
        except MetricsNotFoundError:
            logger.warning(
                "production_metrics_missing",
                model_name=model_name,
                production=production_id,
            )
            return best_id

        production_score = production_metrics.get(criteria.primary_metric)
        if production_score is None:
            return best_id

        improvement = _relative_gain(best_score, production_score)
        if improvement < criteria.minimum_improvement:
            logger.info(
                "best_candidate_below_threshold",
                model_name=model_name,
                best=best_id,
                production=production_id,
                improvement=improvement,
                minimum_improvement=criteria.minimum_improvement,
            )
            return None

        return best_id
