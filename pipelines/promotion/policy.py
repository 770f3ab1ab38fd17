"""Promotion policy evaluation and the automatic quality gate."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from pipelines.promotion.comparator import MetricComparator, is_lower_better_metric
from shared.storage import MetricsNotFoundError, MetricStore, sanitize_model_name
from shared.utils import get_logger, get_metrics

logger = get_logger(__name__)
app_metrics = get_metrics()

DEGENERATE_F1_CEILING = 0.001


@dataclass(frozen=True)
class PromotionPolicy:
    """Rules a candidate must satisfy before promotion.

    ``minimum_improvement`` is in percent, matching
    ``ComparisonResult.improvement``.
    """

    minimum_improvement: float = 0.0
    require_comparison_with_production: bool = True
    # Carried for compatibility with existing policy files; not evaluated.
    require_test_data_validation: bool = True
    required_metrics: Sequence[str] = field(default_factory=tuple)


@dataclass
class PromotionDecision:
    """Outcome of a policy or quality gate evaluation."""

    approved: bool
    reason: str
    checks_passed: list[str] = field(default_factory=list)
    checks_failed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "approved": self.approved,
            "reason": self.reason,
            "checks_passed": list(self.checks_passed),
            "checks_failed": list(self.checks_failed),
        }


class PromotionPolicyEvaluator:
    """Evaluates a candidate experiment against a ``PromotionPolicy``."""

    def __init__(
        self,
        store: MetricStore | None = None,
        comparator: MetricComparator | None = None,
    ) -> None:
        self.store = store or MetricStore()
        self.comparator = comparator or MetricComparator(self.store)

    def evaluate(
        self, model_name: str, candidate_experiment_id: str, policy: PromotionPolicy
    ) -> PromotionDecision:
        """Run the policy checks in order.

        A missing candidate metrics file or a failed comparison with
        production stops evaluation. Required-metric checks all run once
        reached, so the caller sees every missing metric.

        Args:
            model_name: Model to evaluate.
            candidate_experiment_id: Experiment proposed for production.
            policy: Rules to apply.

        Returns:
            PromotionDecision; approved when no check failed.
        """
        passed: list[str] = []
        failed: list[str] = []

        try:
            candidate_metrics = self.store.load_metrics(model_name, candidate_experiment_id)
        except MetricsNotFoundError:
            failed.append(f"Candidate {candidate_experiment_id} has no metrics file")
            return self._finish(
                model_name,
                candidate_experiment_id,
                PromotionDecision(False, "Candidate has no metrics", passed, failed),
            )
        passed.append("Candidate has metrics")

        if policy.require_comparison_with_production:
            production_id = self.store.get_production_experiment_id(model_name)
            if not production_id:
                passed.append("No existing production model - first promotion")
            else:
                comparison = self.comparator.compare(
                    model_name, candidate_experiment_id, production_id
                )
                if not comparison.candidate_is_better:
                    failed.append(f"Candidate is not better than production ({production_id})")
                    return self._finish(
                        model_name,
                        candidate_experiment_id,
                        PromotionDecision(False, comparison.recommendation, passed, failed),
                    )
                if comparison.improvement < policy.minimum_improvement:
                    failed.append(
                        f"Improvement {comparison.improvement:.2f}% below minimum "
                        f"{policy.minimum_improvement:.2f}%"
                    )
                    reason = (
                        f"Insufficient improvement: {comparison.improvement:.2f}% "
                        f"(minimum: {policy.minimum_improvement:.2f}%)"
                    )
                    return self._finish(
                        model_name,
                        candidate_experiment_id,
                        PromotionDecision(False, reason, passed, failed),
                    )
                passed.append(f"Better than production by {comparison.improvement:.2f}%")

        for metric in policy.required_metrics:
            if metric in candidate_metrics:
                passed.append(f"Required metric '{metric}' present")
            else:
                failed.append(f"Required metric '{metric}' missing")

        if failed:
            decision = PromotionDecision(False, "Missing required metrics", passed, failed)
        else:
            decision = PromotionDecision(
                True,
                f"All {len(passed)} checks passed for {candidate_experiment_id}",
                passed,
                failed,
            )
        return self._finish(model_name, candidate_experiment_id, decision)

    def _finish(
        self, model_name: str, candidate_experiment_id: str, decision: PromotionDecision
    ) -> PromotionDecision:
        logger.info(
            "promotion_policy_evaluated",
            model_name=model_name,
            candidate=candidate_experiment_id,
            approved=decision.approved,
            reason=decision.reason,
            checks_failed=len(decision.checks_failed),
        )
        app_metrics.record_promotion_decision(sanitize_model_name(model_name), decision.approved)
        return decision


def is_error_metric(metric_name: str) -> bool:
    """Error metrics are lower-is-better and have no universal floor."""
    return is_lower_better_metric(metric_name)


def get_minimum_metric_threshold(metric_name: str, class_count: int | None = None) -> float | None:
    """Minimum viable value for a primary metric, or None if there is none.

    Accuracy floors at random-guess level (``1 / class_count``) when the
    class count is known.
    """
    name = metric_name.lower()
    if name in ("r_squared", "r2"):
        return 0.0
    if name in ("auc", "area_under_roc_curve"):
        return 0.5
    if name in ("accuracy", "micro_accuracy", "macro_accuracy"):
        if class_count is not None and class_count > 1:
            return 1.0 / class_count
        return 0.0
    if name in ("f1", "f1_score"):
        return 0.0
    return None


def is_classification_degenerate_model(metrics: Mapping[str, float]) -> bool:
    """Detect classifiers that only ever predict the majority class.

    High accuracy with an F1 near zero means the positive class is never
    predicted.
    """
    accuracy = metrics.get("accuracy")
    f1_score = metrics.get("f1_score")
    if accuracy is not None and f1_score is not None:
        if accuracy > 0.5 and f1_score < DEGENERATE_F1_CEILING:
            return True

    macro_accuracy = metrics.get("macro_accuracy")
    macro_f1 = metrics.get("macro_f1")
    if macro_accuracy is not None and macro_f1 is not None:
        if macro_accuracy > 0.3 and macro_f1 < DEGENERATE_F1_CEILING:
            return True

    return False


class QualityGate:
    """Single-metric gate used by automatic promotion.

    Independent of ``PromotionPolicyEvaluator``: it looks at one primary
    metric, its absolute floor, degenerate classifiers, and production.
    """

    def __init__(self, store: MetricStore | None = None) -> None:
        self.store = store or MetricStore()

    def evaluate(
        self,
        model_name: str,
        experiment_id: str,
        primary_metric: str,
        class_count: int | None = None,
    ) -> PromotionDecision:
        passed: list[str] = []
        failed: list[str] = []

        try:
            metrics = self.store.load_metrics(model_name, experiment_id)
        except MetricsNotFoundError:
            metrics = {}

        value = metrics.get(primary_metric)
        if value is None:
            failed.append(f"Primary metric '{primary_metric}' missing for {experiment_id}")
            return self._finish(model_name, experiment_id, False, failed[0], passed, failed)

        if class_count is None:
            metadata = self.store.load_experiment_metadata(model_name, experiment_id)
            if metadata is not None:
                class_count = metadata.class_count

        floor = get_minimum_metric_threshold(primary_metric, class_count)
        if floor is not None and not is_error_metric(primary_metric):
            if value < floor:
                failed.append(f"{primary_metric} {value:.4f} below minimum {floor:.4f}")
                return self._finish(model_name, experiment_id, False, failed[-1], passed, failed)
            passed.append(f"{primary_metric} {value:.4f} meets minimum {floor:.4f}")

        if is_classification_degenerate_model(metrics):
            failed.append("Degenerate classifier: high accuracy with near-zero F1")
            return self._finish(model_name, experiment_id, False, failed[-1], passed, failed)
        passed.append("Not a degenerate classifier")

        production_id = self.store.get_production_experiment_id(model_name)
        if not production_id:
            passed.append("No existing production model - first promotion")
            return self._finish(model_name, experiment_id, True, passed[-1], passed, failed)

        try:
            production_metrics = self.store.load_metrics(model_name, production_id)
        except MetricsNotFoundError:
            production_metrics = {}

        production_value = production_metrics.get(primary_metric)
        if production_value is None:
            passed.append(f"Production {production_id} has no '{primary_metric}'")
            return self._finish(model_name, experiment_id, True, passed[-1], passed, failed)

        if is_error_metric(primary_metric):
            better = value < production_value
        else:
            better = value > production_value

        comparison = (
            f"{primary_metric} {value:.4f} vs production {production_id} {production_value:.4f}"
        )
        if not better:
            failed.append(f"Not better than production: {comparison}")
            return self._finish(model_name, experiment_id, False, failed[-1], passed, failed)

        passed.append(f"Better than production: {comparison}")
        return self._finish(model_name, experiment_id, True, passed[-1], passed, failed)

    def _finish(
        self,
        model_name: str,
        experiment_id: str,
        approved: bool,
        reason: str,
        passed: list[str],
        failed: list[str],
    ) -> PromotionDecision:
        logger.info(
            "quality_gate_evaluated",
            model_name=model_name,
            experiment_id=experiment_id,
            approved=approved,
            reason=reason,
        )
        app_metrics.record_promotion_decision(sanitize_model_name(model_name), approved)
        return PromotionDecision(approved, reason, passed, failed)
