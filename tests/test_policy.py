"""Tests for promotion policy evaluation and the quality gate."""

import pytest

from pipelines.promotion import (
    PromotionPolicy,
    PromotionPolicyEvaluator,
    QualityGate,
    get_minimum_metric_threshold,
    is_classification_degenerate_model,
    is_error_metric,
)
from shared.storage import MetricStore
from shared.utils import get_metrics

MODEL = "churn"


class TestPolicyEvaluator:
    def test_churn_scenario_rejected(
        self, store: MetricStore, make_experiment, write_registry
    ) -> None:
        """Better on 2/2 metrics but short of a 10% improvement floor."""
        make_experiment("exp-001", {"accuracy": 0.80, "f1_score": 0.70})
        make_experiment("exp-002", {"accuracy": 0.82, "f1_score": 0.72})
        write_registry("exp-001")

        decision = PromotionPolicyEvaluator(store).evaluate(
            MODEL, "exp-002", PromotionPolicy(minimum_improvement=10.0)
        )

        assert not decision.approved
        assert decision.reason.startswith("Insufficient improvement: 2.67%")
        assert decision.reason.endswith("(minimum: 10.00%)")
        assert decision.checks_failed == ["Improvement 2.67% below minimum 10.00%"]

    def test_first_promotion_approved(self, store: MetricStore, make_experiment) -> None:
        make_experiment("exp-001", {"accuracy": 0.8})
        decision = PromotionPolicyEvaluator(store).evaluate(
            MODEL, "exp-001", PromotionPolicy(minimum_improvement=5.0)
        )
        assert decision.approved
        assert decision.checks_passed == [
            "Candidate has metrics",
            "No existing production model - first promotion",
        ]
        assert decision.reason == "All 2 checks passed for exp-001"

    def test_better_than_production(
        self, store: MetricStore, make_experiment, write_registry
    ) -> None:
        make_experiment("exp-001", {"accuracy": 0.80})
        make_experiment("exp-002", {"accuracy": 0.88})
        write_registry("exp-001")
        decision = PromotionPolicyEvaluator(store).evaluate(
            MODEL, "exp-002", PromotionPolicy(minimum_improvement=5.0)
        )
        assert decision.approved
        assert decision.checks_passed == ["Candidate has metrics", "Better than production by 10.00%"]

    def test_worse_than_production(
        self, store: MetricStore, make_experiment, write_registry
    ) -> None:
        make_experiment("exp-001", {"accuracy": 0.80})
        make_experiment("exp-002", {"accuracy": 0.70})
        write_registry("exp-001")
        decision = PromotionPolicyEvaluator(store).evaluate(MODEL, "exp-002", PromotionPolicy())
        assert not decision.approved
        assert decision.reason == "Keep exp-001 - baseline is better on 1/1 metrics"
        assert decision.checks_failed == ["Candidate is not better than production (exp-001)"]

    def test_failed_comparison_stops_evaluation(
        self, store: MetricStore, make_experiment, write_registry
    ) -> None:
        make_experiment("exp-001", {"accuracy": 0.80})
        make_experiment("exp-002", {"accuracy": 0.70})
        write_registry("exp-001")
        decision = PromotionPolicyEvaluator(store).evaluate(
            MODEL, "exp-002", PromotionPolicy(required_metrics=("auc",))
        )
        assert not decision.approved
        assert decision.checks_failed == ["Candidate is not better than production (exp-001)"]
        assert decision.checks_passed == ["Candidate has metrics"]

    def test_insufficient_improvement_stops_evaluation(
        self, store: MetricStore, make_experiment, write_registry
    ) -> None:
        make_experiment("exp-001", {"accuracy": 0.80})
        make_experiment("exp-002", {"accuracy": 0.81})
        write_registry("exp-001")
        decision = PromotionPolicyEvaluator(store).evaluate(
            MODEL,
            "exp-002",
            PromotionPolicy(minimum_improvement=5.0, required_metrics=("auc",)),
        )
        assert not decision.approved
        assert decision.reason.startswith("Insufficient improvement")
        assert len(decision.checks_failed) == 1

    def test_missing_candidate_metrics(self, store: MetricStore, make_experiment) -> None:
        make_experiment("exp-001", metrics=None)
        decision = PromotionPolicyEvaluator(store).evaluate(
            MODEL, "exp-001", PromotionPolicy(required_metrics=("accuracy",))
        )
        assert not decision.approved
        assert decision.reason == "Candidate has no metrics"
        assert decision.checks_failed == ["Candidate exp-001 has no metrics file"]
        assert decision.checks_passed == []

    def test_required_metrics_all_checked(self, store: MetricStore, make_experiment) -> None:
        make_experiment("exp-001", {"accuracy": 0.8})
        decision = PromotionPolicyEvaluator(store).evaluate(
            MODEL,
            "exp-001",
            PromotionPolicy(
                require_comparison_with_production=False,
                required_metrics=("f1_score", "accuracy", "auc"),
            ),
        )
        assert not decision.approved
        assert decision.reason == "Missing required metrics"
        assert decision.checks_failed == [
            "Required metric 'f1_score' missing",
            "Required metric 'auc' missing",
        ]
        assert decision.checks_passed == [
            "Candidate has metrics",
            "Required metric 'accuracy' present",
        ]

    def test_skip_production_comparison(
        self, store: MetricStore, make_experiment, write_registry
    ) -> None:
        make_experiment("exp-001", {"accuracy": 0.9})
        make_experiment("exp-002", {"accuracy": 0.1})
        write_registry("exp-001")
        decision = PromotionPolicyEvaluator(store).evaluate(
            MODEL, "exp-002", PromotionPolicy(require_comparison_with_production=False)
        )
        assert decision.approved
        assert decision.reason == "All 1 checks passed for exp-002"

    def test_records_decision_metric(self, store: MetricStore, make_experiment) -> None:
        make_experiment("exp-001", {"accuracy": 0.8})
        PromotionPolicyEvaluator(store).evaluate(MODEL, "exp-001", PromotionPolicy())
        assert get_metrics().promotion_decisions_total.get(model_name=MODEL, approved="true") == 1.0


class TestThresholds:
    def test_accuracy_with_five_classes(self) -> None:
        assert get_minimum_metric_threshold("accuracy", 5) == pytest.approx(0.2)

    @pytest.mark.parametrize(
        ("metric", "class_count", "expected"),
        [
            ("r_squared", None, 0.0),
            ("R2", None, 0.0),
            ("auc", None, 0.5),
            ("area_under_roc_curve", None, 0.5),
            ("macro_accuracy", 4, 0.25),
            ("micro_accuracy", None, 0.0),
            ("accuracy", 1, 0.0),
            ("f1_score", None, 0.0),
            ("f1", None, 0.0),
        ],
    )
    def test_known_metrics(self, metric: str, class_count: int | None, expected: float) -> None:
        assert get_minimum_metric_threshold(metric, class_count) == pytest.approx(expected)

    @pytest.mark.parametrize("metric", ["rmse", "mae", "log_loss", "custom_score"])
    def test_no_threshold(self, metric: str) -> None:
        assert get_minimum_metric_threshold(metric) is None

    def test_error_metric(self) -> None:
        assert is_error_metric("mean_absolute_error")
        assert not is_error_metric("accuracy")


class TestDegenerateModel:
    def test_majority_class_predictor(self) -> None:
        assert is_classification_degenerate_model({"accuracy": 0.9, "f1_score": 0.0})

    def test_multiclass_collapse(self) -> None:
        assert is_classification_degenerate_model({"macro_accuracy": 0.35, "macro_f1": 0.0005})

    def test_healthy_model(self) -> None:
        assert not is_classification_degenerate_model({"accuracy": 0.9, "f1_score": 0.6})

    def test_low_accuracy_is_not_degenerate(self) -> None:
        assert not is_classification_degenerate_model({"accuracy": 0.5, "f1_score": 0.0})

    def test_missing_f1(self) -> None:
        assert not is_classification_degenerate_model({"accuracy": 0.9})


class TestQualityGate:
    def test_first_model_approved(self, store: MetricStore, make_experiment) -> None:
        make_experiment("exp-001", {"accuracy": 0.8, "f1_score": 0.7})
        decision = QualityGate(store).evaluate(MODEL, "exp-001", "accuracy")
        assert decision.approved

    def test_missing_primary_metric(self, store: MetricStore, make_experiment) -> None:
        make_experiment("exp-001", {"f1_score": 0.7})
        decision = QualityGate(store).evaluate(MODEL, "exp-001", "accuracy")
        assert not decision.approved

    def test_below_random_guess(self, store: MetricStore, make_experiment) -> None:
        make_experiment("exp-001", {"accuracy": 0.15, "f1_score": 0.1})
        decision = QualityGate(store).evaluate(MODEL, "exp-001", "accuracy", class_count=5)
        assert not decision.approved
        assert "below minimum" in decision.reason

    def test_class_count_from_metadata(self, store: MetricStore, make_experiment) -> None:
        make_experiment(
            "exp-001",
            {"accuracy": 0.3, "f1_score": 0.2},
            label_column="Segment",
            class_count=4,
        )
        decision = QualityGate(store).evaluate(MODEL, "exp-001", "accuracy")
        assert decision.approved
        assert "0.2500" in decision.checks_passed[0]

    def test_degenerate_blocked(self, store: MetricStore, make_experiment) -> None:
        make_experiment("exp-001", {"accuracy": 0.95, "f1_score": 0.0})
        decision = QualityGate(store).evaluate(MODEL, "exp-001", "accuracy")
        assert not decision.approved
        assert "Degenerate" in decision.reason

    def test_error_metric_beats_production(
        self, store: MetricStore, make_experiment, write_registry
    ) -> None:
        make_experiment("exp-001", {"rmse": 3.0})
        make_experiment("exp-002", {"rmse": 2.5})
        write_registry("exp-001")
        assert QualityGate(store).evaluate(MODEL, "exp-002", "rmse").approved
        assert not QualityGate(store).evaluate(MODEL, "exp-001", "rmse").approved

    def test_production_without_metric(
        self, store: MetricStore, make_experiment, write_registry
    ) -> None:
        make_experiment("exp-001", {"f1_score": 0.8})
        make_experiment("exp-002", {"auc": 0.7})
        write_registry("exp-001")
        assert QualityGate(store).evaluate(MODEL, "exp-002", "auc").approved

    def test_not_better_than_production(
        self, store: MetricStore, make_experiment, write_registry
    ) -> None:
        make_experiment("exp-001", {"auc": 0.8})
        make_experiment("exp-002", {"auc": 0.8})
        write_registry("exp-001")
        decision = QualityGate(store).evaluate(MODEL, "exp-002", "auc")
        assert not decision.approved
        assert decision.reason.startswith("Not better than production")
