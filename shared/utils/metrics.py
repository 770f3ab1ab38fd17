"""Prometheus-compatible governance metrics.

Thread-safe in-process collection of:
- HTTP request counts, latency and errors
- Comparisons and promotion decisions
- Promotions and rollbacks by outcome
- Retraining trigger evaluations
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Any


@dataclass
class _LabeledMetric:
    """Shared label handling for all metric types."""

    name: str
    description: str
    labels: list[str] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    metric_type = "untyped"

    def _make_key(self, label_values: dict[str, str]) -> tuple:
        return tuple(str(label_values.get(label, "")) for label in self.labels)

    def _render_labels(self, key: tuple, extra: str = "") -> str:
        parts = [f'{label}="{key[i]}"' for i, label in enumerate(self.labels)]
        if extra:
            parts.append(extra)
        return "{" + ",".join(parts) + "}" if parts else ""

    def _header(self) -> list[str]:
        return [
            f"# HELP {self.name} {self.description}",
            f"# TYPE {self.name} {self.metric_type}",
        ]


@dataclass
class Counter(_LabeledMetric):
    """Monotonically increasing counter."""

    _values: dict[tuple, float] = field(default_factory=dict, repr=False)

    metric_type = "counter"

    def inc(self, value: float = 1.0, **label_values: str) -> None:
        """Increment counter by value."""
        key = self._make_key(label_values)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + value

    def get(self, **label_values: str) -> float:
        """Get current counter value."""
        key = self._make_key(label_values)
        with self._lock:
            return self._values.get(key, 0.0)

    def to_prometheus(self) -> str:
        """Export in Prometheus format."""
        lines = self._header()
        with self._lock:
            for key, value in self._values.items():
                lines.append(f"{self.name}{self._render_labels(key)} {value}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """Export as dictionary."""
        with self._lock:
            if not self.labels:
                return {"value": sum(self._values.values())}
            return {
                "values": [
                    {"labels": dict(zip(self.labels, key)), "value": value}
                    for key, value in self._values.items()
                ]
            }


@dataclass
class Gauge(Counter):
    """Value that can be set, raised and lowered."""

    metric_type = "gauge"

    def set(self, value: float, **label_values: str) -> None:
        """Set gauge value."""
        key = self._make_key(label_values)
        with self._lock:
            self._values[key] = value

    def dec(self, value: float = 1.0, **label_values: str) -> None:
        """Decrement gauge by value."""
        self.inc(-value, **label_values)

    def clear(self) -> None:
        """Drop all label series."""
        with self._lock:
            self._values.clear()


@dataclass
class Histogram(_LabeledMetric):
    """Bucketed observations with running sum and count."""

    buckets: tuple[float, ...] = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
    _counts: dict[tuple, list[int]] = field(default_factory=dict, repr=False)
    _sums: dict[tuple, float] = field(default_factory=dict, repr=False)
    _totals: dict[tuple, int] = field(default_factory=dict, repr=False)

    metric_type = "histogram"

    def observe(self, value: float, **label_values: str) -> None:
        """Record an observation."""
        key = self._make_key(label_values)
        with self._lock:
            counts = self._counts.setdefault(key, [0] * len(self.buckets))
            for i, bound in enumerate(self.buckets):
                if value <= bound:
                    counts[i] += 1
            self._sums[key] = self._sums.get(key, 0.0) + value
            self._totals[key] = self._totals.get(key, 0) + 1

    def to_prometheus(self) -> str:
        """Export in Prometheus format (buckets are cumulative)."""
        lines = self._header()
        with self._lock:
            for key, counts in self._counts.items():
                for bound, count in zip(self.buckets, counts):
                    le = 'le="%s"' % bound
                    lines.append(f"{self.name}_bucket{self._render_labels(key, le)} {count}")
                inf = 'le="+Inf"'
                lines.append(f"{self.name}_bucket{self._render_labels(key, inf)} {self._totals[key]}")
                lines.append(f"{self.name}_sum{self._render_labels(key)} {self._sums[key]}")
                lines.append(f"{self.name}_count{self._render_labels(key)} {self._totals[key]}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """Export as dictionary."""
        with self._lock:
            entries = []
            for key, total in self._totals.items():
                entries.append(
                    {
                        "labels": dict(zip(self.labels, key)),
                        "count": total,
                        "sum": self._sums[key],
                        "avg": self._sums[key] / total if total else 0.0,
                    }
                )
        if self.labels:
            return {"values": entries}
        if entries:
            entries[0].pop("labels")
            return entries[0]
        return {"count": 0, "sum": 0.0, "avg": 0.0}


class MetricsRegistry:
    """Central registry for all governance metrics.

    Singleton pattern ensures consistent metrics across the process.
    """

    _instance: "MetricsRegistry | None" = None
    _lock = threading.Lock()

    def __new__(cls) -> "MetricsRegistry":
        """Ensure single instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        """Initialize metrics registry."""
        if self._initialized:
            return

        self._start_time = time.time()

        # HTTP surface
        self.requests_total = Counter(
            name="modelgate_requests_total",
            description="Total number of API requests",
            labels=["method", "endpoint", "status"],
        )
        self.request_latency = Histogram(
            name="modelgate_request_latency_seconds",
            description="API request latency in seconds",
            labels=["method", "endpoint"],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
        )
        self.errors_total = Counter(
            name="modelgate_errors_total",
            description="Total number of API errors",
            labels=["endpoint", "error_type"],
        )

        # Governance
        self.comparisons_total = Counter(
            name="modelgate_comparisons_total",
            description="Total number of metric comparisons",
            labels=["model_name", "candidate_is_better"],
        )
        self.promotion_decisions_total = Counter(
            name="modelgate_promotion_decisions_total",
            description="Total number of promotion policy evaluations",
            labels=["model_name", "approved"],
        )
        self.promotions_total = Counter(
            name="modelgate_promotions_total",
            description="Total number of promotion attempts",
            labels=["model_name", "outcome"],
        )
        self.rollbacks_total = Counter(
            name="modelgate_rollbacks_total",
            description="Total number of rollback attempts",
            labels=["model_name", "outcome"],
        )
        self.trigger_evaluations_total = Counter(
            name="modelgate_trigger_evaluations_total",
            description="Total number of retraining trigger evaluations",
            labels=["model_name", "should_retrain"],
        )
        self.production_info = Gauge(
            name="modelgate_production_info",
            description="Current production experiment per model (value is always 1)",
            labels=["model_name", "experiment_id"],
        )

        self.uptime = Gauge(
            name="modelgate_uptime_seconds",
            description="Time since process start in seconds",
        )

        self._initialized = True

    def record_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        latency_seconds: float,
    ) -> None:
        """Record an HTTP request."""
        self.requests_total.inc(method=method, endpoint=endpoint, status=str(status))
        self.request_latency.observe(latency_seconds, method=method, endpoint=endpoint)

    def record_error(self, endpoint: str, error_type: str) -> None:
        """Record an API error."""
        self.errors_total.inc(endpoint=endpoint, error_type=error_type)

    def record_comparison(self, model_name: str, candidate_is_better: bool) -> None:
        """Record a metric comparison."""
        self.comparisons_total.inc(
            model_name=model_name, candidate_is_better=str(candidate_is_better).lower()
        )

    def record_promotion_decision(self, model_name: str, approved: bool) -> None:
        """Record a promotion policy evaluation."""
        self.promotion_decisions_total.inc(model_name=model_name, approved=str(approved).lower())

    def record_promotion(self, model_name: str, outcome: str) -> None:
        """Record a promotion attempt.

        Args:
            model_name: Sanitized model name.
            outcome: ``success`` or the failure kind.
        """
        self.promotions_total.inc(model_name=model_name, outcome=outcome)

    def record_rollback(self, model_name: str, outcome: str) -> None:
        """Record a rollback attempt."""
        self.rollbacks_total.inc(model_name=model_name, outcome=outcome)

    def record_trigger_evaluation(self, model_name: str, should_retrain: bool) -> None:
        """Record a retraining trigger evaluation."""
        self.trigger_evaluations_total.inc(
            model_name=model_name, should_retrain=str(should_retrain).lower()
        )

    def set_production(self, model_name: str, experiment_id: str) -> None:
        """Point the production gauge for a model at a new experiment."""
        with self.production_info._lock:
            stale = [key for key in self.production_info._values if key[0] == model_name]
            for key in stale:
                del self.production_info._values[key]
        self.production_info.set(1.0, model_name=model_name, experiment_id=experiment_id)

    def _all(self) -> list[Counter | Histogram]:
        return [
            self.requests_total,
            self.request_latency,
            self.errors_total,
            self.comparisons_total,
            self.promotion_decisions_total,
            self.promotions_total,
            self.rollbacks_total,
            self.trigger_evaluations_total,
            self.production_info,
            self.uptime,
        ]

    def to_prometheus(self) -> str:
        """Export all metrics in Prometheus exposition format."""
        self.uptime.set(time.time() - self._start_time)
        return "\n\n".join(m.to_prometheus() for m in self._all()) + "\n"

    def to_dict(self) -> dict[str, Any]:
        """Export all metrics as a dictionary."""
        self.uptime.set(time.time() - self._start_time)

        return {
            "requests": {
                "total": self.requests_total.to_dict(),
                "latency": self.request_latency.to_dict(),
            },
            "errors": self.errors_total.to_dict(),
            "governance": {
                "comparisons": self.comparisons_total.to_dict(),
                "decisions": self.promotion_decisions_total.to_dict(),
                "promotions": self.promotions_total.to_dict(),
                "rollbacks": self.rollbacks_total.to_dict(),
                "production": self.production_info.to_dict(),
            },
            "retraining": {
                "evaluations": self.trigger_evaluations_total.to_dict(),
            },
            "system": {
                "uptime_seconds": self.uptime.get(),
            },
        }

    def reset(self) -> None:
        """Reset all metrics. Mainly for testing."""
        self._initialized = False
        self.__init__()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry instance."""
    return MetricsRegistry()
