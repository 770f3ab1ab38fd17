"""Utility functions."""

from shared.utils.logging import bind_request_id, get_logger, governance_context, setup_logging
from shared.utils.metrics import MetricsRegistry, get_metrics

__all__ = [
    "bind_request_id",
    "get_logger",
    "governance_context",
    "setup_logging",
    "MetricsRegistry",
    "get_metrics",
]
