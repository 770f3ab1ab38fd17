"""Exceptions raised by the governance read paths."""


class GovernanceError(Exception):
    """Base class for model governance errors."""


class MetricsNotFoundError(GovernanceError, FileNotFoundError):
    """Raised when an experiment has no metrics.json."""

    def __init__(self, model_name: str, experiment_id: str, path: str) -> None:
        super().__init__(f"Metrics not found for experiment '{experiment_id}' ({path})")
        self.model_name = model_name
        self.experiment_id = experiment_id
        self.path = path


class ExperimentNotFoundError(GovernanceError, FileNotFoundError):
    """Raised when an experiment directory does not exist."""

    def __init__(self, model_name: str, experiment_id: str) -> None:
        super().__init__(f"Experiment not found: {model_name}/{experiment_id}")
        self.model_name = model_name
        self.experiment_id = experiment_id


class HistoryCorruptedError(GovernanceError, ValueError):
    """Raised when promotion-history.json exists but cannot be parsed."""
