"""Filesystem layout of a governed project.

    {project_root}/models/{model}/
        experiments/{exp_id}/metrics.json
        experiments/{exp_id}/experiment.json
        production/
        backups/{exp_id}-{YYYYmmdd-HHMMSS}/
        model-registry.json
        promotion-history.json
"""

import re
from datetime import datetime
from pathlib import Path

EXPERIMENTS_DIR = "experiments"
PRODUCTION_DIR = "production"
BACKUPS_DIR = "backups"
METRICS_FILE = "metrics.json"
EXPERIMENT_FILE = "experiment.json"
REGISTRY_FILE = "model-registry.json"
HISTORY_FILE = "promotion-history.json"
LOCK_FILE = ".governance.lock"

BACKUP_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"

_INVALID_NAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def sanitize_model_name(model_name: str) -> str:
    """Normalize a model name for use as a directory segment.

    Lower-cases, trims, and replaces characters that are invalid in file
    names with ``_``.
    """
    return _INVALID_NAME_CHARS.sub("_", model_name.strip()).lower()


class ModelLayout:
    """Resolves every path the governance layer touches for a project root."""

    def __init__(self, project_root: Path | str, models_dir: str = "models") -> None:
        self.project_root = Path(project_root)
        self.models_path = self.project_root / models_dir

    def model_path(self, model_name: str) -> Path:
        return self.models_path / sanitize_model_name(model_name)

    def experiments_path(self, model_name: str) -> Path:
        return self.model_path(model_name) / EXPERIMENTS_DIR

    def experiment_path(self, model_name: str, experiment_id: str) -> Path:
        return self.experiments_path(model_name) / experiment_id

    def metrics_path(self, model_name: str, experiment_id: str) -> Path:
        return self.experiment_path(model_name, experiment_id) / METRICS_FILE

    def experiment_metadata_path(self, model_name: str, experiment_id: str) -> Path:
        return self.experiment_path(model_name, experiment_id) / EXPERIMENT_FILE

    def production_path(self, model_name: str) -> Path:
        return self.model_path(model_name) / PRODUCTION_DIR

    def backups_path(self, model_name: str) -> Path:
        return self.model_path(model_name) / BACKUPS_DIR

    def backup_path(self, model_name: str, experiment_id: str, at: datetime) -> Path:
        return self.backups_path(model_name) / f"{experiment_id}-{at.strftime(BACKUP_TIMESTAMP_FORMAT)}"

    def registry_path(self, model_name: str) -> Path:
        return self.model_path(model_name) / REGISTRY_FILE

    def history_path(self, model_name: str) -> Path:
        return self.model_path(model_name) / HISTORY_FILE

    def lock_path(self, model_name: str) -> Path:
        return self.model_path(model_name) / LOCK_FILE

    def list_models(self) -> list[str]:
        """Model directory names under the models root, sorted."""
        if not self.models_path.is_dir():
            return []
        return sorted(p.name for p in self.models_path.iterdir() if p.is_dir())
