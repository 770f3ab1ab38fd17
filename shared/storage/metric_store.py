"""File-backed access to experiment metrics, the production pointer and history.

Read paths for optional data (registry, experiment metadata) never raise;
absence of production is the normal state of a model before its first
promotion. Metrics are mandatory for comparisons, so a missing metrics.json
raises ``MetricsNotFoundError``.
"""

import json
import os
from pathlib import Path

from pydantic import ValidationError

from shared.config import get_settings
from shared.storage.errors import (
    ExperimentNotFoundError,
    HistoryCorruptedError,
    MetricsNotFoundError,
)
from shared.storage.layout import ModelLayout, sanitize_model_name
from shared.storage.schemas import (
    ExperimentMetadata,
    ModelRegistryFile,
    ProductionEntry,
    PromotionHistory,
    PromotionRecord,
    utc_now,
)
from shared.utils import get_logger

logger = get_logger(__name__)


def _atomic_write_text(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` through a temp file and rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(path.suffix + ".tmp")
    with open(temp_path, "w", encoding="utf-8") as f:
        f.write(content)
        f.flush()
        os.fsync(f.fileno())
    os.replace(temp_path, path)


def _numeric_items(raw: dict) -> dict[str, float]:
    return {
        str(key): float(value)
        for key, value in raw.items()
        if isinstance(value, (int, float)) and not isinstance(value, bool)
    }


class MetricStore:
    """Reads and writes the per-model governance files."""

    def __init__(self, layout: ModelLayout | None = None) -> None:
        if layout is None:
            settings = get_settings()
            layout = ModelLayout(settings.project_root, settings.models_dir)
        self.layout = layout

    @classmethod
    def for_project(cls, project_root: Path | str, models_dir: str = "models") -> "MetricStore":
        return cls(ModelLayout(project_root, models_dir))

    # ------------------------------------------------------------------
    # Experiments
    # ------------------------------------------------------------------

    def load_metrics(self, model_name: str, experiment_id: str) -> dict[str, float]:
        """Load the flat metric mapping for an experiment.

        Args:
            model_name: Model name (sanitized internally).
            experiment_id: Experiment id, e.g. ``exp-003``.

        Returns:
            Metric name to value. Empty if the file is not a JSON object;
            non-numeric values are dropped.

        Raises:
            MetricsNotFoundError: If metrics.json does not exist.
        """
        path = self.layout.metrics_path(model_name, experiment_id)
        if not path.is_file():
            raise MetricsNotFoundError(sanitize_model_name(model_name), experiment_id, str(path))

        try:
            raw = json.loads(path.read_bytes())
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(
                "metrics_unparsable",
                model_name=model_name,
                experiment_id=experiment_id,
                error=str(e),
            )
            return {}

        if not isinstance(raw, dict):
            logger.warning(
                "metrics_unexpected_shape",
                model_name=model_name,
                experiment_id=experiment_id,
                json_type=type(raw).__name__,
            )
            return {}

        return _numeric_items(raw)

    def list_experiments(self, model_name: str) -> list[str]:
        """Experiment directory names for a model, sorted. Contents are not validated."""
        experiments_path = self.layout.experiments_path(model_name)
        if not experiments_path.is_dir():
            return []
        return sorted(p.name for p in experiments_path.iterdir() if p.is_dir())

    def experiment_exists(self, model_name: str, experiment_id: str) -> bool:
        return self.layout.experiment_path(model_name, experiment_id).is_dir()

    def require_experiment(self, model_name: str, experiment_id: str) -> None:
        if not self.experiment_exists(model_name, experiment_id):
            raise ExperimentNotFoundError(sanitize_model_name(model_name), experiment_id)

    def load_experiment_metadata(
        self, model_name: str, experiment_id: str
    ) -> ExperimentMetadata | None:
        """Parse experiment.json, or None if it is missing or malformed."""
        path = self.layout.experiment_metadata_path(model_name, experiment_id)
        if not path.is_file():
            return None
        try:
            return ExperimentMetadata.model_validate_json(path.read_bytes())
        except ValidationError as e:
            logger.warning(
                "experiment_metadata_invalid",
                model_name=model_name,
                experiment_id=experiment_id,
                errors=e.error_count(),
            )
            return None

    # ------------------------------------------------------------------
    # Production registry
    # ------------------------------------------------------------------

    def get_production_entry(self, model_name: str) -> ProductionEntry | None:
        """Typed production pointer, or None when absent or malformed."""
        path = self.layout.registry_path(model_name)
        if not path.is_file():
            return None
        try:
            registry = ModelRegistryFile.model_validate_json(path.read_bytes())
        except (ValidationError, OSError) as e:
            logger.warning(
                "registry_invalid", model_name=model_name, path=str(path), error=str(e)
            )
            return None
        return registry.production

    def get_production_experiment_id(self, model_name: str) -> str | None:
        entry = self.get_production_entry(model_name)
        return entry.experiment_id if entry else None

    def write_registry(self, model_name: str, experiment_id: str, model_path: Path) -> ProductionEntry:
        """Replace the production pointer with ``experiment_id``."""
        entry = ProductionEntry(
            experiment_id=experiment_id,
            model_path=str(model_path),
            promoted_at=utc_now(),
        )
        registry = ModelRegistryFile(production=entry)
        _atomic_write_text(self.layout.registry_path(model_name), registry.to_json())
        logger.info("registry_updated", model_name=model_name, experiment_id=experiment_id)
        return entry

    # ------------------------------------------------------------------
    # Promotion history
    # ------------------------------------------------------------------

    def load_history(self, model_name: str) -> list[PromotionRecord]:
        """All history records in file order.

        Raises:
            HistoryCorruptedError: If the file exists but is not a record array.
        """
        path = self.layout.history_path(model_name)
        if not path.is_file():
            return []
        try:
            return PromotionHistory.validate_json(path.read_bytes())
        except ValidationError as e:
            raise HistoryCorruptedError(f"Promotion history is unreadable: {path}") from e

    def append_history(self, model_name: str, record: PromotionRecord) -> None:
        records = self.load_history(model_name)
        records.append(record)
        content = PromotionHistory.dump_json(records, by_alias=True, indent=2).decode("utf-8")
        _atomic_write_text(self.layout.history_path(model_name), content)
        logger.info(
            "history_appended",
            model_name=model_name,
            experiment_id=record.experiment_id,
            action=record.action,
        )
