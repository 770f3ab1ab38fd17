"""Typed records for every JSON file the governance layer reads or writes.

Property names are matched case-insensitively on read (training tools write
``Timestamp``/``Status`` while the registry uses ``experimentId``) and are
written back as camelCase.
"""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic.alias_generators import to_camel


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FileRecord(BaseModel):
    """Base for on-disk JSON records."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        protected_namespaces=(),
    )

    @model_validator(mode="before")
    @classmethod
    def _match_keys_case_insensitively(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        lookup: dict[str, str] = {}
        for name, info in cls.model_fields.items():
            alias = info.alias or name
            lookup[name.lower()] = alias
            lookup[alias.lower()] = alias
        return {lookup.get(str(key).lower(), key): value for key, value in data.items()}

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


class ProductionEntry(FileRecord):
    """Pointer to the experiment currently serving production."""

    experiment_id: str
    model_path: str | None = None
    promoted_at: datetime | None = None


class ModelRegistryFile(FileRecord):
    """Contents of model-registry.json."""

    production: ProductionEntry | None = None


class PromotionRecord(FileRecord):
    """One immutable entry of promotion-history.json."""

    model_name: str
    experiment_id: str
    previous_experiment_id: str | None = None
    action: Literal["promote", "rollback"]
    reason: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)


PromotionHistory = TypeAdapter(list[PromotionRecord])


class ColumnSchema(FileRecord):
    name: str
    unique_value_count: int | None = None


class InputSchema(FileRecord):
    columns: list[ColumnSchema] = Field(default_factory=list)


class ExperimentConfig(FileRecord):
    data_file: str | None = None
    label_column: str | None = None
    time_limit_seconds: int | None = None
    metric: str | None = None
    test_split: float | None = None
    input_schema: InputSchema | None = None


class ExperimentResult(FileRecord):
    best_trainer: str | None = None
    training_time_seconds: float | None = None


class ExperimentMetadata(FileRecord):
    """Subset of experiment.json written by the training engine."""

    experiment_id: str | None = None
    timestamp: datetime | None = None
    status: str = ""
    task: str | None = None
    config: ExperimentConfig | None = None
    result: ExperimentResult | None = None

    @property
    def is_completed(self) -> bool:
        return self.status.lower() == "completed"

    @property
    def class_count(self) -> int | None:
        """Unique value count of the label column, if the schema recorded it."""
        if self.config is None or self.config.input_schema is None or not self.config.label_column:
            return None
        label = self.config.label_column.lower()
        for column in self.config.input_schema.columns:
            if column.name.lower() == label and column.unique_value_count:
                return column.unique_value_count
        return None
