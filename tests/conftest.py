"""Pytest configuration and fixtures."""

import os

# Set test environment variables before any app imports
os.environ["MODELGATE_LOG_JSON"] = "false"
os.environ["MODELGATE_LOCK_TIMEOUT_SECONDS"] = "0.5"

import json
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from shared.storage import MetricStore
from shared.utils import get_metrics

MODEL = "churn"

ExperimentFactory = Callable[..., Path]


@pytest.fixture(autouse=True)
def reset_metrics() -> None:
    """Each test starts from empty counters."""
    get_metrics().reset()


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    (tmp_path / "models").mkdir()
    return tmp_path


@pytest.fixture
def store(project_root: Path) -> MetricStore:
    return MetricStore.for_project(project_root)


@pytest.fixture
def make_experiment(project_root: Path) -> ExperimentFactory:
    """Create ``models/{model}/experiments/{exp_id}`` with metrics and metadata.

    Pass ``metrics=None`` to leave out metrics.json and ``status=None`` to
    leave out experiment.json.
    """

    def _make(
        experiment_id: str,
        metrics: dict[str, Any] | None = None,
        model_name: str = MODEL,
        status: str | None = "Completed",
        timestamp: datetime | str | None = None,
        label_column: str | None = None,
        class_count: int | None = None,
        artifact: str | None = None,
    ) -> Path:
        path = project_root / "models" / model_name / "experiments" / experiment_id
        path.mkdir(parents=True, exist_ok=True)

        if metrics is not None:
            (path / "metrics.json").write_text(json.dumps(metrics))

        if status is not None:
            if timestamp is None:
                timestamp = datetime(2026, 1, 1, tzinfo=timezone.utc)
            metadata: dict[str, Any] = {
                "ExperimentId": experiment_id,
                "Timestamp": timestamp if isinstance(timestamp, str) else timestamp.isoformat(),
                "Status": status,
                "Task": "binary-classification",
            }
            if label_column is not None:
                metadata["Config"] = {
                    "LabelColumn": label_column,
                    "InputSchema": {
                        "Columns": [
                            {"Name": "tenure", "UniqueValueCount": 72},
                            {"Name": label_column, "UniqueValueCount": class_count},
                        ]
                    },
                }
            (path / "experiment.json").write_text(json.dumps(metadata, indent=2))

        (path / "model.zip").write_text(artifact or f"artifact of {experiment_id}")
        return path

    return _make


@pytest.fixture
def write_registry(project_root: Path) -> Callable[[str, str], None]:
    """Write a production pointer directly, bypassing the manager."""

    def _write(experiment_id: str, model_name: str = MODEL) -> None:
        path = project_root / "models" / model_name / "model-registry.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps({"production": {"experimentId": experiment_id}}))

    return _write


@pytest_asyncio.fixture(scope="function")
async def client(store: MetricStore) -> AsyncGenerator[AsyncClient, None]:
    """API client bound to the temporary project."""
    from fastapi import FastAPI

    from apps.api.dependencies import get_store
    from apps.api.main import history_corrupted_handler, not_found_handler
    from apps.api.middleware import MetricsMiddleware, RequestLoggingMiddleware
    from apps.api.routes import health_router, metrics_router, models_router
    from shared.storage import HistoryCorruptedError

    # No-op lifespan so the configured project is never touched
    @asynccontextmanager
    async def test_lifespan(app):
        yield

    test_app = FastAPI(title="modelgate test", version="0.1.0", lifespan=test_lifespan)
    test_app.add_exception_handler(FileNotFoundError, not_found_handler)
    test_app.add_exception_handler(HistoryCorruptedError, history_corrupted_handler)
    test_app.add_middleware(MetricsMiddleware, exclude_paths=["/healthz", "/ready", "/metrics"])
    test_app.add_middleware(
        RequestLoggingMiddleware, exclude_paths=["/healthz", "/ready", "/metrics"]
    )
    test_app.include_router(health_router)
    test_app.include_router(metrics_router)
    test_app.include_router(models_router, prefix="/api/v1")

    test_app.dependency_overrides[get_store] = lambda: store

    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac

    test_app.dependency_overrides.clear()
