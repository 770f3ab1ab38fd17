"""Smoke tests for API endpoints.

Exercise the full surface once against a temporary project, no mocking.
"""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_smoke_health_endpoint(client: AsyncClient) -> None:
    """Smoke test: Health endpoint responds."""
    response = await client.get("/healthz")
    assert response.status_code in [200, 503]
    data = response.json()
    assert "status" in data
    assert "version" in data


@pytest.mark.asyncio
async def test_smoke_metrics_prometheus(client: AsyncClient) -> None:
    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "text/plain" in response.headers["content-type"]
    assert "modelgate_" in response.text


@pytest.mark.asyncio
async def test_smoke_metrics_json(client: AsyncClient) -> None:
    response = await client.get("/metrics/json")
    assert response.status_code == 200
    data = response.json()
    assert "governance" in data
    assert "system" in data


@pytest.mark.asyncio
async def test_smoke_request_id_echoed(client: AsyncClient) -> None:
    response = await client.get("/api/v1/models", headers={"x-request-id": "smoke-1"})
    assert response.status_code == 200
    assert response.headers["x-request-id"] == "smoke-1"


@pytest.mark.asyncio
async def test_smoke_governance_lifecycle(client: AsyncClient, make_experiment) -> None:
    """Smoke test: evaluate, promote, compare against production, roll back."""
    make_experiment("exp-001", {"accuracy": 0.80, "f1_score": 0.70})
    make_experiment("exp-002", {"accuracy": 0.86, "f1_score": 0.75})
    base = "/api/v1/models/churn"

    response = await client.post(f"{base}/promote", json={"experiment_id": "exp-001"})
    assert response.status_code == 200

    response = await client.post(f"{base}/evaluate", json={"candidate_experiment_id": "exp-002"})
    assert response.json()["approved"] is True

    response = await client.post(f"{base}/promote", json={"experiment_id": "exp-002"})
    assert response.json()["previous_experiment_id"] == "exp-001"
    assert response.json()["backup_path"] is not None

    response = await client.post(f"{base}/compare", json={"candidate_experiment_id": "exp-001"})
    assert response.json()["baseline_experiment_id"] == "exp-002"
    assert response.json()["candidate_is_better"] is False

    response = await client.post(f"{base}/rollback")
    assert response.status_code == 200
    assert response.json()["to_experiment_id"] == "exp-001"
