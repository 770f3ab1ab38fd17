"""Tests for the governance API endpoints."""

import pytest
from httpx import AsyncClient

MODEL = "churn"
BASE = f"/api/v1/models/{MODEL}"


@pytest.mark.asyncio
async def test_list_models(client: AsyncClient, make_experiment) -> None:
    make_experiment("exp-001", {"accuracy": 0.8})
    make_experiment("exp-001", {"accuracy": 0.8}, model_name="fraud")
    response = await client.get("/api/v1/models")
    assert response.status_code == 200
    assert response.json()["models"] == ["churn", "fraud"]


@pytest.mark.asyncio
async def test_list_experiments(client: AsyncClient, make_experiment, write_registry) -> None:
    make_experiment("exp-002", {"accuracy": 0.8})
    make_experiment("exp-001", {"accuracy": 0.7})
    write_registry("exp-001")

    response = await client.get(f"{BASE}/experiments")
    assert response.status_code == 200
    data = response.json()
    assert data["experiments"] == ["exp-001", "exp-002"]
    assert data["production_experiment_id"] == "exp-001"


@pytest.mark.asyncio
async def test_experiment_metrics(client: AsyncClient, make_experiment) -> None:
    make_experiment("exp-001", {"accuracy": 0.8})
    response = await client.get(f"{BASE}/experiments/exp-001/metrics")
    assert response.status_code == 200
    assert response.json()["metrics"] == {"accuracy": 0.8}


@pytest.mark.asyncio
async def test_experiment_metrics_not_found(client: AsyncClient, make_experiment) -> None:
    make_experiment("exp-001", metrics=None)
    response = await client.get(f"{BASE}/experiments/exp-001/metrics")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_unknown_experiment_not_found(client: AsyncClient) -> None:
    response = await client.get(f"{BASE}/experiments/exp-404/metrics")
    assert response.status_code == 404
    assert "Experiment not found" in response.json()["detail"]


@pytest.mark.asyncio
async def test_production_not_found(client: AsyncClient) -> None:
    response = await client.get(f"{BASE}/production")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_compare_with_production_none(client: AsyncClient, make_experiment) -> None:
    make_experiment("exp-001", {"accuracy": 0.8})
    response = await client.post(f"{BASE}/compare", json={"candidate_experiment_id": "exp-001"})
    assert response.status_code == 200
    data = response.json()
    assert data["candidate_is_better"] is True
    assert data["baseline_experiment_id"] == "(none)"
    assert data["improvement"] is None


@pytest.mark.asyncio
async def test_compare_two_experiments(client: AsyncClient, make_experiment) -> None:
    make_experiment("exp-001", {"rmse": 0.6})
    make_experiment("exp-002", {"rmse": 0.5})
    response = await client.post(
        f"{BASE}/compare",
        json={"candidate_experiment_id": "exp-002", "baseline_experiment_id": "exp-001"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["candidate_is_better"] is True
    assert data["metric_details"]["rmse"]["is_better"] is True


@pytest.mark.asyncio
async def test_compare_missing_metrics(client: AsyncClient, make_experiment) -> None:
    make_experiment("exp-001", {"accuracy": 0.8})
    response = await client.post(
        f"{BASE}/compare",
        json={"candidate_experiment_id": "exp-009", "baseline_experiment_id": "exp-001"},
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_compare_rejects_path_like_ids(client: AsyncClient) -> None:
    response = await client.post(
        f"{BASE}/compare", json={"candidate_experiment_id": "../../etc"}
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_best_experiment(client: AsyncClient, make_experiment) -> None:
    make_experiment("exp-001", {"accuracy": 0.8})
    make_experiment("exp-002", {"accuracy": 0.9})
    response = await client.get(f"{BASE}/best", params={"primary_metric": "accuracy"})
    assert response.status_code == 200
    assert response.json()["experiment_id"] == "exp-002"


@pytest.mark.asyncio
async def test_evaluate_policy(client: AsyncClient, make_experiment, write_registry) -> None:
    make_experiment("exp-001", {"accuracy": 0.80, "f1_score": 0.70})
    make_experiment("exp-002", {"accuracy": 0.82, "f1_score": 0.72})
    write_registry("exp-001")

    response = await client.post(
        f"{BASE}/evaluate",
        json={"candidate_experiment_id": "exp-002", "minimum_improvement": 10.0},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["approved"] is False
    assert data["reason"].startswith("Insufficient improvement")


@pytest.mark.asyncio
async def test_promote_rollback_history(client: AsyncClient, make_experiment) -> None:
    make_experiment("exp-001", {"accuracy": 0.8})
    make_experiment("exp-002", {"accuracy": 0.9})

    for exp_id in ("exp-001", "exp-002"):
        response = await client.post(f"{BASE}/promote", json={"experiment_id": exp_id})
        assert response.status_code == 200
        assert response.json()["success"] is True

    response = await client.get(f"{BASE}/production")
    assert response.json()["experiment_id"] == "exp-002"

    response = await client.post(f"{BASE}/rollback", json={})
    assert response.status_code == 200
    assert response.json()["to_experiment_id"] == "exp-001"

    response = await client.get(f"{BASE}/history", params={"limit": 2})
    records = response.json()["records"]
    assert [r["action"] for r in records] == ["rollback", "promote"]


@pytest.mark.asyncio
async def test_promote_missing_experiment_conflict(client: AsyncClient) -> None:
    response = await client.post(f"{BASE}/promote", json={"experiment_id": "exp-404"})
    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "experiment_not_found"


@pytest.mark.asyncio
async def test_rollback_without_production_conflict(client: AsyncClient) -> None:
    response = await client.post(f"{BASE}/rollback")
    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "no_production"


@pytest.mark.asyncio
async def test_auto_promote_rejected_is_not_error(client: AsyncClient, make_experiment) -> None:
    make_experiment("exp-001", {"accuracy": 0.95, "f1_score": 0.0})
    response = await client.post(
        f"{BASE}/auto-promote",
        json={"experiment_id": "exp-001", "primary_metric": "accuracy"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["promoted"] is False
    assert data["outcome"] is None


@pytest.mark.asyncio
async def test_default_triggers_without_history(client: AsyncClient) -> None:
    response = await client.get(f"{BASE}/triggers")
    assert response.status_code == 200
    data = response.json()
    assert data["should_retrain"] is True
    assert data["condition_results"][0]["current_value"] is None


@pytest.mark.asyncio
async def test_custom_triggers(client: AsyncClient, make_experiment) -> None:
    make_experiment("exp-001", {"accuracy": 0.8}, timestamp="2026-01-01T00:00:00Z")
    response = await client.post(
        f"{BASE}/triggers",
        json={
            "conditions": [{"type": "time_based", "name": "Weekly", "threshold": 7}],
            "now": "2026-01-05T00:00:00Z",
        },
    )
    assert response.status_code == 200
    data = response.json()
    assert data["should_retrain"] is False
    assert data["condition_results"][0]["current_value"] == pytest.approx(4.0)


@pytest.mark.asyncio
async def test_custom_triggers_invalid_type(client: AsyncClient) -> None:
    response = await client.post(
        f"{BASE}/triggers",
        json={"conditions": [{"type": "lunar_phase", "name": "x", "threshold": 1}]},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient) -> None:
    response = await client.get("/healthz")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["storage"] == "healthy"


@pytest.mark.asyncio
async def test_ready(client: AsyncClient) -> None:
    response = await client.get("/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "ready"}


@pytest.mark.asyncio
async def test_metrics_track_normalized_paths(client: AsyncClient, make_experiment) -> None:
    make_experiment("exp-001", {"accuracy": 0.8})
    await client.get(f"{BASE}/experiments/exp-001/metrics")

    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "modelgate_requests_total" in response.text
    assert "/api/v1/models/{model}/experiments/{experiment}/metrics" in response.text


@pytest.mark.asyncio
async def test_metrics_json_section(client: AsyncClient) -> None:
    response = await client.get("/metrics/json", params={"section": "governance"})
    assert response.status_code == 200
    assert set(response.json()) == {"governance"}

    response = await client.get("/metrics/json", params={"section": "nope"})
    assert response.status_code == 404
