"""Prefect flows for batch retraining checks and automatic promotion."""

from typing import Any

from prefect import flow, get_run_logger, task

from pipelines.promotion import ComparisonCriteria, MetricComparator, PromotionManager
from pipelines.retrain.trigger import TimeBasedTrigger
from shared.config import get_settings
from shared.storage import GovernanceError, MetricStore


def build_store(project_root: str | None = None) -> MetricStore:
    """Store for ``project_root``, or for the configured project."""
    if project_root is None:
        return MetricStore()
    return MetricStore.for_project(project_root, get_settings().models_dir)


def resolve_model_names(store: MetricStore, model_names: list[str] | None) -> list[str]:
    return list(model_names) if model_names else store.layout.list_models()


def check_model(store: MetricStore, model_name: str) -> dict[str, Any]:
    """Evaluate the default retraining conditions of one model."""
    return TimeBasedTrigger(store).evaluate(model_name).to_dict()


def auto_promote_model(
    store: MetricStore,
    model_name: str,
    primary_metric: str,
    experiment_id: str | None = None,
    min_improvement_percent: float = 0.0,
) -> dict[str, Any]:
    """Pick the best experiment (unless given) and run it through the quality gate."""
    if experiment_id is None:
        criteria = ComparisonCriteria(
            primary_metric=primary_metric,
            minimum_improvement=min_improvement_percent / 100,
        )
        experiment_id = MetricComparator(store).find_best_experiment(model_name, criteria)

    if experiment_id is None:
        return {
            "model_name": model_name,
            "experiment_id": None,
            "promoted": False,
            "reason": f"No experiment qualifies on '{primary_metric}'",
        }

    manager = PromotionManager(store)
    production_id = store.get_production_experiment_id(model_name)
    if experiment_id == production_id:
        return {
            "model_name": model_name,
            "experiment_id": experiment_id,
            "promoted": False,
            "reason": f"{experiment_id} is already in production",
        }

    result = manager.auto_promote(model_name, experiment_id, primary_metric)
    return {
        "model_name": model_name,
        "experiment_id": experiment_id,
        "reason": result.decision.reason,
        **result.to_dict(),
    }


def sweep_model(
    store: MetricStore,
    model_name: str,
    primary_metric: str,
    auto_promote: bool = False,
) -> dict[str, Any]:
    """Trigger check plus best-candidate lookup for one model."""
    summary: dict[str, Any] = {
        "model_name": model_name,
        "production": store.get_production_experiment_id(model_name),
        "trigger": check_model(store, model_name),
        "best_experiment": MetricComparator(store).find_best_experiment(
            model_name, ComparisonCriteria(primary_metric=primary_metric)
        ),
    }
    if auto_promote:
        summary["auto_promotion"] = auto_promote_model(store, model_name, primary_metric)
    return summary


@task(name="evaluate-retraining-trigger")
def evaluate_trigger_task(project_root: str | None, model_name: str) -> dict[str, Any]:
    """Evaluate retraining conditions for a model.

    Args:
        project_root: Project root, or None for the configured one.
        model_name: Model to check.

    Returns:
        Serialized TriggerEvaluation.
    """
    logger = get_run_logger()
    evaluation = check_model(build_store(project_root), model_name)

    if evaluation["should_retrain"]:
        logger.warning(evaluation["recommended_action"])
    else:
        logger.info(f"Model '{model_name}' is not due for retraining")

    return evaluation


@task(name="auto-promote-model")
def auto_promote_task(
    project_root: str | None,
    model_name: str,
    primary_metric: str,
    experiment_id: str | None,
    min_improvement_percent: float,
) -> dict[str, Any]:
    logger = get_run_logger()
    result = auto_promote_model(
        build_store(project_root),
        model_name,
        primary_metric,
        experiment_id=experiment_id,
        min_improvement_percent=min_improvement_percent,
    )

    if result["promoted"]:
        logger.info(f"PROMOTED: {model_name} -> {result['experiment_id']}")
    else:
        logger.info(f"NOT PROMOTED: {model_name}: {result['reason']}")

    return result


@task(name="sweep-model")
def sweep_model_task(
    project_root: str | None,
    model_name: str,
    primary_metric: str,
    auto_promote: bool,
) -> dict[str, Any]:
    return sweep_model(build_store(project_root), model_name, primary_metric, auto_promote)


@flow(
    name="retraining-check",
    description="Evaluate retraining conditions for every governed model",
)
def retraining_check_flow(
    model_names: list[str] | None = None,
    project_root: str | None = None,
) -> dict[str, Any]:
    """Check which models are due for retraining.

    Args:
        model_names: Models to check; every model directory when omitted.
        project_root: Project root, or None for the configured one.

    Returns:
        Per-model evaluations and the names of models due for retraining.
    """
    logger = get_run_logger()
    store = build_store(project_root)
    names = resolve_model_names(store, model_names)
    logger.info(f"Checking retraining conditions for {len(names)} model(s)")

    evaluations: dict[str, Any] = {}
    warnings: list[str] = []
    for name in names:
        try:
            evaluations[name] = evaluate_trigger_task(project_root, name)
        except (GovernanceError, OSError) as e:
            logger.warning(f"Retraining check failed for '{name}': {e}")
            warnings.append(f"{name}: {e}")

    due = [name for name, evaluation in evaluations.items() if evaluation["should_retrain"]]
    return {"evaluations": evaluations, "due": due, "warnings": warnings}


@flow(
    name="auto-promotion",
    description="Promote the best experiment of a model if it passes the quality gate",
)
def auto_promotion_flow(
    model_name: str,
    primary_metric: str | None = None,
    experiment_id: str | None = None,
    project_root: str | None = None,
) -> dict[str, Any]:
    """Quality-gated promotion of one model.

    Args:
        model_name: Model to promote.
        primary_metric: Metric for selection and gating; settings default.
        experiment_id: Explicit candidate; the best experiment when omitted.
        project_root: Project root, or None for the configured one.

    Returns:
        Promotion summary.
    """
    settings = get_settings()
    logger = get_run_logger()
    metric = primary_metric or settings.default_primary_metric
    logger.info(f"Starting auto-promotion for '{model_name}' on '{metric}'")

    return auto_promote_task(
        project_root,
        model_name,
        metric,
        experiment_id,
        settings.min_improvement_percent,
    )


@flow(
    name="governance-sweep",
    description="Retraining checks and best-candidate review for all models",
)
def governance_sweep_flow(
    model_names: list[str] | None = None,
    primary_metric: str | None = None,
    auto_promote: bool = False,
    project_root: str | None = None,
) -> dict[str, Any]:
    """Review every model, optionally auto-promoting the best candidates.

    A failure on one model is recorded as a warning and the sweep continues.
    """
    logger = get_run_logger()
    metric = primary_metric or get_settings().default_primary_metric
    store = build_store(project_root)
    names = resolve_model_names(store, model_names)
    logger.info(f"Sweeping {len(names)} model(s) (auto_promote={auto_promote})")

    models: dict[str, Any] = {}
    warnings: list[str] = []
    for name in names:
        try:
            models[name] = sweep_model_task(project_root, name, metric, auto_promote)
        except (GovernanceError, OSError) as e:
            logger.warning(f"Sweep failed for '{name}': {e}")
            warnings.append(f"{name}: {e}")

    logger.info(f"Sweep finished: {len(models)} ok, {len(warnings)} warning(s)")
    return {"models": models, "warnings": warnings}


if __name__ == "__main__":
    import json

    result = governance_sweep_flow()
    print(json.dumps(result, indent=2, default=str))
