"""Model governance routes: experiments, comparison, promotion, rollback, triggers."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from apps.api.dependencies import (
    get_comparator,
    get_evaluator,
    get_manager,
    get_store,
    get_trigger,
)
from apps.api.schemas.models import (
    EXPERIMENT_ID_PATTERN,
    MODEL_NAME_PATTERN,
    AutoPromoteRequest,
    AutoPromotionResponse,
    BestExperimentResponse,
    CompareRequest,
    ComparisonResponse,
    EvaluateRequest,
    ExperimentListResponse,
    ExperimentMetricsResponse,
    HistoryResponse,
    ModelListResponse,
    ProductionResponse,
    PromoteRequest,
    PromotionDecisionResponse,
    PromotionOutcomeResponse,
    RollbackOutcomeResponse,
    RollbackRequest,
    TriggerEvaluationResponse,
    TriggerRequest,
)
from pipelines.promotion import (
    ComparisonCriteria,
    MetricComparator,
    PromotionManager,
    PromotionPolicy,
    PromotionPolicyEvaluator,
)
from pipelines.retrain.trigger import RetrainingCondition, TimeBasedTrigger
from shared.storage import MetricStore, sanitize_model_name
from shared.utils import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/models", tags=["models"])

ModelName = Annotated[str, Path(pattern=MODEL_NAME_PATTERN, max_length=128)]
ExperimentIdPath = Annotated[str, Path(pattern=EXPERIMENT_ID_PATTERN, max_length=128)]


@router.get("", response_model=ModelListResponse)
def list_models(store: MetricStore = Depends(get_store)) -> ModelListResponse:
    """List every model directory under the project."""
    return ModelListResponse(models=store.layout.list_models())


@router.get("/{model_name}/experiments", response_model=ExperimentListResponse)
def list_experiments(
    model_name: ModelName,
    store: MetricStore = Depends(get_store),
) -> ExperimentListResponse:
    return ExperimentListResponse(
        model_name=sanitize_model_name(model_name),
        experiments=store.list_experiments(model_name),
        production_experiment_id=store.get_production_experiment_id(model_name),
    )


@router.get(
    "/{model_name}/experiments/{experiment_id}/metrics",
    response_model=ExperimentMetricsResponse,
    responses={404: {"description": "Experiment or its metrics file does not exist"}},
)
def get_experiment_metrics(
    model_name: ModelName,
    experiment_id: ExperimentIdPath,
    store: MetricStore = Depends(get_store),
) -> ExperimentMetricsResponse:
    store.require_experiment(model_name, experiment_id)
    return ExperimentMetricsResponse(
        model_name=sanitize_model_name(model_name),
        experiment_id=experiment_id,
        metrics=store.load_metrics(model_name, experiment_id),
    )


@router.get(
    "/{model_name}/production",
    response_model=ProductionResponse,
    responses={404: {"description": "Model has no production experiment"}},
)
def get_production(
    model_name: ModelName,
    store: MetricStore = Depends(get_store),
) -> ProductionResponse:
    entry = store.get_production_entry(model_name)
    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Model '{sanitize_model_name(model_name)}' has no production experiment",
        )
    return ProductionResponse(
        model_name=sanitize_model_name(model_name),
        experiment_id=entry.experiment_id,
        model_path=entry.model_path,
        promoted_at=entry.promoted_at,
    )


@router.get("/{model_name}/history", response_model=HistoryResponse)
def get_history(
    model_name: ModelName,
    limit: int = Query(default=10, ge=1, le=1000),
    manager: PromotionManager = Depends(get_manager),
) -> HistoryResponse:
    """Promotion history, newest first."""
    records = manager.get_history(model_name, limit=limit)
    return HistoryResponse.model_validate(
        {
            "model_name": sanitize_model_name(model_name),
            "records": [r.model_dump() for r in records],
        }
    )


@router.post(
    "/{model_name}/compare",
    response_model=ComparisonResponse,
    responses={404: {"description": "Candidate or baseline has no metrics file"}},
)
def compare(
    model_name: ModelName,
    request: CompareRequest,
    comparator: MetricComparator = Depends(get_comparator),
) -> ComparisonResponse:
    """Compare a candidate with a baseline experiment, or with production."""
    if request.baseline_experiment_id is None:
        result = comparator.compare_with_production(model_name, request.candidate_experiment_id)
    else:
        result = comparator.compare(
            model_name, request.candidate_experiment_id, request.baseline_experiment_id
        )
    return ComparisonResponse.model_validate(result.to_dict())


@router.get("/{model_name}/best", response_model=BestExperimentResponse)
def find_best(
    model_name: ModelName,
    primary_metric: str = Query(..., min_length=1),
    minimum_improvement: float = Query(
        default=0.0, description="Required gain over production as a fraction (0.05 = 5%)"
    ),
    comparator: MetricComparator = Depends(get_comparator),
) -> BestExperimentResponse:
    criteria = ComparisonCriteria(
        primary_metric=primary_metric, minimum_improvement=minimum_improvement
    )
    return BestExperimentResponse(
        model_name=sanitize_model_name(model_name),
        primary_metric=primary_metric,
        experiment_id=comparator.find_best_experiment(model_name, criteria),
    )


@router.post("/{model_name}/evaluate", response_model=PromotionDecisionResponse)
def evaluate(
    model_name: ModelName,
    request: EvaluateRequest,
    evaluator: PromotionPolicyEvaluator = Depends(get_evaluator),
) -> PromotionDecisionResponse:
    """Evaluate a promotion policy without promoting."""
    policy = PromotionPolicy(
        minimum_improvement=request.minimum_improvement,
        require_comparison_with_production=request.require_comparison_with_production,
        require_test_data_validation=request.require_test_data_validation,
        required_metrics=tuple(request.required_metrics),
    )
    decision = evaluator.evaluate(model_name, request.candidate_experiment_id, policy)
    return PromotionDecisionResponse.model_validate(decision.to_dict())


@router.post(
    "/{model_name}/promote",
    response_model=PromotionOutcomeResponse,
    responses={409: {"description": "Promotion did not happen"}},
)
def promote(
    model_name: ModelName,
    request: PromoteRequest,
    manager: PromotionManager = Depends(get_manager),
) -> PromotionOutcomeResponse:
    outcome = manager.promote(model_name, request.experiment_id, request.create_backup)
    if not outcome.success:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=outcome.to_dict())
    return PromotionOutcomeResponse.model_validate(outcome.to_dict())


@router.post(
    "/{model_name}/rollback",
    response_model=RollbackOutcomeResponse,
    responses={409: {"description": "Rollback did not happen"}},
)
def rollback(
    model_name: ModelName,
    request: RollbackRequest | None = None,
    manager: PromotionManager = Depends(get_manager),
) -> RollbackOutcomeResponse:
    target = request.target_experiment_id if request else None
    outcome = manager.rollback(model_name, target)
    if not outcome.success:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=outcome.to_dict())
    return RollbackOutcomeResponse.model_validate(outcome.to_dict())


@router.post("/{model_name}/auto-promote", response_model=AutoPromotionResponse)
def auto_promote(
    model_name: ModelName,
    request: AutoPromoteRequest,
    manager: PromotionManager = Depends(get_manager),
) -> AutoPromotionResponse:
    """Promote through the quality gate. A rejected candidate is not an error."""
    result = manager.auto_promote(
        model_name, request.experiment_id, request.primary_metric, request.class_count
    )
    if result.outcome is not None and not result.outcome.success:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.to_dict())
    return AutoPromotionResponse.model_validate(result.to_dict())


@router.get("/{model_name}/triggers", response_model=TriggerEvaluationResponse)
def evaluate_default_triggers(
    model_name: ModelName,
    trigger: TimeBasedTrigger = Depends(get_trigger),
) -> TriggerEvaluationResponse:
    """Evaluate the default retraining conditions."""
    evaluation = trigger.evaluate(model_name)
    return TriggerEvaluationResponse.model_validate(evaluation.to_dict())


@router.post("/{model_name}/triggers", response_model=TriggerEvaluationResponse)
def evaluate_triggers(
    model_name: ModelName,
    request: TriggerRequest,
    trigger: TimeBasedTrigger = Depends(get_trigger),
) -> TriggerEvaluationResponse:
    conditions = [
        RetrainingCondition(
            type=c.type, name=c.name, threshold=c.threshold, description=c.description
        )
        for c in request.conditions
    ]
    evaluation = trigger.evaluate(model_name, conditions, now=request.now)
    return TriggerEvaluationResponse.model_validate(evaluation.to_dict())
