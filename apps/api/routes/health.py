"""Health check endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel

from apps.api.dependencies import get_store
from shared.config import get_settings
from shared.storage import MetricStore
from shared.utils import get_logger

logger = get_logger(__name__)
router = APIRouter(tags=["health"])
settings = get_settings()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str
    version: str
    models_dir: str
    storage: str


@router.get(
    "/healthz",
    response_model=HealthResponse,
    responses={
        200: {"description": "Service is healthy"},
        503: {"description": "Models directory is not readable"},
    },
)
def health_check(response: Response, store: MetricStore = Depends(get_store)) -> HealthResponse:
    """Check service health.

    Verifies:
    - API is responding
    - Models directory exists and can be listed
    """
    models_path = store.layout.models_path
    storage_status = "healthy"

    if not models_path.is_dir():
        storage_status = "missing"
    else:
        try:
            store.layout.list_models()
        except OSError as e:
            logger.error("health_check_storage_failed", error=str(e), path=str(models_path))
            storage_status = "unhealthy"

    if storage_status != "healthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(
        status="healthy" if storage_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=settings.api_version,
        models_dir=str(models_path),
        storage=storage_status,
    )


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check() -> dict[str, str]:
    """Kubernetes readiness probe.

    Simple check that the API can serve requests.
    """
    return {"status": "ready"}
