"""FastAPI application entrypoint."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from apps.api.middleware import MetricsMiddleware, RequestLoggingMiddleware
from apps.api.routes import health_router, metrics_router, models_router
from shared.config import get_settings
from shared.storage import HistoryCorruptedError, MetricStore
from shared.utils import get_logger, get_metrics, setup_logging

settings = get_settings()

# Setup structured logging
setup_logging(log_level=settings.log_level, json_format=settings.log_json)
logger = get_logger(__name__)

EXCLUDE_PATHS = ["/healthz", "/ready", "/metrics", "/docs", "/redoc", "/openapi.json"]


def seed_production_gauges(store: MetricStore) -> int:
    """Expose the current production experiment of every model as a gauge."""
    metrics = get_metrics()
    seeded = 0
    for model_name in store.layout.list_models():
        experiment_id = store.get_production_experiment_id(model_name)
        if experiment_id:
            metrics.set_production(model_name, experiment_id)
            seeded += 1
    return seeded


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler.

    Startup:
    - Report the governed models directory
    - Seed production gauges from the registries on disk
    """
    logger.info("application_starting", version=settings.api_version)

    store = MetricStore()
    if not store.layout.models_path.is_dir():
        logger.warning("models_dir_missing", path=str(store.layout.models_path))
    else:
        seeded = seed_production_gauges(store)
        logger.info(
            "governance_ready",
            models_dir=str(store.layout.models_path),
            models_in_production=seeded,
        )

    yield

    logger.info("application_shutting_down")


async def not_found_handler(request: Request, exc: FileNotFoundError) -> JSONResponse:
    logger.info("resource_not_found", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


async def history_corrupted_handler(request: Request, exc: HistoryCorruptedError) -> JSONResponse:
    logger.error("history_corrupted", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": str(exc)}
    )


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI app instance.
    """
    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="Model governance API - comparison, promotion, rollback and retraining triggers",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_exception_handler(FileNotFoundError, not_found_handler)
    app.add_exception_handler(HistoryCorruptedError, history_corrupted_handler)

    # Metrics middleware (must be added first to capture all requests)
    app.add_middleware(MetricsMiddleware, exclude_paths=EXCLUDE_PATHS)
    app.add_middleware(RequestLoggingMiddleware, exclude_paths=EXCLUDE_PATHS)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(models_router, prefix="/api/v1")

    return app


# Application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "apps.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_debug,
    )
