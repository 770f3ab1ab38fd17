"""API routes."""

from apps.api.routes.health import router as health_router
from apps.api.routes.metrics import router as metrics_router
from apps.api.routes.models import router as models_router

__all__ = ["health_router", "metrics_router", "models_router"]
