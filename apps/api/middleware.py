"""FastAPI middleware for metrics collection and request logging."""

import re
import time
import uuid
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from shared.utils import bind_request_id, get_logger
from shared.utils.metrics import get_metrics

logger = get_logger(__name__)

DEFAULT_EXCLUDE_PATHS = ("/healthz", "/ready", "/metrics")

_MODEL_SEGMENT = re.compile(r"(/models/)[^/]+")
_EXPERIMENT_SEGMENT = re.compile(r"(/experiments/)[^/]+")


def normalize_path(path: str) -> str:
    """Collapse model names and experiment ids so metric labels stay bounded.

    ``/api/v1/models/churn/experiments/exp-003/metrics`` becomes
    ``/api/v1/models/{model}/experiments/{experiment}/metrics``.
    """
    path = _MODEL_SEGMENT.sub(r"\1{model}", path)
    return _EXPERIMENT_SEGMENT.sub(r"\1{experiment}", path)


def _is_excluded(path: str, exclude_paths: tuple[str, ...]) -> bool:
    return any(path.startswith(excluded) for excluded in exclude_paths)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Counts requests and errors and records latency per normalized route."""

    def __init__(self, app: ASGIApp, exclude_paths: list[str] | None = None) -> None:
        """Initialize middleware.

        Args:
            app: ASGI application.
            exclude_paths: Path prefixes to skip (health probes, scrapes).
        """
        super().__init__(app)
        self.exclude_paths = tuple(exclude_paths or DEFAULT_EXCLUDE_PATHS)
        self.metrics = get_metrics()

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        path = request.url.path
        if _is_excluded(path, self.exclude_paths):
            return await call_next(request)

        endpoint = normalize_path(path)
        method = request.method

        start_time = time.perf_counter()
        status_code = 500
        error_type = None

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response

        except Exception as e:
            error_type = type(e).__name__
            raise

        finally:
            latency = time.perf_counter() - start_time

            self.metrics.record_request(
                method=method,
                endpoint=endpoint,
                status=status_code,
                latency_seconds=latency,
            )
            if status_code >= 400:
                self.metrics.record_error(
                    endpoint=endpoint,
                    error_type=error_type or f"http_{status_code}",
                )

            log_data = {
                "method": method,
                "path": path,
                "status": status_code,
                "latency_ms": round(latency * 1000, 2),
                "client_ip": _client_ip(request),
            }
            if status_code >= 500:
                logger.error("request_error", **log_data)
            elif status_code >= 400:
                logger.warning("request_client_error", **log_data)
            else:
                logger.debug("request_completed", **log_data)


def _client_ip(request: Request) -> str:
    """Client address, honoring X-Forwarded-For from a proxy."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Binds a request id to the structlog context and echoes it back."""

    def __init__(self, app: ASGIApp, exclude_paths: list[str] | None = None) -> None:
        super().__init__(app)
        self.exclude_paths = tuple(exclude_paths or DEFAULT_EXCLUDE_PATHS)

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        path = request.url.path
        if _is_excluded(path, self.exclude_paths):
            return await call_next(request)

        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())

        bind_request_id(request_id)

        logger.info(
            "request_started",
            method=request.method,
            path=path,
            query=str(request.query_params),
        )

        response = await call_next(request)
        response.headers["x-request-id"] = request_id
        return response
