"""Structured logging for governance operations.

Every line is tagged with the service name. ``governance_context`` binds the
model and operation for the length of a promotion, rollback or trigger
evaluation, so nested store and lock calls log them without passing them
along. The API binds ``request_id`` per request with ``bind_request_id``.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

SERVICE_NAME = "modelgate"

QUIET_LOGGERS = ("uvicorn.access", "httpx", "portalocker")


def add_timestamp(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp the event with UTC ISO time unless the caller set one."""
    event_dict.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    return event_dict


def add_service(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _pre_chain() -> list[Processor]:
    # Also applied to records from stdlib loggers (uvicorn, prefect).
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        add_timestamp,
        add_service,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def setup_logging(log_level: str = "INFO", json_format: bool = True) -> None:
    """Route structlog and stdlib logging through one stdout handler.

    Args:
        log_level: Root level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: JSON lines when True, console output otherwise.
    """
    if json_format:
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_pre_chain(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_pre_chain(),
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def governance_context(model_name: str, operation: str, **extra: Any) -> Iterator[None]:
    """Tag every log line in the block with the model and operation.

    Args:
        model_name: Sanitized model name.
        operation: ``promote``, ``rollback``, ``auto_promote``, ``trigger`` ...
        **extra: Further keys to bind, e.g. ``experiment_id``.
    """
    with structlog.contextvars.bound_contextvars(
        model_name=model_name, operation=operation, **extra
    ):
        yield


def bind_request_id(request_id: str) -> None:
    """Start a fresh per-request context holding only ``request_id``."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
