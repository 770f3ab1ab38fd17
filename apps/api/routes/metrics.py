"""Prometheus and JSON exports of the in-process governance metrics."""

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import PlainTextResponse

from shared.utils.metrics import get_metrics

router = APIRouter(tags=["observability"])

JSON_SECTIONS = ("requests", "errors", "governance", "retraining", "system")


@router.get(
    "/metrics",
    response_class=PlainTextResponse,
    responses={
        200: {
            "description": "Prometheus-formatted metrics",
            "content": {"text/plain": {"example": "# HELP modelgate_promotions_total ..."}},
        },
    },
)
async def metrics_prometheus() -> PlainTextResponse:
    """Scrape endpoint in Prometheus exposition format."""
    return PlainTextResponse(
        content=get_metrics().to_prometheus(),
        media_type="text/plain; charset=utf-8",
    )


@router.get("/metrics/json")
async def metrics_json(
    section: str | None = Query(default=None, description=f"One of {', '.join(JSON_SECTIONS)}"),
) -> dict:
    """JSON metrics, optionally narrowed to one section.

    Returns:
        Dictionary with all metrics, or ``{section: ...}``.
    """
    data = get_metrics().to_dict()
    if section is None:
        return data
    if section not in data:
        raise HTTPException(status_code=404, detail=f"Unknown metrics section '{section}'")
    return {section: data[section]}
