"""HTTP route definitions for the exporter."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import PlainTextResponse

from app.exposition import CONTENT_TYPE, render_metrics
from app.schemas import HealthResponse, Measurement
from state.shared_state import SharedState, StateAccessError

router = APIRouter()


def get_state(request: Request) -> SharedState:
    return request.app.state.shared_state


@router.get(
    "/json",
    response_model=Optional[Measurement],
    summary="Latest measurement, or null before the first successful poll.",
)
def latest_measurement(
    state: SharedState = Depends(get_state),
) -> Optional[Measurement]:
    try:
        return state.latest()
    except StateAccessError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc


@router.get(
    "/metrics",
    response_class=PlainTextResponse,
    summary="Latest measurement and error counters as a text exposition.",
)
def metrics(state: SharedState = Depends(get_state)) -> PlainTextResponse:
    try:
        snapshot = state.snapshot()
    except StateAccessError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return PlainTextResponse(render_metrics(snapshot), media_type=CONTENT_TYPE)


@router.get(
    "/health",
    response_model=HealthResponse,
    response_model_exclude_none=True,
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck(request: Request) -> HealthResponse:
    reader = getattr(request.app.state, "reader", None)
    return HealthResponse(phase=reader.phase if reader is not None else None)
