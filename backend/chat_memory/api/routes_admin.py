"""Administrative routes for Chat Memory."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from chat_memory.api.dependencies import (
    get_app_settings,
    get_current_user,
    get_ingest_pipeline,
    get_profile_engine,
)
from chat_memory.core.config import Settings
from chat_memory.core.errors import BackendUnavailableError
from chat_memory.core.metrics import metrics_response
from chat_memory.ingest.pipeline import IngestPipeline
from chat_memory.models.dto import PurgeRequest, RefreshActiveRequest, RefreshActiveResponse, StatusResponse
from chat_memory.profile.engine import ProfileEngine

router = APIRouter()


@router.post("/admin/purge", response_model=StatusResponse, summary="Delete the caller's memory older than N days")
def purge(
    request: PurgeRequest,
    user_id: str = Depends(get_current_user),
    pipeline: IngestPipeline = Depends(get_ingest_pipeline),
) -> StatusResponse:
    try:
        pipeline.purge_old_data(user_id, days=request.days)
    except BackendUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return StatusResponse(status="purged", detail=f"older than {request.days} days")


@router.post(
    "/admin/profiles/refresh-active",
    response_model=RefreshActiveResponse,
    summary="Re-infer profiles of recently active users",
)
def refresh_active(
    request: RefreshActiveRequest,
    _: str = Depends(get_current_user),
    engine: ProfileEngine = Depends(get_profile_engine),
    settings: Settings = Depends(get_app_settings),
) -> RefreshActiveResponse:
    days = request.days or settings.profile_active_days
    return RefreshActiveResponse(refreshed=engine.refresh_active_profiles(days))


@router.get("/metrics", summary="Prometheus metrics")
def get_metrics():
    return metrics_response()


__all__ = ["router"]
