"""Profile API routes."""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status

from chat_memory.api.dependencies import get_current_user, get_profile_engine
from chat_memory.core.logging import get_logger
from chat_memory.models.dto import ProfileResponse, ProfileUpdateRequest, StatusResponse
from chat_memory.profile.engine import ProfileEngine, profile_summary

logger = get_logger(__name__)

router = APIRouter()


def _infer_quietly(engine: ProfileEngine, user_id: str) -> None:
    try:
        engine.infer_profile(user_id)
    except Exception:
        logger.exception("Profile refresh failed for %s", user_id)


def _require_self(user_id: str, caller: str) -> None:
    if user_id != caller:
        raise HTTPException(status_code=403, detail="Profiles are only visible to their owner")


@router.get("/profile/{user_id}", response_model=ProfileResponse, summary="Fetch a stored profile")
def get_profile(
    user_id: str,
    caller: str = Depends(get_current_user),
    engine: ProfileEngine = Depends(get_profile_engine),
) -> ProfileResponse:
    _require_self(user_id, caller)
    profile = engine.get_profile(user_id)
    return ProfileResponse.from_profile(profile, profile_summary(profile))


@router.put("/profile/{user_id}", response_model=ProfileResponse, summary="Apply manual profile overrides")
def update_profile(
    user_id: str,
    request: ProfileUpdateRequest,
    caller: str = Depends(get_current_user),
    engine: ProfileEngine = Depends(get_profile_engine),
) -> ProfileResponse:
    _require_self(user_id, caller)
    profile = engine.update_profile(
        user_id,
        technical_level=request.technical_level,
        explanation_style=request.explanation_style,
        likes=request.likes,
        dislikes=request.dislikes,
        unlock=request.unlock,
    )
    return ProfileResponse.from_profile(profile, profile_summary(profile))


@router.post(
    "/profile/refresh",
    response_model=StatusResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Re-infer the caller's profile in the background",
)
def refresh_profile(
    background: BackgroundTasks,
    caller: str = Depends(get_current_user),
    engine: ProfileEngine = Depends(get_profile_engine),
) -> StatusResponse:
    background.add_task(_infer_quietly, engine, caller)
    return StatusResponse(status="scheduled")
