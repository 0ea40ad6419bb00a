"""Retrieval API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from chat_memory.api.dependencies import get_current_user, get_memory
from chat_memory.memory.session import ConversationMemory
from chat_memory.models.dto import RetrieveRequest, RetrieveResponse

router = APIRouter()


@router.post("/retrieve", response_model=RetrieveResponse, summary="Assemble memory context for a query")
def retrieve(
    request: RetrieveRequest,
    user_id: str = Depends(get_current_user),
    memory: ConversationMemory = Depends(get_memory),
) -> RetrieveResponse:
    context, formatted = memory.build_context(
        user_id,
        request.query,
        conversation_id=request.conversation_id,
        time_window_days=request.time_window_days,
        rerank=request.rerank,
    )
    return RetrieveResponse.from_context(context, formatted)
