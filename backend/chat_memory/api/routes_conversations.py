"""Conversation routes: recording exchanges, short-term history, deletion."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from chat_memory.api.dependencies import get_current_user, get_memory
from chat_memory.core.errors import ConversationNotFoundError
from chat_memory.memory.session import ConversationMemory
from chat_memory.models.dto import (
    RecordExchangeRequest,
    RecordExchangeResponse,
    ShortTermResponse,
    StatusResponse,
    TurnResult,
)

router = APIRouter()


@router.post(
    "/{conversation_id}/messages",
    response_model=RecordExchangeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a user turn and its reply",
)
def record_exchange(
    conversation_id: str,
    request: RecordExchangeRequest,
    user_id: str = Depends(get_current_user),
    memory: ConversationMemory = Depends(get_memory),
) -> RecordExchangeResponse:
    recorded = memory.record_exchange(
        user_id,
        conversation_id,
        request.user_message,
        assistant_content=request.assistant_message,
        model_id=request.model_id,
        title=request.title,
    )
    return RecordExchangeResponse(
        conversation_id=recorded.conversation_id,
        user_message_id=recorded.user_message_id,
        assistant_message_id=recorded.assistant_message_id,
        ingest_accepted=recorded.ingest_accepted,
    )


@router.get("/{conversation_id}/short-term", response_model=ShortTermResponse, summary="Recent turns")
def short_term(
    conversation_id: str,
    user_id: str = Depends(get_current_user),
    memory: ConversationMemory = Depends(get_memory),
) -> ShortTermResponse:
    if memory.conversations.owner_of(conversation_id) != user_id:
        raise ConversationNotFoundError(conversation_id)
    turns = memory.short_term_history(conversation_id)
    return ShortTermResponse(conversation_id=conversation_id, turns=[TurnResult.from_turn(turn) for turn in turns])


@router.delete("/{conversation_id}", response_model=StatusResponse, summary="Delete a conversation and its memory")
def delete_conversation(
    conversation_id: str,
    user_id: str = Depends(get_current_user),
    memory: ConversationMemory = Depends(get_memory),
) -> StatusResponse:
    memory.delete_conversation(user_id, conversation_id)
    return StatusResponse(status="deleted")
