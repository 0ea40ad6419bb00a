"""Ingest API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from chat_memory.api.dependencies import get_current_user, get_ingest_pipeline
from chat_memory.ingest.pipeline import IngestPipeline
from chat_memory.ingest.types import IngestRequest
from chat_memory.models.dto import (
    BatchIngestRequest,
    BatchIngestResponse,
    IngestAcceptedResponse,
    IngestMessageRequest,
)

router = APIRouter()


def _to_request(user_id: str, body: IngestMessageRequest) -> IngestRequest:
    return IngestRequest(
        user_id=user_id,
        conversation_id=body.conversation_id or "",
        message_id=body.message_id or "",
        content=body.content or "",
        role=body.role or "",
        model_used=body.model_used,
        timestamp=body.timestamp,
    )


@router.post(
    "",
    response_model=IngestAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a message for long-term memory",
)
def ingest_message(
    body: IngestMessageRequest,
    user_id: str = Depends(get_current_user),
    pipeline: IngestPipeline = Depends(get_ingest_pipeline),
) -> IngestAcceptedResponse:
    outcome = pipeline.submit(_to_request(user_id, body))
    return IngestAcceptedResponse(
        status="accepted" if outcome.accepted else "skipped",
        message_id=outcome.message_id,
        conversation_id=outcome.conversation_id,
        detail=outcome.detail,
    )


@router.post("/batch", response_model=BatchIngestResponse, summary="Ingest many messages and wait for completion")
def ingest_batch(
    body: BatchIngestRequest,
    user_id: str = Depends(get_current_user),
    pipeline: IngestPipeline = Depends(get_ingest_pipeline),
) -> BatchIngestResponse:
    stats = pipeline.batch_ingest([_to_request(user_id, message) for message in body.messages])
    return BatchIngestResponse(**stats.to_dict())
