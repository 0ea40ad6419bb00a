"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from chat_memory.models.entities import (
    ConversationTurn,
    ExplanationStyle,
    RetrievalContext,
    TechnicalLevel,
    UserProfile,
)


class IngestMessageRequest(BaseModel):
    conversation_id: str | None = None
    message_id: str | None = None
    content: str | None = None
    role: str | None = None
    model_used: str | None = None
    timestamp: datetime | None = None


class IngestAcceptedResponse(BaseModel):
    status: Literal["accepted", "skipped"]
    message_id: str
    conversation_id: str
    detail: str | None = None


class BatchIngestRequest(BaseModel):
    messages: list[IngestMessageRequest] = Field(default_factory=list)


class BatchIngestResponse(BaseModel):
    ingested: int
    failed: int
    fragments: int
    errors: list[dict[str, Any]]


class RetrieveRequest(BaseModel):
    query: str
    conversation_id: str | None = None
    time_window_days: int | None = Field(default=None, ge=0)
    rerank: bool | None = None


class ChunkResult(BaseModel):
    content: str
    score: float
    conversation_id: str
    timestamp: datetime
    is_code: bool


class TurnResult(BaseModel):
    role: str
    content: str
    model_id: str | None = None

    @classmethod
    def from_turn(cls, turn: ConversationTurn) -> "TurnResult":
        return cls(role=turn.role, content=turn.content, model_id=turn.model_id)


class RetrieveResponse(BaseModel):
    chunks: list[ChunkResult]
    short_term_context: list[TurnResult]
    formatted: str

    @classmethod
    def from_context(cls, context: RetrievalContext, formatted: str) -> "RetrieveResponse":
        return cls(
            chunks=[
                ChunkResult(
                    content=chunk.content,
                    score=chunk.score,
                    conversation_id=chunk.conversation_id,
                    timestamp=chunk.timestamp,
                    is_code=chunk.is_code,
                )
                for chunk in context.chunks
            ],
            short_term_context=[TurnResult.from_turn(turn) for turn in context.short_term_context],
            formatted=formatted,
        )


class ProfileResponse(BaseModel):
    user_id: str
    technical_level: TechnicalLevel
    explanation_style: ExplanationStyle
    topic_frequency: dict[str, float]
    likes: list[str]
    dislikes: list[str]
    message_count: int
    last_updated: datetime
    version: int
    locked_fields: list[str]
    summary: str

    @classmethod
    def from_profile(cls, profile: UserProfile, summary: str) -> "ProfileResponse":
        return cls(
            user_id=profile.user_id,
            technical_level=profile.technical_level,
            explanation_style=profile.explanation_style,
            topic_frequency=dict(profile.topic_frequency),
            likes=list(profile.likes),
            dislikes=list(profile.dislikes),
            message_count=profile.message_count,
            last_updated=profile.last_updated,
            version=profile.version,
            locked_fields=sorted(profile.locked_fields),
            summary=summary,
        )


class ProfileUpdateRequest(BaseModel):
    technical_level: TechnicalLevel | None = None
    explanation_style: ExplanationStyle | None = None
    likes: list[str] = Field(default_factory=list)
    dislikes: list[str] = Field(default_factory=list)
    unlock: list[Literal["technical_level", "explanation_style"]] = Field(default_factory=list)


class RecordExchangeRequest(BaseModel):
    user_message: str = Field(min_length=1)
    assistant_message: str | None = None
    model_id: str | None = None
    title: str | None = None


class RecordExchangeResponse(BaseModel):
    conversation_id: str
    user_message_id: str
    assistant_message_id: str | None
    ingest_accepted: bool


class ShortTermResponse(BaseModel):
    conversation_id: str
    turns: list[TurnResult]


class PurgeRequest(BaseModel):
    days: int = Field(default=30, ge=0)


class StatusResponse(BaseModel):
    status: str
    detail: str | None = None


class RefreshActiveRequest(BaseModel):
    days: int | None = Field(default=None, ge=1)


class RefreshActiveResponse(BaseModel):
    refreshed: list[str]


__all__ = [
    "IngestMessageRequest",
    "IngestAcceptedResponse",
    "BatchIngestRequest",
    "BatchIngestResponse",
    "RetrieveRequest",
    "RetrieveResponse",
    "ChunkResult",
    "TurnResult",
    "ProfileResponse",
    "ProfileUpdateRequest",
    "RecordExchangeRequest",
    "RecordExchangeResponse",
    "ShortTermResponse",
    "PurgeRequest",
    "StatusResponse",
    "RefreshActiveRequest",
    "RefreshActiveResponse",
]
