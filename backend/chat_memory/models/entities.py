"""Internal dataclasses representing memory entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from chat_memory.utils.time import from_iso, to_iso, utc_now

Role = Literal["user", "assistant"]


@dataclass(slots=True)
class ConversationTurn:
    """One message of a conversation as kept by the short-term cache."""

    role: Role
    content: str
    model_id: str | None = None
    created_at: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "model_id": self.model_id,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConversationTurn":
        return cls(
            role=data["role"],
            content=data["content"],
            model_id=data.get("model_id"),
            created_at=float(data.get("created_at") or 0.0),
        )


@dataclass(slots=True)
class SparseVector:
    indices: list[int] = field(default_factory=list)
    values: list[float] = field(default_factory=list)

    def as_dict(self) -> dict[int, float]:
        return dict(zip(self.indices, self.values))

    def __len__(self) -> int:
        return len(self.indices)


@dataclass(slots=True)
class Fragment:
    """A contiguous slice of one message, the unit of retrieval indexing."""

    message_id: str
    conversation_id: str
    user_id: str
    index: int
    content: str
    is_code: bool
    start_token: int
    end_token: int
    role: Role
    created_at: datetime = field(default_factory=utc_now)
    model_used: str | None = None
    profile_tags: list[str] = field(default_factory=list)

    def payload(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "conversation_id": self.conversation_id,
            "message_id": self.message_id,
            "chunk_index": self.index,
            "content": self.content,
            "is_code": self.is_code,
            "start_token": self.start_token,
            "end_token": self.end_token,
            "role": self.role,
            "timestamp": to_iso(self.created_at),
            "model_used": self.model_used,
            "profile_tags": list(self.profile_tags),
        }


@dataclass(slots=True)
class IndexedPoint:
    """Persisted unit in the vector store: one fragment and its vectors."""

    id: str
    dense: list[float] | None
    sparse: SparseVector
    payload: dict[str, Any]


@dataclass(slots=True)
class StoredHit:
    """A point returned by a vector store query, in store order."""

    id: str
    score: float
    payload: dict[str, Any]


@dataclass(slots=True)
class RetrievedChunk:
    content: str
    score: float
    conversation_id: str
    timestamp: datetime
    is_code: bool

    @classmethod
    def from_payload(cls, payload: dict[str, Any], score: float) -> "RetrievedChunk":
        return cls(
            content=str(payload.get("content", "")),
            score=float(score),
            conversation_id=str(payload.get("conversation_id", "")),
            timestamp=from_iso(payload.get("timestamp")),
            is_code=bool(payload.get("is_code", False)),
        )


@dataclass(slots=True)
class RetrievalContext:
    chunks: list[RetrievedChunk] = field(default_factory=list)
    short_term_context: list[ConversationTurn] = field(default_factory=list)


class TechnicalLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"

    @property
    def rank(self) -> int:
        return list(TechnicalLevel).index(self)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, TechnicalLevel):
            return NotImplemented
        return self.rank < other.rank


class ExplanationStyle(str, Enum):
    CONCISE = "concise"
    DETAILED = "detailed"
    EXAMPLE_HEAVY = "example-heavy"
    ANALOGY_HEAVY = "analogy-heavy"
    CODE_FIRST = "code-first"
    BULLET_POINTS = "bullet-points"


LOCKABLE_FIELDS = ("technical_level", "explanation_style")


@dataclass(slots=True)
class UserProfile:
    user_id: str
    technical_level: TechnicalLevel = TechnicalLevel.INTERMEDIATE
    explanation_style: ExplanationStyle = ExplanationStyle.DETAILED
    topic_frequency: dict[str, float] = field(default_factory=dict)
    likes: list[str] = field(default_factory=list)
    dislikes: list[str] = field(default_factory=list)
    message_count: int = 0
    last_updated: datetime = field(default_factory=utc_now)
    version: int = 1
    locked_fields: set[str] = field(default_factory=set)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "technical_level": self.technical_level.value,
            "explanation_style": self.explanation_style.value,
            "topic_frequency": dict(self.topic_frequency),
            "likes": list(self.likes),
            "dislikes": list(self.dislikes),
            "message_count": self.message_count,
            "last_updated": to_iso(self.last_updated),
            "version": self.version,
            "locked_fields": sorted(self.locked_fields),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserProfile":
        return cls(
            user_id=data["user_id"],
            technical_level=TechnicalLevel(data.get("technical_level", TechnicalLevel.INTERMEDIATE.value)),
            explanation_style=ExplanationStyle(data.get("explanation_style", ExplanationStyle.DETAILED.value)),
            topic_frequency={str(k).lower(): float(v) for k, v in (data.get("topic_frequency") or {}).items()},
            likes=list(data.get("likes") or []),
            dislikes=list(data.get("dislikes") or []),
            message_count=int(data.get("message_count") or 0),
            last_updated=from_iso(data.get("last_updated")),
            version=int(data.get("version") or 1),
            locked_fields=set(data.get("locked_fields") or []),
        )


@dataclass(slots=True)
class StoredMessage:
    """Row of the relational message table."""

    id: str
    conversation_id: str
    user_id: str
    role: Role
    content: str
    model_id: str | None
    created_at: datetime


__all__ = [
    "Role",
    "ConversationTurn",
    "SparseVector",
    "Fragment",
    "IndexedPoint",
    "StoredHit",
    "RetrievedChunk",
    "RetrievalContext",
    "TechnicalLevel",
    "ExplanationStyle",
    "LOCKABLE_FIELDS",
    "UserProfile",
    "StoredMessage",
]
