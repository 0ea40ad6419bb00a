"""Common ingestion data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

REQUIRED_FIELDS = ("user_id", "conversation_id", "message_id", "content", "role")


@dataclass(slots=True)
class IngestRequest:
    """One message to persist as long-term memory."""

    user_id: str
    conversation_id: str
    message_id: str
    content: str
    role: str
    model_used: str | None = None
    timestamp: datetime | None = None

    def missing_fields(self) -> list[str]:
        missing = [name for name in REQUIRED_FIELDS if not str(getattr(self, name) or "").strip()]
        if "role" not in missing and self.role not in ("user", "assistant"):
            missing.append("role")
        return missing


@dataclass(slots=True)
class IngestAccepted:
    """Synchronous answer to an ingestion request; execution continues in the background."""

    message_id: str
    conversation_id: str
    accepted: bool
    detail: str | None = None


@dataclass(slots=True)
class BatchIngestStats:
    ingested: int = 0
    failed: int = 0
    fragments: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ingested": self.ingested,
            "failed": self.failed,
            "fragments": self.fragments,
            "errors": list(self.errors),
        }


__all__ = ["REQUIRED_FIELDS", "IngestRequest", "IngestAccepted", "BatchIngestStats"]
