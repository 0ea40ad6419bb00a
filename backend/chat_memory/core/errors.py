"""Exception hierarchy shared by the memory components."""

from __future__ import annotations

from typing import Sequence


class ChatMemoryError(Exception):
    """Base class for all chat memory errors."""


class IngestValidationError(ChatMemoryError):
    """Required ingestion fields were missing or empty."""

    def __init__(self, missing: Sequence[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Missing required fields: {', '.join(self.missing)}")


class ProfileNotFoundError(ChatMemoryError):
    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"Profile not found for user {user_id}")


class ConversationNotFoundError(ChatMemoryError):
    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        super().__init__(f"Conversation not found: {conversation_id}")


class ConfigurationError(ChatMemoryError):
    """A selected backend is missing required configuration."""


class BackendUnavailableError(ChatMemoryError):
    """A vector store, embedding provider or cache call failed or timed out."""


__all__ = [
    "ChatMemoryError",
    "IngestValidationError",
    "ProfileNotFoundError",
    "ConversationNotFoundError",
    "ConfigurationError",
    "BackendUnavailableError",
]
