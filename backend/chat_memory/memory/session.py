"""Conversation memory facade used by the HTTP layer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from chat_memory.core.background import BackgroundRunner
from chat_memory.core.config import Settings
from chat_memory.core.errors import BackendUnavailableError, ConversationNotFoundError, IngestValidationError
from chat_memory.core.logging import bind_logger, get_logger
from chat_memory.db.repository import ConversationRepository, NewMessage
from chat_memory.ingest.pipeline import IngestPipeline
from chat_memory.ingest.types import IngestRequest
from chat_memory.memory.short_term import ConversationCache
from chat_memory.models.entities import ConversationTurn, RetrievalContext
from chat_memory.profile.engine import ProfileEngine
from chat_memory.retrieval.search import HybridRetriever, format_context
from chat_memory.utils.ids import new_id
from chat_memory.utils.time import now_ms

logger = get_logger(__name__)


@dataclass(slots=True)
class RecordedExchange:
    conversation_id: str
    user_message_id: str
    assistant_message_id: str | None
    ingest_accepted: bool


class ConversationMemory:
    """Record exchanges and assemble context across the memory components."""

    def __init__(
        self,
        settings: Settings,
        cache: ConversationCache,
        conversations: ConversationRepository,
        pipeline: IngestPipeline,
        retriever: HybridRetriever,
        profiles: ProfileEngine,
        runner: BackgroundRunner | None = None,
    ) -> None:
        self.settings = settings
        self.cache = cache
        self.conversations = conversations
        self.pipeline = pipeline
        self.retriever = retriever
        self.profiles = profiles
        self.runner = runner or BackgroundRunner("profile", workers=2)

    def start(self) -> None:
        self.cache.start()

    def stop(self) -> None:
        self.cache.stop()
        self.runner.shutdown()
        self.pipeline.shutdown()

    def wait_idle(self, timeout: float | None = None) -> bool:
        profile_idle = self.runner.wait_idle(timeout)
        return self.pipeline.wait_idle(timeout) and profile_idle

    def record_exchange(
        self,
        user_id: str,
        conversation_id: str,
        user_content: str,
        assistant_content: str | None = None,
        model_id: str | None = None,
        title: str | None = None,
    ) -> RecordedExchange:
        """Persist one user turn and its optional reply.

        The assistant turn is stamped one millisecond after the user turn so
        the pair keeps its order under coarse clocks.
        """
        if not user_content.strip():
            raise IngestValidationError(["content"])
        if not self.conversations.ensure_conversation(user_id, conversation_id, title=title):
            raise ConversationNotFoundError(conversation_id)
        created = now_ms()
        messages = [NewMessage(role="user", content=user_content, created_at=created, id=new_id("msg"))]
        if assistant_content and assistant_content.strip():
            messages.append(
                NewMessage(
                    role="assistant",
                    content=assistant_content,
                    model_id=model_id,
                    created_at=created + 1,
                    id=new_id("msg"),
                )
            )
        self.conversations.add_messages(conversation_id, messages)

        for message in messages:
            self._cache_add(conversation_id, _turn(message))

        accepted = True
        for message in messages:
            outcome = self.pipeline.submit(
                IngestRequest(
                    user_id=user_id,
                    conversation_id=conversation_id,
                    message_id=message.id or "",
                    content=message.content,
                    role=message.role,
                    model_used=message.model_id,
                    timestamp=_from_ms(message.created_at or created),
                )
            )
            accepted = accepted and outcome.accepted

        bind_logger(logger, user_id=user_id, conversation_id=conversation_id).debug(
            "Recorded %s turns", len(messages)
        )
        self.runner.submit(self._update_profile, user_id, _turn(messages[0]))
        return RecordedExchange(
            conversation_id=conversation_id,
            user_message_id=messages[0].id or "",
            assistant_message_id=messages[1].id if len(messages) > 1 else None,
            ingest_accepted=accepted,
        )

    def short_term_history(self, conversation_id: str) -> list[ConversationTurn]:
        """Cached turns, reloaded from the relational store when the cache has none."""
        try:
            turns = self.cache.get(conversation_id)
        except BackendUnavailableError as exc:
            logger.warning("Short-term cache unavailable: %s", exc)
            return self._stored_turns(conversation_id)[-self.cache.max_entries :]
        if turns:
            return turns
        stored = self._stored_turns(conversation_id)[-self.cache.max_entries :]
        for turn in stored:
            self._cache_add(conversation_id, turn)
        if stored:
            logger.debug("Repopulated short-term cache for %s with %s turns", conversation_id, len(stored))
        return stored

    def build_context(
        self,
        user_id: str,
        query: str,
        conversation_id: str | None = None,
        time_window_days: int | None = None,
        rerank: bool | None = None,
    ) -> tuple[RetrievalContext, str]:
        history: list[ConversationTurn] | None = None
        if conversation_id:
            # another user's conversation contributes no recent turns
            owned = self.conversations.owner_of(conversation_id) == user_id
            history = self.short_term_history(conversation_id) if owned else []
        context = self.retriever.retrieve(
            user_id,
            query,
            current_conversation_id=conversation_id,
            short_term_messages=history,
            time_window_days=time_window_days,
            rerank=rerank,
        )
        return context, format_context(context)

    def delete_conversation(self, user_id: str, conversation_id: str) -> None:
        """Remove relational rows, the cache entry and the conversation's memory points."""
        if self.conversations.owner_of(conversation_id) != user_id:
            raise ConversationNotFoundError(conversation_id)
        log = bind_logger(logger, user_id=user_id, conversation_id=conversation_id)
        self.conversations.delete_conversation(conversation_id)
        try:
            self.cache.delete(conversation_id)
        except BackendUnavailableError as exc:
            log.warning("Short-term cache delete failed: %s", exc)
        try:
            self.pipeline.delete_conversation(user_id, conversation_id)
        except BackendUnavailableError as exc:
            log.warning("Vector store delete failed: %s", exc)

    def _update_profile(self, user_id: str, turn: ConversationTurn) -> None:
        profile = self.profiles.incremental_update(user_id, turn)
        every = self.settings.profile_refresh_every
        if every and profile.message_count % every == 0:
            logger.info("Scheduled profile re-inference for %s", user_id)
            self.profiles.infer_profile(user_id)

    def _cache_add(self, conversation_id: str, turn: ConversationTurn) -> None:
        try:
            self.cache.add(conversation_id, turn)
        except BackendUnavailableError as exc:
            logger.warning("Short-term cache write failed for %s: %s", conversation_id, exc)

    def _stored_turns(self, conversation_id: str) -> list[ConversationTurn]:
        return [
            ConversationTurn(
                role=message.role,
                content=message.content,
                model_id=message.model_id,
                created_at=message.created_at.timestamp(),
            )
            for message in self.conversations.list_messages(conversation_id)
        ]


def _turn(message: NewMessage) -> ConversationTurn:
    return ConversationTurn(
        role=message.role,
        content=message.content,
        model_id=message.model_id,
        created_at=(message.created_at or now_ms()) / 1000,
    )


def _from_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


__all__ = ["ConversationMemory", "RecordedExchange"]
