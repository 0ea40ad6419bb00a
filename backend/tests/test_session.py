"""Tests for the conversation memory facade."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from chat_memory.core.errors import ConversationNotFoundError, IngestValidationError, ProfileNotFoundError
from chat_memory.db.repository import ConversationRepository, ProfileRepository
from chat_memory.ingest.chunker import Chunker
from chat_memory.ingest.embeddings import HashedEmbedder
from chat_memory.ingest.pipeline import IngestPipeline
from chat_memory.ingest.sparse import SparseVectorGenerator, Vocabulary
from chat_memory.memory.session import ConversationMemory
from chat_memory.memory.short_term import InMemoryConversationCache
from chat_memory.profile.engine import ProfileEngine
from chat_memory.retrieval.search import HybridRetriever
from chat_memory.retrieval.vector_store import InMemoryVectorStore


@pytest.fixture
def memory(settings, database):
    sparse = SparseVectorGenerator(Vocabulary())
    embedder = HashedEmbedder(dim=64)
    store = InMemoryVectorStore(64)
    cache = InMemoryConversationCache(ttl=300, max_entries=10)
    conversations = ConversationRepository(database)
    pipeline = IngestPipeline(settings, Chunker(), sparse, embedder, store)
    retriever = HybridRetriever(settings, embedder, sparse, store, cache=cache)
    profiles = ProfileEngine(ProfileRepository(database), conversations)
    instance = ConversationMemory(settings, cache, conversations, pipeline, retriever, profiles)
    yield instance
    instance.stop()


def test_record_exchange_orders_turns(memory: ConversationMemory) -> None:
    recorded = memory.record_exchange("u1", "c1", "What is a JWT?", "A signed token.", model_id="gpt")
    assert recorded.ingest_accepted is True
    assert recorded.assistant_message_id is not None

    turns = memory.cache.get("c1")
    assert [turn.role for turn in turns] == ["user", "assistant"]
    assert turns[1].created_at - turns[0].created_at == pytest.approx(0.001, abs=1e-4)

    stored = memory.conversations.list_messages("c1")
    assert [message.content for message in stored] == ["What is a JWT?", "A signed token."]
    assert stored[1].model_id == "gpt"


def test_record_exchange_feeds_memory_and_profile(memory: ConversationMemory) -> None:
    memory.record_exchange("u1", "c1", "Our postgres database keeps timing out", "Check the pool size.")
    assert memory.wait_idle(timeout=5)
    assert memory.pipeline.store.size == 2

    profile = memory.profiles.get_profile("u1")
    assert profile.message_count == 1
    assert profile.topic_frequency == {"backend": 1.0}

    context, formatted = memory.build_context("u1", "postgres database timeouts", conversation_id="c2")
    assert any("postgres" in chunk.content for chunk in context.chunks)
    assert "postgres" in formatted


def test_periodic_full_inference(settings, memory: ConversationMemory) -> None:
    settings.profile_refresh_every = 2
    memory.record_exchange("u1", "c1", "deadlock in my mutex")
    memory.wait_idle(timeout=5)
    assert memory.profiles.get_profile("u1").version == 1
    memory.record_exchange("u1", "c1", "race condition in the event loop")
    memory.wait_idle(timeout=5)
    # incremental update then full inference
    assert memory.profiles.get_profile("u1").version == 3


def test_short_term_history_repopulates_from_store(memory: ConversationMemory) -> None:
    memory.record_exchange("u1", "c1", "first question", "first answer")
    memory.cache.delete("c1")
    history = memory.short_term_history("c1")
    assert [turn.content for turn in history] == ["first question", "first answer"]
    assert len(memory.cache.get("c1")) == 2


def test_build_context_uses_short_term(memory: ConversationMemory) -> None:
    memory.record_exchange("u1", "c1", "remember the codename bluebird", "Noted.")
    context, formatted = memory.build_context("u1", "what was the codename", conversation_id="c1")
    assert [turn.content for turn in context.short_term_context] == ["remember the codename bluebird", "Noted."]
    assert formatted.endswith("assistant: Noted.")


def test_delete_conversation_cascades(memory: ConversationMemory) -> None:
    memory.record_exchange("u1", "c1", "something to forget", "Forgotten soon.")
    memory.wait_idle(timeout=5)
    memory.delete_conversation("u1", "c1")
    assert memory.conversations.list_messages("c1") == []
    assert memory.cache.get("c1") == []
    assert memory.pipeline.store.size == 0


def test_conversation_ownership_enforced(memory: ConversationMemory) -> None:
    memory.record_exchange("u1", "c1", "private")
    with pytest.raises(ConversationNotFoundError):
        memory.record_exchange("u2", "c1", "intrusion")
    with pytest.raises(ConversationNotFoundError):
        memory.delete_conversation("u2", "c1")


def test_foreign_conversation_adds_no_recent_turns(memory: ConversationMemory) -> None:
    memory.record_exchange("u1", "c1", "my api token is abc123", "Stored.")
    context, formatted = memory.build_context("u2", "api token", conversation_id="c1")
    assert context.short_term_context == []
    assert "abc123" not in formatted


def test_concurrent_first_writes_share_one_conversation(memory: ConversationMemory) -> None:
    barrier = threading.Barrier(8)

    def write(idx: int):
        barrier.wait()
        return memory.record_exchange("u1", "fresh", f"message {idx}")

    with ThreadPoolExecutor(max_workers=8) as pool:
        recorded = list(pool.map(write, range(8)))
    assert len(recorded) == 8
    assert len(memory.conversations.list_messages("fresh")) == 8
    assert memory.conversations.ensure_conversation("u2", "fresh") is False
    assert memory.conversations.owner_of("fresh") == "u1"


def test_empty_user_message_rejected(memory: ConversationMemory) -> None:
    with pytest.raises(IngestValidationError):
        memory.record_exchange("u1", "c1", "   ")
    with pytest.raises(ProfileNotFoundError):
        memory.profiles.get_profile("u1")
