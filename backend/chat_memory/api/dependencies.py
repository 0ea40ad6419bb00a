"""Shared FastAPI dependencies."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

import redis
from fastapi import Header, HTTPException

from chat_memory.core.config import Settings, get_settings
from chat_memory.core.logging import get_logger
from chat_memory.db.repository import ConversationRepository, ProfileRepository
from chat_memory.db.sqlite import SQLiteDatabase
from chat_memory.ingest.chunker import Chunker
from chat_memory.ingest.embeddings import CachedEmbedder, Embedder, HashedEmbedder, OpenRouterEmbedder
from chat_memory.ingest.pipeline import IngestPipeline
from chat_memory.ingest.sparse import SparseVectorGenerator, Vocabulary
from chat_memory.ingest.tokenizer import build_tokenizer
from chat_memory.memory.session import ConversationMemory
from chat_memory.memory.short_term import (
    ConversationCache,
    InMemoryConversationCache,
    RedisConversationCache,
)
from chat_memory.profile.engine import ProfileEngine
from chat_memory.retrieval import HybridRetriever, InMemoryVectorStore, VectorStore
from chat_memory.retrieval.qdrant_store import QdrantVectorStore

logger = get_logger(__name__)


@dataclass(slots=True)
class Components:
    """Every long-lived object of the process, wired once."""

    settings: Settings
    database: SQLiteDatabase
    conversations: ConversationRepository
    vocabulary: Vocabulary
    embedder: Embedder
    store: VectorStore
    cache: ConversationCache
    pipeline: IngestPipeline
    retriever: HybridRetriever
    profiles: ProfileEngine
    memory: ConversationMemory


_COMPONENTS: Components | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def build_components(settings: Settings) -> Components:
    database = SQLiteDatabase(settings.db_path)
    database.ensure_schema()
    conversations = ConversationRepository(database)

    redis_client = None
    if settings.redis_url:
        redis_client = redis.Redis.from_url(
            settings.redis_url,
            socket_timeout=settings.redis_timeout,
            socket_connect_timeout=settings.redis_timeout,
        )

    embedder = _build_embedder(settings, redis_client)
    store = _build_store(settings, embedder.dim)
    cache = _build_cache(settings, redis_client)

    vocabulary = Vocabulary()
    sparse = SparseVectorGenerator(vocabulary)
    chunker = Chunker(
        tokenizer=build_tokenizer(settings.tokenizer),
        chunk_size=settings.chunk_size,
        overlap=settings.chunk_overlap,
    )
    pipeline = IngestPipeline(settings, chunker, sparse, embedder, store)
    retriever = HybridRetriever(settings, embedder, sparse, store, cache=cache)
    profiles = ProfileEngine(
        ProfileRepository(database),
        conversations,
        history_limit=settings.profile_history_limit,
    )
    memory = ConversationMemory(settings, cache, conversations, pipeline, retriever, profiles)
    return Components(
        settings=settings,
        database=database,
        conversations=conversations,
        vocabulary=vocabulary,
        embedder=embedder,
        store=store,
        cache=cache,
        pipeline=pipeline,
        retriever=retriever,
        profiles=profiles,
        memory=memory,
    )


def _build_embedder(settings: Settings, redis_client: redis.Redis | None) -> Embedder:
    embedder: Embedder
    if settings.embedding_backend == "openrouter":
        embedder = OpenRouterEmbedder(
            settings.embedding_model,
            api_key=settings.openrouter_api_key,
            base_url=settings.openrouter_base_url,
            dim=settings.embedding_dim,
            timeout=settings.embedding_timeout,
        )
    else:
        embedder = HashedEmbedder(dim=settings.embedding_dim)
    if redis_client is not None:
        embedder = CachedEmbedder(embedder, redis_client, ttl=settings.embedding_cache_ttl)
    return embedder


def _build_store(settings: Settings, dim: int) -> VectorStore:
    if not settings.qdrant_url:
        return InMemoryVectorStore(dim)
    store = QdrantVectorStore.from_settings(settings, dim)
    if settings.rag_enabled:
        store.ensure_collection()
    return store


def _build_cache(settings: Settings, redis_client: redis.Redis | None) -> ConversationCache:
    if redis_client is not None:
        return RedisConversationCache(
            redis_client,
            ttl=settings.short_term_ttl,
            max_entries=settings.short_term_max_entries,
        )
    return InMemoryConversationCache(
        ttl=settings.short_term_ttl,
        max_entries=settings.short_term_max_entries,
        sweep_interval=settings.sweep_interval,
    )


def init_components() -> Components:
    global _COMPONENTS
    if _COMPONENTS is None:
        _COMPONENTS = build_components(get_app_settings())
        _COMPONENTS.memory.start()
        logger.info(
            "Memory components ready",
            extra={
                "ctx_vector_store": type(_COMPONENTS.store).__name__,
                "ctx_cache": type(_COMPONENTS.cache).__name__,
            },
        )
    return _COMPONENTS


def shutdown_components() -> None:
    global _COMPONENTS
    if _COMPONENTS is None:
        return
    _COMPONENTS.memory.stop()
    _COMPONENTS.database.close()
    _COMPONENTS = None


def get_components() -> Components:
    return init_components()


def get_memory() -> ConversationMemory:
    return get_components().memory


def get_ingest_pipeline() -> IngestPipeline:
    return get_components().pipeline


def get_profile_engine() -> ProfileEngine:
    return get_components().profiles


def get_current_user(x_user_id: str | None = Header(default=None)) -> str:
    """Caller identity as asserted by the upstream gateway."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


__all__ = [
    "Components",
    "build_components",
    "init_components",
    "shutdown_components",
    "get_app_settings",
    "get_components",
    "get_memory",
    "get_ingest_pipeline",
    "get_profile_engine",
    "get_current_user",
]
