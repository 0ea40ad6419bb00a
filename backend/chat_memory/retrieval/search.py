"""Hybrid retrieval with a fallback ladder, and prompt formatting."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Sequence

from chat_memory.core.config import Settings
from chat_memory.core.errors import BackendUnavailableError
from chat_memory.core.logging import get_logger
from chat_memory.core.metrics import RETRIEVAL_ATTEMPTS, RETRIEVAL_LATENCY
from chat_memory.ingest.embeddings import Embedder
from chat_memory.ingest.sparse import SparseVectorGenerator
from chat_memory.memory.short_term import ConversationCache
from chat_memory.models.entities import (
    ConversationTurn,
    RetrievalContext,
    RetrievedChunk,
    SparseVector,
)
from chat_memory.retrieval.hybrid import RankedItem, reciprocal_rank_fusion, single_ranking, weighted_fusion
from chat_memory.retrieval.rerank import LexicalReranker, should_rerank
from chat_memory.retrieval.vector_store import SearchFilter, VectorStore
from chat_memory.utils.time import utc_now

logger = get_logger(__name__)


@dataclass(slots=True)
class _StageResult:
    stage: str
    ranked: list[RankedItem]


class HybridRetriever:
    """Coordinates dense, sparse and short-term retrieval.

    Long-term search walks a ladder of progressively looser attempts:
    hybrid within the time window, hybrid without it, then dense-only and
    sparse-only when hybrid search itself failed. Any stage reaching
    ``min_results`` ends the walk; otherwise the largest result set seen is
    used. Backend errors never escape ``retrieve``.
    """

    def __init__(
        self,
        settings: Settings,
        embedder: Embedder,
        sparse: SparseVectorGenerator,
        store: VectorStore,
        cache: ConversationCache | None = None,
        reranker: LexicalReranker | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings
        self.embedder = embedder
        self.sparse = sparse
        self.store = store
        self.cache = cache
        self.reranker = reranker or LexicalReranker()
        self._clock = clock

    def retrieve(
        self,
        user_id: str,
        query: str,
        current_conversation_id: str | None = None,
        short_term_messages: Sequence[ConversationTurn] | None = None,
        time_window_days: int | None = None,
        rerank: bool | None = None,
    ) -> RetrievalContext:
        short_term = self._short_term(current_conversation_id, short_term_messages)
        if not self.settings.rag_enabled or not query.strip():
            return RetrievalContext(chunks=[], short_term_context=short_term)

        window = self.settings.time_window_days if time_window_days is None else time_window_days
        flt = SearchFilter(
            user_id=user_id,
            since=self._clock() - timedelta(days=window) if window else None,
            exclude_conversation_id=current_conversation_id,
        )
        start_time = time.perf_counter()
        ranked = self._long_term(query, flt)
        if ranked and should_rerank(self.settings.rerank_enabled, rerank):
            ranked = self.reranker.rerank(query, ranked)
        RETRIEVAL_LATENCY.observe(time.perf_counter() - start_time)

        chunks = [RetrievedChunk.from_payload(item.payload, item.score) for item in ranked[: self.settings.top_k_final]]
        return RetrievalContext(chunks=chunks, short_term_context=short_term)

    # ------------------------------------------------------------------

    def _short_term(
        self,
        conversation_id: str | None,
        provided: Sequence[ConversationTurn] | None,
    ) -> list[ConversationTurn]:
        limit = self.settings.short_term_context_turns
        if provided is not None:
            turns = list(provided)
        elif conversation_id and self.cache is not None:
            try:
                turns = self.cache.get(conversation_id)
            except BackendUnavailableError as exc:
                logger.warning("Short-term cache unavailable: %s", exc)
                turns = []
        else:
            turns = []
        return turns[-limit:] if limit else []

    def _long_term(self, query: str, flt: SearchFilter) -> list[RankedItem]:
        dense_vector = self._embed_query(query)
        sparse_vector = self.sparse.generate_query(query)

        hybrid_stages = []
        if flt.since is not None:
            hybrid_stages.append(("hybrid_windowed", flt))
        hybrid_stages.append(("hybrid", flt.without_time_window()))

        best: _StageResult | None = None
        hybrid_available = False
        for stage, stage_filter in hybrid_stages:
            result = self._attempt(stage, lambda f=stage_filter: self._hybrid(dense_vector, sparse_vector, f))
            if result is None:
                continue
            hybrid_available = True
            best = _better(best, result)
            if len(result.ranked) >= self.settings.min_results:
                return result.ranked

        if not hybrid_available:
            unbounded = flt.without_time_window()
            single_stages = (
                ("dense", lambda: single_ranking(self._dense(dense_vector, unbounded))),
                ("sparse", lambda: single_ranking(self._sparse(sparse_vector, unbounded))),
            )
            for stage, run in single_stages:
                result = self._attempt(stage, run)
                if result is None:
                    continue
                best = _better(best, result)
                if len(result.ranked) >= self.settings.min_results:
                    return result.ranked

        if best is None:
            logger.warning("Long-term memory unavailable; continuing with short-term context only")
            return []
        return best.ranked

    def _attempt(self, stage: str, run: Callable[[], list[RankedItem]]) -> _StageResult | None:
        try:
            ranked = run()
        except Exception as exc:
            logger.warning("Retrieval stage %s failed: %s", stage, exc, extra={"ctx_stage": stage})
            RETRIEVAL_ATTEMPTS.labels(stage=stage, outcome="error").inc()
            return None
        outcome = "ok" if len(ranked) >= self.settings.min_results else "insufficient"
        RETRIEVAL_ATTEMPTS.labels(stage=stage, outcome=outcome).inc()
        return _StageResult(stage=stage, ranked=ranked)

    def _embed_query(self, query: str) -> list[float] | None:
        try:
            return self.embedder.encode([query]).vectors[0]
        except Exception as exc:
            logger.warning("Query embedding failed: %s", exc)
            return None

    def _hybrid(self, dense_vector: list[float] | None, sparse_vector: SparseVector, flt: SearchFilter) -> list[RankedItem]:
        dense_hits = self._dense(dense_vector, flt)
        sparse_hits = self._sparse(sparse_vector, flt)
        if self.settings.fusion == "weighted":
            return weighted_fusion(dense_hits, sparse_hits, dense_weight=self.settings.dense_weight)
        return reciprocal_rank_fusion([dense_hits, sparse_hits], k=self.settings.rrf_k)

    def _dense(self, dense_vector: list[float] | None, flt: SearchFilter):
        if dense_vector is None:
            raise BackendUnavailableError("Query embedding unavailable")
        return self.store.search_dense(dense_vector, flt, self.settings.top_k_dense)

    def _sparse(self, sparse_vector: SparseVector, flt: SearchFilter):
        if not len(sparse_vector):
            return []
        return self.store.search_sparse(sparse_vector, flt, self.settings.top_k_sparse)


def _better(current: _StageResult | None, candidate: _StageResult) -> _StageResult:
    if current is None or len(candidate.ranked) > len(current.ranked):
        return candidate
    return current


def format_context(context: RetrievalContext, now: datetime | None = None) -> str:
    """Render retrieval output as a single block for the completion prompt."""
    now = now or utc_now()
    sections: list[str] = []
    if context.chunks:
        lines = ["Relevant context from earlier conversations:"]
        ordered = sorted(context.chunks, key=lambda chunk: chunk.score, reverse=True)
        for position, chunk in enumerate(ordered, start=1):
            markers = [chunk.timestamp.strftime("%Y-%m-%d"), _age(now, chunk.timestamp)]
            if chunk.is_code:
                markers.append("code")
            lines.append(f"[{position}] ({', '.join(markers)})")
            lines.append(chunk.content.strip())
        sections.append("\n".join(lines))
    if context.short_term_context:
        lines = ["Recent messages in this conversation:"]
        ordered_turns = sorted(
            enumerate(context.short_term_context),
            key=lambda pair: (pair[1].created_at, pair[0]),
        )
        for _, turn in ordered_turns:
            lines.append(f"{turn.role}: {turn.content.strip()}")
        sections.append("\n".join(lines))
    return "\n\n".join(sections)


def _age(now: datetime, then: datetime) -> str:
    days = (now - then).days
    if days <= 0:
        return "today"
    if days == 1:
        return "yesterday"
    if days < 30:
        return f"{days} days ago"
    if days < 365:
        return f"{days // 30} months ago"
    return f"{days // 365} years ago"


__all__ = ["HybridRetriever", "format_context"]
