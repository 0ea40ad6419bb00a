"""Vector store abstraction and in-process implementation."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, Sequence

from chat_memory.ingest.embeddings import cosine
from chat_memory.models.entities import IndexedPoint, SparseVector, StoredHit
from chat_memory.utils.time import from_iso


@dataclass(slots=True)
class SearchFilter:
    """User-scoped payload filter shared by every store implementation."""

    user_id: str
    since: datetime | None = None
    exclude_conversation_id: str | None = None

    def without_time_window(self) -> "SearchFilter":
        return SearchFilter(user_id=self.user_id, exclude_conversation_id=self.exclude_conversation_id)

    def matches(self, payload: dict) -> bool:
        if payload.get("user_id") != self.user_id:
            return False
        if self.exclude_conversation_id and payload.get("conversation_id") == self.exclude_conversation_id:
            return False
        if self.since is not None and from_iso(payload.get("timestamp")) < self.since:
            return False
        return True


class VectorStore(Protocol):
    def ensure_collection(self) -> None: ...

    def upsert(self, points: Sequence[IndexedPoint]) -> None: ...

    def search_dense(self, vector: Sequence[float], flt: SearchFilter, limit: int) -> list[StoredHit]: ...

    def search_sparse(self, vector: SparseVector, flt: SearchFilter, limit: int) -> list[StoredHit]: ...

    def delete(
        self,
        user_id: str,
        conversation_id: str | None = None,
        before: datetime | None = None,
    ) -> None: ...


class InMemoryVectorStore:
    """Brute-force cosine and sparse dot-product search over points held in memory."""

    def __init__(self, dim: int) -> None:
        self.dim = dim
        self._points: dict[str, IndexedPoint] = {}
        self._lock = threading.RLock()

    @property
    def size(self) -> int:
        return len(self._points)

    def ensure_collection(self) -> None:
        return None

    def upsert(self, points: Sequence[IndexedPoint]) -> None:
        for point in points:
            if point.dense is not None and len(point.dense) != self.dim:
                raise ValueError("Vector dimension mismatch")
        with self._lock:
            for point in points:
                self._points[point.id] = point

    def search_dense(self, vector: Sequence[float], flt: SearchFilter, limit: int) -> list[StoredHit]:
        if len(vector) != self.dim:
            raise ValueError("Query vector dimension mismatch")
        with self._lock:
            candidates = [point for point in self._points.values() if flt.matches(point.payload)]
        scored = [
            StoredHit(id=point.id, score=cosine(point.dense, vector), payload=dict(point.payload))
            for point in candidates
            if point.dense is not None
        ]
        scored.sort(key=lambda hit: hit.score, reverse=True)
        return scored[:limit]

    def search_sparse(self, vector: SparseVector, flt: SearchFilter, limit: int) -> list[StoredHit]:
        query = vector.as_dict()
        if not query:
            return []
        with self._lock:
            candidates = [point for point in self._points.values() if flt.matches(point.payload)]
        scored: list[StoredHit] = []
        for point in candidates:
            score = sum(value * query.get(idx, 0.0) for idx, value in zip(point.sparse.indices, point.sparse.values))
            if score > 0:
                scored.append(StoredHit(id=point.id, score=score, payload=dict(point.payload)))
        scored.sort(key=lambda hit: hit.score, reverse=True)
        return scored[:limit]

    def delete(
        self,
        user_id: str,
        conversation_id: str | None = None,
        before: datetime | None = None,
    ) -> None:
        with self._lock:
            doomed = [
                point_id
                for point_id, point in self._points.items()
                if point.payload.get("user_id") == user_id
                and (conversation_id is None or point.payload.get("conversation_id") == conversation_id)
                and (before is None or from_iso(point.payload.get("timestamp")) < before)
            ]
            for point_id in doomed:
                del self._points[point_id]


__all__ = ["SearchFilter", "VectorStore", "InMemoryVectorStore"]
