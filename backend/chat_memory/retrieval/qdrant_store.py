"""Qdrant-backed vector store with a dense default vector and a sparse ``text`` vector."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Sequence

from qdrant_client import QdrantClient, models

from chat_memory.core.config import Settings
from chat_memory.core.errors import BackendUnavailableError
from chat_memory.core.logging import get_logger
from chat_memory.models.entities import IndexedPoint, SparseVector, StoredHit
from chat_memory.retrieval.vector_store import SearchFilter

logger = get_logger(__name__)

SPARSE_VECTOR_NAME = "text"

_PAYLOAD_INDEXES = (
    ("user_id", models.PayloadSchemaType.KEYWORD),
    ("conversation_id", models.PayloadSchemaType.KEYWORD),
    ("timestamp", models.PayloadSchemaType.DATETIME),
)


class QdrantVectorStore:
    def __init__(self, client: QdrantClient, collection: str, dim: int) -> None:
        self.client = client
        self.collection = collection
        self.dim = dim

    @classmethod
    def from_settings(cls, settings: Settings, dim: int) -> "QdrantVectorStore":
        client = QdrantClient(
            url=settings.qdrant_url,
            api_key=settings.qdrant_api_key,
            timeout=int(math.ceil(settings.qdrant_timeout)),
        )
        return cls(client, settings.qdrant_collection, dim)

    def ensure_collection(self) -> None:
        """Create the collection and payload indexes when missing; safe to repeat."""
        try:
            if self.client.collection_exists(self.collection):
                logger.info("Qdrant collection '%s' already exists", self.collection)
                return
            self.client.create_collection(
                collection_name=self.collection,
                vectors_config=models.VectorParams(size=self.dim, distance=models.Distance.COSINE),
                sparse_vectors_config={SPARSE_VECTOR_NAME: models.SparseVectorParams()},
            )
            for field_name, schema in _PAYLOAD_INDEXES:
                self.client.create_payload_index(
                    collection_name=self.collection,
                    field_name=field_name,
                    field_schema=schema,
                )
        except Exception as exc:
            raise BackendUnavailableError(f"Failed to initialise Qdrant collection: {exc}") from exc
        logger.info("Qdrant collection '%s' created", self.collection)

    def upsert(self, points: Sequence[IndexedPoint]) -> None:
        if not points:
            return
        structs = []
        for point in points:
            vector: dict[str, object] = {
                SPARSE_VECTOR_NAME: models.SparseVector(
                    indices=list(point.sparse.indices), values=list(point.sparse.values)
                )
            }
            if point.dense is not None:
                vector[""] = list(point.dense)
            structs.append(models.PointStruct(id=point.id, vector=vector, payload=point.payload))
        try:
            self.client.upsert(collection_name=self.collection, points=structs, wait=True)
        except Exception as exc:
            raise BackendUnavailableError(f"Qdrant upsert failed: {exc}") from exc

    def search_dense(self, vector: Sequence[float], flt: SearchFilter, limit: int) -> list[StoredHit]:
        return self._query(list(vector), None, flt, limit)

    def search_sparse(self, vector: SparseVector, flt: SearchFilter, limit: int) -> list[StoredHit]:
        if not vector.indices:
            return []
        query = models.SparseVector(indices=list(vector.indices), values=list(vector.values))
        return self._query(query, SPARSE_VECTOR_NAME, flt, limit)

    def delete(
        self,
        user_id: str,
        conversation_id: str | None = None,
        before: datetime | None = None,
    ) -> None:
        must: list[models.Condition] = [_match("user_id", user_id)]
        if conversation_id is not None:
            must.append(_match("conversation_id", conversation_id))
        if before is not None:
            must.append(models.FieldCondition(key="timestamp", range=models.DatetimeRange(lt=before)))
        try:
            self.client.delete(
                collection_name=self.collection,
                points_selector=models.FilterSelector(filter=models.Filter(must=must)),
                wait=True,
            )
        except Exception as exc:
            raise BackendUnavailableError(f"Qdrant delete failed: {exc}") from exc

    def _query(self, query, using: str | None, flt: SearchFilter, limit: int) -> list[StoredHit]:
        try:
            response = self.client.query_points(
                collection_name=self.collection,
                query=query,
                using=using,
                query_filter=_build_filter(flt),
                limit=limit,
                with_payload=True,
            )
        except Exception as exc:
            raise BackendUnavailableError(f"Qdrant search failed: {exc}") from exc
        return [
            StoredHit(id=str(point.id), score=float(point.score), payload=dict(point.payload or {}))
            for point in response.points
        ]


def _match(key: str, value: str) -> models.FieldCondition:
    return models.FieldCondition(key=key, match=models.MatchValue(value=value))


def _build_filter(flt: SearchFilter) -> models.Filter:
    must: list[models.Condition] = [_match("user_id", flt.user_id)]
    if flt.since is not None:
        must.append(models.FieldCondition(key="timestamp", range=models.DatetimeRange(gte=flt.since)))
    must_not = [_match("conversation_id", flt.exclude_conversation_id)] if flt.exclude_conversation_id else None
    return models.Filter(must=must, must_not=must_not)


__all__ = ["QdrantVectorStore", "SPARSE_VECTOR_NAME"]
