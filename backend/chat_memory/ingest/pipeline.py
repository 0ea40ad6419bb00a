"""Ingest pipeline orchestration."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Sequence

from chat_memory.core.background import BackgroundRunner
from chat_memory.core.config import Settings
from chat_memory.core.errors import BackendUnavailableError, IngestValidationError
from chat_memory.core.logging import bind_logger, get_logger
from chat_memory.core.metrics import INGEST_FAILURES, INGESTED_FRAGMENTS
from chat_memory.ingest.chunker import Chunker, build_fragments
from chat_memory.ingest.embeddings import Embedder
from chat_memory.ingest.sparse import SparseVectorGenerator
from chat_memory.ingest.types import BatchIngestStats, IngestAccepted, IngestRequest
from chat_memory.models.entities import IndexedPoint
from chat_memory.profile.topics import extract_topics
from chat_memory.retrieval.vector_store import VectorStore
from chat_memory.utils.ids import point_id
from chat_memory.utils.time import days_ago, utc_now

logger = get_logger(__name__)


class IngestPipeline:
    """Coordinate chunking, vectorization and vector-store persistence."""

    def __init__(
        self,
        settings: Settings,
        chunker: Chunker,
        sparse: SparseVectorGenerator,
        embedder: Embedder,
        store: VectorStore,
        runner: BackgroundRunner | None = None,
    ) -> None:
        self.settings = settings
        self.chunker = chunker
        self.sparse = sparse
        self.embedder = embedder
        self.store = store
        self.runner = runner or BackgroundRunner(
            "ingest",
            workers=settings.ingest_workers,
            on_failure=lambda _exc: INGEST_FAILURES.inc(),
        )

    @property
    def enabled(self) -> bool:
        return self.settings.rag_enabled

    def submit(self, request: IngestRequest) -> IngestAccepted:
        """Validate now, persist later. Validation errors are raised to the caller."""
        missing = request.missing_fields()
        if missing:
            raise IngestValidationError(missing)
        if not self.enabled:
            logger.debug("Long-term memory disabled; dropping message %s", request.message_id)
            return IngestAccepted(
                message_id=request.message_id,
                conversation_id=request.conversation_id,
                accepted=False,
                detail="long-term memory disabled",
            )
        self.runner.submit(self.ingest_message, request)
        return IngestAccepted(message_id=request.message_id, conversation_id=request.conversation_id, accepted=True)

    def ingest_message(self, request: IngestRequest) -> int:
        """Chunk, vectorize and upsert one message. Returns the fragment count."""
        log = bind_logger(logger, user_id=request.user_id, conversation_id=request.conversation_id)
        chunks = self.chunker.chunk(request.content)
        if not chunks:
            log.warning("Message %s produced no fragments", request.message_id)
            return 0
        fragments = build_fragments(
            chunks,
            user_id=request.user_id,
            conversation_id=request.conversation_id,
            message_id=request.message_id,
            role=request.role,  # type: ignore[arg-type]
            created_at=request.timestamp or utc_now(),
            model_used=request.model_used,
            profile_tags=extract_topics(request.content),
        )
        texts = [fragment.content for fragment in fragments]
        try:
            dense: Sequence[list[float] | None] = self.embedder.encode(texts).vectors
        except BackendUnavailableError as exc:
            # sparse-only points still serve the sparse fallback
            log.warning("Embedding failed for message %s: %s", request.message_id, exc)
            dense = [None] * len(fragments)
        points = [
            IndexedPoint(
                id=point_id(fragment.message_id, fragment.index),
                dense=vector,
                sparse=self.sparse.generate(fragment.content),
                payload=fragment.payload(),
            )
            for fragment, vector in zip(fragments, dense)
        ]
        self.store.upsert(points)
        INGESTED_FRAGMENTS.labels(role=request.role).inc(len(points))
        log.info("Ingested %s fragments for message %s", len(points), request.message_id)
        return len(points)

    def batch_ingest(self, requests: Sequence[IngestRequest]) -> BatchIngestStats:
        """Ingest many messages synchronously with bounded concurrency."""
        stats = BatchIngestStats()
        valid: list[IngestRequest] = []
        for request in requests:
            missing = request.missing_fields()
            if missing:
                stats.failed += 1
                stats.errors.append({"message_id": request.message_id, "missing": missing})
            else:
                valid.append(request)
        if not valid or not self.enabled:
            return stats
        with ThreadPoolExecutor(max_workers=self.settings.batch_ingest_concurrency) as pool:
            futures = [(request, pool.submit(self.ingest_message, request)) for request in valid]
            for request, future in futures:
                try:
                    stats.fragments += future.result()
                    stats.ingested += 1
                except Exception as exc:
                    logger.exception("Batch ingest failed for message %s", request.message_id)
                    INGEST_FAILURES.inc()
                    stats.failed += 1
                    stats.errors.append({"message_id": request.message_id, "error": str(exc)})
        return stats

    def delete_conversation(self, user_id: str, conversation_id: str) -> None:
        self.store.delete(user_id, conversation_id=conversation_id)
        logger.info("Deleted memory for conversation %s", conversation_id, extra={"ctx_user_id": user_id})

    def purge_old_data(self, user_id: str, days: int = 30) -> None:
        cutoff = days_ago(days)
        self.store.delete(user_id, before=cutoff)
        logger.info("Purged memory older than %s days", days, extra={"ctx_user_id": user_id})

    def wait_idle(self, timeout: float | None = None) -> bool:
        return self.runner.wait_idle(timeout)

    def shutdown(self) -> None:
        self.runner.shutdown()


__all__ = ["IngestPipeline"]
