"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

REQUEST_COUNT = Counter(
    "chatmem_requests_total",
    "Total HTTP requests",
    labelnames=("endpoint", "method", "status"),
    registry=REGISTRY,
)

REQUEST_LATENCY = Histogram(
    "chatmem_request_latency_seconds",
    "Latency of HTTP requests",
    labelnames=("endpoint", "method"),
    registry=REGISTRY,
)

INGESTED_FRAGMENTS = Counter(
    "chatmem_ingested_fragments_total",
    "Fragments written to the vector store",
    labelnames=("role",),
    registry=REGISTRY,
)

INGEST_FAILURES = Counter(
    "chatmem_ingest_failures_total",
    "Background ingestion jobs that failed",
    registry=REGISTRY,
)

RETRIEVAL_ATTEMPTS = Counter(
    "chatmem_retrieval_attempts_total",
    "Retrieval fallback stages attempted",
    labelnames=("stage", "outcome"),
    registry=REGISTRY,
)

RETRIEVAL_LATENCY = Histogram(
    "chatmem_retrieval_latency_seconds",
    "Latency of long-term retrieval including fallbacks",
    registry=REGISTRY,
)

SHORT_TERM_EVICTIONS = Counter(
    "chatmem_short_term_evictions_total",
    "Short-term conversation entries evicted by the sweeper",
    registry=REGISTRY,
)

VOCABULARY_SIZE = Gauge(
    "chatmem_sparse_vocabulary_terms",
    "Number of terms interned in the sparse vocabulary",
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "INGESTED_FRAGMENTS",
    "INGEST_FAILURES",
    "RETRIEVAL_ATTEMPTS",
    "RETRIEVAL_LATENCY",
    "SHORT_TERM_EVICTIONS",
    "VOCABULARY_SIZE",
    "metrics_response",
]
