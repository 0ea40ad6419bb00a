"""Retrieval orchestration components."""

from .vector_store import InMemoryVectorStore, SearchFilter, VectorStore
from .search import HybridRetriever, format_context
from .rerank import LexicalReranker
from .hybrid import reciprocal_rank_fusion, weighted_fusion

__all__ = [
    "InMemoryVectorStore",
    "SearchFilter",
    "VectorStore",
    "HybridRetriever",
    "format_context",
    "LexicalReranker",
    "reciprocal_rank_fusion",
    "weighted_fusion",
]
