"""Reranking helpers."""

from __future__ import annotations

from typing import Sequence

from rapidfuzz import fuzz

from chat_memory.retrieval.hybrid import RankedItem


class LexicalReranker:
    """Blend fused scores with rapidfuzz token-set similarity to the query."""

    def __init__(self, weight: float = 0.5) -> None:
        self.weight = weight

    def rerank(self, query: str, candidates: Sequence[RankedItem]) -> list[RankedItem]:
        if not candidates:
            return []
        top = max(abs(item.score) for item in candidates) or 1.0
        scored = []
        for item in candidates:
            similarity = fuzz.token_set_ratio(query, str(item.payload.get("content", ""))) / 100.0
            blended = (1 - self.weight) * (item.score / top) + self.weight * similarity
            scored.append(RankedItem(identifier=item.identifier, score=blended, payload=item.payload))
        return sorted(scored, key=lambda item: item.score, reverse=True)


def should_rerank(enabled: bool, override: bool | None) -> bool:
    if override is not None:
        return override
    return enabled


__all__ = ["LexicalReranker", "should_rerank"]
