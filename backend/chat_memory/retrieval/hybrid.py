"""Hybrid search utilities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from chat_memory.models.entities import StoredHit


@dataclass(slots=True)
class RankedItem:
    identifier: str
    score: float
    payload: dict[str, Any]


def reciprocal_rank_fusion(results: Sequence[Sequence[StoredHit]], k: float = 60.0) -> list[RankedItem]:
    """Combine rankings using reciprocal rank fusion.

    Items are first registered in the order the store returned them, so the
    stable sort keeps that order between equal fused scores.
    """
    scores: dict[str, float] = {}
    payloads: dict[str, dict[str, Any]] = {}
    for hits in results:
        for rank, hit in enumerate(hits, start=1):
            scores[hit.id] = scores.get(hit.id, 0.0) + 1.0 / (k + rank)
            payloads.setdefault(hit.id, hit.payload)
    fused = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    return [RankedItem(identifier=hit_id, score=score, payload=payloads[hit_id]) for hit_id, score in fused]


def weighted_fusion(
    dense: Sequence[StoredHit],
    sparse: Sequence[StoredHit],
    dense_weight: float = 0.7,
) -> list[RankedItem]:
    """Weighted sum of min-max normalized dense and sparse scores."""
    dense_norm = _min_max(dense)
    sparse_norm = _min_max(sparse)
    scores: dict[str, float] = {}
    payloads: dict[str, dict[str, Any]] = {}
    for hit in dense:
        scores[hit.id] = dense_weight * dense_norm[hit.id]
        payloads.setdefault(hit.id, hit.payload)
    for hit in sparse:
        scores[hit.id] = scores.get(hit.id, 0.0) + (1.0 - dense_weight) * sparse_norm[hit.id]
        payloads.setdefault(hit.id, hit.payload)
    fused = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    return [RankedItem(identifier=hit_id, score=score, payload=payloads[hit_id]) for hit_id, score in fused]


def single_ranking(hits: Sequence[StoredHit]) -> list[RankedItem]:
    ordered = sorted(hits, key=lambda hit: hit.score, reverse=True)
    return [RankedItem(identifier=hit.id, score=hit.score, payload=hit.payload) for hit in ordered]


def _min_max(hits: Sequence[StoredHit]) -> dict[str, float]:
    if not hits:
        return {}
    values = [hit.score for hit in hits]
    low, high = min(values), max(values)
    if high == low:
        return {hit.id: 1.0 for hit in hits}
    return {hit.id: (hit.score - low) / (high - low) for hit in hits}


__all__ = ["RankedItem", "reciprocal_rank_fusion", "weighted_fusion", "single_ranking"]
