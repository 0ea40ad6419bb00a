"""Term-frequency sparse vectors over a shared, append-only vocabulary."""

from __future__ import annotations

import re
import threading
from collections import Counter

from chat_memory.core.metrics import VOCABULARY_SIZE
from chat_memory.models.entities import SparseVector

_STRIP_RE = re.compile(r"[^\w\s]", re.UNICODE)


class Vocabulary:
    """Bijection from normalized term to integer id. Ids are never reused or compacted."""

    def __init__(self) -> None:
        self._ids: dict[str, int] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, term: object) -> bool:
        return term in self._ids

    def get(self, term: str) -> int | None:
        return self._ids.get(term)

    def intern(self, term: str) -> int:
        term_id = self._ids.get(term)
        if term_id is not None:
            return term_id
        with self._lock:
            term_id = self._ids.get(term)
            if term_id is None:
                term_id = len(self._ids)
                self._ids[term] = term_id
                VOCABULARY_SIZE.set(term_id + 1)
            return term_id


def sparse_tokens(text: str) -> list[str]:
    return _STRIP_RE.sub("", text.lower()).split()


class SparseVectorGenerator:
    def __init__(self, vocabulary: Vocabulary) -> None:
        self.vocabulary = vocabulary

    def generate(self, text: str) -> SparseVector:
        """Normalized term frequency; values sum to 1.0 for non-empty input."""
        tokens = sparse_tokens(text)
        if not tokens:
            return SparseVector()
        counts = Counter(self.vocabulary.intern(token) for token in tokens)
        total = len(tokens)
        indices = sorted(counts)
        return SparseVector(indices=indices, values=[counts[idx] / total for idx in indices])

    def generate_query(self, text: str) -> SparseVector:
        """Like ``generate`` but never grows the vocabulary; unknown terms cannot match."""
        tokens = sparse_tokens(text)
        if not tokens:
            return SparseVector()
        counts: Counter[int] = Counter()
        for token in tokens:
            term_id = self.vocabulary.get(token)
            if term_id is not None:
                counts[term_id] += 1
        total = len(tokens)
        indices = sorted(counts)
        return SparseVector(indices=indices, values=[counts[idx] / total for idx in indices])


__all__ = ["Vocabulary", "SparseVectorGenerator", "sparse_tokens"]
