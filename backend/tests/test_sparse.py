"""Tests for sparse vectors and the shared vocabulary."""

import math
from concurrent.futures import ThreadPoolExecutor

from chat_memory.ingest.sparse import SparseVectorGenerator, Vocabulary, sparse_tokens


def test_weights_sum_to_one() -> None:
    generator = SparseVectorGenerator(Vocabulary())
    vector = generator.generate("Cache the cache, then CACHE again!")
    assert math.isclose(sum(vector.values), 1.0)
    weights = {idx: value for idx, value in zip(vector.indices, vector.values)}
    cache_id = generator.vocabulary.get("cache")
    assert math.isclose(weights[cache_id], 3 / 6)
    assert vector.indices == sorted(vector.indices)


def test_empty_text_gives_empty_vector() -> None:
    generator = SparseVectorGenerator(Vocabulary())
    for text in ("", "   ", "?!."):
        vector = generator.generate(text)
        assert vector.indices == []
        assert vector.values == []


def test_tokens_are_lowercased_and_stripped() -> None:
    assert sparse_tokens("Hello, World! it's") == ["hello", "world", "its"]


def test_ids_are_stable_across_calls() -> None:
    vocabulary = Vocabulary()
    generator = SparseVectorGenerator(vocabulary)
    first = generator.generate("alpha beta")
    second = generator.generate("beta alpha gamma")
    assert vocabulary.get("alpha") in first.indices
    assert set(first.indices) <= set(second.indices)
    assert len(vocabulary) == 3


def test_query_vectors_do_not_grow_vocabulary() -> None:
    vocabulary = Vocabulary()
    generator = SparseVectorGenerator(vocabulary)
    generator.generate("known words")
    vector = generator.generate_query("known unknown")
    assert len(vocabulary) == 2
    assert vector.indices == [vocabulary.get("known")]


def test_concurrent_interning_assigns_unique_ids() -> None:
    vocabulary = Vocabulary()
    terms = [f"term{i}" for i in range(500)]

    def intern_all(offset: int) -> list[int]:
        return [vocabulary.intern(term) for term in terms[offset:] + terms[:offset]]

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(intern_all, range(0, 400, 50)))

    ids = [vocabulary.get(term) for term in terms]
    assert len(vocabulary) == len(terms)
    assert sorted(ids) == list(range(len(terms)))
