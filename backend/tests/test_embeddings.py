"""Tests for embedding utilities."""

import fakeredis
import pytest
import requests

from chat_memory.core.errors import BackendUnavailableError, ConfigurationError
from chat_memory.ingest.embeddings import CachedEmbedder, HashedEmbedder, OpenRouterEmbedder, cosine


class _Response:
    def __init__(self, status_code: int, payload: dict | Exception) -> None:
        self.status_code = status_code
        self.ok = status_code < 400
        self._payload = payload

    def json(self) -> dict:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class _Session:
    def __init__(self, response: _Response | None = None, error: Exception | None = None) -> None:
        self.headers: dict[str, str] = {}
        self.response = response
        self.error = error
        self.calls: list[dict] = []

    def post(self, url: str, json: dict, timeout: float) -> _Response:
        self.calls.append({"url": url, "json": json, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


def test_hashed_embedder_is_normalized_and_deterministic() -> None:
    model = HashedEmbedder(dim=32)
    vectors = model.encode(["hello", "world"]).vectors
    assert len(vectors) == 2
    assert all(len(vec) == model.dim for vec in vectors)
    assert abs(sum(value * value for value in vectors[0]) - 1.0) < 1e-6
    assert model.encode(["hello"]).vectors[0] == vectors[0]
    assert cosine(vectors[0], vectors[0]) == pytest.approx(1.0)


def test_openrouter_requires_key() -> None:
    with pytest.raises(ConfigurationError):
        OpenRouterEmbedder("openai/text-embedding-3-small", api_key=None)


def test_openrouter_orders_vectors_by_index() -> None:
    session = _Session(
        _Response(200, {"data": [{"index": 1, "embedding": [0.0, 1.0]}, {"index": 0, "embedding": [1.0, 0.0]}]})
    )
    embedder = OpenRouterEmbedder("m", api_key="key", base_url="https://example.test/v1/", dim=2, session=session)
    batch = embedder.encode(["first", "second"])
    assert batch.vectors == [[1.0, 0.0], [0.0, 1.0]]
    assert session.calls[0]["url"] == "https://example.test/v1/embeddings"
    assert session.headers["Authorization"] == "Bearer key"


@pytest.mark.parametrize(
    "session",
    [
        _Session(error=requests.ConnectionError("refused")),
        _Session(_Response(503, {})),
        _Session(_Response(200, {"data": [{"index": 0, "embedding": [1.0, 0.0]}]})),
        _Session(_Response(200, ValueError("Expecting value: line 1 column 1"))),
        _Session(_Response(200, {"data": [{"index": 0}, {"index": 1}]})),
        _Session(_Response(200, {"data": [None, None]})),
    ],
)
def test_openrouter_failures_are_backend_errors(session: _Session) -> None:
    embedder = OpenRouterEmbedder("m", api_key="key", dim=2, session=session)
    with pytest.raises(BackendUnavailableError):
        embedder.encode(["a", "b"])


def test_cached_embedder_reuses_cached_vectors() -> None:
    client = fakeredis.FakeRedis()
    inner = HashedEmbedder(model_name="hashed", dim=16)
    cached = CachedEmbedder(inner, client, ttl=60)

    first = cached.encode(["memory"])
    assert first.backend == "hashed"
    key = cached.cache_key("memory")
    assert key.startswith("embedding:hashed:")
    assert len(key.split(":")[-1]) == 16
    assert 0 < client.ttl(key) <= 60

    second = cached.encode(["memory"])
    assert second.backend == "cache"
    assert second.vectors[0] == pytest.approx(first.vectors[0])


def test_cached_embedder_ignores_cache_failures() -> None:
    class BrokenClient:
        def get(self, key):
            raise ConnectionError("down")

        def setex(self, key, ttl, value):
            raise ConnectionError("down")

    cached = CachedEmbedder(HashedEmbedder(dim=8), BrokenClient())
    batch = cached.encode(["still works"])
    assert len(batch.vectors[0]) == 8
