"""Dense embedding providers."""

from __future__ import annotations

import hashlib
import math
import re
from dataclasses import dataclass
from typing import Iterable, Protocol, Sequence

import orjson
import requests

from chat_memory.core.errors import BackendUnavailableError, ConfigurationError
from chat_memory.core.logging import get_logger

logger = get_logger(__name__)

_TOKEN_RE = re.compile(r"\w+")


@dataclass(slots=True)
class EmbeddingBatch:
    vectors: list[list[float]]
    model: str
    dim: int
    backend: str


class Embedder(Protocol):
    model_name: str

    @property
    def dim(self) -> int: ...

    def encode(self, texts: Sequence[str]) -> EmbeddingBatch: ...


class HashedEmbedder:
    """Lightweight hashed embedding model with deterministic output."""

    def __init__(self, model_name: str = "hashed", dim: int = 384) -> None:
        self.model_name = model_name
        self._dim = dim

    @property
    def dim(self) -> int:
        return self._dim

    def encode(self, texts: Sequence[str]) -> EmbeddingBatch:
        vectors: list[list[float]] = []
        for text in texts:
            vector = [0.0] * self._dim
            for token in _tokenize(text):
                vector[_hash_token(token, self._dim)] += 1.0
            _normalize(vector)
            vectors.append(vector)
        return EmbeddingBatch(vectors=vectors, model=self.model_name, dim=self._dim, backend="hashed")


class OpenRouterEmbedder:
    """Client for an OpenAI-compatible ``/embeddings`` endpoint."""

    def __init__(
        self,
        model_name: str,
        api_key: str | None,
        base_url: str = "https://openrouter.ai/api/v1",
        dim: int = 1536,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError("openrouter_api_key is required for the openrouter embedding backend")
        self.model_name = model_name
        self._dim = dim
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {api_key}"})

    @property
    def dim(self) -> int:
        return self._dim

    def encode(self, texts: Sequence[str]) -> EmbeddingBatch:
        if not texts:
            return EmbeddingBatch(vectors=[], model=self.model_name, dim=self._dim, backend="openrouter")
        try:
            resp = self.session.post(
                f"{self.base_url}/embeddings",
                json={"model": self.model_name, "input": list(texts)},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise BackendUnavailableError(f"Embedding request failed: {exc}") from exc
        if not resp.ok:
            raise BackendUnavailableError(f"Embedding API error: {resp.status_code}")
        try:
            data = sorted(resp.json().get("data", []), key=lambda item: item.get("index", 0))
            vectors = [list(map(float, item["embedding"])) for item in data]
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise BackendUnavailableError(f"Malformed embedding response: {exc}") from exc
        if len(vectors) != len(texts):
            raise BackendUnavailableError(
                f"Embedding count mismatch: {len(vectors)} vectors for {len(texts)} texts"
            )
        return EmbeddingBatch(vectors=vectors, model=self.model_name, dim=self._dim, backend="openrouter")


class CachedEmbedder:
    """Wrap an embedder with a Redis key/value cache; cache failures are ignored."""

    def __init__(self, inner: Embedder, client, ttl: int = 86400) -> None:
        self.inner = inner
        self.client = client
        self.ttl = ttl
        self.model_name = inner.model_name

    @property
    def dim(self) -> int:
        return self.inner.dim

    def cache_key(self, text: str) -> str:
        digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]
        return f"embedding:{self.model_name}:{digest}"

    def encode(self, texts: Sequence[str]) -> EmbeddingBatch:
        vectors: list[list[float] | None] = [self._read(text) for text in texts]
        missing = [idx for idx, vector in enumerate(vectors) if vector is None]
        backend = "cache"
        if missing:
            batch = self.inner.encode([texts[idx] for idx in missing])
            backend = batch.backend
            for idx, vector in zip(missing, batch.vectors):
                vectors[idx] = vector
                self._write(texts[idx], vector)
        return EmbeddingBatch(
            vectors=[vector for vector in vectors if vector is not None],
            model=self.model_name,
            dim=self.dim,
            backend=backend,
        )

    def _read(self, text: str) -> list[float] | None:
        try:
            cached = self.client.get(self.cache_key(text))
        except Exception as exc:
            logger.warning("Embedding cache read failed: %s", exc)
            return None
        return orjson.loads(cached) if cached else None

    def _write(self, text: str, vector: list[float]) -> None:
        try:
            self.client.setex(self.cache_key(text), self.ttl, orjson.dumps(vector))
        except Exception as exc:
            logger.warning("Embedding cache write failed: %s", exc)


def _tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big") % dim


def _normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


def cosine(a: Iterable[float], b: Iterable[float]) -> float:
    a = list(a)
    b = list(b)
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


__all__ = [
    "Embedder",
    "EmbeddingBatch",
    "HashedEmbedder",
    "OpenRouterEmbedder",
    "CachedEmbedder",
    "cosine",
]
