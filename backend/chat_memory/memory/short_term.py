"""Short-term conversation cache with TTL refreshed on every read and write."""

from __future__ import annotations

import heapq
import threading
import time
import zlib
from dataclasses import dataclass, field
from typing import Callable, Protocol

import orjson
import redis

from chat_memory.core.errors import BackendUnavailableError
from chat_memory.core.logging import get_logger
from chat_memory.core.metrics import SHORT_TERM_EVICTIONS
from chat_memory.models.entities import ConversationTurn

logger = get_logger(__name__)

_LOCK_STRIPES = 64


class ConversationCache(Protocol):
    ttl: float
    max_entries: int

    def add(self, conversation_id: str, turn: ConversationTurn) -> None: ...

    def get(self, conversation_id: str) -> list[ConversationTurn]: ...

    def delete(self, conversation_id: str) -> bool: ...

    def sweep(self) -> int: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...


@dataclass(slots=True)
class _Entry:
    turns: list[ConversationTurn] = field(default_factory=list)
    deadline: float = 0.0


class InMemoryConversationCache:
    """Process-local cache; a background thread evicts expired conversations.

    Writers to the same conversation are serialized by a striped lock, so
    concurrent adds never lose each other. Deadlines live in a min-heap with
    lazy invalidation; a sweep only pops entries that are due.
    """

    def __init__(
        self,
        ttl: float = 300.0,
        max_entries: int = 100,
        sweep_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self.max_entries = max_entries
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._stripes = [threading.Lock() for _ in range(_LOCK_STRIPES)]
        self._heap: list[tuple[float, str]] = []
        self._heap_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, conversation_id: str, turn: ConversationTurn) -> None:
        with self._lock_for(conversation_id):
            entry = self._entries.get(conversation_id)
            if entry is None or self._expired(entry):
                entry = _Entry()
                self._entries[conversation_id] = entry
            entry.turns.append(turn)
            overflow = len(entry.turns) - self.max_entries
            if overflow > 0:
                del entry.turns[:overflow]
            self._touch(conversation_id, entry)

    def get(self, conversation_id: str) -> list[ConversationTurn]:
        with self._lock_for(conversation_id):
            entry = self._entries.get(conversation_id)
            if entry is None:
                return []
            if self._expired(entry):
                del self._entries[conversation_id]
                return []
            self._touch(conversation_id, entry)
            return list(entry.turns)

    def delete(self, conversation_id: str) -> bool:
        with self._lock_for(conversation_id):
            return self._entries.pop(conversation_id, None) is not None

    def sweep(self) -> int:
        """Evict every conversation whose deadline has passed."""
        now = self._clock()
        evicted = 0
        while True:
            with self._heap_lock:
                if not self._heap or self._heap[0][0] >= now:
                    break
                deadline, conversation_id = heapq.heappop(self._heap)
            with self._lock_for(conversation_id):
                entry = self._entries.get(conversation_id)
                # stale heap items belong to deadlines that were refreshed since
                if entry is not None and entry.deadline == deadline:
                    del self._entries[conversation_id]
                    evicted += 1
                    logger.debug("Evicting conversation %s", conversation_id)
        if evicted:
            SHORT_TERM_EVICTIONS.inc(evicted)
        return evicted

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="short-term-sweeper", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.sweep_interval):
            try:
                self.sweep()
            except Exception:  # pragma: no cover - keep the sweeper alive
                logger.exception("Short-term sweep failed")

    def _lock_for(self, conversation_id: str) -> threading.Lock:
        return self._stripes[zlib.crc32(conversation_id.encode("utf-8")) % _LOCK_STRIPES]

    def _expired(self, entry: _Entry) -> bool:
        return self._clock() > entry.deadline

    def _touch(self, conversation_id: str, entry: _Entry) -> None:
        entry.deadline = self._clock() + self.ttl
        with self._heap_lock:
            heapq.heappush(self._heap, (entry.deadline, conversation_id))


class RedisConversationCache:
    """Shared cache in Redis; key expiry replaces the sweeper.

    Appends run as one MULTI/EXEC (RPUSH, LTRIM, PEXPIRE) so concurrent writers
    to a conversation land in commit order.
    """

    def __init__(
        self,
        client: redis.Redis,
        ttl: float = 300.0,
        max_entries: int = 100,
        prefix: str = "conversation:",
    ) -> None:
        self.client = client
        self.ttl = ttl
        self.max_entries = max_entries
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, ttl: float, max_entries: int, timeout: float = 2.0) -> "RedisConversationCache":
        client = redis.Redis.from_url(url, socket_timeout=timeout, socket_connect_timeout=timeout)
        return cls(client, ttl=ttl, max_entries=max_entries)

    def add(self, conversation_id: str, turn: ConversationTurn) -> None:
        key = self._key(conversation_id)
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.rpush(key, orjson.dumps(turn.to_dict()))
            pipe.ltrim(key, -self.max_entries, -1)
            pipe.pexpire(key, self._ttl_ms)
            pipe.execute()
        except redis.RedisError as exc:
            raise BackendUnavailableError(f"Redis add failed: {exc}") from exc

    def get(self, conversation_id: str) -> list[ConversationTurn]:
        key = self._key(conversation_id)
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.lrange(key, 0, -1)
            pipe.pexpire(key, self._ttl_ms)
            raw_turns, _ = pipe.execute()
        except redis.RedisError as exc:
            raise BackendUnavailableError(f"Redis get failed: {exc}") from exc
        return [ConversationTurn.from_dict(orjson.loads(raw)) for raw in raw_turns]

    def delete(self, conversation_id: str) -> bool:
        try:
            return bool(self.client.delete(self._key(conversation_id)))
        except redis.RedisError as exc:
            raise BackendUnavailableError(f"Redis delete failed: {exc}") from exc

    def sweep(self) -> int:
        return 0

    def start(self) -> None:
        return None

    def stop(self) -> None:
        return None

    @property
    def _ttl_ms(self) -> int:
        return int(self.ttl * 1000)

    def _key(self, conversation_id: str) -> str:
        return f"{self.prefix}{conversation_id}"


__all__ = ["ConversationCache", "InMemoryConversationCache", "RedisConversationCache"]
