"""Test fixtures for Chat Memory."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

_BACKEND_ENV = (
    "CHATMEM_CONFIG",
    "CHATMEM_QDRANT_URL",
    "CHATMEM_REDIS_URL",
    "CHATMEM_EMBEDDING_BACKEND",
    "CHATMEM_OPENROUTER_API_KEY",
    "CHATMEM_TIME_WINDOW_DAYS",
)


def _reset_dependencies() -> None:
    from chat_memory.api import dependencies as deps
    from chat_memory.core.config import get_settings

    deps.shutdown_components()
    deps.get_app_settings.cache_clear()
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("CHATMEM_DB_PATH", str(tmp_path / "chat.db"))
    monkeypatch.setenv("CHATMEM_EMBEDDING_DIM", "64")
    monkeypatch.setenv("CHATMEM_RAG_ENABLED", "true")
    for name in _BACKEND_ENV:
        monkeypatch.delenv(name, raising=False)
    _reset_dependencies()
    yield
    _reset_dependencies()


@pytest.fixture
def settings():
    from chat_memory.core.config import Settings

    return Settings(rag_enabled=True, embedding_dim=64, min_results=1)


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def database(tmp_path: Path):
    from chat_memory.db.sqlite import SQLiteDatabase

    db = SQLiteDatabase(tmp_path / "memory.db")
    db.ensure_schema()
    yield db
    db.close()


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
