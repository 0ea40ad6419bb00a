"""Configuration loading tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from chat_memory.core.config import Settings


def test_yaml_sections_map_to_fields(tmp_path: Path) -> None:
    config = tmp_path / "config.yaml"
    config.write_text(
        "qdrant:\n"
        "  url: http://qdrant:6333\n"
        "  collection: memories\n"
        "short_term:\n"
        "  ttl: 120\n"
        "retrieval:\n"
        "  fusion: weighted\n"
        "  time_window_days: 14\n"
        "profile:\n"
        "  refresh_every: 5\n"
    )
    settings = Settings.from_yaml(config)
    assert settings.qdrant_url == "http://qdrant:6333"
    assert settings.qdrant_collection == "memories"
    assert settings.short_term_ttl == 120.0
    assert settings.fusion == "weighted"
    assert settings.time_window_days == 14
    assert settings.profile_refresh_every == 5


def test_environment_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path / "config.yaml"
    config.write_text("chunking:\n  chunk_size: 300\n  chunk_overlap: 50\n")
    monkeypatch.setenv("CHATMEM_CHUNK_SIZE", "400")
    monkeypatch.setenv("CHATMEM_CONFIG", str(config))
    settings = Settings.from_yaml()
    assert settings.chunk_size == 400
    assert settings.chunk_overlap == 50
    assert settings.db_path == tmp_path / "chat.db"
    assert settings.rag_enabled is True


def test_missing_config_uses_defaults(tmp_path: Path) -> None:
    settings = Settings.from_yaml(tmp_path / "absent.yaml")
    assert settings.chunk_size == 600
    assert settings.min_results == 2
    assert settings.embedding_dim == 64


def test_overlap_must_be_smaller_than_chunk() -> None:
    with pytest.raises(ValidationError):
        Settings(chunk_size=100, chunk_overlap=100)


def test_db_path_expands_user() -> None:
    settings = Settings(db_path="~/memory.db")
    assert "~" not in str(settings.db_path)
