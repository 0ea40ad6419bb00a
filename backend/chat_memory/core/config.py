"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

ENV_PREFIX = "CHATMEM_"
DEFAULT_CONFIG_PATH = Path("~/.config/chat-memory/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "db_path"): "db_path",
    ("qdrant", "url"): "qdrant_url",
    ("qdrant", "api_key"): "qdrant_api_key",
    ("qdrant", "collection"): "qdrant_collection",
    ("qdrant", "timeout"): "qdrant_timeout",
    ("redis", "url"): "redis_url",
    ("redis", "timeout"): "redis_timeout",
    ("embeddings", "backend"): "embedding_backend",
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "dim"): "embedding_dim",
    ("embeddings", "api_key"): "openrouter_api_key",
    ("embeddings", "base_url"): "openrouter_base_url",
    ("embeddings", "cache_ttl"): "embedding_cache_ttl",
    ("embeddings", "timeout"): "embedding_timeout",
    ("chunking", "tokenizer"): "tokenizer",
    ("chunking", "chunk_size"): "chunk_size",
    ("chunking", "chunk_overlap"): "chunk_overlap",
    ("short_term", "ttl"): "short_term_ttl",
    ("short_term", "max_entries"): "short_term_max_entries",
    ("short_term", "sweep_interval"): "sweep_interval",
    ("short_term", "context_turns"): "short_term_context_turns",
    ("retrieval", "enabled"): "rag_enabled",
    ("retrieval", "top_k_dense"): "top_k_dense",
    ("retrieval", "top_k_sparse"): "top_k_sparse",
    ("retrieval", "top_k_final"): "top_k_final",
    ("retrieval", "min_results"): "min_results",
    ("retrieval", "fusion"): "fusion",
    ("retrieval", "dense_weight"): "dense_weight",
    ("retrieval", "time_window_days"): "time_window_days",
    ("retrieval", "rerank_enabled"): "rerank_enabled",
    ("profile", "refresh_every"): "profile_refresh_every",
    ("profile", "history_limit"): "profile_history_limit",
    ("profile", "active_days"): "profile_active_days",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    db_path: Path = Field(default=Path.home() / ".chat-memory" / "chat.db")
    rag_enabled: bool = False

    qdrant_url: str | None = None
    qdrant_api_key: str | None = None
    qdrant_collection: str = "chatterstack_memory"
    qdrant_timeout: float = 5.0

    redis_url: str | None = None
    redis_timeout: float = 2.0

    embedding_backend: Literal["hashed", "openrouter"] = "hashed"
    embedding_model: str = "openai/text-embedding-3-small"
    embedding_dim: int = Field(default=1536, ge=8)
    openrouter_api_key: str | None = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    embedding_cache_ttl: int = 86400
    embedding_timeout: float = 10.0

    tokenizer: Literal["regex", "tiktoken"] = "regex"
    chunk_size: int = Field(default=600, ge=1)
    chunk_overlap: int = Field(default=100, ge=0)

    short_term_ttl: float = Field(default=300.0, gt=0)
    short_term_max_entries: int = Field(default=100, ge=1)
    sweep_interval: float = Field(default=60.0, gt=0)
    short_term_context_turns: int = Field(default=8, ge=0)

    top_k_dense: int = 10
    top_k_sparse: int = 10
    top_k_final: int = 8
    min_results: int = 2
    fusion: Literal["rrf", "weighted"] = "rrf"
    dense_weight: float = Field(default=0.7, ge=0.0, le=1.0)
    rrf_k: float = 60.0
    time_window_days: int | None = 90
    rerank_enabled: bool = False

    ingest_workers: int = Field(default=4, ge=1)
    batch_ingest_concurrency: int = Field(default=3, ge=1)

    profile_refresh_every: int = Field(default=0, ge=0)
    profile_history_limit: int = 250
    profile_active_days: int = 7

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", mode="before")
    @classmethod
    def _expand_db_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("db_path must be a path or string")

    @model_validator(mode="after")
    def _check_overlap(self) -> "Settings":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        return self

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with CHATMEM_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings"]
