"""Keyword topic extraction."""

from __future__ import annotations

import re
from typing import Mapping

TOPIC_KEYWORDS: Mapping[str, tuple[str, ...]] = {
    "frontend": ("react", "vue", "angular", "css", "html", "typescript", "ui", "frontend"),
    "backend": ("node", "express", "api", "database", "sql", "backend", "server"),
    "infrastructure": ("docker", "kubernetes", "aws", "cloud", "deployment", "infra"),
    "ai": ("ai", "ml", "machine learning", "neural", "gpt", "llm", "embedding"),
    "security": ("security", "auth", "encryption", "jwt", "oauth"),
    "performance": ("performance", "optimization", "cache", "speed", "latency"),
}

_TOPIC_RES = {
    topic: re.compile(r"\b(?:" + "|".join(re.escape(word) for word in words) + r")\b", re.IGNORECASE)
    for topic, words in TOPIC_KEYWORDS.items()
}


def extract_topics(text: str) -> list[str]:
    """Topics mentioned in text, in table order, each at most once."""
    if not text:
        return []
    return [topic for topic, pattern in _TOPIC_RES.items() if pattern.search(text)]


__all__ = ["TOPIC_KEYWORDS", "extract_topics"]
