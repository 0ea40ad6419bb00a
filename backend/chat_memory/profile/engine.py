"""Per-user profile inference, incremental updates and manual overrides."""

from __future__ import annotations

import re
import threading
import zlib
from collections import Counter
from typing import Iterable, Sequence

from chat_memory.core.errors import ProfileNotFoundError
from chat_memory.core.logging import get_logger
from chat_memory.db.repository import ConversationRepository, ProfileRepository
from chat_memory.ingest.chunker import detect_code
from chat_memory.models.entities import (
    LOCKABLE_FIELDS,
    ConversationTurn,
    ExplanationStyle,
    TechnicalLevel,
    UserProfile,
)
from chat_memory.profile.topics import extract_topics
from chat_memory.utils.time import days_ago, utc_now

logger = get_logger(__name__)

_LOCK_STRIPES = 32

_BEGINNER_RE = re.compile(
    r"\b(?:what is|what's a|how do i|i'm new|i am new|new to|beginner|eli5|simple terms|basics)\b",
    re.IGNORECASE,
)
_ADVANCED_RE = re.compile(
    r"\b(?:concurrency|race condition|deadlock|throughput|latency|idempotent|sharding|consensus|"
    r"compiler|memory model|lock-free|profiling|benchmark|kubernetes|distributed|asymptotic|"
    r"big-o|allocation|garbage collector|mutex|coroutine|event loop)\b",
    re.IGNORECASE,
)

STYLE_HINTS: dict[ExplanationStyle, re.Pattern[str]] = {
    ExplanationStyle.CONCISE: re.compile(r"\b(?:briefly|concise|tl;?dr|short answer|in short|quick answer)\b", re.I),
    ExplanationStyle.DETAILED: re.compile(r"\b(?:in detail|detailed|deep dive|thorough|explain why)\b", re.I),
    ExplanationStyle.EXAMPLE_HEAVY: re.compile(r"\b(?:examples?|for instance|sample|show me how)\b", re.I),
    ExplanationStyle.ANALOGY_HEAVY: re.compile(r"\b(?:analogy|analogies|metaphor|like i'm five|compare it to)\b", re.I),
    ExplanationStyle.CODE_FIRST: re.compile(r"\b(?:just the code|show me the code|snippet|code first)\b", re.I),
    ExplanationStyle.BULLET_POINTS: re.compile(r"\b(?:bullet points?|bulleted|as a list|step by step)\b", re.I),
}


def infer_technical_level(texts: Sequence[str]) -> TechnicalLevel | None:
    """Score advanced vocabulary and code against beginner phrasing."""
    if not texts:
        return None
    total = len(texts)
    advanced = sum(1 for text in texts if _ADVANCED_RE.search(text)) / total
    beginner = sum(1 for text in texts if _BEGINNER_RE.search(text)) / total
    code = sum(1 for text in texts if detect_code(text)) / total
    score = advanced + 0.5 * code - beginner
    if score >= 0.6:
        return TechnicalLevel.EXPERT
    if score >= 0.3:
        return TechnicalLevel.ADVANCED
    if score <= -0.2:
        return TechnicalLevel.BEGINNER
    return TechnicalLevel.INTERMEDIATE


def infer_explanation_style(texts: Sequence[str]) -> ExplanationStyle | None:
    """Most frequently requested style; None when nothing hints at one."""
    counts: Counter[ExplanationStyle] = Counter()
    for text in texts:
        for style, pattern in STYLE_HINTS.items():
            if pattern.search(text):
                counts[style] += 1
    code_messages = sum(1 for text in texts if "```" in text)
    if texts and code_messages / len(texts) >= 0.3:
        counts[ExplanationStyle.CODE_FIRST] += code_messages
    if not counts:
        return None
    # ties resolve in enum declaration order
    best = max(counts.values())
    return next(style for style in ExplanationStyle if counts[style] == best)


def topic_frequency(texts: Iterable[str]) -> dict[str, float]:
    counts: Counter[str] = Counter()
    for text in texts:
        counts.update(extract_topics(text))
    return {topic: float(count) for topic, count in counts.items()}


def profile_summary(profile: UserProfile) -> str:
    """Render a profile as a prompt block."""
    top_topics = sorted(profile.topic_frequency.items(), key=lambda item: item[1], reverse=True)[:3]
    interests = ", ".join(topic for topic, _ in top_topics) or "general"
    lines = [
        "User Profile:",
        f"- Technical Level: {profile.technical_level.value}",
        f"- Preferred Style: {profile.explanation_style.value}",
        f"- Main Interests: {interests}",
    ]
    if profile.dislikes:
        lines.append(f"- Dislikes: {', '.join(profile.dislikes)}")
    return "\n".join(lines)


class ProfileEngine:
    """Maintain user profiles; writes for one user are serialized."""

    def __init__(
        self,
        profiles: ProfileRepository,
        conversations: ConversationRepository,
        history_limit: int = 250,
    ) -> None:
        self.profiles = profiles
        self.conversations = conversations
        self.history_limit = history_limit
        self._stripes = [threading.Lock() for _ in range(_LOCK_STRIPES)]

    def get_profile(self, user_id: str) -> UserProfile:
        profile = self.profiles.get(user_id)
        if profile is None:
            raise ProfileNotFoundError(user_id)
        return profile

    def infer_profile(self, user_id: str) -> UserProfile:
        """Re-derive level, style and topics from the user's stored messages."""
        history = self.conversations.user_messages(user_id, limit=self.history_limit)
        texts = [message.content for message in history]
        with self._lock_for(user_id):
            profile = self._load_or_new(user_id)
            level = infer_technical_level(texts)
            style = infer_explanation_style(texts)
            if level is not None and "technical_level" not in profile.locked_fields:
                profile.technical_level = level
            if style is not None and "explanation_style" not in profile.locked_fields:
                profile.explanation_style = style
            profile.topic_frequency = topic_frequency(texts)
            profile.message_count = max(profile.message_count, len(texts))
            self._save(profile)
        logger.info(
            "Inferred profile for %s from %s messages",
            user_id,
            len(texts),
            extra={"ctx_user_id": user_id, "ctx_version": profile.version},
        )
        return profile

    def incremental_update(self, user_id: str, turn: ConversationTurn) -> UserProfile:
        with self._lock_for(user_id):
            profile = self._load_or_new(user_id)
            for topic in extract_topics(turn.content):
                profile.topic_frequency[topic] = profile.topic_frequency.get(topic, 0.0) + 1.0
            profile.message_count += 1
            self._save(profile)
        return profile

    def update_profile(
        self,
        user_id: str,
        *,
        technical_level: TechnicalLevel | str | None = None,
        explanation_style: ExplanationStyle | str | None = None,
        likes: Sequence[str] = (),
        dislikes: Sequence[str] = (),
        unlock: Sequence[str] = (),
    ) -> UserProfile:
        """Apply manual overrides; overridden fields stay locked until unlocked."""
        unknown = set(unlock) - set(LOCKABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown profile fields: {', '.join(sorted(unknown))}")
        with self._lock_for(user_id):
            profile = self._load_or_new(user_id)
            profile.locked_fields.difference_update(unlock)
            if technical_level is not None:
                profile.technical_level = TechnicalLevel(technical_level)
                profile.locked_fields.add("technical_level")
            if explanation_style is not None:
                profile.explanation_style = ExplanationStyle(explanation_style)
                profile.locked_fields.add("explanation_style")
            profile.likes = _merge(profile.likes, likes)
            profile.dislikes = _merge(profile.dislikes, dislikes)
            self._save(profile)
        return profile

    def refresh_active_profiles(self, days: int = 7) -> list[str]:
        """Re-infer every user with conversation activity in the last ``days`` days."""
        refreshed: list[str] = []
        for user_id in self.conversations.active_users(days_ago(days)):
            try:
                self.infer_profile(user_id)
            except Exception:
                logger.exception("Profile refresh failed for %s", user_id)
                continue
            refreshed.append(user_id)
        logger.info("Refreshed %s active profiles", len(refreshed))
        return refreshed

    def _load_or_new(self, user_id: str) -> UserProfile:
        # a new profile is saved as version 1
        return self.profiles.get(user_id) or UserProfile(user_id=user_id, version=0)

    def _save(self, profile: UserProfile) -> None:
        profile.version += 1
        profile.last_updated = utc_now()
        self.profiles.save(profile)

    def _lock_for(self, user_id: str) -> threading.Lock:
        return self._stripes[zlib.crc32(user_id.encode("utf-8")) % _LOCK_STRIPES]


def _merge(existing: Sequence[str], additions: Iterable[str]) -> list[str]:
    merged = list(existing)
    for item in additions:
        item = item.strip()
        if item and item not in merged:
            merged.append(item)
    return merged


__all__ = [
    "ProfileEngine",
    "profile_summary",
    "infer_technical_level",
    "infer_explanation_style",
    "topic_frequency",
]
