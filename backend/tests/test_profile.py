"""Tests for the profile engine."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from chat_memory.core.errors import ProfileNotFoundError
from chat_memory.db.repository import ConversationRepository, NewMessage, ProfileRepository
from chat_memory.models.entities import ConversationTurn, ExplanationStyle, TechnicalLevel, UserProfile
from chat_memory.profile.engine import (
    ProfileEngine,
    infer_explanation_style,
    infer_technical_level,
    profile_summary,
)
from chat_memory.profile.topics import extract_topics


@pytest.fixture
def conversations(database) -> ConversationRepository:
    return ConversationRepository(database)


@pytest.fixture
def engine(database, conversations) -> ProfileEngine:
    return ProfileEngine(ProfileRepository(database), conversations)


def _seed(conversations: ConversationRepository, user_id: str, texts: list[str], conversation_id: str = "c1") -> None:
    conversations.ensure_conversation(user_id, conversation_id)
    conversations.add_messages(conversation_id, [NewMessage(role="user", content=text) for text in texts])


def test_extract_topics_matches_whole_words() -> None:
    assert extract_topics("Deploying the React UI to AWS with Docker") == ["frontend", "infrastructure"]
    assert extract_topics("My mail client is broken") == []
    assert extract_topics("Tuning LLM embedding latency") == ["ai", "performance"]


def test_get_profile_missing(engine: ProfileEngine) -> None:
    with pytest.raises(ProfileNotFoundError):
        engine.get_profile("nobody")


def test_incremental_update_bumps_version_by_one(engine: ProfileEngine) -> None:
    first = engine.incremental_update("u1", ConversationTurn(role="user", content="How do I secure my JWT auth?"))
    assert first.version == 1
    assert first.message_count == 1
    assert first.topic_frequency == {"security": 1.0}

    second = engine.incremental_update("u1", ConversationTurn(role="user", content="And the api server?"))
    assert second.version == 2
    assert second.message_count == 2
    assert second.topic_frequency == {"security": 1.0, "backend": 1.0}
    assert engine.get_profile("u1").version == 2


def test_concurrent_incremental_updates_serialize(engine: ProfileEngine) -> None:
    turn = ConversationTurn(role="user", content="css question")
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda _: engine.incremental_update("u1", turn), range(40)))
    profile = engine.get_profile("u1")
    assert profile.version == 40
    assert profile.message_count == 40
    assert profile.topic_frequency["frontend"] == 40.0


def test_infer_profile_from_history(engine: ProfileEngine, conversations: ConversationRepository) -> None:
    _seed(
        conversations,
        "u1",
        [
            "We hit a deadlock in the mutex around our event loop, can you give an example?",
            "Profiling shows latency spikes under concurrency; show me an example fix",
            "```python\nasync def handler():\n    await queue.get()\n```",
            "Kubernetes sharding strategy for the distributed cache?",
        ],
    )
    profile = engine.infer_profile("u1")
    assert profile.technical_level in (TechnicalLevel.ADVANCED, TechnicalLevel.EXPERT)
    assert profile.explanation_style == ExplanationStyle.EXAMPLE_HEAVY
    assert profile.topic_frequency == {"performance": 2.0, "infrastructure": 1.0}
    assert profile.message_count == 4
    assert profile.version == 1


def test_manual_override_survives_inference(engine: ProfileEngine, conversations: ConversationRepository) -> None:
    _seed(conversations, "u1", ["what is a variable? I'm new to coding, explain the basics"])
    engine.update_profile("u1", technical_level="expert", dislikes=["long intros"])
    profile = engine.infer_profile("u1")
    assert profile.technical_level == TechnicalLevel.EXPERT
    assert "technical_level" in profile.locked_fields
    assert profile.dislikes == ["long intros"]

    engine.update_profile("u1", unlock=["technical_level"])
    profile = engine.infer_profile("u1")
    assert profile.technical_level == TechnicalLevel.BEGINNER
    assert profile.locked_fields == set()


def test_update_profile_merges_preferences(engine: ProfileEngine) -> None:
    engine.update_profile("u1", likes=["diagrams"], explanation_style="bullet-points")
    profile = engine.update_profile("u1", likes=["diagrams", "tables"])
    assert profile.likes == ["diagrams", "tables"]
    assert profile.explanation_style == ExplanationStyle.BULLET_POINTS
    assert profile.version == 2
    with pytest.raises(ValueError):
        engine.update_profile("u1", unlock=["likes"])


def test_refresh_active_profiles(engine: ProfileEngine, conversations: ConversationRepository) -> None:
    _seed(conversations, "u1", ["docker compose question"], conversation_id="c1")
    _seed(conversations, "u2", ["react hooks"], conversation_id="c2")
    assert engine.refresh_active_profiles(days=7) == ["u1", "u2"]
    assert engine.get_profile("u2").topic_frequency == {"frontend": 1.0}


def test_heuristics_without_signal() -> None:
    assert infer_technical_level([]) is None
    assert infer_explanation_style(["hello there"]) is None
    assert infer_technical_level(["hello there"]) == TechnicalLevel.INTERMEDIATE


def test_profile_summary() -> None:
    profile = UserProfile(
        user_id="u1",
        topic_frequency={"ai": 5.0, "backend": 2.0, "security": 1.0, "frontend": 0.5},
        dislikes=["jargon"],
    )
    assert profile_summary(profile) == (
        "User Profile:\n"
        "- Technical Level: intermediate\n"
        "- Preferred Style: detailed\n"
        "- Main Interests: ai, backend, security\n"
        "- Dislikes: jargon"
    )
    assert "Main Interests: general" in profile_summary(UserProfile(user_id="u2"))
    assert "Dislikes" not in profile_summary(UserProfile(user_id="u2"))
