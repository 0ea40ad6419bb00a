"""API integration tests."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from chat_memory.api import dependencies as deps
from chat_memory.app import app

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}


@pytest.fixture
def client() -> TestClient:
    with TestClient(app) as test_client:
        yield test_client


def _settle() -> None:
    assert deps.get_components().memory.wait_idle(timeout=5)


def test_health(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


def test_identity_header_required(client: TestClient) -> None:
    resp = client.post("/rag/retrieve", json={"query": "anything"})
    assert resp.status_code == 401


def test_ingest_accepts_and_validates(client: TestClient) -> None:
    resp = client.post(
        "/rag/ingest",
        json={"conversation_id": "c1", "message_id": "m1", "content": "docker networking", "role": "user"},
        headers=ALICE,
    )
    assert resp.status_code == 202
    assert resp.json()["status"] == "accepted"

    resp = client.post("/rag/ingest", json={"conversation_id": "c1", "role": "user"}, headers=ALICE)
    assert resp.status_code == 400
    assert resp.json()["missing"] == ["message_id", "content"]


def test_batch_ingest(client: TestClient) -> None:
    messages = [
        {"conversation_id": "c1", "message_id": f"m{idx}", "content": f"note {idx}", "role": "assistant"}
        for idx in range(3)
    ]
    messages.append({"conversation_id": "c1", "message_id": "m-bad", "role": "user"})
    resp = client.post("/rag/ingest/batch", json={"messages": messages}, headers=ALICE)
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["ingested"] == 3
    assert payload["failed"] == 1


def test_exchange_then_retrieve(client: TestClient) -> None:
    resp = client.post(
        "/conversations/c-old/messages",
        json={"user_message": "How do I rotate JWT signing keys?", "assistant_message": "Use a key id header."},
        headers=ALICE,
    )
    assert resp.status_code == 201
    assert resp.json()["ingest_accepted"] is True
    _settle()

    resp = client.post(
        "/rag/retrieve",
        json={"query": "rotate JWT signing keys", "conversation_id": "c-new"},
        headers=ALICE,
    )
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["chunks"]
    assert all(chunk["conversation_id"] == "c-old" for chunk in payload["chunks"])
    assert payload["formatted"].startswith("Relevant context from earlier conversations:")

    resp = client.post("/rag/retrieve", json={"query": "rotate JWT signing keys"}, headers=BOB)
    assert resp.json()["chunks"] == []


def test_short_term_and_delete(client: TestClient) -> None:
    client.post("/conversations/c1/messages", json={"user_message": "hello", "assistant_message": "hi"}, headers=ALICE)

    resp = client.get("/conversations/c1/short-term", headers=ALICE)
    assert resp.status_code == 200
    assert [turn["role"] for turn in resp.json()["turns"]] == ["user", "assistant"]

    assert client.get("/conversations/c1/short-term", headers=BOB).status_code == 404
    assert client.post("/conversations/c1/messages", json={"user_message": "x"}, headers=BOB).status_code == 404
    assert client.delete("/conversations/c1", headers=BOB).status_code == 404

    _settle()
    resp = client.delete("/conversations/c1", headers=ALICE)
    assert resp.status_code == 200
    assert client.get("/conversations/c1/short-term", headers=ALICE).status_code == 404


def test_empty_user_message_rejected(client: TestClient) -> None:
    resp = client.post("/conversations/c1/messages", json={"user_message": "   "}, headers=ALICE)
    assert resp.status_code == 400
    assert resp.json()["missing"] == ["content"]


def test_profile_lifecycle(client: TestClient) -> None:
    assert client.get("/rag/profile/alice", headers=ALICE).status_code == 404
    assert client.get("/rag/profile/alice", headers=BOB).status_code == 403

    client.post("/conversations/c1/messages", json={"user_message": "react css layout help"}, headers=ALICE)
    _settle()
    resp = client.get("/rag/profile/alice", headers=ALICE)
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["topic_frequency"] == {"frontend": 1.0}
    assert payload["version"] == 1
    assert payload["summary"].startswith("User Profile:")

    resp = client.put(
        "/rag/profile/alice",
        json={"technical_level": "expert", "likes": ["diagrams"]},
        headers=ALICE,
    )
    assert resp.status_code == 200
    assert resp.json()["technical_level"] == "expert"
    assert resp.json()["locked_fields"] == ["technical_level"]

    resp = client.post("/rag/profile/refresh", headers=ALICE)
    assert resp.status_code == 202
    assert client.get("/rag/profile/alice", headers=ALICE).json()["technical_level"] == "expert"


def test_admin_routes(client: TestClient) -> None:
    client.post("/conversations/c1/messages", json={"user_message": "kubernetes ingress"}, headers=ALICE)
    _settle()

    resp = client.post("/admin/purge", json={"days": 0}, headers=ALICE)
    assert resp.status_code == 200
    assert resp.json()["status"] == "purged"
    assert deps.get_components().store.size == 0

    resp = client.post("/admin/profiles/refresh-active", json={}, headers=ALICE)
    assert resp.status_code == 200
    assert resp.json()["refreshed"] == ["alice"]

    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "chatmem_requests_total" in resp.text
