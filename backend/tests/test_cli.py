"""CLI tests with the HTTP layer stubbed out."""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from chat_memory.cli import main as cli

runner = CliRunner()


class FakeResponse:
    def __init__(self, payload, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code
        self.text = json.dumps(payload)

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        return self._payload


class RecordedCalls(list):
    """Requests seen by the fake transport plus responses queued for it."""

    def __init__(self) -> None:
        super().__init__()
        self.queue: list[FakeResponse] = []


@pytest.fixture
def calls(monkeypatch: pytest.MonkeyPatch) -> RecordedCalls:
    recorded = RecordedCalls()

    def fake_request(method, url, headers=None, timeout=None, **kwargs):
        recorded.append({"method": method, "url": url, "headers": headers, **kwargs})
        if recorded.queue:
            return recorded.queue.pop(0)
        return FakeResponse({"status": "ok", "formatted": "block"})

    monkeypatch.setattr(cli.requests, "request", fake_request)
    monkeypatch.delenv("CHATMEM_HOST", raising=False)
    monkeypatch.delenv("CHATMEM_USER", raising=False)
    return recorded


def test_ingest_sends_identity_header(calls) -> None:
    result = runner.invoke(
        cli.app,
        ["ingest", "hello world", "--conversation", "c1", "--message", "m1", "--user", "alice"],
    )
    assert result.exit_code == 0
    assert calls[0]["method"] == "POST"
    assert calls[0]["url"] == "http://127.0.0.1:8000/rag/ingest"
    assert calls[0]["headers"] == {"X-User-Id": "alice"}
    assert calls[0]["json"]["role"] == "user"


def test_user_required(calls) -> None:
    result = runner.invoke(cli.app, ["purge"])
    assert result.exit_code == 2
    assert calls == []


def test_env_host_and_user(calls, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHATMEM_HOST", "http://memory:9000/")
    monkeypatch.setenv("CHATMEM_USER", "bob")
    result = runner.invoke(cli.app, ["retrieve", "postgres pools", "--days", "0", "--formatted"])
    assert result.exit_code == 0
    assert result.stdout.strip() == "block"
    assert calls[0]["url"] == "http://memory:9000/rag/retrieve"
    assert calls[0]["json"] == {"query": "postgres pools", "time_window_days": 0}


def test_profile_set_builds_payload(calls) -> None:
    result = runner.invoke(
        cli.app,
        ["profile", "set", "--user", "alice", "--level", "expert", "--like", "diagrams", "--unlock", "explanation_style"],
    )
    assert result.exit_code == 0
    assert calls[0]["method"] == "PUT"
    assert calls[0]["url"].endswith("/rag/profile/alice")
    assert calls[0]["json"] == {
        "likes": ["diagrams"],
        "dislikes": [],
        "unlock": ["explanation_style"],
        "technical_level": "expert",
    }


def test_failed_request_exits_nonzero(calls) -> None:
    calls.queue.append(FakeResponse({"detail": "Conversation not found"}, status_code=404))
    result = runner.invoke(cli.app, ["conversation", "delete", "c9", "--user", "alice"])
    assert result.exit_code == 1
    assert calls[0]["method"] == "DELETE"
