"""CLI entrypoint for Chat Memory."""

from __future__ import annotations

import json
import os
from typing import List, Optional

import requests
import typer

app = typer.Typer(name="chatmem", help="Chat Memory command-line interface")
profile_app = typer.Typer(name="profile", help="Inspect and steer user profiles")
conversation_app = typer.Typer(name="conversation", help="Manage recorded conversations")
app.add_typer(profile_app, name="profile")
app.add_typer(conversation_app, name="conversation")

DEFAULT_HOST = "http://127.0.0.1:8000"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip('/')
    env_host = os.environ.get("CHATMEM_HOST")
    if env_host:
        return env_host.rstrip('/')
    return DEFAULT_HOST


def _resolve_user(override: Optional[str]) -> str:
    user = override or os.environ.get("CHATMEM_USER")
    if not user:
        typer.echo("A user id is required (--user or CHATMEM_USER)", err=True)
        raise typer.Exit(code=2)
    return user


def _request(
    method: str,
    path: str,
    host: Optional[str] = None,
    user: Optional[str] = None,
    **kwargs,
) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    headers = {"X-User-Id": _resolve_user(user)}
    resp = requests.request(method, url, headers=headers, timeout=60, **kwargs)
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


HostOption = typer.Option(None, "--host", help="Override backend host")
UserOption = typer.Option(None, "--user", help="User id sent as X-User-Id")


@app.command()
def ingest(
    conversation_id: str = typer.Option(..., "--conversation", help="Conversation identifier"),
    message_id: str = typer.Option(..., "--message", help="Message identifier"),
    content: str = typer.Argument(..., help="Message text"),
    role: str = typer.Option("user", "--role", help="user or assistant"),
    model: Optional[str] = typer.Option(None, "--model", help="Model that produced the message"),
    host: Optional[str] = HostOption,
    user: Optional[str] = UserOption,
) -> None:
    """Queue a message for long-term memory."""
    body: dict[str, object] = {
        "conversation_id": conversation_id,
        "message_id": message_id,
        "content": content,
        "role": role,
    }
    if model:
        body["model_used"] = model
    resp = _request("POST", "/rag/ingest", host=host, user=user, json=body)
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def retrieve(
    q: str = typer.Argument(..., help="Query text"),
    conversation_id: Optional[str] = typer.Option(None, "--conversation", help="Current conversation"),
    days: Optional[int] = typer.Option(None, "--days", help="Time window in days; 0 disables it"),
    rerank: Optional[bool] = typer.Option(None, "--rerank/--no-rerank", help="Force reranking on/off"),
    formatted: bool = typer.Option(False, "--formatted", help="Print only the prompt block"),
    host: Optional[str] = HostOption,
    user: Optional[str] = UserOption,
) -> None:
    """Retrieve memory context for a query."""
    payload: dict[str, object] = {"query": q}
    if conversation_id:
        payload["conversation_id"] = conversation_id
    if days is not None:
        payload["time_window_days"] = days
    if rerank is not None:
        payload["rerank"] = rerank
    resp = _request("POST", "/rag/retrieve", host=host, user=user, json=payload)
    data = resp.json()
    if formatted:
        typer.echo(data["formatted"])
    else:
        typer.echo(json.dumps(data, indent=2))


@profile_app.command("show")
def show_profile(host: Optional[str] = HostOption, user: Optional[str] = UserOption) -> None:
    """Print the caller's profile."""
    user_id = _resolve_user(user)
    resp = _request("GET", f"/rag/profile/{user_id}", host=host, user=user_id)
    typer.echo(json.dumps(resp.json(), indent=2))


@profile_app.command("refresh")
def refresh_profile(host: Optional[str] = HostOption, user: Optional[str] = UserOption) -> None:
    """Schedule a full re-inference of the caller's profile."""
    resp = _request("POST", "/rag/profile/refresh", host=host, user=user)
    typer.echo(json.dumps(resp.json(), indent=2))


@profile_app.command("set")
def set_profile(
    level: Optional[str] = typer.Option(None, "--level", help="beginner, intermediate, advanced or expert"),
    style: Optional[str] = typer.Option(None, "--style", help="Preferred explanation style"),
    like: List[str] = typer.Option([], "--like", help="Add a preference"),
    dislike: List[str] = typer.Option([], "--dislike", help="Add a dislike"),
    unlock: List[str] = typer.Option([], "--unlock", help="Release a locked field"),
    host: Optional[str] = HostOption,
    user: Optional[str] = UserOption,
) -> None:
    """Override profile fields; overridden fields stay locked."""
    user_id = _resolve_user(user)
    payload: dict[str, object] = {"likes": like, "dislikes": dislike, "unlock": unlock}
    if level:
        payload["technical_level"] = level
    if style:
        payload["explanation_style"] = style
    resp = _request("PUT", f"/rag/profile/{user_id}", host=host, user=user_id, json=payload)
    typer.echo(json.dumps(resp.json(), indent=2))


@conversation_app.command("delete")
def delete_conversation(
    conversation_id: str = typer.Argument(..., help="Conversation identifier"),
    host: Optional[str] = HostOption,
    user: Optional[str] = UserOption,
) -> None:
    """Delete a conversation with its cached turns and memory."""
    resp = _request("DELETE", f"/conversations/{conversation_id}", host=host, user=user)
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def purge(
    days: int = typer.Option(30, "--days", help="Delete memory older than this many days"),
    host: Optional[str] = HostOption,
    user: Optional[str] = UserOption,
) -> None:
    """Purge the caller's old long-term memory."""
    resp = _request("POST", "/admin/purge", host=host, user=user, json={"days": days})
    typer.echo(json.dumps(resp.json(), indent=2))


if __name__ == "__main__":
    app()
