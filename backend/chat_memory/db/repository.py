"""Relational persistence for conversations, messages and user profiles."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence

import orjson

from chat_memory.db.sqlite import SQLiteDatabase
from chat_memory.models.entities import Role, StoredMessage, UserProfile
from chat_memory.utils.ids import new_id
from chat_memory.utils.time import now_ms


@dataclass(slots=True)
class NewMessage:
    role: Role
    content: str
    model_id: str | None = None
    created_at: int | None = None
    id: str | None = None


class ConversationRepository:
    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db

    def ensure_user(self, user_id: str) -> None:
        self.db.execute(
            "INSERT OR IGNORE INTO users (id, created_at) VALUES (?, ?)",
            [user_id, now_ms()],
        )
        self.db.commit()

    def ensure_conversation(self, user_id: str, conversation_id: str, title: str | None = None) -> bool:
        """Create the conversation if needed; False when it belongs to another user."""
        self.ensure_user(user_id)
        now = now_ms()
        self.db.execute(
            """
            INSERT OR IGNORE INTO conversations (id, user_id, title, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            [conversation_id, user_id, title, now, now],
        )
        self.db.commit()
        return self.owner_of(conversation_id) == user_id

    def owner_of(self, conversation_id: str) -> str | None:
        rows = self.db.query("SELECT user_id FROM conversations WHERE id = ?", [conversation_id])
        return rows[0]["user_id"] if rows else None

    def add_messages(self, conversation_id: str, messages: Sequence[NewMessage]) -> list[str]:
        now = now_ms()
        ids = [message.id or new_id("msg") for message in messages]
        with self.db.transaction() as cursor:
            cursor.executemany(
                """
                INSERT INTO messages (id, conversation_id, role, content, model_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        message_id,
                        conversation_id,
                        message.role,
                        message.content,
                        message.model_id,
                        message.created_at if message.created_at is not None else now,
                    )
                    for message_id, message in zip(ids, messages)
                ],
            )
            cursor.execute(
                "UPDATE conversations SET updated_at = ? WHERE id = ?",
                [now, conversation_id],
            )
        return ids

    def list_messages(self, conversation_id: str) -> list[StoredMessage]:
        rows = self.db.query(
            """
            SELECT messages.id, messages.conversation_id, conversations.user_id, messages.role,
                   messages.content, messages.model_id, messages.created_at
            FROM messages JOIN conversations ON conversations.id = messages.conversation_id
            WHERE messages.conversation_id = ?
            ORDER BY messages.created_at ASC, messages.rowid ASC
            """,
            [conversation_id],
        )
        return [_row_to_message(row) for row in rows]

    def user_messages(self, user_id: str, limit: int = 250) -> list[StoredMessage]:
        """The user's own turns across conversations, newest first."""
        rows = self.db.query(
            """
            SELECT messages.id, messages.conversation_id, conversations.user_id, messages.role,
                   messages.content, messages.model_id, messages.created_at
            FROM messages JOIN conversations ON conversations.id = messages.conversation_id
            WHERE conversations.user_id = ? AND messages.role = 'user'
            ORDER BY messages.created_at DESC, messages.rowid DESC
            LIMIT ?
            """,
            [user_id, limit],
        )
        return [_row_to_message(row) for row in rows]

    def delete_conversation(self, conversation_id: str) -> bool:
        cursor = self.db.execute("DELETE FROM conversations WHERE id = ?", [conversation_id])
        self.db.commit()
        return cursor.rowcount > 0

    def active_users(self, since: datetime) -> list[str]:
        rows = self.db.query(
            "SELECT DISTINCT user_id FROM conversations WHERE updated_at >= ? ORDER BY user_id",
            [int(since.timestamp() * 1000)],
        )
        return [row["user_id"] for row in rows]


class ProfileRepository:
    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db

    def get(self, user_id: str) -> UserProfile | None:
        rows = self.db.query("SELECT profile_json FROM profiles WHERE user_id = ?", [user_id])
        if not rows:
            return None
        return UserProfile.from_dict(orjson.loads(rows[0]["profile_json"]))

    def save(self, profile: UserProfile) -> None:
        with self.db.transaction() as cursor:
            cursor.execute(
                "INSERT OR IGNORE INTO users (id, created_at) VALUES (?, ?)",
                [profile.user_id, now_ms()],
            )
            cursor.execute(
                """
                INSERT INTO profiles (user_id, profile_json, version, updated_at) VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                  profile_json = excluded.profile_json,
                  version = excluded.version,
                  updated_at = excluded.updated_at
                """,
                [profile.user_id, orjson.dumps(profile.to_dict()).decode("utf-8"), profile.version, now_ms()],
            )


def _row_to_message(row) -> StoredMessage:
    return StoredMessage(
        id=row["id"],
        conversation_id=row["conversation_id"],
        user_id=row["user_id"],
        role=row["role"],
        content=row["content"],
        model_id=row["model_id"],
        created_at=datetime.fromtimestamp(int(row["created_at"]) / 1000, tz=timezone.utc),
    )


__all__ = ["ConversationRepository", "ProfileRepository", "NewMessage"]
