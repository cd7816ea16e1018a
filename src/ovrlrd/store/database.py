"""SQLite-backed store for conversations and messages."""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import UTC, datetime
from pathlib import Path

from ovrlrd.store.models import Conversation, Message, Role

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    resume_token TEXT,
    title TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
    role TEXT NOT NULL CHECK (role IN ('user', 'assistant', 'system')),
    content TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_conversations_user_updated
    ON conversations(user_id, updated_at DESC);
CREATE INDEX IF NOT EXISTS idx_messages_conversation_created
    ON messages(conversation_id, created_at DESC);
"""

DEFAULT_MESSAGE_LIMIT = 50


class StoreError(Exception):
    """A read or write against the database failed."""


class MessageStore:
    """Conversations and their messages in a single SQLite file.

    Every write runs in its own transaction; ``create_message`` inserts
    the message and bumps the conversation's ``updated_at`` atomically.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = str(path)
        self._conn: sqlite3.Connection | None = None

    def initialize(self) -> None:
        """Open the database and create tables if needed. Idempotent."""
        conn = self._connection()
        try:
            conn.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            msg = f"Failed to initialize database {self._path}: {exc}"
            raise StoreError(msg) from exc
        logger.info("Database initialized: %s", self._path)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ------------------------------------------------------------------ #
    # Conversations
    # ------------------------------------------------------------------ #

    def create_conversation(self, user_id: str) -> Conversation:
        conversation_id = str(uuid.uuid4())
        now = _timestamp()
        self._write(
            "INSERT INTO conversations (id, user_id, created_at, updated_at)"
            " VALUES (?, ?, ?, ?)",
            (conversation_id, user_id, now, now),
        )
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            msg = "Failed to create conversation"
            raise StoreError(msg)
        return conversation

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        row = self._read_one(
            "SELECT * FROM conversations WHERE id = ?", (conversation_id,)
        )
        return Conversation.model_validate(dict(row)) if row is not None else None

    def update_resume_token(self, conversation_id: str, resume_token: str) -> None:
        self._write(
            "UPDATE conversations SET resume_token = ?, updated_at = ? WHERE id = ?",
            (resume_token, _timestamp(), conversation_id),
        )

    def update_title(self, conversation_id: str, title: str) -> None:
        self._write(
            "UPDATE conversations SET title = ?, updated_at = ? WHERE id = ?",
            (title, _timestamp(), conversation_id),
        )

    def delete_conversation(self, conversation_id: str) -> None:
        # Messages go with it via ON DELETE CASCADE.
        self._write("DELETE FROM conversations WHERE id = ?", (conversation_id,))

    # ------------------------------------------------------------------ #
    # Messages
    # ------------------------------------------------------------------ #

    def create_message(self, conversation_id: str, role: Role, content: str) -> Message:
        message = Message(
            id=str(uuid.uuid4()),
            conversation_id=conversation_id,
            role=role,
            content=content,
            created_at=_timestamp(),
        )
        conn = self._connection()
        try:
            with conn:
                conn.execute(
                    "INSERT INTO messages (id, conversation_id, role, content, created_at)"
                    " VALUES (?, ?, ?, ?, ?)",
                    (
                        message.id,
                        message.conversation_id,
                        message.role,
                        message.content,
                        message.created_at,
                    ),
                )
                conn.execute(
                    "UPDATE conversations SET updated_at = ? WHERE id = ?",
                    (message.created_at, conversation_id),
                )
        except sqlite3.Error as exc:
            msg = f"Failed to store message: {exc}"
            raise StoreError(msg) from exc
        return message

    def get_messages(
        self, conversation_id: str, limit: int = DEFAULT_MESSAGE_LIMIT
    ) -> list[Message]:
        """Most recent *limit* messages, oldest first."""
        conn = self._connection()
        try:
            rows = conn.execute(
                "SELECT * FROM messages WHERE conversation_id = ?"
                " ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (conversation_id, limit),
            ).fetchall()
        except sqlite3.Error as exc:
            msg = f"Failed to read messages: {exc}"
            raise StoreError(msg) from exc
        return [Message.model_validate(dict(row)) for row in reversed(rows)]

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            conn = sqlite3.connect(self._path)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA foreign_keys = ON")
            self._conn = conn
        return self._conn

    def _write(self, sql: str, params: tuple[object, ...]) -> None:
        conn = self._connection()
        try:
            with conn:
                conn.execute(sql, params)
        except sqlite3.Error as exc:
            msg = f"Database write failed: {exc}"
            raise StoreError(msg) from exc

    def _read_one(self, sql: str, params: tuple[object, ...]) -> sqlite3.Row | None:
        try:
            row: sqlite3.Row | None = self._connection().execute(sql, params).fetchone()
        except sqlite3.Error as exc:
            msg = f"Database read failed: {exc}"
            raise StoreError(msg) from exc
        return row


def _timestamp() -> str:
    """Current UTC time as ``YYYY-MM-DD HH:MM:SS.mmm``."""
    return datetime.now(tz=UTC).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
