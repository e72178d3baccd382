from __future__ import annotations

import asyncio
import sqlite3
import uuid
from pathlib import Path
from typing import Protocol

from shared.chat_models import MessageRecord, SessionRecord, utc_iso_now

_MESSAGE_ROLES = {"user", "assistant"}


class SessionBackendError(RuntimeError):
    def __init__(self, message: str, *, status: int | None = None, code: str | None = None) -> None:
        self.status = status
        self.code = code
        super().__init__(message)


class SessionBackend(Protocol):
    """Durable owner of conversations and their messages."""

    async def list_sessions(self) -> list[SessionRecord]: ...

    async def create_session(self, title: str) -> str: ...

    async def delete_session(self, session_id: str) -> bool: ...

    async def list_messages(self, session_id: str) -> list[MessageRecord]: ...

    async def append_message(self, session_id: str, content: str, role: str) -> MessageRecord: ...

    async def update_session_title(self, session_id: str, title: str) -> None: ...

    async def close(self) -> None: ...


def _normalize_role(role: str) -> str:
    normalized = role.strip().lower()
    if normalized not in _MESSAGE_ROLES:
        raise ValueError(f"unsupported message role: {role}")
    return normalized


class InMemorySessionBackend:
    def __init__(self) -> None:
        self._sessions: dict[str, SessionRecord] = {}
        self._messages: dict[str, list[MessageRecord]] = {}
        self._lock = asyncio.Lock()

    async def close(self) -> None:
        return None

    async def list_sessions(self) -> list[SessionRecord]:
        async with self._lock:
            items = list(self._sessions.values())
        items.sort(key=lambda item: item.updated_at, reverse=True)
        return items

    async def create_session(self, title: str) -> str:
        async with self._lock:
            session_id = uuid.uuid4().hex
            now = utc_iso_now()
            self._sessions[session_id] = SessionRecord(
                id=session_id,
                title=title,
                created_at=now,
                updated_at=now,
            )
            self._messages[session_id] = []
            return session_id

    async def delete_session(self, session_id: str) -> bool:
        async with self._lock:
            if session_id not in self._sessions:
                return False
            self._sessions.pop(session_id, None)
            self._messages.pop(session_id, None)
            return True

    async def list_messages(self, session_id: str) -> list[MessageRecord]:
        async with self._lock:
            return list(self._messages.get(session_id, []))

    async def append_message(self, session_id: str, content: str, role: str) -> MessageRecord:
        normalized_role = _normalize_role(role)
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionBackendError(f"session not found: {session_id}", status=404)
            record = MessageRecord(
                id=uuid.uuid4().hex,
                session_id=session_id,
                content=content,
                role=normalized_role,
                timestamp=utc_iso_now(),
            )
            bucket = self._messages.setdefault(session_id, [])
            bucket.append(record)
            self._sessions[session_id] = SessionRecord(
                id=session.id,
                title=session.title,
                created_at=session.created_at,
                updated_at=record.timestamp,
                message_count=len(bucket),
            )
            return record

    async def update_session_title(self, session_id: str, title: str) -> None:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionBackendError(f"session not found: {session_id}", status=404)
            self._sessions[session_id] = SessionRecord(
                id=session.id,
                title=title,
                created_at=session.created_at,
                updated_at=utc_iso_now(),
                message_count=session.message_count,
            )


class SQLiteSessionBackend:
    """SQLite-backed session service; every call opens a short-lived connection."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._initialize_schema()

    async def close(self) -> None:
        """Nothing held open between calls."""

    async def list_sessions(self) -> list[SessionRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT s.session_id, s.title, s.created_at, s.updated_at,
                    (SELECT COUNT(*) FROM chat_messages m WHERE m.session_id = s.session_id)
                        AS message_count
                FROM chat_sessions s
                ORDER BY s.updated_at DESC
                """,
            ).fetchall()
        return [
            SessionRecord(
                id=str(row["session_id"]),
                title=str(row["title"]),
                created_at=str(row["created_at"]),
                updated_at=str(row["updated_at"]),
                message_count=int(row["message_count"]),
            )
            for row in rows
        ]

    async def create_session(self, title: str) -> str:
        session_id = uuid.uuid4().hex
        now = utc_iso_now()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO chat_sessions (session_id, title, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (session_id, title, now, now),
            )
            conn.commit()
        return session_id

    async def delete_session(self, session_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM chat_sessions WHERE session_id = ?",
                (session_id,),
            )
            conn.commit()
            return cursor.rowcount > 0

    async def list_messages(self, session_id: str) -> list[MessageRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT message_id, session_id, role, content, created_at
                FROM chat_messages
                WHERE session_id = ?
                ORDER BY id ASC
                """,
                (session_id,),
            ).fetchall()
        return [
            MessageRecord(
                id=str(row["message_id"]),
                session_id=str(row["session_id"]),
                content=str(row["content"]),
                role=str(row["role"]),
                timestamp=str(row["created_at"]),
            )
            for row in rows
        ]

    async def append_message(self, session_id: str, content: str, role: str) -> MessageRecord:
        normalized_role = _normalize_role(role)
        record = MessageRecord(
            id=uuid.uuid4().hex,
            session_id=session_id,
            content=content,
            role=normalized_role,
            timestamp=utc_iso_now(),
        )
        with self._connect() as conn:
            exists = conn.execute(
                "SELECT 1 FROM chat_sessions WHERE session_id = ?",
                (session_id,),
            ).fetchone()
            if exists is None:
                raise SessionBackendError(f"session not found: {session_id}", status=404)
            conn.execute(
                """
                INSERT INTO chat_messages (message_id, session_id, role, content, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (record.id, session_id, record.role, record.content, record.timestamp),
            )
            conn.execute(
                "UPDATE chat_sessions SET updated_at = ? WHERE session_id = ?",
                (record.timestamp, session_id),
            )
            conn.commit()
        return record

    async def update_session_title(self, session_id: str, title: str) -> None:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE chat_sessions SET title = ?, updated_at = ? WHERE session_id = ?",
                (title, utc_iso_now(), session_id),
            )
            conn.commit()
            if cursor.rowcount == 0:
                raise SessionBackendError(f"session not found: {session_id}", status=404)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def _initialize_schema(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chat_sessions (
                    session_id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """,
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chat_messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    message_id TEXT NOT NULL UNIQUE,
                    session_id TEXT NOT NULL,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(session_id) REFERENCES chat_sessions(session_id) ON DELETE CASCADE
                )
                """,
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_chat_messages_session ON chat_messages(session_id)",
            )
            conn.commit()
