from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from server.session_backend import (
    InMemorySessionBackend,
    SessionBackendError,
    SQLiteSessionBackend,
)


@pytest.fixture(params=["memory", "sqlite"])
def backend(request: pytest.FixtureRequest, tmp_path: Path):
    if request.param == "memory":
        return InMemorySessionBackend()
    return SQLiteSessionBackend(tmp_path / "sessions.db")


def test_sessions_lifecycle(backend) -> None:
    async def run() -> None:
        first = await backend.create_session("First")
        second = await backend.create_session("Second")
        await backend.append_message(first, "hello", "user")

        sessions = await backend.list_sessions()
        assert [item.id for item in sessions] == [first, second]
        assert sessions[0].message_count == 1
        assert sessions[1].message_count == 0

        await backend.update_session_title(second, "Renamed")
        titles = {item.id: item.title for item in await backend.list_sessions()}
        assert titles[second] == "Renamed"

        assert await backend.delete_session(first) is True
        assert await backend.delete_session(first) is False
        assert [item.id for item in await backend.list_sessions()] == [second]
        assert await backend.list_messages(first) == []

    asyncio.run(run())


def test_messages_keep_insertion_order(backend) -> None:
    async def run() -> None:
        session_id = await backend.create_session("Chat")
        first = await backend.append_message(session_id, "q1", "user")
        second = await backend.append_message(session_id, "a1", "ASSISTANT")

        messages = await backend.list_messages(session_id)

        assert [(item.id, item.role, item.content) for item in messages] == [
            (first.id, "user", "q1"),
            (second.id, "assistant", "a1"),
        ]
        assert all(item.session_id == session_id for item in messages)

    asyncio.run(run())


def test_append_rejects_unknown_role_and_session(backend) -> None:
    async def run() -> None:
        session_id = await backend.create_session("Chat")
        with pytest.raises(ValueError):
            await backend.append_message(session_id, "text", "system")
        with pytest.raises(SessionBackendError) as excinfo:
            await backend.append_message("missing", "text", "user")
        assert excinfo.value.status == 404
        with pytest.raises(SessionBackendError):
            await backend.update_session_title("missing", "title")

    asyncio.run(run())


def test_sqlite_backend_persists_across_instances(tmp_path: Path) -> None:
    async def run() -> None:
        db_path = tmp_path / "nested" / "sessions.db"
        session_id = await SQLiteSessionBackend(db_path).create_session("Durable")
        await SQLiteSessionBackend(db_path).append_message(session_id, "kept", "user")

        reopened = SQLiteSessionBackend(db_path)

        assert [item.title for item in await reopened.list_sessions()] == ["Durable"]
        assert [item.content for item in await reopened.list_messages(session_id)] == ["kept"]

    asyncio.run(run())
