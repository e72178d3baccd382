from __future__ import annotations

import sqlite3
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def _isolate_chat_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "CHATSYNC_ENABLED_MODELS",
        "CHATSYNC_SNAPSHOT_PATH",
        "CHATSYNC_SESSIONS_DB",
        "CHATSYNC_DEFAULT_PROVIDER",
        "CHATSYNC_HTTP_HOST",
        "CHATSYNC_HTTP_PORT",
        "CHATSYNC_SESSION_API_URL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _close_sqlite_connections(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    connections: list[sqlite3.Connection] = []
    original_connect = sqlite3.connect

    def _connect(*args: object, **kwargs: object) -> sqlite3.Connection:
        conn = original_connect(*args, **kwargs)  # type: ignore[arg-type]
        connections.append(conn)
        return conn

    monkeypatch.setattr(sqlite3, "connect", _connect)

    yield

    for conn in connections:
        conn.close()
