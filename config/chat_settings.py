from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from config.system_prompts import DEFAULT_SYSTEM_PROMPT
from shared.chat_models import (
    DEFAULT_CONVERSATION_TITLE,
    DEFAULT_PROVIDER,
    ConversationSettings,
    Provider,
    SessionSettings,
    parse_provider,
)

DEFAULT_PATH = Path("config/chat_settings.json")
DEFAULT_SNAPSHOT_PATH = Path(".run/chat_snapshot.json")
DEFAULT_SESSIONS_DB_PATH = Path(".run/chat_sessions.db")
DEFAULT_TITLE_MAX_CHARS = 50

DEFAULT_SESSION_SETTINGS = SessionSettings(system_prompt=DEFAULT_SYSTEM_PROMPT)
EMPTY_SESSION_SETTINGS = SessionSettings(system_prompt="")
DEFAULT_CONVERSATION_SETTINGS = ConversationSettings()


@dataclass(frozen=True)
class ChatSettings:
    """Where the engine keeps its files and which defaults it starts from."""

    snapshot_path: Path = DEFAULT_SNAPSHOT_PATH
    sessions_db_path: Path = DEFAULT_SESSIONS_DB_PATH
    default_provider: Provider = DEFAULT_PROVIDER
    default_title: str = DEFAULT_CONVERSATION_TITLE
    title_max_chars: int = DEFAULT_TITLE_MAX_CHARS

    def to_dict(self) -> dict[str, object]:
        return {
            "snapshot_path": str(self.snapshot_path),
            "sessions_db_path": str(self.sessions_db_path),
            "default_provider": self.default_provider.value,
            "default_title": self.default_title,
            "title_max_chars": self.title_max_chars,
        }


def load_chat_settings(path: Path = DEFAULT_PATH) -> ChatSettings:
    if not path.exists():
        return ChatSettings()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:  # noqa: BLE001
        raise RuntimeError(f"Failed to read chat_settings.json: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError("chat_settings.json must contain an object.")
    snapshot_path = data.get("snapshot_path", str(DEFAULT_SNAPSHOT_PATH))
    sessions_db_path = data.get("sessions_db_path", str(DEFAULT_SESSIONS_DB_PATH))
    provider_raw = data.get("default_provider", DEFAULT_PROVIDER.value)
    default_title = data.get("default_title", DEFAULT_CONVERSATION_TITLE)
    title_max_chars = data.get("title_max_chars", DEFAULT_TITLE_MAX_CHARS)
    if not isinstance(snapshot_path, str) or not snapshot_path.strip():
        raise ValueError("chat_settings.snapshot_path must be a non-empty string.")
    if not isinstance(sessions_db_path, str) or not sessions_db_path.strip():
        raise ValueError("chat_settings.sessions_db_path must be a non-empty string.")
    provider = parse_provider(provider_raw)
    if provider is None:
        raise ValueError(f"chat_settings.default_provider is unknown: {provider_raw}")
    if not isinstance(default_title, str) or not default_title.strip():
        raise ValueError("chat_settings.default_title must be a non-empty string.")
    if not isinstance(title_max_chars, int) or title_max_chars < 1:
        raise ValueError("chat_settings.title_max_chars must be a positive int.")
    return ChatSettings(
        snapshot_path=Path(snapshot_path.strip()),
        sessions_db_path=Path(sessions_db_path.strip()),
        default_provider=provider,
        default_title=default_title.strip(),
        title_max_chars=title_max_chars,
    )


def resolve_chat_settings(path: Path = DEFAULT_PATH) -> ChatSettings:
    config = load_chat_settings(path)
    snapshot_raw = os.getenv("CHATSYNC_SNAPSHOT_PATH")
    db_raw = os.getenv("CHATSYNC_SESSIONS_DB")
    provider_raw = os.getenv("CHATSYNC_DEFAULT_PROVIDER")

    snapshot_path = config.snapshot_path
    if isinstance(snapshot_raw, str) and snapshot_raw.strip():
        snapshot_path = Path(snapshot_raw.strip())

    sessions_db_path = config.sessions_db_path
    if isinstance(db_raw, str) and db_raw.strip():
        sessions_db_path = Path(db_raw.strip())

    default_provider = config.default_provider
    if isinstance(provider_raw, str) and provider_raw.strip():
        parsed = parse_provider(provider_raw)
        if parsed is None:
            raise ValueError(f"CHATSYNC_DEFAULT_PROVIDER is unknown: {provider_raw}")
        default_provider = parsed

    return ChatSettings(
        snapshot_path=snapshot_path,
        sessions_db_path=sessions_db_path,
        default_provider=default_provider,
        default_title=config.default_title,
        title_max_chars=config.title_max_chars,
    )
