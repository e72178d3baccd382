from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Protocol

from shared.chat_models import (
    DEFAULT_PROVIDER,
    ChatSnapshot,
    Conversation,
    parse_provider,
    utc_iso_now,
)
from shared.sanitize import safe_json_loads

_DEFAULT_SNAPSHOT_PATH = Path(".run/chat_snapshot.json")


class ChatSnapshotStore(Protocol):
    async def load(self) -> ChatSnapshot | None: ...

    async def save(self, snapshot: ChatSnapshot) -> None: ...


def _conversation_from_dict(data: dict[str, object]) -> Conversation | None:
    conversation_id = data.get("id")
    title = data.get("title")
    if not isinstance(conversation_id, str) or not conversation_id.strip():
        return None
    if not isinstance(title, str):
        return None
    preview_raw = data.get("last_message_preview")
    updated_raw = data.get("updated_at")
    model_raw = data.get("model_id")
    return Conversation(
        id=conversation_id,
        title=title,
        last_message_preview=preview_raw if isinstance(preview_raw, str) else "",
        updated_at=updated_raw if isinstance(updated_raw, str) else utc_iso_now(),
        pinned=data.get("pinned") is True,
        model_id=model_raw if isinstance(model_raw, str) and model_raw.strip() else None,
        provider=parse_provider(data.get("provider")),
    )


def _conversation_to_dict(conversation: Conversation) -> dict[str, object]:
    payload: dict[str, object] = {
        "id": conversation.id,
        "title": conversation.title,
        "last_message_preview": conversation.last_message_preview,
        "updated_at": conversation.updated_at,
        "pinned": conversation.pinned,
    }
    if conversation.model_id is not None:
        payload["model_id"] = conversation.model_id
    if conversation.provider is not None:
        payload["provider"] = conversation.provider.value
    return payload


def snapshot_from_dict(data: dict[str, object]) -> ChatSnapshot:
    conversations_raw = data.get("conversations")
    conversations: list[Conversation] = []
    seen: set[str] = set()
    if isinstance(conversations_raw, list):
        for item in conversations_raw:
            if not isinstance(item, dict):
                continue
            conversation = _conversation_from_dict(item)
            if conversation is None or conversation.id in seen:
                continue
            seen.add(conversation.id)
            conversations.append(conversation)
    selected_raw = data.get("selected_conversation_id")
    selected_id = selected_raw if isinstance(selected_raw, str) and selected_raw in seen else None
    model_raw = data.get("selected_model_id")
    return ChatSnapshot(
        conversations=conversations,
        selected_conversation_id=selected_id,
        selected_model_id=model_raw if isinstance(model_raw, str) and model_raw.strip() else None,
        selected_provider=parse_provider(data.get("selected_provider")) or DEFAULT_PROVIDER,
    )


def snapshot_to_dict(snapshot: ChatSnapshot) -> dict[str, object]:
    return {
        "conversations": [_conversation_to_dict(item) for item in snapshot.conversations],
        "selected_conversation_id": snapshot.selected_conversation_id,
        "selected_model_id": snapshot.selected_model_id,
        "selected_provider": snapshot.selected_provider.value,
    }


class InMemoryChatSnapshotStore:
    def __init__(self, snapshot: ChatSnapshot | None = None) -> None:
        self._snapshot = snapshot
        self._lock = asyncio.Lock()
        self.save_count = 0

    async def load(self) -> ChatSnapshot | None:
        async with self._lock:
            return self._snapshot

    async def save(self, snapshot: ChatSnapshot) -> None:
        async with self._lock:
            self._snapshot = snapshot
            self.save_count += 1


class FileBackedChatSnapshotStore:
    """JSON snapshot on disk; a corrupt or missing file loads as no snapshot."""

    def __init__(self, path: Path = _DEFAULT_SNAPSHOT_PATH) -> None:
        self._path = path
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> ChatSnapshot | None:
        async with self._lock:
            if not self._path.exists():
                return None
            try:
                raw = self._path.read_text(encoding="utf-8")
            except OSError:
                return None
            parsed = safe_json_loads(raw)
            if not isinstance(parsed, dict):
                return None
            return snapshot_from_dict(parsed)

    async def save(self, snapshot: ChatSnapshot) -> None:
        payload = json.dumps(snapshot_to_dict(snapshot), ensure_ascii=False, indent=2)
        async with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, self._path)
