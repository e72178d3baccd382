from __future__ import annotations

from shared.chat_models import MessageRecord, SessionRecord
from shared.models import JSONValue


def session_to_payload(record: SessionRecord) -> dict[str, JSONValue]:
    return {
        "id": record.id,
        "title": record.title,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
        "message_count": record.message_count,
    }


def message_to_payload(record: MessageRecord) -> dict[str, JSONValue]:
    return {
        "id": record.id,
        "session_id": record.session_id,
        "content": record.content,
        "role": record.role,
        "timestamp": record.timestamp,
    }


def session_from_payload(raw: object) -> SessionRecord | None:
    if not isinstance(raw, dict):
        return None
    session_id = raw.get("id")
    title = raw.get("title")
    created_at = raw.get("created_at")
    updated_at = raw.get("updated_at")
    if not isinstance(session_id, str) or not session_id:
        return None
    if not isinstance(title, str):
        return None
    if not isinstance(created_at, str) or not isinstance(updated_at, str):
        return None
    count_raw = raw.get("message_count", 0)
    return SessionRecord(
        id=session_id,
        title=title,
        created_at=created_at,
        updated_at=updated_at,
        message_count=count_raw if isinstance(count_raw, int) else 0,
    )


def message_from_payload(raw: object) -> MessageRecord | None:
    if not isinstance(raw, dict):
        return None
    message_id = raw.get("id")
    session_id = raw.get("session_id")
    content = raw.get("content")
    role = raw.get("role")
    timestamp = raw.get("timestamp")
    if not isinstance(message_id, str) or not message_id:
        return None
    if not isinstance(session_id, str) or not isinstance(content, str):
        return None
    if not isinstance(role, str) or not isinstance(timestamp, str):
        return None
    return MessageRecord(
        id=message_id,
        session_id=session_id,
        content=content,
        role=role,
        timestamp=timestamp,
    )
