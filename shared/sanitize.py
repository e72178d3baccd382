from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from typing import Any

from shared.models import JSONValue

# Header and settings names whose values never reach a log line.
SECRET_KEYS = frozenset(
    {"api_key", "authorization", "x-api-key", "x-goog-api-key", "token", "secret"},
)
# Chat text is always summarized, whatever its length.
CHAT_TEXT_KEYS = frozenset({"content", "text", "system_prompt", "first_message"})
MAX_FIELD_PREVIEW = 120
MAX_RECORD_BYTES = 2048
ELLIPSIS = "…"


def _encode(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    if not isinstance(value, str):
        try:
            value = json.dumps(value, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            value = str(value)
    return value.encode("utf-8", errors="replace")


def summarize_text(value: Any) -> dict[str, JSONValue]:
    """Short preview, byte length and a 16-char digest; enough to correlate log lines."""
    encoded = _encode(value)
    head = encoded[:MAX_FIELD_PREVIEW].decode("utf-8", errors="replace")
    return {
        "preview": head + ELLIPSIS if len(encoded) > MAX_FIELD_PREVIEW else head,
        "chars": len(encoded),
        "sha256": hashlib.sha256(encoded).hexdigest()[:16],
    }


def _scrub(key: str, value: Any) -> JSONValue:
    name = key.lower()
    if name in SECRET_KEYS:
        return "[secret]" if value else None
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, Mapping):
        return {str(k): _scrub(str(k), v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_scrub(key, item) for item in value]
    if not isinstance(value, (str, bytes)):
        return str(value)
    if name in CHAT_TEXT_KEYS or len(_encode(value)) > MAX_FIELD_PREVIEW:
        return summarize_text(value)
    return value if isinstance(value, str) else value.decode("utf-8", errors="replace")


def sanitize_record(
    record: Mapping[str, Any],
    *,
    max_bytes: int = MAX_RECORD_BYTES,
) -> dict[str, JSONValue]:
    """Mask credentials and shorten message payloads before they reach a log line."""
    scrubbed = {str(key): _scrub(str(key), value) for key, value in record.items()}
    if len(_encode(scrubbed)) > max_bytes:
        return {"summary": summarize_text(scrubbed)}
    return scrubbed


def safe_json_loads(raw: str) -> object | None:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return None
