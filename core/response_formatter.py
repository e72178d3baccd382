from __future__ import annotations

import re
from collections.abc import Callable
from typing import Protocol

from shared.chat_models import ConversationSettings

_HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s+", re.MULTILINE)
_BOLD_RE = re.compile(r"(\*\*|__)(.+?)\1", re.DOTALL)
_ITALIC_RE = re.compile(r"(?<![\w*])([*_])(?!\s)(.+?)(?<!\s)\1(?![\w*])")
_INLINE_CODE_RE = re.compile(r"`([^`\n]+)`")
_FENCE_RE = re.compile(r"^```[\w+-]*\s*$", re.MULTILINE)
_BULLET_RE = re.compile(r"^\s*[*+]\s+", re.MULTILINE)
_BLANK_LINES_RE = re.compile(r"\n{3,}")


class ResponseFormatter(Protocol):
    def clean(self, text: str) -> str: ...


class PassthroughFormatter:
    def clean(self, text: str) -> str:
        return text.strip()


class PlainTextFormatter:
    """Strips markdown decoration from model output.

    Settings are read on every call so changes made through the synchronizer apply
    to the next response without rebuilding the formatter.
    """

    def __init__(self, settings: Callable[[], ConversationSettings] | None = None) -> None:
        self._settings = settings or ConversationSettings

    def clean(self, text: str) -> str:
        settings = self._settings()
        cleaned = text.strip()
        if settings.auto_clean_responses:
            cleaned = _FENCE_RE.sub("", cleaned)
            cleaned = _HEADING_RE.sub("", cleaned)
            cleaned = _BOLD_RE.sub(r"\2", cleaned)
            cleaned = _ITALIC_RE.sub(r"\2", cleaned)
            cleaned = _INLINE_CODE_RE.sub(r"\1", cleaned)
            cleaned = _BULLET_RE.sub("- ", cleaned)
            cleaned = _BLANK_LINES_RE.sub("\n\n", cleaned).strip()
        limit = settings.max_response_length
        if limit > 0 and len(cleaned) > limit:
            cleaned = cleaned[:limit].rstrip()
        return cleaned
