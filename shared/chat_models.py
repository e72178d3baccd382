from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Final, Literal

DEFAULT_CONVERSATION_TITLE: Final[str] = "New chat"
PREVIEW_MAX_CHARS: Final[int] = 50

MessageRole = Literal["user", "assistant"]


def utc_iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()  # noqa: UP017


class Provider(str, Enum):
    OLLAMA = "ollama"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OPENROUTER = "openrouter"
    DEEPSEEK = "deepseek"
    MISTRAL = "mistral"
    GEMINI = "gemini"


DEFAULT_PROVIDER: Final[Provider] = Provider.OLLAMA


def parse_provider(raw: object) -> Provider | None:
    if isinstance(raw, Provider):
        return raw
    if not isinstance(raw, str):
        return None
    normalized = raw.strip().lower()
    for provider in Provider:
        if provider.value == normalized:
            return provider
    return None


@dataclass
class Conversation:
    """A titled thread bound to zero or one model.

    Owned by the synchronizer; consumers read it and never mutate it directly.
    """

    id: str
    title: str
    last_message_preview: str = ""
    updated_at: str = field(default_factory=utc_iso_now)
    pinned: bool = False
    model_id: str | None = None
    provider: Provider | None = None


@dataclass(frozen=True)
class ChatMessage:
    id: str
    role: MessageRole
    content: str
    timestamp: str


@dataclass(frozen=True)
class ModelDescriptor:
    id: str
    provider: Provider
    display_name: str
    parameter_size: str | None = None
    description: str | None = None
    context_length: int | None = None


@dataclass(frozen=True)
class SessionRecord:
    id: str
    title: str
    created_at: str
    updated_at: str
    message_count: int = 0


@dataclass(frozen=True)
class MessageRecord:
    id: str
    session_id: str
    content: str
    role: str
    timestamp: str


@dataclass(frozen=True)
class SessionSettings:
    system_prompt: str
    creativity: float = 0.7
    max_tokens: int = 2000


@dataclass(frozen=True)
class ConversationSettings:
    auto_clean_responses: bool = True
    max_response_length: int = 2000
    make_conversational: bool = True
    show_processing_info: bool = False


@dataclass(frozen=True)
class ModelDefaults:
    session: SessionSettings
    conversation: ConversationSettings


@dataclass(frozen=True)
class ChatSnapshot:
    """Serializable projection of the chat state.

    Loading flags, errors, the model catalog and the message cache are never part of it.
    """

    conversations: list[Conversation]
    selected_conversation_id: str | None = None
    selected_model_id: str | None = None
    selected_provider: Provider = DEFAULT_PROVIDER


def truncate_preview(content: str, limit: int = PREVIEW_MAX_CHARS) -> str:
    text = content.strip()
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def conversation_from_session(record: SessionRecord, last_message: str = "") -> Conversation:
    return Conversation(
        id=record.id,
        title=record.title,
        last_message_preview=last_message,
        updated_at=record.updated_at,
    )


def message_from_record(record: MessageRecord) -> ChatMessage:
    role: MessageRole = "user" if record.role == "user" else "assistant"
    return ChatMessage(
        id=record.id,
        role=role,
        content=record.content,
        timestamp=record.timestamp,
    )
