from __future__ import annotations

from dataclasses import dataclass, field, replace

from config.chat_settings import DEFAULT_CONVERSATION_SETTINGS, DEFAULT_SESSION_SETTINGS
from shared.chat_models import (
    DEFAULT_PROVIDER,
    ChatMessage,
    ChatSnapshot,
    Conversation,
    ConversationSettings,
    ModelDefaults,
    ModelDescriptor,
    Provider,
    SessionSettings,
)


@dataclass
class ChatState:
    """Everything the synchronizer owns.

    Consumers read these fields; only ``ChatSynchronizer`` operations write them.
    """

    conversations: list[Conversation] = field(default_factory=list)
    messages: dict[str, list[ChatMessage]] = field(default_factory=dict)
    available_models: list[ModelDescriptor] = field(default_factory=list)
    selected_conversation_id: str | None = None
    selected_model_id: str | None = None
    selected_provider: Provider = DEFAULT_PROVIDER
    provider_inferred: bool = False
    conversation_settings: ConversationSettings = DEFAULT_CONVERSATION_SETTINGS
    current_session_settings: SessionSettings = DEFAULT_SESSION_SETTINGS
    model_defaults: dict[str, ModelDefaults] = field(default_factory=dict)
    search_query: str = ""
    is_loading: bool = False
    is_loading_messages: bool = False
    is_loading_models: bool = False
    is_sending: bool = False
    is_hydrated: bool = False
    error: str | None = None
    catalog_generation: int = 0

    def find_conversation(self, conversation_id: str | None) -> Conversation | None:
        if conversation_id is None:
            return None
        for conversation in self.conversations:
            if conversation.id == conversation_id:
                return conversation
        return None

    def selected_conversation(self) -> Conversation | None:
        return self.find_conversation(self.selected_conversation_id)

    def to_snapshot(self) -> ChatSnapshot:
        return ChatSnapshot(
            conversations=[replace(item) for item in self.conversations],
            selected_conversation_id=self.selected_conversation_id,
            selected_model_id=self.selected_model_id,
            selected_provider=self.selected_provider,
        )

    def filtered_conversations(self) -> list[Conversation]:
        query = self.search_query.strip().lower()
        items = [
            item
            for item in self.conversations
            if not query
            or query in item.title.lower()
            or query in item.last_message_preview.lower()
        ]
        items.sort(key=lambda item: item.updated_at, reverse=True)
        items.sort(key=lambda item: not item.pinned)
        return items
