from __future__ import annotations

# mypy: ignore-errors
import logging

from config.chat_settings import ChatSettings
from core.chat_state import ChatState
from core.keyed_lock import KeyedLock
from core.model_catalog import find_model, resolve_model_provider
from server.session_backend import SessionBackend
from shared.chat_models import (
    ChatMessage,
    Conversation,
    conversation_from_session,
    message_from_record,
    truncate_preview,
)

logger = logging.getLogger("ChatSync.State")


class ChatConversationsMixin:
    _state: ChatState
    _backend: SessionBackend
    _settings: ChatSettings
    _conversation_locks: KeyedLock
    _message_fetches: set[str]
    _selection_epoch: int

    async def list_conversations(self) -> bool:
        state = self._state
        state.is_loading = True
        state.error = None
        self._publish("status")
        known_before = {item.id for item in state.conversations}
        try:
            sessions = await self._backend.list_sessions()
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to list conversations: %s", exc, exc_info=True)
            self._fail("Failed to load conversations", is_loading=False)
            return False

        existing = {item.id: item for item in state.conversations}
        listed_ids = {record.id for record in sessions}
        merged: list[Conversation] = []
        for record in sessions:
            cached = state.messages.get(record.id) or []
            preview = truncate_preview(cached[-1].content) if cached else ""
            conversation = conversation_from_session(record, preview)
            prior = existing.get(record.id)
            if prior is not None:
                conversation.pinned = prior.pinned
                conversation.model_id = prior.model_id
                conversation.provider = prior.provider
            merged.append(conversation)
        # Conversations created while the listing was in flight are not in it yet.
        created_meanwhile = [
            item
            for item in state.conversations
            if item.id not in listed_ids and item.id not in known_before
        ]
        state.conversations = created_meanwhile + merged
        kept_ids = {item.id for item in state.conversations}
        for stale_id in [key for key in state.messages if key not in kept_ids]:
            del state.messages[stale_id]
        if state.selected_conversation_id not in kept_ids:
            state.selected_conversation_id = None
        state.is_loading = False
        logger.info("Conversations loaded", extra={"count": len(state.conversations)})
        await self._commit("conversations_loaded", {"count": len(state.conversations)})
        return True

    async def create_conversation(self, title: str | None = None) -> str | None:
        state = self._state
        resolved_title = title.strip() if title and title.strip() else self._settings.default_title
        state.is_loading = True
        state.error = None
        self._publish("status")
        try:
            session_id = await self._backend.create_session(resolved_title)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to create conversation: %s", exc, exc_info=True)
            self._fail("Failed to create conversation", is_loading=False)
            return None

        conversation = Conversation(
            id=session_id,
            title=resolved_title,
            model_id=state.selected_model_id,
            provider=state.selected_provider,
        )
        state.conversations.insert(0, conversation)
        state.messages[session_id] = []
        state.is_loading = False
        logger.info(
            "Conversation created",
            extra={"conversation_id": session_id, "model_id": conversation.model_id},
        )
        await self._commit("conversation_created", {"conversation_id": session_id})
        return session_id

    async def select_conversation(self, conversation_id: str | None) -> None:
        state = self._state
        if conversation_id is not None and state.find_conversation(conversation_id) is None:
            logger.warning("Ignoring selection of unknown conversation %s", conversation_id)
            return
        self._selection_epoch += 1
        state.selected_conversation_id = conversation_id
        conversation = state.find_conversation(conversation_id)
        if conversation is not None:
            if conversation.model_id:
                # Restored even when the catalog lacks it; the next catalog pass validates.
                provider, inferred = resolve_model_provider(
                    state.available_models,
                    conversation.model_id,
                    conversation.provider,
                )
                conversation.provider = provider
                state.selected_model_id = conversation.model_id
                state.selected_provider = provider
                state.provider_inferred = inferred
                if inferred:
                    logger.warning(
                        "Inferred provider %s for model %s",
                        provider.value,
                        conversation.model_id,
                    )
                if state.available_models and find_model(
                    state.available_models,
                    conversation.model_id,
                ) is None:
                    logger.warning(
                        "Conversation model %s is not in the current catalog",
                        conversation.model_id,
                    )
            elif state.selected_model_id:
                conversation.model_id = state.selected_model_id
                conversation.provider = state.selected_provider
        if (
            conversation_id is not None
            and conversation_id not in state.messages
            and conversation_id not in self._message_fetches
        ):
            self._message_fetches.add(conversation_id)
            self._spawn(self._fetch_messages_claimed(conversation_id), name="fetch-messages")
        await self._commit(
            "conversation_selected",
            {
                "conversation_id": conversation_id,
                "model_id": state.selected_model_id,
                "provider": state.selected_provider.value,
            },
        )

    async def toggle_pin(self, conversation_id: str) -> bool | None:
        conversation = self._state.find_conversation(conversation_id)
        if conversation is None:
            return None
        conversation.pinned = not conversation.pinned
        await self._commit(
            "conversation_updated",
            {"conversation_id": conversation_id, "pinned": conversation.pinned},
        )
        return conversation.pinned

    async def delete_conversation(self, conversation_id: str) -> bool:
        state = self._state
        state.error = None
        async with self._conversation_locks.hold(conversation_id):
            try:
                deleted = await self._backend.delete_session(conversation_id)
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to delete conversation %s: %s", conversation_id, exc)
                self._fail(f"Failed to delete conversation: {exc}")
                return False
            if not deleted:
                logger.error("Backend refused to delete conversation %s", conversation_id)
                self._fail("Failed to delete conversation: Backend returned false")
                return False
            state.conversations = [item for item in state.conversations if item.id != conversation_id]
            state.messages.pop(conversation_id, None)
            if state.selected_conversation_id == conversation_id:
                state.selected_conversation_id = None
            await self._commit("conversation_deleted", {"conversation_id": conversation_id})
        return True

    async def fetch_messages(self, conversation_id: str) -> bool:
        if conversation_id in self._message_fetches:
            return False
        self._message_fetches.add(conversation_id)
        return await self._fetch_messages_claimed(conversation_id)

    async def _fetch_messages_claimed(self, conversation_id: str) -> bool:
        self._begin_message_load()
        try:
            async with self._conversation_locks.hold(conversation_id):
                try:
                    await self._load_messages_locked(conversation_id)
                except Exception as exc:  # noqa: BLE001
                    logger.error(
                        "Failed to fetch messages for %s: %s",
                        conversation_id,
                        exc,
                        exc_info=True,
                    )
                    self._fail("Failed to load messages")
                    return False
            return True
        finally:
            self._message_fetches.discard(conversation_id)
            self._end_message_load()

    async def _load_messages_locked(self, conversation_id: str) -> list[ChatMessage] | None:
        records = await self._backend.list_messages(conversation_id)
        conversation = self._state.find_conversation(conversation_id)
        if conversation is None:
            logger.info("Dropping messages of vanished conversation %s", conversation_id)
            return None
        messages = [message_from_record(record) for record in records]
        self._state.messages[conversation_id] = messages
        conversation.last_message_preview = truncate_preview(messages[-1].content) if messages else ""
        await self._commit(
            "messages_loaded",
            {"conversation_id": conversation_id, "count": len(messages)},
        )
        return messages

    def set_search_query(self, query: str) -> None:
        self._state.search_query = query
        self._publish("search_changed", {"query": query})

    def filtered_conversations(self) -> list[Conversation]:
        return self._state.filtered_conversations()
