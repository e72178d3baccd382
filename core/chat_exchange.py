from __future__ import annotations

# mypy: ignore-errors
import logging

from config.chat_settings import ChatSettings
from config.system_prompts import TITLE_PROMPT
from core.chat_state import ChatState
from core.error_messages import NO_MODEL_SELECTED_MESSAGE, classify_error
from core.exchange_result import ExchangeErr, ExchangeOk, ExchangeResult
from core.keyed_lock import KeyedLock
from core.model_catalog import find_model
from core.response_formatter import ResponseFormatter
from llm.provider_gateway import ModelGateway
from server.session_backend import SessionBackend
from shared.chat_models import (
    ChatMessage,
    Conversation,
    Provider,
    message_from_record,
    truncate_preview,
    utc_iso_now,
)
from shared.models import LLMMessage

logger = logging.getLogger("ChatSync.State")

SEND_FAILED_MESSAGE = "Failed to send message"
REGENERATE_FAILED_MESSAGE = "Failed to regenerate response"


def clean_generated_title(raw: str, limit: int) -> str:
    return raw.strip().replace('"', "").replace("'", "").strip()[:limit].strip()


def _history(messages: list[ChatMessage]) -> list[LLMMessage]:
    return [LLMMessage(role=item.role, content=item.content) for item in messages]


class ChatExchangeMixin:
    _state: ChatState
    _backend: SessionBackend
    _gateway: ModelGateway
    _formatter: ResponseFormatter
    _settings: ChatSettings
    _conversation_locks: KeyedLock

    def _exchange_target(self, conversation: Conversation) -> tuple[str, Provider] | None:
        """Model and provider a request for ``conversation`` goes to.

        The active conversation follows the global selection; a background one keeps its own
        binding. A provider that disagrees with the catalog entry is corrected.
        """
        state = self._state
        if conversation.id == state.selected_conversation_id or not conversation.model_id:
            model_id = state.selected_model_id
            provider = state.selected_provider
        else:
            model_id = conversation.model_id
            provider = conversation.provider or state.selected_provider
        if not model_id:
            return None
        catalog_model = find_model(state.available_models, model_id)
        if catalog_model is not None and catalog_model.provider != provider:
            logger.warning(
                "Provider mismatch for %s: %s -> %s",
                model_id,
                provider.value,
                catalog_model.provider.value,
            )
            provider = catalog_model.provider
            if model_id == state.selected_model_id:
                state.selected_provider = provider
        return model_id, provider

    async def send_message(self, conversation_id: str, text: str) -> bool:
        content = text.strip()
        if not content:
            return False
        if self._state.find_conversation(conversation_id) is None:
            logger.warning("send_message for unknown conversation %s", conversation_id)
            return False
        self._state.error = None
        self._begin_sending()
        try:
            async with self._conversation_locks.hold(conversation_id):
                return await self._send_locked(conversation_id, content)
        finally:
            self._end_sending()

    async def _send_locked(self, conversation_id: str, content: str) -> bool:
        state = self._state
        conversation = state.find_conversation(conversation_id)
        if conversation is None:
            logger.warning("Conversation %s vanished before send", conversation_id)
            self._fail(SEND_FAILED_MESSAGE)
            return False
        if conversation_id not in state.messages:
            try:
                await self._load_messages_locked(conversation_id)
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to load history before send: %s", exc, exc_info=True)
                self._fail("Failed to load messages")
                return False
        if self._exchange_target(conversation) is None:
            self._fail(NO_MODEL_SELECTED_MESSAGE)
            return False

        try:
            user_record = await self._backend.append_message(conversation_id, content, "user")
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to persist user message: %s", exc, exc_info=True)
            self._fail(SEND_FAILED_MESSAGE)
            return False
        bucket = state.messages.setdefault(conversation_id, [])
        bucket.append(message_from_record(user_record))
        conversation.last_message_preview = truncate_preview(content)
        conversation.updated_at = utc_iso_now()
        await self._commit(
            "message_appended",
            {"conversation_id": conversation_id, "message_id": user_record.id, "role": "user"},
        )

        target = self._exchange_target(conversation)
        if target is None:
            self._fail(NO_MODEL_SELECTED_MESSAGE)
            return False
        model_id, provider = target
        logger.debug(
            "Requesting completion",
            extra={"conversation_id": conversation_id, "model_id": model_id, "provider": provider.value},
        )
        try:
            raw = await self._gateway.complete(
                provider,
                _history(bucket),
                model_id,
                state.current_session_settings,
            )
            reply = self._formatter.clean(raw)
            assistant_record = await self._backend.append_message(conversation_id, reply, "assistant")
        except Exception as exc:  # noqa: BLE001
            logger.error("Assistant reply failed for %s: %s", conversation_id, exc, exc_info=True)
            self._fail(classify_error(exc, model_id=model_id, fallback=SEND_FAILED_MESSAGE))
            return False

        if state.find_conversation(conversation_id) is None:
            logger.info("Conversation %s vanished during send", conversation_id)
            return False
        state.messages.setdefault(conversation_id, []).append(message_from_record(assistant_record))
        conversation.last_message_preview = truncate_preview(reply)
        conversation.updated_at = utc_iso_now()
        conversation.model_id = model_id
        conversation.provider = provider
        await self._commit(
            "message_appended",
            {
                "conversation_id": conversation_id,
                "message_id": assistant_record.id,
                "role": "assistant",
                "model_id": model_id,
            },
        )
        if conversation.title == self._settings.default_title:
            self._spawn(
                self.generate_title(conversation_id, content, model_id=model_id, provider=provider),
                name="generate-title",
            )
        return True

    async def regenerate_response(self, conversation_id: str, message_id: str) -> bool:
        async with self._conversation_locks.hold(conversation_id):
            state = self._state
            messages = state.messages.get(conversation_id)
            conversation = state.find_conversation(conversation_id)
            if not messages or conversation is None:
                logger.warning("Cannot regenerate: no history for %s", conversation_id)
                return False
            index = next(
                (
                    position
                    for position, item in enumerate(messages)
                    if item.id == message_id and item.role == "assistant"
                ),
                None,
            )
            if index is None:
                logger.warning("Cannot regenerate: assistant message %s not found", message_id)
                return False
            if not any(item.role == "user" for item in messages[:index]):
                logger.warning("Cannot regenerate: no user message before %s", message_id)
                return False
            target = self._exchange_target(conversation)
            if target is None:
                self._fail(NO_MODEL_SELECTED_MESSAGE)
                return False
            model_id, provider = target

            state.error = None
            self._begin_sending()
            try:
                original = messages.pop(index)
                self._publish(
                    "message_removed",
                    {"conversation_id": conversation_id, "message_id": original.id},
                )
                result = await self._regenerate_exchange(
                    conversation_id,
                    _history(messages[:index]),
                    model_id,
                    provider,
                )
                regenerated = self._settle_regeneration(
                    conversation_id,
                    index,
                    original,
                    result,
                    model_id,
                )
                await self._commit(
                    "message_regenerated" if regenerated else "regeneration_failed",
                    {"conversation_id": conversation_id, "index": index},
                )
                return regenerated
            finally:
                self._end_sending()

    async def _regenerate_exchange(
        self,
        conversation_id: str,
        history: list[LLMMessage],
        model_id: str,
        provider: Provider,
    ) -> ExchangeResult:
        stage = "complete"
        try:
            raw = await self._gateway.complete(
                provider,
                history,
                model_id,
                self._state.current_session_settings,
            )
            stage = "format"
            reply = self._formatter.clean(raw)
            stage = "persist"
            record = await self._backend.append_message(conversation_id, reply, "assistant")
        except Exception as exc:  # noqa: BLE001
            logger.error("Regeneration failed at %s: %s", stage, exc, exc_info=True)
            return ExchangeErr(error=exc, stage=stage)
        return ExchangeOk(message=message_from_record(record))

    def _settle_regeneration(
        self,
        conversation_id: str,
        index: int,
        original: ChatMessage,
        result: ExchangeResult,
        model_id: str,
    ) -> bool:
        state = self._state
        bucket = state.messages.get(conversation_id)
        if bucket is None:
            logger.info("Conversation %s vanished during regeneration", conversation_id)
            return False
        if isinstance(result, ExchangeErr):
            bucket.insert(index, original)
            state.error = classify_error(
                result.error,
                model_id=model_id,
                fallback=REGENERATE_FAILED_MESSAGE,
            )
            return False
        bucket.insert(index, result.message)
        if index == len(bucket) - 1:
            conversation = state.find_conversation(conversation_id)
            if conversation is not None:
                conversation.last_message_preview = truncate_preview(result.message.content)
                conversation.updated_at = utc_iso_now()
        return True

    async def generate_title(
        self,
        conversation_id: str,
        first_message: str,
        *,
        model_id: str | None = None,
        provider: Provider | None = None,
    ) -> str | None:
        state = self._state
        conversation = state.find_conversation(conversation_id)
        if conversation is None:
            return None
        if model_id is None or provider is None:
            target = self._exchange_target(conversation)
            if target is None:
                logger.warning("Skipping title generation for %s: no model", conversation_id)
                return None
            model_id, provider = target
        prompt = [
            LLMMessage(role="system", content=TITLE_PROMPT),
            LLMMessage(role="user", content=first_message),
        ]
        try:
            raw = await self._gateway.complete(provider, prompt, model_id)
            title = clean_generated_title(raw, self._settings.title_max_chars)
            if not title:
                logger.warning("Model returned an empty title for %s", conversation_id)
                return None
            await self._backend.update_session_title(conversation_id, title)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to generate title for %s: %s", conversation_id, exc, exc_info=True)
            return None
        conversation = state.find_conversation(conversation_id)
        if conversation is None:
            return title
        conversation.title = title
        logger.debug("Generated title", extra={"conversation_id": conversation_id, "title": title})
        await self._commit("conversation_updated", {"conversation_id": conversation_id, "title": title})
        return title
