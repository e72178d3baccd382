from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Coroutine
from typing import Any

from config.chat_settings import ChatSettings
from config.model_whitelist import EnabledModels, EnabledModelsSource, FileEnabledModelsSource
from core.chat_catalog import ChatCatalogMixin
from core.chat_conversations import ChatConversationsMixin
from core.chat_exchange import ChatExchangeMixin
from core.chat_hydration import ChatHydrationMixin
from core.chat_session_settings import ChatSessionSettingsMixin
from core.chat_state import ChatState
from core.keyed_lock import KeyedLock
from core.response_formatter import PassthroughFormatter, ResponseFormatter
from llm.provider_gateway import ModelGateway
from server.chat_snapshot_store import ChatSnapshotStore, InMemoryChatSnapshotStore
from server.session_backend import SessionBackend
from shared.chat_models import utc_iso_now
from shared.models import JSONValue

logger = logging.getLogger("ChatSync.State")

ChatEvent = dict[str, JSONValue]


class ChatSynchronizer(
    ChatConversationsMixin,
    ChatCatalogMixin,
    ChatExchangeMixin,
    ChatSessionSettingsMixin,
    ChatHydrationMixin,
):
    """Owns conversations, their messages and the model selection.

    Every mutation goes through a method of this class. Operations never raise for
    collaborator failures: they log, clear their loading flags and set ``state.error``.
    After each committed mutation the persistable projection is saved and an event is
    published to subscribers.
    """

    def __init__(
        self,
        *,
        backend: SessionBackend,
        gateway: ModelGateway,
        store: ChatSnapshotStore | None = None,
        enabled_models: EnabledModelsSource | None = None,
        formatter: ResponseFormatter | None = None,
        settings: ChatSettings | None = None,
    ) -> None:
        self._backend = backend
        self._gateway = gateway
        self._store: ChatSnapshotStore = store or InMemoryChatSnapshotStore()
        self._enabled_models_source: EnabledModelsSource = (
            enabled_models or FileEnabledModelsSource()
        )
        self._enabled_models = EnabledModels()
        self._formatter: ResponseFormatter = formatter or PassthroughFormatter()
        self._settings = settings or ChatSettings()
        self._state = ChatState(selected_provider=self._settings.default_provider)
        self._conversation_locks = KeyedLock()
        self._subscribers: set[asyncio.Queue[ChatEvent]] = set()
        self._background: set[asyncio.Task[object]] = set()
        self._message_fetches: set[str] = set()
        self._sending = 0
        self._message_loads = 0
        self._catalog_requests = 0
        self._catalog_loads = 0
        self._selection_epoch = 0

    @property
    def state(self) -> ChatState:
        return self._state

    @property
    def settings(self) -> ChatSettings:
        return self._settings

    def subscribe(self) -> asyncio.Queue[ChatEvent]:
        queue: asyncio.Queue[ChatEvent] = asyncio.Queue()
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[ChatEvent]) -> None:
        self._subscribers.discard(queue)

    def clear_error(self) -> None:
        self._state.error = None
        self._publish("error_cleared")

    async def reset(self) -> None:
        await self._cancel_background()
        self._state = ChatState(selected_provider=self._settings.default_provider)
        self._message_fetches.clear()
        self._sending = 0
        self._message_loads = 0
        self._catalog_loads = 0
        self._selection_epoch += 1
        await self._commit("reset")

    async def wait_idle(self) -> None:
        """Wait for background work, including work spawned while waiting."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        """Stop background work and release the session backend."""
        await self._cancel_background()
        self._subscribers.clear()
        try:
            await self._backend.close()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to close session backend: %s", exc, exc_info=True)

    async def _cancel_background(self) -> None:
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._background.clear()

    def _spawn(self, coro: Coroutine[Any, Any, object], *, name: str) -> asyncio.Task[object]:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task[object]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background task %s failed: %s",
                task.get_name(),
                exc,
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    async def _commit(
        self,
        event_type: str,
        payload: dict[str, JSONValue] | None = None,
        *,
        persist: bool = True,
    ) -> None:
        if persist:
            await self._persist()
        self._publish(event_type, payload)

    async def _persist(self) -> None:
        try:
            await self._store.save(self._state.to_snapshot())
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to persist chat snapshot: %s", exc, exc_info=True)

    def _publish(self, event_type: str, payload: dict[str, JSONValue] | None = None) -> None:
        if not self._subscribers:
            return
        event: ChatEvent = {
            "id": uuid.uuid4().hex,
            "type": event_type,
            "ts": utc_iso_now(),
            "payload": payload or {},
        }
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                continue

    def _fail(self, message: str, **flags: bool) -> None:
        state = self._state
        for name, value in flags.items():
            setattr(state, name, value)
        state.error = message
        self._publish("error", {"message": message})

    def _begin_sending(self) -> None:
        self._sending += 1
        self._state.is_sending = True
        self._publish("status")

    def _end_sending(self) -> None:
        self._sending = max(0, self._sending - 1)
        self._state.is_sending = self._sending > 0
        self._publish("status")

    def _begin_message_load(self) -> None:
        self._message_loads += 1
        self._state.is_loading_messages = True

    def _end_message_load(self) -> None:
        self._message_loads = max(0, self._message_loads - 1)
        self._state.is_loading_messages = self._message_loads > 0
