from __future__ import annotations

# mypy: ignore-errors
import logging
from dataclasses import replace

from core.chat_state import ChatState
from core.model_catalog import find_model, pick_default_model, resolve_model_provider
from server.chat_snapshot_store import ChatSnapshotStore

logger = logging.getLogger("ChatSync.State")


class ChatHydrationMixin:
    _state: ChatState
    _store: ChatSnapshotStore
    _selection_epoch: int

    async def hydrate(self, *, revalidate: bool = True) -> bool:
        """Restore the persisted snapshot, then validate the selection in the background.

        ``is_hydrated`` flips before the catalog arrives; the selected conversation's model
        is mirrored onto the global selection right away so consumers never see a default
        flash in before it.
        """
        state = self._state
        try:
            snapshot = await self._store.load()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to load chat snapshot: %s", exc, exc_info=True)
            snapshot = None
        if snapshot is not None:
            state.conversations = [replace(item) for item in snapshot.conversations]
            state.selected_conversation_id = snapshot.selected_conversation_id
            state.selected_model_id = snapshot.selected_model_id
            state.selected_provider = snapshot.selected_provider
            known = {item.id for item in state.conversations}
            for stale_id in [key for key in state.messages if key not in known]:
                del state.messages[stale_id]
            if state.find_conversation(state.selected_conversation_id) is None:
                state.selected_conversation_id = None
        state.is_loading = False
        state.is_loading_messages = False
        state.is_loading_models = False
        state.is_sending = False
        state.error = None
        state.is_hydrated = True

        selected = state.selected_conversation()
        if selected is not None and selected.model_id:
            provider, inferred = resolve_model_provider(
                state.available_models,
                selected.model_id,
                selected.provider or state.selected_provider,
            )
            state.selected_model_id = selected.model_id
            state.selected_provider = provider
            state.provider_inferred = inferred
        logger.info(
            "Chat state hydrated",
            extra={
                "conversations": len(state.conversations),
                "selected_conversation_id": state.selected_conversation_id,
                "selected_model_id": state.selected_model_id,
                "selected_provider": state.selected_provider.value,
            },
        )
        self._publish(
            "hydrated",
            {"restored": snapshot is not None, "conversations": len(state.conversations)},
        )
        if revalidate:
            self._spawn(
                self._revalidate_after_hydration(self._selection_epoch),
                name="hydration-revalidate",
            )
        return snapshot is not None

    async def _revalidate_after_hydration(self, epoch: int) -> None:
        applied = await self.fetch_available_models()
        if not applied:
            return
        if self._selection_epoch != epoch:
            logger.debug("Selection changed since hydration; skipping revalidation")
            return
        state = self._state
        models = state.available_models
        if not models:
            return
        changed = False
        selected = state.selected_conversation()
        if selected is not None and selected.model_id:
            model = find_model(models, selected.model_id)
            if model is None:
                logger.warning(
                    "Conversation model %s missing from catalog; keeping binding",
                    selected.model_id,
                )
            elif (state.selected_model_id, state.selected_provider) != (model.id, model.provider):
                state.selected_model_id = model.id
                state.selected_provider = model.provider
                state.provider_inferred = False
                changed = True
        elif state.selected_model_id:
            model = find_model(models, state.selected_model_id)
            if model is None:
                fallback = pick_default_model(models, self._enabled_models)
                if fallback is not None:
                    logger.warning(
                        "Persisted model %s no longer available; selecting %s",
                        state.selected_model_id,
                        fallback.id,
                    )
                    state.selected_model_id = fallback.id
                    state.selected_provider = fallback.provider
                    state.provider_inferred = False
                    changed = True
            elif model.provider != state.selected_provider:
                state.selected_provider = model.provider
                changed = True
        if changed:
            await self._commit(
                "selection_revalidated",
                {
                    "model_id": state.selected_model_id,
                    "provider": state.selected_provider.value,
                },
            )
