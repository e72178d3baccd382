from __future__ import annotations

# mypy: ignore-errors
import asyncio
import logging

from config.model_whitelist import EnabledModels, EnabledModelsSource
from core.chat_state import ChatState
from core.model_catalog import (
    filter_enabled_models,
    find_model,
    pick_default_model,
    resolve_model_provider,
)
from llm.provider_gateway import ModelGateway
from shared.chat_models import ModelDescriptor, Provider

logger = logging.getLogger("ChatSync.State")


class ChatCatalogMixin:
    _state: ChatState
    _gateway: ModelGateway
    _enabled_models_source: EnabledModelsSource
    _enabled_models: EnabledModels
    _catalog_requests: int
    _catalog_loads: int
    _selection_epoch: int

    async def fetch_available_models(self) -> bool:
        """Refresh the catalog and repair the selection against it.

        Each call takes a generation number up front. Results from a call that finishes
        after a newer generation was applied are dropped; otherwise reconciliation reads
        the state as it is when the catalog arrives, not as it was when the call began.
        """
        state = self._state
        self._catalog_requests += 1
        generation = self._catalog_requests
        self._catalog_loads += 1
        state.is_loading_models = True
        state.error = None
        self._publish("status")
        try:
            try:
                models = await self._gateway.list_models()
                enabled = await asyncio.to_thread(self._enabled_models_source.load)
            except Exception as exc:  # noqa: BLE001
                if generation < state.catalog_generation:
                    logger.info("Ignoring failure of superseded catalog fetch %s", generation)
                    return False
                logger.error("Failed to fetch available models: %s", exc, exc_info=True)
                self._fail("Failed to load available models")
                return False
            if generation < state.catalog_generation:
                logger.info(
                    "Discarding catalog generation %s; %s already applied",
                    generation,
                    state.catalog_generation,
                )
                return False
            filtered = filter_enabled_models(models, enabled)
            self._enabled_models = enabled
            state.available_models = filtered
            state.catalog_generation = generation
            self._reconcile_with_catalog(filtered, enabled)
            logger.info(
                "Catalog applied",
                extra={"generation": generation, "models": len(filtered), "total": len(models)},
            )
        finally:
            self._catalog_loads -= 1
            state.is_loading_models = self._catalog_loads > 0
        await self._commit(
            "models_loaded",
            {
                "generation": generation,
                "count": len(state.available_models),
                "selected_model_id": state.selected_model_id,
                "selected_provider": state.selected_provider.value,
            },
        )
        return True

    def _reconcile_with_catalog(
        self,
        models: list[ModelDescriptor],
        enabled: EnabledModels,
    ) -> None:
        state = self._state
        by_id = {model.id: model for model in models}
        for conversation in state.conversations:
            model = by_id.get(conversation.model_id or "")
            if model is not None and conversation.provider != model.provider:
                conversation.provider = model.provider

        selected = state.selected_conversation()
        if selected is not None and selected.model_id:
            # A conversation binding survives catalog gaps and the selection mirrors it.
            bound = by_id.get(selected.model_id)
            if bound is None:
                logger.warning(
                    "Selected conversation model %s is not in the catalog",
                    selected.model_id,
                )
            else:
                state.provider_inferred = False
            state.selected_model_id = selected.model_id
            state.selected_provider = selected.provider or state.selected_provider
            return

        current = by_id.get(state.selected_model_id or "")
        if current is not None:
            if state.selected_provider != current.provider:
                logger.info(
                    "Correcting provider for %s: %s -> %s",
                    current.id,
                    state.selected_provider.value,
                    current.provider.value,
                )
                state.selected_provider = current.provider
            state.provider_inferred = False
            return

        fallback = pick_default_model(models, enabled)
        if fallback is None:
            return
        logger.info(
            "Auto-selected model",
            extra={"model_id": fallback.id, "provider": fallback.provider.value},
        )
        state.selected_model_id = fallback.id
        state.selected_provider = fallback.provider
        state.provider_inferred = False

    async def refresh_enabled_models(self) -> bool:
        return await self.fetch_available_models()

    async def set_selected_model(self, model_id: str) -> None:
        state = self._state
        if not state.available_models:
            await self.fetch_available_models()
        self._selection_epoch += 1
        provider, inferred = resolve_model_provider(state.available_models, model_id)
        if inferred:
            logger.warning(
                "Model %s not in catalog; inferred provider %s",
                model_id,
                provider.value,
                extra={"available": [item.id for item in state.available_models]},
            )
        state.selected_model_id = model_id
        state.selected_provider = provider
        state.provider_inferred = inferred
        active = state.selected_conversation()
        if active is not None:
            active.model_id = model_id
            active.provider = provider
        defaults = state.model_defaults.get(model_id)
        if defaults is not None:
            state.current_session_settings = defaults.session
            state.conversation_settings = defaults.conversation
            logger.debug("Loaded model defaults for %s", model_id)
        await self._commit(
            "model_selected",
            {"model_id": model_id, "provider": provider.value, "inferred": inferred},
        )

    async def set_selected_provider(self, provider: Provider) -> bool:
        """Select ``provider`` and its first catalog model.

        A provider with no catalog models cannot take over a conversation that is bound to a
        model; the request is ignored so the selection keeps mirroring that binding.
        """
        state = self._state
        first = next((item for item in state.available_models if item.provider == provider), None)
        active = state.selected_conversation()
        if first is None and active is not None and active.model_id:
            logger.warning(
                "No catalog models for %s; keeping %s on conversation %s",
                provider.value,
                active.model_id,
                active.id,
            )
            return False
        self._selection_epoch += 1
        state.selected_provider = provider
        state.selected_model_id = first.id if first is not None else None
        state.provider_inferred = False
        if active is not None and first is not None:
            active.model_id = first.id
            active.provider = provider
        await self._commit(
            "provider_selected",
            {"provider": provider.value, "model_id": state.selected_model_id},
        )
        return True

    async def set_conversation_model(
        self,
        conversation_id: str,
        model_id: str,
        provider: Provider | None = None,
    ) -> bool:
        state = self._state
        conversation = state.find_conversation(conversation_id)
        if conversation is None:
            return False
        inferred = False
        if provider is None:
            catalog_model = find_model(state.available_models, model_id)
            if catalog_model is not None:
                provider = catalog_model.provider
            elif conversation.model_id == model_id and conversation.provider is not None:
                provider = conversation.provider
            else:
                provider, inferred = resolve_model_provider(state.available_models, model_id)
        conversation.model_id = model_id
        conversation.provider = provider
        if state.selected_conversation_id == conversation_id:
            self._selection_epoch += 1
            state.selected_model_id = model_id
            state.selected_provider = provider
            state.provider_inferred = inferred
        await self._commit(
            "conversation_model_changed",
            {"conversation_id": conversation_id, "model_id": model_id, "provider": provider.value},
        )
        return True
