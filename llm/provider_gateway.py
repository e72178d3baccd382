from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Protocol

from config.provider_settings import ProviderSettings
from llm.brain_base import Brain
from llm.brain_factory import create_brains
from llm.errors import ProviderNotConfiguredError
from llm.types import ModelConfig
from shared.chat_models import ModelDescriptor, Provider, SessionSettings
from shared.models import LLMMessage
from shared.sanitize import sanitize_record

logger = logging.getLogger("ChatSync.Gateway")


class ModelGateway(Protocol):
    async def list_models(self) -> list[ModelDescriptor]: ...

    async def complete(
        self,
        provider: Provider,
        messages: Sequence[LLMMessage],
        model_id: str,
        settings: SessionSettings | None = None,
    ) -> str: ...


class ProviderGateway:
    """Routes catalog and completion calls to the per-provider clients.

    Clients are blocking; every call runs in a worker thread so the event loop only
    suspends on the network round trip.
    """

    def __init__(
        self,
        settings: ProviderSettings | None = None,
        *,
        brains: dict[Provider, Brain] | None = None,
    ) -> None:
        self._brains: dict[Provider, Brain] = brains or create_brains(settings or ProviderSettings())

    def reconfigure(self, settings: ProviderSettings) -> None:
        self._brains = create_brains(settings)
        logger.info(
            "Providers reconfigured",
            extra={"providers": [p.value for p, b in self._brains.items() if b.is_configured()]},
        )

    def configured_providers(self) -> list[Provider]:
        return [provider for provider in Provider if self._is_configured(provider)]

    def _is_configured(self, provider: Provider) -> bool:
        brain = self._brains.get(provider)
        return brain is not None and brain.is_configured()

    async def list_models(self) -> list[ModelDescriptor]:
        models: list[ModelDescriptor] = []
        for provider in self.configured_providers():
            brain = self._brains[provider]
            try:
                provider_models = await asyncio.to_thread(brain.list_models)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to list models for %s: %s", provider.value, exc)
                continue
            models.extend(provider_models)
        return models

    async def complete(
        self,
        provider: Provider,
        messages: Sequence[LLMMessage],
        model_id: str,
        settings: SessionSettings | None = None,
    ) -> str:
        brain = self._brains.get(provider)
        if brain is None or not brain.is_configured():
            raise ProviderNotConfiguredError(provider)
        config = ModelConfig.for_session(provider, model_id, settings)
        logger.debug(
            "Completion request",
            extra=sanitize_record(
                {
                    "provider": provider.value,
                    "model": model_id,
                    "messages": len(messages),
                    "content": messages[-1].content if messages else "",
                },
            ),
        )
        result = await asyncio.to_thread(brain.generate, list(messages), config)
        if result.usage is not None:
            logger.debug(
                "Completion usage for %s: %d tokens", model_id, result.usage.total_tokens,
            )
        return result.text
