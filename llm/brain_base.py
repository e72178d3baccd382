from __future__ import annotations

from abc import ABC, abstractmethod

from llm.types import LLMResult, ModelConfig
from shared.chat_models import ModelDescriptor, Provider
from shared.models import LLMMessage


class Brain(ABC):
    """Client of one model provider (Ollama, OpenAI-compatible APIs, Anthropic)."""

    provider: Provider

    @abstractmethod
    def generate(self, messages: list[LLMMessage], config: ModelConfig | None = None) -> LLMResult:
        """Return one completion for the given history."""
        raise NotImplementedError

    @abstractmethod
    def list_models(self) -> list[ModelDescriptor]:
        """Return the models the provider currently serves."""
        raise NotImplementedError

    def is_configured(self) -> bool:
        return True

    def _inject_system(self, messages: list[LLMMessage], config: ModelConfig) -> list[LLMMessage]:
        if config.system_prompt and (not messages or messages[0].role != "system"):
            return [LLMMessage(role="system", content=config.system_prompt), *messages]
        return messages
