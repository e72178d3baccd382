from __future__ import annotations

from config.provider_settings import ProviderSettings
from llm.anthropic_brain import AnthropicBrain
from llm.brain_base import Brain
from llm.ollama_brain import OllamaBrain
from llm.openai_compatible_brain import OpenAICompatibleBrain
from shared.chat_models import Provider


def create_brain(provider: Provider, settings: ProviderSettings) -> Brain:
    credentials = settings.for_provider(provider)
    base_url = settings.base_url(provider)
    if provider == Provider.OLLAMA:
        return OllamaBrain(base_url=base_url, api_key=credentials.api_key)
    if provider == Provider.ANTHROPIC:
        return AnthropicBrain(base_url=base_url, api_key=credentials.api_key)
    if provider in {
        Provider.OPENAI,
        Provider.OPENROUTER,
        Provider.DEEPSEEK,
        Provider.MISTRAL,
        Provider.GEMINI,
    }:
        return OpenAICompatibleBrain(provider, base_url=base_url, api_key=credentials.api_key)
    raise ValueError(f"Unknown model provider: {provider}")


def create_brains(settings: ProviderSettings) -> dict[Provider, Brain]:
    return {provider: create_brain(provider, settings) for provider in Provider}
