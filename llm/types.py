from __future__ import annotations

from dataclasses import dataclass, field

from shared.chat_models import Provider, SessionSettings
from shared.models import JSONValue

DEFAULT_TEMPERATURE = 0.7


@dataclass(frozen=True)
class ModelConfig:
    """Per-request generation parameters handed to a provider client."""

    provider: Provider
    model: str
    temperature: float = DEFAULT_TEMPERATURE
    top_p: float | None = None
    max_tokens: int | None = None
    base_url: str | None = None
    api_key: str | None = None
    extra_headers: dict[str, str] = field(default_factory=dict)
    system_prompt: str | None = None

    @classmethod
    def for_session(
        cls,
        provider: Provider,
        model: str,
        settings: SessionSettings | None,
    ) -> ModelConfig:
        if settings is None:
            return cls(provider=provider, model=model)
        return cls(
            provider=provider,
            model=model,
            temperature=settings.creativity,
            max_tokens=settings.max_tokens,
            system_prompt=settings.system_prompt or None,
        )


@dataclass(frozen=True)
class LLMUsage:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int

    @classmethod
    def from_counts(cls, prompt_tokens: int, completion_tokens: int) -> LLMUsage:
        return cls(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )


@dataclass
class LLMResult:
    text: str
    usage: LLMUsage | None = None
    raw: dict[str, JSONValue] | None = None
