from __future__ import annotations

from typing import Final

import requests

from llm.brain_base import Brain
from llm.errors import ProviderAPIError, ProviderNotConfiguredError, raise_for_provider_status
from llm.types import LLMResult, LLMUsage, ModelConfig
from shared.chat_models import ModelDescriptor, Provider
from shared.models import JSONValue, LLMMessage

DEFAULT_TIMEOUT: Final[int] = 60
MODEL_FETCH_TIMEOUT: Final[int] = 20


def _parse_models_payload(provider: Provider, payload: object) -> list[ModelDescriptor]:
    if not isinstance(payload, dict):
        return []
    data = payload.get("data")
    if not isinstance(data, list):
        return []
    models: list[ModelDescriptor] = []
    seen: set[str] = set()
    for item in data:
        if not isinstance(item, dict):
            continue
        model_id = item.get("id")
        if not isinstance(model_id, str) or not model_id.strip():
            continue
        model_id = model_id.strip()
        if model_id in seen:
            continue
        seen.add(model_id)
        name_raw = item.get("name") or item.get("display_name")
        description_raw = item.get("description")
        context_raw = item.get("context_length")
        models.append(
            ModelDescriptor(
                id=model_id,
                provider=provider,
                display_name=name_raw.strip() if isinstance(name_raw, str) and name_raw.strip() else model_id,
                description=description_raw if isinstance(description_raw, str) else None,
                context_length=context_raw if isinstance(context_raw, int) else None,
            ),
        )
    return models


def _parse_usage(data: dict[str, JSONValue]) -> LLMUsage | None:
    usage_block = data.get("usage")
    if not isinstance(usage_block, dict):
        return None
    return LLMUsage(
        prompt_tokens=int(usage_block.get("prompt_tokens", 0)),
        completion_tokens=int(usage_block.get("completion_tokens", 0)),
        total_tokens=int(usage_block.get("total_tokens", 0)),
    )


class OpenAICompatibleBrain(Brain):
    """Client for OpenAI-style chat APIs (OpenAI, OpenRouter, DeepSeek, Mistral, Gemini)."""

    def __init__(
        self,
        provider: Provider,
        *,
        base_url: str,
        api_key: str | None,
        extra_headers: dict[str, str] | None = None,
    ) -> None:
        self.provider = provider
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.extra_headers = dict(extra_headers or {})

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _build_headers(self, config: ModelConfig | None = None) -> dict[str, str]:
        if not self.api_key:
            raise ProviderNotConfiguredError(self.provider)
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        headers.update(self.extra_headers)
        if config is not None:
            headers.update(config.extra_headers)
        return headers

    def list_models(self) -> list[ModelDescriptor]:
        headers = self._build_headers()
        try:
            response = requests.get(
                f"{self.base_url}/models",
                headers=headers,
                timeout=MODEL_FETCH_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise ProviderAPIError(self.provider, f"model list unavailable: {exc}") from exc
        raise_for_provider_status(self.provider, response)
        return _parse_models_payload(self.provider, response.json())

    def generate(self, messages: list[LLMMessage], config: ModelConfig | None = None) -> LLMResult:
        if config is None:
            raise ValueError(f"{self.provider.value}: model config required")
        headers = self._build_headers(config)
        payload: dict[str, JSONValue] = {
            "model": config.model,
            "messages": [message.__dict__ for message in self._inject_system(messages, config)],
            "temperature": config.temperature,
        }
        if config.max_tokens is not None:
            payload["max_tokens"] = config.max_tokens
        if config.top_p is not None:
            payload["top_p"] = config.top_p

        try:
            response = requests.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers=headers,
                timeout=DEFAULT_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise ProviderAPIError(self.provider, str(exc)) from exc
        raise_for_provider_status(self.provider, response, config.model)
        data_json = response.json()
        if not isinstance(data_json, dict):
            raise ProviderAPIError(self.provider, "malformed response")
        data: dict[str, JSONValue] = data_json
        choices_raw = data.get("choices")
        if not isinstance(choices_raw, list) or not choices_raw:
            raise ProviderAPIError(self.provider, "empty choices")
        first_choice = choices_raw[0]
        if not isinstance(first_choice, dict):
            raise ProviderAPIError(self.provider, "malformed choices")
        message_raw = first_choice.get("message")
        if not isinstance(message_raw, dict):
            raise ProviderAPIError(self.provider, "malformed message")
        content = message_raw.get("content")
        return LLMResult(
            text=content if isinstance(content, str) else "",
            usage=_parse_usage(data),
            raw=data,
        )
