from __future__ import annotations

from typing import Final

import requests

from llm.brain_base import Brain
from llm.errors import (
    ProviderAPIError,
    ProviderNotConfiguredError,
    raise_for_provider_status,
)
from llm.types import LLMResult, LLMUsage, ModelConfig
from shared.chat_models import ModelDescriptor, Provider
from shared.models import JSONValue, LLMMessage

ANTHROPIC_VERSION: Final[str] = "2023-06-01"
DEFAULT_MAX_TOKENS: Final[int] = 1024
DEFAULT_TIMEOUT: Final[int] = 60
MODEL_FETCH_TIMEOUT: Final[int] = 20


class AnthropicBrain(Brain):
    """Client for the Anthropic Messages API."""

    provider = Provider.ANTHROPIC

    def __init__(self, *, base_url: str, api_key: str | None) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _build_headers(self) -> dict[str, str]:
        if not self.api_key:
            raise ProviderNotConfiguredError(self.provider)
        return {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }

    def list_models(self) -> list[ModelDescriptor]:
        try:
            response = requests.get(
                f"{self.base_url}/models",
                headers=self._build_headers(),
                timeout=MODEL_FETCH_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise ProviderAPIError(self.provider, f"model list unavailable: {exc}") from exc
        raise_for_provider_status(self.provider, response)
        payload = response.json()
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            return []
        models: list[ModelDescriptor] = []
        for item in data:
            if not isinstance(item, dict):
                continue
            model_id = item.get("id")
            if not isinstance(model_id, str) or not model_id.strip():
                continue
            display = item.get("display_name")
            models.append(
                ModelDescriptor(
                    id=model_id.strip(),
                    provider=self.provider,
                    display_name=display if isinstance(display, str) and display else model_id,
                ),
            )
        return models

    def generate(self, messages: list[LLMMessage], config: ModelConfig | None = None) -> LLMResult:
        if config is None:
            raise ValueError("anthropic: model config required")
        headers = self._build_headers()
        system_parts = [message.content for message in messages if message.role == "system"]
        if config.system_prompt and not system_parts:
            system_parts.append(config.system_prompt)
        payload: dict[str, JSONValue] = {
            "model": config.model,
            "max_tokens": config.max_tokens or DEFAULT_MAX_TOKENS,
            "temperature": config.temperature,
            "messages": [
                {"role": message.role, "content": message.content}
                for message in messages
                if message.role != "system"
            ],
        }
        if system_parts:
            payload["system"] = "\n\n".join(system_parts)
        try:
            response = requests.post(
                f"{self.base_url}/messages",
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
        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise ProviderAPIError(self.provider, "malformed content")
        parts: list[str] = []
        for block in blocks:
            if isinstance(block, dict) and block.get("type") == "text":
                text_raw = block.get("text")
                if isinstance(text_raw, str):
                    parts.append(text_raw)

        usage: LLMUsage | None = None
        usage_block = data.get("usage")
        if isinstance(usage_block, dict):
            usage = LLMUsage.from_counts(
                int(usage_block.get("input_tokens", 0)),
                int(usage_block.get("output_tokens", 0)),
            )
        return LLMResult(text="".join(parts), usage=usage, raw=data)
