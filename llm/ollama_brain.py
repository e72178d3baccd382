from __future__ import annotations

from typing import Final

import requests

from llm.brain_base import Brain
from llm.errors import ProviderAPIError, raise_for_provider_status
from llm.types import LLMResult, LLMUsage, ModelConfig
from shared.chat_models import ModelDescriptor, Provider
from shared.models import JSONValue, LLMMessage

DEFAULT_OLLAMA_URL: Final[str] = "http://localhost:11434"
DEFAULT_TIMEOUT: Final[int] = 120
MODEL_FETCH_TIMEOUT: Final[int] = 10


class OllamaBrain(Brain):
    """Client for a local Ollama daemon (native ``/api`` endpoints)."""

    provider = Provider.OLLAMA

    def __init__(self, base_url: str | None = None, api_key: str | None = None) -> None:
        self.base_url = (base_url or DEFAULT_OLLAMA_URL).rstrip("/")
        self.api_key = api_key

    def _build_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def list_models(self) -> list[ModelDescriptor]:
        try:
            response = requests.get(
                f"{self.base_url}/api/tags",
                headers=self._build_headers(),
                timeout=MODEL_FETCH_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise ProviderAPIError(self.provider, f"ollama is not reachable: {exc}") from exc
        raise_for_provider_status(self.provider, response)
        payload = response.json()
        models_raw = payload.get("models") if isinstance(payload, dict) else None
        if not isinstance(models_raw, list):
            return []
        models: list[ModelDescriptor] = []
        for item in models_raw:
            if not isinstance(item, dict):
                continue
            name = item.get("name") or item.get("model")
            if not isinstance(name, str) or not name.strip():
                continue
            details = item.get("details")
            size_raw = details.get("parameter_size") if isinstance(details, dict) else None
            models.append(
                ModelDescriptor(
                    id=name.strip(),
                    provider=self.provider,
                    display_name=name.strip(),
                    parameter_size=size_raw if isinstance(size_raw, str) else None,
                    description=f"Ollama model: {name.strip()}",
                ),
            )
        return models

    def generate(self, messages: list[LLMMessage], config: ModelConfig | None = None) -> LLMResult:
        if config is None:
            raise ValueError("ollama: model config required")
        options: dict[str, JSONValue] = {"temperature": config.temperature}
        if config.max_tokens is not None:
            options["num_predict"] = config.max_tokens
        if config.top_p is not None:
            options["top_p"] = config.top_p
        payload: dict[str, JSONValue] = {
            "model": config.model,
            "messages": [message.__dict__ for message in self._inject_system(messages, config)],
            "stream": False,
            "options": options,
        }
        try:
            response = requests.post(
                f"{self.base_url}/api/chat",
                json=payload,
                headers=self._build_headers(),
                timeout=DEFAULT_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise ProviderAPIError(self.provider, str(exc)) from exc
        raise_for_provider_status(self.provider, response, config.model)
        data_json = response.json()
        if not isinstance(data_json, dict):
            raise ProviderAPIError(self.provider, "malformed response")
        data: dict[str, JSONValue] = data_json
        message_raw = data.get("message")
        if not isinstance(message_raw, dict):
            raise ProviderAPIError(self.provider, "malformed message")
        content = message_raw.get("content")

        usage: LLMUsage | None = None
        prompt_count = data.get("prompt_eval_count")
        completion_count = data.get("eval_count")
        if isinstance(prompt_count, int) and isinstance(completion_count, int):
            usage = LLMUsage.from_counts(prompt_count, completion_count)
        return LLMResult(text=content if isinstance(content, str) else "", usage=usage, raw=data)
