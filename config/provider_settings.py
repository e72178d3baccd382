from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

from shared.chat_models import Provider, parse_provider

DEFAULT_PROVIDER_SETTINGS_PATH: Final[Path] = Path("config/providers.json")

PROVIDER_API_KEY_ENV: Final[dict[Provider, str]] = {
    Provider.OLLAMA: "OLLAMA_API_KEY",
    Provider.OPENAI: "OPENAI_API_KEY",
    Provider.ANTHROPIC: "ANTHROPIC_API_KEY",
    Provider.OPENROUTER: "OPENROUTER_API_KEY",
    Provider.DEEPSEEK: "DEEPSEEK_API_KEY",
    Provider.MISTRAL: "MISTRAL_API_KEY",
    Provider.GEMINI: "GEMINI_API_KEY",
}
PROVIDER_BASE_URL_ENV: Final[dict[Provider, str]] = {
    Provider.OLLAMA: "OLLAMA_BASE_URL",
    Provider.OPENAI: "OPENAI_BASE_URL",
    Provider.ANTHROPIC: "ANTHROPIC_BASE_URL",
    Provider.OPENROUTER: "OPENROUTER_BASE_URL",
    Provider.DEEPSEEK: "DEEPSEEK_BASE_URL",
    Provider.MISTRAL: "MISTRAL_BASE_URL",
    Provider.GEMINI: "GEMINI_BASE_URL",
}
DEFAULT_BASE_URLS: Final[dict[Provider, str]] = {
    Provider.OLLAMA: "http://localhost:11434",
    Provider.OPENAI: "https://api.openai.com/v1",
    Provider.ANTHROPIC: "https://api.anthropic.com/v1",
    Provider.OPENROUTER: "https://openrouter.ai/api/v1",
    Provider.DEEPSEEK: "https://api.deepseek.com/v1",
    Provider.MISTRAL: "https://api.mistral.ai/v1",
    Provider.GEMINI: "https://generativelanguage.googleapis.com/v1beta/openai",
}
# Ollama runs locally and needs no key.
KEYLESS_PROVIDERS: Final[frozenset[Provider]] = frozenset({Provider.OLLAMA})


@dataclass(frozen=True)
class ProviderCredentials:
    api_key: str | None = None
    base_url: str | None = None


@dataclass(frozen=True)
class ProviderSettings:
    credentials: dict[Provider, ProviderCredentials] = field(default_factory=dict)

    def for_provider(self, provider: Provider) -> ProviderCredentials:
        return self.credentials.get(provider, ProviderCredentials())

    def base_url(self, provider: Provider) -> str:
        configured = self.for_provider(provider).base_url
        return (configured or DEFAULT_BASE_URLS[provider]).rstrip("/")

    def is_configured(self, provider: Provider) -> bool:
        if provider in KEYLESS_PROVIDERS:
            return True
        return bool(self.for_provider(provider).api_key)


def _optional_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def load_provider_settings(path: Path = DEFAULT_PROVIDER_SETTINGS_PATH) -> ProviderSettings:
    if not path.exists():
        return ProviderSettings()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:  # noqa: BLE001
        raise RuntimeError(f"Failed to read {path.name}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"{path.name} must contain an object.")
    credentials: dict[Provider, ProviderCredentials] = {}
    for provider_raw, item in data.items():
        provider = parse_provider(provider_raw)
        if provider is None or not isinstance(item, dict):
            continue
        credentials[provider] = ProviderCredentials(
            api_key=_optional_str(item.get("api_key")),
            base_url=_optional_str(item.get("base_url")),
        )
    return ProviderSettings(credentials=credentials)


def resolve_provider_settings(path: Path = DEFAULT_PROVIDER_SETTINGS_PATH) -> ProviderSettings:
    """File settings with ``<PROVIDER>_API_KEY`` / ``<PROVIDER>_BASE_URL`` env overrides."""
    base = load_provider_settings(path)
    resolved: dict[Provider, ProviderCredentials] = {}
    for provider in Provider:
        current = base.for_provider(provider)
        api_key = _optional_str(os.getenv(PROVIDER_API_KEY_ENV[provider])) or current.api_key
        base_url = _optional_str(os.getenv(PROVIDER_BASE_URL_ENV[provider])) or current.base_url
        if api_key is None and base_url is None:
            continue
        resolved[provider] = ProviderCredentials(api_key=api_key, base_url=base_url)
    return ProviderSettings(credentials=resolved)
