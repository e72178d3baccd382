from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, Protocol

from shared.chat_models import ModelDescriptor, Provider, parse_provider

ENABLED_MODELS_ENV: Final[str] = "CHATSYNC_ENABLED_MODELS"
DEFAULT_ENABLED_MODELS_PATH: Final[Path] = Path("config/enabled_models.json")


@dataclass(frozen=True)
class EnabledModels:
    """Per-provider allow-lists chosen by the user.

    An empty (or missing) list enables every model of that provider.
    """

    by_provider: dict[Provider, tuple[str, ...]] = field(default_factory=dict)

    def allow_list(self, provider: Provider) -> tuple[str, ...]:
        return self.by_provider.get(provider, ())

    def is_enabled(self, model: ModelDescriptor) -> bool:
        allowed = self.allow_list(model.provider)
        return not allowed or model.id in allowed

    def is_explicitly_enabled(self, model: ModelDescriptor) -> bool:
        allowed = self.allow_list(model.provider)
        return bool(allowed) and model.id in allowed

    def to_dict(self) -> dict[str, list[str]]:
        return {provider.value: list(ids) for provider, ids in self.by_provider.items()}


class EnabledModelsSource(Protocol):
    def load(self) -> EnabledModels: ...


def _merge_env_rules(base: dict[Provider, list[str]]) -> None:
    env_value = os.getenv(ENABLED_MODELS_ENV, "").strip()
    if not env_value:
        return
    for part in env_value.split(","):
        rule = part.strip()
        if not rule or ":" not in rule:
            continue
        provider_raw, model_id = rule.split(":", 1)
        provider = parse_provider(provider_raw)
        model_id = model_id.strip()
        if provider is None or not model_id:
            continue
        bucket = base.setdefault(provider, [])
        if model_id not in bucket:
            bucket.append(model_id)


def load_enabled_models(path: Path = DEFAULT_ENABLED_MODELS_PATH) -> EnabledModels:
    collected: dict[Provider, list[str]] = {}
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except Exception as exc:  # noqa: BLE001
            raise RuntimeError(f"Failed to read {path.name}: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError(f"{path.name} must contain an object.")
        for provider_raw, ids_raw in data.items():
            provider = parse_provider(provider_raw)
            if provider is None or not isinstance(ids_raw, list):
                continue
            ids = [item.strip() for item in ids_raw if isinstance(item, str) and item.strip()]
            collected[provider] = list(dict.fromkeys(ids))
    _merge_env_rules(collected)
    return EnabledModels(by_provider={key: tuple(value) for key, value in collected.items()})


def save_enabled_models(
    enabled: EnabledModels,
    path: Path = DEFAULT_ENABLED_MODELS_PATH,
) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(enabled.to_dict(), ensure_ascii=False, indent=2),
        encoding="utf-8",
    )


class FileEnabledModelsSource:
    def __init__(self, path: Path = DEFAULT_ENABLED_MODELS_PATH) -> None:
        self._path = path

    def load(self) -> EnabledModels:
        return load_enabled_models(self._path)
