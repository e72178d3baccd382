from __future__ import annotations

from collections.abc import Iterable, Sequence

from config.model_whitelist import EnabledModels
from shared.chat_models import DEFAULT_PROVIDER, ModelDescriptor, Provider

# Checked in order; the first substring found in the model id wins.
_PROVIDER_HINTS: tuple[tuple[str, Provider], ...] = (
    ("gpt", Provider.OPENAI),
    ("claude", Provider.ANTHROPIC),
    ("mistral", Provider.MISTRAL),
    ("gemini", Provider.GEMINI),
    ("deepseek", Provider.DEEPSEEK),
)


def filter_enabled_models(
    models: Iterable[ModelDescriptor],
    enabled: EnabledModels,
) -> list[ModelDescriptor]:
    return [model for model in models if enabled.is_enabled(model)]


def find_model(models: Sequence[ModelDescriptor], model_id: str | None) -> ModelDescriptor | None:
    if not model_id:
        return None
    for model in models:
        if model.id == model_id:
            return model
    return None


def infer_provider_from_model_id(model_id: str) -> Provider:
    """Best-effort guess for a model missing from the catalog; self-hosted names fall to ollama."""
    lowered = model_id.lower()
    for hint, provider in _PROVIDER_HINTS:
        if hint in lowered:
            return provider
    return Provider.OLLAMA


def pick_default_model(
    models: Sequence[ModelDescriptor],
    enabled: EnabledModels,
    *,
    default_provider: Provider = DEFAULT_PROVIDER,
) -> ModelDescriptor | None:
    for model in models:
        if model.provider != default_provider and enabled.is_explicitly_enabled(model):
            return model
    return models[0] if models else None


def resolve_model_provider(
    models: Sequence[ModelDescriptor],
    model_id: str,
    fallback: Provider | None = None,
) -> tuple[Provider, bool]:
    """Return the provider owning ``model_id`` and whether it had to be guessed.

    The catalog wins; an explicit fallback is trusted next; the id heuristic comes last.
    """
    model = find_model(models, model_id)
    if model is not None:
        return model.provider, False
    if fallback is not None:
        return fallback, False
    return infer_provider_from_model_id(model_id), True
