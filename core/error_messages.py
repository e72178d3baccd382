from __future__ import annotations

from llm.errors import ModelNotFoundError, ProviderAPIError, ProviderNotConfiguredError

PROVIDER_NOT_CONFIGURED_MESSAGE = (
    "The selected AI provider is not configured. Please check your API keys in settings."
)
NO_MODEL_SELECTED_MESSAGE = "No model selected. Please choose a model in the settings."


def model_unavailable_message(model_id: str | None) -> str:
    return (
        f'Model "{model_id or "unknown"}" is not available. '
        "Please select a different model in the settings."
    )


def classify_error(exc: BaseException, *, model_id: str | None, fallback: str) -> str:
    """Map a collaborator failure onto the message shown to the user."""
    message = str(exc)
    lowered = message.lower()
    if isinstance(exc, ModelNotFoundError) or ("model" in lowered and "not found" in lowered):
        return model_unavailable_message(model_id)
    if isinstance(exc, ProviderNotConfiguredError) or "not configured" in lowered:
        return PROVIDER_NOT_CONFIGURED_MESSAGE
    if isinstance(exc, ProviderAPIError) or "api error" in lowered:
        return f"AI service error: {message}"
    return fallback
