from __future__ import annotations

from typing import Protocol

from shared.chat_models import Provider


class ProviderError(RuntimeError):
    def __init__(self, provider: Provider, message: str) -> None:
        self.provider = provider
        super().__init__(message)


class ProviderNotConfiguredError(ProviderError):
    def __init__(self, provider: Provider) -> None:
        super().__init__(provider, f"LLM provider {provider.value} is not configured.")


class ModelNotFoundError(ProviderError):
    def __init__(self, provider: Provider, model_id: str) -> None:
        self.model_id = model_id
        super().__init__(provider, f"model '{model_id}' not found at provider {provider.value}")


class ProviderAPIError(ProviderError):
    def __init__(self, provider: Provider, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(provider, f"{provider.value} API error: {message}")


class _HttpResponse(Protocol):
    status_code: int
    text: str


def raise_for_provider_status(
    provider: Provider,
    response: _HttpResponse,
    model_id: str | None = None,
) -> None:
    """Turn a non-2xx provider response into the matching ProviderError."""
    status = response.status_code
    if 200 <= status < 300:
        return
    body = (response.text or "").strip()[:300]
    lowered = body.lower()
    if model_id and (status == 404 or ("model" in lowered and "not found" in lowered)):
        raise ModelNotFoundError(provider, model_id)
    raise ProviderAPIError(provider, f"HTTP {status}: {body or 'empty response'}", status)
