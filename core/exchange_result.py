from __future__ import annotations

from dataclasses import dataclass

from shared.chat_models import ChatMessage


@dataclass(frozen=True)
class ExchangeOk:
    message: ChatMessage


@dataclass(frozen=True)
class ExchangeErr:
    error: Exception
    stage: str


ExchangeResult = ExchangeOk | ExchangeErr
