from __future__ import annotations

# mypy: ignore-errors
import logging
from dataclasses import replace

from config.chat_settings import EMPTY_SESSION_SETTINGS
from core.chat_state import ChatState
from core.model_catalog import find_model
from shared.chat_models import ModelDefaults

logger = logging.getLogger("ChatSync.State")


class ChatSessionSettingsMixin:
    """Per-session overrides and per-model defaults; in memory only."""

    _state: ChatState

    def update_conversation_settings(self, **changes: object) -> None:
        state = self._state
        state.conversation_settings = replace(state.conversation_settings, **changes)
        self._publish("settings_changed", {"scope": "conversation"})

    def update_current_session_settings(self, **changes: object) -> None:
        state = self._state
        state.current_session_settings = replace(state.current_session_settings, **changes)
        logger.debug("Updated current session settings", extra={"fields": sorted(changes)})
        self._publish("settings_changed", {"scope": "session"})

    def save_as_model_default(self, model_id: str) -> bool:
        state = self._state
        if find_model(state.available_models, model_id) is None:
            logger.warning("Not saving defaults for unknown model %s", model_id)
            return False
        state.model_defaults[model_id] = ModelDefaults(
            session=state.current_session_settings,
            conversation=state.conversation_settings,
        )
        logger.debug("Saved model defaults for %s", model_id)
        self._publish("settings_changed", {"scope": "model_defaults", "model_id": model_id})
        return True

    def load_model_defaults(self, model_id: str) -> bool:
        state = self._state
        defaults = state.model_defaults.get(model_id)
        if defaults is None:
            logger.warning("No model defaults found for %s", model_id)
            return False
        state.current_session_settings = defaults.session
        state.conversation_settings = defaults.conversation
        self._publish("settings_changed", {"scope": "session", "model_id": model_id})
        return True

    def reset_current_session(self) -> None:
        self._state.current_session_settings = EMPTY_SESSION_SETTINGS
        self._publish("settings_changed", {"scope": "session"})

    def reset_model_defaults(self, model_id: str) -> bool:
        removed = self._state.model_defaults.pop(model_id, None) is not None
        if removed:
            logger.debug("Reset model defaults for %s", model_id)
            self._publish("settings_changed", {"scope": "model_defaults", "model_id": model_id})
        return removed
