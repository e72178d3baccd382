from __future__ import annotations

import logging

from config.chat_settings import ChatSettings, resolve_chat_settings
from config.model_whitelist import FileEnabledModelsSource
from config.provider_settings import ProviderSettings, resolve_provider_settings
from config.session_service_config import resolve_session_service_config
from core.chat_synchronizer import ChatSynchronizer
from core.response_formatter import PlainTextFormatter
from llm.provider_gateway import ProviderGateway
from server.chat_snapshot_store import FileBackedChatSnapshotStore
from server.session_backend import SessionBackend, SQLiteSessionBackend
from server.session_http_client import HttpSessionBackend
from shared.chat_models import ConversationSettings

logger = logging.getLogger("ChatSync.State")


def create_session_backend(settings: ChatSettings) -> SessionBackend:
    """Remote service when CHATSYNC_SESSION_API_URL is set, local SQLite otherwise."""
    service = resolve_session_service_config()
    if service.public_url:
        logger.info("Using remote session service at %s", service.base_url)
        return HttpSessionBackend(
            service.base_url,
            timeout_seconds=service.client_timeout_seconds,
        )
    return SQLiteSessionBackend(settings.sessions_db_path)


def create_chat_synchronizer(
    settings: ChatSettings | None = None,
    *,
    provider_settings: ProviderSettings | None = None,
    backend: SessionBackend | None = None,
) -> ChatSynchronizer:
    resolved = settings or resolve_chat_settings()

    def _conversation_settings() -> ConversationSettings:
        return synchronizer.state.conversation_settings

    synchronizer = ChatSynchronizer(
        backend=backend or create_session_backend(resolved),
        gateway=ProviderGateway(provider_settings or resolve_provider_settings()),
        store=FileBackedChatSnapshotStore(resolved.snapshot_path),
        enabled_models=FileEnabledModelsSource(),
        formatter=PlainTextFormatter(_conversation_settings),
        settings=resolved,
    )
    return synchronizer
