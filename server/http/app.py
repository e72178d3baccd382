from __future__ import annotations

import logging

from aiohttp import web

from config.chat_settings import resolve_chat_settings
from config.session_service_config import (
    DEFAULT_MAX_REQUEST_BYTES,
    SessionServiceConfig,
    resolve_session_service_config,
)
from server.session_backend import SessionBackend, SQLiteSessionBackend

logger = logging.getLogger("ChatSync.HttpAPI")


def create_app(
    *,
    backend: SessionBackend | None = None,
    max_request_bytes: int | None = None,
) -> web.Application:
    app = web.Application(client_max_size=max_request_bytes or DEFAULT_MAX_REQUEST_BYTES)
    if backend is None:
        settings = resolve_chat_settings()
        backend = SQLiteSessionBackend(settings.sessions_db_path)
        logger.info("Using SQLite session backend at %s", settings.sessions_db_path)
    app["session_backend"] = backend
    from server.http.routes import register_routes

    register_routes(app)
    return app


def run_server(config: SessionServiceConfig) -> None:
    app = create_app(max_request_bytes=config.max_request_bytes)
    web.run_app(app, host=config.host, port=config.port)


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    config = resolve_session_service_config()
    run_server(config)
