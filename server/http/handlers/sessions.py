from __future__ import annotations

import logging

from aiohttp import web

from server.http.common.responses import (
    error_response,
    invalid_request,
    json_response,
    not_found,
    read_json_object,
)
from server.http.common.session_payloads import message_to_payload, session_to_payload
from server.session_backend import SessionBackend, SessionBackendError
from shared.models import JSONValue

logger = logging.getLogger("ChatSync.HttpAPI")


def _backend(request: web.Request) -> SessionBackend:
    return request.app["session_backend"]


def _backend_error(exc: SessionBackendError) -> web.Response:
    if exc.status == 404:
        return not_found(str(exc))
    logger.error("Session backend failure: %s", exc, exc_info=True)
    return error_response(
        status=exc.status or 500,
        message=str(exc),
        error_type="backend_error",
        code=exc.code or "backend_error",
    )


async def handle_sessions_list(request: web.Request) -> web.Response:
    sessions = await _backend(request).list_sessions()
    payload: list[JSONValue] = [session_to_payload(item) for item in sessions]
    return json_response({"sessions": payload})


async def handle_sessions_create(request: web.Request) -> web.Response:
    payload = await read_json_object(request)
    if isinstance(payload, web.Response):
        return payload
    title = payload.get("title")
    if not isinstance(title, str) or not title.strip():
        return invalid_request("title must be a non-empty string.")
    session_id = await _backend(request).create_session(title.strip())
    logger.info("Session created", extra={"session_id": session_id})
    return json_response({"session_id": session_id}, status=201)


async def handle_session_delete(request: web.Request) -> web.Response:
    session_id = request.match_info["session_id"]
    deleted = await _backend(request).delete_session(session_id)
    if not deleted:
        return not_found(f"Session not found: {session_id}")
    logger.info("Session deleted", extra={"session_id": session_id})
    return json_response({"deleted": True, "session_id": session_id})


async def handle_session_messages_list(request: web.Request) -> web.Response:
    session_id = request.match_info["session_id"]
    messages = await _backend(request).list_messages(session_id)
    payload: list[JSONValue] = [message_to_payload(item) for item in messages]
    return json_response({"messages": payload})


async def handle_session_messages_append(request: web.Request) -> web.Response:
    session_id = request.match_info["session_id"]
    payload = await read_json_object(request)
    if isinstance(payload, web.Response):
        return payload
    content = payload.get("content")
    role = payload.get("role")
    if not isinstance(content, str):
        return invalid_request("content must be a string.")
    if not isinstance(role, str):
        return invalid_request("role must be a string.")
    try:
        record = await _backend(request).append_message(session_id, content, role)
    except ValueError as exc:
        return invalid_request(str(exc))
    except SessionBackendError as exc:
        return _backend_error(exc)
    return json_response({"message": message_to_payload(record)}, status=201)


async def handle_session_title_update(request: web.Request) -> web.Response:
    session_id = request.match_info["session_id"]
    payload = await read_json_object(request)
    if isinstance(payload, web.Response):
        return payload
    title = payload.get("title")
    if not isinstance(title, str) or not title.strip():
        return invalid_request("title must be a non-empty string.")
    try:
        await _backend(request).update_session_title(session_id, title.strip())
    except SessionBackendError as exc:
        return _backend_error(exc)
    return json_response({"session_id": session_id, "title": title.strip()})
