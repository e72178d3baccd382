from __future__ import annotations

import logging
from typing import Any

import aiohttp

from server.http.common.session_payloads import message_from_payload, session_from_payload
from server.session_backend import SessionBackendError
from shared.chat_models import MessageRecord, SessionRecord

logger = logging.getLogger("ChatSync.Backend")

DEFAULT_TIMEOUT_SECONDS = 30.0


class HttpSessionBackend:
    """SessionBackend speaking to the ``/api/sessions`` service over HTTP.

    The client session is created lazily on first use and must be released with ``close()``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._owns_session = session is None

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _client(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def _request(
        self,
        method: str,
        path: str,
        *,
        payload: dict[str, Any] | None = None,
        allow_not_found: bool = False,
    ) -> dict[str, Any] | None:
        url = f"{self._base_url}{path}"
        try:
            async with self._client().request(method, url, json=payload) as response:
                if allow_not_found and response.status == 404:
                    return None
                body = await response.json(content_type=None)
                if response.status >= 400:
                    raise SessionBackendError(
                        _error_message(body, response.status),
                        status=response.status,
                        code=_error_code(body),
                    )
        except aiohttp.ClientError as exc:
            logger.warning("Session service request failed: %s %s: %s", method, path, exc)
            raise SessionBackendError(f"session service unavailable: {exc}") from exc
        except ValueError as exc:
            raise SessionBackendError(f"session service returned invalid JSON: {exc}") from exc
        if not isinstance(body, dict):
            raise SessionBackendError("session service returned a non-object body")
        return body

    async def list_sessions(self) -> list[SessionRecord]:
        body = await self._request("GET", "/api/sessions")
        raw_items = body.get("sessions") if body else None
        if not isinstance(raw_items, list):
            raise SessionBackendError("session list is malformed")
        sessions: list[SessionRecord] = []
        for item in raw_items:
            record = session_from_payload(item)
            if record is None:
                logger.warning("Skipping malformed session entry")
                continue
            sessions.append(record)
        return sessions

    async def create_session(self, title: str) -> str:
        body = await self._request("POST", "/api/sessions", payload={"title": title})
        session_id = body.get("session_id") if body else None
        if not isinstance(session_id, str) or not session_id:
            raise SessionBackendError("session id missing in create response")
        return session_id

    async def delete_session(self, session_id: str) -> bool:
        body = await self._request(
            "DELETE",
            f"/api/sessions/{session_id}",
            allow_not_found=True,
        )
        return body is not None and body.get("deleted") is True

    async def list_messages(self, session_id: str) -> list[MessageRecord]:
        body = await self._request("GET", f"/api/sessions/{session_id}/messages")
        raw_items = body.get("messages") if body else None
        if not isinstance(raw_items, list):
            raise SessionBackendError("message list is malformed")
        messages: list[MessageRecord] = []
        for item in raw_items:
            record = message_from_payload(item)
            if record is None:
                logger.warning("Skipping malformed message entry", extra={"session_id": session_id})
                continue
            messages.append(record)
        return messages

    async def append_message(self, session_id: str, content: str, role: str) -> MessageRecord:
        body = await self._request(
            "POST",
            f"/api/sessions/{session_id}/messages",
            payload={"content": content, "role": role},
        )
        record = message_from_payload(body.get("message") if body else None)
        if record is None:
            raise SessionBackendError("message missing in append response")
        return record

    async def update_session_title(self, session_id: str, title: str) -> None:
        await self._request(
            "PATCH",
            f"/api/sessions/{session_id}/title",
            payload={"title": title},
        )


def _error_message(body: object, status: int) -> str:
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            message = error.get("message")
            if isinstance(message, str) and message:
                return message
    return f"session service returned HTTP {status}"


def _error_code(body: object) -> str | None:
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            code = error.get("code")
            if isinstance(code, str):
                return code
    return None
