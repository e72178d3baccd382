from __future__ import annotations

from aiohttp import web

from shared.models import JSONValue


def json_response(payload: dict[str, JSONValue], *, status: int = 200) -> web.Response:
    return web.json_response(payload, status=status)


def error_response(
    *,
    status: int,
    message: str,
    error_type: str,
    code: str,
    details: dict[str, JSONValue] | None = None,
) -> web.Response:
    error_payload: dict[str, JSONValue] = {
        "message": message,
        "type": error_type,
        "code": code,
        "details": details or {},
    }
    return json_response({"error": error_payload}, status=status)


def invalid_request(message: str, *, code: str = "invalid_request_error") -> web.Response:
    return error_response(
        status=400,
        message=message,
        error_type="invalid_request_error",
        code=code,
    )


def not_found(message: str) -> web.Response:
    return error_response(
        status=404,
        message=message,
        error_type="invalid_request_error",
        code="not_found",
    )


async def read_json_object(request: web.Request) -> dict[str, object] | web.Response:
    """Parse the request body; an error response is returned instead of raising."""
    try:
        payload = await request.json()
    except Exception as exc:  # noqa: BLE001
        return invalid_request(f"Invalid JSON: {exc}", code="invalid_json")
    if not isinstance(payload, dict):
        return invalid_request("JSON body must be an object.", code="invalid_json")
    return payload
