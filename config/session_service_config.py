from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8765
DEFAULT_MAX_REQUEST_BYTES = 1_000_000
DEFAULT_CLIENT_TIMEOUT_SECONDS = 30.0
DEFAULT_PATH = Path("config/session_service.json")


@dataclass(frozen=True)
class SessionServiceConfig:
    """Bind address of the session service and how clients reach it."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    max_request_bytes: int = DEFAULT_MAX_REQUEST_BYTES
    client_timeout_seconds: float = DEFAULT_CLIENT_TIMEOUT_SECONDS
    public_url: str | None = None

    @property
    def base_url(self) -> str:
        if self.public_url:
            return self.public_url.rstrip("/")
        return f"http://{self.host}:{self.port}"

    def to_dict(self) -> dict[str, object]:
        return {
            "host": self.host,
            "port": self.port,
            "max_request_bytes": self.max_request_bytes,
            "client_timeout_seconds": self.client_timeout_seconds,
            "public_url": self.public_url,
        }


def load_session_service_config(path: Path = DEFAULT_PATH) -> SessionServiceConfig:
    if not path.exists():
        return SessionServiceConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:  # noqa: BLE001
        raise RuntimeError(f"Failed to read session_service.json: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError("session_service.json must contain an object.")
    host = data.get("host", DEFAULT_HOST)
    port = data.get("port", DEFAULT_PORT)
    max_request_bytes = data.get("max_request_bytes", DEFAULT_MAX_REQUEST_BYTES)
    timeout = data.get("client_timeout_seconds", DEFAULT_CLIENT_TIMEOUT_SECONDS)
    public_url = data.get("public_url")
    if not isinstance(host, str) or not host.strip():
        raise ValueError("session_service.host must be a non-empty string.")
    if not isinstance(port, int) or isinstance(port, bool):
        raise ValueError("session_service.port must be an int.")
    if not isinstance(max_request_bytes, int) or max_request_bytes <= 0:
        raise ValueError("session_service.max_request_bytes must be a positive int.")
    if not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ValueError("session_service.client_timeout_seconds must be positive.")
    if public_url is not None and (not isinstance(public_url, str) or not public_url.strip()):
        raise ValueError("session_service.public_url must be a non-empty string.")
    return SessionServiceConfig(
        host=host.strip(),
        port=port,
        max_request_bytes=max_request_bytes,
        client_timeout_seconds=float(timeout),
        public_url=public_url.strip() if isinstance(public_url, str) else None,
    )


def resolve_session_service_config(path: Path = DEFAULT_PATH) -> SessionServiceConfig:
    config = load_session_service_config(path)
    host_raw = os.getenv("CHATSYNC_HTTP_HOST")
    port_raw = os.getenv("CHATSYNC_HTTP_PORT")
    url_raw = os.getenv("CHATSYNC_SESSION_API_URL")

    host = config.host
    if isinstance(host_raw, str) and host_raw.strip():
        host = host_raw.strip()

    port = config.port
    if isinstance(port_raw, str) and port_raw.strip():
        try:
            port = int(port_raw.strip())
        except ValueError as exc:
            raise ValueError("CHATSYNC_HTTP_PORT must be an int.") from exc

    public_url = config.public_url
    if isinstance(url_raw, str) and url_raw.strip():
        public_url = url_raw.strip()

    return SessionServiceConfig(
        host=host,
        port=port,
        max_request_bytes=config.max_request_bytes,
        client_timeout_seconds=config.client_timeout_seconds,
        public_url=public_url,
    )
