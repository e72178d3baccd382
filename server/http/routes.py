from __future__ import annotations

from aiohttp import web


def register_routes(app: web.Application) -> None:
    from server.http.handlers import sessions

    app.router.add_get("/api/sessions", sessions.handle_sessions_list)
    app.router.add_post("/api/sessions", sessions.handle_sessions_create)
    app.router.add_delete("/api/sessions/{session_id}", sessions.handle_session_delete)
    app.router.add_get(
        "/api/sessions/{session_id}/messages",
        sessions.handle_session_messages_list,
    )
    app.router.add_post(
        "/api/sessions/{session_id}/messages",
        sessions.handle_session_messages_append,
    )
    app.router.add_patch(
        "/api/sessions/{session_id}/title",
        sessions.handle_session_title_update,
    )
