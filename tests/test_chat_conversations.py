from __future__ import annotations

import asyncio
from dataclasses import replace

from core.chat_synchronizer import ChatSynchronizer
from server.session_backend import InMemorySessionBackend, SessionBackendError
from shared.chat_models import Conversation, Provider, SessionRecord
from tests.chat_fakes import FakeGateway, ScriptedSessionBackend, make_synchronizer, model


def test_list_conversations_builds_previews_from_cached_messages() -> None:
    async def run() -> None:
        sync, backend, _ = make_synchronizer()
        first = await backend.seed("First", [("user", "hello"), ("assistant", "x" * 80)])
        second = await backend.seed("Second")

        assert await sync.list_conversations()
        by_id = {item.id: item for item in sync.state.conversations}
        assert set(by_id) == {first, second}
        assert by_id[first].last_message_preview == ""

        await sync.fetch_messages(first)
        assert await sync.list_conversations()
        by_id = {item.id: item for item in sync.state.conversations}
        assert by_id[first].last_message_preview == "x" * 50 + "..."
        assert by_id[second].last_message_preview == ""
        assert sync.state.is_loading is False

    asyncio.run(run())


def test_list_conversations_keeps_local_pin_and_model_binding() -> None:
    async def run() -> None:
        sync, backend, _ = make_synchronizer()
        session_id = await backend.seed("Pinned")
        await sync.list_conversations()
        await sync.toggle_pin(session_id)
        await sync.set_conversation_model(session_id, "gpt-4o", Provider.OPENAI)

        await sync.list_conversations()

        conversation = sync.state.find_conversation(session_id)
        assert conversation is not None
        assert conversation.pinned is True
        assert conversation.model_id == "gpt-4o"
        assert conversation.provider == Provider.OPENAI

    asyncio.run(run())


def test_list_conversations_failure_leaves_previous_list() -> None:
    async def run() -> None:
        sync, backend, _ = make_synchronizer()
        await backend.seed("Existing")
        await sync.list_conversations()
        before = [replace(item) for item in sync.state.conversations]

        backend.fail("list_sessions", SessionBackendError("offline"))
        assert await sync.list_conversations() is False

        assert sync.state.conversations == before
        assert sync.state.error == "Failed to load conversations"
        assert sync.state.is_loading is False

    asyncio.run(run())


def test_list_conversations_drops_vanished_conversations() -> None:
    async def run() -> None:
        sync, backend, _ = make_synchronizer()
        keep = await backend.seed("Keep")
        gone = await backend.seed("Gone", [("user", "hi")])
        await sync.list_conversations()
        await sync.fetch_messages(gone)
        await sync.select_conversation(gone)
        await backend.delete_session(gone)

        await sync.list_conversations()

        assert [item.id for item in sync.state.conversations] == [keep]
        assert gone not in sync.state.messages
        assert sync.state.selected_conversation_id is None

    asyncio.run(run())


class _StaleListingBackend(ScriptedSessionBackend):
    """Takes its listing before pausing, so sessions created meanwhile are missing from it."""

    async def list_sessions(self) -> list[SessionRecord]:
        records = await InMemorySessionBackend.list_sessions(self)
        await self._enter("list_sessions")
        return records


def test_list_conversations_keeps_conversation_created_meanwhile() -> None:
    async def run() -> None:
        backend = _StaleListingBackend()
        sync = ChatSynchronizer(backend=backend, gateway=FakeGateway())
        old = await backend.seed("Old")
        backend.gate("list_sessions")
        listing = asyncio.create_task(sync.list_conversations())
        await asyncio.sleep(0)
        created = await sync.create_conversation("Fresh")
        backend.open_gate("list_sessions")
        assert await listing

        ids = [item.id for item in sync.state.conversations]
        assert ids == [created, old]
        assert sync.state.messages[created] == []

    asyncio.run(run())


def test_create_conversation_inherits_selected_model() -> None:
    async def run() -> None:
        sync, _, _ = make_synchronizer(models=[model("gpt-4o", Provider.OPENAI)])
        await sync.fetch_available_models()
        older = await sync.create_conversation()
        newer = await sync.create_conversation("  Topic  ")

        assert older is not None and newer is not None
        assert [item.id for item in sync.state.conversations] == [newer, older]
        conversation = sync.state.conversations[0]
        assert conversation.title == "Topic"
        assert conversation.model_id == "gpt-4o"
        assert conversation.provider == Provider.OPENAI
        assert sync.state.messages[newer] == []
        assert sync.state.conversations[1].title == "New chat"

    asyncio.run(run())


def test_create_conversation_failure_leaves_no_partial_entry() -> None:
    async def run() -> None:
        sync, backend, _ = make_synchronizer()
        backend.fail("create_session", SessionBackendError("boom"))

        assert await sync.create_conversation() is None

        assert sync.state.conversations == []
        assert sync.state.messages == {}
        assert sync.state.error == "Failed to create conversation"
        assert sync.state.is_loading is False

    asyncio.run(run())


def test_select_conversation_restores_bound_model_without_catalog() -> None:
    async def run() -> None:
        sync, backend, _ = make_synchronizer()
        session_id = await backend.seed("Bound")
        await sync.list_conversations()
        await sync.set_conversation_model(session_id, "claude-3-haiku", Provider.ANTHROPIC)

        await sync.select_conversation(session_id)

        assert sync.state.selected_conversation_id == session_id
        assert sync.state.selected_model_id == "claude-3-haiku"
        assert sync.state.selected_provider == Provider.ANTHROPIC
        await sync.wait_idle()

    asyncio.run(run())


def test_select_conversation_adopts_global_selection() -> None:
    async def run() -> None:
        sync, backend, _ = make_synchronizer(models=[model("llama3", Provider.OLLAMA)])
        session_id = await backend.seed("Unbound")
        await sync.list_conversations()
        await sync.fetch_available_models()

        await sync.select_conversation(session_id)

        conversation = sync.state.find_conversation(session_id)
        assert conversation is not None
        assert conversation.model_id == "llama3"
        assert conversation.provider == Provider.OLLAMA
        await sync.wait_idle()

    asyncio.run(run())


def test_select_conversation_fetches_messages_once() -> None:
    async def run() -> None:
        sync, backend, _ = make_synchronizer()
        session_id = await backend.seed("Chat", [("user", "hi"), ("assistant", "hello")])
        await sync.list_conversations()

        await sync.select_conversation(session_id)
        await sync.select_conversation(session_id)
        await sync.wait_idle()

        assert backend.count("list_messages") == 1
        assert [item.content for item in sync.state.messages[session_id]] == ["hi", "hello"]

    asyncio.run(run())


def test_select_conversation_twice_is_idempotent() -> None:
    async def run() -> None:
        sync, backend, _ = make_synchronizer(models=[model("gpt-4o", Provider.OPENAI)])
        session_id = await backend.seed("Chat", [("user", "hi")])
        await sync.list_conversations()
        await sync.fetch_available_models()

        await sync.select_conversation(session_id)
        await sync.wait_idle()
        once = sync.state.to_snapshot()
        messages_once = list(sync.state.messages[session_id])

        await sync.select_conversation(session_id)
        await sync.wait_idle()

        assert sync.state.to_snapshot() == once
        assert sync.state.messages[session_id] == messages_once

    asyncio.run(run())


def test_selection_restored_when_switching_back() -> None:
    async def run() -> None:
        sync, backend, _ = make_synchronizer(
            models=[model("gpt-4o", Provider.OPENAI), model("llama3", Provider.OLLAMA)],
        )
        first = await backend.seed("A")
        second = await backend.seed("B")
        await sync.list_conversations()
        await sync.fetch_available_models()
        await sync.set_conversation_model(first, "gpt-4o")
        await sync.set_conversation_model(second, "llama3")

        await sync.select_conversation(first)
        expected = (sync.state.selected_model_id, sync.state.selected_provider)
        await sync.select_conversation(second)
        assert sync.state.selected_model_id == "llama3"
        await sync.select_conversation(first)

        assert (sync.state.selected_model_id, sync.state.selected_provider) == expected
        await sync.wait_idle()

    asyncio.run(run())


def test_select_unknown_conversation_is_ignored() -> None:
    async def run() -> None:
        sync, _, _ = make_synchronizer()
        await sync.select_conversation("missing")
        assert sync.state.selected_conversation_id is None

    asyncio.run(run())


def test_toggle_pin_is_local_only() -> None:
    async def run() -> None:
        sync, backend, _ = make_synchronizer()
        session_id = await backend.seed("Chat")
        await sync.list_conversations()
        calls_before = list(backend.calls)

        assert await sync.toggle_pin(session_id) is True
        assert await sync.toggle_pin(session_id) is False
        assert await sync.toggle_pin("missing") is None

        assert backend.calls == calls_before

    asyncio.run(run())


def test_delete_conversation_removes_state_on_success() -> None:
    async def run() -> None:
        sync, backend, _ = make_synchronizer()
        session_id = await backend.seed("Chat", [("user", "hi")])
        await sync.list_conversations()
        await sync.select_conversation(session_id)
        await sync.wait_idle()

        assert await sync.delete_conversation(session_id) is True

        assert sync.state.find_conversation(session_id) is None
        assert session_id not in sync.state.messages
        assert sync.state.selected_conversation_id is None
        assert sync.state.error is None

    asyncio.run(run())


def test_delete_conversation_falsy_result_changes_nothing() -> None:
    async def run() -> None:
        sync, backend, _ = make_synchronizer()
        session_id = await backend.seed("Chat", [("user", "hi")])
        await sync.list_conversations()
        await sync.select_conversation(session_id)
        await sync.wait_idle()
        conversations = [replace(item) for item in sync.state.conversations]
        messages = list(sync.state.messages[session_id])

        backend.delete_result = False
        assert await sync.delete_conversation(session_id) is False

        assert sync.state.conversations == conversations
        assert sync.state.messages[session_id] == messages
        assert sync.state.selected_conversation_id == session_id
        assert sync.state.error == "Failed to delete conversation: Backend returned false"

    asyncio.run(run())


def test_delete_conversation_error_changes_nothing() -> None:
    async def run() -> None:
        sync, backend, _ = make_synchronizer()
        session_id = await backend.seed("Chat")
        await sync.list_conversations()
        await sync.select_conversation(session_id)
        await sync.wait_idle()

        backend.fail("delete_session", SessionBackendError("timeout"))
        assert await sync.delete_conversation(session_id) is False

        assert sync.state.find_conversation(session_id) is not None
        assert session_id in sync.state.messages
        assert sync.state.selected_conversation_id == session_id
        assert sync.state.error == "Failed to delete conversation: timeout"

    asyncio.run(run())


def test_fetch_messages_failure_sets_error() -> None:
    async def run() -> None:
        sync, backend, _ = make_synchronizer()
        session_id = await backend.seed("Chat")
        await sync.list_conversations()
        backend.fail("list_messages", SessionBackendError("offline"))

        assert await sync.fetch_messages(session_id) is False

        assert session_id not in sync.state.messages
        assert sync.state.error == "Failed to load messages"
        assert sync.state.is_loading_messages is False

    asyncio.run(run())


def test_fetch_messages_for_deleted_conversation_is_dropped() -> None:
    async def run() -> None:
        sync, backend, _ = make_synchronizer()
        session_id = await backend.seed("Chat", [("user", "hi")])
        await sync.list_conversations()
        backend.gate("list_messages")
        fetch = asyncio.create_task(sync.fetch_messages(session_id))
        await asyncio.sleep(0)
        sync.state.conversations.clear()
        backend.open_gate("list_messages")
        await fetch

        assert session_id not in sync.state.messages

    asyncio.run(run())


def test_filtered_conversations_pinned_first_then_recent() -> None:
    async def run() -> None:
        sync, _, _ = make_synchronizer()
        sync.state.conversations.extend(
            [
                Conversation(id="a", title="Groceries", updated_at="2024-01-01T00:00:00+00:00"),
                Conversation(id="b", title="Travel plans", updated_at="2024-03-01T00:00:00+00:00"),
                Conversation(
                    id="c",
                    title="Work",
                    last_message_preview="travel budget",
                    updated_at="2024-02-01T00:00:00+00:00",
                    pinned=True,
                ),
            ],
        )

        assert [item.id for item in sync.filtered_conversations()] == ["c", "b", "a"]
        sync.set_search_query("TRAVEL")
        assert [item.id for item in sync.filtered_conversations()] == ["c", "b"]

    asyncio.run(run())
