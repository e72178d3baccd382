from __future__ import annotations

import asyncio
from collections.abc import Sequence

from config.system_prompts import TITLE_PROMPT
from core.chat_exchange import clean_generated_title
from core.chat_synchronizer import ChatSynchronizer
from core.error_messages import (
    NO_MODEL_SELECTED_MESSAGE,
    PROVIDER_NOT_CONFIGURED_MESSAGE,
    model_unavailable_message,
)
from llm.errors import ModelNotFoundError, ProviderAPIError, ProviderNotConfiguredError
from server.session_backend import SessionBackendError
from shared.chat_models import Provider
from tests.chat_fakes import FakeGateway, ScriptedSessionBackend, make_synchronizer, model

THREE_EXCHANGES = [
    ("user", "q1"),
    ("assistant", "a1"),
    ("user", "q2"),
    ("assistant", "a2"),
    ("user", "q3"),
    ("assistant", "a3"),
]


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


async def _ready(
    messages: Sequence[tuple[str, str]] = (),
    title: str = "Chat",
) -> tuple[ChatSynchronizer, ScriptedSessionBackend, FakeGateway, str]:
    sync, backend, gateway = make_synchronizer(models=[model("gpt-4o", Provider.OPENAI)])
    session_id = await backend.seed(title, messages)
    await sync.list_conversations()
    await sync.fetch_available_models()
    await sync.fetch_messages(session_id)
    return sync, backend, gateway, session_id


def test_send_message_persists_user_then_assistant() -> None:
    async def run() -> None:
        sync, backend, gateway = make_synchronizer(models=[model("gpt-4o", Provider.OPENAI)])
        await sync.fetch_available_models()
        session_id = await sync.create_conversation()
        assert session_id is not None

        assert await sync.send_message(session_id, "  What's the weather?  ")

        messages = sync.state.messages[session_id]
        assert [(item.role, item.content) for item in messages] == [
            ("user", "What's the weather?"),
            ("assistant", "assistant reply"),
        ]
        appended = [args[1] for name, args in backend.calls if name == "append_message"]
        assert appended == ["user", "assistant"]
        conversation = sync.state.find_conversation(session_id)
        assert conversation is not None
        assert conversation.last_message_preview == "assistant reply"
        assert conversation.model_id == "gpt-4o"
        assert conversation.provider == Provider.OPENAI
        assert sync.state.is_sending is False
        assert sync.state.error is None

        call = gateway.chat_calls()[0]
        assert call["provider"] == Provider.OPENAI
        assert call["model_id"] == "gpt-4o"
        assert [item.content for item in call["messages"]] == ["What's the weather?"]
        await sync.wait_idle()

    asyncio.run(run())


def test_user_message_visible_before_reply_arrives() -> None:
    async def run() -> None:
        sync, backend, gateway, session_id = await _ready([("user", "q1"), ("assistant", "a1")])
        gateway.complete_gate = asyncio.Event()

        sending = asyncio.create_task(sync.send_message(session_id, "next question"))
        await _settle()

        assert sync.state.is_sending is True
        assert [item.content for item in sync.state.messages[session_id]] == [
            "q1",
            "a1",
            "next question",
        ]
        assert sync.state.find_conversation(session_id).last_message_preview == "next question"
        persisted = await backend.list_messages(session_id)
        assert persisted[-1].content == "next question"

        gateway.complete_gate.set()
        assert await sending
        assert sync.state.is_sending is False

    asyncio.run(run())


def test_first_reply_generates_title() -> None:
    async def run() -> None:
        sync, backend, gateway = make_synchronizer(models=[model("gpt-4o", Provider.OPENAI)])
        await sync.fetch_available_models()
        session_id = await sync.create_conversation()
        gateway.title_replies = ['"Weather Today"']

        assert await sync.send_message(session_id, "What's the weather?")
        await sync.wait_idle()

        assert sync.state.find_conversation(session_id).title == "Weather Today"
        sessions = await backend.list_sessions()
        assert sessions[0].title == "Weather Today"
        title_call = next(call for call in gateway.complete_calls if call["title"])
        assert [item.role for item in title_call["messages"]] == ["system", "user"]
        assert title_call["messages"][0].content == TITLE_PROMPT
        assert title_call["messages"][1].content == "What's the weather?"

    asyncio.run(run())


def test_custom_title_is_not_regenerated() -> None:
    async def run() -> None:
        sync, _, gateway, session_id = await _ready(title="Trip planning")

        assert await sync.send_message(session_id, "hello")
        await sync.wait_idle()

        assert not any(call["title"] for call in gateway.complete_calls)
        assert sync.state.find_conversation(session_id).title == "Trip planning"

    asyncio.run(run())


def test_title_failure_is_not_surfaced() -> None:
    async def run() -> None:
        sync, backend, gateway = make_synchronizer(models=[model("gpt-4o", Provider.OPENAI)])
        await sync.fetch_available_models()
        session_id = await sync.create_conversation()
        gateway.title_replies = [ProviderAPIError(Provider.OPENAI, "HTTP 503: busy", 503)]

        assert await sync.send_message(session_id, "hello")
        await sync.wait_idle()

        assert sync.state.error is None
        assert sync.state.find_conversation(session_id).title == "New chat"
        assert backend.count("update_session_title") == 0

    asyncio.run(run())


def test_send_empty_text_is_a_no_op() -> None:
    async def run() -> None:
        sync, backend, gateway, session_id = await _ready()
        calls_before = list(backend.calls)

        assert await sync.send_message(session_id, "   ") is False

        assert backend.calls == calls_before
        assert gateway.chat_calls() == []
        assert sync.state.messages[session_id] == []
        assert sync.state.is_sending is False

    asyncio.run(run())


def test_send_without_model_reports_error_and_persists_nothing() -> None:
    async def run() -> None:
        sync, backend, gateway = make_synchronizer()
        session_id = await backend.seed("Chat")
        await sync.list_conversations()

        assert await sync.send_message(session_id, "hello") is False

        assert sync.state.error == NO_MODEL_SELECTED_MESSAGE
        assert backend.count("append_message") == 0
        assert gateway.chat_calls() == []
        assert sync.state.messages[session_id] == []

    asyncio.run(run())


def test_send_user_persist_failure_leaves_no_message() -> None:
    async def run() -> None:
        sync, backend, gateway, session_id = await _ready()
        backend.fail("append_message", SessionBackendError("write failed"))

        assert await sync.send_message(session_id, "hello") is False

        assert sync.state.messages[session_id] == []
        assert sync.state.is_sending is False
        assert sync.state.error == "Failed to send message"
        assert gateway.chat_calls() == []

    asyncio.run(run())


def test_send_gateway_failure_keeps_only_user_message() -> None:
    async def run() -> None:
        sync, _, gateway, session_id = await _ready()
        gateway.replies = [ProviderAPIError(Provider.OPENAI, "HTTP 500: boom", 500)]

        assert await sync.send_message(session_id, "hello") is False

        messages = sync.state.messages[session_id]
        assert [(item.role, item.content) for item in messages] == [("user", "hello")]
        assert sync.state.is_sending is False
        assert sync.state.error == "AI service error: openai API error: HTTP 500: boom"

    asyncio.run(run())


def test_send_errors_are_classified() -> None:
    async def run() -> None:
        sync, _, gateway, session_id = await _ready()
        gateway.replies = [
            ProviderNotConfiguredError(Provider.OPENAI),
            ModelNotFoundError(Provider.OPENAI, "gpt-4o"),
            RuntimeError("socket closed"),
        ]

        await sync.send_message(session_id, "one")
        assert sync.state.error == PROVIDER_NOT_CONFIGURED_MESSAGE
        await sync.send_message(session_id, "two")
        assert sync.state.error == model_unavailable_message("gpt-4o")
        await sync.send_message(session_id, "three")
        assert sync.state.error == "Failed to send message"

    asyncio.run(run())


def test_background_conversation_keeps_its_own_model() -> None:
    async def run() -> None:
        sync, backend, gateway = make_synchronizer(
            models=[model("gpt-4o", Provider.OPENAI), model("llama3", Provider.OLLAMA)],
        )
        background = await backend.seed("Background")
        active = await backend.seed("Active")
        await sync.list_conversations()
        await sync.fetch_available_models()
        await sync.set_conversation_model(background, "llama3")
        await sync.select_conversation(active)
        await sync.set_selected_model("gpt-4o")
        await sync.wait_idle()

        assert await sync.send_message(background, "hi")

        call = gateway.chat_calls()[-1]
        assert (call["model_id"], call["provider"]) == ("llama3", Provider.OLLAMA)
        assert sync.state.selected_model_id == "gpt-4o"

    asyncio.run(run())


def test_send_corrects_provider_mismatch() -> None:
    async def run() -> None:
        sync, _, gateway, session_id = await _ready()
        sync.state.selected_provider = Provider.OLLAMA

        assert await sync.send_message(session_id, "hello")

        assert gateway.chat_calls()[0]["provider"] == Provider.OPENAI
        assert sync.state.selected_provider == Provider.OPENAI

    asyncio.run(run())


def test_regenerate_middle_message_keeps_position() -> None:
    async def run() -> None:
        sync, _, gateway, session_id = await _ready(THREE_EXCHANGES)
        before = list(sync.state.messages[session_id])
        gateway.replies = ["fresh a2"]

        assert await sync.regenerate_response(session_id, before[3].id)

        after = sync.state.messages[session_id]
        assert len(after) == len(before)
        assert after[3].content == "fresh a2"
        assert after[3].id != before[3].id
        assert after[:3] == before[:3]
        assert after[4:] == before[4:]
        assert [item.content for item in gateway.chat_calls()[0]["messages"]] == ["q1", "a1", "q2"]
        assert sync.state.find_conversation(session_id).last_message_preview == "a3"
        assert sync.state.is_sending is False

    asyncio.run(run())


def test_regenerate_last_message_updates_preview() -> None:
    async def run() -> None:
        sync, _, gateway, session_id = await _ready([("user", "q1"), ("assistant", "a1")])
        original = sync.state.messages[session_id][1]
        gateway.replies = ["better answer"]

        assert await sync.regenerate_response(session_id, original.id)

        assert sync.state.messages[session_id][-1].content == "better answer"
        assert sync.state.find_conversation(session_id).last_message_preview == "better answer"

    asyncio.run(run())


def test_regenerate_failure_restores_original_history() -> None:
    async def run() -> None:
        sync, _, gateway, session_id = await _ready(THREE_EXCHANGES)
        before = list(sync.state.messages[session_id])
        gateway.replies = [ModelNotFoundError(Provider.OPENAI, "gpt-4o")]

        assert await sync.regenerate_response(session_id, before[3].id) is False

        after = sync.state.messages[session_id]
        assert after == before
        assert all(left is right for left, right in zip(after, before, strict=True))
        assert sync.state.error == model_unavailable_message("gpt-4o")
        assert sync.state.find_conversation(session_id).last_message_preview == "a3"
        assert sync.state.is_sending is False

    asyncio.run(run())


def test_regenerate_persist_failure_restores_original() -> None:
    async def run() -> None:
        sync, backend, _, session_id = await _ready([("user", "q1"), ("assistant", "a1")])
        before = list(sync.state.messages[session_id])
        backend.fail("append_message", SessionBackendError("disk"))

        assert await sync.regenerate_response(session_id, before[1].id) is False

        assert sync.state.messages[session_id] == before
        assert sync.state.error == "Failed to regenerate response"

    asyncio.run(run())


def test_regenerate_rejects_user_message_and_missing_ids() -> None:
    async def run() -> None:
        sync, _, gateway, session_id = await _ready([("user", "q1"), ("assistant", "a1")])
        user_message = sync.state.messages[session_id][0]

        assert await sync.regenerate_response(session_id, user_message.id) is False
        assert await sync.regenerate_response(session_id, "missing") is False
        assert await sync.regenerate_response("unknown", "missing") is False
        assert gateway.chat_calls() == []

    asyncio.run(run())


def test_regenerate_requires_preceding_user_message() -> None:
    async def run() -> None:
        sync, _, gateway, session_id = await _ready([("assistant", "greeting"), ("user", "q1")])
        greeting = sync.state.messages[session_id][0]

        assert await sync.regenerate_response(session_id, greeting.id) is False
        assert gateway.chat_calls() == []

    asyncio.run(run())


def test_send_and_regenerate_on_same_conversation_do_not_interleave() -> None:
    async def run() -> None:
        sync, _, gateway, session_id = await _ready([("user", "q1"), ("assistant", "a1")])
        first_answer = sync.state.messages[session_id][1]
        gateway.complete_gate = asyncio.Event()
        gateway.replies = ["send reply", "regen reply"]

        sending = asyncio.create_task(sync.send_message(session_id, "q2"))
        await _settle()
        regenerating = asyncio.create_task(sync.regenerate_response(session_id, first_answer.id))
        await _settle()

        assert len(gateway.chat_calls()) == 1
        assert [item.content for item in sync.state.messages[session_id]] == ["q1", "a1", "q2"]

        gateway.complete_gate.set()
        assert await sending
        assert await regenerating

        assert [item.content for item in sync.state.messages[session_id]] == [
            "q1",
            "regen reply",
            "q2",
            "send reply",
        ]
        calls = gateway.chat_calls()
        assert [item.content for item in calls[0]["messages"]] == ["q1", "a1", "q2"]
        assert [item.content for item in calls[1]["messages"]] == ["q1"]
        assert sync.state.find_conversation(session_id).last_message_preview == "send reply"

    asyncio.run(run())


def test_sends_on_different_conversations_run_concurrently() -> None:
    async def run() -> None:
        sync, backend, gateway = make_synchronizer(models=[model("gpt-4o", Provider.OPENAI)])
        first = await backend.seed("One")
        second = await backend.seed("Two")
        await sync.list_conversations()
        await sync.fetch_available_models()
        gateway.complete_gate = asyncio.Event()

        tasks = [
            asyncio.create_task(sync.send_message(first, "hi")),
            asyncio.create_task(sync.send_message(second, "hi")),
        ]
        await _settle()

        assert len(gateway.chat_calls()) == 2
        assert sync.state.is_sending is True
        gateway.complete_gate.set()
        assert await asyncio.gather(*tasks) == [True, True]
        assert sync.state.is_sending is False

    asyncio.run(run())


def test_clean_generated_title_strips_quotes_and_limits_length() -> None:
    assert clean_generated_title('  "Weekend Trip Ideas"  ', 50) == "Weekend Trip Ideas"
    assert clean_generated_title("'Long'" + " word" * 20, 12) == "Long word wo"
