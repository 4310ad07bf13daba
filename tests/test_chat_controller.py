"""Tests for the per-session chat controller."""

import httpx
import pytest

from opencode_chat.api.client import OpenCodeClient
from opencode_chat.api.models import ChatMessage
from opencode_chat.core.chat import ChatController, EntryKind, entries_from_message
from opencode_chat.core.connection import Selection
from opencode_chat.utils.errors import HttpError, UsageError

from conftest import BASE_URL, delta_event, error_event, idle_event, sse, wait_until


@pytest.fixture
def client(fake_server, no_sleep):
    return OpenCodeClient(BASE_URL, transport=fake_server.transport, sleep=no_sleep)


@pytest.fixture
def chat(client):
    return ChatController(
        client,
        session_id="s1",
        selection=lambda: Selection(provider_id="anthropic", model_id="claude-haiku"),
    )


def kinds(chat):
    return [entry.kind for entry in chat.transcript]


class TestEntriesFromMessage:
    def test_part_mapping(self):
        message = ChatMessage.decode(
            {
                "info": {"id": "m1", "role": "assistant"},
                "parts": [
                    {"id": "p1", "type": "reasoning", "text": "hmm"},
                    {"id": "p2", "type": "tool_call", "name": "bash", "input": "ls", "status": "running"},
                    {"id": "p3", "type": "tool_result", "toolCallID": "c1", "result": "a.py", "isError": True},
                    {"id": "p4", "type": "text", "text": "done", "time": {"start": 99}},
                    {"id": "p5", "type": "patch"},
                ],
            }
        )

        entries = entries_from_message(message)

        assert [e.kind for e in entries] == [
            EntryKind.REASONING,
            EntryKind.TOOL_CALL,
            EntryKind.TOOL_RESULT,
            EntryKind.ASSISTANT,
            EntryKind.OTHER,
        ]
        assert entries[1].text == "bash [running]"
        assert entries[1].detail == "ls"
        assert entries[2].is_error
        assert entries[3].timestamp_ms == 99
        assert entries[4].text == "Unsupported part: patch"
        assert len({e.id for e in entries}) == 5

    def test_user_text(self):
        message = ChatMessage.decode({"info": {"id": "m1", "role": "user"}, "parts": [{"type": "text", "text": "hi"}]})

        assert entries_from_message(message)[0].kind == EntryKind.USER


class TestStreamHandling:
    """Deltas accumulate per message for the current session only."""

    def test_deltas_accumulate(self, chat):
        chat.handle_delta("s1", "m1", "Hel")
        chat.handle_delta("s1", "m1", "lo")

        assert chat.streaming_text("m1") == "Hello"
        assert len(chat.transcript) == 1
        assert chat.transcript[0].text == "Hello"
        assert chat.transcript[0].streaming

    def test_other_session_ignored(self, chat):
        chat.handle_delta("s2", "m1", "nope")
        chat.handle_idle("s2")
        chat.handle_error("s2", "boom")

        assert chat.transcript == []
        assert chat.last_error is None

    def test_separate_messages_get_separate_entries(self, chat):
        chat.handle_delta("s1", "m1", "a")
        chat.handle_delta("s1", "m2", "b")

        assert [e.text for e in chat.transcript] == ["a", "b"]

    def test_idle_ends_turn(self, chat):
        ended = []
        chat.on_turn_end = ended.append
        chat.pending_message_id = "m0"
        chat.handle_delta("s1", "m1", "x")

        chat.handle_idle("s1")

        assert ended == [None]
        assert chat.pending_message_id is None
        assert not chat.transcript[0].streaming
        assert chat.streaming_text("m1") == ""

    def test_idle_without_pending_turn_does_not_notify(self, chat):
        ended = []
        chat.on_turn_end = ended.append

        chat.handle_idle("s1")

        assert ended == []

    def test_error_adds_entry_and_ends_turn(self, chat):
        ended = []
        chat.on_turn_end = ended.append
        chat.pending_message_id = "m0"

        chat.handle_error("s1", "rate limited")

        assert chat.last_error == "rate limited"
        assert kinds(chat) == [EntryKind.ERROR]
        assert chat.transcript[0].text == "Session error: rate limited"
        assert chat.transcript[0].is_error
        assert ended == ["rate limited"]

    def test_connection_entries(self, chat):
        chat.handle_connected()
        assert chat.stream_connected

        chat.handle_disconnected()
        assert not chat.stream_connected
        assert kinds(chat) == [EntryKind.SYSTEM, EntryKind.SYSTEM]

    def test_set_session_resets_state(self, chat):
        chat.handle_delta("s1", "m1", "x")
        chat.pending_message_id = "m1"

        chat.set_session("s2")

        assert chat.transcript == []
        assert chat.pending_message_id is None
        assert chat.streaming_text("m1") == ""


class TestSend:
    @pytest.mark.asyncio
    async def test_send_posts_prompt_with_selection(self, chat, fake_server):
        fake_server.add("POST", "/session/s1/prompt_async", httpx.Response(204))

        message_id = await chat.send("  hello  ")

        body = fake_server.body(fake_server.requests_to("POST", "/session/s1/prompt_async")[0])
        assert body["parts"] == [{"type": "text", "text": "hello"}]
        assert body["messageID"] == message_id
        assert body["model"] == {"providerID": "anthropic", "modelID": "claude-haiku"}
        assert chat.pending_message_id == message_id
        assert not chat.is_sending
        assert chat.draft == ""
        assert kinds(chat) == [EntryKind.USER]

    @pytest.mark.asyncio
    async def test_blank_input_is_ignored(self, chat, fake_server):
        assert await chat.send("   ") is None
        assert fake_server.requests == []

    @pytest.mark.asyncio
    async def test_no_session(self, client):
        chat = ChatController(client)

        with pytest.raises(UsageError):
            await chat.send("hello")

    @pytest.mark.asyncio
    async def test_failure_keeps_draft_and_rolls_back(self, chat, fake_server):
        fake_server.add("POST", "/session/s1/prompt_async", httpx.Response(500, text="boom"))

        with pytest.raises(HttpError):
            await chat.send("hello")

        assert chat.draft == "hello"
        assert chat.pending_message_id is None
        assert not chat.is_sending
        assert chat.last_error
        assert kinds(chat) == [EntryKind.USER, EntryKind.ERROR]
        assert await chat.wait_for_turn(timeout=0.1)

    @pytest.mark.asyncio
    async def test_default_selection_omits_model(self, client, fake_server):
        fake_server.add("POST", "/session/s1/prompt_async", httpx.Response(204))
        chat = ChatController(client, session_id="s1")

        await chat.send("hello")

        body = fake_server.body(fake_server.requests_to("POST", "/session/s1/prompt_async")[0])
        assert "model" not in body

    @pytest.mark.asyncio
    async def test_wait_for_turn_times_out_while_pending(self, chat, fake_server):
        fake_server.add("POST", "/session/s1/prompt_async", httpx.Response(204))

        await chat.send("hello")

        assert not await chat.wait_for_turn(timeout=0.05)


class TestFullTurn:
    @pytest.mark.asyncio
    async def test_streamed_turn(self, chat, client, fake_server):
        fake_server.add(
            "POST",
            "/session/s1/prompt_async",
            fake_server.reply(
                delta_event("s2", "other", "ignored"),
                delta_event("s1", "m1", "Hel"),
                idle_event("s2"),
                delta_event("s1", "m1", "lo"),
                idle_event("s1"),
            ),
        )
        deltas = []
        ended = []
        chat.on_delta = lambda message_id, delta: deltas.append(delta)
        chat.on_turn_end = ended.append

        async with client:
            await chat.start_stream()
            assert await chat.wait_connected(timeout=2.0)
            await chat.send("hi")
            assert await chat.wait_for_turn(timeout=2.0)

            await chat.stop_stream()

        # idle for another session does not end this turn early
        assert deltas == ["Hel", "lo"]
        assert ended == [None]
        assert chat.transcript[-1].text == "Streaming paused"
        assert not chat.stream_connected
        assistant = [e for e in chat.transcript if e.kind == EntryKind.ASSISTANT]
        assert [e.text for e in assistant] == ["Hello"]
        assert not assistant[0].streaming

    @pytest.mark.asyncio
    async def test_stream_error_reported(self, chat, client, fake_server):
        fake_server.streams = [[sse(error_event("s1", {"name": "ProviderAuthError"}))]]

        async with client:
            await chat.start_stream()
            await wait_until(lambda: chat.last_error is not None)

        assert chat.last_error == "ProviderAuthError"

    @pytest.mark.asyncio
    async def test_load_history(self, chat, fake_server):
        fake_server.json(
            "GET",
            "/session/s1/message",
            [{"info": {"id": "m1", "role": "user"}, "parts": [{"id": "p1", "type": "text", "text": "hi"}]}],
        )

        entries = await chat.load_history()

        assert [e.text for e in entries] == ["hi"]
        assert chat.transcript == entries
