"""Tests for the conversation controller and message helpers."""

import pytest

from flexistream.chat import (
    DEFAULT_TITLE,
    Conversation,
    Message,
    build_history,
    build_title,
    find_pending_user_message,
    flatten_message_parts,
)
from flexistream.config import DEFAULT_GREETING, StreamConfig
from flexistream.streaming.coordinator import StreamCoordinator
from flexistream.streaming.session import StreamStatus
from flexistream.streaming.source import ScriptedSource, TransportError


class SourceRecorder:
    """Source factory that replays canned contents and records each call."""

    def __init__(self, contents, error=None):
        self.contents = contents
        self.error = error
        self.calls = []

    def __call__(self, text, history):
        self.calls.append((text, history))
        return ScriptedSource.from_contents(self.contents, chunk_size=5, error=self.error)


class TestHelpers:
    def test_flatten_message_parts(self):
        parts = [
            {"type": "text", "text": "one"},
            {"type": "tool-carousel", "output": {}},
            {"type": "text", "text": ""},
            {"type": "text", "text": "two"},
        ]
        assert flatten_message_parts(parts) == "one\ntwo"
        assert flatten_message_parts("not a list") == ""

    def test_build_title(self):
        assert build_title("  Find me\n a   flat ") == "Find me a flat"
        assert build_title("   ") == DEFAULT_TITLE
        long = "x" * 70
        assert build_title(long) == "x" * 60 + "..."

    def test_message_text_and_dict(self):
        m = Message.from_text("user", "hello")
        assert m.text == "hello"
        d = m.to_dict()
        assert d["role"] == "user"
        assert d["parts"] == [{"type": "text", "text": "hello", "state": "done"}]
        assert d["id"]

    def test_build_history(self):
        messages = [Message.from_text("assistant", "Hi"), Message.from_text("user", "Yo")]
        assert build_history(messages) == [
            {"role": "assistant", "content": "Hi"},
            {"role": "user", "content": "Yo"},
        ]

    def test_find_pending_user_message(self):
        assert find_pending_user_message([]) is None
        assert find_pending_user_message([Message.from_text("assistant", "Hi")]) is None
        pending = Message.from_text("user", "Yo")
        assert find_pending_user_message([Message.from_text("assistant", "Hi"), pending]) is pending


class TestConversation:
    def test_greeting(self):
        convo = Conversation("c1", SourceRecorder([]))
        assert [m.role for m in convo.messages] == ["assistant"]
        assert convo.messages[0].text == DEFAULT_GREETING
        assert convo.status == "ready"

    def test_no_greeting_with_history(self):
        history = [Message.from_text("user", "Old question")]
        convo = Conversation("c1", SourceRecorder([]), initial_messages=history)
        assert convo.messages == history

    @pytest.mark.asyncio
    async def test_send_streams_and_persists(self, fake_store):
        factory = SourceRecorder(['Here [tool:carousel]{"title":"A"}[/tool]', " you go"])
        convo = Conversation("c1", factory, store=fake_store)
        reply = await convo.send("  Show me flats ")

        assert factory.calls[0][0] == "Show me flats"
        assert factory.calls[0][1] == [{"role": "assistant", "content": DEFAULT_GREETING}]
        assert reply.text == "Here  you go"
        assert reply.to_parts()[1]["type"] == "tool-carousel"
        assert [m.role for m in convo.messages] == ["assistant", "user", "assistant"]
        assert fake_store.roles() == ["user", "assistant"]
        chat_id, _, parts = fake_store.rows[1]
        assert chat_id == "c1"
        assert parts[0] == {"type": "text", "text": "Here  you go"}
        assert convo.status == "ready"

    @pytest.mark.asyncio
    async def test_blank_send_ignored(self):
        factory = SourceRecorder(["x"])
        convo = Conversation("c1", factory)
        assert await convo.send("   ") is None
        assert factory.calls == []

    @pytest.mark.asyncio
    async def test_error_not_persisted(self, fake_store):
        factory = SourceRecorder([], error=TransportError("Upstream returned 500", 500))
        convo = Conversation("c1", factory, store=fake_store)
        reply = await convo.send("Hi")
        assert reply.text == "Upstream returned 500"
        assert convo.error == "Upstream returned 500"
        assert convo.coordinator.status == StreamStatus.ERROR
        assert fake_store.roles() == ["user"]

    @pytest.mark.asyncio
    async def test_empty_answer_gets_fallback(self):
        convo = Conversation("c1", SourceRecorder([]))
        reply = await convo.send("Hi")
        assert reply.text == convo.coordinator.fallback_message

    @pytest.mark.asyncio
    async def test_bootstrap_resends_pending_message(self, fake_store):
        factory = SourceRecorder(["Answer"])
        history = [Message.from_text("assistant", "Hi"), Message.from_text("user", "Question")]
        convo = Conversation("c1", factory, store=fake_store, initial_messages=history)
        assert convo.should_bootstrap
        reply = await convo.bootstrap()
        assert reply.text == "Answer"
        assert factory.calls == [("Question", [{"role": "assistant", "content": "Hi"}])]
        assert [m.role for m in convo.messages] == ["assistant", "user", "assistant"]
        # The pending user message was stored by the earlier session.
        assert fake_store.roles() == ["assistant"]
        assert not convo.should_bootstrap

    @pytest.mark.asyncio
    async def test_bootstrap_disabled(self):
        factory = SourceRecorder(["Answer"])
        coordinator = StreamCoordinator(bootstrap_pending=False)
        history = [Message.from_text("user", "Question")]
        convo = Conversation("c1", factory, coordinator=coordinator, initial_messages=history)
        assert not convo.should_bootstrap
        assert await convo.bootstrap() is None
        assert factory.calls == []

    @pytest.mark.asyncio
    async def test_bootstrap_without_pending_message(self):
        factory = SourceRecorder(["Answer"])
        convo = Conversation("c1", factory)
        assert await convo.bootstrap() is None
        assert factory.calls == []


class TestFromConfig:
    def test_greeting_from_config(self):
        config = StreamConfig()
        config.greeting = "Welcome back!"
        convo = Conversation.from_config("c1", SourceRecorder([]), config)
        assert convo.messages[0].text == "Welcome back!"

    def test_no_greeting_when_unset(self):
        config = StreamConfig()
        config.greeting = None
        convo = Conversation.from_config("c1", SourceRecorder([]), config)
        assert convo.messages == []

    def test_coordinator_follows_config(self):
        config = StreamConfig()
        config.bootstrap_pending = False
        config.fallback_message = "Empty."
        convo = Conversation.from_config("c1", SourceRecorder([]), config)
        assert convo.coordinator.bootstrap_pending is False
        assert convo.coordinator.fallback_message == "Empty."

    def test_explicit_arguments_win(self):
        config = StreamConfig()
        config.greeting = "From config"
        coordinator = StreamCoordinator()
        convo = Conversation.from_config(
            "c1", SourceRecorder([]), config, greeting="Hi there", coordinator=coordinator
        )
        assert convo.messages[0].text == "Hi there"
        assert convo.coordinator is coordinator

    @pytest.mark.asyncio
    async def test_config_fallback_used_on_empty_answer(self):
        config = StreamConfig()
        config.fallback_message = "Nothing came back."
        convo = Conversation.from_config("c1", SourceRecorder([]), config)
        reply = await convo.send("Hi")
        assert reply.text == "Nothing came back."
