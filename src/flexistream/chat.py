"""Chat conversation: messages, sending, and hand-off to storage."""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Protocol

from flexistream.config import DEFAULT_GREETING
from flexistream.streaming.coordinator import StreamCoordinator, StreamUpdate
from flexistream.streaming.session import StreamStatus, TextPart, TextState
from flexistream.streaming.source import ChunkSource

if TYPE_CHECKING:
    from flexistream.config import StreamConfig

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New conversation"
MAX_TITLE_LENGTH = 60


class MessageStore(Protocol):
    """Persistence collaborator for finished messages."""

    def insert(self, chat_id: str, role: str, parts: list[dict]) -> None: ...


# Builds the transport for one send from the user text and prior history.
SourceFactory = Callable[[str, list[dict]], ChunkSource]


def generate_message_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Message:
    role: str
    parts: list[Any] = field(default_factory=list)
    id: str = field(default_factory=generate_message_id)

    @classmethod
    def from_text(cls, role: str, text: str) -> Message:
        return cls(role=role, parts=[TextPart(text=text, state=TextState.DONE)])

    @property
    def text(self) -> str:
        return flatten_message_parts(self.to_parts())

    def to_parts(self) -> list[dict]:
        return [p.to_part() if hasattr(p, "to_part") else p for p in self.parts]

    def to_dict(self) -> dict:
        return {"id": self.id, "role": self.role, "parts": self.to_parts()}


def flatten_message_parts(parts: Any) -> str:
    """Join the text of every text-bearing part with newlines."""
    if not isinstance(parts, list):
        return ""
    texts = []
    for part in parts:
        if isinstance(part, dict):
            value = part.get("text")
        else:
            value = getattr(part, "text", None)
        if isinstance(value, str) and value:
            texts.append(value)
    return "\n".join(texts)


def build_title(message: str) -> str:
    """Chat title from the first user message: one line, at most 60 chars."""
    normalized = re.sub(r"\s+", " ", message.strip())
    if not normalized:
        return DEFAULT_TITLE
    if len(normalized) > MAX_TITLE_LENGTH:
        return normalized[:MAX_TITLE_LENGTH] + "..."
    return normalized


def build_history(messages: list[Message]) -> list[dict]:
    """Role/content pairs for the upstream agent."""
    return [{"role": m.role, "content": m.text} for m in messages]


def find_pending_user_message(messages: list[Message]) -> Message | None:
    """The last message if it is an unanswered user message."""
    if messages and messages[-1].role == "user":
        return messages[-1]
    return None


class Conversation:
    """One chat view: its messages and the stream of the current answer.

    Args:
        chat_id: Identifier passed to the store.
        source_factory: Opens the upstream stream for a user message.
        coordinator: Drives responses; its ``bootstrap_pending`` option
            decides whether :meth:`bootstrap` re-sends a pending message.
        store: Receives user and assistant messages once they are final.
        initial_messages: Messages loaded for this chat, if any.
        greeting: Assistant message shown in an empty chat.
    """

    def __init__(
        self,
        chat_id: str,
        source_factory: SourceFactory,
        coordinator: StreamCoordinator | None = None,
        store: MessageStore | None = None,
        initial_messages: list[Message] | None = None,
        greeting: str | None = DEFAULT_GREETING,
    ) -> None:
        self.chat_id = chat_id
        self._source_factory = source_factory
        self.coordinator = coordinator or StreamCoordinator()
        self.store = store
        if initial_messages:
            self.messages = list(initial_messages)
        elif greeting:
            self.messages = [Message.from_text("assistant", greeting)]
        else:
            self.messages = []
        self._assistant_message: Message | None = None
        self.coordinator.add_listener(self._on_update)

    @classmethod
    def from_config(
        cls,
        chat_id: str,
        source_factory: SourceFactory,
        config: StreamConfig,
        **kwargs,
    ) -> Conversation:
        """Build a conversation whose greeting and coordinator follow *config*."""
        kwargs.setdefault("greeting", config.greeting)
        if kwargs.get("coordinator") is None:
            kwargs["coordinator"] = StreamCoordinator.from_config(config)
        return cls(chat_id, source_factory, **kwargs)

    @property
    def status(self) -> str:
        """``"streaming"`` while an answer is in flight, else ``"ready"``."""
        return "streaming" if self.coordinator.is_streaming else "ready"

    @property
    def error(self) -> str | None:
        return self.coordinator.session.error

    @property
    def should_bootstrap(self) -> bool:
        return self.coordinator.bootstrap_pending and find_pending_user_message(self.messages) is not None

    async def send(self, text: str) -> Message | None:
        """Send a new user message and stream the answer."""
        return await self._stream(text, persist_user_message=True)

    async def bootstrap(self) -> Message | None:
        """Answer a user message left unanswered by a previous session."""
        if not self.coordinator.bootstrap_pending:
            return None
        pending = find_pending_user_message(self.messages)
        if pending is None or not pending.text.strip():
            return None
        return await self._stream(pending.text, persist_user_message=False, existing=pending)

    def stop(self) -> None:
        self.coordinator.stop()

    async def _stream(
        self,
        text: str,
        persist_user_message: bool,
        existing: Message | None = None,
    ) -> Message | None:
        normalized = text.strip()
        if not normalized or self.coordinator.is_streaming:
            return None

        history = build_history(self.messages if not existing else self.messages[:-1])
        if existing is None:
            user_message = Message.from_text("user", normalized)
            self.messages.append(user_message)
            if persist_user_message and self.store is not None:
                self.store.insert(self.chat_id, "user", user_message.to_parts())

        source = self._source_factory(normalized, history)
        assistant = Message(role="assistant")
        self.messages.append(assistant)
        self._assistant_message = assistant
        try:
            status = await self.coordinator.run(source)
        finally:
            self._sync(assistant)
            self._assistant_message = None

        if status == StreamStatus.DONE and self.store is not None:
            parts = self.coordinator.assistant_parts()
            if parts:
                self.store.insert(self.chat_id, "assistant", parts)
        return assistant

    def _on_update(self, update: StreamUpdate) -> None:
        if self._assistant_message is not None:
            self._sync(self._assistant_message)

    def _sync(self, message: Message) -> None:
        session = self.coordinator.session
        message.parts = [session.text_part, *session.payloads]
