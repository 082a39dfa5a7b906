"""Per-response stream state and the per-chat session store."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from flexistream.payloads import StructuredPayload


class StreamStatus(enum.Enum):
    """Lifecycle of one assistant response."""

    IDLE = "idle"
    STREAMING = "streaming"
    DONE = "done"
    ERROR = "error"


class TextState(enum.Enum):
    """Lifecycle of the text part shown to the user."""

    WAITING = "waiting"
    STREAMING = "streaming"
    DONE = "done"


@dataclass
class TextPart:
    text: str = ""
    state: TextState = TextState.WAITING

    def to_part(self) -> dict:
        return {"type": "text", "text": self.text, "state": self.state.value}


@dataclass
class StreamSession:
    """Everything the coordinator tracks for the response in flight."""

    raw_buffer: str = ""
    text_part: TextPart = field(default_factory=TextPart)
    payloads: list[StructuredPayload] = field(default_factory=list)
    emitted: set[str] = field(default_factory=set)
    status: StreamStatus = StreamStatus.IDLE
    has_content: bool = False
    error: str | None = None

    def reset(self) -> None:
        self.raw_buffer = ""
        self.text_part = TextPart()
        self.payloads = []
        self.emitted = set()
        self.status = StreamStatus.IDLE
        self.has_content = False
        self.error = None

    def add_payloads(self, payloads: list[StructuredPayload]) -> list[StructuredPayload]:
        """Record payloads not seen before and return just those."""
        new = []
        for payload in payloads:
            if payload.identity in self.emitted:
                continue
            self.emitted.add(payload.identity)
            self.payloads.append(payload)
            new.append(payload)
        return new

    @property
    def is_streaming(self) -> bool:
        return self.status == StreamStatus.STREAMING


class SessionStore:
    """Stream sessions keyed by chat id.

    Owned by whatever holds the chat views and passed to the components that
    need it; discard a session when its chat view goes away.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, StreamSession] = {}

    def get(self, chat_id: str) -> StreamSession:
        session = self._sessions.get(chat_id)
        if session is None:
            session = self._sessions[chat_id] = StreamSession()
        return session

    def status(self, chat_id: str) -> StreamStatus:
        session = self._sessions.get(chat_id)
        return session.status if session else StreamStatus.IDLE

    def is_streaming(self, chat_id: str) -> bool:
        return self.status(chat_id) == StreamStatus.STREAMING

    def discard(self, chat_id: str) -> None:
        self._sessions.pop(chat_id, None)

    def __contains__(self, chat_id: str) -> bool:
        return chat_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
