"""Response streaming: framing, sessions, sources and the coordinator."""

from __future__ import annotations

from flexistream.streaming.coordinator import StreamCoordinator, StreamUpdate
from flexistream.streaming.framing import LineBuffer, encode_records, parse_record
from flexistream.streaming.session import (
    SessionStore,
    StreamSession,
    StreamStatus,
    TextPart,
    TextState,
)
from flexistream.streaming.source import (
    ChunkSource,
    ScriptedSource,
    StreamError,
    TransportError,
)

__all__ = [
    "StreamCoordinator",
    "StreamUpdate",
    "LineBuffer",
    "encode_records",
    "parse_record",
    "SessionStore",
    "StreamSession",
    "StreamStatus",
    "TextPart",
    "TextState",
    "ChunkSource",
    "ScriptedSource",
    "StreamError",
    "TransportError",
]
