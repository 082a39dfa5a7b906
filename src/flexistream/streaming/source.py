"""Chunk sources: where the raw response bytes come from.

The real transport (an HTTP response body) lives outside this package; it
only has to implement :class:`ChunkSource`. :class:`ScriptedSource` replays
a fixed list of chunks and is used by the replay command and the tests.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import AsyncIterator, Iterable, Union

from flexistream.streaming.framing import encode_records

Chunk = Union[bytes, str]


class StreamError(Exception):
    """Base class for stream failures."""


class TransportError(StreamError):
    """The upstream answered with a failure or the connection broke."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ChunkSource(ABC):
    """Async iterator of raw chunks for one response."""

    @abstractmethod
    def chunks(self) -> AsyncIterator[Chunk]:
        """Yield chunks until the upstream signals end of stream.

        Raises:
            TransportError: on a failed response or a broken connection.
        """

    async def aclose(self) -> None:
        """Release the underlying transport. Override if needed."""


class ScriptedSource(ChunkSource):
    """Replays prepared chunks, optionally failing after them.

    Args:
        chunks: The chunks to yield, in order.
        delay: Seconds to sleep before each chunk.
        error: Exception raised once all chunks have been yielded.
    """

    def __init__(
        self,
        chunks: Iterable[Chunk],
        delay: float = 0.0,
        error: BaseException | None = None,
    ) -> None:
        self._chunks = list(chunks)
        self.delay = delay
        self.error = error
        self.closed = False

    @classmethod
    def from_contents(
        cls, contents: list[str], chunk_size: int | None = None, **kwargs
    ) -> ScriptedSource:
        """Encode *contents* as item records, split every *chunk_size* bytes."""
        return cls.from_bytes(encode_records(contents), chunk_size, **kwargs)

    @classmethod
    def from_bytes(cls, data: bytes, chunk_size: int | None = None, **kwargs) -> ScriptedSource:
        if not chunk_size:
            return cls([data] if data else [], **kwargs)
        return cls([data[i : i + chunk_size] for i in range(0, len(data), chunk_size)], **kwargs)

    async def chunks(self) -> AsyncIterator[Chunk]:
        for chunk in self._chunks:
            await asyncio.sleep(self.delay)
            yield chunk
        if self.error is not None:
            raise self.error

    async def aclose(self) -> None:
        self.closed = True
