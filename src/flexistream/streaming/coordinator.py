"""Drives one assistant response from raw chunks to parsed parts.

The coordinator owns the stream session: it frames incoming bytes into
records, appends their content to the raw buffer, re-runs the whole pipeline
over the buffer and publishes only payloads it has not published before.

    idle -> streaming -> done | error
    streaming -> idle            (stopped by the user)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from flexistream.config import (
    CONTENT_POLICIES,
    DEFAULT_FALLBACK_MESSAGE,
    FIRST_CONTENT,
    RECEIVED_CONTENT,
)
from flexistream.parsing.pipeline import RichContentPipeline, build_pipeline
from flexistream.payloads import StructuredPayload
from flexistream.streaming.framing import LineBuffer, is_wrapper_token
from flexistream.streaming.session import StreamSession, StreamStatus, TextState
from flexistream.streaming.source import Chunk, ChunkSource, StreamError

if TYPE_CHECKING:
    from flexistream.config import StreamConfig

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Failed to send message."


@dataclass
class StreamUpdate:
    """What changed after a chunk (or the end of the stream) was processed."""

    display_text: str
    new_payloads: list[StructuredPayload] = field(default_factory=list)
    is_awaiting_more_input: bool = False
    status: StreamStatus = StreamStatus.STREAMING


class StreamCoordinator:
    """Owns the raw buffer of the response in flight and its parsed view.

    Args:
        pipeline: Stages to run over the buffer; defaults to all of them.
        session: Session to drive, e.g. one taken from a ``SessionStore``.
        on_update: Called with every published :class:`StreamUpdate`.
        skip_wrapper_tokens: Drop items that are only framing noise.
        fallback_message: Shown when a stream ends without any content.
        content_policy: ``"first-content"`` leaves the text part waiting
            until real content arrives; ``"received-content"`` starts
            streaming on the first record of any kind.
        bootstrap_pending: Whether a conversation ending in an unanswered
            user message re-sends it when loaded.
    """

    def __init__(
        self,
        pipeline: RichContentPipeline | None = None,
        *,
        session: StreamSession | None = None,
        on_update: Callable[[StreamUpdate], None] | None = None,
        skip_wrapper_tokens: bool = True,
        fallback_message: str = DEFAULT_FALLBACK_MESSAGE,
        content_policy: str = FIRST_CONTENT,
        bootstrap_pending: bool = True,
    ) -> None:
        if content_policy not in CONTENT_POLICIES:
            raise ValueError(f"Unknown content policy: {content_policy}")
        self.pipeline = pipeline or RichContentPipeline.default()
        self.session = session if session is not None else StreamSession()
        self.skip_wrapper_tokens = skip_wrapper_tokens
        self.fallback_message = fallback_message
        self.content_policy = content_policy
        self.bootstrap_pending = bootstrap_pending
        self._listeners: list[Callable[[StreamUpdate], None]] = []
        if on_update is not None:
            self._listeners.append(on_update)
        self._framer = LineBuffer()
        self._read_task: asyncio.Task | None = None
        self._stop_requested = False

    @classmethod
    def from_config(cls, config: StreamConfig, **kwargs) -> StreamCoordinator:
        kwargs.setdefault("skip_wrapper_tokens", config.skip_wrapper_tokens)
        kwargs.setdefault("fallback_message", config.fallback_message)
        kwargs.setdefault("content_policy", config.content_policy)
        kwargs.setdefault("bootstrap_pending", config.bootstrap_pending)
        return cls(build_pipeline(config), **kwargs)

    def add_listener(self, callback: Callable[[StreamUpdate], None]) -> None:
        self._listeners.append(callback)

    @property
    def status(self) -> StreamStatus:
        return self.session.status

    @property
    def is_streaming(self) -> bool:
        return self.session.is_streaming

    @property
    def display_text(self) -> str:
        return self.session.text_part.text

    @property
    def payloads(self) -> list[StructuredPayload]:
        return list(self.session.payloads)

    def parts(self) -> list[dict]:
        """Current message parts: the text part first, then payloads."""
        return [self.session.text_part.to_part()] + [p.to_part() for p in self.session.payloads]

    def assistant_parts(self) -> list[dict]:
        """Parts worth storing once the response is done."""
        parts: list[dict] = []
        if self.session.text_part.text:
            parts.append({"type": "text", "text": self.session.text_part.text})
        parts.extend(p.to_part() for p in self.session.payloads)
        return parts

    # -- state transitions -------------------------------------------------

    def begin(self) -> bool:
        """Start a new response. Returns False if one is already streaming."""
        if self.session.is_streaming:
            logger.warning("Ignoring send while a response is still streaming")
            return False
        self.session.reset()
        self._framer.reset()
        self.session.status = StreamStatus.STREAMING
        logger.info("Response stream started")
        return True

    def feed(self, chunk: Chunk) -> StreamUpdate | None:
        """Process a raw chunk; returns the published update, if any."""
        if not self.session.is_streaming:
            logger.warning("Dropping chunk received in state %s", self.session.status.value)
            return None
        changed = False
        for content in self._framer.feed(chunk):
            changed = self._append(content) or changed
        if not changed:
            return None
        return self._publish(final=False)

    def append_content(self, content: str) -> StreamUpdate | None:
        """Process one already-framed record content."""
        if not self.session.is_streaming:
            logger.warning("Dropping content received in state %s", self.session.status.value)
            return None
        if not self._append(content):
            return None
        return self._publish(final=False)

    def finish(self) -> StreamUpdate | None:
        """End of stream: final parse, fallback text, status ``done``."""
        if not self.session.is_streaming:
            return None
        for content in self._framer.finish():
            self._append(content)
        update = self._publish(final=True, status=StreamStatus.DONE)
        if not self.session.text_part.text and not self.session.payloads:
            self.session.text_part.text = self.fallback_message
            update.display_text = self.fallback_message
        self.session.text_part.state = TextState.DONE
        self.session.status = StreamStatus.DONE
        logger.info(
            "Response stream done: %d chars, %d payloads",
            len(self.session.text_part.text),
            len(self.session.payloads),
        )
        self._notify(update)
        return update

    def fail(self, error: BaseException | str) -> StreamUpdate:
        """Terminal failure: the text part shows the error description."""
        message = str(error) or DEFAULT_ERROR_MESSAGE
        self.session.error = message
        self.session.text_part.text = message
        self.session.text_part.state = TextState.DONE
        self.session.status = StreamStatus.ERROR
        update = StreamUpdate(display_text=message, status=StreamStatus.ERROR)
        self._notify(update)
        return update

    def cancel(self) -> None:
        """Stop without error; what was shown so far stays, marked complete."""
        if self.session.status not in (StreamStatus.STREAMING, StreamStatus.IDLE):
            return
        self.session.text_part.state = TextState.DONE
        self.session.status = StreamStatus.IDLE
        logger.info("Response stream cancelled")

    def stop(self) -> None:
        """Abort the transport read started by :meth:`run`."""
        self._stop_requested = True
        if self._read_task is not None and not self._read_task.done():
            self._read_task.cancel()
        else:
            self.cancel()

    # -- transport loop ----------------------------------------------------

    async def run(self, source: ChunkSource) -> StreamStatus:
        """Read *source* to the end, updating the session as chunks arrive.

        Transport failures end in ``error``; :meth:`stop` ends in ``idle``.
        Cancellation from outside is propagated after the text part has
        been marked complete.
        """
        if not self.begin():
            return self.session.status
        self._stop_requested = False
        self._read_task = asyncio.ensure_future(self._pump(source))
        try:
            await self._read_task
        except asyncio.CancelledError:
            self.cancel()
            if not self._stop_requested:
                raise
        except StreamError as e:
            logger.error("Stream failed: %s", e)
            self.fail(e)
        except Exception as e:
            logger.exception("Transport error while streaming")
            self.fail(e)
        else:
            self.finish()
        finally:
            self._read_task = None
            await source.aclose()
        return self.session.status

    async def _pump(self, source: ChunkSource) -> None:
        async for chunk in source.chunks():
            self.feed(chunk)

    # -- internals ---------------------------------------------------------

    def _append(self, content: str) -> bool:
        """Add record content to the buffer; False if it was skipped."""
        if self.content_policy == RECEIVED_CONTENT:
            self._mark_content()
        if self.skip_wrapper_tokens and is_wrapper_token(content):
            return False
        if self.content_policy == FIRST_CONTENT and content.strip():
            self._mark_content()
        self.session.raw_buffer += content
        return True

    def _mark_content(self) -> None:
        if not self.session.has_content:
            self.session.has_content = True
            self.session.text_part.state = TextState.STREAMING

    def _publish(self, final: bool, status: StreamStatus = StreamStatus.STREAMING) -> StreamUpdate:
        result = self.pipeline.parse(self.session.raw_buffer, final=final)
        new_payloads = self.session.add_payloads(result.payloads)
        self.session.text_part.text = result.display_text
        update = StreamUpdate(
            display_text=result.display_text,
            new_payloads=new_payloads,
            is_awaiting_more_input=result.is_awaiting_more_input,
            status=status,
        )
        if not final:
            self._notify(update)
        return update

    def _notify(self, update: StreamUpdate) -> None:
        for listener in self._listeners:
            listener(update)
