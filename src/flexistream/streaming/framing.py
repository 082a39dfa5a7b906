"""Line-delimited JSON framing of the upstream byte stream.

Chunk boundaries fall anywhere: in the middle of a line, of a JSON object or
of a multi-byte UTF-8 sequence. The trailing partial line is kept until the
next chunk (or :meth:`LineBuffer.finish`) completes it.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Union

logger = logging.getLogger(__name__)

# Wrapper tokens some upstreams emit as separate items around the response.
STREAM_SKIP_TOKENS = frozenset(
    {
        "[",
        "]",
        "bbcode",
        "[bbcode]",
        "bbcode]",
        "/bbcode",
        "[/bbcode]",
    }
)


def parse_record(line: str) -> str | None:
    """Return the ``content`` of an ``item`` record, or None to skip the line."""
    line = line.strip()
    if not line:
        return None
    try:
        record = json.loads(line)
    except ValueError:
        logger.debug("Skipping malformed stream line: %r", line[:200])
        return None
    if not isinstance(record, dict) or record.get("type") != "item":
        return None
    content = record.get("content")
    if not isinstance(content, str) or not content:
        return None
    return content


def is_wrapper_token(content: str) -> bool:
    """True for framing noise such as ``[bbcode]`` or a lone bracket."""
    return content.strip() in STREAM_SKIP_TOKENS


class LineBuffer:
    """Splits a byte or text stream into record contents.

    Usage:
        framer = LineBuffer()
        for chunk in chunks:
            for content in framer.feed(chunk):
                handle(content)
        for content in framer.finish():
            handle(content)
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """The partial line waiting for its newline."""
        return self._buffer

    def feed(self, chunk: Union[bytes, str]) -> list[str]:
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        contents = []
        for line in lines:
            content = parse_record(line)
            if content is not None:
                contents.append(content)
        return contents

    def finish(self) -> list[str]:
        """Flush the decoder and parse whatever is left as the last line."""
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        content = parse_record(tail)
        return [content] if content is not None else []

    def reset(self) -> None:
        self._decoder.reset()
        self._buffer = ""


def encode_records(contents: list[str]) -> bytes:
    """Encode contents as ``item`` records, one JSON object per line."""
    lines = [
        json.dumps({"type": "item", "content": content}, ensure_ascii=False) for content in contents
    ]
    return ("\n".join(lines) + "\n").encode("utf-8") if lines else b""
