"""Unwrapping of the ``{"route": ..., "response": "..."}`` envelope.

Some upstream agents wrap their answer in a router object. The envelope may
arrive complete or still be in the middle of being streamed, in which case
only the part of ``response`` received so far is shown.
"""

from __future__ import annotations

import json
import logging
import re

from flexistream.parsing.base import StageOutput

logger = logging.getLogger(__name__)

ROUTER_JSON_PATTERN = re.compile(
    r'^\s*\{\s*"route"\s*:\s*"[^"]*"\s*,\s*"response"\s*:\s*"([^"\\]*(?:\\.[^"\\]*)*)"\s*\}'
)
RESPONSE_MARKER_PATTERN = re.compile(r'"response"\s*:\s*')

# Leftover closers some upstreams repeat after the envelope, e.g. `{...}"}`
ENVELOPE_RESIDUE_PATTERN = re.compile(r'^(?:\s*"?\s*\})+')

UNICODE_ESCAPE_PATTERN = re.compile(r"\\u([0-9a-fA-F]{4})")
# A \uXXXX escape (or a lone backslash) cut off at the end of the text.
PARTIAL_UNICODE_ESCAPE_PATTERN = re.compile(r"\\(?:u[0-9a-fA-F]{0,3})?$")

_ESCAPES = {
    '"': '"',
    "n": "\n",
    "\\": "\\",
    "t": "\t",
    "r": "\r",
    "/": "/",
}


def _unescape(value: str) -> str:
    decoded, _ = _scan_partial_string(value + '"', 0)
    return decoded


def _scan_partial_string(text: str, start: int) -> tuple[str, bool]:
    """Read a JSON string literal starting after its opening quote.

    Returns the decoded characters and whether the closing quote was seen.
    An escape that has not fully arrived (a lone backslash, ``\\u`` with fewer
    than four hex digits, or a high surrogate still waiting for its low half)
    is dropped until the rest of it arrives.
    """
    chars: list[str] = []
    i = start
    while i < len(text):
        ch = text[i]
        if ch == '"':
            return "".join(chars), True
        if ch != "\\":
            chars.append(ch)
            i += 1
            continue
        if i + 1 == len(text):
            break
        escaped = text[i + 1]
        if escaped != "u":
            chars.append(_ESCAPES.get(escaped, escaped))
            i += 2
            continue
        decoded, end = _read_unicode_escape(text, i)
        if end is None:
            break
        chars.append(decoded)
        i = end
    return "".join(chars), False


def _read_unicode_escape(text: str, i: int) -> tuple[str, int | None]:
    """Decode the ``\\uXXXX`` escape at *i*, joining surrogate pairs.

    Returns the decoded text and the offset after it, or an offset of None
    when the escape is cut off by the end of *text*.
    """
    m = UNICODE_ESCAPE_PATTERN.match(text, i)
    if m is None:
        if PARTIAL_UNICODE_ESCAPE_PATTERN.match(text, i):
            return "", None
        # Not a valid escape; keep the letter like any unknown escape.
        return "u", i + 2
    code = int(m.group(1), 16)
    if 0xDC00 <= code <= 0xDFFF:
        return "\ufffd", m.end()
    if not 0xD800 <= code <= 0xDBFF:
        return chr(code), m.end()
    low = UNICODE_ESCAPE_PATTERN.match(text, m.end())
    if low is not None and 0xDC00 <= int(low.group(1), 16) <= 0xDFFF:
        pair = 0x10000 + ((code - 0xD800) << 10) + (int(low.group(1), 16) - 0xDC00)
        return chr(pair), low.end()
    if m.end() == len(text) or PARTIAL_UNICODE_ESCAPE_PATTERN.match(text, m.end()):
        return "", None
    return "\ufffd", m.end()


def _unwrap(content: str) -> tuple[str, bool]:
    """Return the displayable content and whether the envelope is still open."""
    trimmed = content.strip()
    if not trimmed.startswith("{") or '"route"' not in trimmed:
        return content, False

    match = ROUTER_JSON_PATTERN.match(trimmed)
    if match:
        response = _unescape(match.group(1))
        after = ENVELOPE_RESIDUE_PATTERN.sub("", trimmed[match.end():], count=1)
        return (response + after).strip(), False

    marker = RESPONSE_MARKER_PATTERN.search(trimmed)
    if marker is None:
        # Route field still being written.
        return "", True

    last_brace = trimmed.rfind("}")
    if last_brace > marker.end():
        try:
            envelope = json.loads(trimmed[: last_brace + 1])
        except ValueError:
            envelope = None
        if isinstance(envelope, dict) and isinstance(envelope.get("response"), str):
            after = ENVELOPE_RESIDUE_PATTERN.sub("", trimmed[last_brace + 1:], count=1)
            return (envelope["response"] + after).strip(), False

    value_start = marker.end()
    if value_start >= len(trimmed):
        return "", True
    if trimmed[value_start] != '"':
        logger.debug("Router envelope has a non-string response, leaving text as-is")
        return content, False

    value, _ = _scan_partial_string(trimmed, value_start + 1)
    return value, True


def unwrap_router_envelope(content: str) -> str:
    """Return only the ``response`` of a router envelope, or *content* unchanged.

    An empty string means there is nothing to show yet (the envelope has
    started but no response text has arrived).
    """
    text, _ = _unwrap(content)
    return text


def router_stage(text: str, final: bool = False) -> StageOutput:
    unwrapped, awaiting = _unwrap(text)
    return StageOutput(text=unwrapped, awaiting=awaiting and not final)
