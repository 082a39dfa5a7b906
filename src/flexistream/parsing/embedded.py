"""Detection of carousel and property-card JSON inlined in plain text.

Upstream agents sometimes write tool output as a bare JSON object in the
middle of a sentence instead of wrapping it in ``[tool:...]``. Candidates are
found with a start pattern and then brace-balanced with a scanner, since
nested objects and braces inside strings defeat a plain regex.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from flexistream.parsing.base import StageOutput, source_position
from flexistream.payloads import ToolPayload, make_tool_payload, tool_identity

logger = logging.getLogger(__name__)

CAROUSEL_START_PATTERN = re.compile(r'\{"title"\s*:\s*"[^"]*"\s*,\s*"items"\s*:\s*\[')
PROPERTY_CARD_START_PATTERN = re.compile(r'\{\s*"id"\s*:\s*"[^"]*"\s*,\s*"title"\s*:\s*"')

_CAROUSEL_ITEM_KEYS = ("title", "image", "price")
_PROPERTY_CARD_KEYS = ("image", "price", "description")


class JsonSpanScanner:
    """Tracks brace depth over JSON text, ignoring braces inside strings.

    Feed characters one at a time with :meth:`track`; :attr:`closed` becomes
    true on the ``}`` that balances the first ``{``.
    """

    def __init__(self) -> None:
        self.depth = 0
        self.closed = False
        self._in_string = False
        self._escape_next = False

    @property
    def in_string(self) -> bool:
        return self._in_string

    def track(self, ch: str) -> None:
        if self._escape_next:
            self._escape_next = False
            return
        if ch == "\\":
            self._escape_next = True
            return
        if ch == '"':
            self._in_string = not self._in_string
            return
        if self._in_string:
            return
        if ch == "{":
            self.depth += 1
        elif ch == "}":
            self.depth -= 1
            if self.depth == 0:
                self.closed = True


def find_balanced_end(text: str, start: int) -> int | None:
    """Offset just past the ``}`` closing the object that opens at *start*.

    Returns None when the object is not closed before the end of *text*.
    """
    scanner = JsonSpanScanner()
    for i in range(start, len(text)):
        scanner.track(text[i])
        if scanner.closed:
            return i + 1
    return None


def _is_carousel(parsed: Any) -> bool:
    if not isinstance(parsed, dict):
        return False
    items = parsed.get("items")
    if not isinstance(items, list) or not items:
        return False
    first = items[0]
    return isinstance(first, dict) and any(first.get(key) for key in _CAROUSEL_ITEM_KEYS)


def _is_property_card(parsed: Any) -> bool:
    if not isinstance(parsed, dict) or "items" in parsed:
        return False
    return bool(parsed.get("title")) and any(parsed.get(key) for key in _PROPERTY_CARD_KEYS)


def _sniff(
    text: str,
    start_pattern: re.Pattern,
    accept,
    name: str,
    tool_type: str,
) -> tuple[str, list[tuple[int, ToolPayload]], list[tuple[int, int]], int | None]:
    """Remove accepted JSON objects from *text*.

    Returns the cleaned text, ``(start, payload)`` pairs in text order, the
    removed spans and the offset in the cleaned text of the leftmost candidate
    that is still unbalanced. Starts and spans are offsets in *text*.
    """
    starts = [m.start() for m in start_pattern.finditer(text)]
    found: list[tuple[int, ToolPayload]] = []
    spans: list[tuple[int, int]] = []
    # An unbalanced candidate runs to the end of the text, so its distance
    # from the end survives removals made to its left.
    unclosed_tail: int | None = None
    cleaned = text

    # Reverse order keeps earlier offsets valid as spans are removed.
    for start in reversed(starts):
        end = find_balanced_end(cleaned, start)
        if end is None:
            unclosed_tail = len(cleaned) - start
            continue
        span = cleaned[start:end]
        try:
            parsed = json.loads(span)
        except ValueError:
            logger.debug("Skipping unparseable %s candidate at %d", name, start)
            continue
        if not accept(parsed):
            continue
        found.append((start, make_tool_payload(tool_type, parsed, tool_identity(name, span))))
        spans.append((start, end))
        cleaned = cleaned[:start] + cleaned[end:]

    found.reverse()
    spans.reverse()
    unclosed = None if unclosed_tail is None else len(cleaned) - unclosed_tail
    return cleaned, found, spans, unclosed


@dataclass
class _Extraction:
    text: str
    payloads: list[ToolPayload]
    # Where each payload started in the input text.
    offsets: list[int]
    carousel_spans: list[tuple[int, int]]
    card_spans: list[tuple[int, int]]
    # Offset in ``text`` of an unbalanced candidate at the tail.
    pending: int | None

    def to_source(self, pos: int) -> int:
        return source_position(source_position(pos, self.card_spans), self.carousel_spans)


def _extract(text: str) -> _Extraction:
    cleaned, carousels, carousel_spans, open_carousel = _sniff(
        text, CAROUSEL_START_PATTERN, _is_carousel, "carousel", "tool-carousel"
    )
    # Items of a carousel that is still streaming are not property cards.
    head, tail = cleaned, ""
    if open_carousel is not None:
        head, tail = cleaned[:open_carousel], cleaned[open_carousel:]
    head, cards, card_spans, open_card = _sniff(
        head, PROPERTY_CARD_START_PATTERN, _is_property_card, "property-card", "tool-property-card"
    )
    pending = open_card if open_card is not None else (len(head) if tail else None)
    offsets = [start for start, _ in carousels]
    offsets += [source_position(start, carousel_spans) for start, _ in cards]
    return _Extraction(
        text=head + tail,
        payloads=[p for _, p in carousels] + [p for _, p in cards],
        offsets=offsets,
        carousel_spans=carousel_spans,
        card_spans=card_spans,
        pending=pending,
    )


def extract_embedded_json(text: str) -> tuple[str, list[ToolPayload]]:
    """Extract bare carousel and property-card objects from *text*.

    Returns the residual text and the tool payloads, carousels first.
    Candidates that fail to balance or parse stay in the text.
    """
    extraction = _extract(text)
    return extraction.text.strip(), extraction.payloads


class EmbeddedJsonStage:
    """Pipeline stage around :func:`extract_embedded_json`.

    With ``hold_partial`` set, an unbalanced candidate at the end of the text
    is hidden while streaming instead of flashing raw JSON.
    """

    def __init__(self, hold_partial: bool = True) -> None:
        self.hold_partial = hold_partial

    def __call__(self, text: str, final: bool = False) -> StageOutput:
        extraction = _extract(text)
        cleaned = extraction.text
        awaiting = False
        if self.hold_partial and not final and extraction.pending is not None:
            cleaned = cleaned[: extraction.pending]
            awaiting = True
        leading = len(cleaned) - len(cleaned.lstrip())
        return StageOutput(
            text=cleaned.strip(),
            payloads=list(extraction.payloads),
            awaiting=awaiting,
            offsets=extraction.offsets,
            to_input=lambda pos: extraction.to_source(pos + leading),
        )
