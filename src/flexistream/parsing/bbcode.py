"""BBCode to Markdown conversion for assistant prose.

Only the cleaned display text goes through here; payload contents never do.
"""

from __future__ import annotations

import re

from flexistream.parsing.base import StageOutput

_FLAGS = re.IGNORECASE | re.DOTALL

# Tags whose opener may lose its closing bracket in transit, e.g. "[bHi[/b]".
LOOSE_TAG_NAMES = ("b", "i", "u", "s", "code", "quote", "center", "left", "right")
LOOSE_OPEN_PATTERN = re.compile(
    r"\[((?i:" + "|".join(LOOSE_TAG_NAMES) + r"))(?=[^\]\w=/])|\[((?i:b|i|u|s))(?=[A-Z0-9])"
)

BR_PATTERN = re.compile(r"\[br\s*/?\]", re.IGNORECASE)
CODE_PATTERN = re.compile(r"\[(code|bbcode)\](.*?)\[/\1\]", _FLAGS)
ALIGN_PATTERN = re.compile(r"\[/?(?:center|left|right)\]", re.IGNORECASE)
URL_WITH_HREF_PATTERN = re.compile(r"\[url=([^\]]+)\](.*?)\[/url\]", _FLAGS)
URL_PATTERN = re.compile(r"\[url\](.*?)\[/url\]", _FLAGS)
IMG_PATTERN = re.compile(r"\[img\](.*?)\[/img\]", _FLAGS)
QUOTE_WITH_CITE_PATTERN = re.compile(r"\[quote=([^\]]+)\](.*?)\[/quote\]", _FLAGS)
QUOTE_PATTERN = re.compile(r"\[quote\](.*?)\[/quote\]", _FLAGS)
LIST_PATTERN = re.compile(r"\[list(?:=([^\]]*))?\](.*?)\[/list\]", _FLAGS)
STYLE_TAG_PATTERN = re.compile(r"\[/?(?:color|size|font|span)(?:[=\s][^\]]*)?\]", re.IGNORECASE)
EXCESS_NEWLINES_PATTERN = re.compile(r"\n{3,}")

_CODE_PLACEHOLDER = "\x00code{}\x00"
CODE_PLACEHOLDER_PATTERN = re.compile(r"\x00code(\d+)\x00")

INLINE_STYLES = (
    ("b", "**", "**"),
    ("i", "*", "*"),
    ("u", "<u>", "</u>"),
    ("s", "~~", "~~"),
)
_INLINE_PATTERNS = [
    (re.compile(rf"\[{tag}\](.*?)\[/{tag}\]", _FLAGS), before, after)
    for tag, before, after in INLINE_STYLES
]

# Nested quotes are unwrapped from the inside out, up to this depth.
MAX_QUOTE_DEPTH = 5


def normalize_loose_tags(text: str) -> str:
    """Insert the missing ``]`` of openers like ``[b`` that have a matching close."""

    def repair(m: re.Match) -> str:
        name = m.group(1) or m.group(2)
        if re.search(rf"\[/{name}\]", text[m.end():], re.IGNORECASE):
            return f"[{name}]"
        return m.group(0)

    return LOOSE_OPEN_PATTERN.sub(repair, text)


def _quote_lines(body: str) -> str:
    return "\n".join(f"> {line}".rstrip() for line in body.strip().split("\n"))


def _convert_quote(m: re.Match) -> str:
    return "\n" + _quote_lines(m.group(1)) + "\n"


def _convert_cited_quote(m: re.Match) -> str:
    cite = m.group(1).strip().strip('"')
    return f"\n> **{cite}:**\n" + _quote_lines(m.group(2)) + "\n"


def _convert_list(m: re.Match) -> str:
    ordered = (m.group(1) or "").strip() == "1"
    items = [item.strip() for item in m.group(2).split("[*]")]
    items = [item for item in items if item]
    if ordered:
        lines = [f"{n}. {item}" for n, item in enumerate(items, 1)]
    else:
        lines = [f"- {item}" for item in items]
    return "\n" + "\n".join(lines) + "\n"


def bbcode_to_markdown(text: str) -> str:
    """Convert the BBCode dialect used by upstream agents to Markdown.

    Code blocks are swapped for placeholders as soon as they are fenced, so
    none of the later substitutions touch their contents.
    """
    if not text:
        return ""

    code_blocks: list[str] = []

    def stash_code(m: re.Match) -> str:
        code_blocks.append(f"```\n{m.group(2).strip()}\n```")
        return f"\n{_CODE_PLACEHOLDER.format(len(code_blocks) - 1)}\n"

    result = normalize_loose_tags(text)
    result = CODE_PATTERN.sub(stash_code, result)
    result = BR_PATTERN.sub("\n", result)
    for pattern, before, after in _INLINE_PATTERNS:
        result = pattern.sub(lambda m, b=before, a=after: f"{b}{m.group(1)}{a}", result)
    result = ALIGN_PATTERN.sub("", result)
    result = URL_WITH_HREF_PATTERN.sub(lambda m: f"[{m.group(2)}]({m.group(1).strip()})", result)
    result = URL_PATTERN.sub(lambda m: f"<{m.group(1).strip()}>", result)
    result = IMG_PATTERN.sub(lambda m: f"![]({m.group(1).strip()})", result)

    for _ in range(MAX_QUOTE_DEPTH):
        converted = QUOTE_WITH_CITE_PATTERN.sub(_convert_cited_quote, result)
        converted = QUOTE_PATTERN.sub(_convert_quote, converted)
        if converted == result:
            break
        result = converted

    result = LIST_PATTERN.sub(_convert_list, result)
    result = STYLE_TAG_PATTERN.sub("", result)
    result = EXCESS_NEWLINES_PATTERN.sub("\n\n", result)
    result = CODE_PLACEHOLDER_PATTERN.sub(lambda m: code_blocks[int(m.group(1))], result)
    return result.strip()


def bbcode_stage(text: str, final: bool = False) -> StageOutput:
    return StageOutput(text=bbcode_to_markdown(text))
