"""Extraction of ``[artifact ...]`` and ``[tool:Name]`` blocks.

Complete blocks are removed from the text and turned into payloads. A block
that has been opened but not yet closed at the end of the text is hidden by
the partial-tag guard until the rest of it arrives.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from flexistream.parsing.base import StageOutput, source_position
from flexistream.payloads import (
    ArtifactPayload,
    StructuredPayload,
    ToolPayload,
    artifact_identity,
    make_tool_payload,
    parse_payload_data,
    resolve_tool_type,
    tool_identity,
)

ARTIFACT_PATTERN = re.compile(
    r"\[artifact([^\]]*)\]([\s\S]*?)\[/artifact\]", re.IGNORECASE
)
TOOL_PATTERN = re.compile(r"\[tool:(\w+(?:-\w+)*)\]([\s\S]*?)\[/tool\]", re.IGNORECASE)
ATTRIBUTE_PATTERN = re.compile(r'(\w[\w-]*)\s*=\s*"([^"]*)"')

# Both grammars in one alternation so a single scan yields text order.
RICH_TAG_PATTERN = re.compile(
    r"(?P<artifact>\[artifact(?P<attrs>[^\]]*)\](?P<artifact_body>[\s\S]*?)\[/artifact\])"
    r"|(?P<tool>\[tool:(?P<name>\w+(?:-\w+)*)\](?P<tool_body>[\s\S]*?)\[/tool\])",
    re.IGNORECASE,
)

# An opened tag running to the end of the text without its closing tag.
PARTIAL_TOOL_PATTERN = re.compile(r"\[tool:[\w-]*(?:\][\s\S]*)?$", re.IGNORECASE)
PARTIAL_ARTIFACT_PATTERN = re.compile(
    r"\[artifact(?:[\s=\"][^\]]*)?(?:\][\s\S]*)?$", re.IGNORECASE
)
# A prefix of an opener, only held back while streaming.
OPENER_PREFIX_PATTERN = re.compile(
    r"\[(?:t(?:o(?:o(?:l(?::)?)?)?)?|a(?:r(?:t(?:i(?:f(?:a(?:c(?:t)?)?)?)?)?)?)?)?$",
    re.IGNORECASE,
)
CLOSING_TOOL = re.compile(r"\[/tool\]", re.IGNORECASE)
CLOSING_ARTIFACT = re.compile(r"\[/artifact\]", re.IGNORECASE)


@dataclass
class ExtractedTags:
    cleaned_text: str
    payloads: list[StructuredPayload] = field(default_factory=list)
    # Source span of each removed tag, parallel to payloads.
    spans: list[tuple[int, int]] = field(default_factory=list)
    # Whitespace trimmed from the front of the text once the tags were removed.
    leading: int = 0

    @property
    def artifacts(self) -> list[ArtifactPayload]:
        return [p for p in self.payloads if isinstance(p, ArtifactPayload)]

    @property
    def tools(self) -> list[ToolPayload]:
        return [p for p in self.payloads if isinstance(p, ToolPayload)]

    def to_source(self, pos: int) -> int:
        """Offset in the source text of offset *pos* in ``cleaned_text``."""
        return source_position(pos + self.leading, self.spans)


def parse_attributes(raw: str | None) -> dict[str, str]:
    """Parse ``key="value"`` pairs; keys are lower-cased, empty values skipped."""
    attributes: dict[str, str] = {}
    normalized = (raw or "").strip()
    for key, value in ATTRIBUTE_PATTERN.findall(normalized):
        if key and value:
            attributes[key.lower()] = value.strip()
    return attributes


def build_artifact(attrs: str, body: str) -> ArtifactPayload:
    attributes = parse_attributes(attrs)
    artifact_type = attributes.get("type", "custom").lower()
    title = attributes.get("title")
    payload = (body or "").strip()
    return ArtifactPayload(
        artifact_type=artifact_type,
        data=parse_payload_data(payload),
        identity=artifact_identity(artifact_type, payload, title),
        title=title,
        description=attributes.get("description"),
    )


def build_tool(name: str, body: str) -> ToolPayload:
    payload = (body or "").strip()
    return make_tool_payload(
        resolve_tool_type(name),
        parse_payload_data(payload),
        tool_identity(name, payload),
    )


def extract_rich_tags(source: str) -> ExtractedTags:
    """Remove every complete artifact and tool block from *source*.

    Payloads are returned in the order their tags appear in the text.
    """
    if not source:
        return ExtractedTags(cleaned_text="")

    payloads: list[StructuredPayload] = []
    spans: list[tuple[int, int]] = []

    def replace(m: re.Match) -> str:
        spans.append(m.span())
        if m.group("artifact") is not None:
            payloads.append(build_artifact(m.group("attrs"), m.group("artifact_body")))
        else:
            payloads.append(build_tool(m.group("name"), m.group("tool_body")))
        return ""

    cleaned = RICH_TAG_PATTERN.sub(replace, source)
    return ExtractedTags(
        cleaned_text=cleaned.strip(),
        payloads=payloads,
        spans=spans,
        leading=len(cleaned) - len(cleaned.lstrip()),
    )


def extract_artifacts(source: str) -> ExtractedTags:
    """Artifact pass only; tool tags are left in the text."""
    if not source:
        return ExtractedTags(cleaned_text="")
    payloads: list[StructuredPayload] = []

    def replace(m: re.Match) -> str:
        payloads.append(build_artifact(m.group(1), m.group(2)))
        return ""

    cleaned = ARTIFACT_PATTERN.sub(replace, source)
    return ExtractedTags(cleaned_text=cleaned.strip(), payloads=payloads)


def extract_tools(source: str) -> ExtractedTags:
    """Tool pass only; artifact tags are left in the text."""
    if not source:
        return ExtractedTags(cleaned_text="")
    payloads: list[StructuredPayload] = []

    def replace(m: re.Match) -> str:
        payloads.append(build_tool(m.group(1), m.group(2)))
        return ""

    cleaned = TOOL_PATTERN.sub(replace, source)
    return ExtractedTags(cleaned_text=cleaned.strip(), payloads=payloads)


def _find_partial(text: str) -> int | None:
    """Start offset of an unclosed tool or artifact block at the end of *text*."""
    starts = []
    for pattern, closing in (
        (PARTIAL_TOOL_PATTERN, CLOSING_TOOL),
        (PARTIAL_ARTIFACT_PATTERN, CLOSING_ARTIFACT),
    ):
        m = pattern.search(text)
        if m and not closing.search(text, m.start()):
            starts.append(m.start())
    return min(starts) if starts else None


def guard_partial_tag(text: str, final: bool = False) -> tuple[str, bool]:
    """Strip an in-progress tag from the end of *text*.

    Returns the display text and whether more input is expected. On the
    final pass a dangling tag is still discarded, but nothing is awaited.
    """
    start = _find_partial(text)
    if start is not None:
        return text[:start].rstrip(), not final
    if not final:
        m = OPENER_PREFIX_PATTERN.search(text)
        if m:
            return text[: m.start()].rstrip(), True
    return text, False


def tag_stage(text: str, final: bool = False) -> StageOutput:
    extracted = extract_rich_tags(text)
    cleaned, awaiting = guard_partial_tag(extracted.cleaned_text, final)
    return StageOutput(
        text=cleaned,
        payloads=extracted.payloads,
        awaiting=awaiting,
        offsets=[start for start, _ in extracted.spans],
        to_input=extracted.to_source,
    )
