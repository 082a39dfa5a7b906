"""Structured payloads extracted from assistant text.

A payload is either an *artifact* (``[artifact ...]`` tags) or a *tool*
invocation result (``[tool:Name]`` tags and bare embedded JSON). Each payload
carries an ``identity`` that is a pure function of its content, so re-parsing
the same buffer always yields the same identity and the stream coordinator
can deduplicate across chunks.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Union

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"

# Tool names as they appear in tags, mapped to UI part types.
TOOL_TYPE_MAP = {
    "carousel": "tool-carousel",
    "property-card": "tool-property-card",
    "image-display": "tool-image-display",
    "propertyCard": "tool-property-card",
    "imageDisplay": "tool-image-display",
}

_TOOL_ALIASES = {name.lower(): part_type for name, part_type in TOOL_TYPE_MAP.items()}


def _fold_hash(text: str) -> int:
    """32-bit shift-subtract hash over UTF-16 code units."""
    h = 0
    units = text.encode("utf-16-le")
    for i in range(0, len(units), 2):
        h = (h << 5) - h + (units[i] | (units[i + 1] << 8))
        h &= 0xFFFFFFFF
    if h & 0x80000000:
        h -= 0x100000000
    return abs(h)


def _base36(n: int) -> str:
    if n == 0:
        return "0"
    digits = []
    while n:
        n, rem = divmod(n, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def artifact_identity(artifact_type: str, payload: str, title: str | None = None) -> str:
    """Identity of an artifact from its type, raw payload text and title."""
    return "artifact-" + _base36(_fold_hash(f"{artifact_type}:{payload}:{title or ''}"))


def tool_identity(name: str, payload: str) -> str:
    """Identity of a tool invocation from its name and raw payload text."""
    return "tool-" + _base36(_fold_hash(f"{name}:{payload}"))


def resolve_tool_type(name: str) -> str:
    """Map a tag tool name to its part type, e.g. ``carousel`` -> ``tool-carousel``."""
    normalized = name.lower()
    return _TOOL_ALIASES.get(normalized, f"tool-{normalized}")


def parse_payload_data(payload: str) -> dict[str, Any]:
    """Parse a trimmed tag body into a mapping.

    Empty bodies give ``{}``, JSON objects are returned as-is, other JSON
    values are wrapped as ``{"value": ...}`` and unparseable text becomes
    ``{"raw": payload}``.
    """
    if not payload:
        return {}
    try:
        parsed = json.loads(payload)
    except ValueError:
        return {"raw": payload}
    if isinstance(parsed, dict):
        return parsed
    return {"value": parsed}


@dataclass
class ArtifactPayload:
    """A typed widget payload embedded with ``[artifact ...]``."""

    artifact_type: str
    data: dict[str, Any]
    identity: str
    title: str | None = None
    description: str | None = None

    @property
    def kind(self) -> str:
        return "artifact"

    def to_part(self) -> dict[str, Any]:
        return {
            "type": "artifact",
            "artifactType": self.artifact_type,
            "title": self.title,
            "description": self.description,
            "data": self.data,
            "id": self.identity,
            "state": "done",
        }


@dataclass
class ToolPayload:
    """The result of a named tool, ready to render as a tool part."""

    tool_name: str
    output: dict[str, Any]
    identity: str
    input: dict[str, Any] = field(default_factory=dict)
    state: str = "output-available"

    @property
    def kind(self) -> str:
        return "tool"

    def to_part(self) -> dict[str, Any]:
        return {
            "type": self.tool_name,
            "state": self.state,
            "output": self.output,
            "input": self.input,
            "toolCallId": self.identity,
        }


def make_tool_payload(tool_name: str, data: dict[str, Any], identity: str) -> ToolPayload:
    """Build a tool payload whose input and output share the parsed mapping."""
    return ToolPayload(tool_name=tool_name, output=data, input=data, identity=identity)


StructuredPayload = Union[ArtifactPayload, ToolPayload]
