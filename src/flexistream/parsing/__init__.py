"""Pure parsing of streamed assistant text (no I/O)."""

from __future__ import annotations

from flexistream.parsing.base import Stage, StageOutput
from flexistream.parsing.bbcode import bbcode_to_markdown
from flexistream.parsing.embedded import JsonSpanScanner, extract_embedded_json, find_balanced_end
from flexistream.parsing.pipeline import (
    ParseResult,
    RichContentPipeline,
    build_pipeline,
    parse_rich_content,
)
from flexistream.parsing.router import unwrap_router_envelope
from flexistream.parsing.tags import (
    extract_artifacts,
    extract_rich_tags,
    extract_tools,
    guard_partial_tag,
)

__all__ = [
    "Stage",
    "StageOutput",
    "bbcode_to_markdown",
    "JsonSpanScanner",
    "extract_embedded_json",
    "find_balanced_end",
    "ParseResult",
    "RichContentPipeline",
    "build_pipeline",
    "parse_rich_content",
    "unwrap_router_envelope",
    "extract_artifacts",
    "extract_rich_tags",
    "extract_tools",
    "guard_partial_tag",
]
