"""The rich-content pipeline: an ordered list of pure text stages.

Each stage takes the text produced by the previous one and may pull payloads
out of it or flag that the text ends in something incomplete. The whole
pipeline is re-run over the entire buffer on every chunk, so every stage must
be cheap and idempotent.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Sequence

from flexistream.parsing.base import Stage
from flexistream.parsing.bbcode import bbcode_stage
from flexistream.parsing.embedded import EmbeddedJsonStage
from flexistream.parsing.router import router_stage
from flexistream.parsing.tags import tag_stage
from flexistream.payloads import ArtifactPayload, StructuredPayload, ToolPayload

if TYPE_CHECKING:
    from flexistream.config import StreamConfig


@dataclass
class ParseResult:
    """Best-effort view of a buffer: display text plus structured payloads."""

    display_text: str
    payloads: list[StructuredPayload] = field(default_factory=list)
    is_awaiting_more_input: bool = False

    @property
    def artifacts(self) -> list[ArtifactPayload]:
        return [p for p in self.payloads if isinstance(p, ArtifactPayload)]

    @property
    def tools(self) -> list[ToolPayload]:
        return [p for p in self.payloads if isinstance(p, ToolPayload)]

    @property
    def identities(self) -> list[str]:
        return [p.identity for p in self.payloads]


class RichContentPipeline:
    """Runs stages in order over a text buffer.

    Usage:
        pipeline = RichContentPipeline.default()
        result = pipeline.parse(buffer)
        final = pipeline.parse(buffer, final=True)
    """

    def __init__(self, stages: Sequence[Stage]) -> None:
        self.stages = list(stages)

    @classmethod
    def default(
        cls,
        router_unwrap: bool = True,
        bbcode: bool = True,
        hold_partial_json: bool = True,
    ) -> RichContentPipeline:
        stages: list[Stage] = []
        if router_unwrap:
            stages.append(router_stage)
        stages.append(tag_stage)
        stages.append(EmbeddedJsonStage(hold_partial=hold_partial_json))
        if bbcode:
            stages.append(bbcode_stage)
        return cls(stages)

    def parse(self, text: str, final: bool = False) -> ParseResult:
        """Run every stage over *text*.

        Payloads are ordered by where they start in *text*, whichever stage
        found them. Payloads from a stage that reports no offsets follow, in
        the order the stage gave them.
        """
        found: list[tuple[float, int, StructuredPayload]] = []
        to_input: list[Callable[[int], int]] = []
        awaiting = False
        for stage in self.stages:
            output = stage(text, final)
            for i, payload in enumerate(output.payloads):
                position: float = math.inf
                if i < len(output.offsets):
                    offset = output.offsets[i]
                    for mapping in reversed(to_input):
                        offset = mapping(offset)
                    position = offset
                found.append((position, len(found), payload))
            if output.to_input is not None:
                to_input.append(output.to_input)
            text = output.text
            awaiting = awaiting or output.awaiting
        found.sort(key=lambda entry: entry[:2])
        return ParseResult(
            display_text=text.strip(),
            payloads=[payload for _, _, payload in found],
            is_awaiting_more_input=awaiting and not final,
        )


def build_pipeline(config: StreamConfig | None = None) -> RichContentPipeline:
    """Build the pipeline with the stages enabled in *config*."""
    if config is None:
        return RichContentPipeline.default()
    return RichContentPipeline.default(
        router_unwrap=config.router_unwrap,
        bbcode=config.bbcode,
        hold_partial_json=config.hold_partial_json,
    )


_DEFAULT_PIPELINE = RichContentPipeline.default()


def parse_rich_content(raw: str, final: bool = True) -> ParseResult:
    """Parse a complete response with all stages enabled."""
    return _DEFAULT_PIPELINE.parse(raw, final=final)
