from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from flexistream.payloads import StructuredPayload


@dataclass
class StageOutput:
    """Result of running one pipeline stage over the current text.

    ``offsets`` gives, for each payload, where it started in the stage's input
    text. ``to_input`` maps an offset in ``text`` back to the input text; None
    means the stage did not move anything around.
    """

    text: str
    payloads: list[StructuredPayload] = field(default_factory=list)
    awaiting: bool = False
    offsets: list[int] = field(default_factory=list)
    to_input: Optional[Callable[[int], int]] = None


# A stage takes the current text and whether this is the final pass.
Stage = Callable[[str, bool], StageOutput]


def source_position(pos: int, removed: Sequence[tuple[int, int]]) -> int:
    """Map *pos* in text that had the *removed* spans cut out back to the original.

    *removed* holds ``(start, end)`` spans in original coordinates, sorted.
    """
    for start, end in removed:
        if start > pos:
            break
        pos += end - start
    return pos
