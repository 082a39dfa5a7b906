"""``flexistream`` command: replay a recorded response stream.

Reads a file of line-delimited ``{"type": "item", "content": ...}`` records,
feeds it through the stream coordinator in fixed-size byte chunks (the way a
network read would deliver it) and prints the final message.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from flexistream.config import StreamConfig, load_config
from flexistream.payloads import ArtifactPayload
from flexistream.streaming.coordinator import StreamCoordinator, StreamUpdate
from flexistream.streaming.source import ScriptedSource

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flexistream", description="Replay a recorded NDJSON response stream."
    )
    parser.add_argument("file", type=Path, help="File of line-delimited item records")
    parser.add_argument(
        "--chunk-size", type=int, default=None, help="Bytes per simulated network read"
    )
    parser.add_argument("--no-bbcode", action="store_true", help="Keep BBCode as-is")
    parser.add_argument("--no-router", action="store_true", help="Do not unwrap router envelopes")
    parser.add_argument("--json", action="store_true", help="Print message parts as JSON")
    parser.add_argument("--verbose", action="store_true", help="Print every intermediate update")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def payload_table(coordinator: StreamCoordinator) -> Table:
    table = Table(title="Payloads")
    table.add_column("id")
    table.add_column("type")
    table.add_column("keys")
    for payload in coordinator.payloads:
        if isinstance(payload, ArtifactPayload):
            kind, data = f"artifact:{payload.artifact_type}", payload.data
        else:
            kind, data = payload.tool_name, payload.output
        table.add_row(payload.identity, kind, ", ".join(sorted(data)))
    return table


async def replay(data: bytes, config: StreamConfig, chunk_size: int, on_update=None) -> StreamCoordinator:
    coordinator = StreamCoordinator.from_config(config, on_update=on_update)
    await coordinator.run(ScriptedSource.from_bytes(data, chunk_size))
    return coordinator


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the flexistream command."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    console = Console()

    config, error = load_config()
    if error:
        console.print(error, style="yellow", markup=False)
    if args.no_bbcode:
        config.bbcode = False
    if args.no_router:
        config.router_unwrap = False
    chunk_size = args.chunk_size or config.chunk_size

    try:
        data = args.file.read_bytes()
    except OSError as e:
        console.print(f"Cannot read {args.file}: {e}", style="red", markup=False)
        return 1

    def show(update: StreamUpdate) -> None:
        marker = " …" if update.is_awaiting_more_input else ""
        console.print(f"{update.display_text!r}{marker}", style="dim", markup=False)

    coordinator = asyncio.run(
        replay(data, config, chunk_size, on_update=show if args.verbose else None)
    )

    if args.json:
        json.dump(coordinator.parts(), sys.stdout, indent=2, ensure_ascii=False)
        sys.stdout.write("\n")
    else:
        console.print(Markdown(coordinator.display_text))
        if coordinator.payloads:
            console.print(payload_table(coordinator))
    return 0


if __name__ == "__main__":
    sys.exit(main())
