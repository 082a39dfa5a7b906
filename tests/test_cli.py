"""Tests for the replay command."""

import json

import pytest

from flexistream.cli import build_parser, main, replay
from flexistream.config import StreamConfig
from flexistream.streaming.session import StreamStatus


@pytest.fixture
def recording(tmp_path, records):
    path = tmp_path / "stream.ndjson"
    path.write_bytes(
        records(
            "[bbcode]",
            "Hello [b]wörld[/b] ",
            '[artifact type="chart" title="Sales"]{"x":[1,2]}[/artifact]',
            "[/bbcode]",
        )
    )
    return path


class TestParser:
    def test_defaults(self):
        args = build_parser().parse_args(["f.ndjson"])
        assert args.chunk_size is None
        assert not args.json
        assert not args.no_bbcode


class TestReplay:
    @pytest.mark.asyncio
    async def test_replay_in_small_chunks(self, recording):
        coordinator = await replay(recording.read_bytes(), StreamConfig(), chunk_size=3)
        assert coordinator.status == StreamStatus.DONE
        assert coordinator.display_text == "Hello **wörld**"
        assert coordinator.payloads[0].artifact_type == "chart"


class TestMain:
    def test_json_output(self, recording, no_user_config, capsys):
        assert main([str(recording), "--json", "--chunk-size", "4"]) == 0
        parts = json.loads(capsys.readouterr().out)
        assert parts[0] == {"type": "text", "text": "Hello **wörld**", "state": "done"}
        assert parts[1]["artifactType"] == "chart"
        assert parts[1]["title"] == "Sales"

    def test_no_bbcode_flag(self, recording, no_user_config, capsys):
        assert main([str(recording), "--json", "--no-bbcode"]) == 0
        parts = json.loads(capsys.readouterr().out)
        assert parts[0]["text"] == "Hello [b]wörld[/b]"

    def test_rendered_output(self, recording, no_user_config, capsys):
        assert main([str(recording)]) == 0
        out = capsys.readouterr().out
        assert "Hello" in out
        assert "chart" in out

    def test_missing_file(self, tmp_path, no_user_config, capsys):
        assert main([str(tmp_path / "missing.ndjson")]) == 1
        assert "Cannot read" in capsys.readouterr().out
