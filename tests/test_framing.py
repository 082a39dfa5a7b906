"""Tests for NDJSON framing of the upstream byte stream."""

import json

import pytest

from flexistream.streaming.framing import (
    LineBuffer,
    encode_records,
    is_wrapper_token,
    parse_record,
)


class TestParseRecord:
    def test_item(self):
        assert parse_record('{"type":"item","content":"Hi"}') == "Hi"

    def test_other_types_skipped(self):
        assert parse_record('{"type":"begin","content":"x"}') is None
        assert parse_record('{"type":"end"}') is None

    def test_malformed_line_skipped(self):
        assert parse_record('{"type":"item","content":') is None
        assert parse_record("not json at all") is None

    def test_blank_and_non_object(self):
        assert parse_record("   ") is None
        assert parse_record("[1, 2]") is None

    def test_empty_or_non_string_content(self):
        assert parse_record('{"type":"item","content":""}') is None
        assert parse_record('{"type":"item","content":5}') is None

    def test_whitespace_content_kept(self):
        assert parse_record('{"type":"item","content":" "}') == " "


class TestWrapperTokens:
    @pytest.mark.parametrize("token", ["[", "]", "bbcode", "[bbcode]", "[/bbcode]", " [ "])
    def test_wrapper(self, token):
        assert is_wrapper_token(token)

    @pytest.mark.parametrize("token", ["Hello", "[b]", " ", "[tool:x]"])
    def test_not_wrapper(self, token):
        assert not is_wrapper_token(token)


class TestLineBuffer:
    def test_complete_lines(self, records):
        framer = LineBuffer()
        assert framer.feed(records("a", "b")) == ["a", "b"]
        assert framer.pending == ""

    def test_partial_line_kept(self):
        framer = LineBuffer()
        assert framer.feed(b'{"type":"item","con') == []
        assert framer.pending == '{"type":"item","con'
        assert framer.feed(b'tent":"Hi"}\n') == ["Hi"]

    def test_finish_flushes_last_line_without_newline(self):
        framer = LineBuffer()
        assert framer.feed(b'{"type":"item","content":"tail"}') == []
        assert framer.finish() == ["tail"]
        assert framer.pending == ""

    def test_finish_with_garbage_tail(self):
        framer = LineBuffer()
        framer.feed(b'{"type":"item"')
        assert framer.finish() == []

    def test_split_multibyte_character(self):
        data = encode_records(["café ☕"])
        cut = data.index("é".encode("utf-8")) + 1
        framer = LineBuffer()
        assert framer.feed(data[:cut]) == []
        assert framer.feed(data[cut:]) == ["café ☕"]

    def test_non_ascii_escaped_or_raw(self):
        raw = ('{"type":"item","content":"naïve"}\n').encode("utf-8")
        assert LineBuffer().feed(raw) == ["naïve"]

    def test_byte_by_byte(self, records):
        contents = ["Hello", " wörld", " 😀", "\n\nnext"]
        data = records(*contents)
        framer = LineBuffer()
        out = []
        for i in range(len(data)):
            out.extend(framer.feed(data[i : i + 1]))
        out.extend(framer.finish())
        assert out == contents

    def test_str_chunks(self):
        framer = LineBuffer()
        line = json.dumps({"type": "item", "content": "x"})
        assert framer.feed(line[:5]) == []
        assert framer.feed(line[5:] + "\n") == ["x"]

    def test_malformed_line_does_not_stop_stream(self):
        framer = LineBuffer()
        data = b'garbage\n{"type":"item","content":"ok"}\n'
        assert framer.feed(data) == ["ok"]

    def test_reset(self):
        framer = LineBuffer()
        framer.feed(b'{"type":"item"')
        framer.reset()
        assert framer.pending == ""


class TestEncodeRecords:
    def test_one_record_per_line(self):
        data = encode_records(["a", "b"])
        lines = data.decode("utf-8").splitlines()
        assert [json.loads(line)["content"] for line in lines] == ["a", "b"]

    def test_empty(self):
        assert encode_records([]) == b""
