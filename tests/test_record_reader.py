"""Tests for claude_session_monitor.services.record_reader."""

import json
from datetime import datetime, timezone

import pytest

from claude_session_monitor.services.record_reader import (
    count_lines,
    extract_text,
    iter_records,
    parse_line,
    parse_timestamp,
    read_records,
    read_tail_records,
    truncate_text,
)
from claude_session_monitor.types.records import RecordRole, TokenUsage
from helpers import make_line, write_session


@pytest.fixture
def session_file(tmp_path):
    path = tmp_path / "session.jsonl"
    write_session(path, [
        make_line("msg-001", "user", "First question"),
        make_line("msg-002", "assistant", [{"type": "text", "text": "First answer"}],
                  model="claude-sonnet-4-5-20250929",
                  usage={"input_tokens": 10, "output_tokens": 20,
                         "cache_read_input_tokens": 30, "cache_creation_input_tokens": 40}),
        make_line("msg-003", "user", "Second question"),
    ])
    return path


# ---------------------------------------------------------------------------
# 1. Parsing single lines
# ---------------------------------------------------------------------------

class TestParseLine:
    def test_user_line(self):
        record = parse_line(make_line("u1", "user", "Hi there"), line_number=4)
        assert record.role is RecordRole.USER
        assert record.content == "Hi there"
        assert record.uuid == "u1"
        assert record.session_id == "test-session"
        assert record.line_number == 4
        assert record.timestamp == datetime(2026, 2, 13, 10, 0, tzinfo=timezone.utc)

    def test_assistant_line_with_usage_and_tools(self):
        content = [
            {"type": "text", "text": "Let me look"},
            {"type": "tool_use", "id": "t1", "name": "Read", "input": {}},
            {"type": "tool_use", "id": "t2", "name": "Grep", "input": {}},
        ]
        record = parse_line(make_line(
            "a1", "assistant", content, model="claude-opus-4-6",
            usage={"input_tokens": 5, "output_tokens": 7},
        ))
        assert record.role is RecordRole.ASSISTANT
        assert record.content == "Let me look"
        assert record.model == "claude-opus-4-6"
        assert record.usage == TokenUsage(input_tokens=5, output_tokens=7)
        assert record.tool_calls == 2

    def test_tool_result_only_user_line_is_tool(self):
        content = [{"type": "tool_result", "tool_use_id": "t1", "content": "file contents"}]
        record = parse_line(make_line("t1", "user", content))
        assert record.role is RecordRole.TOOL
        assert record.content == "file contents"

    def test_system_line(self):
        line = json.dumps({"type": "system", "content": "Compacted", "timestamp": "2026-02-13T10:00:00Z"})
        record = parse_line(line)
        assert record.role is RecordRole.SYSTEM
        assert record.content == "Compacted"

    def test_non_transcript_line_returns_none(self):
        assert parse_line(json.dumps({"type": "summary", "summary": "x"})) is None
        assert parse_line(json.dumps({"type": "file-history-snapshot"})) is None

    def test_blank_line_returns_none(self):
        assert parse_line(b"   \n") is None

    def test_malformed_json_raises(self):
        with pytest.raises(ValueError):
            parse_line(b"{not json")

    def test_non_object_raises(self):
        with pytest.raises(ValueError):
            parse_line(b"[1, 2, 3]")

    def test_missing_timestamp_is_none(self):
        line = json.dumps({"type": "user", "message": {"content": "hi"}})
        assert parse_line(line).timestamp is None


class TestParseTimestamp:
    def test_iso_z(self):
        ts = parse_timestamp("2026-02-13T12:30:00.500Z")
        assert ts == datetime(2026, 2, 13, 12, 30, 0, 500000, tzinfo=timezone.utc)

    def test_offset_converted_to_utc(self):
        ts = parse_timestamp("2026-02-13T12:00:00+02:00")
        assert ts.hour == 10
        assert ts.tzinfo == timezone.utc

    def test_naive_taken_as_utc(self):
        assert parse_timestamp("2026-02-13T12:00:00").tzinfo == timezone.utc

    def test_epoch_millis(self):
        assert parse_timestamp(1_700_000_000_000) == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)

    def test_garbage(self):
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(None) is None
        assert parse_timestamp(True) is None


class TestTextHelpers:
    def test_extract_first_text_block(self):
        content = [{"type": "thinking", "thinking": "hmm"}, {"type": "text", "text": "  answer "}]
        assert extract_text(content) == "answer"

    def test_extract_non_text(self):
        assert extract_text({"unexpected": True}) == ""

    def test_truncate(self):
        assert truncate_text("abc", 5) == "abc"
        assert truncate_text("abcdefgh", 5) == "abcde..."


# ---------------------------------------------------------------------------
# 2. Reading files
# ---------------------------------------------------------------------------

class TestReadRecords:
    def test_reads_all_complete_lines(self, session_file):
        result = read_records(session_file)
        assert [r.uuid for r in result.records] == ["msg-001", "msg-002", "msg-003"]
        assert result.consumed_lines == 3
        assert result.end_offset == session_file.stat().st_size
        assert result.parse_errors == 0

    def test_records_in_file_order_with_line_numbers(self, session_file):
        result = read_records(session_file)
        assert [r.line_number for r in result.records] == [1, 2, 3]

    def test_from_line_skips_without_returning(self, session_file):
        result = read_records(session_file, from_line=2)
        assert [r.uuid for r in result.records] == ["msg-003"]
        assert result.consumed_lines == 3

    def test_byte_offset_seeks_directly(self, session_file):
        first = read_records(session_file, from_line=0)
        with open(session_file, "a") as f:
            f.write(make_line("msg-004", "assistant", "Later") + "\n")
        result = read_records(session_file, from_line=3, byte_offset=first.end_offset)
        assert [r.uuid for r in result.records] == ["msg-004"]
        assert result.consumed_lines == 4

    def test_partial_trailing_line_not_consumed(self, session_file):
        size_before = session_file.stat().st_size
        with open(session_file, "a") as f:
            f.write(make_line("msg-004", "assistant", "Half")[:40])
        result = read_records(session_file)
        assert len(result.records) == 3
        assert result.consumed_lines == 3
        assert result.end_offset == size_before

    def test_complete_trailing_line_without_newline_waits(self, tmp_path):
        path = tmp_path / "s.jsonl"
        path.write_text(make_line("m1", "user", "one") + "\n" + make_line("m2", "user", "two"))
        result = read_records(path)
        assert [r.uuid for r in result.records] == ["m1"]
        assert result.consumed_lines == 1

    def test_malformed_lines_counted_and_skipped(self, tmp_path):
        path = tmp_path / "s.jsonl"
        write_session(path, [
            make_line("m1", "user", "one"),
            "{broken",
            "42",
            make_line("m2", "assistant", "two"),
        ])
        result = read_records(path)
        assert [r.uuid for r in result.records] == ["m1", "m2"]
        assert result.parse_errors == 2
        assert result.consumed_lines == 4

    def test_blank_and_summary_lines_consumed_without_errors(self, tmp_path):
        path = tmp_path / "s.jsonl"
        write_session(path, [
            json.dumps({"type": "summary", "summary": "Earlier work"}),
            "",
            make_line("m1", "user", "one"),
        ])
        result = read_records(path)
        assert len(result.records) == 1
        assert result.consumed_lines == 3
        assert result.parse_errors == 0

    def test_from_line_beyond_end(self, session_file):
        result = read_records(session_file, from_line=10)
        assert result.records == []
        assert result.consumed_lines == 3

    def test_skipping_across_blocks(self, tmp_path, monkeypatch):
        monkeypatch.setattr("claude_session_monitor.services.record_reader.BLOCK_SIZE", 64)
        path = tmp_path / "s.jsonl"
        write_session(path, [make_line(f"m{i}", "user", f"msg {i}") for i in range(20)])
        result = read_records(path, from_line=17)
        assert [r.uuid for r in result.records] == ["m17", "m18", "m19"]
        assert result.consumed_lines == 20

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(OSError):
            read_records(tmp_path / "nope.jsonl")


class TestStreamingHelpers:
    def test_iter_records_matches_read(self, session_file):
        streamed = list(iter_records(session_file))
        assert streamed == read_records(session_file).records

    def test_read_tail_records_window(self, tmp_path):
        path = tmp_path / "s.jsonl"
        write_session(path, [make_line(f"m{i}", "user", "x" * 50) for i in range(50)])
        records = read_tail_records(path, max_bytes=600)
        assert records
        assert records[-1].uuid == "m49"
        assert len(records) < 50

    def test_count_lines(self, tmp_path):
        path = tmp_path / "s.jsonl"
        path.write_text("a\n\nb\npartial")
        assert count_lines(path) == (3, 2)
