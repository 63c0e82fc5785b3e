import json
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from claude_log.models import Blocks, LogEntry, PlainText, TextBlock, ToolUseBlock
from claude_log.parser import (
    aggregate,
    count_tool_uses,
    decode_line,
    extract_text,
    extract_tool_uses,
    iter_entries,
    parse_messages,
    parse_summary,
    reconstruct,
    search,
    search_messages,
)


def _content(raw):
    entry = decode_line(json.dumps({"type": "user", "message": {"role": "user", "content": raw}}))
    assert entry is not None
    return entry.content


def _user(text, **extra):
    record = {"type": "user", "message": {"role": "user", "content": text}}
    record.update(extra)
    return record


def _assistant(content, **extra):
    record = {"type": "assistant", "message": {"role": "assistant", "model": "claude-sonnet", "content": content}}
    record.update(extra)
    return record


class SessionFileTestCase(unittest.TestCase):
    def _write_lines(self, lines: list, name: str = "session.jsonl") -> Path:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        path = Path(tmpdir.name) / name
        rendered = [line if isinstance(line, str) else json.dumps(line) for line in lines]
        path.write_text("\n".join(rendered) + "\n", encoding="utf-8")
        return path


class DecodeLineTests(unittest.TestCase):
    def test_blank_lines_are_skipped(self) -> None:
        self.assertIsNone(decode_line(""))
        self.assertIsNone(decode_line("   \n"))

    def test_invalid_json_is_skipped(self) -> None:
        self.assertIsNone(decode_line('{"type": "user", "message": {"role"'))

    def test_non_object_records_are_skipped(self) -> None:
        self.assertIsNone(decode_line("[1, 2, 3]"))
        self.assertIsNone(decode_line('"just a string"'))
        self.assertIsNone(decode_line("null"))

    def test_deeply_nested_json_is_skipped(self) -> None:
        self.assertIsNone(decode_line("[" * 200000))

    def test_oversized_integer_literal_does_not_raise(self) -> None:
        # Rejected by int-size limits on newer interpreters, decoded elsewhere.
        entry = decode_line('{"type": "progress", "n": ' + "9" * 5000 + "}")
        if entry is not None:
            self.assertEqual(entry.kind, "progress")

    def test_wrong_field_types_are_skipped(self) -> None:
        self.assertIsNone(decode_line(json.dumps({"type": "user", "gitBranch": 5})))
        self.assertIsNone(decode_line(json.dumps({"type": "user", "message": "hello"})))
        self.assertIsNone(decode_line(json.dumps({"message": {"role": ["assistant"]}})))
        self.assertIsNone(decode_line(json.dumps({"type": "user", "isSidechain": "yes"})))

    def test_known_fields_are_decoded_and_extras_ignored(self) -> None:
        entry = decode_line(
            json.dumps(
                {
                    "type": "user",
                    "gitBranch": "main",
                    "timestamp": "2024-01-01T12:00:00Z",
                    "cwd": "/work/app",
                    "someFutureField": {"nested": True},
                    "message": {"role": "user", "content": "hi"},
                }
            )
        )
        self.assertEqual(
            entry,
            LogEntry(
                kind="user",
                message_role="user",
                git_branch="main",
                timestamp_raw="2024-01-01T12:00:00Z",
                cwd="/work/app",
                content=PlainText("hi"),
                model=None,
            ),
        )

    def test_entry_without_message_has_no_content(self) -> None:
        entry = decode_line(json.dumps({"type": "file-history-snapshot", "snapshot": {}}))
        self.assertIsNotNone(entry)
        assert entry is not None
        self.assertIsNone(entry.content)
        self.assertIsNone(entry.message_role)

    def test_block_content_keeps_known_blocks_in_order(self) -> None:
        content = _content(
            [
                {"type": "text", "text": "a"},
                {"type": "thinking", "thinking": "hmm"},
                {"type": "tool_use", "name": "Bash", "input": {"command": "ls"}},
                "stray string",
                {"type": "tool_use"},
            ]
        )
        self.assertEqual(content, Blocks([TextBlock("a"), ToolUseBlock("Bash"), ToolUseBlock(None)]))


class ContentNormalizerTests(unittest.TestCase):
    def test_plain_text_is_returned_as_is(self) -> None:
        self.assertEqual(extract_text(_content("hello")), "hello")
        self.assertEqual(extract_text(_content("")), "")

    def test_text_blocks_are_joined_with_newlines(self) -> None:
        content = _content([{"type": "text", "text": "a"}, {"type": "text", "text": "b"}])
        self.assertEqual(extract_text(content), "a\nb")

    def test_no_text_blocks_means_no_text(self) -> None:
        self.assertIsNone(extract_text(_content([{"type": "tool_use", "name": "X"}])))
        self.assertIsNone(extract_text(_content([])))
        self.assertIsNone(extract_text(None))

    def test_tool_uses_are_extracted_in_order(self) -> None:
        content = _content(
            [
                {"type": "tool_use", "name": "Read"},
                {"type": "text", "text": "between"},
                {"type": "tool_use", "name": "Edit"},
                {"type": "tool_use"},
            ]
        )
        self.assertEqual([tool.name for tool in extract_tool_uses(content)], ["Read", "Edit", "unknown"])

    def test_plain_text_has_no_tool_uses(self) -> None:
        self.assertEqual(extract_tool_uses(_content("run Bash please")), [])
        self.assertEqual(count_tool_uses(_content("run Bash please")), 0)

    def test_count_tool_uses(self) -> None:
        content = _content([{"type": "tool_use", "name": "X"}, {"type": "text", "text": "y"}])
        self.assertEqual(count_tool_uses(content), 1)


class AggregateTests(SessionFileTestCase):
    def test_first_seen_wins(self) -> None:
        entries = [
            decode_line(json.dumps(_user("first", gitBranch="main", cwd="/a", timestamp="2024-01-01T12:00:00Z"))),
            decode_line(json.dumps(_user("second", gitBranch="feature", cwd="/b", timestamp="2024-01-02T12:00:00Z"))),
        ]
        summary = aggregate(entries, file_size_bytes=10, modified=None, session_id="s1")
        assert summary is not None
        self.assertEqual(summary.git_branch, "main")
        self.assertEqual(summary.project_path, "/a")
        self.assertEqual(summary.first_prompt, "first")
        self.assertEqual(summary.created, datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))
        self.assertEqual(summary.user_message_count, 2)

    def test_missing_fields_do_not_overwrite_later(self) -> None:
        entries = [
            decode_line(json.dumps(_user([{"type": "tool_result", "content": "ok"}]))),
            decode_line(json.dumps(_user("real prompt", gitBranch="dev", timestamp="2024-03-01T08:00:00Z"))),
            decode_line(json.dumps(_user("later", gitBranch="other"))),
        ]
        summary = aggregate(entries, file_size_bytes=0, modified=None, session_id="s1")
        assert summary is not None
        self.assertEqual(summary.git_branch, "dev")
        self.assertEqual(summary.first_prompt, "real prompt")
        self.assertEqual(summary.created, datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc))
        self.assertEqual(summary.user_message_count, 3)

    def test_unparsable_timestamp_is_absent(self) -> None:
        entries = [
            decode_line(json.dumps(_user("hi", timestamp="not a time"))),
            decode_line(json.dumps(_user("again", timestamp="2024-05-05T05:05:05+02:00"))),
        ]
        summary = aggregate(entries, file_size_bytes=0, modified=None, session_id="s1")
        assert summary is not None
        self.assertEqual(summary.created, datetime(2024, 5, 5, 3, 5, 5, tzinfo=timezone.utc))
        self.assertIsNotNone(summary.created.tzinfo)

    def test_assistant_counts_and_tool_uses(self) -> None:
        entries = [
            decode_line(json.dumps(_assistant([{"type": "tool_use", "name": "Bash"}, {"type": "tool_use", "name": "Read"}]))),
            decode_line(json.dumps(_assistant("plain"))),
            decode_line(json.dumps({"type": "system", "message": {"role": "system", "content": "note"}})),
        ]
        summary = aggregate(entries, file_size_bytes=0, modified=None, session_id="s1")
        assert summary is not None
        self.assertEqual(summary.assistant_message_count, 2)
        self.assertEqual(summary.user_message_count, 0)
        self.assertEqual(summary.tool_use_count, 2)

    def test_user_kind_wins_over_assistant_role(self) -> None:
        entry = decode_line(json.dumps({"type": "user", "message": {"role": "assistant", "content": [{"type": "tool_use", "name": "X"}]}}))
        summary = aggregate([entry], file_size_bytes=0, modified=None, session_id="s1")
        assert summary is not None
        self.assertEqual(summary.user_message_count, 1)
        self.assertEqual(summary.assistant_message_count, 0)
        self.assertEqual(summary.tool_use_count, 0)

    def test_snapshot_only_file_is_discarded(self) -> None:
        path = self._write_lines(
            [
                {"type": "file-history-snapshot", "snapshot": {"files": []}},
                {"type": "summary", "summary": "Earlier work"},
            ]
        )
        self.assertIsNone(parse_summary(path))

    def test_malformed_lines_are_excluded_from_counts(self) -> None:
        path = self._write_lines(
            [
                _user("hello", timestamp="2024-01-01T12:00:00Z"),
                '{"type": "user", "message": {"role": "user", "content": "trunc',
                "",
                {"type": "user", "gitBranch": 42},
                _assistant([{"type": "text", "text": "hi"}]),
            ]
        )
        summary = parse_summary(path)
        assert summary is not None
        self.assertEqual(summary.user_message_count, 1)
        self.assertEqual(summary.assistant_message_count, 1)
        self.assertEqual(summary.session_id, "session")
        self.assertEqual(summary.file_size_bytes, path.stat().st_size)
        self.assertIsNotNone(summary.modified)

    def test_pathological_lines_do_not_stop_the_walk(self) -> None:
        path = self._write_lines(
            [
                _user("hello", timestamp="2024-01-01T12:00:00Z"),
                "[" * 200000,
                '{"type": "progress", "n": ' + "9" * 5000 + "}",
                _assistant("still read"),
            ]
        )
        summary = parse_summary(path)
        assert summary is not None
        self.assertEqual(summary.user_message_count, 1)
        self.assertEqual(summary.assistant_message_count, 1)
        self.assertEqual([message.content for message in parse_messages(path)], ["hello", "still read"])
        self.assertEqual(len(search_messages(path, "still")), 1)

    def test_byte_order_mark_is_ignored(self) -> None:
        path = self._write_lines([_user("hi", gitBranch="main", cwd="/work", timestamp="2024-01-01T12:00:00Z")])
        path.write_bytes(b"\xef\xbb\xbf" + path.read_bytes())
        summary = parse_summary(path)
        assert summary is not None
        self.assertEqual(summary.user_message_count, 1)
        self.assertEqual(summary.first_prompt, "hi")
        self.assertEqual(summary.git_branch, "main")
        self.assertEqual(summary.project_path, "/work")
        self.assertEqual(summary.created, datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))

    def test_missing_file_raises(self) -> None:
        with self.assertRaises(OSError):
            parse_summary(Path(tempfile.gettempdir()) / "definitely-missing-session.jsonl")
        with self.assertRaises(OSError):
            list(iter_entries(Path(tempfile.gettempdir()) / "definitely-missing-session.jsonl"))


class ReconstructTests(SessionFileTestCase):
    def test_round_trip_scenario(self) -> None:
        path = self._write_lines(
            [
                _user("hi", timestamp="2024-01-01T12:00:00Z"),
                _assistant(
                    [{"type": "text", "text": "hello"}, {"type": "tool_use", "name": "Bash"}],
                    timestamp="2024-01-01T12:00:05Z",
                ),
            ]
        )
        summary = parse_summary(path)
        assert summary is not None
        self.assertEqual(summary.user_message_count, 1)
        self.assertEqual(summary.assistant_message_count, 1)
        self.assertEqual(summary.tool_use_count, 1)
        self.assertEqual(summary.first_prompt, "hi")
        self.assertEqual(summary.created, datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))

        messages = parse_messages(path)
        self.assertEqual([message.role for message in messages], ["user", "assistant"])
        self.assertEqual(messages[0].content, "hi")
        self.assertEqual(messages[1].content, "hello")
        self.assertEqual(messages[1].model, "claude-sonnet")
        self.assertEqual([tool.name for tool in messages[1].tool_uses], ["Bash"])
        self.assertEqual(messages[1].timestamp, datetime(2024, 1, 1, 12, 0, 5, tzinfo=timezone.utc))

    def test_tool_only_assistant_message_has_empty_content(self) -> None:
        entries = [decode_line(json.dumps(_assistant([{"type": "tool_use", "name": "Grep"}])))]
        messages = reconstruct(entries)
        self.assertEqual(len(messages), 1)
        self.assertEqual(messages[0].content, "")
        self.assertEqual(messages[0].tool_uses[0].name, "Grep")

    def test_empty_messages_are_dropped(self) -> None:
        entries = [
            decode_line(json.dumps(_user(""))),
            decode_line(json.dumps(_user([{"type": "tool_result", "content": "out"}]))),
            decode_line(json.dumps(_assistant([{"type": "thinking", "thinking": "..."}]))),
            decode_line(json.dumps(_assistant(""))),
        ]
        self.assertEqual(reconstruct(entries), [])
        summary = aggregate(entries, file_size_bytes=0, modified=None, session_id="s")
        assert summary is not None
        self.assertEqual(summary.user_message_count, 2)
        self.assertEqual(summary.assistant_message_count, 2)

    def test_user_only_never_includes_assistant(self) -> None:
        entries = [
            decode_line(json.dumps(_user("question"))),
            decode_line(json.dumps(_assistant([{"type": "text", "text": "answer"}, {"type": "tool_use", "name": "Bash"}]))),
            decode_line(json.dumps(_assistant("more"))),
        ]
        messages = reconstruct(entries, user_only=True)
        self.assertEqual([(message.role, message.content) for message in messages], [("user", "question")])

    def test_user_messages_carry_no_model_or_tools(self) -> None:
        entries = [decode_line(json.dumps(_user([{"type": "text", "text": "a"}, {"type": "tool_use", "name": "X"}])))]
        messages = reconstruct(entries)
        self.assertEqual(messages[0].content, "a")
        self.assertEqual(messages[0].tool_uses, [])
        self.assertIsNone(messages[0].model)


class SearchTests(SessionFileTestCase):
    def test_search_is_case_insensitive(self) -> None:
        entries = [
            decode_line(json.dumps(_user("please run docker compose up"))),
            decode_line(json.dumps(_assistant("Nothing relevant"))),
        ]
        results = search(entries, "DOCKER")
        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].role, "user")
        self.assertEqual(results[0].content, "please run docker compose up")

    def test_search_covers_every_role(self) -> None:
        path = self._write_lines(
            [
                _user("needle one", timestamp="2024-01-01T12:00:00Z"),
                _assistant([{"type": "text", "text": "Needle two"}, {"type": "tool_use", "name": "Bash"}]),
                {"type": "system", "message": {"role": "system", "content": "needle three"}},
                {"type": "note", "message": {"content": "a needle without role"}},
                {"type": "assistant", "message": {"role": "assistant", "content": [{"type": "tool_use", "name": "needle"}]}},
            ]
        )
        results = search_messages(path, "needle")
        self.assertEqual([result.role for result in results], ["user", "assistant", "system", "unknown"])
        self.assertEqual(results[1].tool_uses, [])
        self.assertEqual(results[0].timestamp, datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))

    def test_no_matches_is_empty(self) -> None:
        entries = [decode_line(json.dumps(_user("hello")))]
        self.assertEqual(search(entries, "absent"), [])


if __name__ == "__main__":
    unittest.main()
