from __future__ import annotations

import json

from imgchat_engine.chat.transcript import (
    ROLE_ASSISTANT,
    ROLE_USER,
    Turn,
    extract_title,
    is_reply_complete,
    parse_transcript,
    session_id_from_path,
    tail_turns,
)


def _user(content) -> str:
    return json.dumps({"type": "user", "message": {"role": "user", "content": content}})


def _assistant(*blocks) -> str:
    return json.dumps({"type": "assistant", "message": {"role": "assistant", "content": list(blocks)}})


def test_parse_user_and_assistant_turns() -> None:
    data = "\n".join(
        [
            '{"type":"user","message":{"content":"hello"}}',
            _assistant({"type": "text", "text": "hi there"}),
        ]
    )
    turns = parse_transcript(data.encode("utf-8"))
    assert turns == [Turn(ROLE_USER, "hello"), Turn(ROLE_ASSISTANT, "hi there")]
    assert is_reply_complete(turns) is True


def test_user_list_content_is_tool_output_and_skipped() -> None:
    data = "\n".join(
        [
            _user("run the tests"),
            _user([{"type": "tool_result", "content": "ok"}]),
        ]
    )
    turns = parse_transcript(data)
    assert turns == [Turn(ROLE_USER, "run the tests")]
    assert is_reply_complete(turns) is False


def test_assistant_text_blocks_are_joined_and_tool_only_replies_dropped() -> None:
    data = "\n".join(
        [
            _assistant(
                {"type": "text", "text": "  first  "},
                {"type": "tool_use", "name": "Bash", "input": {}},
                {"type": "text", "text": "   "},
                {"type": "text", "text": "second"},
            ),
            _assistant({"type": "tool_use", "name": "Read", "input": {}}),
        ]
    )
    turns = parse_transcript(data)
    assert turns == [Turn(ROLE_ASSISTANT, "first\nsecond")]


def test_blank_user_messages_and_other_record_types_are_ignored() -> None:
    data = "\n".join(
        [
            _user("   "),
            json.dumps({"type": "summary", "summary": "x"}),
            json.dumps({"type": "system", "message": {"content": "boot"}}),
            json.dumps(["not", "an", "object"]),
            json.dumps({"type": "user", "message": "not a dict"}),
        ]
    )
    assert parse_transcript(data) == []


def test_truncated_trailing_line_does_not_lose_earlier_turns() -> None:
    complete = "\n".join([_user("draw a cat"), _assistant({"type": "text", "text": "sure"})]) + "\n"
    before = parse_transcript(complete)

    partial = complete + '{"type":"assistant","message":{"content":[{"type":"te'
    after = parse_transcript(partial)

    assert after == before
    assert is_reply_complete(after) is True


def test_invalid_utf8_does_not_break_parsing() -> None:
    data = _user("hello").encode("utf-8") + b"\n\xff\xfe garbage\n" + _assistant({"type": "text", "text": "hi"}).encode("utf-8")
    assert [turn.role for turn in parse_transcript(data)] == [ROLE_USER, ROLE_ASSISTANT]


def test_tail_turns() -> None:
    turns = [Turn(ROLE_USER, str(idx)) for idx in range(5)]
    assert tail_turns(turns, 2) == turns[3:]
    assert tail_turns(turns, 10) == turns
    assert tail_turns(turns, 0) == []
    assert tail_turns([], 3) == []


def test_is_reply_complete_on_empty_history() -> None:
    assert is_reply_complete([]) is False


def test_extract_title_skips_injected_content() -> None:
    turns = [
        Turn(ROLE_USER, "<tool-output>"),
        Turn(ROLE_USER, "draw a cat"),
        Turn(ROLE_ASSISTANT, "..."),
    ]
    assert extract_title(turns, 20) == "draw a cat"


def test_extract_title_truncates_with_ellipsis() -> None:
    turns = [Turn(ROLE_USER, "please refactor the whole watcher module")]
    assert extract_title(turns, 10) == "please ref..."


def test_extract_title_counts_characters_not_bytes() -> None:
    turns = [Turn(ROLE_USER, "猫の絵を描いてください")]
    assert extract_title(turns, 3) == "猫の絵..."


def test_extract_title_without_user_turns() -> None:
    assert extract_title([Turn(ROLE_ASSISTANT, "hi")], 20) == ""
    assert extract_title([Turn(ROLE_USER, "<command-name>/clear</command-name>")], 20) == ""


def test_session_id_from_path() -> None:
    assert session_id_from_path("/home/u/.claude/projects/-repo/abc-123.jsonl") == "abc-123"
    assert session_id_from_path("notes.txt") == "notes.txt"


def test_parse_skips_deeply_nested_line() -> None:
    data = "\n".join([_user("hello"), "[" * 200000, _assistant({"type": "text", "text": "hi there"})]) + "\n"
    assert parse_transcript(data) == [Turn(ROLE_USER, "hello"), Turn(ROLE_ASSISTANT, "hi there")]
