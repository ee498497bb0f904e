"""Conversation turns parsed from assistant-CLI JSONL transcripts.

Each line of a transcript is an independent JSON record. Only two record
types matter here:

- ``user`` records whose ``message.content`` is a plain string (direct input).
  List content is tool output and is skipped.
- ``assistant`` records whose ``message.content`` is a list of blocks; the
  ``text`` blocks are joined with newlines.

Parsing is forgiving: a line that does not decode (typically a trailing line
that is still being written) is dropped without affecting earlier turns.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Sequence

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"

TRANSCRIPT_SUFFIX = ".jsonl"
TITLE_SKIP_PREFIX = "<"
TITLE_ELLIPSIS = "..."


@dataclass(frozen=True)
class Turn:
    role: str
    text: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.text}


def parse_transcript(data: bytes | str) -> list[Turn]:
    if isinstance(data, (bytes, bytearray)):
        text = bytes(data).decode("utf-8", errors="replace")
    else:
        text = str(data)
    turns: list[Turn] = []
    for raw_line in text.split("\n"):
        line = raw_line.strip()
        if not line:
            continue
        try:
            entry = json.loads(line)
        except (ValueError, RecursionError):
            # Half-written or pathologically nested line.
            continue
        turn = _turn_from_entry(entry)
        if turn is not None:
            turns.append(turn)
    return turns


def _turn_from_entry(entry: Any) -> Turn | None:
    if not isinstance(entry, dict):
        return None
    kind = entry.get("type")
    message = entry.get("message")
    if not isinstance(message, dict):
        return None
    if kind == ROLE_USER:
        return _user_turn(message.get("content"))
    if kind == ROLE_ASSISTANT:
        return _assistant_turn(message.get("content"))
    return None


def _user_turn(content: Any) -> Turn | None:
    # List content carries tool results, not something the user typed.
    if not isinstance(content, str):
        return None
    cleaned = content.strip()
    if not cleaned:
        return None
    return Turn(role=ROLE_USER, text=cleaned)


def _assistant_turn(content: Any) -> Turn | None:
    if not isinstance(content, list):
        return None
    parts: list[str] = []
    for block in content:
        if not isinstance(block, dict) or block.get("type") != "text":
            continue
        value = block.get("text")
        if isinstance(value, str) and value.strip():
            parts.append(value.strip())
    if not parts:
        return None
    return Turn(role=ROLE_ASSISTANT, text="\n".join(parts))


def tail_turns(turns: Sequence[Turn], n: int) -> list[Turn]:
    if n <= 0:
        return []
    if len(turns) <= n:
        return list(turns)
    return list(turns[len(turns) - n :])


def is_reply_complete(turns: Sequence[Turn]) -> bool:
    """True when the newest turn is an assistant reply."""
    return bool(turns) and turns[-1].role == ROLE_ASSISTANT


def extract_title(turns: Iterable[Turn], max_len: int) -> str:
    """First real user message, clipped to `max_len` characters.

    Messages starting with ``<`` are injected system/tool content and are
    never used as a title.
    """
    for turn in turns:
        if turn.role != ROLE_USER or turn.text.startswith(TITLE_SKIP_PREFIX):
            continue
        if len(turn.text) > max_len:
            return turn.text[: max(0, max_len)] + TITLE_ELLIPSIS
        return turn.text
    return ""


def session_id_from_path(path: str | Path) -> str:
    name = Path(path).name
    if name.endswith(TRANSCRIPT_SUFFIX):
        return name[: -len(TRANSCRIPT_SUFFIX)]
    return name


def turns_to_payload(turns: Iterable[Turn]) -> list[dict[str, str]]:
    return [turn.to_dict() for turn in turns]

