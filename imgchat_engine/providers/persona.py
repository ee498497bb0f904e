"""Character personas and the prompt text shared by prompt providers."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from ..chat.transcript import Turn, turns_to_payload
from ..utils import preview_text

logger = logging.getLogger(__name__)

BASE_SYSTEM_PROMPT = """You are an image prompt generator for an anime-style illustration AI.
Given a conversation between a user and an AI assistant, generate a short English prompt
describing an anime-style illustration that captures the mood and situation of the latest
assistant message.

Rules:
- Output ONLY the image prompt, nothing else.
- The entire output MUST be in English only. Do NOT include any non-English characters, words, or text (no Japanese, Chinese, Korean, etc.). Even for in-scene text like signs, speech bubbles, or whiteboards, describe them in English or omit them.
- The prompt should describe a single anime girl character reacting to or representing
  the situation in the conversation.
- Include emotional expressions, poses, and background elements that match the context.
- Keep the prompt under 200 words.
- Do NOT include any negative prompts or technical parameters."""

_FNV32_OFFSET = 0x811C9DC5
_FNV32_PRIME = 0x01000193


def fnv1a_32(data: bytes) -> int:
    value = _FNV32_OFFSET
    for byte in data:
        value ^= byte
        value = (value * _FNV32_PRIME) & 0xFFFFFFFF
    return value


@dataclass
class PersonaBook:
    settings: list[str] = field(default_factory=list)

    @classmethod
    def load(cls, characters_dir: str | Path | None, fallback_file: str | Path | None = None) -> "PersonaBook":
        settings: list[str] = []
        if characters_dir is not None:
            try:
                settings = _load_directory(Path(characters_dir))
            except OSError as exc:
                logger.warning("could not load characters from %s: %s", characters_dir, exc)
        if not settings and fallback_file is not None:
            try:
                text = Path(fallback_file).read_text(encoding="utf-8").strip()
            except OSError as exc:
                logger.warning("could not read CHARACTER_FILE %s: %s", fallback_file, exc)
            else:
                if text:
                    settings = [text]
        return cls(settings=settings)

    def select_index(self, session_path: str) -> int:
        """Stable per-session persona index, or -1 without personas."""
        if not self.settings:
            return -1
        basename = Path(session_path).name
        return fnv1a_32(basename.encode("utf-8")) % len(self.settings)

    def build_system_prompt(self, index: int) -> str:
        prompt = BASE_SYSTEM_PROMPT
        if 0 <= index < len(self.settings):
            prompt += "\n\nCharacter setting:\n" + self.settings[index]
        return prompt

    def system_prompt_for(self, session_path: str) -> str:
        index = self.select_index(session_path)
        if index >= 0:
            logger.debug("using character index %d for session %r", index, Path(session_path).name)
        return self.build_system_prompt(index)


def build_user_prompt(turns: Sequence[Turn]) -> str:
    if turns:
        logger.debug("last message content (first 200 chars): %s", preview_text(turns[-1].text))
    conversation = json.dumps(turns_to_payload(turns), ensure_ascii=False)
    return (
        f"Here is the recent conversation:\n{conversation}\n\n"
        "Generate an anime-style image prompt based on this conversation."
    )


def _load_directory(directory: Path) -> list[str]:
    names = sorted(
        entry.name for entry in directory.iterdir() if entry.is_file() and entry.name.lower().endswith(".md")
    )
    settings: list[str] = []
    for name in names:
        try:
            content = (directory / name).read_text(encoding="utf-8").strip()
        except OSError as exc:
            logger.warning("could not read character file %s: %s", name, exc)
            continue
        if content:
            settings.append(content)
            logger.info("loaded character setting: %s", name)
    return settings
