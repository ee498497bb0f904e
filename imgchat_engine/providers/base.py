"""Provider base classes."""

from __future__ import annotations

from typing import Protocol, Sequence

from ..chat.transcript import Turn


class PromptGenerator(Protocol):
    name: str

    def generate(self, turns: Sequence[Turn], session_path: str) -> str:
        ...


class ImageGenerator(Protocol):
    name: str

    def generate(self, prompt: str) -> bytes:
        ...
