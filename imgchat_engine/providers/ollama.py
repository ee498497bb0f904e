"""Prompt provider backed by a local ollama instance."""

from __future__ import annotations

from typing import Sequence

from ..chat.transcript import Turn
from .http import post_json
from .persona import PersonaBook, build_user_prompt

DEFAULT_BASE_URL = "http://localhost:11434"
DEFAULT_MODEL = "gemma3"


class OllamaPromptGenerator:
    name = "ollama"

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        *,
        personas: PersonaBook | None = None,
        temperature: float = 0.8,
        timeout_s: float = 120.0,
    ) -> None:
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.model = model or DEFAULT_MODEL
        self.personas = personas or PersonaBook()
        self.temperature = temperature
        self.timeout_s = timeout_s

    def build_payload(self, turns: Sequence[Turn], session_path: str) -> dict[str, object]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": self.personas.system_prompt_for(session_path)},
                {"role": "user", "content": build_user_prompt(turns)},
            ],
            "stream": False,
            "options": {"temperature": self.temperature},
        }

    def generate(self, turns: Sequence[Turn], session_path: str) -> str:
        response = post_json(
            f"{self.base_url}/api/chat",
            self.build_payload(turns, session_path),
            label="ollama",
            timeout_s=self.timeout_s,
        )
        message = response.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        text = str(content or "").strip()
        if not text:
            raise RuntimeError("empty response from ollama")
        return text
