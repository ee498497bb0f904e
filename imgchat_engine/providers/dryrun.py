"""Dry-run providers (offline)."""

from __future__ import annotations

import hashlib
import io
import textwrap
from typing import Sequence

from PIL import Image, ImageDraw, ImageFont

from ..chat.transcript import Turn
from .persona import PersonaBook


class DryRunPromptGenerator:
    name = "dryrun"

    def __init__(self, personas: PersonaBook | None = None, *, max_chars: int = 160) -> None:
        self.personas = personas or PersonaBook()
        self.max_chars = max_chars

    def generate(self, turns: Sequence[Turn], session_path: str) -> str:
        if not turns:
            return ""
        latest = " ".join(turns[-1].text.split())[: self.max_chars]
        persona = self.personas.select_index(session_path)
        subject = f"character #{persona}" if persona >= 0 else "an anime girl"
        return f"anime illustration of {subject} reacting to: {latest}"


class DryRunImageGenerator:
    name = "dryrun"

    def __init__(self, width: int = 512, height: int = 768) -> None:
        self.width = width
        self.height = height

    def generate(self, prompt: str) -> bytes:
        image = Image.new("RGB", (self.width, self.height), _color_from_prompt(prompt))
        draw = ImageDraw.Draw(image)
        font = ImageFont.load_default()
        text = "dryrun\n" + "\n".join(textwrap.wrap(prompt[:240], width=40))
        draw.text((20, 20), text, fill=(255, 255, 255), font=font)
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()


def _color_from_prompt(prompt: str) -> tuple[int, int, int]:
    digest = hashlib.sha256(prompt.encode("utf-8")).digest()
    return digest[0], digest[1], digest[2]
