"""Gemini prompt and image providers."""

from __future__ import annotations

import logging
from typing import Any, Sequence

try:
    from google import genai  # type: ignore
    from google.genai import types  # type: ignore
except Exception:  # pragma: no cover
    genai = None  # type: ignore
    types = None  # type: ignore

from ..chat.transcript import Turn
from .persona import PersonaBook, build_user_prompt

logger = logging.getLogger(__name__)

DEFAULT_TEXT_MODEL = "gemini-2.5-flash"
DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image"
IMAGE_ASPECT_RATIO = "3:4"


def _build_client(api_key: str, client: Any | None) -> Any:
    if client is not None:
        return client
    if not api_key:
        raise RuntimeError("GEMINI_API_KEY not set.")
    if genai is None:
        raise RuntimeError("google-genai package not installed. Run: pip install google-genai")
    return genai.Client(api_key=api_key)


class GeminiPromptGenerator:
    name = "gemini"

    def __init__(
        self,
        api_key: str,
        *,
        model: str = DEFAULT_TEXT_MODEL,
        personas: PersonaBook | None = None,
        temperature: float = 0.8,
        max_output_tokens: int = 8192,
        client: Any | None = None,
    ) -> None:
        self.model = model or DEFAULT_TEXT_MODEL
        self.personas = personas or PersonaBook()
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self._client = _build_client(api_key, client)

    def generate(self, turns: Sequence[Turn], session_path: str) -> str:
        system_prompt = self.personas.system_prompt_for(session_path)
        user_prompt = build_user_prompt(turns)
        try:
            response = self._client.models.generate_content(
                model=self.model,
                contents=user_prompt,
                config=_text_config(system_prompt, self.temperature, self.max_output_tokens),
            )
        except Exception as exc:
            raise RuntimeError(f"Gemini API error: {exc}") from exc

        candidates = getattr(response, "candidates", None) or []
        if candidates:
            reason = getattr(candidates[0], "finish_reason", None)
            reason_name = str(getattr(reason, "name", reason) or "")
            if reason_name and reason_name.upper() != "STOP":
                logger.warning("Gemini finish reason: %s", reason_name)

        text = _extract_text(candidates)
        if not text:
            raise RuntimeError("empty response from Gemini")
        return text.strip()


class GeminiImageGenerator:
    name = "gemini"

    def __init__(
        self,
        api_key: str,
        *,
        model: str = DEFAULT_IMAGE_MODEL,
        aspect_ratio: str = IMAGE_ASPECT_RATIO,
        client: Any | None = None,
    ) -> None:
        self.model = model or DEFAULT_IMAGE_MODEL
        self.aspect_ratio = aspect_ratio
        self._client = _build_client(api_key, client)

    def generate(self, prompt: str) -> bytes:
        try:
            response = self._client.models.generate_content(
                model=self.model,
                contents=prompt,
                config=_image_config(self.aspect_ratio),
            )
        except Exception as exc:
            raise RuntimeError(f"Gemini image API error: {exc}") from exc

        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            raise RuntimeError("empty response from Gemini")
        blobs = _extract_image_bytes(candidates)
        if not blobs:
            raise RuntimeError("no image data found in Gemini response")
        return blobs[0]["bytes"]


def _text_config(system_prompt: str, temperature: float, max_output_tokens: int) -> Any:
    kwargs: dict[str, Any] = {
        "system_instruction": system_prompt,
        "temperature": temperature,
        "max_output_tokens": max_output_tokens,
    }
    return types.GenerateContentConfig(**kwargs)


def _image_config(aspect_ratio: str) -> Any:
    return types.GenerateContentConfig(
        response_modalities=["IMAGE"],
        image_config=types.ImageConfig(aspect_ratio=aspect_ratio),
    )


def _extract_text(candidates: Sequence[Any]) -> str:
    if not candidates:
        return ""
    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []
    texts: list[str] = []
    for part in parts:
        text = getattr(part, "text", None)
        if isinstance(text, str) and text:
            texts.append(text)
    return "".join(texts)


def _extract_image_bytes(candidates: Sequence[Any]) -> list[dict[str, Any]]:
    blobs: list[dict[str, Any]] = []
    for candidate in candidates:
        content = getattr(candidate, "content", None)
        parts = getattr(content, "parts", None) or getattr(candidate, "parts", None) or []
        for part in parts:
            inline_data = getattr(part, "inline_data", None)
            data = getattr(inline_data, "data", None) if inline_data else None
            if data is None:
                continue
            mime_type = getattr(inline_data, "mime_type", None)
            if isinstance(data, str):
                data = data.encode("latin1")
            if isinstance(data, (bytes, bytearray)) and data:
                blobs.append({"bytes": bytes(data), "mime_type": mime_type})
    return blobs
