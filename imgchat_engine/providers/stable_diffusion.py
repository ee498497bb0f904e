"""Image provider for the Stable Diffusion WebUI txt2img API."""

from __future__ import annotations

import base64
import binascii
from typing import Any

from ..config import StableDiffusionSettings
from .http import post_json


class StableDiffusionImageGenerator:
    name = "sd"

    def __init__(self, settings: StableDiffusionSettings | None = None, *, timeout_s: float = 300.0) -> None:
        self.settings = settings or StableDiffusionSettings()
        self.timeout_s = timeout_s

    def build_payload(self, prompt: str) -> dict[str, Any]:
        settings = self.settings
        return {
            "prompt": _append_extra_prompt(prompt, settings.extra_prompt),
            "negative_prompt": settings.extra_negative_prompt,
            "steps": settings.steps,
            "width": settings.width,
            "height": settings.height,
            "cfg_scale": settings.cfg_scale,
            "sampler_name": settings.sampler_name,
        }

    def generate(self, prompt: str) -> bytes:
        url = self.settings.base_url.rstrip("/") + "/sdapi/v1/txt2img"
        response = post_json(url, self.build_payload(prompt), label="Stable Diffusion", timeout_s=self.timeout_s)
        images = response.get("images")
        if not isinstance(images, list) or not images:
            raise RuntimeError("no images in response")
        try:
            return base64.b64decode(str(images[0]), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise RuntimeError(f"failed to decode base64 image: {exc}") from exc


def _append_extra_prompt(prompt: str, extra: str) -> str:
    if not extra:
        return prompt
    trimmed = prompt.rstrip(" ")
    separator = " " if trimmed.endswith(",") else ", "
    return f"{trimmed}{separator}{extra}"
