"""Runtime configuration loaded from the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

logger = logging.getLogger(__name__)

PROMPT_GENERATORS = ("gemini", "ollama", "dryrun")
IMAGE_GENERATORS = ("sd", "gemini", "dryrun")

DEFAULT_GENERATE_INTERVAL_S = 60.0
DEFAULT_DEBOUNCE_S = 3.0
DEFAULT_RECENT_TURNS = 10
DEFAULT_TITLE_MAX_LEN = 50
DEFAULT_TITLE_CACHE_SIZE = 50
DEFAULT_MAX_IMAGES = 30


class ConfigError(ValueError):
    """Raised when the environment cannot produce a usable configuration."""


@dataclass(frozen=True)
class StableDiffusionSettings:
    base_url: str = "http://localhost:7860"
    steps: int = 28
    width: int = 512
    height: int = 768
    cfg_scale: float = 5.0
    sampler_name: str = "Euler a"
    extra_prompt: str = ""
    extra_negative_prompt: str = ""


@dataclass(frozen=True)
class Config:
    projects_dir: Path
    prompt_generator: str = "gemini"
    image_generator: str = "sd"
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    gemini_image_model: str = "gemini-2.5-flash-image"
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "gemma3"
    sd: StableDiffusionSettings = field(default_factory=StableDiffusionSettings)
    server_host: str = "0.0.0.0"
    server_port: int = 8080
    image_dir: Path = Path("generated_images")
    max_images: int = DEFAULT_MAX_IMAGES
    characters_dir: Path = Path("characters")
    character_file: Path | None = None
    debounce_s: float = DEFAULT_DEBOUNCE_S
    generate_interval_s: float = DEFAULT_GENERATE_INTERVAL_S
    recent_turns: int = DEFAULT_RECENT_TURNS
    title_max_len: int = DEFAULT_TITLE_MAX_LEN
    title_cache_size: int = DEFAULT_TITLE_CACHE_SIZE
    debug: bool = False


def load_config(environ: Mapping[str, str] | None = None) -> Config:
    env = os.environ if environ is None else environ

    prompt_generator = _choice(env, "PROMPT_GENERATOR", "gemini", PROMPT_GENERATORS)
    image_generator = _choice(env, "IMAGE_GENERATOR", "sd", IMAGE_GENERATORS)

    api_key = str(env.get("GEMINI_API_KEY") or "").strip()
    if "gemini" in {prompt_generator, image_generator} and not api_key:
        raise ConfigError(
            "GEMINI_API_KEY environment variable is required when the prompt or image generator is \"gemini\"."
        )

    projects_raw = str(env.get("CLAUDE_PROJECTS_DIR") or "").strip()
    projects_dir = Path(projects_raw).expanduser() if projects_raw else Path.home() / ".claude" / "projects"

    character_file_raw = str(env.get("CHARACTER_FILE") or "").strip()

    sd = StableDiffusionSettings(
        base_url=_text(env, "SD_BASE_URL", "http://localhost:7860"),
        steps=_positive_int(env, "IMGCHAT_SD_STEPS", 28),
        width=_positive_int(env, "IMGCHAT_SD_WIDTH", 512),
        height=_positive_int(env, "IMGCHAT_SD_HEIGHT", 768),
        cfg_scale=_positive_float(env, "IMGCHAT_SD_CFG_SCALE", 5.0),
        sampler_name=_text(env, "IMGCHAT_SD_SAMPLER_NAME", "Euler a"),
        extra_prompt=str(env.get("IMGCHAT_SD_EXTRA_PROMPT") or ""),
        extra_negative_prompt=str(env.get("IMGCHAT_SD_EXTRA_NEG_PROMPT") or ""),
    )

    return Config(
        projects_dir=projects_dir,
        prompt_generator=prompt_generator,
        image_generator=image_generator,
        gemini_api_key=api_key,
        gemini_model=_text(env, "GEMINI_MODEL", "gemini-2.5-flash"),
        gemini_image_model=_text(env, "GEMINI_IMAGE_MODEL", "gemini-2.5-flash-image"),
        ollama_base_url=_text(env, "OLLAMA_BASE_URL", "http://localhost:11434"),
        ollama_model=_text(env, "OLLAMA_MODEL", "gemma3"),
        sd=sd,
        server_port=_port(env, "SERVER_PORT", 8080),
        image_dir=Path(_text(env, "IMGCHAT_IMAGE_DIR", "generated_images")).expanduser(),
        max_images=_positive_int(env, "IMGCHAT_MAX_IMAGES", DEFAULT_MAX_IMAGES),
        characters_dir=Path(_text(env, "CHARACTERS_DIR", "characters")).expanduser(),
        character_file=Path(character_file_raw).expanduser() if character_file_raw else None,
        generate_interval_s=float(_positive_int(env, "GENERATE_INTERVAL", int(DEFAULT_GENERATE_INTERVAL_S))),
        debug=str(env.get("DEBUG") or "").strip().lower() in {"1", "true"},
    )


def _text(env: Mapping[str, str], key: str, default: str) -> str:
    value = str(env.get(key) or "").strip()
    return value or default


def _choice(env: Mapping[str, str], key: str, default: str, allowed: tuple[str, ...]) -> str:
    value = str(env.get(key) or "").strip().lower() or default
    if value not in allowed:
        options = " or ".join(f"\"{item}\"" for item in allowed)
        raise ConfigError(f"{key} must be {options}, got {value!r}")
    return value


def _positive_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = str(env.get(key) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        value = 0
    if value <= 0:
        logger.warning("invalid %s %r, using default %s", key, raw, default)
        return default
    return value


def _positive_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = str(env.get(key) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        value = 0.0
    if value <= 0:
        logger.warning("invalid %s %r, using default %.1f", key, raw, default)
        return default
    return value


def _port(env: Mapping[str, str], key: str, default: int) -> int:
    value = _positive_int(env, key, default)
    if value > 65535:
        raise ConfigError(f"{key} must be a valid TCP port, got {value}")
    return value
