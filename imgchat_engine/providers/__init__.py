"""Backend selection.

The pipeline only depends on the `PromptGenerator` / `ImageGenerator`
protocols; which concrete backend fills each slot is decided here at startup.
"""

from __future__ import annotations

from typing import Callable

from ..config import Config, ConfigError
from .base import ImageGenerator, PromptGenerator
from .dryrun import DryRunImageGenerator, DryRunPromptGenerator
from .gemini import GeminiImageGenerator, GeminiPromptGenerator
from .ollama import OllamaPromptGenerator
from .persona import PersonaBook
from .stable_diffusion import StableDiffusionImageGenerator

PromptFactory = Callable[[Config, PersonaBook], PromptGenerator]
ImageFactory = Callable[[Config], ImageGenerator]

PROMPT_FACTORIES: dict[str, PromptFactory] = {
    "gemini": lambda cfg, personas: GeminiPromptGenerator(
        cfg.gemini_api_key, model=cfg.gemini_model, personas=personas
    ),
    "ollama": lambda cfg, personas: OllamaPromptGenerator(
        cfg.ollama_base_url, cfg.ollama_model, personas=personas
    ),
    "dryrun": lambda cfg, personas: DryRunPromptGenerator(personas),
}

IMAGE_FACTORIES: dict[str, ImageFactory] = {
    "sd": lambda cfg: StableDiffusionImageGenerator(cfg.sd),
    "gemini": lambda cfg: GeminiImageGenerator(cfg.gemini_api_key, model=cfg.gemini_image_model),
    "dryrun": lambda cfg: DryRunImageGenerator(),
}


def build_prompt_generator(config: Config, personas: PersonaBook | None = None) -> PromptGenerator:
    factory = PROMPT_FACTORIES.get(config.prompt_generator)
    if factory is None:
        raise ConfigError(f"unknown prompt generator: {config.prompt_generator!r}")
    return factory(config, personas or PersonaBook())


def build_image_generator(config: Config) -> ImageGenerator:
    factory = IMAGE_FACTORIES.get(config.image_generator)
    if factory is None:
        raise ConfigError(f"unknown image generator: {config.image_generator!r}")
    return factory(config)


__all__ = [
    "IMAGE_FACTORIES",
    "PROMPT_FACTORIES",
    "ImageGenerator",
    "PersonaBook",
    "PromptGenerator",
    "build_image_generator",
    "build_prompt_generator",
]
