"""Single-slot generation stages.

Each stage wraps one backend call behind a `StageGuard`. A call that arrives
while the previous one is still running is not queued: it returns a SKIPPED
outcome so the caller can quietly drop the event. Failures are returned as
FAILED outcomes carrying the exception instead of being raised.
"""

from __future__ import annotations

import contextlib
import enum
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator

from ..chat.transcript import Turn
from ..providers.base import ImageGenerator, PromptGenerator
from ..providers.storage import cleanup_old_images, save_image
from ..utils import preview_text

logger = logging.getLogger(__name__)


class StageStatus(enum.Enum):
    OK = "ok"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class StageOutcome:
    status: StageStatus
    value: Any = None
    error: BaseException | None = None

    @classmethod
    def ok(cls, value: Any) -> "StageOutcome":
        return cls(StageStatus.OK, value=value)

    @classmethod
    def skipped(cls) -> "StageOutcome":
        return cls(StageStatus.SKIPPED)

    @classmethod
    def failed(cls, error: BaseException) -> "StageOutcome":
        return cls(StageStatus.FAILED, error=error)

    @property
    def is_ok(self) -> bool:
        return self.status is StageStatus.OK

    @property
    def is_skipped(self) -> bool:
        return self.status is StageStatus.SKIPPED


class StageGuard:
    """Busy flag for a stage; the lock only covers the flag flip."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._busy = False

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._busy

    def try_acquire(self) -> bool:
        with self._lock:
            if self._busy:
                return False
            self._busy = True
            return True

    def release(self) -> None:
        with self._lock:
            self._busy = False

    @contextlib.contextmanager
    def claim(self) -> Iterator[bool]:
        acquired = self.try_acquire()
        try:
            yield acquired
        finally:
            if acquired:
                self.release()


@dataclass(frozen=True)
class PromptRequest:
    turns: tuple[Turn, ...]
    session_path: str


class PromptStage:
    name = "prompt"

    def __init__(self, generator: PromptGenerator) -> None:
        self.generator = generator
        self.guard = StageGuard()

    def run(self, request: PromptRequest) -> StageOutcome:
        with self.guard.claim() as acquired:
            if not acquired:
                logger.debug("prompt generation already in progress, skipping")
                return StageOutcome.skipped()
            try:
                text = self.generator.generate(list(request.turns), request.session_path)
            except Exception as exc:
                return StageOutcome.failed(exc)
            cleaned = str(text or "").strip()
            if not cleaned:
                return StageOutcome.failed(RuntimeError(f"empty response from {self.generator.name}"))
            logger.debug("generated prompt (%d chars): %s", len(cleaned), preview_text(cleaned))
            return StageOutcome.ok(cleaned)


class ImageStage:
    name = "image"

    def __init__(self, generator: ImageGenerator, output_dir: str | Path, *, max_images: int = 30) -> None:
        self.generator = generator
        self.output_dir = Path(output_dir)
        self.max_images = max_images
        self.guard = StageGuard()

    def run(self, prompt: str) -> StageOutcome:
        with self.guard.claim() as acquired:
            if not acquired:
                logger.debug("image generation already in progress, skipping")
                return StageOutcome.skipped()
            try:
                image_bytes = self.generator.generate(prompt)
                if not image_bytes:
                    raise RuntimeError(f"{self.generator.name} returned no image data")
                filename = save_image(self.output_dir, image_bytes)
            except Exception as exc:
                return StageOutcome.failed(exc)
            try:
                cleanup_old_images(self.output_dir, self.max_images)
            except Exception:
                logger.exception("image cleanup failed in %s", self.output_dir)
            return StageOutcome.ok(filename)
