from __future__ import annotations

import os
import threading
from pathlib import Path

from imgchat_engine.chat.transcript import ROLE_ASSISTANT, ROLE_USER, Turn
from imgchat_engine.pipeline import stages
from imgchat_engine.pipeline.stages import (
    ImageStage,
    PromptRequest,
    PromptStage,
    StageGuard,
    StageStatus,
)


class BlockingPromptGenerator:
    name = "blocking"

    def __init__(self) -> None:
        self.entered = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def generate(self, turns: list[Turn], session_path: str) -> str:
        self.calls += 1
        self.entered.set()
        self.release.wait(timeout=5)
        return "  anime girl waving  "


class StaticPromptGenerator:
    name = "static"

    def __init__(self, text: str = "", error: Exception | None = None) -> None:
        self.text = text
        self.error = error

    def generate(self, turns: list[Turn], session_path: str) -> str:
        if self.error is not None:
            raise self.error
        return self.text


class StaticImageGenerator:
    name = "static-image"

    def __init__(self, data: bytes = b"\x89PNG fake", error: Exception | None = None) -> None:
        self.data = data
        self.error = error
        self.prompts: list[str] = []

    def generate(self, prompt: str) -> bytes:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.data


def _request() -> PromptRequest:
    return PromptRequest(
        turns=(Turn(ROLE_USER, "hello"), Turn(ROLE_ASSISTANT, "hi there")),
        session_path="/tmp/session.jsonl",
    )


def test_guard_claim_is_exclusive_and_released() -> None:
    guard = StageGuard()
    with guard.claim() as first:
        assert first is True
        assert guard.busy is True
        with guard.claim() as second:
            assert second is False
        assert guard.busy is True
    assert guard.busy is False
    assert guard.try_acquire() is True
    guard.release()


def test_prompt_stage_skips_while_busy() -> None:
    generator = BlockingPromptGenerator()
    stage = PromptStage(generator)
    results = []

    worker = threading.Thread(target=lambda: results.append(stage.run(_request())), daemon=True)
    worker.start()
    assert generator.entered.wait(timeout=5)

    overlapping = stage.run(_request())
    assert overlapping.status is StageStatus.SKIPPED

    generator.release.set()
    worker.join(timeout=5)
    assert not worker.is_alive()
    assert results[0].is_ok
    assert results[0].value == "anime girl waving"
    assert generator.calls == 1

    # Guard is free again once the first call returned.
    generator.release.set()
    assert stage.run(_request()).is_ok
    assert generator.calls == 2


def test_prompt_stage_failure_releases_guard() -> None:
    stage = PromptStage(StaticPromptGenerator(error=RuntimeError("backend down")))
    outcome = stage.run(_request())
    assert outcome.status is StageStatus.FAILED
    assert str(outcome.error) == "backend down"
    assert stage.guard.busy is False


def test_prompt_stage_blank_response_is_failure() -> None:
    stage = PromptStage(StaticPromptGenerator(text="   \n"))
    outcome = stage.run(_request())
    assert outcome.status is StageStatus.FAILED
    assert "empty response" in str(outcome.error)


def test_image_stage_saves_png(tmp_path: Path) -> None:
    generator = StaticImageGenerator()
    stage = ImageStage(generator, tmp_path / "images", max_images=5)
    outcome = stage.run("anime girl waving")

    assert outcome.is_ok
    filename = outcome.value
    assert filename.startswith("img_")
    assert filename.endswith(".png")
    assert (tmp_path / "images" / filename).read_bytes() == b"\x89PNG fake"
    assert generator.prompts == ["anime girl waving"]


def test_image_stage_prunes_to_max(tmp_path: Path) -> None:
    for idx in range(3):
        old = tmp_path / f"img_{idx}.png"
        old.write_bytes(b"old")
        os.utime(old, (1_000_000 + idx, 1_000_000 + idx))

    stage = ImageStage(StaticImageGenerator(), tmp_path, max_images=2)
    outcome = stage.run("prompt")

    assert outcome.is_ok
    remaining = sorted(path.name for path in tmp_path.glob("*.png"))
    assert remaining == sorted(["img_2.png", outcome.value])


def test_image_stage_generator_failure(tmp_path: Path) -> None:
    stage = ImageStage(StaticImageGenerator(error=RuntimeError("sd unavailable")), tmp_path)
    outcome = stage.run("prompt")
    assert outcome.status is StageStatus.FAILED
    assert list(tmp_path.iterdir()) == []
    assert stage.guard.busy is False


def test_image_stage_empty_bytes_is_failure(tmp_path: Path) -> None:
    stage = ImageStage(StaticImageGenerator(data=b""), tmp_path)
    outcome = stage.run("prompt")
    assert outcome.status is StageStatus.FAILED
    assert "no image data" in str(outcome.error)


def test_image_stage_cleanup_failure_keeps_result(tmp_path: Path, monkeypatch) -> None:
    def _boom(output_dir, max_images):
        raise OSError("listing failed")

    monkeypatch.setattr(stages, "cleanup_old_images", _boom)
    stage = ImageStage(StaticImageGenerator(), tmp_path)
    outcome = stage.run("prompt")
    assert outcome.is_ok
    assert (tmp_path / outcome.value).exists()
