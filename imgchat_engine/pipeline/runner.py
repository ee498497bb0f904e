"""Thread wiring for the watch → prompt → image → viewers pipeline."""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from ..chat.transcript import (
    Turn,
    extract_title,
    is_reply_complete,
    parse_transcript,
    session_id_from_path,
    tail_turns,
)
from ..config import Config
from ..providers.base import ImageGenerator, PromptGenerator
from ..server.viewers import SessionImage, ViewerHub
from ..watch.detector import ChangeDetector
from ..watch.reader import IncrementalReader, TranscriptBuffer
from .dispatcher import PendingDispatch, RateLimitedDispatcher
from .registry import SessionTitleCache
from .stages import ImageStage, PromptRequest, PromptStage

logger = logging.getLogger(__name__)

STAGE_QUEUE_SIZE = 4
READY_QUEUE_SIZE = 16
_POLL_S = 0.25

T = TypeVar("T")


@dataclass(frozen=True)
class PromptJob:
    request: PromptRequest
    history: tuple[Turn, ...]


@dataclass(frozen=True)
class GeneratedPrompt:
    prompt: str
    session_id: str
    title: str


class Pipeline:
    def __init__(
        self,
        config: Config,
        prompt_generator: PromptGenerator,
        image_generator: ImageGenerator,
        hub: ViewerHub,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.hub = hub
        self.prompt_stage = PromptStage(prompt_generator)
        self.image_stage = ImageStage(image_generator, config.image_dir, max_images=config.max_images)
        self.titles = SessionTitleCache(config.title_cache_size)
        self.reader = IncrementalReader()
        self.buffer = TranscriptBuffer()
        self.dispatcher = RateLimitedDispatcher(
            config.generate_interval_s,
            self._enqueue_prompt,
            has_viewers=hub.has_viewers,
            clock=clock,
        )
        self.detector = ChangeDetector(config.projects_dir, self.notify_ready, debounce_s=config.debounce_s)

        self.ready_paths: queue.Queue[str] = queue.Queue(maxsize=READY_QUEUE_SIZE)
        self.prompt_jobs: queue.Queue[PromptJob] = queue.Queue(maxsize=STAGE_QUEUE_SIZE)
        self.image_jobs: queue.Queue[GeneratedPrompt] = queue.Queue(maxsize=STAGE_QUEUE_SIZE)
        self.broadcasts: queue.Queue[SessionImage] = queue.Queue(maxsize=STAGE_QUEUE_SIZE)

        self._histories: dict[str, tuple[Turn, ...]] = {}
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def start(self) -> None:
        self.detector.start()
        workers = (
            ("imgchat-dispatch", self._dispatch_loop),
            ("imgchat-prompt", self._prompt_loop),
            ("imgchat-image", self._image_loop),
            ("imgchat-broadcast", self._broadcast_loop),
        )
        for name, target in workers:
            thread = threading.Thread(target=target, name=name, daemon=True)
            thread.start()
            self._threads.append(thread)

    def stop(self, *, join_timeout_s: float = 2.0) -> None:
        self._stop.set()
        self.detector.stop(join_timeout_s=join_timeout_s)
        for thread in self._threads:
            thread.join(timeout=max(0.0, float(join_timeout_s)))
            if thread.is_alive():
                # Usually a backend call still in flight; it is abandoned with the daemon thread.
                logger.warning("%s still busy at shutdown", thread.name)
        self._threads.clear()

    def notify_ready(self, path: str) -> None:
        """Detector callback: `path` has been quiet for the debounce period."""
        self._put(self.ready_paths, path)

    def handle_ready(self, path: str) -> None:
        """Read new bytes for `path` and offer a completed reply to the dispatcher."""
        event = self.reader.read_new(path)
        if event is None:
            return
        data = self.buffer.append(event)
        turns = parse_transcript(data)
        if not turns:
            return
        self._histories[event.path] = tuple(turns)
        if not is_reply_complete(turns):
            return
        recent = tail_turns(turns, self.config.recent_turns)
        self.dispatcher.submit(recent, event.path)

    def process_prompt_job(self, job: PromptJob) -> GeneratedPrompt | None:
        outcome = self.prompt_stage.run(job.request)
        if outcome.is_skipped:
            return None
        if not outcome.is_ok:
            logger.error("prompt generation error: %s", outcome.error)
            return None
        session_path = job.request.session_path
        session_id = session_id_from_path(session_path)
        title = self.titles.get_or_compute(
            session_id,
            lambda: extract_title(job.history, self.config.title_max_len),
        )
        return GeneratedPrompt(prompt=str(outcome.value), session_id=session_id, title=title)

    def process_image_job(self, job: GeneratedPrompt) -> SessionImage | None:
        outcome = self.image_stage.run(job.prompt)
        if outcome.is_skipped:
            return None
        if not outcome.is_ok:
            logger.error("image generation error: %s", outcome.error)
            return None
        return SessionImage.now(filename=str(outcome.value), session_id=job.session_id, title=job.title)

    def _enqueue_prompt(self, pending: PendingDispatch) -> None:
        history = self._histories.get(pending.session_path, pending.turns)
        request = PromptRequest(turns=pending.turns, session_path=pending.session_path)
        self._put(self.prompt_jobs, PromptJob(request=request, history=history))

    def _dispatch_loop(self) -> None:
        while not self._stop.is_set():
            wait_s = self.dispatcher.time_until_deadline()
            timeout = _POLL_S if wait_s is None else min(_POLL_S, wait_s)
            try:
                path = self.ready_paths.get(timeout=timeout)
            except queue.Empty:
                path = None
            if path is not None:
                try:
                    self.handle_ready(path)
                except Exception:
                    logger.exception("failed to process %s", path)
            self.dispatcher.fire_due()
        self.dispatcher.cancel()

    def _prompt_loop(self) -> None:
        self._stage_loop(self.prompt_jobs, self.process_prompt_job, self.image_jobs)

    def _image_loop(self) -> None:
        self._stage_loop(self.image_jobs, self.process_image_job, self.broadcasts)

    def _broadcast_loop(self) -> None:
        while not self._stop.is_set():
            item = self._get(self.broadcasts)
            if item is None:
                continue
            logger.debug("broadcasting new image: %s", item.filename)
            self.hub.broadcast(item.to_payload())

    def _stage_loop(
        self,
        inbox: "queue.Queue[T]",
        process: Callable[[T], object | None],
        outbox: "queue.Queue",
    ) -> None:
        while not self._stop.is_set():
            item = self._get(inbox)
            if item is None:
                continue
            try:
                result = process(item)
            except Exception:
                logger.exception("pipeline stage crashed; dropping event")
                continue
            if result is not None:
                self._put(outbox, result)

    def _get(self, inbox: "queue.Queue[T]") -> T | None:
        try:
            return inbox.get(timeout=_POLL_S)
        except queue.Empty:
            return None

    def _put(self, outbox: "queue.Queue", item: object) -> bool:
        while not self._stop.is_set():
            try:
                outbox.put(item, timeout=_POLL_S)
            except queue.Full:
                continue
            return True
        return False
