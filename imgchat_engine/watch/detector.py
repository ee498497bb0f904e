"""Debounced filesystem change detection for transcript files.

A recursive watchdog observer reports create/modify events under the watch
root. Each write to a transcript (re)starts a per-file timer; the file is only
reported as ready once it has been quiet for the debounce period.

Directories created after startup are covered by the recursive observer, but a
file written into a brand-new directory before the platform backend has
attached to it can be missed once. The next write to that file is seen
normally, and because readers always consume from their stored offset nothing
appended before that point is lost.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..chat.transcript import TRANSCRIPT_SUFFIX

logger = logging.getLogger(__name__)

ReadyCallback = Callable[[str], None]


class _TranscriptEventHandler(FileSystemEventHandler):
    def __init__(self, detector: "ChangeDetector") -> None:
        super().__init__()
        self._detector = detector

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            logger.debug("directory created: %s", event.src_path)
            return
        self._detector.notify(_as_str(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._detector.notify(_as_str(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        # Atomic-rename writers show up as a move onto the transcript path.
        if event.is_directory:
            return
        self._detector.notify(_as_str(event.dest_path))


class ChangeDetector:
    def __init__(
        self,
        root: str | Path,
        on_ready: ReadyCallback,
        *,
        debounce_s: float = 3.0,
        suffix: str = TRANSCRIPT_SUFFIX,
    ) -> None:
        self.root = Path(root)
        self.debounce_s = max(0.0, float(debounce_s))
        self.suffix = suffix
        self._on_ready = on_ready
        self._lock = threading.Lock()
        self._timers: dict[str, threading.Timer] = {}
        self._stopped = threading.Event()
        self._observer: Observer | None = None

    def start(self) -> None:
        if not self.root.is_dir():
            raise FileNotFoundError(f"watch directory does not exist: {self.root}")
        observer = Observer()
        observer.schedule(_TranscriptEventHandler(self), str(self.root), recursive=True)
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.info("watching %s for *%s changes", self.root, self.suffix)

    def stop(self, *, join_timeout_s: float = 2.0) -> None:
        self._stopped.set()
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()
        observer = self._observer
        self._observer = None
        if observer is not None:
            observer.stop()
            observer.join(timeout=max(0.0, float(join_timeout_s)))

    def notify(self, path: str) -> None:
        """Record a write to `path`, restarting its debounce timer."""
        if self._stopped.is_set() or not path.endswith(self.suffix):
            return
        with self._lock:
            previous = self._timers.get(path)
            if previous is not None:
                previous.cancel()
            timer = threading.Timer(self.debounce_s, self._fire, args=(path,))
            timer.daemon = True
            timer.name = f"imgchat-debounce-{Path(path).name}"
            self._timers[path] = timer
            timer.start()

    def pending(self) -> list[str]:
        with self._lock:
            return sorted(self._timers)

    def _fire(self, path: str) -> None:
        with self._lock:
            timer = self._timers.get(path)
            if timer is None or timer is not threading.current_thread():
                # Superseded by a newer write.
                return
            del self._timers[path]
        if self._stopped.is_set():
            return
        try:
            self._on_ready(path)
        except Exception:
            logger.exception("failed to handle change to %s", path)


def _as_str(value: str | bytes) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)
