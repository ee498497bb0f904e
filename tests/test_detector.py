from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest

from imgchat_engine.watch.detector import ChangeDetector


class ReadyRecorder:
    def __init__(self) -> None:
        self.paths: list[str] = []
        self.event = threading.Event()
        self._lock = threading.Lock()

    def __call__(self, path: str) -> None:
        with self._lock:
            self.paths.append(path)
        self.event.set()


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


def test_notify_fires_once_after_quiet_period(tmp_path: Path) -> None:
    recorder = ReadyRecorder()
    detector = ChangeDetector(tmp_path, recorder, debounce_s=0.2)
    target = str(tmp_path / "session.jsonl")

    for _ in range(5):
        detector.notify(target)
        time.sleep(0.05)
    assert recorder.paths == []
    assert detector.pending() == [target]

    assert recorder.event.wait(timeout=5)
    time.sleep(0.4)
    assert recorder.paths == [target]
    assert detector.pending() == []
    detector.stop()


def test_notify_tracks_files_independently(tmp_path: Path) -> None:
    recorder = ReadyRecorder()
    detector = ChangeDetector(tmp_path, recorder, debounce_s=0.05)
    first = str(tmp_path / "a.jsonl")
    second = str(tmp_path / "b.jsonl")
    detector.notify(first)
    detector.notify(second)
    assert _wait_for(lambda: len(recorder.paths) == 2)
    assert sorted(recorder.paths) == [first, second]
    detector.stop()


def test_notify_ignores_other_suffixes(tmp_path: Path) -> None:
    recorder = ReadyRecorder()
    detector = ChangeDetector(tmp_path, recorder, debounce_s=0.01)
    detector.notify(str(tmp_path / "notes.txt"))
    detector.notify(str(tmp_path / "session.jsonl.tmp"))
    assert detector.pending() == []
    time.sleep(0.1)
    assert recorder.paths == []


def test_stop_cancels_pending_timers(tmp_path: Path) -> None:
    recorder = ReadyRecorder()
    detector = ChangeDetector(tmp_path, recorder, debounce_s=0.2)
    detector.notify(str(tmp_path / "session.jsonl"))
    detector.stop()
    assert detector.pending() == []
    time.sleep(0.4)
    assert recorder.paths == []

    detector.notify(str(tmp_path / "session.jsonl"))
    assert detector.pending() == []


def test_callback_errors_do_not_stop_detection(tmp_path: Path) -> None:
    seen: list[str] = []

    def _flaky(path: str) -> None:
        seen.append(path)
        if len(seen) == 1:
            raise OSError("transient read failure")

    detector = ChangeDetector(tmp_path, _flaky, debounce_s=0.02)
    target = str(tmp_path / "session.jsonl")
    detector.notify(target)
    assert _wait_for(lambda: len(seen) == 1)
    detector.notify(target)
    assert _wait_for(lambda: len(seen) == 2)
    detector.stop()


def test_start_requires_existing_root(tmp_path: Path) -> None:
    detector = ChangeDetector(tmp_path / "missing", lambda path: None)
    with pytest.raises(FileNotFoundError):
        detector.start()


def test_observer_reports_writes_in_nested_directories(tmp_path: Path) -> None:
    existing = tmp_path / "project-a"
    existing.mkdir()
    recorder = ReadyRecorder()
    detector = ChangeDetector(tmp_path, recorder, debounce_s=0.1)
    detector.start()
    try:
        target = existing / "session.jsonl"
        target.write_text('{"type":"user"}\n', encoding="utf-8")
        assert _wait_for(lambda: str(target) in recorder.paths, timeout=10)

        ignored = existing / "notes.txt"
        ignored.write_text("hello", encoding="utf-8")
        time.sleep(0.3)
        assert str(ignored) not in recorder.paths
    finally:
        detector.stop()


def test_observer_reports_writes_in_directories_created_after_start(tmp_path: Path) -> None:
    recorder = ReadyRecorder()
    detector = ChangeDetector(tmp_path, recorder, debounce_s=0.1)
    detector.start()
    try:
        created = tmp_path / "project-new" / "nested"
        created.mkdir(parents=True)
        time.sleep(0.3)
        target = created / "session.jsonl"
        target.write_text('{"type":"user"}\n', encoding="utf-8")
        if not _wait_for(lambda: str(target) in recorder.paths, timeout=5):
            # A write racing the new directory's watch may be missed once; the next one is seen.
            with target.open("a", encoding="utf-8") as handle:
                handle.write('{"type":"assistant"}\n')
        assert _wait_for(lambda: str(target) in recorder.paths, timeout=10)
    finally:
        detector.stop()
