"""Bounded per-session title cache."""

from __future__ import annotations

import threading
from typing import Callable


class SessionTitleCache:
    """Maps a session id to its display title.

    At capacity, inserting a new key evicts one existing entry. Which entry is
    evicted is unspecified; callers must not rely on recency surviving.
    """

    def __init__(self, capacity: int = 50) -> None:
        self.capacity = max(1, int(capacity))
        self._lock = threading.Lock()
        self._titles: dict[str, str] = {}

    def get(self, session_id: str) -> str | None:
        with self._lock:
            return self._titles.get(session_id)

    def get_or_compute(self, session_id: str, compute: Callable[[], str]) -> str:
        with self._lock:
            cached = self._titles.get(session_id)
        if cached is not None:
            return cached
        title = compute()
        with self._lock:
            existing = self._titles.get(session_id)
            if existing is not None:
                return existing
            if len(self._titles) >= self.capacity:
                victim = next(iter(self._titles))
                del self._titles[victim]
            self._titles[session_id] = title
        return title

    def __len__(self) -> int:
        with self._lock:
            return len(self._titles)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._titles
