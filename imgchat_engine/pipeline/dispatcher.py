"""Global cooldown with a trailing-edge guarantee.

The dispatcher decides, for every completed assistant reply, whether to start
generation now, later, or not at all:

- nobody is watching: drop the event;
- the cooldown has elapsed (or nothing was ever dispatched): dispatch now;
- otherwise: keep the payload as the single pending dispatch, replacing any
  older one, and arm a deadline at the end of the cooldown.

The deadline is not a separate timer thread. The owning worker uses
`time_until_deadline()` as its wait timeout and calls `fire_due()` when it
wakes, so all state here is touched by exactly one thread.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Callable, Sequence

from ..chat.transcript import Turn

logger = logging.getLogger(__name__)


class DispatcherState(enum.Enum):
    IDLE = "idle"
    DEFERRED = "deferred"


class SubmitResult(enum.Enum):
    DROPPED = "dropped"
    DISPATCHED = "dispatched"
    DEFERRED = "deferred"


@dataclass(frozen=True)
class PendingDispatch:
    turns: tuple[Turn, ...]
    session_path: str


DispatchFn = Callable[[PendingDispatch], None]


class RateLimitedDispatcher:
    def __init__(
        self,
        interval_s: float,
        dispatch: DispatchFn,
        *,
        has_viewers: Callable[[], bool] = lambda: True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.interval_s = max(0.0, float(interval_s))
        self._dispatch = dispatch
        self._has_viewers = has_viewers
        self._clock = clock
        self._last_dispatch_at: float | None = None
        self._pending: PendingDispatch | None = None
        self._deadline: float | None = None

    @property
    def state(self) -> DispatcherState:
        return DispatcherState.DEFERRED if self._pending is not None else DispatcherState.IDLE

    @property
    def pending(self) -> PendingDispatch | None:
        return self._pending

    @property
    def last_dispatch_at(self) -> float | None:
        return self._last_dispatch_at

    def submit(self, turns: Sequence[Turn], session_path: str) -> SubmitResult:
        if not self._has_viewers():
            logger.debug("no viewers connected; dropping reply from %s", session_path)
            return SubmitResult.DROPPED

        payload = PendingDispatch(turns=tuple(turns), session_path=str(session_path))
        now = self._clock()
        elapsed = None if self._last_dispatch_at is None else now - self._last_dispatch_at
        if elapsed is None or elapsed >= self.interval_s:
            self._pending = None
            self._deadline = None
            self._last_dispatch_at = now
            if elapsed is None:
                logger.debug("immediate generation (first dispatch)")
            else:
                logger.debug("immediate generation (%.0fs since last)", elapsed)
            self._dispatch(payload)
            return SubmitResult.DISPATCHED

        self._pending = payload
        self._deadline = self._last_dispatch_at + self.interval_s
        logger.debug("deferring generation (%.0fs remaining)", self._deadline - now)
        return SubmitResult.DEFERRED

    def time_until_deadline(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def fire_due(self) -> bool:
        """Dispatch the pending payload if its deadline has passed."""
        if self._deadline is None:
            return False
        now = self._clock()
        if now < self._deadline:
            return False
        payload = self._pending
        self._pending = None
        self._deadline = None
        if payload is None:
            return False
        self._last_dispatch_at = now
        logger.debug("deferred generation triggered for %s", payload.session_path)
        self._dispatch(payload)
        return True

    def cancel(self) -> None:
        self._pending = None
        self._deadline = None
