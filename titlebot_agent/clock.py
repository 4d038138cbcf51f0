"""Time source and deferred callbacks.

The scheduler and sequencer never call `time` directly. They go through a
`Clock`, which offers a monotonic reading, a blocking sleep, and `call_later`
for deferred continuations (lock release, the pause between requests).
`SystemClock` backs these with real time and `threading.Timer`. `ManualClock`
keeps virtual time that only moves when `advance()` or `sleep()` is called.
"""
from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

Logger = logging.Logger

Callback = Callable[[], None]


class TimerHandle:
    """Cancellable reference to a scheduled callback."""

    def __init__(self, callback: Callback, due: float) -> None:
        self.callback = callback
        self.due = due
        self.cancelled = False
        self._timer: Optional[threading.Timer] = None

    def cancel(self) -> None:
        self.cancelled = True
        if self._timer is not None:
            self._timer.cancel()


class Clock:
    """Interface shared by the real and virtual clocks."""

    def now(self) -> float:
        """Monotonic seconds."""
        raise NotImplementedError

    def timestamp(self) -> datetime:
        """Wall-clock time for persisted records."""
        raise NotImplementedError

    def sleep(self, seconds: float) -> None:
        raise NotImplementedError

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        raise NotImplementedError


class SystemClock(Clock):
    """Real time; callbacks run on daemon timer threads."""

    def __init__(self, logger: Optional[Logger] = None) -> None:
        self._logger = logger or logging.getLogger(__name__)

    def now(self) -> float:
        return time.monotonic()

    def timestamp(self) -> datetime:
        return datetime.now(timezone.utc)

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        handle = TimerHandle(callback, self.now() + max(0.0, delay))

        def _fire() -> None:
            if handle.cancelled:
                return
            try:
                callback()
            except Exception:
                self._logger.exception("Deferred callback %r failed", callback)

        timer = threading.Timer(max(0.0, delay), _fire)
        timer.daemon = True
        handle._timer = timer
        timer.start()
        return handle


class ManualClock(Clock):
    """Virtual clock for deterministic tests.

    Callbacks fire in due order (ties in scheduling order) when `advance()`
    reaches them. `sleep()` advances the clock, so callbacks that come due
    during a sleep run inside it, on the sleeping thread.
    """

    EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._queue: List[Tuple[float, int, TimerHandle]] = []
        self._sequence = itertools.count()
        self._guard = threading.RLock()

    def now(self) -> float:
        return self._now

    def timestamp(self) -> datetime:
        return self.EPOCH + timedelta(seconds=self._now)

    def sleep(self, seconds: float) -> None:
        self.advance(max(0.0, seconds))

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        with self._guard:
            handle = TimerHandle(callback, self._now + max(0.0, delay))
            heapq.heappush(self._queue, (handle.due, next(self._sequence), handle))
            return handle

    def advance(self, seconds: float) -> None:
        """Move time forward, running every callback due on the way."""
        if seconds < 0:
            raise ValueError("Cannot move a clock backwards")
        self.advance_to(self._now + seconds)

    def advance_to(self, target: float) -> None:
        """Move time to the absolute reading `target`."""
        if target < self._now:
            raise ValueError("Cannot move a clock backwards")
        while True:
            with self._guard:
                if not self._queue or self._queue[0][0] > target:
                    break
                due, _, handle = heapq.heappop(self._queue)
                self._now = max(self._now, due)
            if not handle.cancelled:
                handle.callback()
        self._now = max(self._now, target)

    def run_pending(self) -> None:
        """Run callbacks that are already due without moving time."""
        self.advance(0.0)

    def advance_until_idle(self, limit: float = 3600.0) -> None:
        """Advance until no callbacks remain (bounded by `limit` virtual seconds)."""
        deadline = self._now + limit
        while True:
            with self._guard:
                pending = [entry for entry in self._queue if not entry[2].cancelled]
                if not pending:
                    return
                next_due = min(entry[0] for entry in pending)
            if next_due > deadline:
                raise RuntimeError(f"Callbacks still pending after {limit:.0f} virtual seconds")
            self.advance(max(0.0, next_due - self._now))

    @property
    def pending(self) -> int:
        with self._guard:
            return sum(1 for entry in self._queue if not entry[2].cancelled)


__all__ = ["Clock", "ManualClock", "SystemClock", "TimerHandle"]
