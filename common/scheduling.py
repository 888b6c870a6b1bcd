"""
Purpose: Schedulable units of work with explicit cancellation handles.
What it does:

Every timer in the system (offer expiry, search latency, movement ticks,
driver-side polling) is created through a Scheduler and returns a
ScheduledHandle. Cancelling is always an explicit call on that handle.

- ThreadScheduler: real wall-clock timers built on threading.Timer.
- ManualScheduler: a virtual clock that only moves when advance() is called.
  Used by the test-suite and by reproducible simulation runs.

Rule: a callback that fires after its handle was cancelled never runs.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class ScheduledHandle:
    """
    Cancellation handle returned by every scheduling call.
    """

    def __init__(self, name: str = ""):
        self.name = name
        self._cancelled = False
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> bool:
        """
        Cancel the unit. Returns True only for the call that actually cancelled it.
        """
        with self._lock:
            if self._cancelled:
                return False
            self._cancelled = True
            timer = self._timer
            self._timer = None

        if timer is not None:
            timer.cancel()
        return True

    def _attach_timer(self, timer: threading.Timer) -> bool:
        with self._lock:
            if self._cancelled:
                return False
            self._timer = timer
            return True

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "active"
        return f"<ScheduledHandle {self.name or '?'} {state}>"


def _run_guarded(handle: ScheduledHandle, fn: Callable[..., Any], args: Tuple[Any, ...]) -> None:
    if handle.cancelled:
        return
    try:
        fn(*args)
    except Exception:
        logger.exception("Scheduled callback %s failed", handle.name or fn)


class Scheduler:
    """
    Interface shared by the real and the virtual scheduler.
    """

    def now(self) -> float:
        raise NotImplementedError

    def call_later(self, delay: float, fn: Callable[..., Any], *args: Any, name: str = "") -> ScheduledHandle:
        raise NotImplementedError

    def call_every(self, interval: float, fn: Callable[..., Any], *args: Any, name: str = "") -> ScheduledHandle:
        raise NotImplementedError


class ThreadScheduler(Scheduler):
    """
    Wall-clock scheduler. Each firing runs on its own daemon timer thread, so a
    slow callback (e.g. a network call) never delays other scheduled units.
    """

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, fn: Callable[..., Any], *args: Any, name: str = "") -> ScheduledHandle:
        handle = ScheduledHandle(name)

        def fire() -> None:
            _run_guarded(handle, fn, args)
            handle.cancel()

        timer = threading.Timer(max(0.0, delay), fire)
        timer.daemon = True
        if handle._attach_timer(timer):
            timer.start()
        return handle

    def call_every(self, interval: float, fn: Callable[..., Any], *args: Any, name: str = "") -> ScheduledHandle:
        if interval <= 0:
            raise ValueError("interval must be > 0")

        handle = ScheduledHandle(name)

        def fire() -> None:
            _run_guarded(handle, fn, args)
            arm()

        def arm() -> None:
            if handle.cancelled:
                return
            timer = threading.Timer(interval, fire)
            timer.daemon = True
            if handle._attach_timer(timer):
                timer.start()

        arm()
        return handle


class ManualScheduler(Scheduler):
    """
    Deterministic scheduler driven by a virtual clock.

    Nothing runs until advance() (or run_until_idle()) is called. Callbacks due at
    the same instant fire in the order they were scheduled.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: List[Tuple[float, int, ScheduledHandle, Optional[float], Callable[..., Any], Tuple[Any, ...]]] = []
        self._sequence = itertools.count()
        self._lock = threading.RLock()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, fn: Callable[..., Any], *args: Any, name: str = "") -> ScheduledHandle:
        handle = ScheduledHandle(name)
        self._push(self._now + max(0.0, delay), handle, None, fn, args)
        return handle

    def call_every(self, interval: float, fn: Callable[..., Any], *args: Any, name: str = "") -> ScheduledHandle:
        if interval <= 0:
            raise ValueError("interval must be > 0")
        handle = ScheduledHandle(name)
        self._push(self._now + interval, handle, interval, fn, args)
        return handle

    def _push(self, due, handle, interval, fn, args) -> None:
        with self._lock:
            heapq.heappush(self._queue, (due, next(self._sequence), handle, interval, fn, args))

    @property
    def pending(self) -> int:
        """Number of live (not cancelled) scheduled units."""
        with self._lock:
            return sum(1 for entry in self._queue if not entry[2].cancelled)

    def advance(self, seconds: float) -> int:
        """
        Move the virtual clock forward, firing everything that falls due.
        Returns the number of callbacks that ran.
        """
        target = self._now + seconds
        fired = 0

        while True:
            with self._lock:
                if not self._queue or self._queue[0][0] > target:
                    break
                due, _, handle, interval, fn, args = heapq.heappop(self._queue)

            if handle.cancelled:
                continue

            self._now = max(self._now, due)
            _run_guarded(handle, fn, args)
            fired += 1

            if interval is None:
                handle.cancel()
            elif not handle.cancelled:
                self._push(due + interval, handle, interval, fn, args)

        self._now = target
        return fired

    def run_until_idle(self, max_seconds: float = 3600.0, step: float = 0.5) -> float:
        """
        Advance in steps until no live units remain (or max_seconds elapsed).
        Returns the virtual time spent.
        """
        started = self._now
        while self.pending and self._now - started < max_seconds:
            self.advance(step)
        return self._now - started
