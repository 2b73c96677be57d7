from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol


logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Something that can run a callback after a delay and cancel it.

    `asyncio.AbstractEventLoop.call_later` is the reference shape.
    """

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle: ...


class AsyncioScheduler:
    """Schedules on the running event loop (the API process)."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay_s, callback)


class ThreadingScheduler:
    """Schedules on daemon `threading.Timer` threads, for hosts without an event loop.

    Callbacks run off the calling thread; the engine serializes them behind its own lock.
    """

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(max(0.0, delay_s), callback)
        timer.daemon = True
        timer.start()
        return timer


def default_scheduler() -> Scheduler:
    """The running loop when there is one (the API process), timer threads otherwise."""

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return ThreadingScheduler()
    return AsyncioScheduler(loop)


@dataclass(order=True, slots=True)
class _ManualEntry:
    due: float
    seq: int
    callback: Callable[[], None] = field(compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual-clock scheduler: nothing runs until `advance()` is called.

    Used by tests and by synchronous hosts that drive time themselves.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._queue: list[_ManualEntry] = []
        self._seq = itertools.count()

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        entry = _ManualEntry(due=self.now + max(0.0, delay_s), seq=next(self._seq), callback=callback)
        heapq.heappush(self._queue, entry)
        return entry

    def pending(self) -> int:
        return sum(1 for e in self._queue if not e.cancelled)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing due callbacks in order. Returns how many ran."""

        target = self.now + seconds
        ran = 0
        while self._queue and self._queue[0].due <= target:
            entry = heapq.heappop(self._queue)
            if entry.cancelled:
                continue
            self.now = entry.due
            entry.callback()
            ran += 1
        self.now = target
        return ran


class Debouncer:
    """Runs `callback` once the trigger has been quiet for `delay_s`.

    Each `arm()` cancels the previously pending run, so a burst collapses to one call.
    """

    def __init__(self, *, scheduler: Scheduler, delay_s: float, callback: Callable[[], None]) -> None:
        self._scheduler = scheduler
        self._delay_s = delay_s
        self._callback = callback
        self._handle: TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def arm(self) -> None:
        self.cancel()
        self._handle = self._scheduler.call_later(self._delay_s, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def flush(self) -> bool:
        """Run a pending callback now. Returns False if nothing was pending."""

        if self._handle is None:
            return False
        self.cancel()
        self._callback()
        return True

    def _fire(self) -> None:
        self._handle = None
        self._callback()


class RepeatingTimer:
    """Calls `callback` every `interval_s` until stopped.

    The callback may call `stop()` on its own timer.
    """

    def __init__(self, *, scheduler: Scheduler, interval_s: float, callback: Callable[[], None]) -> None:
        self._scheduler = scheduler
        self._interval_s = interval_s
        self._callback = callback
        self._handle: TimerHandle | None = None

    @property
    def running(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        if self._handle is None:
            self._handle = self._scheduler.call_later(self._interval_s, self._fire)

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        # Re-arm first so a stop() from inside the callback wins.
        self._handle = self._scheduler.call_later(self._interval_s, self._fire)
        try:
            self._callback()
        except Exception:
            logger.exception("Repeating timer callback failed; stopping timer")
            self.stop()
            raise
