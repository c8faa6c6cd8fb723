"""Cancellable scheduled callbacks for autoplay ticks.

``TickTimer`` owns at most one outstanding handle. Starting it again cancels
the previous handle first, so two tick streams can never run side by side.
"""

import asyncio
import functools
import heapq
import itertools
import logging
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)


class ScheduledHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledHandle: ...


class AsyncioScheduler:
    """Schedule callbacks on an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(delay, callback)


class _ManualHandle:
    def __init__(self, when: float, callback: Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual clock. Nothing runs until ``advance`` moves time forward."""

    def __init__(self) -> None:
        self.now: float = 0.0
        self._queue: list[tuple[float, int, _ManualHandle]] = []
        self._seq = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ManualHandle:
        handle = _ManualHandle(self.now + max(delay, 0.0), callback)
        heapq.heappush(self._queue, (handle.when, next(self._seq), handle))
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for _, _, h in self._queue if not h.cancelled)

    def advance(self, seconds: float) -> int:
        """Run every callback due within ``seconds``. Returns how many ran."""
        target = self.now + seconds
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            when, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self.now = when
            handle.callback()
            ran += 1
        self.now = target
        return ran


class TickTimer:
    """Periodic tick source backed by a single outstanding scheduler handle."""

    def __init__(self, scheduler: Scheduler) -> None:
        self._scheduler = scheduler
        self._handle: ScheduledHandle | None = None
        self._interval: float = 0.0
        self._callback: Callable[[], None] | None = None
        self._generation = 0
        self.ticks_fired = 0

    @property
    def active(self) -> bool:
        return self._handle is not None

    @property
    def interval(self) -> float:
        return self._interval

    def start(self, interval: float, callback: Callable[[], None]) -> None:
        """(Re)start ticking every ``interval`` seconds."""
        self.cancel()
        self._interval = interval
        self._callback = callback
        self._arm()

    def cancel(self) -> None:
        self._generation += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _arm(self) -> None:
        self._handle = self._scheduler.call_later(
            self._interval, functools.partial(self._fire, self._generation),
        )

    def _fire(self, generation: int) -> None:
        if generation != self._generation or self._callback is None:
            logger.debug("Ignoring stale tick (generation %d)", generation)
            return
        self.ticks_fired += 1
        # re-arm before the callback so the callback can cancel the next tick
        self._arm()
        self._callback()
