"""
Clock and one-shot timers for the stage player.

Every component of a player reads time from, and arms timers on, the same
``Scheduler``. Times are milliseconds on a monotonic clock.
"""

import asyncio
import heapq
import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Protocol

logger = logging.getLogger('clock')


class TimerHandle(Protocol):
    """A pending one-shot timer."""

    def cancel(self) -> None:
        ...


class Scheduler(ABC):
    """Monotonic clock plus one-shot timers."""

    @abstractmethod
    def now_ms(self) -> float:
        """Current clock reading in milliseconds."""

    @abstractmethod
    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` once after ``delay_ms`` milliseconds."""


class AsyncioScheduler(Scheduler):
    """Scheduler backed by an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now_ms(self) -> float:
        return self.loop.time() * 1000

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        return self.loop.call_later(max(0.0, delay_ms) / 1000, callback)


@dataclass(order=True)
class _ManualTimer:
    due_ms: float
    seq: int
    callback: Callable[[], None] = field(compare=False)
    done: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.done = True


class ManualScheduler(Scheduler):
    """
    Virtual-time scheduler.

    Time only moves when ``advance()``, ``advance_to()`` or
    ``run_until_idle()`` is called. Timers fire in due order (ties in the
    order they were armed), and the clock reads each timer's due time while
    its callback runs.
    """

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)
        self._timers: List[_ManualTimer] = []
        self._seq = itertools.count()

    def now_ms(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        timer = _ManualTimer(self._now + max(0.0, delay_ms), next(self._seq), callback)
        heapq.heappush(self._timers, timer)
        return timer

    @property
    def pending(self) -> int:
        """Number of armed timers that have neither fired nor been cancelled."""
        return sum(1 for t in self._timers if not t.done)

    def next_due_ms(self) -> Optional[float]:
        """Due time of the next live timer, or None."""
        self._drop_done()
        return self._timers[0].due_ms if self._timers else None

    def advance(self, ms: float):
        """Move the clock forward by ``ms``, firing every timer due on the way."""
        self.advance_to(self._now + ms)

    def advance_to(self, target_ms: float):
        """Move the clock to ``target_ms``, firing every timer due on the way."""
        while True:
            self._drop_done()
            if not self._timers or self._timers[0].due_ms > target_ms:
                break
            timer = heapq.heappop(self._timers)
            timer.done = True
            self._now = max(self._now, timer.due_ms)
            timer.callback()
        self._now = max(self._now, target_ms)

    def run_until_idle(self, limit_ms: Optional[float] = None) -> float:
        """
        Fire timers until none are left.

        Args:
            limit_ms: Stop once the next timer is due more than this many ms
                after the starting time.

        Returns:
            The clock reading when the run stopped.
        """
        start = self._now
        while True:
            due = self.next_due_ms()
            if due is None:
                break
            if limit_ms is not None and due - start > limit_ms:
                logger.warning(f"Stopped virtual run at {self._now:.0f}ms, next timer due at {due:.0f}ms")
                break
            self.advance_to(due)
        return self._now

    def _drop_done(self):
        while self._timers and self._timers[0].done:
            heapq.heappop(self._timers)


class Debouncer:
    """Collapse a burst of calls into one call, ``wait_ms`` after the last."""

    def __init__(self, scheduler: Scheduler, wait_ms: float, fn: Callable[..., Any]):
        self._scheduler = scheduler
        self.wait_ms = wait_ms
        self._fn = fn
        self._timer: Optional[TimerHandle] = None

    def __call__(self, *args, **kwargs):
        self.cancel()
        self._timer = self._scheduler.call_later(self.wait_ms, lambda: self._fire(args, kwargs))

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def cancel(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self, args, kwargs):
        self._timer = None
        self._fn(*args, **kwargs)
