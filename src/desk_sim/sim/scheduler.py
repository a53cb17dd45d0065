"""Timing and randomness sources for the fill simulator.

``LoopScheduler`` runs callbacks on an asyncio event loop in real time.
``ManualScheduler`` is a virtual clock advanced explicitly by tests and by
the offline ``simulate`` command.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from dataclasses import dataclass, field
from typing import Callable, Protocol

Callback = Callable[[], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay_ms: float, callback: Callback) -> TimerHandle: ...


class RandomSource(Protocol):
    def uniform(self, a: float, b: float) -> float: ...


class LoopScheduler:
    """Schedule callbacks on an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay_ms: float, callback: Callback) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(0.0, delay_ms) / 1000.0, callback)


@dataclass(order=True)
class _ManualTimer:
    due_ms: float
    seq: int
    callback: Callback = field(compare=False)
    cancelled: bool = field(default=False, compare=False)
    fired: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def armed(self) -> bool:
        return not (self.cancelled or self.fired)


class ManualScheduler:
    """Virtual clock. Nothing fires until ``advance`` is called."""

    def __init__(self) -> None:
        self._now_ms = 0.0
        self._queue: list[_ManualTimer] = []
        self._seq = itertools.count()

    @property
    def now_ms(self) -> float:
        return self._now_ms

    @property
    def armed(self) -> int:
        """Number of timers scheduled and neither fired nor cancelled."""
        return sum(1 for timer in self._queue if timer.armed)

    def call_later(self, delay_ms: float, callback: Callback) -> _ManualTimer:
        timer = _ManualTimer(
            due_ms=self._now_ms + max(0.0, delay_ms),
            seq=next(self._seq),
            callback=callback,
        )
        heapq.heappush(self._queue, timer)
        return timer

    def advance(self, ms: float) -> int:
        """Move the clock forward, firing due callbacks in due order.

        Callbacks scheduled by a callback fire in the same call when they fall
        inside the window. Returns the number of callbacks fired.
        """
        if ms < 0:
            raise ValueError("advance_must_be_non_negative")
        target = self._now_ms + ms
        fired = 0
        while self._queue and self._queue[0].due_ms <= target:
            timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now_ms = timer.due_ms
            timer.fired = True
            timer.callback()
            fired += 1
        self._now_ms = target
        return fired

    def run_until_idle(self, *, step_ms: float = 100.0, limit_ms: float = 600_000.0) -> float:
        """Advance in steps until no timer is armed. Returns virtual ms elapsed."""
        started = self._now_ms
        while self.armed and self._now_ms - started < limit_ms:
            self.advance(step_ms)
        return self._now_ms - started
