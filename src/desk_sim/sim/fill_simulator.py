"""Fill simulator: drives pending orders to a terminal fill state."""

from __future__ import annotations

import random
from dataclasses import dataclass
from functools import partial
from typing import Callable

from desk_sim.book import OrderBook
from desk_sim.config import Settings, get_settings
from desk_sim.errors import TimerLeak
from desk_sim.sim.scheduler import Callback, RandomSource, Scheduler, TimerHandle
from desk_sim.types import FillProfile, Order
from desk_sim.utils.logging import get_logger, log_order_event

FillCallback = Callable[[Order], None]


@dataclass(slots=True, frozen=True)
class FillPlan:
    """Timing drawn once for one order."""

    start_delay_ms: float
    increment: float
    interval_ms: float


def plan_fill(profile: FillProfile, rng: RandomSource) -> FillPlan:
    """Draw the per-tick increment and tick interval for one order."""
    return FillPlan(
        start_delay_ms=float(profile.start_delay_ms),
        increment=rng.uniform(profile.increment_min, profile.increment_max),
        interval_ms=rng.uniform(profile.interval_min_ms, profile.interval_max_ms),
    )


class _FillTask:
    """Owns the single outstanding timer of one tracked order."""

    __slots__ = ("order_id", "plan", "_scheduler", "_handle")

    def __init__(self, order_id: str, plan: FillPlan, scheduler: Scheduler) -> None:
        self.order_id = order_id
        self.plan = plan
        self._scheduler = scheduler
        self._handle: TimerHandle | None = None

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def arm(self, delay_ms: float, callback: Callback) -> None:
        if self._handle is not None:
            raise TimerLeak(f"timer_already_armed: {self.order_id}")
        self._handle = self._scheduler.call_later(delay_ms, callback)

    def consume(self) -> None:
        """Forget the handle of a timer that has just fired."""
        self._handle = None

    def release(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class FillSimulator:
    """Runs one independent fill progression per observed pending order.

    Every callback re-reads the order from the book; an order that vanished or
    reached a terminal status ends its progression silently.
    """

    def __init__(
        self,
        book: OrderBook,
        scheduler: Scheduler,
        *,
        settings: Settings | None = None,
        rng: RandomSource | None = None,
        on_filled: FillCallback | None = None,
    ) -> None:
        self._book = book
        self._scheduler = scheduler
        self._settings = settings or get_settings()
        self._rng = rng or random.Random()
        self._on_filled = on_filled
        self._tracked: set[str] = set()
        self._tasks: dict[str, _FillTask] = {}
        self._logger = get_logger("desk_sim.sim.fill_simulator")

    @property
    def tracked(self) -> frozenset[str]:
        return frozenset(self._tracked)

    @property
    def active_timers(self) -> int:
        return sum(1 for task in self._tasks.values() if task.armed)

    def observe(self) -> list[str]:
        """Start a progression for every untracked pending order.

        Returns the ids armed by this call.
        """
        armed: list[str] = []
        for order in reversed(self._book.snapshot()):
            if order.id in self._tracked:
                continue
            if order.status != "pending" or order.filled != 0:
                continue
            self._track(order)
            armed.append(order.id)
        return armed

    def teardown(self) -> int:
        """Release every outstanding timer and forget all tracking."""
        released = self.active_timers
        for task in self._tasks.values():
            task.release()
        self._tasks.clear()
        self._tracked.clear()
        return released

    def _track(self, order: Order) -> None:
        plan = plan_fill(self._settings.fill_profile(order.source), self._rng)
        task = _FillTask(order.id, plan, self._scheduler)
        self._tracked.add(order.id)
        self._tasks[order.id] = task
        task.arm(plan.start_delay_ms, partial(self._start, order.id))
        self._logger.debug(
            "fill_scheduled",
            order_id=order.id,
            source=order.source,
            start_delay_ms=plan.start_delay_ms,
            increment=round(plan.increment, 4),
            interval_ms=round(plan.interval_ms, 1),
        )

    def _start(self, order_id: str) -> None:
        task = self._tasks.get(order_id)
        if task is None:
            return
        task.consume()
        order = self._book.get(order_id)
        if order is None or order.is_terminal:
            self._stop(order_id, order)
            return
        started = self._book.set_progress(order_id, 0.0, "in-progress")
        if started is None:
            self._stop(order_id, None)
            return
        log_order_event(self._logger, "fill_started", order_id=order_id, status=started.status, filled=0.0)
        task.arm(task.plan.interval_ms, partial(self._tick, order_id))

    def _tick(self, order_id: str) -> None:
        task = self._tasks.get(order_id)
        if task is None:
            return
        task.consume()
        order = self._book.get(order_id)
        if order is None or order.is_terminal or order.filled >= 100:
            self._stop(order_id, order)
            return

        filled = min(100.0, order.filled + task.plan.increment)
        if filled >= 100.0:
            done = self._book.set_progress(order_id, 100.0, "filled")
            self._release(order_id)
            if done is None:
                return
            log_order_event(self._logger, "order_filled", order_id=order_id, status=done.status, filled=done.filled)
            if self._on_filled is not None:
                self._on_filled(done)
            return

        self._book.set_progress(order_id, filled, "in-progress")
        log_order_event(
            self._logger,
            "fill_progress",
            order_id=order_id,
            status="in-progress",
            filled=filled,
            level="debug",
        )
        task.arm(task.plan.interval_ms, partial(self._tick, order_id))

    def _stop(self, order_id: str, order: Order | None) -> None:
        self._release(order_id)
        log_order_event(
            self._logger,
            "fill_stopped",
            order_id=order_id,
            status=order.status if order is not None else "missing",
            filled=order.filled if order is not None else None,
            level="debug",
        )

    def _release(self, order_id: str) -> None:
        task = self._tasks.pop(order_id, None)
        if task is not None:
            task.release()
