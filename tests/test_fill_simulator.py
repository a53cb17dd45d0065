from __future__ import annotations

import pytest

from desk_sim.book import OrderBook
from desk_sim.config import Settings
from desk_sim.errors import TimerLeak
from desk_sim.sim.fill_simulator import FillSimulator, _FillTask, plan_fill
from desk_sim.sim.scheduler import ManualScheduler
from desk_sim.types import Order, OrderSource


class _LowRng:
    def uniform(self, a: float, b: float) -> float:
        return a


class _HighRng:
    def uniform(self, a: float, b: float) -> float:
        return b


def _order(order_id: str = "ord-1", source: OrderSource = "aggregator") -> Order:
    return Order(
        id=order_id,
        token="BTC",
        exchange="X",
        side="long",
        size=1.0,
        price=100.0,
        source=source,
        created_at="2024-01-01T00:00:00+00:00",
    )


def _simulator(
    book: OrderBook,
    scheduler: ManualScheduler,
    rng: object | None = None,
    filled: list[Order] | None = None,
) -> FillSimulator:
    return FillSimulator(
        book,
        scheduler,
        settings=Settings(),
        rng=rng or _HighRng(),
        on_filled=filled.append if filled is not None else None,
    )


def test_plan_fill_draws_from_source_profile() -> None:
    settings = Settings()
    mm = plan_fill(settings.fill_profile("market-maker"), _LowRng())
    fast = plan_fill(settings.fill_profile("aggregator"), _HighRng())

    assert mm.start_delay_ms == 1000
    assert mm.increment == pytest.approx(0.08)
    assert mm.interval_ms == 1500
    assert fast.start_delay_ms == 500
    assert fast.increment == 20.0
    assert fast.interval_ms == 1200


def test_order_progresses_to_filled() -> None:
    book = OrderBook()
    scheduler = ManualScheduler()
    filled: list[Order] = []
    sim = _simulator(book, scheduler, filled=filled)
    book.add(_order())

    assert sim.observe() == ["ord-1"]
    scheduler.advance(499)
    assert book.require("ord-1").status == "pending"

    scheduler.advance(1)
    order = book.require("ord-1")
    assert order.status == "in-progress"
    assert order.filled == 0.0

    scheduler.advance(1200)
    assert book.require("ord-1").filled == 20.0

    scheduler.advance(1200 * 4)
    order = book.require("ord-1")
    assert order.status == "filled"
    assert order.filled == 100.0
    assert [o.id for o in filled] == ["ord-1"]
    assert filled[0].filled == 100.0
    assert scheduler.armed == 0
    assert sim.active_timers == 0


def test_fill_is_monotonic_and_capped() -> None:
    book = OrderBook()
    scheduler = ManualScheduler()
    sim = _simulator(book, scheduler, rng=_LowRng())
    book.add(_order())
    sim.observe()

    seen: list[float] = []
    while not book.require("ord-1").is_terminal:
        scheduler.advance(100)
        seen.append(book.require("ord-1").filled)

    assert seen == sorted(seen)
    assert max(seen) == 100.0
    assert book.require("ord-1").status == "filled"


def test_observe_never_rearms_tracked_order() -> None:
    book = OrderBook()
    scheduler = ManualScheduler()
    sim = _simulator(book, scheduler)
    book.add(_order())

    assert sim.observe() == ["ord-1"]
    assert sim.observe() == []
    scheduler.advance(500)
    assert sim.observe() == []
    assert scheduler.armed == 1
    assert sim.active_timers == 1


def test_at_most_one_timer_per_order() -> None:
    book = OrderBook()
    scheduler = ManualScheduler()
    sim = _simulator(book, scheduler)
    for i in range(3):
        book.add(_order(f"ord-{i}", source="market-maker" if i == 0 else "aggregator"))
    sim.observe()

    for _ in range(200):
        scheduler.advance(50)
        live = [order for order in book.snapshot() if not order.is_terminal]
        assert scheduler.armed == sim.active_timers
        assert scheduler.armed <= len(live)


def test_second_arm_is_timer_leak() -> None:
    task = _FillTask("ord-1", plan_fill(Settings().fill_profile("aggregator"), _LowRng()), ManualScheduler())
    task.arm(10, lambda: None)

    with pytest.raises(TimerLeak):
        task.arm(10, lambda: None)


def test_cancel_during_start_delay_never_starts() -> None:
    book = OrderBook()
    scheduler = ManualScheduler()
    sim = _simulator(book, scheduler)
    book.add(_order())
    sim.observe()

    assert book.cancel("ord-1")
    scheduler.advance(5_000)

    order = book.require("ord-1")
    assert order.status == "cancelled"
    assert order.filled == 0.0
    assert scheduler.armed == 0
    assert sim.active_timers == 0


def test_cancel_is_observed_at_next_tick() -> None:
    book = OrderBook()
    scheduler = ManualScheduler()
    filled: list[Order] = []
    sim = _simulator(book, scheduler, filled=filled)
    book.add(_order())
    sim.observe()
    scheduler.advance(500 + 1200)
    assert book.require("ord-1").filled == 20.0

    book.cancel("ord-1")
    assert sim.active_timers == 1
    scheduler.advance(1200)

    order = book.require("ord-1")
    assert order.status == "cancelled"
    assert order.filled == 20.0
    assert sim.active_timers == 0
    assert filled == []


def test_missing_order_stops_silently() -> None:
    book = OrderBook()
    scheduler = ManualScheduler()
    sim = _simulator(book, scheduler)
    book.add(_order())
    sim.observe()
    scheduler.advance(500)

    book.clear()
    scheduler.advance(10_000)

    assert scheduler.armed == 0
    assert sim.active_timers == 0


def test_teardown_releases_every_timer() -> None:
    book = OrderBook()
    scheduler = ManualScheduler()
    sim = _simulator(book, scheduler)
    for i in range(4):
        book.add(_order(f"ord-{i}"))
    sim.observe()
    scheduler.advance(600)
    assert scheduler.armed == 4

    assert sim.teardown() == 4
    assert scheduler.armed == 0
    assert sim.active_timers == 0
    assert sim.tracked == frozenset()


def test_market_maker_orders_fill_slowly() -> None:
    book = OrderBook()
    scheduler = ManualScheduler()
    sim = _simulator(book, scheduler, rng=_LowRng())
    book.add(_order(source="market-maker"))
    sim.observe()

    scheduler.advance(1000 + 1500 * 10)

    order = book.require("ord-1")
    assert order.status == "in-progress"
    assert order.filled == pytest.approx(0.8)
