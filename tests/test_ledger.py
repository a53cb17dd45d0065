from __future__ import annotations

import dataclasses

import pytest

from desk_sim.data.prices import StaticPriceOracle
from desk_sim.errors import InvalidPrice, PositionNotFound
from desk_sim.ledger.history import HistoryLedger
from desk_sim.ledger.positions import PositionLedger, compute_pnl
from desk_sim.types import CarryLegs, Order


def _ledger() -> tuple[PositionLedger, HistoryLedger]:
    history = HistoryLedger()
    return PositionLedger(history), history


def _carry_order() -> Order:
    return Order(
        id="ord-carry",
        token="BTC",
        exchange="A / B",
        side="carry",
        size=1.0,
        price=100.0,
        source="carry",
        created_at="2024-01-01T00:00:00+00:00",
        status="filled",
        filled=100.0,
        carry=CarryLegs(
            long_token="BTC",
            long_exchange="A",
            long_size=0.5,
            short_token="BTC",
            short_exchange="B",
            short_size=0.5,
        ),
    )


def test_compute_pnl_direction_and_percent() -> None:
    assert compute_pnl("long", 100.0, 110.0, 2.0) == (20.0, 10.0)
    assert compute_pnl("short", 100.0, 110.0, 2.0) == (-20.0, -10.0)
    assert compute_pnl("long", 0.0, 10.0, 1.0) == (10.0, 0.0)


def test_open_position_records_trade_history() -> None:
    positions, history = _ledger()
    position = positions.open_position(
        token="BTC",
        exchange="X",
        side="long",
        size=2.0,
        entry_price=100.0,
        leverage=3.0,
    )

    assert position.status == "open"
    assert position.current_price == 100.0
    [entry] = history.entries()
    assert entry.type == "trade"
    assert entry.action == "Long BTC on X"
    assert entry.amount == 2.0
    assert entry.volume == 600.0
    assert entry.source == "single"


def test_explicit_volume_overrides_notional() -> None:
    positions, history = _ledger()
    positions.open_position(
        token="BTC",
        exchange="X",
        side="short",
        size=0.001,
        entry_price=89128.0,
        volume=10_000.0,
        source="market-maker",
    )

    [entry] = history.entries()
    assert entry.action == "Short BTC on X"
    assert entry.volume == 10_000.0
    assert entry.source == "market-maker"


def test_history_can_be_suppressed() -> None:
    positions, history = _ledger()
    positions.open_position(
        token="BTC", exchange="X", side="long", size=1.0, entry_price=100.0, record_history=False
    )
    assert len(positions) == 1
    assert len(history) == 0


def test_carry_fill_opens_two_positions_and_one_entry() -> None:
    positions, history = _ledger()
    opened = positions.open_for_order(_carry_order(), 100.0)

    assert [(p.side, p.exchange, p.size) for p in opened] == [("long", "A", 0.5), ("short", "B", 0.5)]
    assert all(p.entry_price == 100.0 and p.order_id == "ord-carry" for p in opened)
    [entry] = history.entries()
    assert entry.action == "Multi: Long BTC on A / Short BTC on B"
    assert entry.volume == 100.0
    assert entry.source == "carry"
    assert entry.execution is not None
    assert entry.execution.buy_exchange == "A"
    assert entry.execution.sell_exchange == "B"
    assert entry.execution.exchanges == ("A", "B")


def test_update_price_recomputes_pnl() -> None:
    positions, _ = _ledger()
    position = positions.open_position(token="ETH", exchange="X", side="short", size=2.0, entry_price=50.0)

    updated = positions.update_price(position.id, 45.0)

    assert updated is not None
    assert updated.pnl == 10.0
    assert updated.pnl_percent == 10.0
    assert updated.entry_price == 50.0
    assert positions.update_price("pos-unknown", 45.0) is None


def test_close_realizes_pnl_and_records_volume() -> None:
    positions, history = _ledger()
    long_pos = positions.open_position(
        token="BTC", exchange="X", side="long", size=1.0, entry_price=100.0, leverage=2.0
    )
    short_pos = positions.open_position(token="BTC", exchange="Y", side="short", size=1.0, entry_price=100.0)

    closed_long, long_entry = positions.close(long_pos.id, 90.0)
    closed_short, short_entry = positions.close(short_pos.id, 90.0)

    assert closed_long.status == "closed"
    assert closed_long.realized_pnl == -10.0
    assert closed_short.realized_pnl == 10.0
    assert long_entry.action == "Close Long BTC on X"
    assert long_entry.volume == 180.0
    assert long_entry.pnl == -10.0
    assert short_entry.action == "Close Short BTC on Y"
    assert history.entries()[0].id == short_entry.id
    assert positions.update_price(long_pos.id, 120.0) is None


def test_close_unknown_or_closed_position_fails() -> None:
    positions, history = _ledger()
    position = positions.open_position(token="BTC", exchange="X", side="long", size=1.0, entry_price=100.0)
    positions.close(position.id, 101.0)
    entries_after_close = len(history)

    with pytest.raises(PositionNotFound):
        positions.close(position.id, 101.0)
    with pytest.raises(PositionNotFound):
        positions.close("pos-unknown", 101.0)
    assert len(history) == entries_after_close


@pytest.mark.parametrize("bad_price", [float("nan"), float("inf"), 0.0, -5.0])
def test_close_rejects_bad_exit_price(bad_price: float) -> None:
    positions, history = _ledger()
    position = positions.open_position(token="BTC", exchange="X", side="long", size=1.0, entry_price=100.0)
    entries_before = len(history)

    with pytest.raises(InvalidPrice):
        positions.close(position.id, bad_price)

    still_open = positions.get(position.id)
    assert still_open.status == "open"
    assert still_open.realized_pnl is None
    assert len(history) == entries_before


@pytest.mark.parametrize("bad_price", [float("nan"), float("-inf"), 0.0])
def test_update_price_rejects_bad_mark(bad_price: float) -> None:
    positions, _ = _ledger()
    position = positions.open_position(token="BTC", exchange="X", side="long", size=1.0, entry_price=100.0)
    positions.update_price(position.id, 110.0)

    with pytest.raises(InvalidPrice):
        positions.update_price(position.id, bad_price)

    assert positions.get(position.id).current_price == 110.0
    assert positions.total_pnl() == 10.0

def test_aggregates_only_count_open_positions() -> None:
    positions, _ = _ledger()
    a = positions.open_position(token="BTC", exchange="A", side="long", size=1.0, entry_price=100.0)
    b = positions.open_position(token="BTC", exchange="B", side="long", size=1.0, entry_price=100.0)
    c = positions.open_position(token="BTC", exchange="A", side="short", size=1.0, entry_price=100.0)
    positions.update_price(a.id, 110.0)
    positions.update_price(b.id, 105.0)
    positions.update_price(c.id, 90.0)
    positions.close(c.id, 90.0)

    assert positions.total_pnl() == 15.0
    assert [p.id for p in positions.by_exchange("A")] == [a.id]
    assert len(positions.open_positions()) == 2


def test_mark_to_market_uses_oracle_quotes() -> None:
    positions, _ = _ledger()
    btc = positions.open_position(token="BTC", exchange="A", side="long", size=1.0, entry_price=100.0)
    positions.open_position(token="DOGE", exchange="A", side="long", size=1.0, entry_price=1.0)

    updated = positions.mark_to_market(StaticPriceOracle({"BTC": 120.0}))

    assert updated == 1
    assert positions.get(btc.id).pnl == 20.0


def test_mark_to_market_skips_non_finite_quotes() -> None:
    class _NanOracle:
        def get_price(self, token: str) -> float | None:
            return float("nan")

    positions, _ = _ledger()
    position = positions.open_position(token="BTC", exchange="A", side="long", size=1.0, entry_price=100.0)

    assert positions.mark_to_market(_NanOracle()) == 0
    assert positions.get(position.id).current_price == 100.0
    assert positions.total_pnl() == 0.0


def test_history_is_prepend_only_and_immutable() -> None:
    history = HistoryLedger()
    first = history.record("deposit", "Deposit USDC", 100.0, token="USDC")
    second = history.record("withdrawal", "Withdraw USDC", 40.0, token="USDC")

    assert [entry.id for entry in history.entries()] == [second.id, first.id]
    assert first.id != second.id
    assert history.recent(1) == [second]
    assert history.get(first.id) == first
    with pytest.raises(dataclasses.FrozenInstanceError):
        first.amount = 1.0  # type: ignore[misc]
    with pytest.raises(ValueError):
        history.record("airdrop", "Airdrop", 1.0)  # type: ignore[arg-type]
