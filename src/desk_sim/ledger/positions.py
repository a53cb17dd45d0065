"""Position ledger: opens positions from fills, marks them and closes them."""

from __future__ import annotations

import math
from dataclasses import replace
from typing import Protocol

from desk_sim.errors import InvalidPrice, PositionNotFound
from desk_sim.ledger.history import HistoryLedger
from desk_sim.types import (
    ExecutionDetail,
    HistoryEntry,
    HistorySource,
    Order,
    OrderSource,
    Position,
    PositionSide,
)
from desk_sim.utils.ids import new_id, utc_now_iso
from desk_sim.utils.logging import get_logger, log_position_event


class PriceQuote(Protocol):
    def get_price(self, token: str) -> float | None: ...


def compute_pnl(side: PositionSide, entry_price: float, mark_price: float, size: float) -> tuple[float, float]:
    """Return (pnl, pnl_percent) for a mark against the entry."""
    sign = 1.0 if side == "long" else -1.0
    pnl = (mark_price - entry_price) * sign * size
    basis = entry_price * size
    pnl_percent = pnl / basis * 100.0 if basis else 0.0
    return pnl, pnl_percent


def history_source(source: OrderSource) -> HistorySource:
    if source == "market-maker":
        return "market-maker"
    if source == "carry":
        return "carry"
    return "single"


def _side_label(side: str) -> str:
    return "Long" if side == "long" else "Short"


def _is_price(value: object) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value) and value > 0


def _check_price(value: float) -> None:
    if not _is_price(value):
        raise InvalidPrice(f"price_must_be_finite_and_positive: {value}")


class PositionLedger:
    """Positions keyed by id. Reads return copies."""

    def __init__(self, history: HistoryLedger) -> None:
        self._history = history
        self._positions: dict[str, Position] = {}
        self._logger = get_logger("desk_sim.ledger.positions")

    def __len__(self) -> int:
        return len(self._positions)

    def open_position(
        self,
        *,
        token: str,
        exchange: str,
        side: PositionSide,
        size: float,
        entry_price: float,
        leverage: float = 1.0,
        volume: float | None = None,
        order_id: str | None = None,
        source: HistorySource = "single",
        record_history: bool = True,
    ) -> Position:
        """Open one position at ``entry_price``.

        With ``record_history`` the trade is written to the history ledger,
        using ``volume`` when given and ``size * entry * leverage`` otherwise.
        """
        if size <= 0:
            raise ValueError("size_must_be_positive")
        if entry_price <= 0:
            raise ValueError("entry_price_must_be_positive")
        position = Position(
            id=new_id("pos"),
            token=token,
            exchange=exchange,
            side=side,
            size=float(size),
            entry_price=float(entry_price),
            opened_at=utc_now_iso(),
            leverage=float(leverage),
            current_price=float(entry_price),
            volume=volume,
            order_id=order_id,
        )
        self._positions[position.id] = position
        log_position_event(
            self._logger,
            "position_opened",
            position_id=position.id,
            token=token,
            exchange=exchange,
            side=side,
            size=position.size,
            price=position.entry_price,
            order_id=order_id,
        )

        if record_history:
            self._history.record(
                "trade",
                f"{_side_label(side)} {token} on {exchange}",
                position.size,
                token=token,
                exchange=exchange,
                volume=volume if volume is not None else position.size * position.entry_price * position.leverage,
                source=source,
            )
        return replace(position)

    def open_for_order(self, order: Order, fill_price: float) -> list[Position]:
        """Convert a filled order into its positions.

        A carry order opens one position per leg and records a single combined
        history entry instead of one per leg.
        """
        source = history_source(order.source)
        if order.side != "carry":
            return [
                self.open_position(
                    token=order.token,
                    exchange=order.exchange,
                    side=order.side,
                    size=order.size,
                    entry_price=fill_price,
                    leverage=order.leverage,
                    order_id=order.id,
                    source=source,
                )
            ]

        legs = order.carry
        if legs is None:
            raise ValueError("carry_order_without_legs")
        long_leg = self.open_position(
            token=legs.long_token,
            exchange=legs.long_exchange,
            side="long",
            size=legs.long_size,
            entry_price=fill_price,
            leverage=order.leverage,
            order_id=order.id,
            source=source,
            record_history=False,
        )
        short_leg = self.open_position(
            token=legs.short_token,
            exchange=legs.short_exchange,
            side="short",
            size=legs.short_size,
            entry_price=fill_price,
            leverage=order.leverage,
            order_id=order.id,
            source=source,
            record_history=False,
        )
        self._history.record(
            "trade",
            (
                f"Multi: Long {legs.long_token} on {legs.long_exchange}"
                f" / Short {legs.short_token} on {legs.short_exchange}"
            ),
            legs.long_size + legs.short_size,
            token=legs.long_token,
            exchange=legs.long_exchange,
            volume=(legs.long_size + legs.short_size) * fill_price,
            source=source,
            execution=ExecutionDetail(
                buy_quantity=legs.long_size,
                buy_leverage=order.leverage,
                buy_exchange=legs.long_exchange,
                buy_pair=legs.long_token,
                buy_price=fill_price,
                sell_quantity=legs.short_size,
                sell_leverage=order.leverage,
                sell_exchange=legs.short_exchange,
                sell_pair=legs.short_token,
                sell_price=fill_price,
                exchanges=(legs.long_exchange, legs.short_exchange),
            ),
        )
        return [long_leg, short_leg]

    def update_price(self, position_id: str, current_price: float) -> Position | None:
        """Re-mark an open position. None when unknown or closed; raises InvalidPrice on a bad mark."""
        position = self._positions.get(position_id)
        if position is None or position.status != "open":
            return None
        _check_price(current_price)
        position.current_price = float(current_price)
        position.pnl, position.pnl_percent = compute_pnl(
            position.side, position.entry_price, position.current_price, position.size
        )
        return replace(position)

    def mark_to_market(self, oracle: PriceQuote) -> int:
        """Re-mark every open position the oracle can quote. Returns the count updated."""
        updated = 0
        for position in list(self._positions.values()):
            if position.status != "open":
                continue
            price = oracle.get_price(position.token)
            if not _is_price(price):
                continue
            self.update_price(position.id, price)
            updated += 1
        return updated

    def close(self, position_id: str, exit_price: float) -> tuple[Position, HistoryEntry]:
        """Close an open position and record the realized trade."""
        position = self._positions.get(position_id)
        if position is None or position.status != "open":
            raise PositionNotFound(position_id)
        _check_price(exit_price)

        realized, realized_percent = compute_pnl(position.side, position.entry_price, exit_price, position.size)
        volume = position.size * exit_price * (position.leverage or 1.0)
        position.status = "closed"
        position.current_price = float(exit_price)
        position.exit_price = float(exit_price)
        position.pnl = realized
        position.pnl_percent = realized_percent
        position.realized_pnl = realized
        position.closed_at = utc_now_iso()

        entry = self._history.record(
            "trade",
            f"Close {_side_label(position.side)} {position.token} on {position.exchange}",
            position.size,
            token=position.token,
            exchange=position.exchange,
            pnl=realized,
            volume=volume,
        )
        log_position_event(
            self._logger,
            "position_closed",
            position_id=position.id,
            token=position.token,
            exchange=position.exchange,
            side=position.side,
            size=position.size,
            price=float(exit_price),
            realized_pnl=round(realized, 6),
        )
        return replace(position), entry

    def get(self, position_id: str) -> Position | None:
        position = self._positions.get(position_id)
        return replace(position) if position is not None else None

    def all_positions(self) -> list[Position]:
        """Every position, most recent first."""
        return [replace(position) for position in reversed(self._positions.values())]

    def open_positions(self) -> list[Position]:
        return [position for position in self.all_positions() if position.status == "open"]

    def by_exchange(self, exchange: str) -> list[Position]:
        return [position for position in self.open_positions() if position.exchange == exchange]

    def total_pnl(self) -> float:
        """Sum of PnL over open positions, recomputed on every call."""
        return sum(position.pnl for position in self._positions.values() if position.status == "open")

    def clear(self) -> None:
        self._positions.clear()
