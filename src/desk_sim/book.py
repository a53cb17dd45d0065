"""Order book: the single authoritative store of orders for one session."""

from __future__ import annotations

from dataclasses import replace

from desk_sim.errors import OrderNotFound
from desk_sim.types import Order, OrderStatus


class OrderBook:
    """Orders keyed by id, mutated only through these methods."""

    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}

    def __len__(self) -> int:
        return len(self._orders)

    def __contains__(self, order_id: object) -> bool:
        return order_id in self._orders

    def add(self, order: Order) -> None:
        if order.id in self._orders:
            raise ValueError(f"duplicate_order_id: {order.id}")
        self._orders[order.id] = order

    def get(self, order_id: str) -> Order | None:
        """Return a copy of the current order state, or None."""
        order = self._orders.get(order_id)
        return _copy(order) if order is not None else None

    def require(self, order_id: str) -> Order:
        order = self.get(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def set_progress(self, order_id: str, filled: float, status: OrderStatus) -> Order | None:
        """Write fill progress back into the book.

        Terminal orders are left untouched and ``filled`` never decreases.
        Returns the updated copy, or None when the order is gone or terminal.
        """
        order = self._orders.get(order_id)
        if order is None or order.is_terminal:
            return None
        order.filled = max(order.filled, min(100.0, filled))
        order.status = status
        return _copy(order)

    def link_positions(self, order_id: str, position_ids: list[str]) -> None:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        order.position_ids.extend(position_ids)

    def cancel(self, order_id: str) -> bool:
        """Mark an order cancelled. False when unknown or already terminal."""
        order = self._orders.get(order_id)
        if order is None or order.is_terminal:
            return False
        order.status = "cancelled"
        return True

    def snapshot(self) -> list[Order]:
        """Copies of every order, most recent first."""
        return [_copy(order) for order in reversed(self._orders.values())]

    def clear(self) -> None:
        self._orders.clear()


def _copy(order: Order) -> Order:
    carry = replace(order.carry) if order.carry is not None else None
    return replace(order, carry=carry, position_ids=list(order.position_ids))
