"""Shared domain types for the order book, ledgers and strategies."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from desk_sim.strategy.schemas import MarketMakerConfig

OrderSide = Literal["long", "short", "carry"]
PositionSide = Literal["long", "short"]
OrderStatus = Literal["pending", "in-progress", "filled", "cancelled"]
OrderSource = Literal["aggregator", "carry", "market-maker"]
PositionStatus = Literal["open", "closed"]
HistoryType = Literal["trade", "deposit", "withdrawal"]
HistoryStatus = Literal["completed", "pending", "failed"]
HistorySource = Literal["single", "carry", "market-maker"]
ParticipationRate = Literal["passive", "neutral", "aggressive"]
StrategyStatus = Literal["running", "paused", "completed", "stopped"]

ORDER_SIDES: frozenset[str] = frozenset({"long", "short", "carry"})
ORDER_SOURCES: frozenset[str] = frozenset({"aggregator", "carry", "market-maker"})
TERMINAL_ORDER_STATUSES: frozenset[str] = frozenset({"filled", "cancelled"})


@dataclass(slots=True, frozen=True)
class FillProfile:
    """Timing distribution parameters for one order source."""

    start_delay_ms: int
    increment_min: float
    increment_max: float
    interval_min_ms: int
    interval_max_ms: int


@dataclass(slots=True)
class CarryLegs:
    """Paired long/short legs of a carry order."""

    long_token: str
    long_exchange: str
    long_size: float
    short_token: str
    short_exchange: str
    short_size: float


@dataclass(slots=True)
class OrderSpec:
    """Inbound request to create an order."""

    token: str
    exchange: str
    side: OrderSide
    size: float
    price: float
    source: OrderSource = "aggregator"
    carry: CarryLegs | None = None
    leverage: float = 1.0


@dataclass(slots=True)
class Order:
    """An order tracked by the order book."""

    id: str
    token: str
    exchange: str
    side: OrderSide
    size: float
    price: float
    source: OrderSource
    created_at: str
    status: OrderStatus = "pending"
    filled: float = 0.0
    carry: CarryLegs | None = None
    leverage: float = 1.0
    position_ids: list[str] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ORDER_STATUSES


@dataclass(slots=True)
class Position:
    """Exposure opened from a filled order or a strategy deployment."""

    id: str
    token: str
    exchange: str
    side: PositionSide
    size: float
    entry_price: float
    opened_at: str
    leverage: float = 1.0
    current_price: float | None = None
    pnl: float = 0.0
    pnl_percent: float = 0.0
    status: PositionStatus = "open"
    volume: float | None = None
    order_id: str | None = None
    exit_price: float | None = None
    realized_pnl: float | None = None
    closed_at: str | None = None

    @property
    def notional(self) -> float:
        mark = self.current_price if self.current_price is not None else self.entry_price
        return self.size * mark


@dataclass(slots=True, frozen=True)
class ExecutionDetail:
    """Buy/sell legs attached to multi-leg and strategy history records."""

    buy_quantity: float | None = None
    buy_leverage: float | None = None
    buy_exchange: str | None = None
    buy_pair: str | None = None
    buy_price: float | None = None
    sell_quantity: float | None = None
    sell_leverage: float | None = None
    sell_exchange: str | None = None
    sell_pair: str | None = None
    sell_price: float | None = None
    duration: int | None = None
    exchanges: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class HistoryEntry:
    """Immutable audit record."""

    id: str
    timestamp: str
    type: HistoryType
    action: str
    amount: float
    status: HistoryStatus = "completed"
    token: str | None = None
    exchange: str | None = None
    pnl: float | None = None
    volume: float | None = None
    source: HistorySource | None = None
    execution: ExecutionDetail | None = None


@dataclass(slots=True)
class MarketMakerStrategy:
    """A deployed market-making strategy instance and its runtime accounting."""

    id: str
    config: MarketMakerConfig
    deployed_at: str
    order_id: str
    position_id: str
    history_id: str
    status: StrategyStatus = "running"
    current_pnl: float = 0.0
    current_roi: float = 0.0
    volume: float = 0.0
    exposure: float = 0.0
    runs_completed: int = 0
    status_reasons: list[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def exchange(self) -> str:
        return self.config.exchange

    @property
    def pair(self) -> str:
        return self.config.pair


@dataclass(slots=True)
class RunDecision:
    """Outcome of the guard rails applied after one strategy run."""

    repeat: bool
    next_status: StrategyStatus
    run_roi: float
    reasons: list[str] = field(default_factory=list)
