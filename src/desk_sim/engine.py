"""Trading desk: the command/read boundary over the book, simulator and ledgers."""

from __future__ import annotations

import math
import random
from typing import Any

from desk_sim.book import OrderBook
from desk_sim.config import Settings, get_settings
from desk_sim.data.prices import PriceOracle, StaticPriceOracle
from desk_sim.errors import InvalidAmount, InvalidOrderSpec, InvalidStrategyConfig
from desk_sim.ledger.history import HistoryLedger
from desk_sim.ledger.positions import PositionLedger
from desk_sim.ledger.reporting import PortfolioSummary, compute_summary
from desk_sim.sim.fill_simulator import FillSimulator
from desk_sim.sim.scheduler import LoopScheduler, RandomSource, Scheduler
from desk_sim.strategy.estimator import (
    StrategyEstimates,
    build_deployment,
    deployment_token,
    estimate,
    volume_per_run,
)
from desk_sim.strategy.registry import StrategyRegistry
from desk_sim.strategy.schemas import MarketMakerConfig
from desk_sim.types import (
    ORDER_SIDES,
    ORDER_SOURCES,
    ExecutionDetail,
    HistoryEntry,
    MarketMakerStrategy,
    Order,
    OrderSpec,
    Position,
    RunDecision,
)
from desk_sim.utils.ids import new_id, utc_now_iso
from desk_sim.utils.logging import get_logger, log_order_event, log_strategy_event


class TradingDesk:
    """One simulated trading session.

    Commands mutate state synchronously; fills progress on the scheduler.
    The default scheduler needs a running asyncio loop when orders are armed.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        scheduler: Scheduler | None = None,
        rng: RandomSource | None = None,
        price_oracle: PriceOracle | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._scheduler = scheduler or LoopScheduler()
        self._oracle = price_oracle or StaticPriceOracle()
        self._book = OrderBook()
        self._history = HistoryLedger()
        self._positions = PositionLedger(self._history)
        self._strategies = StrategyRegistry()
        self._simulator = FillSimulator(
            self._book,
            self._scheduler,
            settings=self._settings,
            rng=rng or random.Random(),
            on_filled=self._on_filled,
        )
        self._cash = 0.0
        self._logger = get_logger("desk_sim.engine")

    def __enter__(self) -> "TradingDesk":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def cash(self) -> float:
        return self._cash

    @property
    def active_timers(self) -> int:
        return self._simulator.active_timers

    # ==================== orders ====================

    def submit_order(self, spec: OrderSpec) -> str:
        """Enqueue a pending order and start its fill progression."""
        _validate_order_spec(spec)
        order = Order(
            id=new_id("ord"),
            token=spec.token,
            exchange=spec.exchange,
            side=spec.side,
            size=float(spec.size),
            price=float(spec.price),
            source=spec.source,
            created_at=utc_now_iso(),
            carry=spec.carry,
            leverage=float(spec.leverage),
        )
        self._book.add(order)
        log_order_event(
            self._logger,
            "order_submitted",
            order_id=order.id,
            status=order.status,
            token=order.token,
            exchange=order.exchange,
            side=order.side,
            size=order.size,
            price=order.price,
            source=order.source,
        )
        self._simulator.observe()
        return order.id

    def cancel_order(self, order_id: str) -> bool:
        """Request cancellation. False when the order is unknown or already terminal."""
        cancelled = self._book.cancel(order_id)
        if cancelled:
            log_order_event(self._logger, "order_cancelled", order_id=order_id, status="cancelled")
        else:
            self._logger.debug("cancel_ignored", order_id=order_id)
        return cancelled

    def get_order(self, order_id: str) -> Order | None:
        return self._book.get(order_id)

    def get_orders(self) -> list[Order]:
        return self._book.snapshot()

    # ==================== strategies ====================

    def deploy_strategy(self, config: MarketMakerConfig | dict[str, Any]) -> str:
        """Validate a strategy and emit its order, position and single history entry."""
        config = _coerce_config(config)
        token = deployment_token(config)
        plan = build_deployment(config, self._settings, price=self._oracle.get_price(token))

        order = Order(
            id=new_id("ord"),
            token=plan.token,
            exchange=config.exchange,
            side="long",
            size=plan.order_size,
            price=plan.reference_price,
            source="market-maker",
            created_at=utc_now_iso(),
            leverage=config.leverage,
        )
        self._book.add(order)
        position = self._positions.open_position(
            token=plan.token,
            exchange=config.exchange,
            side="long",
            size=plan.order_size,
            entry_price=plan.reference_price,
            leverage=config.leverage,
            volume=plan.position_volume,
            order_id=order.id,
            source="market-maker",
            record_history=False,
        )
        self._book.link_positions(order.id, [position.id])
        entry = self._history.record(
            "trade",
            plan.action,
            plan.order_size,
            token=plan.token,
            exchange=config.exchange,
            volume=plan.position_volume,
            source="market-maker",
            execution=ExecutionDetail(
                buy_quantity=config.order_amount,
                buy_leverage=config.leverage,
                buy_exchange=config.exchange,
                buy_pair=config.pair,
                buy_price=plan.reference_price,
                duration=config.refresh_time,
                exchanges=(config.exchange,),
            ),
        )
        strategy = MarketMakerStrategy(
            id=new_id("mm"),
            config=config,
            deployed_at=utc_now_iso(),
            order_id=order.id,
            position_id=position.id,
            history_id=entry.id,
            exposure=plan.exposure,
        )
        self._strategies.add(strategy)
        log_strategy_event(
            self._logger,
            "strategy_deployed",
            strategy_id=strategy.id,
            status=strategy.status,
            exchange=config.exchange,
            pair=config.pair,
            order_id=order.id,
            position_id=position.id,
            volume=plan.position_volume,
        )
        self._simulator.observe()
        return strategy.id

    def estimate_strategy(self, config: MarketMakerConfig | dict[str, Any]) -> StrategyEstimates:
        return estimate(_coerce_config(config), self._settings)

    def record_strategy_run(self, strategy_id: str, pnl: float, volume: float | None = None) -> RunDecision:
        """Account one run of a strategy. ``volume`` defaults to the projected per-run volume."""
        strategy = self._strategies.get(strategy_id)
        if volume is None:
            volume = volume_per_run(strategy.config, self._settings)
        _, decision = self._strategies.record_run(strategy_id, pnl, volume)
        return decision

    def stop_strategy(self, strategy_id: str) -> MarketMakerStrategy:
        return self._strategies.transition(strategy_id, "stopped", ["stopped_by_user"])

    def pause_strategy(self, strategy_id: str) -> MarketMakerStrategy:
        return self._strategies.transition(strategy_id, "paused", ["paused_by_user"])

    def get_strategy(self, strategy_id: str) -> MarketMakerStrategy:
        return self._strategies.get(strategy_id)

    def get_strategies(self) -> list[MarketMakerStrategy]:
        return self._strategies.all()

    # ==================== positions ====================

    def close_position(self, position_id: str, exit_price: float) -> Position:
        """Close an open position. Raises PositionNotFound when unknown or closed, InvalidPrice on a bad exit."""
        position, _ = self._positions.close(position_id, exit_price)
        return position

    def update_position_price(self, position_id: str, current_price: float) -> Position | None:
        return self._positions.update_price(position_id, current_price)

    def mark_to_market(self, oracle: PriceOracle | None = None) -> int:
        return self._positions.mark_to_market(oracle or self._oracle)

    def get_open_positions(self) -> list[Position]:
        return self._positions.open_positions()

    def get_positions(self) -> list[Position]:
        return self._positions.all_positions()

    def get_positions_by_exchange(self, exchange: str) -> list[Position]:
        return self._positions.by_exchange(exchange)

    def get_total_pnl(self) -> float:
        return self._positions.total_pnl()

    def get_history(self) -> list[HistoryEntry]:
        return self._history.entries()

    # ==================== cash ====================

    def deposit(self, amount: float, token: str = "USDC") -> HistoryEntry:
        _check_amount(amount)
        self._cash += amount
        self._logger.info("cash_deposited", amount=amount, token=token, cash=self._cash)
        return self._history.record("deposit", f"Deposit {token}", amount, token=token)

    def withdraw(self, amount: float, token: str = "USDC") -> HistoryEntry:
        _check_amount(amount)
        if amount > self._cash:
            raise InvalidAmount(f"insufficient_cash: {amount} > {self._cash}")
        self._cash -= amount
        self._logger.info("cash_withdrawn", amount=amount, token=token, cash=self._cash)
        return self._history.record("withdrawal", f"Withdraw {token}", amount, token=token)

    def summary(self) -> PortfolioSummary:
        return compute_summary(self._cash, self._positions.all_positions(), self._history.entries())

    # ==================== session ====================

    def reset_portfolio(self) -> None:
        """Release every timer, then clear orders, positions, history, strategies and cash."""
        released = self._simulator.teardown()
        self._book.clear()
        self._positions.clear()
        self._history.clear()
        self._strategies.clear()
        self._cash = 0.0
        self._logger.info("portfolio_reset", released_timers=released)

    def close(self) -> None:
        released = self._simulator.teardown()
        self._logger.info("session_closed", released_timers=released, orders=len(self._book))

    def _on_filled(self, order: Order) -> None:
        if order.position_ids:
            self._logger.debug("fill_already_settled", order_id=order.id, position_ids=order.position_ids)
            return
        positions = self._positions.open_for_order(order, order.price)
        self._book.link_positions(order.id, [position.id for position in positions])


def _validate_order_spec(spec: OrderSpec) -> None:
    if spec.side not in ORDER_SIDES:
        raise InvalidOrderSpec(f"unsupported_side: {spec.side}")
    if spec.source not in ORDER_SOURCES:
        raise InvalidOrderSpec(f"unsupported_source: {spec.source}")
    if not spec.token or not spec.exchange:
        raise InvalidOrderSpec("token_and_exchange_required")
    if not _positive(spec.size):
        raise InvalidOrderSpec("size_must_be_positive")
    if not _positive(spec.price):
        raise InvalidOrderSpec("price_must_be_positive")
    if not _positive(spec.leverage):
        raise InvalidOrderSpec("leverage_must_be_positive")
    if spec.side == "carry":
        legs = spec.carry
        if legs is None:
            raise InvalidOrderSpec("carry_legs_required")
        if not (legs.long_token and legs.long_exchange and legs.short_token and legs.short_exchange):
            raise InvalidOrderSpec("carry_leg_token_and_exchange_required")
        if not _positive(legs.long_size) or not _positive(legs.short_size):
            raise InvalidOrderSpec("carry_leg_size_must_be_positive")


def _positive(value: float) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value) and value > 0


def _check_amount(amount: float) -> None:
    if not _positive(amount):
        raise InvalidAmount(f"amount_must_be_positive: {amount}")


def _coerce_config(config: MarketMakerConfig | dict[str, Any]) -> MarketMakerConfig:
    if isinstance(config, MarketMakerConfig):
        missing = config.missing_fields()
        if missing:
            raise InvalidStrategyConfig(missing)
        return config
    return MarketMakerConfig.parse_strict(config)
