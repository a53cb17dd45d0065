"""Deployed strategy instances and their forward-only lifecycle."""

from __future__ import annotations

from dataclasses import replace

from desk_sim.errors import InvalidStrategyTransition, StrategyNotFound
from desk_sim.strategy.guards import StrategyGuards, roi_percent
from desk_sim.types import MarketMakerStrategy, RunDecision, StrategyStatus
from desk_sim.utils.logging import get_logger, log_strategy_event

_TRANSITIONS: dict[str, frozenset[str]] = {
    "running": frozenset({"paused", "completed", "stopped"}),
    "paused": frozenset(),
    "completed": frozenset(),
    "stopped": frozenset(),
}


class StrategyRegistry:
    """Strategies keyed by id. A status only ever moves away from ``running``."""

    def __init__(self, guards: StrategyGuards | None = None) -> None:
        self._strategies: dict[str, MarketMakerStrategy] = {}
        self._guards = guards or StrategyGuards()
        self._logger = get_logger("desk_sim.strategy.registry")

    def __len__(self) -> int:
        return len(self._strategies)

    def add(self, strategy: MarketMakerStrategy) -> None:
        if strategy.id in self._strategies:
            raise ValueError(f"duplicate_strategy_id: {strategy.id}")
        self._strategies[strategy.id] = strategy

    def get(self, strategy_id: str) -> MarketMakerStrategy:
        return _copy(self._require(strategy_id))

    def all(self) -> list[MarketMakerStrategy]:
        """Every strategy, most recently deployed first."""
        return [_copy(strategy) for strategy in reversed(self._strategies.values())]

    def active(self) -> list[MarketMakerStrategy]:
        return [strategy for strategy in self.all() if strategy.status == "running"]

    def transition(
        self,
        strategy_id: str,
        status: StrategyStatus,
        reasons: list[str] | None = None,
    ) -> MarketMakerStrategy:
        strategy = self._require(strategy_id)
        if status not in _TRANSITIONS[strategy.status]:
            raise InvalidStrategyTransition(f"{strategy.status}_to_{status}: {strategy_id}")
        previous = strategy.status
        strategy.status = status
        strategy.status_reasons = list(reasons or [])
        log_strategy_event(
            self._logger,
            "strategy_status_changed",
            strategy_id=strategy_id,
            status=status,
            previous=previous,
            reasons=strategy.status_reasons,
        )
        return _copy(strategy)

    def record_run(self, strategy_id: str, pnl: float, volume: float) -> tuple[MarketMakerStrategy, RunDecision]:
        """Account one completed run, then apply the guard rails."""
        strategy = self._require(strategy_id)
        if strategy.status != "running":
            raise InvalidStrategyTransition(f"run_on_{strategy.status}: {strategy_id}")
        if volume < 0:
            raise ValueError("volume_must_be_non_negative")
        strategy.runs_completed += 1
        strategy.current_pnl += pnl
        strategy.volume += volume
        strategy.current_roi = roi_percent(strategy.current_pnl, strategy.config.margin)

        decision = self._guards.evaluate(strategy, pnl)
        if decision.next_status != "running":
            self.transition(strategy_id, decision.next_status, decision.reasons)
        return _copy(strategy), decision

    def clear(self) -> None:
        self._strategies.clear()

    def _require(self, strategy_id: str) -> MarketMakerStrategy:
        strategy = self._strategies.get(strategy_id)
        if strategy is None:
            raise StrategyNotFound(strategy_id)
        return strategy


def _copy(strategy: MarketMakerStrategy) -> MarketMakerStrategy:
    return replace(strategy, status_reasons=list(strategy.status_reasons))
