"""Projected volume and return figures for a market-making strategy."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass

from desk_sim.config import Settings
from desk_sim.data.prices import normalize_symbol
from desk_sim.strategy.schemas import MarketMakerConfig

_MINUTES_PER_DAY = 1440


@dataclass(slots=True, frozen=True)
class StrategyEstimates:
    """Deterministic projections for one configuration."""

    volume_per_run: float
    max_runs_per_day: int
    actual_runs_per_day: int
    daily_volume: float
    maker_fees: float
    spread_profit: float
    daily_return: float
    daily_return_percent: float
    monthly_return: float
    monthly_return_percent: float

    def as_dict(self) -> dict[str, float | int]:
        return asdict(self)


@dataclass(slots=True, frozen=True)
class DeploymentPlan:
    """Order, position and history figures synthesized for one deployment."""

    token: str
    reference_price: float
    order_size: float
    position_volume: float
    exposure: float
    action: str


def volume_per_run(config: MarketMakerConfig, settings: Settings) -> float:
    return config.margin * config.leverage * settings.turnover_multiplier


def runs_per_day(config: MarketMakerConfig, settings: Settings) -> tuple[int, int]:
    """Return (max possible runs, actual runs) per day."""
    max_runs = _MINUTES_PER_DAY // settings.cycle_minutes(config.participation_rate)
    if not config.enable_auto_repeat:
        return max_runs, 1
    return max_runs, min(max_runs, config.max_runs)


def estimate(config: MarketMakerConfig, settings: Settings) -> StrategyEstimates:
    """Compute volume, fee rebate, spread capture and return projections."""
    per_run = volume_per_run(config, settings)
    max_runs, actual_runs = runs_per_day(config, settings)
    daily_volume = per_run * actual_runs
    maker_fees = daily_volume * settings.maker_rebate_rate
    spread_profit = daily_volume * (config.spread_bps / 10_000.0) * settings.spread_capture_ratio
    daily_return = spread_profit + maker_fees
    monthly_return = daily_return * settings.days_per_month
    daily_return_percent = daily_return / config.margin * 100.0 if config.margin > 0 else 0.0
    monthly_return_percent = monthly_return / config.margin * 100.0 if config.margin > 0 else 0.0
    return StrategyEstimates(
        volume_per_run=per_run,
        max_runs_per_day=max_runs,
        actual_runs_per_day=actual_runs,
        daily_volume=daily_volume,
        maker_fees=maker_fees,
        spread_profit=spread_profit,
        daily_return=daily_return,
        daily_return_percent=daily_return_percent,
        monthly_return=monthly_return,
        monthly_return_percent=monthly_return_percent,
    )


def deployment_token(config: MarketMakerConfig) -> str:
    """Base asset quoted by a deployment, e.g. ``BTC`` for ``BTC-USDT``."""
    return normalize_symbol(config.pair) or "BTC"


def build_deployment(config: MarketMakerConfig, settings: Settings, price: float | None = None) -> DeploymentPlan:
    """Synthesize the order/position figures for deploying ``config``.

    ``price`` falls back to the configured reference price.
    """
    reference = price if price is not None and math.isfinite(price) and price > 0 else settings.reference_price
    token = deployment_token(config)
    return DeploymentPlan(
        token=token,
        reference_price=reference,
        order_size=config.order_amount / reference,
        position_volume=volume_per_run(config, settings),
        exposure=config.margin * config.leverage,
        action=f"MM: {token} on {config.exchange}",
    )
