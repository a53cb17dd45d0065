"""Market-making strategy configuration schema and strict parsing."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from desk_sim.errors import InvalidStrategyConfig
from desk_sim.types import ParticipationRate


class MarketMakerConfig(BaseModel):
    """Deployable market-making configuration.

    ``stop_loss``, ``take_profit`` and ``tolerance_percent`` are percentages
    of margin; ``spread_bps``, ``min_spread`` and ``max_spread`` are basis
    points; ``order_amount`` is in quote currency; ``refresh_time`` is seconds.
    """

    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)

    name: str = "Market Maker"
    exchange: str = ""
    pair: str = ""
    margin: float = 0.0
    leverage: float = 1.0
    spread_bps: float = Field(default=10.0, ge=0.0)
    order_levels: int = Field(default=5, ge=1)
    order_amount: float = Field(default=100.0, gt=0.0)
    refresh_time: int = Field(default=5, ge=1)
    inventory_skew: float = 0.0
    min_spread: float = Field(default=5.0, ge=0.0)
    max_spread: float = Field(default=50.0, ge=0.0)
    stop_loss: float = Field(default=2.0, ge=0.0)
    take_profit: float = Field(default=5.0, ge=0.0)
    participation_rate: ParticipationRate = "neutral"
    enable_auto_repeat: bool = False
    max_runs: int = Field(default=3, ge=1)
    enable_pnl_tolerance: bool = False
    tolerance_percent: float = Field(default=2.0, ge=0.0)

    def missing_fields(self) -> list[str]:
        """Required fields that are absent or not positive."""
        missing: list[str] = []
        if not self.exchange.strip():
            missing.append("exchange")
        if not self.pair.strip():
            missing.append("pair")
        if self.margin <= 0:
            missing.append("margin")
        if self.leverage <= 0:
            missing.append("leverage")
        return missing

    @classmethod
    def parse_strict(cls, payload: dict[str, Any]) -> "MarketMakerConfig":
        """Parse a raw dict. Any violation raises InvalidStrategyConfig."""
        try:
            config = cls.model_validate(payload)
        except ValidationError as exc:
            fields = sorted({str(err["loc"][0]) for err in exc.errors() if err["loc"]})
            raise InvalidStrategyConfig(fields or ["config"]) from exc
        missing = config.missing_fields()
        if missing:
            raise InvalidStrategyConfig(missing)
        return config
