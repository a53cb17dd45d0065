from __future__ import annotations

import pytest

from desk_sim.config import Settings
from desk_sim.errors import InvalidStrategyConfig
from desk_sim.strategy.estimator import build_deployment, deployment_token, estimate, runs_per_day
from desk_sim.strategy.schemas import MarketMakerConfig


def _config(**overrides: object) -> MarketMakerConfig:
    payload: dict[str, object] = {
        "exchange": "Hyperliquid",
        "pair": "BTC-USDT",
        "margin": 50,
        "leverage": 10,
        "spread_bps": 10,
        "participation_rate": "neutral",
        "enable_auto_repeat": False,
    }
    payload.update(overrides)
    return MarketMakerConfig.parse_strict(payload)


def test_estimate_single_run_neutral() -> None:
    result = estimate(_config(), Settings())

    assert result.volume_per_run == 10_000
    assert result.max_runs_per_day == 96
    assert result.actual_runs_per_day == 1
    assert result.daily_volume == 10_000
    assert result.maker_fees == pytest.approx(1.0)
    assert result.spread_profit == pytest.approx(5.0)
    assert result.daily_return == pytest.approx(6.0)
    assert result.daily_return_percent == pytest.approx(12.0)
    assert result.monthly_return == pytest.approx(180.0)
    assert result.monthly_return_percent == pytest.approx(360.0)


@pytest.mark.parametrize(
    ("rate", "max_runs", "expected_max", "expected_actual"),
    [
        ("aggressive", 500, 288, 288),
        ("neutral", 10, 96, 10),
        ("passive", 100, 32, 32),
    ],
)
def test_runs_per_day_with_auto_repeat(rate: str, max_runs: int, expected_max: int, expected_actual: int) -> None:
    config = _config(participation_rate=rate, enable_auto_repeat=True, max_runs=max_runs)
    assert runs_per_day(config, Settings()) == (expected_max, expected_actual)


def test_estimate_scales_with_runs() -> None:
    result = estimate(_config(enable_auto_repeat=True, max_runs=4), Settings())
    assert result.daily_volume == 40_000
    assert result.daily_return == pytest.approx(24.0)


def test_build_deployment_uses_reference_price_fallback() -> None:
    config = _config(order_amount=89.128)
    plan = build_deployment(config, Settings())

    assert plan.token == "BTC"
    assert plan.reference_price == 89128.0
    assert plan.order_size == pytest.approx(0.001)
    assert plan.position_volume == 10_000
    assert plan.exposure == 500
    assert plan.action == "MM: BTC on Hyperliquid"

    quoted = build_deployment(config, Settings(), price=100.0)
    assert quoted.reference_price == 100.0
    assert quoted.order_size == pytest.approx(0.89128)


def test_deployment_token_from_pair() -> None:
    assert deployment_token(_config(pair="eth/usdt")) == "ETH"
    assert deployment_token(_config(pair="SOL:PERP-USD")) == "SOL"


def test_missing_required_fields_are_listed() -> None:
    with pytest.raises(InvalidStrategyConfig) as exc_info:
        MarketMakerConfig.parse_strict({"margin": 0, "leverage": -1})
    assert exc_info.value.missing == ["exchange", "pair", "margin", "leverage"]


def test_schema_violations_are_rejected() -> None:
    with pytest.raises(InvalidStrategyConfig) as exc_info:
        _config(participation_rate="reckless", unknown_field=1)
    assert exc_info.value.missing == ["participation_rate", "unknown_field"]
