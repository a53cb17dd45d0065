from __future__ import annotations

import httpx
import pytest

from desk_sim.config import Settings
from desk_sim.data.prices import HttpPriceOracle, StaticPriceOracle, normalize_symbol
from desk_sim.errors import PriceFetchError


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("btc", "BTC"),
        ("BTC:PERP-USD", "BTC"),
        ("BTC-PERP-USDC", "BTC"),
        ("eth/usdt", "ETH"),
        ("", ""),
    ],
)
def test_normalize_symbol(raw: str, expected: str) -> None:
    assert normalize_symbol(raw) == expected


def test_static_oracle_normalizes_lookups() -> None:
    oracle = StaticPriceOracle({"BTC-PERP-USDC": 90_000.0})
    assert oracle.get_price("btc") == 90_000.0
    assert oracle.get_price("ETH") is None
    with pytest.raises(ValueError):
        oracle.set_price("ETH", 0)


def test_http_oracle_queries_ticker() -> None:
    seen: list[str] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.params["symbol"])
        return httpx.Response(200, json={"symbol": "BTCUSDT", "price": "89128.50"})

    oracle = HttpPriceOracle(Settings(), transport=httpx.MockTransport(_handler))

    assert oracle.get_price("BTC:PERP-USD") == 89128.5
    assert seen == ["BTCUSDT"]


def test_http_oracle_retries_then_degrades(monkeypatch: object) -> None:
    monkeypatch.setattr("time.sleep", lambda _: None)
    calls: list[int] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(503, json={"msg": "unavailable"})

    oracle = HttpPriceOracle(Settings(), transport=httpx.MockTransport(_handler))

    with pytest.raises(PriceFetchError):
        oracle.fetch_price("BTC")
    assert len(calls) == 3
    assert oracle.get_price("BTC") is None


def test_http_oracle_rejects_malformed_payload() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"code": -1121, "msg": "Invalid symbol."})

    oracle = HttpPriceOracle(Settings(), transport=httpx.MockTransport(_handler))

    with pytest.raises(PriceFetchError):
        oracle.fetch_price("NOPE")
