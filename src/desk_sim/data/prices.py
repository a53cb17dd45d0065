"""Price oracles consulted for marks and deployment prices."""

from __future__ import annotations

import re
from typing import Any, Protocol

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from desk_sim.config import Settings, get_settings
from desk_sim.errors import PriceFetchError
from desk_sim.utils.logging import get_logger


class PriceOracle(Protocol):
    def get_price(self, token: str) -> float | None: ...


def normalize_symbol(raw: str) -> str:
    """Reduce ``BTC:PERP-USD``, ``BTC-PERP-USDC`` or ``BTC/USDT`` to ``BTC``."""
    if not raw:
        return ""
    return re.split(r"[:\-/]", raw.strip().upper(), maxsplit=1)[0]


class StaticPriceOracle:
    """In-memory prices, keyed by normalized symbol."""

    def __init__(self, prices: dict[str, float] | None = None) -> None:
        self._prices: dict[str, float] = {}
        for token, price in (prices or {}).items():
            self.set_price(token, price)

    def set_price(self, token: str, price: float) -> None:
        if price <= 0:
            raise ValueError("price_must_be_positive")
        self._prices[normalize_symbol(token)] = float(price)

    def get_price(self, token: str) -> float | None:
        return self._prices.get(normalize_symbol(token))


class HttpPriceOracle:
    """Spot prices from the public Binance ticker endpoint."""

    def __init__(self, settings: Settings | None = None, *, transport: httpx.BaseTransport | None = None) -> None:
        self._settings = settings or get_settings()
        self._transport = transport
        self._logger = get_logger("desk_sim.data.prices")

    def get_price(self, token: str) -> float | None:
        """Quote a token, or None when the request keeps failing."""
        try:
            return self.fetch_price(token)
        except PriceFetchError as exc:
            self._logger.warning("price_fetch_failed", token=token, error=str(exc))
            return None

    def fetch_price(self, token: str) -> float:
        symbol = normalize_symbol(token)
        if not symbol:
            raise PriceFetchError("empty_symbol")
        pair = f"{symbol}{self._settings.price_quote_asset.upper()}"
        payload = self._request_price(pair)
        return _extract_price(payload, pair)

    @retry(
        retry=retry_if_exception_type(PriceFetchError),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _request_price(self, pair: str) -> dict[str, Any]:
        try:
            with httpx.Client(timeout=self._settings.price_api_timeout, transport=self._transport) as client:
                response = client.get(self._settings.price_api_url, params={"symbol": pair})
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise PriceFetchError(f"price_request_failed: {pair}: {exc}") from exc
        return response.json()


def _extract_price(payload: dict[str, Any], pair: str) -> float:
    raw = payload.get("price") if isinstance(payload, dict) else None
    try:
        price = float(raw)
    except (TypeError, ValueError) as exc:
        raise PriceFetchError(f"price_missing_in_response: {pair}") from exc
    if price <= 0:
        raise PriceFetchError(f"price_not_positive: {pair}")
    return price
