"""Engine error taxonomy."""

from __future__ import annotations


class DeskError(Exception):
    """Base recoverable engine error."""


class InvalidOrderSpec(DeskError):
    """Raised when an order request is rejected."""


class InvalidStrategyConfig(DeskError):
    """Raised when a strategy deployment is rejected."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"invalid_strategy_config: {', '.join(self.missing)}")


class PositionNotFound(DeskError):
    """Raised when a position is unknown or already closed."""


class InvalidPrice(DeskError):
    """Raised when a mark or exit price is not finite and positive."""


class OrderNotFound(DeskError):
    """Raised when an order is unknown."""


class InvalidAmount(DeskError):
    """Raised when a cash movement amount is rejected."""


class StrategyNotFound(DeskError):
    """Raised when a strategy id is unknown."""


class InvalidStrategyTransition(DeskError):
    """Raised when a strategy status change would move backwards."""


class PriceFetchError(DeskError):
    """Raised when the price API transport/request fails."""


class TimerLeak(AssertionError):
    """Raised when a second timer is armed for one order."""
