"""Reporting projections over ledger state.

Every function is pure and recomputed from the entries/positions passed in.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from statistics import fmean
from typing import Sequence

import pandas as pd

from desk_sim.ledger.history import entry_as_row
from desk_sim.types import HistoryEntry, Position

_HISTORY_COLUMNS = [
    "id",
    "timestamp",
    "type",
    "action",
    "amount",
    "status",
    "token",
    "exchange",
    "pnl",
    "volume",
    "source",
]


@dataclass(slots=True, frozen=True)
class PortfolioSummary:
    """Account-level figures for the open book."""

    cash: float
    open_positions: int
    unrealized_pnl: float
    unrealized_pnl_percent: float
    locked_margin: float
    total_notional: float
    directional_bias: float
    directional_bias_percent: float
    total_equity: float
    realized_pnl: float
    total_volume: float

    def as_dict(self) -> dict[str, float | int]:
        return asdict(self)


def history_frame(entries: Sequence[HistoryEntry]) -> pd.DataFrame:
    """Tabulate history entries, most recent first."""
    if not entries:
        return pd.DataFrame(columns=_HISTORY_COLUMNS)
    frame = pd.DataFrame([entry_as_row(entry) for entry in entries])
    frame["timestamp"] = pd.to_datetime(frame["timestamp"], utc=True)
    return frame


def volume_by_source(entries: Sequence[HistoryEntry]) -> dict[str, float]:
    """Total trade volume per source. Entries without a source count as ``unattributed``."""
    trades = [entry for entry in entries if entry.type == "trade" and entry.volume is not None]
    if not trades:
        return {}
    frame = history_frame(trades)
    grouped = frame.assign(source=frame["source"].fillna("unattributed")).groupby("source")["volume"].sum()
    return {str(source): float(volume) for source, volume in grouped.items()}


def realized_stats(entries: Sequence[HistoryEntry]) -> dict[str, float | int]:
    """Trade count, realized PnL, win rate and expectancy of closing trades."""
    closes = [entry.pnl for entry in entries if entry.type == "trade" and entry.pnl is not None]
    if not closes:
        return {
            "trade_count": 0,
            "realized_pnl": 0.0,
            "win_rate_pct": 0.0,
            "expectancy_per_trade": 0.0,
        }
    wins = sum(1 for pnl in closes if pnl > 0)
    return {
        "trade_count": len(closes),
        "realized_pnl": float(sum(closes)),
        "win_rate_pct": wins / len(closes) * 100.0,
        "expectancy_per_trade": float(fmean(closes)),
    }


def compute_summary(
    cash: float,
    positions: Sequence[Position],
    entries: Sequence[HistoryEntry],
) -> PortfolioSummary:
    """Summarize open exposure, margin and equity."""
    open_positions = [position for position in positions if position.status == "open"]
    total_notional = 0.0
    locked_margin = 0.0
    unrealized = 0.0
    net_notional = 0.0
    for position in open_positions:
        notional = position.notional
        leverage = position.leverage if position.leverage > 0 else 1.0
        total_notional += notional
        locked_margin += notional / leverage
        unrealized += position.pnl
        net_notional += notional if position.side == "long" else -notional

    total_equity = cash + locked_margin + unrealized
    stats = realized_stats(entries)
    return PortfolioSummary(
        cash=cash,
        open_positions=len(open_positions),
        unrealized_pnl=unrealized,
        unrealized_pnl_percent=unrealized / total_equity * 100.0 if total_equity else 0.0,
        locked_margin=locked_margin,
        total_notional=total_notional,
        directional_bias=net_notional,
        directional_bias_percent=net_notional / total_equity * 100.0 if total_equity else 0.0,
        total_equity=total_equity,
        realized_pnl=float(stats["realized_pnl"]),
        total_volume=float(sum(entry.volume or 0.0 for entry in entries)),
    )
