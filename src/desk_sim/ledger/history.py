"""Append-only history ledger."""

from __future__ import annotations

from typing import Any

from desk_sim.types import ExecutionDetail, HistoryEntry, HistorySource, HistoryStatus, HistoryType
from desk_sim.utils.ids import new_id, utc_now_iso

_ALLOWED_ENTRY_TYPES = {"trade", "deposit", "withdrawal"}
_ALLOWED_STATUSES = {"completed", "pending", "failed"}


class HistoryLedger:
    """Immutable entries, most recent first."""

    def __init__(self) -> None:
        self._entries: list[HistoryEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def record(
        self,
        entry_type: HistoryType,
        action: str,
        amount: float,
        *,
        status: HistoryStatus = "completed",
        token: str | None = None,
        exchange: str | None = None,
        pnl: float | None = None,
        volume: float | None = None,
        source: HistorySource | None = None,
        execution: ExecutionDetail | None = None,
    ) -> HistoryEntry:
        """Create one new entry with a fresh id and timestamp and prepend it."""
        if entry_type not in _ALLOWED_ENTRY_TYPES:
            raise ValueError(f"unsupported_entry_type: {entry_type}")
        if status not in _ALLOWED_STATUSES:
            raise ValueError(f"unsupported_entry_status: {status}")
        entry = HistoryEntry(
            id=new_id("hist"),
            timestamp=utc_now_iso(),
            type=entry_type,
            action=action,
            amount=float(amount),
            status=status,
            token=token,
            exchange=exchange,
            pnl=pnl,
            volume=volume,
            source=source,
            execution=execution,
        )
        self._entries.insert(0, entry)
        return entry

    def entries(self) -> list[HistoryEntry]:
        return list(self._entries)

    def recent(self, limit: int) -> list[HistoryEntry]:
        if limit <= 0:
            return []
        return self._entries[:limit]

    def get(self, entry_id: str) -> HistoryEntry | None:
        return next((entry for entry in self._entries if entry.id == entry_id), None)

    def clear(self) -> None:
        self._entries.clear()


def entry_as_row(entry: HistoryEntry) -> dict[str, Any]:
    """Flatten one entry, execution legs included, into a serializable row."""
    row: dict[str, Any] = {
        "id": entry.id,
        "timestamp": entry.timestamp,
        "type": entry.type,
        "action": entry.action,
        "amount": entry.amount,
        "status": entry.status,
        "token": entry.token,
        "exchange": entry.exchange,
        "pnl": entry.pnl,
        "volume": entry.volume,
        "source": entry.source,
    }
    detail = entry.execution
    if detail is not None:
        row.update(
            {
                "buy_exchange": detail.buy_exchange,
                "buy_pair": detail.buy_pair,
                "buy_quantity": detail.buy_quantity,
                "sell_exchange": detail.sell_exchange,
                "sell_pair": detail.sell_pair,
                "sell_quantity": detail.sell_quantity,
            }
        )
    return row
