"""
Daily trading report built from the trade store.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..storage.trade_store import TradeStore
from ..models import TradeStatus

DAY_SECONDS = 24 * 60 * 60


@dataclass
class DailyReport:
    """Summary of the last 24 hours of trading."""
    generated_at: float
    trade_count: int    # Entries in the window
    closed_count: int   # Of which closed
    wins: int
    volume: float       # Entry notional of the closed trades
    realized_pnl: float

    @property
    def win_rate(self) -> float:
        """Win rate in percent over closed trades."""
        if self.closed_count == 0:
            return 0.0
        return self.wins / self.closed_count * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generated_at": self.generated_at,
            "trade_count": self.trade_count,
            "closed_count": self.closed_count,
            "wins": self.wins,
            "volume": self.volume,
            "realized_pnl": self.realized_pnl,
            "win_rate": self.win_rate,
        }

    def format(self) -> str:
        date = datetime.fromtimestamp(self.generated_at, tz=timezone.utc).strftime("%Y-%m-%d")
        return (
            "=== DAILY TRADING REPORT ===\n"
            f"Date: {date}\n"
            f"Trades (24h): {self.trade_count}\n"
            f"Volume: ${self.volume:.2f}\n"
            f"Realized PnL: ${self.realized_pnl:.2f}\n"
            f"Win Rate: {self.win_rate:.1f}%\n"
            "============================"
        )


class ReportingService:
    """Summarises stored trades over a trailing 24 hour window."""

    def __init__(self, store: TradeStore):
        self.store = store

    def daily_report(self, now: Optional[float] = None) -> DailyReport:
        """
        Build the 24h report.

        Args:
            now: Report time in epoch seconds (defaults to the current time)

        Returns:
            DailyReport over trades entered after ``now - 24h``
        """
        now = time.time() if now is None else now
        cutoff = now - DAY_SECONDS

        recent = [t for t in self.store.load() if t.entry_timestamp > cutoff]
        closed = [t for t in recent if t.status == TradeStatus.CLOSED]

        realized = sum(t.realized_pnl or 0.0 for t in closed)
        wins = sum(1 for t in closed if (t.realized_pnl or 0.0) > 0)
        volume = sum(t.entry_price * t.size for t in closed)

        return DailyReport(
            generated_at=now,
            trade_count=len(recent),
            closed_count=len(closed),
            wins=wins,
            volume=volume,
            realized_pnl=realized
        )
