"""
Core data model shared by the aggregator, strategy and trade engine.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class MarketKind(Enum):
    """Kind of Polymarket market a quote belongs to."""
    UP_DOWN = "UP_DOWN"
    PRICE_STRIKE = "PRICE_STRIKE"
    ESPORTS = "ESPORTS"


class TradeDirection(Enum):
    """Which outcome token a trade buys."""
    BUY_YES = "BUY_YES"
    BUY_NO = "BUY_NO"


class TradeStatus(Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class ExitReason(Enum):
    TAKE_PROFIT = "TAKE_PROFIT"
    STOP_LOSS = "STOP_LOSS"
    EXTERNAL = "EXTERNAL"


class OperatingMode(Enum):
    """Trade engine operating mode, fixed for the process lifetime."""
    SIMULATION = "SIMULATION"      # Paper trades, local ledger only
    MONITOR_ONLY = "MONITOR_ONLY"  # Track open positions, never enter
    LIVE_TRADING = "LIVE_TRADING"  # Real orders via the CLOB


@dataclass
class SpotPriceSample:
    """Single spot price observation from one exchange."""
    source: str     # binance, coinbase
    asset: str      # BTC, ETH, SOL
    price: float
    timestamp: float  # epoch seconds


@dataclass
class AggregatedPrice:
    """Mean of the latest price per source for one asset."""
    asset: str
    price: float
    sources: int  # How many sources contributed
    timestamp: float


@dataclass
class MarketQuote:
    """Quote tick for one binary market."""
    asset: str
    market_id: str
    question: str
    yes_price: float
    no_price: float
    anchor_time: Optional[datetime] = None  # Candle open the market settles against
    kind: MarketKind = MarketKind.UP_DOWN
    token_ids: Optional[list[str]] = None  # [yes_token_id, no_token_id]
    timestamp: float = 0.0


@dataclass
class Opportunity:
    """A fired lag signal, snapshotting the inputs that produced it."""
    asset: str
    market_id: str
    question: str
    spot_price: float
    strike_price: float
    outcome_prices: tuple[Optional[float], Optional[float]]  # (yes, no)
    implied_probability: float
    timestamp: float
    token_ids: Optional[list[str]] = None

    @property
    def yes_price(self) -> Optional[float]:
        return self.outcome_prices[0]

    @property
    def no_price(self) -> Optional[float]:
        return self.outcome_prices[1]

    @property
    def delta_percent(self) -> float:
        """Spot move since the anchor, in percent."""
        if not self.strike_price:
            return 0.0
        return (self.spot_price - self.strike_price) / self.strike_price * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asset": self.asset,
            "market_id": self.market_id,
            "question": self.question,
            "spot_price": self.spot_price,
            "strike_price": self.strike_price,
            "delta_percent": self.delta_percent,
            "outcome_prices": list(self.outcome_prices),
            "implied_probability": self.implied_probability,
            "token_ids": self.token_ids,
            "timestamp": self.timestamp,
        }


@dataclass
class MarketSnapshot:
    """Current YES/NO prices for a market, used to mark open trades."""
    market_id: str
    question: str
    yes_price: Optional[float]
    no_price: Optional[float]

    @classmethod
    def from_quote(cls, quote: MarketQuote) -> "MarketSnapshot":
        return cls(
            market_id=quote.market_id,
            question=quote.question,
            yes_price=quote.yes_price,
            no_price=quote.no_price,
        )

    @classmethod
    def from_opportunity(cls, opp: Opportunity) -> "MarketSnapshot":
        return cls(
            market_id=opp.market_id,
            question=opp.question,
            yes_price=opp.yes_price,
            no_price=opp.no_price,
        )

    def price_for(self, direction: TradeDirection) -> Optional[float]:
        """Price of the outcome token held by a trade in this direction."""
        return self.yes_price if direction == TradeDirection.BUY_YES else self.no_price


@dataclass
class Trade:
    """A position opened by the trade engine."""
    id: str
    market_id: str
    question: str
    asset: str
    direction: TradeDirection
    entry_price: float
    size: float  # Shares held
    amount_usd: float  # Notional paid at entry
    entry_timestamp: float
    status: TradeStatus = TradeStatus.OPEN
    token_ids: Optional[list[str]] = None  # [yes_token_id, no_token_id]

    # Live marking
    current_price: Optional[float] = None
    unrealized_pnl: Optional[float] = None

    # Exit (filled when closed)
    exit_price: Optional[float] = None
    exit_timestamp: Optional[float] = None
    realized_pnl: Optional[float] = None
    exit_reason: Optional[ExitReason] = None

    @property
    def key(self) -> str:
        """Idempotency key: one open trade per market and direction."""
        return trade_key(self.market_id, self.direction)

    @property
    def is_open(self) -> bool:
        return self.status == TradeStatus.OPEN

    @property
    def cost_basis(self) -> float:
        return self.size * self.entry_price

    @property
    def potential_payout(self) -> float:
        """Binary settlement pays 1 per share."""
        return self.size * 1.0

    @property
    def held_token_id(self) -> Optional[str]:
        """Token id of the outcome this trade holds."""
        if not self.token_ids or len(self.token_ids) < 2:
            return None
        return self.token_ids[0] if self.direction == TradeDirection.BUY_YES else self.token_ids[1]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "market_id": self.market_id,
            "question": self.question,
            "asset": self.asset,
            "direction": self.direction.value,
            "entry_price": self.entry_price,
            "size": self.size,
            "amount_usd": self.amount_usd,
            "entry_timestamp": self.entry_timestamp,
            "status": self.status.value,
            "token_ids": self.token_ids,
            "current_price": self.current_price,
            "unrealized_pnl": self.unrealized_pnl,
            "exit_price": self.exit_price,
            "exit_timestamp": self.exit_timestamp,
            "realized_pnl": self.realized_pnl,
            "exit_reason": self.exit_reason.value if self.exit_reason else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Trade":
        """
        Build a trade from a stored record.

        Accepts the legacy ledger keys (``type``, ``shares``, ``entryPrice``,
        ``pnl``, millisecond timestamps) so old ``saved_trades.json`` files load.
        """
        direction = data.get("direction") or data.get("type")
        size = data.get("size", data.get("shares", 0.0))
        entry_price = float(data.get("entry_price", data.get("entryPrice", data.get("price", 0.0))))
        exit_reason = data.get("exit_reason")

        return cls(
            id=str(data["id"]),
            market_id=str(data.get("market_id", data.get("marketId", ""))),
            question=data.get("question") or "",
            asset=data.get("asset", ""),
            direction=TradeDirection(direction),
            entry_price=entry_price,
            size=float(size),
            amount_usd=float(data.get("amount_usd", float(size) * entry_price)),
            entry_timestamp=_seconds(
                data.get("entry_timestamp", data.get("entryTimestamp", data.get("timestamp", 0.0)))
            ),
            status=TradeStatus(data.get("status", "OPEN")),
            token_ids=data.get("token_ids", data.get("tokenIds")),
            current_price=data.get("current_price", data.get("currentPrice")),
            unrealized_pnl=data.get("unrealized_pnl", data.get("unrealizedPnl")),
            exit_price=data.get("exit_price", data.get("exitPrice")),
            exit_timestamp=_optional_seconds(data.get("exit_timestamp", data.get("exitTimestamp"))),
            realized_pnl=data.get("realized_pnl", data.get("pnl")),
            exit_reason=ExitReason(exit_reason) if exit_reason else None,
        )


def trade_key(market_id: str, direction: TradeDirection) -> str:
    return f"{market_id}-{direction.value}"


def is_valid_price(value: Optional[float]) -> bool:
    """True for a finite number (None and NaN are not prices)."""
    return value is not None and math.isfinite(value)


def _seconds(value: Any) -> float:
    # Millisecond epochs from the legacy ledger are well above 1e11
    value = float(value or 0.0)
    return value / 1000.0 if value > 1e11 else value


def _optional_seconds(value: Any) -> Optional[float]:
    return None if value is None else _seconds(value)
