"""
Trade lifecycle engine.

Consumes opportunities and quote ticks; opens at most one position per
(market, direction), marks open positions on every tick and closes them on
take-profit or stop-loss. Simulated and live trading share the same math;
only the execution side effect differs.
"""

import time
import uuid
from typing import Any, Callable, Dict, Optional

from ..clients.clob_client import CLOBClient, OrderSide
from ..config import EngineConfig
from ..models import (
    ExitReason,
    MarketQuote,
    MarketSnapshot,
    OperatingMode,
    Opportunity,
    Trade,
    TradeDirection,
    TradeStatus,
    is_valid_price,
    trade_key,
)
from ..storage.trade_store import TradeStore
from ..utils.logger import get_logger, TradeLogger

logger = get_logger("position_manager")
trade_logger = TradeLogger()


def _new_trade_id() -> str:
    return str(uuid.uuid4())[:8]


class PositionManager:
    """
    Owns every trade the bot has opened.

    Key responsibilities:
    - Enforce one OPEN trade per (market_id, direction)
    - Size and execute (or simulate) entries
    - Mark open trades and fire exits
    - Keep the local cash ledger and persist every state change
    """

    def __init__(
        self,
        store: TradeStore,
        config: Optional[EngineConfig] = None,
        executor: Optional[CLOBClient] = None,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] = _new_trade_id
    ):
        """
        Initialize position manager.

        Args:
            store: Durable trade store (system of record)
            config: Sizing, exit and gating parameters
            executor: Order client, required in LIVE_TRADING mode
            clock: Returns the current epoch time in seconds
            id_factory: Generates ids for simulated trades
        """
        self.config = config or EngineConfig()
        self.mode = self.config.mode
        self.store = store
        self.executor = executor
        self.clock = clock
        self.id_factory = id_factory

        if self.mode == OperatingMode.LIVE_TRADING and executor is None:
            raise ValueError("LIVE_TRADING mode requires an order executor")

        self._trades: dict[str, Trade] = {}
        self._open_keys: set[str] = set()
        self._pending_keys: set[str] = set()  # entries with an order in flight
        self._closing: set[str] = set()  # trade ids with an exit order in flight
        self.cash = self.config.starting_balance

        self.load()
        logger.info(
            f"Position manager starting in {self.mode.value} mode",
            extra={"trades": len(self._trades), "open": len(self._open_keys), "cash": self.cash}
        )

    @property
    def trade_size(self) -> float:
        """Notional committed per entry."""
        return min(self.config.bet_size, self.config.max_trade_size)

    def load(self) -> None:
        """Rebuild trades, the open-key set and the cash ledger from the store."""
        self._trades = {}
        self._open_keys = set()
        self.cash = self.config.starting_balance

        for trade in self.store.load():
            self._trades[trade.id] = trade
            self.cash -= trade.amount_usd
            if trade.is_open:
                self._open_keys.add(trade.key)
            elif is_valid_price(trade.exit_price):
                self.cash += trade.size * trade.exit_price

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    async def on_quote(self, quote: MarketQuote) -> None:
        """Mark open trades against a fresh quote."""
        await self.update_open_positions(MarketSnapshot.from_quote(quote))

    async def on_opportunity(self, opp: Opportunity) -> Optional[Trade]:
        """
        Handle a lag opportunity.

        Open positions are always marked first, whatever the mode.

        Returns:
            The trade opened, or None
        """
        await self.update_open_positions(MarketSnapshot.from_opportunity(opp))

        if self.mode == OperatingMode.MONITOR_ONLY:
            return None

        direction = self.resolve_direction(opp.implied_probability)
        if direction is None:
            return None

        key = trade_key(opp.market_id, direction)
        if key in self._open_keys or key in self._pending_keys:
            return None

        price = self.resolve_entry_price(opp, direction)
        if price is None or price <= self.config.min_entry_price:
            logger.debug(
                "Entry price unfillable",
                extra={"market_id": opp.market_id, "direction": direction.value, "price": price}
            )
            return None

        return await self._open(opp, direction, price)

    # ------------------------------------------------------------------
    # Entry
    # ------------------------------------------------------------------

    def resolve_direction(self, implied_probability: float) -> Optional[TradeDirection]:
        if implied_probability > self.config.buy_yes_above:
            return TradeDirection.BUY_YES
        if implied_probability < self.config.buy_no_below:
            return TradeDirection.BUY_NO
        return None

    @staticmethod
    def resolve_entry_price(opp: Opportunity, direction: TradeDirection) -> Optional[float]:
        """Price of the outcome to buy, falling back to 1 - YES."""
        price = opp.yes_price if direction == TradeDirection.BUY_YES else opp.no_price
        if is_valid_price(price):
            return price
        if is_valid_price(opp.yes_price):
            return 1 - opp.yes_price
        return None

    async def _open(
        self,
        opp: Opportunity,
        direction: TradeDirection,
        price: float
    ) -> Optional[Trade]:
        notional = self.trade_size
        shares = notional / price

        trade = Trade(
            id=self.id_factory(),
            market_id=opp.market_id,
            question=opp.question,
            asset=opp.asset,
            direction=direction,
            entry_price=price,
            size=shares,
            amount_usd=notional,
            entry_timestamp=self.clock(),
            token_ids=list(opp.token_ids) if opp.token_ids else None
        )

        if self.mode == OperatingMode.LIVE_TRADING:
            token_id = trade.held_token_id
            if token_id is None:
                trade_logger.trade_failed(
                    market_id=opp.market_id,
                    reason="Missing token ids for execution"
                )
                return None

            self._pending_keys.add(trade.key)
            try:
                result = await self.executor.place_order(token_id, OrderSide.BUY, price, shares)
            except Exception as e:
                trade_logger.trade_failed(
                    market_id=opp.market_id,
                    reason="Entry order failed",
                    error=str(e)
                )
                return None
            finally:
                self._pending_keys.discard(trade.key)

            trade.id = result.order_id

        self._trades[trade.id] = trade
        self._open_keys.add(trade.key)
        # Optimistic: settlement is not reconciled on-chain here
        self.cash -= notional
        self.store.upsert(trade)

        trade_logger.trade_opened(
            trade_id=trade.id,
            market_id=trade.market_id,
            direction=direction.value,
            price=price,
            size=shares,
            mode=self.mode.value
        )
        return trade

    # ------------------------------------------------------------------
    # Monitoring and exit
    # ------------------------------------------------------------------

    async def update_open_positions(self, snapshot: MarketSnapshot) -> list[Trade]:
        """
        Mark every open trade on this market and fire exits.

        Returns:
            Trades closed by this update
        """
        closed = []
        for trade in self._matching_open_trades(snapshot):
            if trade.id in self._closing:
                continue

            current = snapshot.price_for(trade.direction)
            if not is_valid_price(current):
                continue

            trade.current_price = current
            trade.unrealized_pnl = trade.size * current - trade.size * trade.entry_price

            reason = self.check_exit(trade)
            if reason and await self._close(trade, current, reason):
                closed.append(trade)

        return closed

    def _matching_open_trades(self, snapshot: MarketSnapshot) -> list[Trade]:
        return [
            t for t in self._trades.values()
            if t.is_open and (
                (t.market_id and t.market_id == snapshot.market_id)
                or (t.question and snapshot.question and t.question == snapshot.question)
            )
        ]

    def check_exit(self, trade: Trade) -> Optional[ExitReason]:
        """Exit rule for a marked trade; take-profit is checked first."""
        if trade.unrealized_pnl is None:
            return None
        cost_basis = trade.cost_basis
        if trade.unrealized_pnl > self.config.take_profit_ratio * cost_basis:
            return ExitReason.TAKE_PROFIT
        if trade.unrealized_pnl < -self.config.stop_loss_ratio * cost_basis:
            return ExitReason.STOP_LOSS
        return None

    async def close_trade(self, trade_id: str, exit_price: Optional[float] = None) -> bool:
        """
        Close an open trade on request.

        Args:
            trade_id: Trade to close
            exit_price: Price to close at; defaults to the last mark

        Returns:
            True if the trade was closed
        """
        trade = self._trades.get(trade_id)
        if trade is None or not trade.is_open or trade.id in self._closing:
            return False

        price = exit_price
        if not is_valid_price(price):
            price = trade.current_price if is_valid_price(trade.current_price) else trade.entry_price

        return await self._close(trade, price, ExitReason.EXTERNAL)

    async def _close(self, trade: Trade, exit_price: float, reason: ExitReason) -> bool:
        logger.info(
            f"Attempting to close {trade.id} ({reason.value}) @ {exit_price:.2f}",
            extra={"trade_id": trade.id, "market_id": trade.market_id}
        )

        if self.mode == OperatingMode.LIVE_TRADING:
            token_id = trade.held_token_id
            if token_id is None:
                logger.warning(
                    "Live exit impossible without stored token ids; manual close required",
                    extra={"trade_id": trade.id, "market_id": trade.market_id}
                )
                return False

            self._closing.add(trade.id)
            try:
                await self.executor.place_order(token_id, OrderSide.SELL, exit_price, trade.size)
            except Exception as e:
                trade_logger.trade_failed(
                    trade_id=trade.id,
                    market_id=trade.market_id,
                    reason="Exit order failed",
                    error=str(e)
                )
                return False
            finally:
                self._closing.discard(trade.id)

        trade.status = TradeStatus.CLOSED
        trade.exit_price = exit_price
        trade.exit_timestamp = self.clock()
        trade.exit_reason = reason
        trade.current_price = exit_price
        trade.realized_pnl = trade.size * (exit_price - trade.entry_price)
        trade.unrealized_pnl = None

        self.cash += trade.size * exit_price
        self._open_keys.discard(trade.key)
        self.store.upsert(trade)

        trade_logger.trade_closed(
            trade_id=trade.id,
            market_id=trade.market_id,
            reason=reason.value,
            exit_price=exit_price,
            realized_pnl=trade.realized_pnl
        )
        return True

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def get_trade(self, trade_id: str) -> Optional[Trade]:
        return self._trades.get(trade_id)

    def get_trades(self) -> list[Trade]:
        return list(self._trades.values())

    def get_open_trades(self) -> list[Trade]:
        return [t for t in self._trades.values() if t.is_open]

    def has_open(self, market_id: str, direction: TradeDirection) -> bool:
        return trade_key(market_id, direction) in self._open_keys

    def get_stats(self) -> Dict[str, Any]:
        """Ledger summary: equity is cash plus open positions at their last mark."""
        open_trades = self.get_open_trades()
        open_value = sum(
            t.size * (t.current_price if is_valid_price(t.current_price) else t.entry_price)
            for t in open_trades
        )
        realized = sum(
            t.realized_pnl for t in self._trades.values()
            if not t.is_open and t.realized_pnl is not None
        )

        return {
            "mode": self.mode.value,
            "balance": self.cash + open_value,
            "cash": self.cash,
            "realized_pnl": realized,
            "open_trades": len(open_trades),
            "total_trades": len(self._trades),
            "active_trades": [
                {
                    "id": t.id,
                    "asset": t.asset,
                    "question": t.question,
                    "direction": t.direction.value,
                    "entry_price": t.entry_price,
                    "size": t.size,
                    "current_price": t.current_price,
                    "unrealized_pnl": t.unrealized_pnl,
                    "entry_time": t.entry_timestamp,
                }
                for t in open_trades
            ],
        }
