"""
Lag strategy: spot-vs-Polymarket latency signal.

An "Up or Down" market's YES price should track how far spot has moved
since the candle opened. When spot has clearly moved but the market is
still priced near a coin flip, the market is lagging and we emit an
opportunity.
"""

import time
from collections import deque
from typing import Callable, Optional

from ..config import StrategyConfig
from ..models import AggregatedPrice, MarketKind, MarketQuote, Opportunity
from ..utils.channel import Channel
from ..utils.logger import get_logger, TradeLogger
from .reference import ReferenceResolver

logger = get_logger("lag_strategy")
trade_logger = TradeLogger()


class LagStrategy:
    """
    Signal detector combining aggregated spot prices with market quotes.

    Emits at most one opportunity per quote. It never reserves or mutates
    anything downstream; duplicate suppression belongs to the trade engine.
    """

    def __init__(
        self,
        resolver: ReferenceResolver,
        config: Optional[StrategyConfig] = None,
        channel: Optional[Channel[Opportunity]] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize strategy.

        Args:
            resolver: Resolves each market's anchor price
            config: Signal thresholds
            channel: Channel opportunities are published on
            clock: Returns the current epoch time in seconds
        """
        self.resolver = resolver
        self.config = config or StrategyConfig()
        self.channel = channel or Channel("opportunity")
        self.clock = clock

        self._spot_prices: dict[str, float] = {}  # asset -> latest aggregated price
        self._latest_quotes: dict[str, MarketQuote] = {}  # asset -> last up/down quote
        self._recent: deque[Opportunity] = deque(maxlen=self.config.opportunity_buffer_size)

        # Stats
        self.quotes_seen = 0
        self.opportunities_emitted = 0

    def on_spot(self, update: AggregatedPrice) -> None:
        """Store the latest spot price for an asset (last write wins)."""
        self._spot_prices[update.asset] = update.price

    def get_spot(self, asset: str) -> Optional[float]:
        return self._spot_prices.get(asset)

    def get_latest_quote(self, asset: str) -> Optional[MarketQuote]:
        return self._latest_quotes.get(asset)

    async def on_quote(self, quote: MarketQuote) -> Optional[Opportunity]:
        """
        Evaluate a market quote against spot and the market's anchor.

        Returns:
            The emitted opportunity, or None when there is no signal
        """
        self.quotes_seen += 1

        if quote.kind != MarketKind.UP_DOWN or quote.anchor_time is None:
            return None
        self._latest_quotes[quote.asset] = quote

        spot = self._spot_prices.get(quote.asset)
        if spot is None:
            logger.debug("Waiting for spot price", extra={"asset": quote.asset})
            return None

        anchor = await self.resolver.resolve(quote.asset, quote.anchor_time, quote.market_id)
        if anchor is None:
            return None

        delta_percent = (spot - anchor) / anchor * 100
        implied = self.evaluate(delta_percent, quote.yes_price)
        if implied is None:
            return None

        opportunity = Opportunity(
            asset=quote.asset,
            market_id=quote.market_id,
            question=quote.question,
            spot_price=spot,
            strike_price=anchor,
            outcome_prices=(quote.yes_price, quote.no_price),
            implied_probability=implied,
            token_ids=list(quote.token_ids) if quote.token_ids else None,
            timestamp=self.clock()
        )

        trade_logger.opportunity_detected(
            market_id=quote.market_id,
            asset=quote.asset,
            delta_percent=delta_percent,
            yes_price=quote.yes_price,
            implied_probability=implied
        )

        self._recent.append(opportunity)
        self.opportunities_emitted += 1
        await self.channel.publish(opportunity)
        return opportunity

    def evaluate(self, delta_percent: float, yes_price: float) -> Optional[float]:
        """
        Apply the lag thresholds.

        Args:
            delta_percent: Spot move since the anchor, in percent
            yes_price: Market's current YES price

        Returns:
            Implied probability for the signal, or None for no signal
        """
        cfg = self.config

        # Real world says UP; a YES price still below the ceiling is lagging
        if delta_percent > cfg.momentum_threshold_pct:
            if yes_price < cfg.yes_price_ceiling:
                return cfg.yes_implied_probability
            return None

        # Real world says DOWN; YES should be heading to zero
        if delta_percent < -cfg.momentum_threshold_pct:
            if yes_price > cfg.yes_price_floor:
                return cfg.no_implied_probability
            return None

        return None

    def recent_opportunities(self, limit: Optional[int] = None) -> list[Opportunity]:
        """Most recent opportunities, oldest first."""
        items = list(self._recent)
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return items
