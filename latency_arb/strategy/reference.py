"""
Reference (anchor) price resolver.

An "Up or Down" market settles against the open price of the candle at its
start time. This resolves that price once per market and caches it for the
rest of the process lifetime.
"""

import time
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from ..clients.candles import CandleSource
from ..models import is_valid_price
from ..utils.logger import get_logger, TradeLogger

logger = get_logger("reference")
trade_logger = TradeLogger()


class ReferenceResolver:
    """
    Resolves and caches the anchor price for each market.

    Policy, in order:
    1. A cached anchor is returned immediately.
    2. Anchors more than ``lookahead_seconds`` in the future are not
       resolvable yet (the candle has not opened).
    3. At most one upstream attempt per market every ``debounce_seconds``.
    4. Sources are tried in order; the first non-empty answer wins and is
       cached permanently.

    Nothing is retried internally: the next quote tick for the market drives
    the next attempt.
    """

    def __init__(
        self,
        sources: Sequence[CandleSource],
        lookahead_seconds: float = 60.0,
        debounce_seconds: float = 5.0,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize resolver.

        Args:
            sources: Candle sources, primary first
            lookahead_seconds: How far in the future an anchor may be
            debounce_seconds: Minimum gap between attempts for one market
            clock: Returns the current epoch time in seconds
        """
        self.sources = list(sources)
        self.lookahead_seconds = lookahead_seconds
        self.debounce_seconds = debounce_seconds
        self.clock = clock

        self._anchors: dict[str, float] = {}  # market_id -> anchor price
        self._last_attempt: dict[str, float] = {}  # market_id -> epoch seconds

    def get_cached(self, market_id: str) -> Optional[float]:
        return self._anchors.get(market_id)

    @property
    def resolved_count(self) -> int:
        return len(self._anchors)

    async def resolve(
        self,
        asset: str,
        anchor_time: datetime,
        market_id: str
    ) -> Optional[float]:
        """
        Resolve the anchor price for a market.

        Args:
            asset: Asset symbol (BTC, ETH, SOL)
            anchor_time: Start of the market's settlement window
            market_id: Market identifier used as cache key

        Returns:
            The anchor price, or None if it is not resolvable yet
        """
        cached = self._anchors.get(market_id)
        if cached is not None:
            return cached

        now = self.clock()
        if _epoch(anchor_time) > now + self.lookahead_seconds:
            return None

        last = self._last_attempt.get(market_id)
        if last is not None and now - last < self.debounce_seconds:
            return None
        self._last_attempt[market_id] = now

        for source in self.sources:
            try:
                price = await source.fetch_open(asset, anchor_time)
            except Exception as e:
                logger.warning(
                    f"{source.name} reference lookup failed: {e}",
                    extra={"market_id": market_id, "asset": asset}
                )
                continue

            if is_valid_price(price) and price > 0:
                self._anchors[market_id] = price
                trade_logger.anchor_resolved(
                    market_id=market_id,
                    asset=asset,
                    price=price,
                    source=source.name
                )
                return price

        logger.debug(
            "Reference price unresolved",
            extra={"market_id": market_id, "asset": asset}
        )
        return None

    async def close(self) -> None:
        for source in self.sources:
            await source.close()


def _epoch(moment: datetime) -> float:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.timestamp()
