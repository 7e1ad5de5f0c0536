"""
Multi-source spot price aggregator.

Combines the Binance and Coinbase streams into a single spot price per
asset: the arithmetic mean of the latest price seen from each source.
"""

import math
import statistics
from dataclasses import dataclass
from typing import Iterable, Optional

from ..models import AggregatedPrice, SpotPriceSample
from ..utils.channel import Channel
from ..utils.logger import get_logger

logger = get_logger("aggregator")

DEFAULT_ASSETS = ("BTC", "ETH", "SOL")


@dataclass
class SourceQuote:
    """Latest price a source reported for an asset."""
    price: float
    timestamp: float


class PriceAggregator:
    """
    Keeps ``asset -> source -> latest price`` and emits the equal-weighted
    mean on every accepted sample.

    Sources are never evicted unless ``stale_after_seconds`` is set, in
    which case a source whose last sample is older than the incoming
    sample by more than the TTL is left out of the mean. State lives in
    memory only and rebuilds from the first samples after a restart.
    """

    def __init__(
        self,
        assets: Iterable[str] = DEFAULT_ASSETS,
        stale_after_seconds: Optional[float] = None,
        channel: Optional[Channel[AggregatedPrice]] = None
    ):
        """
        Initialize aggregator.

        Args:
            assets: Assets to aggregate; samples for anything else are ignored
            stale_after_seconds: Optional TTL for per-source prices
            channel: Channel aggregated prices are published on
        """
        self.stale_after_seconds = stale_after_seconds
        self.channel = channel or Channel("spot")

        self._latest: dict[str, dict[str, SourceQuote]] = {
            asset: {} for asset in assets
        }
        self._last_aggregate: dict[str, AggregatedPrice] = {}

    @property
    def assets(self) -> list[str]:
        return list(self._latest)

    async def ingest(self, sample: SpotPriceSample) -> Optional[AggregatedPrice]:
        """
        Record a sample and publish the new aggregate for its asset.

        Returns:
            The aggregate that was published, or None if nothing was emitted
        """
        sources = self._latest.get(sample.asset)
        if sources is None:
            return None

        if not _is_sane(sample.price):
            logger.debug(
                "Dropping insane spot sample",
                extra={"source": sample.source, "asset": sample.asset, "price": sample.price}
            )
            return None

        sources[sample.source] = SourceQuote(price=sample.price, timestamp=sample.timestamp)

        aggregate = self._aggregate(sample.asset, now=sample.timestamp)
        if aggregate is None:
            return None

        self._last_aggregate[sample.asset] = aggregate
        await self.channel.publish(aggregate)
        return aggregate

    def _aggregate(self, asset: str, now: float) -> Optional[AggregatedPrice]:
        prices = [
            quote.price
            for quote in self._latest[asset].values()
            if not self._is_stale(quote, now)
        ]
        if not prices:
            return None

        return AggregatedPrice(
            asset=asset,
            price=statistics.fmean(prices),
            sources=len(prices),
            timestamp=now
        )

    def _is_stale(self, quote: SourceQuote, now: float) -> bool:
        if self.stale_after_seconds is None:
            return False
        return now - quote.timestamp > self.stale_after_seconds

    def get_price(self, asset: str) -> Optional[AggregatedPrice]:
        """Last aggregate published for an asset."""
        return self._last_aggregate.get(asset)

    def get_source_prices(self, asset: str) -> dict[str, float]:
        """Latest raw price per source for an asset."""
        return {
            source: quote.price
            for source, quote in self._latest.get(asset, {}).items()
        }


def _is_sane(price: float) -> bool:
    return isinstance(price, (int, float)) and math.isfinite(price) and price > 0
