"""
Historical candle sources used to resolve a market's reference price.
Both return the open price of the smallest candle containing a timestamp.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import aiohttp

from ..utils.logger import get_logger

logger = get_logger("candles")


class CandleSourceError(Exception):
    """Raised when a candle endpoint fails or returns garbage."""


def floor_to_minute(moment: datetime) -> datetime:
    """Start of the one-minute candle containing ``moment`` (UTC)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).replace(second=0, microsecond=0)


class CandleSource:
    """Base class for an HTTP candle endpoint with a lazily created session."""

    name = "base"

    def __init__(self, timeout_seconds: float = 3.0):
        self.timeout_seconds = timeout_seconds
        self._session: Optional[aiohttp.ClientSession] = None

    async def initialize(self) -> None:
        """Initialize HTTP session."""
        if not self._session:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                headers={"User-Agent": "Mozilla/5.0"}
            )

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def _request(self, url: str, params: Optional[dict] = None):
        if not self._session:
            await self.initialize()

        try:
            async with self._session.get(url, params=params) as response:
                response.raise_for_status()
                return await response.json()
        except aiohttp.ClientError as e:
            raise CandleSourceError(f"{self.name} request failed: {e}") from e

    async def fetch_open(self, asset: str, anchor_time: datetime) -> Optional[float]:
        """
        Fetch the open price of the candle containing ``anchor_time``.

        Returns:
            The open price, or None when the endpoint has no such candle
        """
        raise NotImplementedError


class BinanceCandleSource(CandleSource):
    """Binance spot klines (``/api/v3/klines``), 1-minute interval."""

    name = "binance"
    BASE_URL = "https://api.binance.com"

    async def fetch_open(self, asset: str, anchor_time: datetime) -> Optional[float]:
        start = floor_to_minute(anchor_time)
        data = await self._request(
            f"{self.BASE_URL}/api/v3/klines",
            params={
                "symbol": f"{asset}USDT",
                "interval": "1m",
                "startTime": int(start.timestamp() * 1000),
                "limit": 1
            }
        )

        if not data:
            return None

        # Kline: [open_time, open, high, low, close, volume, ...]
        try:
            return float(data[0][1])
        except (IndexError, TypeError, ValueError) as e:
            raise CandleSourceError(f"Malformed Binance kline: {data[0]!r}") from e


class CoinbaseCandleSource(CandleSource):
    """Coinbase Exchange candles (``/products/{id}/candles``), 60s granularity."""

    name = "coinbase"
    BASE_URL = "https://api.exchange.coinbase.com"

    async def fetch_open(self, asset: str, anchor_time: datetime) -> Optional[float]:
        start = floor_to_minute(anchor_time)
        end = start + timedelta(minutes=1)
        data = await self._request(
            f"{self.BASE_URL}/products/{asset}-USD/candles",
            params={
                "start": start.isoformat(),
                "end": end.isoformat(),
                "granularity": 60
            }
        )

        if not data:
            return None

        # Bucket: [time, low, high, open, close, volume], newest first
        # Only the bucket opening at the anchor minute counts
        start_ts = int(start.timestamp())
        candle = None
        try:
            candle = next((c for c in data if c and int(c[0]) == start_ts), None)
            if candle is None:
                return None
            return float(candle[3])
        except (IndexError, TypeError, ValueError) as e:
            raise CandleSourceError(f"Malformed Coinbase candle: {candle!r}") from e
