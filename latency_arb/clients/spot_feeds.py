"""
Spot price feeds.

Streams trades from Binance and tickers from Coinbase over WebSocket and
hands each observation to a callback as a SpotPriceSample.
"""

import asyncio
import json
import time
from datetime import datetime
from typing import Any, Callable, Optional

import websockets

from ..models import SpotPriceSample
from ..utils.logger import get_logger

logger = get_logger("spot_feeds")


class SpotFeed:
    """
    Base WebSocket spot feed with a fixed-delay reconnect loop.

    Subclasses provide the URL, an optional subscribe message and the
    message parser.
    """

    name = "spot"
    url = ""

    def __init__(
        self,
        on_sample: Optional[Callable[[SpotPriceSample], Any]] = None,
        assets: tuple[str, ...] = ("BTC", "ETH", "SOL"),
        reconnect_delay: float = 5.0
    ):
        """
        Initialize spot feed.

        Args:
            on_sample: Callback for each parsed sample (sync or async)
            assets: Assets to stream
            reconnect_delay: Seconds to wait before reconnecting
        """
        self.on_sample = on_sample
        self.assets = assets
        self.reconnect_delay = reconnect_delay

        self._ws = None
        self._running = False
        self.messages_received = 0

    def connect_url(self) -> str:
        return self.url

    def subscribe_message(self) -> Optional[dict]:
        return None

    def parse_message(self, data: dict) -> Optional[SpotPriceSample]:
        raise NotImplementedError

    async def run(self) -> None:
        """Connect and stream until stop() is called."""
        self._running = True

        while self._running:
            try:
                logger.info(f"Connecting to {self.name} WebSocket...")
                async with websockets.connect(
                    self.connect_url(),
                    ping_interval=30,
                    ping_timeout=10,
                    close_timeout=5
                ) as ws:
                    self._ws = ws
                    logger.info(f"Connected to {self.name} WebSocket")

                    subscribe = self.subscribe_message()
                    if subscribe:
                        await ws.send(json.dumps(subscribe))

                    async for message in ws:
                        await self._handle_message(message)

                logger.warning(f"{self.name} connection closed")

            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"{self.name} WebSocket error: {e}")
            finally:
                self._ws = None

            if self._running:
                logger.info(f"Reconnecting to {self.name} in {self.reconnect_delay}s...")
                await asyncio.sleep(self.reconnect_delay)

    async def stop(self) -> None:
        self._running = False
        if self._ws:
            await self._ws.close()

    async def _handle_message(self, message: str) -> None:
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            logger.debug(f"Invalid JSON from {self.name}: {message[:100]}")
            return

        try:
            sample = self.parse_message(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.debug(f"Error parsing {self.name} message: {e}")
            return

        if sample is None:
            return

        self.messages_received += 1
        if self.on_sample:
            await self._call_handler(self.on_sample, sample)

    async def _call_handler(self, handler: Callable, *args) -> None:
        """Call handler, supporting both sync and async callbacks."""
        result = handler(*args)
        if asyncio.iscoroutine(result):
            await result


class BinanceSpotFeed(SpotFeed):
    """Binance trade stream (combined stream endpoint)."""

    name = "binance"
    url = "wss://stream.binance.com:9443/stream"

    def connect_url(self) -> str:
        streams = "/".join(f"{asset.lower()}usdt@trade" for asset in self.assets)
        return f"{self.url}?streams={streams}"

    def parse_message(self, data: dict) -> Optional[SpotPriceSample]:
        # Combined stream wraps the payload
        trade = data.get("data", data)
        if trade.get("e") != "trade":
            return None

        symbol = trade.get("s", "").upper()
        asset = symbol[:-4] if symbol.endswith("USDT") else None
        if asset not in self.assets:
            return None

        trade_time = trade.get("T") or trade.get("E") or time.time() * 1000
        return SpotPriceSample(
            source=self.name,
            asset=asset,
            price=float(trade["p"]),
            timestamp=trade_time / 1000
        )


class CoinbaseSpotFeed(SpotFeed):
    """Coinbase Exchange ticker channel."""

    name = "coinbase"
    url = "wss://ws-feed.exchange.coinbase.com"

    def subscribe_message(self) -> Optional[dict]:
        return {
            "type": "subscribe",
            "product_ids": [f"{asset}-USD" for asset in self.assets],
            "channels": ["ticker"]
        }

    def parse_message(self, data: dict) -> Optional[SpotPriceSample]:
        if data.get("type") != "ticker":
            return None

        product_id = data.get("product_id", "")
        asset = product_id.split("-")[0]
        if not product_id.endswith("-USD") or asset not in self.assets:
            return None

        raw_time = data.get("time")
        if raw_time:
            timestamp = datetime.fromisoformat(raw_time.replace("Z", "+00:00")).timestamp()
        else:
            timestamp = time.time()

        return SpotPriceSample(
            source=self.name,
            asset=asset,
            price=float(data["price"]),
            timestamp=timestamp
        )
