"""
Polymarket quote feed.

Discovers short-dated crypto "Up or Down" markets through the Gamma API and
streams their prices from the CLOB market WebSocket, emitting MarketQuote
ticks in YES terms.
"""

import asyncio
import json
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

import aiohttp
import websockets

from ..models import MarketKind, MarketQuote
from ..utils.logger import get_logger

logger = get_logger("polymarket_feed")

ASSET_KEYWORDS = (
    ("BTC", ("BITCOIN", "BTC")),
    ("ETH", ("ETHEREUM", "ETH")),
    ("SOL", ("SOLANA", "SOL")),
)


@dataclass
class MarketInfo:
    """Metadata for one discovered binary market."""
    market_id: str
    question: str
    asset: str
    token_ids: list[str]  # [yes_token_id, no_token_id]
    anchor_time: Optional[datetime] = None
    kind: MarketKind = MarketKind.UP_DOWN


def detect_asset(title: str) -> Optional[str]:
    """Map an event title to a tracked asset symbol."""
    upper = (title or "").upper()
    for asset, keywords in ASSET_KEYWORDS:
        if any(keyword in upper for keyword in keywords):
            return asset
    return None


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _parse_json_list(value: Any) -> Optional[list]:
    # Gamma returns some list fields as JSON-encoded strings
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return None
    return value if isinstance(value, list) else None


class MarketQuoteFeed:
    """
    Market discovery plus CLOB price streaming.

    Discovery runs every ``discovery_interval`` seconds; newly found tokens
    are subscribed on the open WebSocket, and everything known is
    resubscribed after a reconnect.
    """

    GAMMA_URL = "https://gamma-api.polymarket.com"
    WS_URL = "wss://ws-subscriptions-clob.polymarket.com/ws/market"

    def __init__(
        self,
        on_quote: Optional[Callable[[MarketQuote], Any]] = None,
        assets: tuple[str, ...] = ("BTC", "ETH", "SOL"),
        tags: tuple[str, ...] = ("up-or-down",),
        discovery_interval: float = 30.0,
        reconnect_delay: float = 5.0,
        page_size: int = 500,
        max_pages: int = 3,
        subscribe_batch_size: int = 50
    ):
        """
        Initialize quote feed.

        Args:
            on_quote: Callback for each quote tick (sync or async)
            assets: Crypto assets to keep from up-or-down events
            tags: Gamma tag slugs to discover ("esports" yields ESPORTS quotes)
            discovery_interval: Seconds between discovery passes
            reconnect_delay: Seconds to wait before reconnecting
            page_size: Gamma events per page
            max_pages: Pages fetched per tag per pass
            subscribe_batch_size: Token ids per subscribe message
        """
        self.on_quote = on_quote
        self.assets = assets
        self.tags = tags
        self.discovery_interval = discovery_interval
        self.reconnect_delay = reconnect_delay
        self.page_size = page_size
        self.max_pages = max_pages
        self.subscribe_batch_size = subscribe_batch_size

        self._session: Optional[aiohttp.ClientSession] = None
        self._ws = None
        self._running = False

        # token id -> market metadata
        self._markets: dict[str, MarketInfo] = {}
        self._subscribed: set[str] = set()

    @property
    def market_count(self) -> int:
        return len({info.market_id for info in self._markets.values()})

    # ------------------------------------------------------------------
    # Gamma discovery
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Initialize HTTP session."""
        if not self._session:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=10))

    async def close(self) -> None:
        """Stop streaming and close the HTTP session."""
        self._running = False
        if self._ws:
            await self._ws.close()
        if self._session:
            await self._session.close()
            self._session = None

    async def _request(self, endpoint: str, params: Optional[dict] = None) -> Any:
        """Make HTTP request to Gamma API."""
        if not self._session:
            await self.initialize()

        url = f"{self.GAMMA_URL}{endpoint}"

        try:
            async with self._session.get(url, params=params) as response:
                response.raise_for_status()
                return await response.json()
        except aiohttp.ClientError as e:
            logger.error(f"Gamma API request failed: {e}")
            raise

    def parse_event(self, event: dict, tag: str = "up-or-down") -> list[MarketInfo]:
        """
        Extract tradable binary markets from a Gamma event.

        Markets that are inactive, closed, off the order book or missing
        token ids are skipped.
        """
        if tag == "esports":
            asset, kind = "ESPORTS", MarketKind.ESPORTS
        else:
            asset, kind = detect_asset(event.get("title", "")), MarketKind.UP_DOWN
            if asset is None or asset not in self.assets:
                return []

        event_start = parse_timestamp(event.get("startDate"))

        markets = []
        for market in event.get("markets", []):
            if not market.get("active") or market.get("closed"):
                continue
            if not (market.get("enableOrderBook") or market.get("enable_order_book")):
                continue

            token_ids = _parse_json_list(market.get("clobTokenIds"))
            if not token_ids or len(token_ids) < 2:
                continue

            anchor_time = parse_timestamp(market.get("eventStartTime")) or event_start
            markets.append(MarketInfo(
                market_id=str(market.get("id", "")),
                question=market.get("question", ""),
                asset=asset,
                token_ids=[str(t) for t in token_ids[:2]],
                anchor_time=anchor_time if kind == MarketKind.UP_DOWN else None,
                kind=kind
            ))

        return markets

    def register(self, info: MarketInfo) -> list[str]:
        """Index a market by its tokens; returns the token ids not seen before."""
        new_tokens = []
        for token_id in info.token_ids:
            if token_id not in self._markets:
                new_tokens.append(token_id)
            self._markets[token_id] = info
        return new_tokens

    def prune(self, live_tokens: set[str]) -> list[str]:
        """
        Forget markets a discovery pass no longer returns (expired or closed).

        Returns:
            Token ids dropped
        """
        stale = [t for t in self._markets if t not in live_tokens]
        for token_id in stale:
            del self._markets[token_id]
            self._subscribed.discard(token_id)
        if stale:
            logger.info(f"Pruned {len(stale)} tokens no longer listed")
        return stale

    async def discover(self) -> list[str]:
        """
        Run one discovery pass over every tag.

        Returns:
            Token ids discovered in this pass
        """
        new_tokens: list[str] = []
        seen: set[str] = set()

        for tag in self.tags:
            for page in range(self.max_pages):
                events = await self._request(
                    "/events",
                    params={
                        "limit": self.page_size,
                        "active": "true",
                        "closed": "false",
                        "tag_slug": tag,
                        "offset": page * self.page_size
                    }
                )
                if not events:
                    break

                for event in events:
                    for info in self.parse_event(event, tag):
                        new_tokens.extend(self.register(info))
                        seen.update(info.token_ids)

                if len(events) < self.page_size:
                    break

        # An empty pass leaves the registry untouched
        pruned = self.prune(seen) if seen else []

        logger.info(
            f"Discovered {len(new_tokens)} new tokens (total: {len(self._markets)})",
            extra={"markets": self.market_count, "pruned": len(pruned)}
        )

        if new_tokens and self._ws is not None:
            await self.subscribe(new_tokens)

        return new_tokens

    async def run_discovery(self) -> None:
        """Discovery loop; a failed pass is logged and retried next interval."""
        self._running = True
        while self._running:
            try:
                await self.discover()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Market discovery failed: {e}")
            await asyncio.sleep(self.discovery_interval)

    # ------------------------------------------------------------------
    # CLOB WebSocket
    # ------------------------------------------------------------------

    async def subscribe(self, token_ids: list[str]) -> None:
        """Subscribe token ids in small batches."""
        if self._ws is None:
            return

        pending = [t for t in token_ids if t not in self._subscribed]
        for i in range(0, len(pending), self.subscribe_batch_size):
            batch = pending[i:i + self.subscribe_batch_size]
            await self._ws.send(json.dumps({"type": "market", "assets_ids": batch}))
            self._subscribed.update(batch)
            logger.debug(f"Subscribed to batch of {len(batch)} tokens")
            if i + self.subscribe_batch_size < len(pending):
                await asyncio.sleep(0.1)

    async def run(self) -> None:
        """Stream quotes until close() is called, reconnecting on failure."""
        self._running = True

        while self._running:
            try:
                logger.info("Connecting to Polymarket WebSocket", extra={"url": self.WS_URL})
                async with websockets.connect(
                    self.WS_URL,
                    ping_interval=30,
                    ping_timeout=10,
                    close_timeout=5
                ) as ws:
                    self._ws = ws
                    self._subscribed.clear()
                    logger.info("Polymarket WebSocket connected")

                    if self._markets:
                        await self.subscribe(list(self._markets))

                    async for message in ws:
                        await self._handle_message(message)

                logger.warning("Polymarket WebSocket connection closed")

            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Polymarket WebSocket error: {e}")
            finally:
                self._ws = None

            if self._running:
                logger.info(f"Reconnecting in {self.reconnect_delay}s...")
                await asyncio.sleep(self.reconnect_delay)

    async def _handle_message(self, message: str) -> None:
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            logger.debug(f"Invalid JSON message: {message[:100]}")
            return

        for quote in self.quotes_from_message(data):
            if self.on_quote:
                await self._call_handler(self.on_quote, quote)

    def quotes_from_message(self, data: Any) -> list[MarketQuote]:
        """Convert a (possibly batched) WebSocket payload into quotes."""
        messages = data if isinstance(data, list) else [data]
        quotes = []

        for msg in messages:
            if not isinstance(msg, dict) or msg.get("event_type") != "price_change":
                continue

            for change in msg.get("price_changes") or [msg]:
                quote = self._quote_from_change(change)
                if quote is not None:
                    quotes.append(quote)

        return quotes

    def _quote_from_change(self, change: dict) -> Optional[MarketQuote]:
        token_id = change.get("asset_id") or change.get("token_id")
        info = self._markets.get(token_id)
        if info is None or not change.get("price"):
            return None

        try:
            price = float(change["price"])
        except (TypeError, ValueError):
            return None

        # A tick on the NO token is expressed in YES terms
        yes_price = price if token_id == info.token_ids[0] else 1 - price

        return MarketQuote(
            asset=info.asset,
            market_id=info.market_id,
            question=info.question,
            yes_price=yes_price,
            no_price=1 - yes_price,
            anchor_time=info.anchor_time,
            kind=info.kind,
            token_ids=list(info.token_ids),
            timestamp=time.time()
        )

    async def _call_handler(self, handler: Callable, *args) -> None:
        """Call handler, supporting both sync and async callbacks."""
        result = handler(*args)
        if asyncio.iscoroutine(result):
            await result
