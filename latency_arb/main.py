"""
Main entry point for the Polymarket latency arbitrage bot.
Builds the components, wires the event channels and runs the event loop.
"""

import asyncio
import signal
import sys
from typing import Optional

from .api.server import build_server, create_app
from .clients.candles import BinanceCandleSource, CoinbaseCandleSource
from .clients.clob_client import CLOBClient
from .clients.polymarket_feed import MarketQuoteFeed
from .clients.spot_feeds import BinanceSpotFeed, CoinbaseSpotFeed
from .config import Config, load_config
from .engine.position_manager import PositionManager
from .models import AggregatedPrice, MarketQuote, OperatingMode, Opportunity
from .services.reporting import ReportingService
from .storage.trade_store import TradeStoreError, open_trade_store
from .strategy.aggregator import PriceAggregator
from .strategy.lag import LagStrategy
from .strategy.reference import ReferenceResolver
from .utils.channel import Channel, KeyedDispatcher
from .utils.logger import setup_logging, get_logger

logger = get_logger("main")


class LatencyArbBot:
    """
    Main bot orchestrator.

    Coordinates:
    - Spot feeds into the price aggregator
    - Quote feed into the lag strategy and the position manager
    - Opportunities into the position manager
    - The status API
    """

    def __init__(self, config: Config):
        """Initialize bot with configuration."""
        self.config = config
        self._running = False
        self._stopped = False
        self._shutdown_event = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

        # One channel per event kind
        self.spot_channel: Channel[AggregatedPrice] = Channel("spot")
        self.quote_channel: Channel[MarketQuote] = Channel("quote")
        self.opportunity_channel: Channel[Opportunity] = Channel("opportunity")

        self.store = open_trade_store(config.store.trade_store_path)
        self.reporting = ReportingService(self.store)

        self.aggregator = PriceAggregator(
            assets=config.aggregator.assets,
            stale_after_seconds=config.aggregator.stale_after_seconds,
            channel=self.spot_channel
        )

        timeout = config.resolver.request_timeout_seconds
        self.resolver = ReferenceResolver(
            sources=[BinanceCandleSource(timeout), CoinbaseCandleSource(timeout)],
            lookahead_seconds=config.resolver.lookahead_seconds,
            debounce_seconds=config.resolver.debounce_seconds
        )

        self.strategy = LagStrategy(
            resolver=self.resolver,
            config=config.strategy,
            channel=self.opportunity_channel
        )

        self.clob_client: Optional[CLOBClient] = None
        if config.engine.mode == OperatingMode.LIVE_TRADING:
            self.clob_client = CLOBClient(
                private_key=config.wallet.private_key,
                chain_id=config.wallet.chain_id,
                host=config.wallet.clob_url,
                funder_address=config.wallet.funder_address,
                signature_type=config.wallet.signature_type
            )

        self.manager = PositionManager(
            store=self.store,
            config=config.engine,
            executor=self.clob_client
        )

        self.spot_feeds = [
            BinanceSpotFeed(on_sample=self.aggregator.ingest, assets=config.aggregator.assets),
            CoinbaseSpotFeed(on_sample=self.aggregator.ingest, assets=config.aggregator.assets),
        ]
        # Quotes are serialized per market; a slow lookup or order on one
        # market does not hold up marking and exits on the others
        self.quote_dispatcher = KeyedDispatcher(
            "quote",
            self.quote_channel.publish,
            key=lambda quote: quote.market_id
        )
        self.quote_feed = MarketQuoteFeed(
            on_quote=self.quote_dispatcher.dispatch,
            assets=config.aggregator.assets
        )

        self._wire()

    def _wire(self) -> None:
        """Subscribe handlers; order within a channel is dispatch order."""
        self.spot_channel.subscribe(self.strategy.on_spot)
        self.quote_channel.subscribe(self.strategy.on_quote)
        self.quote_channel.subscribe(self.manager.on_quote)
        self.opportunity_channel.subscribe(self.manager.on_opportunity)

    async def initialize(self) -> None:
        """Initialize clients that need network setup."""
        logger.info(
            "Initializing latency arbitrage bot",
            extra={"mode": self.config.engine.mode.value}
        )

        if self.clob_client:
            await self.clob_client.initialize()

        await self.quote_feed.initialize()

        logger.info("Bot initialized successfully")

    async def run(self) -> None:
        """Run all tasks until shutdown is requested."""
        self._running = True
        logger.info("Starting latency arbitrage bot")

        self._tasks = [asyncio.create_task(feed.run()) for feed in self.spot_feeds]
        self._tasks.append(asyncio.create_task(self.quote_feed.run_discovery()))
        self._tasks.append(asyncio.create_task(self.quote_feed.run()))
        self._tasks.append(asyncio.create_task(self._run_stats_reporter()))

        if self.config.server.enabled:
            app = create_app(self.manager, self.aggregator, self.strategy, self.reporting)
            server = build_server(app, self.config.server.host, self.config.server.port)
            # The bot owns signal handling
            server.install_signal_handlers = lambda: None
            self._tasks.append(asyncio.create_task(server.serve()))
            logger.info(f"Status API on http://{self.config.server.host}:{self.config.server.port}")

        await self._shutdown_event.wait()

    async def _run_stats_reporter(self) -> None:
        """Periodically log statistics and the daily report."""
        while self._running:
            await asyncio.sleep(60)
            try:
                self._log_stats()
            except Exception as e:
                logger.error(f"Stats reporter error: {e}")

    def _log_stats(self) -> None:
        stats = self.manager.get_stats()
        report = self.reporting.daily_report()
        logger.info(
            "Bot statistics",
            extra={
                "mode": stats["mode"],
                "balance": stats["balance"],
                "cash": stats["cash"],
                "open_trades": stats["open_trades"],
                "total_trades": stats["total_trades"],
                "quotes_seen": self.strategy.quotes_seen,
                "opportunities": self.strategy.opportunities_emitted,
                "anchors_resolved": self.resolver.resolved_count,
                "markets_monitored": self.quote_feed.market_count,
                "active_quote_workers": len(self.quote_dispatcher.active_keys),
                "pnl_24h": report.realized_pnl,
                "win_rate_24h": report.win_rate
            }
        )

    async def shutdown(self) -> None:
        """Gracefully shutdown the bot."""
        if self._stopped:
            return
        self._stopped = True
        logger.info("Shutting down bot")
        self._running = False

        for feed in self.spot_feeds:
            await feed.stop()
        await self.quote_feed.close()
        await self.quote_dispatcher.close()
        await self.resolver.close()

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        self._log_stats()
        logger.info("Bot shutdown complete")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def setup_signal_handlers(bot: LatencyArbBot) -> None:
    """Set up signal handlers for graceful shutdown."""
    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}")
        bot.request_shutdown()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


async def main() -> None:
    """Main entry point."""
    # Load configuration
    try:
        config = load_config()
    except ValueError as e:
        print(f"Configuration error: {e}")
        sys.exit(1)

    # Set up logging
    setup_logging(
        level=config.logging.log_level,
        json_format=config.logging.json_logging
    )

    try:
        bot = LatencyArbBot(config)
    except TradeStoreError as e:
        logger.error(f"Cannot start: {e}")
        sys.exit(1)
    setup_signal_handlers(bot)

    try:
        await bot.initialize()
        await bot.run()
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        raise
    finally:
        await bot.shutdown()


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
