# Exchange and Polymarket clients
from .candles import BinanceCandleSource, CoinbaseCandleSource, CandleSourceError
from .clob_client import CLOBClient, OrderSide, OrderResult, OrderExecutionError
from .polymarket_feed import MarketQuoteFeed
from .spot_feeds import BinanceSpotFeed, CoinbaseSpotFeed

__all__ = [
    "BinanceCandleSource",
    "CoinbaseCandleSource",
    "CandleSourceError",
    "CLOBClient",
    "OrderSide",
    "OrderResult",
    "OrderExecutionError",
    "MarketQuoteFeed",
    "BinanceSpotFeed",
    "CoinbaseSpotFeed",
]
