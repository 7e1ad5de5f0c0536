"""
Polymarket Latency Arbitrage Bot

Watches live spot prices (Binance, Coinbase) and short-dated Polymarket
"Up or Down" crypto markets, and trades markets whose quoted probability
still lags a move that has already happened on spot.

Entry point: python -m latency_arb.main (or the ``latency-arb`` script)

Key Modules:
- latency_arb.strategy: Spot aggregation, anchor resolution, lag signal
- latency_arb.engine: Trade lifecycle (entry, marking, exits)
- latency_arb.storage: Durable trade store
- latency_arb.clients: Exchange feeds, candle lookups, CLOB orders
- latency_arb.api: FastAPI status server
"""

__version__ = "0.1.0"
