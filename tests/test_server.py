"""
Tests for the status API.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from latency_arb.api.server import create_app
from latency_arb.engine.position_manager import PositionManager
from latency_arb.models import MarketQuote, SpotPriceSample
from latency_arb.services.reporting import ReportingService
from latency_arb.strategy.aggregator import PriceAggregator
from latency_arb.strategy.lag import LagStrategy

ANCHOR = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class MemoryStore:
    def __init__(self):
        self.trades = {}

    def load(self):
        return list(self.trades.values())

    def upsert(self, trade):
        self.trades[trade.id] = trade


@pytest.fixture
def components():
    store = MemoryStore()
    resolver = MagicMock()
    resolver.resolve = AsyncMock(return_value=100000.0)
    resolver.get_cached.return_value = 100000.0

    aggregator = PriceAggregator()
    strategy = LagStrategy(resolver=resolver, clock=lambda: 1234.0)
    manager = PositionManager(store=store)
    aggregator.channel.subscribe(strategy.on_spot)
    strategy.channel.subscribe(manager.on_opportunity)
    return aggregator, strategy, manager, ReportingService(store)


@pytest.fixture
def client(components):
    aggregator, strategy, manager, reporting = components
    return TestClient(create_app(manager, aggregator, strategy, reporting))


async def feed_signal(aggregator: PriceAggregator, strategy: LagStrategy) -> None:
    await aggregator.ingest(SpotPriceSample("binance", "BTC", 101000.0, 1000.0))
    await strategy.on_quote(MarketQuote(
        asset="BTC",
        market_id="m1",
        question="Bitcoin Up or Down?",
        yes_price=0.60,
        no_price=0.40,
        anchor_time=ANCHOR,
        token_ids=["yes-token", "no-token"],
        timestamp=1000.0
    ))


class TestEndpoints:

    def test_health(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["mode"] == "SIMULATION"

    def test_stats_on_empty_ledger(self, client):
        data = client.get("/api/stats").json()

        assert data["balance"] == 1000.0
        assert data["open_trades"] == 0

    def test_prices_before_any_data(self, client):
        data = client.get("/api/prices").json()

        assert [row["asset"] for row in data] == ["BTC", "ETH", "SOL"]
        assert all(row["spot"] == 0 for row in data)

    def test_report(self, client):
        data = client.get("/api/report").json()

        assert data["trade_count"] == 0
        assert "DAILY TRADING REPORT" in data["text"]

    def test_opportunities_limit_validated(self, client):
        assert client.get("/api/opportunities?limit=-1").status_code == 422


class TestAfterSignal:

    @pytest.mark.asyncio
    async def test_views_reflect_signal_and_trade(self, components):
        aggregator, strategy, manager, reporting = components
        await feed_signal(aggregator, strategy)
        client = TestClient(create_app(manager, aggregator, strategy, reporting))

        opps = client.get("/api/opportunities").json()
        assert len(opps) == 1
        assert opps[0]["market_id"] == "m1"
        assert opps[0]["implied_probability"] == 0.95
        assert opps[0]["delta_percent"] == pytest.approx(1.0)

        btc = client.get("/api/prices").json()[0]
        assert btc["spot"] == 101000.0
        assert btc["poly_yes"] == 0.60
        assert btc["strike"] == 100000.0

        trades = client.get("/api/trades").json()
        assert trades["count"] == 1
        assert trades["trades"][0]["direction"] == "BUY_YES"

        stats = client.get("/api/stats").json()
        assert stats["open_trades"] == 1
        assert stats["cash"] == pytest.approx(990.0)
