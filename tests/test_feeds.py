"""
Tests for spot and Polymarket feed message handling.
"""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from latency_arb.clients.polymarket_feed import MarketInfo, MarketQuoteFeed, detect_asset
from latency_arb.clients.spot_feeds import BinanceSpotFeed, CoinbaseSpotFeed
from latency_arb.models import MarketKind


class TestBinanceSpotFeed:

    def test_connect_url_uses_combined_streams(self):
        feed = BinanceSpotFeed()
        assert feed.connect_url() == (
            "wss://stream.binance.com:9443/stream?streams=btcusdt@trade/ethusdt@trade/solusdt@trade"
        )

    def test_parses_combined_trade(self):
        feed = BinanceSpotFeed()
        sample = feed.parse_message({
            "stream": "btcusdt@trade",
            "data": {"e": "trade", "E": 1717243200100, "s": "BTCUSDT", "p": "67012.55", "T": 1717243200050}
        })

        assert sample.source == "binance"
        assert sample.asset == "BTC"
        assert sample.price == 67012.55
        assert sample.timestamp == pytest.approx(1717243200.05)

    def test_ignores_untracked_symbol(self):
        feed = BinanceSpotFeed()
        assert feed.parse_message({"e": "trade", "s": "DOGEUSDT", "p": "0.1", "T": 1}) is None

    def test_ignores_other_events(self):
        feed = BinanceSpotFeed()
        assert feed.parse_message({"result": None, "id": 1}) is None

    @pytest.mark.asyncio
    async def test_handle_message_calls_back(self):
        on_sample = AsyncMock()
        feed = BinanceSpotFeed(on_sample=on_sample)

        await feed._handle_message(json.dumps({"e": "trade", "s": "ETHUSDT", "p": "3500.1", "T": 1000}))
        await feed._handle_message("not json")
        await feed._handle_message(json.dumps({"e": "trade", "s": "ETHUSDT", "p": "bad", "T": 1000}))

        on_sample.assert_awaited_once()
        assert on_sample.await_args.args[0].asset == "ETH"
        assert feed.messages_received == 1


class TestCoinbaseSpotFeed:

    def test_subscribe_message(self):
        feed = CoinbaseSpotFeed(assets=("BTC", "ETH"))
        assert feed.subscribe_message() == {
            "type": "subscribe",
            "product_ids": ["BTC-USD", "ETH-USD"],
            "channels": ["ticker"]
        }

    def test_parses_ticker(self):
        feed = CoinbaseSpotFeed()
        sample = feed.parse_message({
            "type": "ticker",
            "product_id": "SOL-USD",
            "price": "171.23",
            "time": "2024-06-01T12:00:00.500000Z"
        })

        assert sample.source == "coinbase"
        assert sample.asset == "SOL"
        assert sample.price == 171.23
        assert sample.timestamp == pytest.approx(1717243200.5)

    def test_ignores_non_ticker(self):
        feed = CoinbaseSpotFeed()
        assert feed.parse_message({"type": "subscriptions", "channels": []}) is None

    def test_ignores_other_quote_currency(self):
        feed = CoinbaseSpotFeed()
        assert feed.parse_message({"type": "ticker", "product_id": "BTC-EUR", "price": "1"}) is None


def gamma_event(title="Bitcoin Up or Down - June 1, 12:00PM ET", **market_overrides):
    market = {
        "id": "512345",
        "question": title,
        "active": True,
        "closed": False,
        "enableOrderBook": True,
        "clobTokenIds": json.dumps(["yes-token", "no-token"]),
        "eventStartTime": "2024-06-01T16:00:00Z",
    }
    market.update(market_overrides)
    return {"id": "e1", "title": title, "startDate": "2024-05-31T16:00:00Z", "markets": [market]}


class TestDiscovery:

    @pytest.mark.parametrize("title,asset", [
        ("Bitcoin Up or Down - June 1", "BTC"),
        ("ETH Up or Down", "ETH"),
        ("Solana Up or Down", "SOL"),
        ("XRP Up or Down", None),
    ])
    def test_detect_asset(self, title, asset):
        assert detect_asset(title) == asset

    def test_parse_event(self):
        feed = MarketQuoteFeed()
        markets = feed.parse_event(gamma_event())

        assert len(markets) == 1
        info = markets[0]
        assert info.market_id == "512345"
        assert info.asset == "BTC"
        assert info.token_ids == ["yes-token", "no-token"]
        assert info.anchor_time == datetime(2024, 6, 1, 16, 0, tzinfo=timezone.utc)
        assert info.kind == MarketKind.UP_DOWN

    def test_anchor_falls_back_to_event_start(self):
        feed = MarketQuoteFeed()
        info = feed.parse_event(gamma_event(eventStartTime=None))[0]

        assert info.anchor_time == datetime(2024, 5, 31, 16, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("overrides", [
        {"active": False},
        {"closed": True},
        {"enableOrderBook": False},
        {"clobTokenIds": None},
        {"clobTokenIds": "not json"},
    ])
    def test_untradable_markets_skipped(self, overrides):
        feed = MarketQuoteFeed()
        assert feed.parse_event(gamma_event(**overrides)) == []

    def test_untracked_asset_skipped(self):
        feed = MarketQuoteFeed(assets=("ETH",))
        assert feed.parse_event(gamma_event()) == []

    def test_esports_events(self):
        feed = MarketQuoteFeed()
        info = feed.parse_event(gamma_event(title="LoL: T1 vs Gen.G"), tag="esports")[0]

        assert info.kind == MarketKind.ESPORTS
        assert info.anchor_time is None

    @pytest.mark.asyncio
    async def test_discover_registers_new_tokens_once(self):
        feed = MarketQuoteFeed(page_size=500)
        feed._request = AsyncMock(return_value=[gamma_event()])

        first = await feed.discover()
        second = await feed.discover()

        assert first == ["yes-token", "no-token"]
        assert second == []
        assert feed.market_count == 1
        assert feed._request.await_args.args[0] == "/events"
        assert feed._request.await_args.kwargs["params"]["tag_slug"] == "up-or-down"

    @pytest.mark.asyncio
    async def test_discover_prunes_markets_no_longer_listed(self):
        feed = MarketQuoteFeed()
        feed._request = AsyncMock(return_value=[gamma_event()])
        await feed.discover()
        feed._subscribed.update(["yes-token", "no-token"])

        feed._request = AsyncMock(return_value=[gamma_event(
            id="512346",
            clobTokenIds=json.dumps(["next-yes", "next-no"])
        )])
        new_tokens = await feed.discover()

        assert new_tokens == ["next-yes", "next-no"]
        assert feed.market_count == 1
        assert feed._subscribed == set()
        assert feed.quotes_from_message({
            "event_type": "price_change",
            "price_changes": [{"asset_id": "yes-token", "price": "0.5"}]
        }) == []

    @pytest.mark.asyncio
    async def test_empty_pass_keeps_registry(self):
        feed = MarketQuoteFeed()
        feed._request = AsyncMock(return_value=[gamma_event()])
        await feed.discover()

        feed._request = AsyncMock(return_value=[])
        await feed.discover()

        assert feed.market_count == 1


class TestQuoteMessages:

    @pytest.fixture
    def feed(self):
        feed = MarketQuoteFeed()
        feed.register(MarketInfo(
            market_id="512345",
            question="Bitcoin Up or Down?",
            asset="BTC",
            token_ids=["yes-token", "no-token"],
            anchor_time=datetime(2024, 6, 1, 16, 0, tzinfo=timezone.utc)
        ))
        return feed

    def test_yes_token_price(self, feed):
        quotes = feed.quotes_from_message({
            "event_type": "price_change",
            "price_changes": [{"asset_id": "yes-token", "price": "0.62", "side": "BUY"}]
        })

        assert len(quotes) == 1
        assert quotes[0].yes_price == 0.62
        assert quotes[0].no_price == pytest.approx(0.38)
        assert quotes[0].market_id == "512345"
        assert quotes[0].token_ids == ["yes-token", "no-token"]

    def test_no_token_price_converted_to_yes_terms(self, feed):
        quotes = feed.quotes_from_message([{
            "event_type": "price_change",
            "price_changes": [{"asset_id": "no-token", "price": "0.30"}]
        }])

        assert quotes[0].yes_price == pytest.approx(0.70)
        assert quotes[0].no_price == pytest.approx(0.30)

    def test_single_change_message(self, feed):
        quotes = feed.quotes_from_message({
            "event_type": "price_change",
            "asset_id": "yes-token",
            "price": "0.55"
        })

        assert quotes[0].yes_price == 0.55

    def test_unknown_token_and_other_events_ignored(self, feed):
        assert feed.quotes_from_message({"event_type": "book", "asset_id": "yes-token"}) == []
        assert feed.quotes_from_message({
            "event_type": "price_change",
            "price_changes": [{"asset_id": "someone-else", "price": "0.5"}]
        }) == []

    @pytest.mark.asyncio
    async def test_handle_message_calls_back(self, feed):
        feed.on_quote = AsyncMock()

        await feed._handle_message(json.dumps({
            "event_type": "price_change",
            "price_changes": [
                {"asset_id": "yes-token", "price": "0.61"},
                {"asset_id": "no-token", "price": "0.39"}
            ]
        }))

        assert feed.on_quote.await_count == 2
