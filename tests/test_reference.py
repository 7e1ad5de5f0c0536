"""
Tests for the reference (anchor) price resolver.
"""

from datetime import datetime, timedelta, timezone

import pytest

from latency_arb.clients.candles import CandleSourceError
from latency_arb.strategy.reference import ReferenceResolver

ANCHOR = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeSource:
    """Candle source returning a fixed answer."""

    def __init__(self, name, result=None, error=None):
        self.name = name
        self.result = result
        self.error = error
        self.calls = 0
        self.closed = False

    async def fetch_open(self, asset, anchor_time):
        self.calls += 1
        if self.error:
            raise self.error
        return self.result

    async def close(self):
        self.closed = True


class FakeClock:
    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock(ANCHOR.timestamp() + 30)


class TestResolve:

    @pytest.mark.asyncio
    async def test_primary_result_cached(self, clock):
        primary = FakeSource("binance", result=100000.0)
        resolver = ReferenceResolver([primary], clock=clock)

        assert await resolver.resolve("BTC", ANCHOR, "m1") == 100000.0
        assert await resolver.resolve("BTC", ANCHOR, "m1") == 100000.0

        assert primary.calls == 1
        assert resolver.get_cached("m1") == 100000.0
        assert resolver.resolved_count == 1

    @pytest.mark.asyncio
    async def test_falls_back_on_error(self, clock):
        primary = FakeSource("binance", error=CandleSourceError("timeout"))
        secondary = FakeSource("coinbase", result=99990.0)
        resolver = ReferenceResolver([primary, secondary], clock=clock)

        assert await resolver.resolve("BTC", ANCHOR, "m1") == 99990.0
        assert primary.calls == 1
        assert secondary.calls == 1

    @pytest.mark.asyncio
    async def test_falls_back_on_empty_answer(self, clock):
        primary = FakeSource("binance", result=None)
        secondary = FakeSource("coinbase", result=99990.0)
        resolver = ReferenceResolver([primary, secondary], clock=clock)

        assert await resolver.resolve("BTC", ANCHOR, "m1") == 99990.0

    @pytest.mark.asyncio
    async def test_nan_answer_is_a_miss(self, clock):
        primary = FakeSource("binance", result=float("nan"))
        secondary = FakeSource("coinbase", result=99990.0)
        resolver = ReferenceResolver([primary, secondary], clock=clock)

        assert await resolver.resolve("BTC", ANCHOR, "m1") == 99990.0

    @pytest.mark.asyncio
    async def test_markets_cached_separately(self, clock):
        primary = FakeSource("binance", result=100000.0)
        resolver = ReferenceResolver([primary], clock=clock)

        await resolver.resolve("BTC", ANCHOR, "m1")
        await resolver.resolve("BTC", ANCHOR, "m2")

        assert primary.calls == 2


class TestDebounce:

    @pytest.mark.asyncio
    async def test_one_attempt_per_window(self, clock):
        primary = FakeSource("binance", result=None)
        resolver = ReferenceResolver([primary], debounce_seconds=5.0, clock=clock)

        assert await resolver.resolve("BTC", ANCHOR, "m1") is None
        clock.now += 1
        assert await resolver.resolve("BTC", ANCHOR, "m1") is None
        clock.now += 3
        assert await resolver.resolve("BTC", ANCHOR, "m1") is None
        assert primary.calls == 1

        clock.now += 1
        primary.result = 100000.0
        assert await resolver.resolve("BTC", ANCHOR, "m1") == 100000.0
        assert primary.calls == 2


class TestLookahead:

    @pytest.mark.asyncio
    async def test_future_anchor_not_resolvable(self, clock):
        primary = FakeSource("binance", result=100000.0)
        resolver = ReferenceResolver([primary], lookahead_seconds=60.0, clock=clock)
        future = datetime.fromtimestamp(clock.now, tz=timezone.utc) + timedelta(seconds=120)

        assert await resolver.resolve("BTC", future, "m1") is None
        assert primary.calls == 0

    @pytest.mark.asyncio
    async def test_future_check_does_not_consume_debounce(self, clock):
        primary = FakeSource("binance", result=100000.0)
        resolver = ReferenceResolver([primary], clock=clock)
        future = datetime.fromtimestamp(clock.now, tz=timezone.utc) + timedelta(seconds=90)

        assert await resolver.resolve("BTC", future, "m1") is None
        clock.now += 31
        assert await resolver.resolve("BTC", future, "m1") == 100000.0
        assert primary.calls == 1

    @pytest.mark.asyncio
    async def test_anchor_within_lookahead_resolves(self, clock):
        primary = FakeSource("binance", result=100000.0)
        resolver = ReferenceResolver([primary], lookahead_seconds=60.0, clock=clock)
        soon = datetime.fromtimestamp(clock.now, tz=timezone.utc) + timedelta(seconds=45)

        assert await resolver.resolve("BTC", soon, "m1") == 100000.0


@pytest.mark.asyncio
async def test_close_closes_sources():
    sources = [FakeSource("binance"), FakeSource("coinbase")]
    resolver = ReferenceResolver(sources)

    await resolver.close()

    assert all(s.closed for s in sources)
