"""
Unit Tests for Alert Price Validation

Tests:
- Deviation bounds against the market price
- Negative prices
- Unknown market price (unknown market, silent feed)
- Bus backed price feed
"""

import asyncio

import pytest

from alert_sync.validator import AlertValidator, BusPriceFeed
from alert_sync.tests.conftest import SilentPriceFeed, StaticPriceFeed


class TestDeviationBounds:
    """Test price checks against a known market price"""

    @pytest.mark.asyncio
    async def test_negative_price_rejected(self, validator):
        assert await validator.validate("BTC-USD", -5) is False

    @pytest.mark.asyncio
    async def test_negative_price_rejected_without_market_price(self):
        validator = AlertValidator(StaticPriceFeed({}), price_timeout=0.05)

        assert await validator.validate("UNKNOWN", -5) is False

    @pytest.mark.asyncio
    async def test_non_finite_price_rejected(self, validator):
        assert await validator.validate("BTC-USD", float("nan")) is False
        assert await validator.validate("BTC-USD", float("inf")) is False

    @pytest.mark.asyncio
    async def test_non_finite_price_rejected_without_market_price(self):
        validator = AlertValidator(StaticPriceFeed({}), price_timeout=0.05)

        assert await validator.validate("UNKNOWN", float("inf")) is False
        assert await validator.validate("UNKNOWN", float("nan")) is False

    @pytest.mark.asyncio
    async def test_price_equal_to_market_accepted(self, validator):
        assert await validator.validate("BTC-USD", 50000) is True

    @pytest.mark.asyncio
    async def test_more_than_double_rejected(self, validator):
        # (100001 / 50000 - 1) * 100 = 100.002
        assert await validator.validate("BTC-USD", 100001) is False

    @pytest.mark.asyncio
    async def test_exactly_double_accepted(self, validator):
        assert await validator.validate("BTC-USD", 100000) is True

    @pytest.mark.asyncio
    async def test_forty_percent_below_accepted(self, validator):
        assert await validator.validate("BTC-USD", 30000) is True

    @pytest.mark.asyncio
    async def test_more_than_half_below_rejected(self, validator):
        assert await validator.validate("BTC-USD", 24999) is False


class TestUnknownMarketPrice:
    """Test optimistic acceptance when the price cannot be known"""

    @pytest.mark.asyncio
    async def test_unknown_market_accepts_any_price(self):
        validator = AlertValidator(StaticPriceFeed({"BTC-USD": {"price": 50000.0}}), price_timeout=0.05)

        assert await validator.validate("DOGE-USD", 1_000_000) is True

    @pytest.mark.asyncio
    async def test_silent_feed_times_out_and_accepts(self):
        validator = AlertValidator(SilentPriceFeed(), price_timeout=0.01)

        assert await validator.get_price("BTC-USD") is None
        assert await validator.validate("BTC-USD", 1_000_000) is True

    @pytest.mark.asyncio
    async def test_zero_market_price_treated_as_unknown(self):
        validator = AlertValidator(StaticPriceFeed({"X": {"price": 0}}), price_timeout=0.05)

        assert await validator.validate("X", 10) is True

    @pytest.mark.asyncio
    async def test_single_snapshot_per_validation(self, validator, price_feed):
        await validator.validate("BTC-USD", 50000)

        assert price_feed.calls == 1


class TestBusPriceFeed:
    """Test the price feed reading the bus `prices` topic"""

    @pytest.mark.asyncio
    async def test_validation_uses_next_published_snapshot(self, bus):
        feed = BusPriceFeed(bus)
        validator = AlertValidator(feed, price_timeout=1.0)

        pending = asyncio.create_task(validator.validate("BTC-USD", 100001))
        while bus.handler_count("prices") == 0:
            await asyncio.sleep(0)
        await feed.publish({"BTC-USD": {"price": 50000.0}})

        assert await pending is False

    @pytest.mark.asyncio
    async def test_no_snapshot_within_timeout(self, bus):
        validator = AlertValidator(BusPriceFeed(bus), price_timeout=0.01)

        assert await validator.validate("BTC-USD", 100001) is True
