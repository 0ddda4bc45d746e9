"""
Alert price validation

Guards alert creation against fat-finger input by comparing the requested
price with the current market price taken from the next price snapshot.
"""

import asyncio
import math
from typing import Dict, Optional, Protocol

import structlog

from . import metrics
from .event_bus import PRICES, AlertEventBus

logger = structlog.get_logger()

# Accepted deviation from the market price, in percent
MAX_DEVIATION_ABOVE = 100
MAX_DEVIATION_BELOW = -50


class PriceFeed(Protocol):
    async def next_snapshot(self) -> Dict[str, Dict[str, float]]:
        ...


class BusPriceFeed:
    """Price feed reading snapshots published on the bus `prices` topic"""

    def __init__(self, bus: AlertEventBus):
        self.bus = bus

    async def next_snapshot(self) -> Dict[str, Dict[str, float]]:
        return await self.bus.once(PRICES)

    async def publish(self, snapshot: Dict[str, Dict[str, float]]) -> None:
        await self.bus.emit(PRICES, snapshot)


class AlertValidator:
    """
    Validates alert prices against the live market price.

    Args:
        feed: Price feed
        price_timeout: Seconds to wait for a snapshot; None waits forever
    """

    def __init__(self, feed: PriceFeed, price_timeout: Optional[float] = 10.0):
        self.feed = feed
        self.price_timeout = price_timeout

    async def get_price(self, market: str) -> Optional[float]:
        """Current price of a market, or None when unknown"""
        try:
            if self.price_timeout is None:
                snapshot = await self.feed.next_snapshot()
            else:
                snapshot = await asyncio.wait_for(self.feed.next_snapshot(), self.price_timeout)
        except asyncio.TimeoutError:
            logger.warning("price_snapshot_timeout", market=market, timeout=self.price_timeout)
            return None

        stats = (snapshot or {}).get(market)
        if not stats:
            return None
        return stats.get("price")

    async def validate(self, market: str, price: float) -> bool:
        """
        Check a proposed alert price.

        Args:
            market: Market id
            price: Proposed trigger price

        Returns:
            bool: False when the price is not finite, negative or too far
            from the market price, True otherwise (including when the market
            price is unknown)
        """
        if not math.isfinite(price):
            metrics.validation_rejections_total.inc()
            logger.error("alert_price_not_finite", market=market, price=str(price))
            return False

        if price < 0:
            metrics.validation_rejections_total.inc()
            logger.error("alert_price_negative", market=market, price=price)
            return False

        market_price = await self.get_price(market)

        if market_price and math.isfinite(market_price):
            deviation = (price / market_price - 1) * 100

            if deviation > MAX_DEVIATION_ABOVE or deviation < MAX_DEVIATION_BELOW:
                metrics.validation_rejections_total.inc()
                logger.error(
                    "alert_price_too_far",
                    market=market,
                    price=price,
                    market_price=market_price,
                    deviation=round(deviation, 3),
                )
                return False

        return True
