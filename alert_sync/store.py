"""
Alert store adapters

The store keeps one list of alerts per market. Lists handed out are copies:
a mutation only becomes durable through `save_alerts`.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Protocol

import structlog

from .models import Alert

logger = structlog.get_logger()


class AlertStore(Protocol):
    """Durable per-market alert lists"""

    async def get_alerts(self, market: str) -> List[Alert]:
        ...

    async def save_alerts(self, market: str, alerts: List[Alert]) -> None:
        ...


class InMemoryAlertStore:
    """Process-local alert store, used when no database is configured"""

    def __init__(self):
        self._alerts: Dict[str, List[dict]] = {}
        self.save_count = 0

    async def get_alerts(self, market: str) -> List[Alert]:
        return [Alert.from_dict(data) for data in self._alerts.get(market, [])]

    async def save_alerts(self, market: str, alerts: List[Alert]) -> None:
        self._alerts[market] = [alert.to_dict() for alert in alerts]
        self.save_count += 1
        logger.debug("alerts_saved", market=market, count=len(alerts))

    def markets(self) -> List[str]:
        return sorted(self._alerts)


class MarketLocks:
    """
    One asyncio lock per market.

    Every read-modify-write of a market's alert list (reconciliation and
    lifecycle operations) runs under that market's lock. Locks are not
    reentrant. A lock is dropped once nobody holds or waits for it.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, market: str) -> AsyncIterator[None]:
        lock = self._locks.get(market)
        if lock is None:
            lock = self._locks[market] = asyncio.Lock()
        self._users[market] = self._users.get(market, 0) + 1

        try:
            async with lock:
                yield
        finally:
            self._users[market] -= 1
            if not self._users[market]:
                del self._users[market]
                del self._locks[market]

    def locked(self, market: str) -> bool:
        return market in self._locks and self._locks[market].locked()

    @property
    def tracked(self) -> int:
        """Number of markets with a lock currently held or awaited"""
        return len(self._locks)
