"""
Shared pytest fixtures for alert sync tests
"""

import asyncio
from collections import defaultdict
from unittest.mock import AsyncMock, Mock

import pytest

from alert_sync.event_bus import ALERT, ALERT_TRANSITION, NOTICE, AlertEventBus
from alert_sync.lifecycle import AlertLifecycleFacade
from alert_sync.notices import BusNoticeSurface
from alert_sync.push_channel import PushChannelManager
from alert_sync.push_platform import LocalPushPlatform
from alert_sync.reconciliation import ReconciliationEngine
from alert_sync.registration_client import RemoteRegistrationClient
from alert_sync.store import InMemoryAlertStore, MarketLocks
from alert_sync.validator import AlertValidator

# Example VAPID public key (URL-safe base64, unpadded)
VAPID_KEY = "BEl62iUYgUivxIkv69yViEuiBIa-Ib9-SkvMeAtA3LFgDzkrxZJjSgSnfckjBJuBkr3qBUYIHBQFLXYp5Nksh8U"


class StaticPriceFeed:
    """Price feed answering every request with the same snapshot"""

    def __init__(self, snapshot=None):
        self.snapshot = snapshot or {}
        self.calls = 0

    async def next_snapshot(self):
        self.calls += 1
        return self.snapshot


class SilentPriceFeed:
    """Price feed that never publishes"""

    async def next_snapshot(self):
        await asyncio.Event().wait()


@pytest.fixture
def bus():
    return AlertEventBus()


@pytest.fixture
def bus_events(bus):
    """Payloads emitted on the alert, transition and notice topics"""
    events = defaultdict(list)
    for topic in (ALERT, ALERT_TRANSITION, NOTICE):
        bus.subscribe(topic, lambda payload, topic=topic: events[topic].append(payload))
    return events


@pytest.fixture
def store():
    return InMemoryAlertStore()


@pytest.fixture
def locks():
    return MarketLocks()


@pytest.fixture
def platform():
    return LocalPushPlatform(scope="sw.js")


@pytest.fixture
def price_feed():
    return StaticPriceFeed({"BTC-USD": {"price": 50000.0}, "ETH-USD": {"price": 2000.0}, "X": {"price": 100.0}})


@pytest.fixture
def validator(price_feed):
    return AlertValidator(price_feed, price_timeout=0.05)


@pytest.fixture
def mock_client():
    """Mock registration client accepting every request"""
    client = Mock(spec=RemoteRegistrationClient)
    client.register = AsyncMock(return_value={"status": "ok"})
    client.close = AsyncMock()
    return client


@pytest.fixture
def push_channel(platform):
    return PushChannelManager(platform, application_key=VAPID_KEY, scope="sw.js")


@pytest.fixture
def engine(store, platform, bus, locks):
    return ReconciliationEngine(store, platform, bus, locks=locks)


@pytest.fixture
def notices(bus):
    return BusNoticeSurface(bus)


@pytest.fixture
def facade(store, push_channel, validator, mock_client, bus, notices, engine, locks):
    return AlertLifecycleFacade(
        store=store,
        push_channel=push_channel,
        validator=validator,
        client=mock_client,
        bus=bus,
        notices=notices,
        engine=engine,
        locks=locks,
    )
