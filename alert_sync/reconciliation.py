"""
Triggered alert reconciliation

Push messages can fire alerts while this service is not running. On startup
the notifications that the push platform delivered (and nobody dismissed yet)
are replayed against the stored alerts, then live push messages are applied as
they arrive. Alert reads wait for that first sweep so they never report a
stale `triggered` flag.
"""

import asyncio
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import structlog

from . import metrics
from .event_bus import ALERT, AlertEventBus
from .models import Alert, TriggerEvent, find_alert
from .push_platform import PushPlatform
from .store import AlertStore, MarketLocks

logger = structlog.get_logger()

TriggerLike = Union[TriggerEvent, Mapping[str, Any]]


class ReconciliationEngine:
    """
    Keeps stored `triggered` flags in line with delivered push notifications.

    Args:
        store: Alert store
        platform: Push platform holding delivered notifications
        bus: Event bus, live triggers are republished on its `alert` topic
        locks: Per-market locks shared with the lifecycle facade
    """

    def __init__(
        self,
        store: AlertStore,
        platform: PushPlatform,
        bus: AlertEventBus,
        locks: Optional[MarketLocks] = None,
    ):
        self.store = store
        self.platform = platform
        self.bus = bus
        self.locks = locks or MarketLocks()

        self._sync_task: Optional[asyncio.Task] = None
        self._listening = False

    @property
    def sync_started(self) -> bool:
        return self._sync_task is not None

    @property
    def synced(self) -> bool:
        return self._sync_task is not None and self._sync_task.done()

    def start_initial_sync(self) -> "asyncio.Task[None]":
        """
        Start the initial reconciliation.

        Only the first call starts anything; later calls return the same
        gate, which callers can await.
        """
        if self._sync_task is None:
            metrics.initial_sync_completed.set(0)
            self._sync_task = asyncio.create_task(self._run_initial_sync())
            logger.info("initial_sync_started")
        return self._sync_task

    async def wait_for_sync(self) -> None:
        """Wait for the initial reconciliation, starting it if needed"""
        await asyncio.shield(self.start_initial_sync())

    async def _run_initial_sync(self) -> None:
        try:
            # No timeout: the gate stays pending until the platform is ready
            registration = await self.platform.ready()

            notifications = await registration.get_notifications()
            events = [TriggerEvent.from_payload(notification.data) for notification in notifications]
            marked = await self.mark_triggered(events, source="recovered")
            logger.info("initial_sync_completed", notifications=len(events), marked=marked)
        except Exception as e:
            logger.error("initial_sync_failed", error=str(e), exc_info=True)

        metrics.initial_sync_completed.set(1)
        self._listen()

    def _listen(self) -> None:
        if not self._listening:
            self.platform.add_message_listener(self._on_push_message)
            self._listening = True
            logger.info("live_trigger_listener_registered")

    def stop(self) -> None:
        """Stop applying live push messages"""
        if self._listening:
            self.platform.remove_message_listener(self._on_push_message)
            self._listening = False
            logger.info("live_trigger_listener_removed")

    async def _on_push_message(self, payload: Dict[str, Any]) -> None:
        try:
            await self.mark_triggered([TriggerEvent.from_payload(payload)], source="live")
        except Exception as e:
            logger.error("live_trigger_failed", error=str(e), payload=payload)

        await self.bus.emit(ALERT, payload)

    async def mark_triggered(self, events: Iterable[TriggerLike], source: str = "recovered") -> int:
        """
        Mark stored alerts as triggered.

        Events are grouped by market; events without a market or a finite
        numeric price (or payloads that are not mappings) are dropped. For each price, only the first stored alert with
        exactly that price is marked. Each affected market is written back
        once.

        Args:
            events: Trigger events or raw push payloads
            source: Label for metrics and logs ("recovered" or "live")

        Returns:
            int: Number of alerts marked
        """
        markets: Dict[str, List[float]] = OrderedDict()

        for event in events:
            if not isinstance(event, TriggerEvent):
                event = TriggerEvent.from_payload(event)

            if not event.is_valid:
                metrics.trigger_events_dropped_total.inc()
                logger.debug("trigger_event_dropped", market=event.market, price=event.price)
                continue

            markets.setdefault(event.market, []).append(event.price)

        marked = 0

        for market, prices in markets.items():
            async with self.locks.hold(market):
                alerts = await self.store.get_alerts(market)

                if not alerts:
                    continue

                for price in prices:
                    alert = find_alert(alerts, price)

                    if alert:
                        alert.triggered = True
                        marked += 1
                    else:
                        logger.debug("trigger_event_unmatched", market=market, price=price)

                await self.store.save_alerts(market, alerts)

        if marked:
            metrics.triggers_applied_total.labels(source=source).inc(marked)
            logger.info("alerts_marked_triggered", count=marked, source=source)

        return marked

    async def get_alerts(self, market: str) -> List[Alert]:
        """
        Alerts of a market, read after the initial reconciliation.

        Args:
            market: Market id

        Returns:
            List of alerts
        """
        await self.wait_for_sync()
        return await self.store.get_alerts(market)

    async def get_alerts_for_markets(self, markets: Iterable[str]) -> List[Alert]:
        """Alerts of several markets, each market read once, in the given order"""
        seen = []
        for market in markets:
            if market and market not in seen:
                seen.append(market)

        alerts: List[Alert] = []
        for market in seen:
            alerts.extend(await self.get_alerts(market))
        return alerts
