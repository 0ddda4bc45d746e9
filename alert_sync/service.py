"""
Alert sync service assembly

Builds the alert components from settings and owns their start/stop.
"""

from typing import Optional

import structlog

from .config import Settings
from .database import PostgresAlertStore
from .event_bus import AlertEventBus
from .lifecycle import AlertLifecycleFacade
from .notices import BusNoticeSurface
from .push_channel import PushChannelManager
from .push_platform import LocalPushPlatform, PushPlatform
from .reconciliation import ReconciliationEngine
from .registration_client import RemoteRegistrationClient
from .store import AlertStore, InMemoryAlertStore, MarketLocks
from .validator import AlertValidator, BusPriceFeed

logger = structlog.get_logger()


class AlertSyncService:
    """All alert components of one service instance"""

    def __init__(
        self,
        settings: Settings,
        store: Optional[AlertStore] = None,
        platform: Optional[PushPlatform] = None,
        client: Optional[RemoteRegistrationClient] = None,
    ):
        self.settings = settings

        if store is None:
            if settings.DATABASE_URL:
                store = PostgresAlertStore(settings.DATABASE_URL)
            else:
                store = InMemoryAlertStore()
        self.store = store

        self.platform = platform or LocalPushPlatform(scope=settings.PUSH_REGISTRATION_SCOPE)
        self.bus = AlertEventBus()
        self.locks = MarketLocks()
        self.notices = BusNoticeSurface(self.bus)
        self.price_feed = BusPriceFeed(self.bus)

        self.push_channel = PushChannelManager(
            self.platform,
            application_key=settings.VAPID_PUBLIC_KEY,
            scope=settings.PUSH_REGISTRATION_SCOPE,
        )
        self.validator = AlertValidator(self.price_feed, price_timeout=settings.PRICE_WAIT_TIMEOUT_SECONDS)
        self.client = client or RemoteRegistrationClient(
            settings.ALERT_BACKEND_URL,
            origin=settings.APP_ORIGIN,
            request_timeout=settings.REQUEST_TIMEOUT_SECONDS,
        )
        self.engine = ReconciliationEngine(self.store, self.platform, self.bus, locks=self.locks)
        self.facade = AlertLifecycleFacade(
            store=self.store,
            push_channel=self.push_channel,
            validator=self.validator,
            client=self.client,
            bus=self.bus,
            notices=self.notices,
            engine=self.engine,
            locks=self.locks,
        )

    async def start(self) -> None:
        if isinstance(self.store, PostgresAlertStore):
            await self.store.connect()

        if not self.push_channel.enabled:
            logger.warning("push_disabled", reason="VAPID_PUBLIC_KEY not configured")

        self.engine.start_initial_sync()
        logger.info("alert_sync_service_started", service=self.settings.SERVICE_NAME)

    async def stop(self) -> None:
        self.engine.stop()
        await self.client.close()

        if isinstance(self.store, PostgresAlertStore):
            await self.store.close()
        logger.info("alert_sync_service_stopped", service=self.settings.SERVICE_NAME)

    async def check_store(self) -> bool:
        if isinstance(self.store, PostgresAlertStore):
            return await self.store.check_connection()
        return True
