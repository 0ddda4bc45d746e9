"""
Alert Sync Service

Price alerts synchronized with a push notification channel:
- Alert create / move / remove with remote registration
- Reconciliation of triggered alerts from delivered notifications
- Gated alert reads
"""

from .models import Alert, PushSubscription, TriggerEvent

from .event_bus import AlertEventBus, BusMessage

from .exceptions import (
    AlertNotFoundError,
    AlertSyncError,
    PushSubscriptionError,
)

from .store import AlertStore, InMemoryAlertStore, MarketLocks

from .push_platform import LocalPushPlatform, PushNotification
from .push_channel import PushChannelManager
from .validator import AlertValidator, BusPriceFeed
from .registration_client import RemoteRegistrationClient
from .notices import BusNoticeSurface, Notice, NoticeType
from .reconciliation import ReconciliationEngine
from .lifecycle import AlertLifecycleFacade

__all__ = [
    # Models
    "Alert",
    "PushSubscription",
    "TriggerEvent",

    # Messaging
    "AlertEventBus",
    "BusMessage",
    "BusNoticeSurface",
    "Notice",
    "NoticeType",

    # Errors
    "AlertSyncError",
    "AlertNotFoundError",
    "PushSubscriptionError",

    # Storage
    "AlertStore",
    "InMemoryAlertStore",
    "MarketLocks",

    # Push
    "LocalPushPlatform",
    "PushNotification",
    "PushChannelManager",
    "RemoteRegistrationClient",

    # Core
    "AlertValidator",
    "BusPriceFeed",
    "ReconciliationEngine",
    "AlertLifecycleFacade",
]
