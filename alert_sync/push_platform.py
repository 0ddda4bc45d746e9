"""
Push platform interface

The push platform plays the part of the browser service worker: it becomes
ready at some point, keeps notifications that were delivered but not yet
dismissed, creates push subscriptions, and relays live push messages to
registered listeners.

`LocalPushPlatform` is the in-process implementation used by the service,
where deliveries arrive through the HTTP API.
"""

import asyncio
import base64
import inspect
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Union

import structlog

from .exceptions import PushSubscriptionError

logger = structlog.get_logger()

MessageListener = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


@dataclass
class PushNotification:
    """A notification shown by the platform"""
    title: str
    data: Dict[str, Any] = field(default_factory=dict)
    shown_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class PushRegistration(Protocol):
    async def get_notifications(self) -> List[PushNotification]:
        ...

    async def subscribe(self, application_server_key: bytes, user_visible_only: bool = True) -> Dict[str, Any]:
        ...


class PushPlatform(Protocol):
    async def ready(self) -> PushRegistration:
        ...

    async def get_registration(self, scope: str) -> Optional[PushRegistration]:
        ...

    def add_message_listener(self, listener: MessageListener) -> None:
        ...

    def remove_message_listener(self, listener: MessageListener) -> None:
        ...


class LocalRegistration:
    """Registration held by LocalPushPlatform"""

    def __init__(self, scope: str, permission_granted: bool = True):
        self.scope = scope
        self.permission_granted = permission_granted
        self.notifications: List[PushNotification] = []
        self.subscriptions: List[Dict[str, Any]] = []

    async def get_notifications(self) -> List[PushNotification]:
        return list(self.notifications)

    async def subscribe(self, application_server_key: bytes, user_visible_only: bool = True) -> Dict[str, Any]:
        if not self.permission_granted:
            raise PushSubscriptionError("Registration failed - permission denied")
        if not user_visible_only:
            raise PushSubscriptionError("Only user-visible push subscriptions are supported")
        if not application_server_key:
            raise PushSubscriptionError("Missing application server key")

        subscription = {
            "endpoint": f"local://{self.scope}/{secrets.token_urlsafe(16)}",
            "expirationTime": None,
            "keys": {
                "p256dh": base64.urlsafe_b64encode(secrets.token_bytes(65)).decode().rstrip("="),
                "auth": base64.urlsafe_b64encode(secrets.token_bytes(16)).decode().rstrip("="),
            },
        }
        self.subscriptions.append(subscription)
        logger.info("push_subscription_created", scope=self.scope)
        return subscription


class LocalPushPlatform:
    """
    In-process push platform.

    Args:
        scope: Registration scope
        ready: Whether the registration is ready immediately
        permission_granted: Whether subscribing is allowed
    """

    def __init__(self, scope: str = "sw.js", ready: bool = True, permission_granted: bool = True):
        self.registration = LocalRegistration(scope, permission_granted=permission_granted)
        self._ready = asyncio.Event()
        self._listeners: List[MessageListener] = []
        if ready:
            self._ready.set()

    def activate(self) -> None:
        """Mark the registration ready"""
        self._ready.set()

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    async def ready(self) -> LocalRegistration:
        await self._ready.wait()
        return self.registration

    async def get_registration(self, scope: str) -> Optional[LocalRegistration]:
        if scope != self.registration.scope:
            return None
        return self.registration

    def add_message_listener(self, listener: MessageListener) -> None:
        self._listeners.append(listener)

    def remove_message_listener(self, listener: MessageListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def deliver(self, payload: Dict[str, Any], title: Optional[str] = None) -> PushNotification:
        """
        Deliver a push message: show it as a notification, then relay it to
        live listeners.
        """
        if title is None:
            title = f"{payload.get('market')} @{payload.get('price')}"
        notification = PushNotification(title=title, data=dict(payload))
        self.registration.notifications.append(notification)

        logger.info(
            "push_message_delivered",
            market=payload.get("market"),
            price=payload.get("price"),
            listeners=len(self._listeners),
        )

        for listener in list(self._listeners):
            result = listener(dict(payload))
            if inspect.isawaitable(result):
                await result
        return notification

    def dismiss(self, notification: Optional[PushNotification] = None) -> None:
        """Dismiss one notification, or all of them"""
        if notification is None:
            self.registration.notifications.clear()
        elif notification in self.registration.notifications:
            self.registration.notifications.remove(notification)
