"""
Push channel manager

Owns the push subscription of this service instance. The subscription is
acquired lazily from the push platform and cached on the instance.
"""

import base64
from typing import Optional

import structlog

from .exceptions import PushSubscriptionError
from .models import PushSubscription
from .push_platform import PushPlatform

logger = structlog.get_logger()


def url_base64_to_bytes(value: str) -> bytes:
    """Decode a URL-safe base64 string that may lack padding"""
    padding = "=" * ((4 - len(value) % 4) % 4)
    return base64.urlsafe_b64decode(value + padding)


class PushChannelManager:
    """Lazily acquires and caches the push subscription"""

    def __init__(
        self,
        platform: PushPlatform,
        application_key: Optional[str] = None,
        scope: str = "sw.js",
    ):
        self.platform = platform
        self.application_key = application_key
        self.scope = scope
        self._subscription: Optional[PushSubscription] = None

    @property
    def enabled(self) -> bool:
        return bool(self.application_key)

    @property
    def subscription(self) -> Optional[PushSubscription]:
        return self._subscription

    async def get_subscription(self) -> Optional[PushSubscription]:
        """
        Return the push subscription, creating it on first use.

        Returns:
            The cached subscription, or None when push is disabled (no
            application key) or the platform has no registration.

        Raises:
            PushSubscriptionError: the platform refused to subscribe
        """
        if self._subscription is not None:
            return self._subscription

        if not self.application_key:
            return None

        registration = await self.platform.get_registration(self.scope)
        if registration is None:
            logger.warning("push_registration_missing", scope=self.scope)
            return None

        try:
            raw = await registration.subscribe(
                application_server_key=url_base64_to_bytes(self.application_key),
                user_visible_only=True,
            )
        except PushSubscriptionError:
            raise
        except Exception as e:
            logger.error("push_subscribe_failed", error=str(e))
            raise PushSubscriptionError(str(e)) from e

        self._subscription = PushSubscription.from_dict(raw)
        logger.info("push_subscription_acquired", endpoint=self._subscription.endpoint)
        return self._subscription
