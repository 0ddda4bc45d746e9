"""
Alert lifecycle

Creates, moves and removes price alerts. Each operation registers the change
with the remote alerting backend through the push channel, keeps the market's
alert list in the store consistent and announces the change on the bus.

Create and move are optimistic: the local change is applied first (tentative
phase) and reconciled with the backend answer afterwards (confirmed phase).
Both phases are published on the `alert.transition` topic.
"""

from typing import Any, Dict, List, Optional

import structlog

from . import metrics
from .event_bus import ALERT, ALERT_TRANSITION, AlertEventBus
from .exceptions import AlertNotFoundError, PushSubscriptionError
from .models import Alert, find_alert
from .notices import (
    PUSH_PERMISSION_HINT,
    REGISTRATION_FAILURE_ID,
    Notice,
    NoticeSurface,
    NoticeType,
)
from .push_channel import PushChannelManager
from .reconciliation import ReconciliationEngine
from .registration_client import RemoteRegistrationClient
from .store import AlertStore, MarketLocks
from .validator import AlertValidator

logger = structlog.get_logger()

TENTATIVE = "tentative"
CONFIRMED = "confirmed"


class AlertLifecycleFacade:
    """
    Orchestrates alert create/move/remove.

    The operations taking a `market_alerts` list work on the caller's list
    and persist it. The `*_stored_alert` variants load the current list from
    the store themselves, after the initial reconciliation.
    """

    def __init__(
        self,
        store: AlertStore,
        push_channel: PushChannelManager,
        validator: AlertValidator,
        client: RemoteRegistrationClient,
        bus: AlertEventBus,
        notices: NoticeSurface,
        engine: ReconciliationEngine,
        locks: Optional[MarketLocks] = None,
    ):
        self.store = store
        self.push_channel = push_channel
        self.validator = validator
        self.client = client
        self.bus = bus
        self.notices = notices
        self.engine = engine
        self.locks = locks or engine.locks

    # ------------------------------------------------------------------
    # Backend registration
    # ------------------------------------------------------------------

    async def toggle_alert(
        self,
        market: str,
        price: float,
        current_price: Optional[float] = None,
        unsubscribe: Optional[bool] = None,
        status: Optional[bool] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Register or cancel an alert with the backend.

        Returns:
            The backend response (possibly `{"error": ...}`), or None when the
            operation was skipped because push is disabled or the price did
            not validate.

        Raises:
            PushSubscriptionError: the push platform refused to subscribe
        """
        subscription = await self.push_channel.get_subscription()

        if not subscription:
            logger.debug("push_disabled_skip_registration", market=market, price=price)
            return None

        if not await self.validator.validate(market, price):
            return None

        return await self.client.register(
            subscription,
            market,
            price,
            current_price=current_price,
            unsubscribe=unsubscribe,
            status=status,
        )

    async def subscribe(self, market: str, price: float, current_price: Optional[float] = None) -> Optional[Dict[str, Any]]:
        data = await self.toggle_alert(market, price, current_price)

        if data is not None and not data.get("error"):
            await self.notices.show_notice(Notice(title=f"Added {market} @{price}", type=NoticeType.SUCCESS))

        return data

    async def unsubscribe(self, market: str, price: float) -> Optional[Dict[str, Any]]:
        data = await self.toggle_alert(market, price, None, True)

        if data is None:
            return None

        if data.get("alert"):
            alert = data["alert"]
            await self.notices.show_notice(Notice(
                title=f"Removed {alert.get('market', market)} @{alert.get('price', price)}",
                type=NoticeType.SUCCESS,
            ))
        elif not data.get("error"):
            await self.notices.show_notice(Notice(title="Alert not found (or expired)"))

        return data

    # ------------------------------------------------------------------
    # Create / move / remove on a caller supplied list
    # ------------------------------------------------------------------

    async def create_alert(
        self,
        alert: Alert,
        market_alerts: List[Alert],
        current_price: Optional[float] = None,
    ) -> Alert:
        """
        Add an alert to a market list and register it.

        The alert is appended (inactive) before the backend is asked; the list
        is persisted whatever the backend answers.
        """
        async with self.locks.hold(alert.market):
            return await self._create(alert, market_alerts, current_price)

    async def move_alert(
        self,
        alert: Alert,
        new_price: float,
        current_price: Optional[float],
        market_alerts: List[Alert],
    ) -> Optional[bool]:
        """
        Move an alert to a new price.

        Returns:
            The new `active` flag, or None when the move was aborted (push
            disabled or new price rejected) and nothing changed.
        """
        async with self.locks.hold(alert.market):
            return await self._move(alert, new_price, current_price, market_alerts)

    async def remove_alert(self, alert: Alert, market_alerts: Optional[List[Alert]] = None) -> None:
        """
        Remove an alert. The market list is persisted only when supplied.
        """
        async with self.locks.hold(alert.market):
            await self._remove(alert, market_alerts)

    # ------------------------------------------------------------------
    # Store backed variants
    # ------------------------------------------------------------------

    async def create_stored_alert(self, market: str, price: float, current_price: Optional[float] = None) -> Alert:
        await self.engine.wait_for_sync()

        async with self.locks.hold(market):
            market_alerts = await self.store.get_alerts(market)
            return await self._create(Alert(market=market, price=price), market_alerts, current_price)

    async def move_stored_alert(
        self,
        market: str,
        price: float,
        new_price: float,
        current_price: Optional[float] = None,
    ) -> Optional[Alert]:
        """
        Returns:
            The moved alert, or None when the move was aborted

        Raises:
            AlertNotFoundError: no stored alert with that price
        """
        await self.engine.wait_for_sync()

        async with self.locks.hold(market):
            market_alerts = await self.store.get_alerts(market)
            alert = find_alert(market_alerts, price)

            if alert is None:
                raise AlertNotFoundError(market, price)

            if await self._move(alert, new_price, current_price, market_alerts) is None:
                return None
            return alert

    async def remove_stored_alert(self, market: str, price: float) -> Alert:
        """
        Raises:
            AlertNotFoundError: no stored alert with that price
        """
        await self.engine.wait_for_sync()

        async with self.locks.hold(market):
            market_alerts = await self.store.get_alerts(market)
            alert = find_alert(market_alerts, price)

            if alert is None:
                raise AlertNotFoundError(market, price)

            await self._remove(alert, market_alerts)
            return alert

    # ------------------------------------------------------------------
    # Operations, called with the market lock held
    # ------------------------------------------------------------------

    async def _create(self, alert: Alert, market_alerts: List[Alert], current_price: Optional[float]) -> Alert:
        alert.active = False
        alert.triggered = False
        market_alerts.append(alert)
        await self._transition(TENTATIVE, "create", alert)

        try:
            data = await self.subscribe(alert.market, alert.price, current_price)
            alert.active = data is not None and not data.get("error")
        except PushSubscriptionError as e:
            alert.active = False
            await self.notices.show_notice(Notice(
                id=REGISTRATION_FAILURE_ID,
                title=f"{e}\n{PUSH_PERMISSION_HINT}",
                type=NoticeType.ERROR,
            ))

        await self.store.save_alerts(alert.market, market_alerts)
        await self._transition(CONFIRMED, "create", alert)

        await self.bus.emit(ALERT, {
            "price": alert.price,
            "market": alert.market,
            "timestamp": alert.timestamp,
            "add": True,
        })

        metrics.lifecycle_operations_total.labels(
            operation="create", outcome="active" if alert.active else "inactive"
        ).inc()
        logger.info("alert_created", market=alert.market, price=alert.price, active=alert.active)
        return alert

    async def _move(
        self,
        alert: Alert,
        new_price: float,
        current_price: Optional[float],
        market_alerts: List[Alert],
    ) -> Optional[bool]:
        try:
            subscription = await self.push_channel.get_subscription()
        except PushSubscriptionError as e:
            logger.error("alert_move_subscription_failed", market=alert.market, error=str(e))
            subscription = None

        if not subscription or not await self.validator.validate(alert.market, new_price):
            metrics.lifecycle_operations_total.labels(operation="move", outcome="aborted").inc()
            logger.info("alert_move_aborted", market=alert.market, price=alert.price, new_price=new_price)
            return None

        old_price = alert.price
        await self._transition(TENTATIVE, "move", alert, new_price=new_price)

        data = await self.client.register(
            subscription,
            alert.market,
            old_price,
            new_price=new_price,
            current_price=current_price,
        )
        active = not data.get("error")

        await self.bus.emit(ALERT, {
            "price": old_price,
            "market": alert.market,
            "newPrice": new_price,
        })

        alert.triggered = False
        alert.active = active
        alert.price = new_price

        await self.store.save_alerts(alert.market, market_alerts)
        await self._transition(CONFIRMED, "move", alert, old_price=old_price)

        metrics.lifecycle_operations_total.labels(
            operation="move", outcome="active" if active else "inactive"
        ).inc()
        logger.info("alert_moved", market=alert.market, price=old_price, new_price=new_price, active=active)
        return active

    async def _remove(self, alert: Alert, market_alerts: Optional[List[Alert]]) -> None:
        if not alert.triggered:
            error = None
            try:
                data = await self.unsubscribe(alert.market, alert.price)
                if data is not None and data.get("error"):
                    error = data["error"]
            except PushSubscriptionError as e:
                error = str(e)

            if error and alert.active:
                await self.notices.show_notice(Notice(
                    id=REGISTRATION_FAILURE_ID,
                    title=f"{error}\n{PUSH_PERMISSION_HINT}",
                    type=NoticeType.ERROR,
                ))

        await self.bus.emit(ALERT, {
            "price": alert.price,
            "market": alert.market,
            "remove": True,
        })

        if market_alerts is not None:
            await self.store.save_alerts(
                alert.market,
                [a for a in market_alerts if a.price != alert.price],
            )

        metrics.lifecycle_operations_total.labels(operation="remove", outcome="removed").inc()
        logger.info("alert_removed", market=alert.market, price=alert.price, triggered=alert.triggered)

    async def _transition(self, phase: str, operation: str, alert: Alert, **extra: Any) -> None:
        await self.bus.emit(ALERT_TRANSITION, {
            "phase": phase,
            "operation": operation,
            "market": alert.market,
            "price": alert.price,
            "active": alert.active,
            "triggered": alert.triggered,
            **extra,
        })
