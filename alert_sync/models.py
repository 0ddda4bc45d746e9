"""
Data model for price alerts

Alerts are plain records keyed by (market, price). Trigger events are the
ephemeral evidence, taken from push payloads, that an alert has fired.
"""

import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional


def now_ms() -> int:
    """Current time in epoch milliseconds"""
    return int(time.time() * 1000)


@dataclass
class Alert:
    """A price threshold on a market that should notify when crossed"""
    market: str
    price: float
    timestamp: int = field(default_factory=now_ms)

    # Registered with the remote backend
    active: bool = False

    # Fired and acknowledged
    triggered: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            "market": self.market,
            "price": self.price,
            "timestamp": self.timestamp,
            "active": self.active,
            "triggered": self.triggered,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Alert":
        return cls(
            market=data["market"],
            price=data["price"],
            timestamp=data.get("timestamp") or now_ms(),
            active=bool(data.get("active", False)),
            triggered=bool(data.get("triggered", False)),
        )


@dataclass
class TriggerEvent:
    """
    Evidence that an alert threshold was reached.

    Built leniently from push payloads: fields are taken as-is so that
    malformed events can be dropped later, during grouping.
    """
    price: Any
    market: Optional[str] = None
    direction: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "TriggerEvent":
        # Foreign notifications may carry no data at all
        if not isinstance(payload, Mapping):
            return cls(price=None)
        return cls(
            price=payload.get("price"),
            market=payload.get("market"),
            direction=payload.get("direction"),
        )

    @property
    def is_valid(self) -> bool:
        """True when the event carries a market and a finite numeric price"""
        if not self.market:
            return False
        if not isinstance(self.price, (int, float)) or isinstance(self.price, bool):
            return False
        return math.isfinite(self.price)


@dataclass
class PushSubscription:
    """Push credential issued by the platform for the application server key"""
    endpoint: str
    keys: Dict[str, str] = field(default_factory=dict)
    expiration_time: Optional[int] = None

    def to_dict(self) -> dict:
        """Plain structure, in the shape the alerting backend expects"""
        return {
            "endpoint": self.endpoint,
            "expirationTime": self.expiration_time,
            "keys": dict(self.keys),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PushSubscription":
        return cls(
            endpoint=data["endpoint"],
            keys=dict(data.get("keys") or {}),
            expiration_time=data.get("expirationTime"),
        )


def find_alert(alerts: List[Alert], price: float) -> Optional[Alert]:
    """First alert of the list with exactly this price"""
    for alert in alerts:
        if alert.price == price:
            return alert
    return None
