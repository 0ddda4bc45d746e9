"""
User-visible notices

Success, error and info messages shown to the alert owner. The default
surface logs each notice and republishes it on the bus `notice` topic, where
clients pick it up.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Deque, List, Optional, Protocol

import structlog

from .event_bus import NOTICE, AlertEventBus

logger = structlog.get_logger()

REGISTRATION_FAILURE_ID = "alert-registration-failure"
PUSH_PERMISSION_HINT = "You need to make sure your browser is set to allow push notifications."


class NoticeType(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


@dataclass
class Notice:
    """A message for the user"""
    title: str
    type: NoticeType = NoticeType.INFO
    id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "type": self.type.value,
            "id": self.id,
            "created_at": self.created_at.isoformat(),
        }


class NoticeSurface(Protocol):
    async def show_notice(self, notice: Notice) -> None:
        ...


class BusNoticeSurface:
    """Logs notices, keeps the latest ones and publishes them on the bus"""

    def __init__(self, bus: AlertEventBus, max_notices: int = 50):
        self.bus = bus
        self._notices: Deque[Notice] = deque(maxlen=max_notices)

    async def show_notice(self, notice: Notice) -> None:
        # A notice with an id replaces the previous one with the same id
        if notice.id:
            for existing in list(self._notices):
                if existing.id == notice.id:
                    self._notices.remove(existing)
        self._notices.append(notice)

        log = logger.error if notice.type == NoticeType.ERROR else logger.info
        log("notice_shown", title=notice.title, notice_type=notice.type.value, notice_id=notice.id)

        await self.bus.emit(NOTICE, notice.to_dict())

    @property
    def notices(self) -> List[Notice]:
        return list(self._notices)
