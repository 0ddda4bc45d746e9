"""
In-process event bus

Topic based publish/subscribe channel shared by the alert components.
Handlers may be plain callables or coroutine functions; a failing handler is
logged and never breaks the emitter.
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import structlog

logger = structlog.get_logger()

# Topics
ALERT = "alert"
ALERT_TRANSITION = "alert.transition"
NOTICE = "notice"
PRICES = "prices"

Handler = Callable[[Any], Any]


@dataclass
class BusMessage:
    """A message travelling on the bus"""
    topic: str
    payload: Any
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class AlertEventBus:
    """
    Event bus for alert lifecycle, trigger, notice and price messages.

    Subscribers register per topic. `emit` awaits every handler of the topic
    before returning so callers observe a consistent order of side effects.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = {}
        self._history: List[BusMessage] = []
        self.history_size = 100

    def subscribe(self, topic: str, handler: Handler) -> None:
        """
        Subscribe a handler to a topic.

        Args:
            topic: Topic name
            handler: Callable receiving the payload
        """
        self._handlers.setdefault(topic, []).append(handler)
        logger.debug("bus_handler_subscribed", topic=topic, handler=_handler_name(handler))

    def unsubscribe(self, topic: str, handler: Handler) -> None:
        """Remove a handler; unknown handlers are ignored"""
        handlers = self._handlers.get(topic, [])
        try:
            handlers.remove(handler)
            logger.debug("bus_handler_unsubscribed", topic=topic, handler=_handler_name(handler))
        except ValueError:
            logger.warning("bus_handler_not_subscribed", topic=topic, handler=_handler_name(handler))

    def handler_count(self, topic: str) -> int:
        return len(self._handlers.get(topic, []))

    async def emit(self, topic: str, payload: Any) -> None:
        """
        Publish a payload on a topic.

        Args:
            topic: Topic name
            payload: Message payload, passed as-is to handlers
        """
        message = BusMessage(topic=topic, payload=payload)
        self._history.append(message)
        if len(self._history) > self.history_size:
            del self._history[0]

        handlers = list(self._handlers.get(topic, []))
        if not handlers:
            return

        results = await asyncio.gather(
            *(self._call(handler, payload) for handler in handlers),
            return_exceptions=True,
        )
        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                logger.error(
                    "bus_handler_failed",
                    topic=topic,
                    handler=_handler_name(handler),
                    error=str(result),
                )

    async def once(self, topic: str, timeout: Optional[float] = None) -> Any:
        """
        Wait for the next payload published on a topic.

        Raises asyncio.TimeoutError when a timeout is given and nothing arrives.
        """
        future = asyncio.get_running_loop().create_future()

        def _resolve(payload: Any) -> None:
            if not future.done():
                future.set_result(payload)

        self.subscribe(topic, _resolve)
        try:
            if timeout is None:
                return await future
            return await asyncio.wait_for(future, timeout)
        finally:
            self.unsubscribe(topic, _resolve)

    def recent(self, topic: Optional[str] = None) -> List[BusMessage]:
        """Recently emitted messages, optionally for a single topic"""
        if topic is None:
            return list(self._history)
        return [m for m in self._history if m.topic == topic]

    @staticmethod
    async def _call(handler: Handler, payload: Any) -> None:
        result = handler(payload)
        if inspect.isawaitable(result):
            await result


def _handler_name(handler: Handler) -> str:
    return getattr(handler, "__qualname__", None) or handler.__class__.__name__
