"""Event Bus — in-process publish/subscribe implementing the EventChannel protocol.

Invariants:
    - Subscribers run in subscription order; publish returns their results in that order
    - Async subscribers are awaited before the next subscriber runs
    - A subscriber exception propagates to the publisher (the operation fails)

Design Decisions:
    - Handlers snapshot per publish: subscribing from inside a handler affects the next publish only
"""

import inspect
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]


class EventBus:
    def __init__(self):
        self._subscribers: dict[str, list[Handler]] = {}

    def subscribe(self, name: str, handler: Handler) -> Handler:
        self._subscribers.setdefault(name, []).append(handler)
        return handler

    def unsubscribe(self, name: str, handler: Handler) -> bool:
        handlers = self._subscribers.get(name)
        if not handlers or handler not in handlers:
            return False
        handlers.remove(handler)
        if not handlers:
            del self._subscribers[name]
        return True

    def has_subscribers(self, name: str) -> bool:
        return bool(self._subscribers.get(name))

    def clear(self) -> None:
        self._subscribers.clear()

    async def publish(self, name: str, *args: Any) -> list:
        results = []
        for handler in list(self._subscribers.get(name, ())):
            result = handler(*args)
            if inspect.isawaitable(result):
                result = await result
            results.append(result)
        if results:
            logger.debug("Event delivered", extra={"event": name})
        return results
