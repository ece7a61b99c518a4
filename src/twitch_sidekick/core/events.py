"""In-process publish/subscribe bus shared by every component."""

import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

# Topics
MESSAGE = "message"
GAMEPLAY_EVENT = "gameplayEvent"
GAMEPLAY_RESET = "gameplayReset"
CRITICAL_MOMENT = "criticalMoment"
CLIP_REQUEST = "clipRequest"
CLIP_CREATED = "clipCreated"
FOLLOW = "follow"
SUBSCRIBE = "subscribe"
CHEER = "cheer"

Handler = Callable[[Any], Awaitable[None] | None]


class EventBus:
    """Topic -> ordered list of subscriber callbacks.

    Subscribers may be plain functions or coroutine functions. ``publish``
    invokes them one after another in subscription order and awaits each, so
    every subscriber sees a single producer's events in emission order. A
    subscriber that raises is logged and does not prevent later subscribers
    from running.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> None:
        """Register a handler for a topic."""
        self._subscribers[topic].append(handler)

    def unsubscribe(self, topic: str, handler: Handler) -> bool:
        """Remove a handler. Returns False if it was not subscribed."""
        handlers = self._subscribers.get(topic, [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def subscribers(self, topic: str) -> list[Handler]:
        return list(self._subscribers.get(topic, []))

    async def publish(self, topic: str, payload: Any = None) -> int:
        """Deliver a payload to every subscriber of a topic.

        Returns:
            Number of subscribers that handled the payload without raising
        """
        delivered = 0
        for handler in list(self._subscribers.get(topic, [])):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception:
                logger.exception(f"BUS: subscriber {_handler_name(handler)} failed on '{topic}'")
        return delivered


def _handler_name(handler: Handler) -> str:
    return getattr(handler, "__qualname__", repr(handler))
