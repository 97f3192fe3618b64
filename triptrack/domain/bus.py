"""Synchronous in-process bus for itinerary domain events."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventBus:
    """Publish/subscribe bus for trip, reservation and reminder events.

    Handlers run on the publishing thread in registration order. A handler
    may publish further events (deleting a trip publishes one
    ``ReservationDeleted`` per reservation); those are dispatched depth-first
    and finish before the outer ``publish`` returns. The handler list is
    copied per dispatch, so subscribing from inside a handler only affects
    later events. Handler exceptions propagate to the publisher.
    """

    def __init__(self) -> None:
        self._subscribers: dict[type, list[Callable]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: Callable) -> None:
        self._subscribers[event_type].append(handler)

    def publish(self, event: Any) -> None:
        handlers = list(self._subscribers.get(type(event), []))
        logger.debug("Publishing %s to %d handler(s)", type(event).__name__, len(handlers))
        for handler in handlers:
            handler(event)
