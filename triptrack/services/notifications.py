"""In-process stand-in for the device's local notification scheduler."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any

from triptrack.domain.models import PendingNotification

logger = logging.getLogger(__name__)


class LocalNotificationCenter:
    """Holds pending notification requests until they are fired or cancelled.

    Handles are opaque ids. Cancelling a handle that was already fired or
    never existed raises ``KeyError``; callers decide whether that matters.
    """

    def __init__(self) -> None:
        self._pending: dict[str, PendingNotification] = {}
        self._lock = threading.Lock()

    def schedule(
        self,
        title: str,
        body: str,
        trigger_at: datetime,
        data: dict[str, Any] | None = None,
    ) -> str:
        notification = PendingNotification(
            title=title, body=body, trigger_at=trigger_at, data=data or {}
        )
        with self._lock:
            self._pending[notification.id] = notification
        return notification.id

    def cancel(self, handle: str) -> None:
        with self._lock:
            del self._pending[handle]

    def get(self, handle: str) -> PendingNotification | None:
        return self._pending.get(handle)

    def list_due(self, now: datetime) -> list[PendingNotification]:
        with self._lock:
            due = [n for n in self._pending.values() if n.trigger_at <= now]
        return sorted(due, key=lambda n: n.trigger_at)

    def fire(self, handle: str) -> PendingNotification:
        """Deliver a pending notification, removing it from the queue."""
        with self._lock:
            notification = self._pending.pop(handle)
        logger.info("Delivered notification %s: %s", handle, notification.title)
        return notification

    def pending_for(self, handles: list[str]) -> list[PendingNotification]:
        return [self._pending[h] for h in handles if h in self._pending]

    def clear(self) -> None:
        with self._lock:
            self._pending.clear()
