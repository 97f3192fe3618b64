"""Service for planning and (re)scheduling local reminders.

Every reschedule is cancel-then-create: existing handles for the entity
are cancelled and cleared before the fresh plan is scheduled, so an entity
never ends up with two live reminder sets.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from triptrack.domain.models import (
    ReminderPlanItem,
    Reservation,
    ReservationStatus,
    ReservationType,
    ResolutionSource,
    Trip,
)
from triptrack.services.phase import expected_departure
from triptrack.services.resolver import DEFAULT_RESOLVER, DateResolver

logger = logging.getLogger(__name__)

# (hours before start, title, body template)
_RESERVATION_REMINDERS = {
    ReservationType.FLIGHT: (
        (24, "✈️ Flight Tomorrow", "{title} departs tomorrow. Check in online!"),
        (3, "✈️ Flight in 3 Hours", "{title}: time to head to the airport"),
    ),
    ReservationType.HOTEL: (
        (4, "🏨 Check-in in 4 Hours", "{title}: check-in time approaching"),
    ),
    ReservationType.CAR: (
        (2, "🚗 Car Pickup in 2 Hours", "{title}: don't forget your license"),
    ),
    ReservationType.TRAIN: (
        (2, "🚂 Train in 2 Hours", "{title}: head to the station"),
    ),
}
_DEFAULT_REMINDERS = ((1, "📅 Event in 1 Hour", "{title} starts soon"),)

_TRIP_REMINDERS = (
    (24, "🧳 Trip Tomorrow!", "{name} starts tomorrow. Ready to go?"),
    (2, "🧳 Trip Starting Soon", "{name} starts in 2 hours!"),
)


class Notifier(Protocol):
    def schedule(
        self, title: str, body: str, trigger_at: datetime, data: dict[str, Any] | None = None
    ) -> str: ...

    def cancel(self, handle: str) -> None: ...


class HandleStore(Protocol):
    def get(self, key: str) -> list[str]: ...

    def put(self, key: str, handle_ids: list[str]) -> None: ...

    def remove_handle(self, key: str, handle_id: str) -> None: ...


def trip_key(trip_id: str) -> str:
    return f"trip_{trip_id}"


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


def reminder_anchor(
    reservation: Reservation,
    now: datetime | None = None,
    resolver: DateResolver | None = None,
) -> datetime | None:
    """The instant reminders count back from; live delays shift flights."""
    resolver = resolver or DEFAULT_RESOLVER
    snapshot = reservation.flight_status
    if snapshot is not None:
        departure = expected_departure(snapshot, now, resolver)
        if departure is not None:
            return departure
    start = resolver.reservation_start(reservation, now)
    if start.source == ResolutionSource.FALLBACK_NOW:
        return None
    return start.instant


def plan_reservation_reminders(
    reservation: Reservation,
    now: datetime | None = None,
    resolver: DateResolver | None = None,
) -> list[ReminderPlanItem]:
    now = now or datetime.now(timezone.utc)
    if reservation.status == ReservationStatus.CANCELLED:
        return []
    anchor = reminder_anchor(reservation, now, resolver)
    if anchor is None or anchor <= now:
        return []

    plan = []
    for hours, title, body in _RESERVATION_REMINDERS.get(reservation.type, _DEFAULT_REMINDERS):
        trigger_at = anchor - timedelta(hours=hours)
        if trigger_at <= now:
            continue
        plan.append(
            ReminderPlanItem(
                hours_before=hours,
                trigger_at=trigger_at,
                title=title,
                body=body.format(title=reservation.title),
                data={
                    "entity_key": reservation.id,
                    "reservation_id": reservation.id,
                    "trip_id": reservation.trip_id,
                    "type": "reservation_reminder",
                },
            )
        )
    return plan


def plan_trip_reminders(
    trip: Trip,
    now: datetime | None = None,
    resolver: DateResolver | None = None,
) -> list[ReminderPlanItem]:
    now = now or datetime.now(timezone.utc)
    resolver = resolver or DEFAULT_RESOLVER
    start = resolver.resolve(trip.start_date, now=now)
    if start.source == ResolutionSource.FALLBACK_NOW or start.instant <= now:
        return []

    plan = []
    for hours, title, body in _TRIP_REMINDERS:
        trigger_at = start.instant - timedelta(hours=hours)
        if trigger_at <= now:
            continue
        plan.append(
            ReminderPlanItem(
                hours_before=hours,
                trigger_at=trigger_at,
                title=title,
                body=body.format(name=trip.name),
                data={"entity_key": trip_key(trip.id), "trip_id": trip.id, "type": "trip_reminder"},
            )
        )
    return plan


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class ReminderScheduler:
    """Keeps each entity's reminder set in step with its latest data.

    Reschedules for the same entity are serialised; different entities
    proceed independently.
    """

    def __init__(
        self,
        notifier: Notifier,
        store: HandleStore,
        resolver: DateResolver | None = None,
    ) -> None:
        self.notifier = notifier
        self.store = store
        self.resolver = resolver or DEFAULT_RESOLVER
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(key, threading.Lock())

    def _forget_lock(self, key: str) -> None:
        with self._guard:
            lock = self._locks.get(key)
            if lock is not None and not lock.locked():
                del self._locks[key]

    def _store_handles(self, key: str, handle_ids: list[str]) -> bool:
        try:
            self.store.put(key, handle_ids)
        except Exception:
            logger.warning("Failed to store reminder ids for %s", key, exc_info=True)
            return False
        return True

    def _cancel_handles(self, key: str) -> int:
        cancelled = 0
        for handle in self.store.get(key):
            try:
                self.notifier.cancel(handle)
                cancelled += 1
            except KeyError:
                logger.debug("Reminder %s for %s already gone", handle, key)
            except Exception:
                logger.warning("Failed to cancel reminder %s for %s", handle, key, exc_info=True)
        self._store_handles(key, [])
        return cancelled

    def _withdraw(self, key: str, handle_ids: list[str]) -> None:
        for handle in handle_ids:
            try:
                self.notifier.cancel(handle)
            except Exception:
                logger.warning("Failed to withdraw reminder %s for %s", handle, key, exc_info=True)

    def _replace(self, key: str, plan: list[ReminderPlanItem]) -> list[str]:
        with self._lock_for(key):
            self._cancel_handles(key)
            handle_ids = []
            for item in plan:
                try:
                    handle_ids.append(
                        self.notifier.schedule(item.title, item.body, item.trigger_at, item.data)
                    )
                except Exception:
                    logger.warning(
                        "Failed to schedule %dh reminder for %s", item.hours_before, key, exc_info=True
                    )
            if not self._store_handles(key, handle_ids):
                # Nothing stays pending without a stored id.
                self._withdraw(key, handle_ids)
                return []
        if handle_ids:
            logger.info("Scheduled %d reminder(s) for %s", len(handle_ids), key)
        return handle_ids

    def reschedule_reservation(
        self, reservation: Reservation, now: datetime | None = None
    ) -> list[str]:
        plan = plan_reservation_reminders(reservation, now, self.resolver)
        return self._replace(reservation.id, plan)

    def reschedule_trip(self, trip: Trip, now: datetime | None = None) -> list[str]:
        plan = plan_trip_reminders(trip, now, self.resolver)
        return self._replace(trip_key(trip.id), plan)

    def cancel(self, key: str) -> int:
        """Cancel every reminder for *key*; call before deleting the entity."""
        with self._lock_for(key):
            cancelled = self._cancel_handles(key)
        self._forget_lock(key)
        if cancelled:
            logger.info("Cancelled %d reminder(s) for %s", cancelled, key)
        return cancelled

    def cancel_reservation(self, reservation_id: str) -> int:
        return self.cancel(reservation_id)

    def cancel_trip(self, trip_id: str) -> int:
        return self.cancel(trip_key(trip_id))

    def notification_fired(self, key: str, handle: str) -> None:
        with self._lock_for(key):
            try:
                self.store.remove_handle(key, handle)
            except Exception:
                logger.warning("Failed to drop fired reminder %s for %s", handle, key, exc_info=True)

    def handles_for(self, key: str) -> list[str]:
        return self.store.get(key)
