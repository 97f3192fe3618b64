"""Domain event handlers, wired up at application startup."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from triptrack.domain.bus import EventBus
from triptrack.domain.events import (
    FlightStatusRefreshed,
    NotificationFired,
    RemindersScheduled,
    ReservationCreated,
    ReservationDeleted,
    ReservationUpdated,
    TripDeleted,
    TripSaved,
)
from triptrack.domain.models import FLIGHT_STATUS_KEY, TimelineEntry, TimelineEntryType
from triptrack.repos.memory import ReservationRepository, TimelineRepository, TripRepository
from triptrack.services.phase import infer_phase
from triptrack.services.reminders import ReminderScheduler, trip_key

logger = logging.getLogger(__name__)

_TRIP_PREFIX = "trip_"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def entity_id_for_key(key: str) -> str:
    """Reminder set key -> id of the trip or reservation it belongs to."""
    return key[len(_TRIP_PREFIX):] if key.startswith(_TRIP_PREFIX) else key


class HandlerRegistry:
    """Wires domain-event handlers to the bus with access to all repositories."""

    def __init__(
        self,
        bus: EventBus,
        trip_repo: TripRepository,
        reservation_repo: ReservationRepository,
        timeline_repo: TimelineRepository,
        scheduler: ReminderScheduler,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.bus = bus
        self.trip_repo = trip_repo
        self.reservation_repo = reservation_repo
        self.timeline_repo = timeline_repo
        self.scheduler = scheduler
        self.clock = clock
        self._register()

    def _register(self) -> None:
        self.bus.subscribe(TripSaved, self.on_trip_saved)
        self.bus.subscribe(TripDeleted, self.on_trip_deleted)
        self.bus.subscribe(ReservationCreated, self.on_reservation_created)
        self.bus.subscribe(ReservationUpdated, self.on_reservation_updated)
        self.bus.subscribe(ReservationDeleted, self.on_reservation_deleted)
        self.bus.subscribe(FlightStatusRefreshed, self.on_flight_status_refreshed)
        self.bus.subscribe(NotificationFired, self.on_notification_fired)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _record(self, entity_id: str, entry_type: TimelineEntryType, **payload) -> None:
        self.timeline_repo.add(
            TimelineEntry(entity_id=entity_id, type=entry_type, payload=payload)
        )

    def _announce(self, entity_id: str, key: str, handle_ids: list[str]) -> None:
        self._record(entity_id, TimelineEntryType.REMINDERS_SCHEDULED, handle_ids=handle_ids)
        self.bus.publish(RemindersScheduled(entity_key=key, handle_ids=handle_ids))

    def _reschedule_reservation(self, reservation_id: str) -> None:
        stored = self.reservation_repo.get(reservation_id)
        if stored is None:
            return
        handle_ids = self.scheduler.reschedule_reservation(stored, now=self.clock())
        self._announce(stored.id, stored.id, handle_ids)

    # ------------------------------------------------------------------
    # Trips
    # ------------------------------------------------------------------

    def on_trip_saved(self, event: TripSaved) -> None:
        stored = self.trip_repo.get(event.trip_id)
        if stored is None:
            return
        self._record(stored.id, TimelineEntryType.CREATED, name=stored.name)
        handle_ids = self.scheduler.reschedule_trip(stored, now=self.clock())
        self._announce(stored.id, trip_key(stored.id), handle_ids)

    def on_trip_deleted(self, event: TripDeleted) -> None:
        # Reservations go first so none of their reminders outlive the trip.
        for reservation in self.reservation_repo.list_for_trip(event.trip_id):
            self.bus.publish(ReservationDeleted(reservation_id=reservation.id))

        cancelled = self.scheduler.cancel_trip(event.trip_id)
        self._record(event.trip_id, TimelineEntryType.REMINDERS_CANCELLED, count=cancelled)
        self.trip_repo.delete(event.trip_id)

    # ------------------------------------------------------------------
    # Reservations
    # ------------------------------------------------------------------

    def on_reservation_created(self, event: ReservationCreated) -> None:
        stored = self.reservation_repo.get(event.reservation_id)
        if stored is None:
            return
        self._record(stored.id, TimelineEntryType.CREATED, type=stored.type.value)
        self._reschedule_reservation(stored.id)

    def on_reservation_updated(self, event: ReservationUpdated) -> None:
        if self.reservation_repo.get(event.reservation_id) is None:
            return
        self._record(
            event.reservation_id, TimelineEntryType.UPDATED, changed_fields=event.changed_fields
        )
        self._reschedule_reservation(event.reservation_id)

    def on_reservation_deleted(self, event: ReservationDeleted) -> None:
        cancelled = self.scheduler.cancel_reservation(event.reservation_id)
        self._record(event.reservation_id, TimelineEntryType.REMINDERS_CANCELLED, count=cancelled)
        self.reservation_repo.delete(event.reservation_id)

    def on_flight_status_refreshed(self, event: FlightStatusRefreshed) -> None:
        stored = self.reservation_repo.get(event.reservation_id)
        if stored is None:
            return

        # 1. Swap the snapshot in one assignment; readers see old or new, never half.
        stored.details = {
            **stored.details,
            FLIGHT_STATUS_KEY: event.snapshot.model_dump(mode="json"),
        }
        stored.updated_at = self.clock()

        # 2. Timeline
        phase = infer_phase(event.snapshot, self.clock(), self.scheduler.resolver)
        self._record(
            stored.id,
            TimelineEntryType.FLIGHT_STATUS_REFRESHED,
            phase=phase.value,
            provider_status=event.snapshot.flight_status.value,
        )
        for change in event.changes:
            self._record(stored.id, TimelineEntryType.FLIGHT_CHANGE, **change.model_dump(mode="json"))

        # 3. A delay moves the departure, so the reminders move with it
        self._reschedule_reservation(stored.id)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def on_notification_fired(self, event: NotificationFired) -> None:
        self.scheduler.notification_fired(event.entity_key, event.handle_id)
        self._record(
            entity_id_for_key(event.entity_key),
            TimelineEntryType.REMINDER_FIRED,
            handle_id=event.handle_id,
            fired_at=event.fired_at.isoformat(),
        )
