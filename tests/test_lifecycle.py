"""Tests for the event bus lifecycle: handlers, reminders, timeline."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

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
from triptrack.domain.handlers import HandlerRegistry, entity_id_for_key
from triptrack.domain.models import (
    FlightStatusSnapshot,
    Reservation,
    ReservationType,
    TimelineEntryType,
    Trip,
)
from triptrack.repos.memory import (
    InMemoryReminderHandleStore,
    ReservationRepository,
    TimelineRepository,
    TripRepository,
)
from triptrack.services.changes import detect_changes
from triptrack.services.notifications import LocalNotificationCenter
from triptrack.services.reminders import ReminderScheduler
from triptrack.services.resolver import DateResolver

_NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)
_FAR = datetime(2100, 1, 1, tzinfo=timezone.utc)


@pytest.fixture()
def env():
    """Fresh bus + repos + registry for each test."""
    bus = EventBus()
    trip_repo = TripRepository()
    reservation_repo = ReservationRepository()
    timeline_repo = TimelineRepository()
    center = LocalNotificationCenter()
    store = InMemoryReminderHandleStore()
    scheduler = ReminderScheduler(center, store, DateResolver({"NRT": "+09:00", "QQX": "+05:00"}))

    registry = HandlerRegistry(
        bus=bus,
        trip_repo=trip_repo,
        reservation_repo=reservation_repo,
        timeline_repo=timeline_repo,
        scheduler=scheduler,
        clock=lambda: _NOW,
    )

    class Env:
        pass

    e = Env()
    e.bus = bus
    e.trip_repo = trip_repo
    e.reservation_repo = reservation_repo
    e.timeline_repo = timeline_repo
    e.center = center
    e.store = store
    e.registry = registry
    return e


def _make_flight(**overrides) -> Reservation:
    defaults = dict(
        trip_id="trip-1",
        type=ReservationType.FLIGHT,
        title="JL 1",
        start_time="2026-06-03T21:00:00",
        details={"Departure Airport": "NRT"},
    )
    defaults.update(overrides)
    return Reservation(**defaults)


def _timeline_types(env, entity_id: str) -> list[TimelineEntryType]:
    return [e.type for e in env.timeline_repo.list_for_entity(entity_id)]


# ---------------------------------------------------------------------------
# Reservations
# ---------------------------------------------------------------------------


def test_reservation_created_schedules_reminders(env):
    flight = _make_flight()
    env.reservation_repo.add(flight)
    announced = []
    env.bus.subscribe(RemindersScheduled, announced.append)

    env.bus.publish(ReservationCreated(reservation_id=flight.id))

    handles = env.store.get(flight.id)
    assert len(handles) == 2
    assert announced[0].handle_ids == handles
    assert _timeline_types(env, flight.id) == [
        TimelineEntryType.CREATED,
        TimelineEntryType.REMINDERS_SCHEDULED,
    ]


def test_reservation_updated_moves_reminders(env):
    flight = _make_flight()
    env.reservation_repo.add(flight)
    env.bus.publish(ReservationCreated(reservation_id=flight.id))
    old_handles = env.store.get(flight.id)

    flight.start_time = "2026-06-04T21:00:00"
    env.bus.publish(ReservationUpdated(reservation_id=flight.id, changed_fields=["start_time"]))

    new_handles = env.store.get(flight.id)
    assert env.center.pending_for(old_handles) == []
    triggers = [n.trigger_at for n in env.center.pending_for(new_handles)]
    assert triggers[-1] == datetime(2026, 6, 4, 9, 0, tzinfo=timezone.utc)


def test_reservation_deleted_cancels_then_deletes(env):
    flight = _make_flight()
    env.reservation_repo.add(flight)
    env.bus.publish(ReservationCreated(reservation_id=flight.id))

    env.bus.publish(ReservationDeleted(reservation_id=flight.id))

    assert env.reservation_repo.get(flight.id) is None
    assert env.store.get(flight.id) == []
    assert env.center.list_due(_FAR) == []
    assert _timeline_types(env, flight.id)[-1] == TimelineEntryType.REMINDERS_CANCELLED


def test_missing_reservation_is_ignored(env):
    env.bus.publish(ReservationCreated(reservation_id="nope"))
    assert env.store.keys() == []


# ---------------------------------------------------------------------------
# Flight status refresh
# ---------------------------------------------------------------------------


def test_flight_refresh_replaces_snapshot_and_shifts_reminders(env):
    flight = _make_flight()
    env.reservation_repo.add(flight)
    env.bus.publish(ReservationCreated(reservation_id=flight.id))

    first = FlightStatusSnapshot(
        flight_iata="JL1", dep_iata="NRT", dep_scheduled="2026-06-03T21:00:00"
    )
    env.bus.publish(FlightStatusRefreshed(reservation_id=flight.id, snapshot=first))

    delayed = first.model_copy(update={"dep_delay": 90, "dep_gate": "71"})
    changes = detect_changes(flight.flight_status, delayed)
    env.bus.publish(
        FlightStatusRefreshed(reservation_id=flight.id, snapshot=delayed, changes=changes)
    )

    assert flight.flight_status.dep_delay == 90
    triggers = [n.trigger_at for n in env.center.pending_for(env.store.get(flight.id))]
    assert triggers[-1] == datetime(2026, 6, 3, 10, 30, tzinfo=timezone.utc)

    entries = env.timeline_repo.list_for_entity(flight.id)
    change_entries = [e for e in entries if e.type == TimelineEntryType.FLIGHT_CHANGE]
    assert {e.payload["type"] for e in change_entries} == {"gate_change", "delay_change"}
    assert sum(e.type == TimelineEntryType.FLIGHT_STATUS_REFRESHED for e in entries) == 2


def test_refresh_phase_uses_injected_airport_table(env):
    flight = _make_flight()
    env.reservation_repo.add(flight)

    # 18:00 at QQX (+05:00) is 13:00Z the day before: 23h airborne, no arrival.
    snapshot = FlightStatusSnapshot(
        flight_iata="QQ1",
        dep_iata="QQX",
        dep_scheduled="2026-05-31T17:00:00",
        dep_actual="2026-05-31T18:00:00",
        flight_status="active",
    )
    env.bus.publish(FlightStatusRefreshed(reservation_id=flight.id, snapshot=snapshot))

    (entry,) = [
        e
        for e in env.timeline_repo.list_for_entity(flight.id)
        if e.type == TimelineEntryType.FLIGHT_STATUS_REFRESHED
    ]
    assert entry.payload["phase"] == "unknown"


# ---------------------------------------------------------------------------
# Trips
# ---------------------------------------------------------------------------


def test_trip_saved_schedules_trip_reminders(env):
    trip = Trip(name="Japan", start_date="2026-06-10", end_date="2026-06-20")
    env.trip_repo.add(trip)

    env.bus.publish(TripSaved(trip_id=trip.id))

    assert len(env.store.get(f"trip_{trip.id}")) == 2


def test_trip_deleted_cascades_to_reservations(env):
    trip = Trip(id="trip-1", name="Japan", start_date="2026-06-10", end_date="2026-06-20")
    env.trip_repo.add(trip)
    env.bus.publish(TripSaved(trip_id=trip.id))
    flight = _make_flight()
    env.reservation_repo.add(flight)
    env.bus.publish(ReservationCreated(reservation_id=flight.id))

    env.bus.publish(TripDeleted(trip_id=trip.id))

    assert env.trip_repo.get(trip.id) is None
    assert env.reservation_repo.get(flight.id) is None
    assert env.store.keys() == []
    assert env.center.list_due(_FAR) == []


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


def test_notification_fired_drops_handle_and_records(env):
    flight = _make_flight()
    env.reservation_repo.add(flight)
    env.bus.publish(ReservationCreated(reservation_id=flight.id))
    first, second = env.store.get(flight.id)

    env.center.fire(first)
    env.bus.publish(NotificationFired(entity_key=flight.id, handle_id=first, fired_at=_NOW))

    assert env.store.get(flight.id) == [second]
    assert _timeline_types(env, flight.id)[-1] == TimelineEntryType.REMINDER_FIRED


def test_nested_publish_runs_depth_first():
    bus = EventBus()
    seen = []

    def on_trip_deleted(event):
        seen.append(("trip", event.trip_id))
        bus.subscribe(TripDeleted, lambda e: seen.append(("late", e.trip_id)))
        bus.publish(ReservationDeleted(reservation_id="res-1"))
        seen.append(("trip-done", event.trip_id))

    bus.subscribe(TripDeleted, on_trip_deleted)
    bus.subscribe(ReservationDeleted, lambda e: seen.append(("res", e.reservation_id)))

    bus.publish(TripDeleted(trip_id="t1"))
    assert seen == [("trip", "t1"), ("res", "res-1"), ("trip-done", "t1")]


def test_entity_id_for_key():
    assert entity_id_for_key("trip_abc") == "abc"
    assert entity_id_for_key("res-1") == "res-1"
