"""Tests for reminder planning and cancel-then-create scheduling."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest

from triptrack.domain.models import (
    FLIGHT_STATUS_KEY,
    FlightStatusSnapshot,
    Reservation,
    ReservationStatus,
    ReservationType,
    Trip,
)
from triptrack.repos.json_store import JsonReminderHandleStore
from triptrack.repos.memory import InMemoryReminderHandleStore
from triptrack.services.notifications import LocalNotificationCenter
from triptrack.services.reminders import (
    ReminderScheduler,
    plan_reservation_reminders,
    plan_trip_reminders,
    trip_key,
)
from triptrack.services.resolver import DateResolver

_NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)
_RESOLVER = DateResolver({"NRT": "+09:00"})


def _reservation(
    type_=ReservationType.FLIGHT, start_time="2026-03-16T12:00:00", **overrides
) -> Reservation:
    defaults = dict(
        trip_id="trip-1",
        type=type_,
        title="JL 1",
        start_time=start_time,
        details={"Departure Timezone": "+00:00", "Location Timezone": "+00:00"},
    )
    defaults.update(overrides)
    return Reservation(**defaults)


@pytest.fixture()
def center():
    return LocalNotificationCenter()


@pytest.fixture()
def store():
    return InMemoryReminderHandleStore()


@pytest.fixture()
def scheduler(center, store):
    return ReminderScheduler(center, store, _RESOLVER)


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


def test_flight_plan_is_24h_and_3h_before():
    plan = plan_reservation_reminders(_reservation(), _NOW, _RESOLVER)
    assert [p.hours_before for p in plan] == [24, 3]
    assert plan[0].trigger_at == datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)
    assert plan[1].trigger_at == datetime(2026, 3, 16, 9, 0, tzinfo=timezone.utc)
    assert plan[1].title == "✈️ Flight in 3 Hours"
    assert plan[1].data["reservation_id"]


@pytest.mark.parametrize(
    "type_, hours",
    [
        (ReservationType.HOTEL, [4]),
        (ReservationType.CAR, [2]),
        (ReservationType.TRAIN, [2]),
        (ReservationType.MEETING, [1]),
        (ReservationType.EVENT, [1]),
    ],
)
def test_per_type_plans(type_, hours):
    plan = plan_reservation_reminders(_reservation(type_), _NOW, _RESOLVER)
    assert [p.hours_before for p in plan] == hours


def test_live_delay_shifts_flight_reminders():
    snap = FlightStatusSnapshot(
        flight_iata="JL1", dep_scheduled_utc="2026-03-16T12:00:00Z", dep_delay=60
    )
    res = _reservation(
        details={"Departure Timezone": "+00:00", FLIGHT_STATUS_KEY: snap.model_dump(mode="json")}
    )
    plan = plan_reservation_reminders(res, _NOW, _RESOLVER)
    assert plan[1].trigger_at == datetime(2026, 3, 16, 10, 0, tzinfo=timezone.utc)


def test_only_future_triggers_are_planned():
    plan = plan_reservation_reminders(
        _reservation(start_time="2026-03-14T22:00:00"), _NOW, _RESOLVER
    )
    assert [p.hours_before for p in plan] == [3]


def test_past_start_gives_empty_plan():
    res = _reservation(start_time="2026-03-14T11:00:00")
    assert plan_reservation_reminders(res, _NOW, _RESOLVER) == []


def test_cancelled_reservation_gets_no_reminders():
    res = _reservation(status=ReservationStatus.CANCELLED)
    assert plan_reservation_reminders(res, _NOW, _RESOLVER) == []


def test_trip_plan():
    trip = Trip(name="Japan", start_date="2026-03-20", end_date="2026-03-28")
    plan = plan_trip_reminders(trip, _NOW, _RESOLVER)
    assert [p.title for p in plan] == ["🧳 Trip Tomorrow!", "🧳 Trip Starting Soon"]
    assert plan[0].body == "Japan starts tomorrow. Ready to go?"
    assert plan[0].data["entity_key"] == trip_key(trip.id) == f"trip_{trip.id}"


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


def test_reschedule_twice_leaves_one_set(scheduler, center, store):
    res = _reservation()
    first = scheduler.reschedule_reservation(res, _NOW)
    second = scheduler.reschedule_reservation(res, _NOW)

    assert len(first) == len(second) == 2
    assert set(first).isdisjoint(second)
    assert store.get(res.id) == second
    assert [n.id for n in center.list_due(datetime.max.replace(tzinfo=timezone.utc))] == second


def test_empty_plan_removes_key(scheduler, center, store):
    res = _reservation()
    scheduler.reschedule_reservation(res, _NOW)
    res.start_time = "2026-03-14T11:00:00"

    assert scheduler.reschedule_reservation(res, _NOW) == []
    assert res.id not in store.keys()
    assert center.list_due(datetime.max.replace(tzinfo=timezone.utc)) == []


def test_already_fired_handle_is_not_an_error(scheduler, center, store):
    res = _reservation()
    first = scheduler.reschedule_reservation(res, _NOW)
    center.fire(first[0])

    second = scheduler.reschedule_reservation(res, _NOW)
    assert len(second) == 2
    assert center.get(first[1]) is None


def test_cancel_reservation_before_delete(scheduler, center, store):
    res = _reservation()
    handles = scheduler.reschedule_reservation(res, _NOW)

    assert scheduler.cancel_reservation(res.id) == 2
    assert store.get(res.id) == []
    assert center.pending_for(handles) == []


def test_trip_reminders_use_prefixed_key(scheduler, store):
    trip = Trip(name="Japan", start_date="2026-03-20", end_date="2026-03-28")
    handles = scheduler.reschedule_trip(trip, _NOW)
    assert store.get(f"trip_{trip.id}") == handles
    assert scheduler.cancel_trip(trip.id) == 2


def test_notification_fired_drops_single_handle(scheduler, store):
    res = _reservation()
    handles = scheduler.reschedule_reservation(res, _NOW)
    scheduler.notification_fired(res.id, handles[0])
    assert store.get(res.id) == handles[1:]


class _FlakyCenter(LocalNotificationCenter):
    """Fails the first schedule call and every cancel."""

    def __init__(self) -> None:
        super().__init__()
        self.calls = 0

    def schedule(self, title, body, trigger_at, data=None):
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("scheduler unavailable")
        return super().schedule(title, body, trigger_at, data)

    def cancel(self, handle):
        raise RuntimeError("cancel failed")


def test_partial_failures_are_logged_and_skipped(store, caplog):
    flaky = _FlakyCenter()
    scheduler = ReminderScheduler(flaky, store, _RESOLVER)
    res = _reservation()

    handles = scheduler.reschedule_reservation(res, _NOW)
    assert len(handles) == 1

    again = scheduler.reschedule_reservation(res, _NOW)
    assert len(again) == 2
    assert store.get(res.id) == again
    assert "Failed to schedule" in caplog.text
    assert "Failed to cancel" in caplog.text


class _FullDiskStore(InMemoryReminderHandleStore):
    """Accepts clears but refuses to record new handle ids."""

    def put(self, key, handle_ids):
        if handle_ids:
            raise OSError("disk full")
        super().put(key, handle_ids)


def test_store_failure_withdraws_new_reminders(center, caplog):
    store = _FullDiskStore()
    scheduler = ReminderScheduler(center, store, _RESOLVER)

    assert scheduler.reschedule_reservation(_reservation(), _NOW) == []
    assert center.list_due(datetime.max.replace(tzinfo=timezone.utc)) == []
    assert "Failed to store reminder ids" in caplog.text


def test_unwritable_json_store_does_not_raise(tmp_path, center):
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    store = JsonReminderHandleStore(blocker / "reminders.json")
    scheduler = ReminderScheduler(center, store, _RESOLVER)

    assert scheduler.reschedule_reservation(_reservation(), _NOW) == []
    assert center.list_due(datetime.max.replace(tzinfo=timezone.utc)) == []


def test_cancel_releases_entity_lock(scheduler):
    res = _reservation()
    scheduler.reschedule_reservation(res, _NOW)
    assert res.id in scheduler._locks

    scheduler.cancel_reservation(res.id)
    assert res.id not in scheduler._locks


def test_concurrent_reschedules_do_not_orphan_handles(scheduler, center, store):
    res = _reservation()
    threads = [
        threading.Thread(target=scheduler.reschedule_reservation, args=(res, _NOW))
        for _ in range(8)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    pending = center.list_due(datetime.max.replace(tzinfo=timezone.utc))
    assert sorted(n.id for n in pending) == sorted(store.get(res.id))
    assert len(pending) == 2


# ---------------------------------------------------------------------------
# Persistent handle store
# ---------------------------------------------------------------------------


def test_json_store_survives_restart(tmp_path):
    path = tmp_path / "reminders.json"
    JsonReminderHandleStore(path).put("res-1", ["a", "b"])

    reopened = JsonReminderHandleStore(path)
    assert reopened.get("res-1") == ["a", "b"]

    reopened.remove_handle("res-1", "a")
    reopened.remove_handle("res-1", "b")
    assert JsonReminderHandleStore(path).keys() == []


def test_json_store_ignores_unreadable_file(tmp_path):
    path = tmp_path / "reminders.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonReminderHandleStore(path)
    assert store.get("res-1") == []
    store.put("res-1", ["x"])
    assert store.get("res-1") == ["x"]


def test_scheduler_with_json_store(tmp_path, center):
    path = tmp_path / "reminders.json"
    scheduler = ReminderScheduler(center, JsonReminderHandleStore(path), _RESOLVER)
    res = _reservation()
    handles = scheduler.reschedule_reservation(res, _NOW)

    restarted = ReminderScheduler(center, JsonReminderHandleStore(path), _RESOLVER)
    assert restarted.handles_for(res.id) == handles
    assert restarted.cancel_reservation(res.id) == 2
    assert center.pending_for(handles) == []


def test_scheduled_triggers_match_plan(scheduler, center):
    res = _reservation()
    handles = scheduler.reschedule_reservation(res, _NOW)
    triggers = [center.get(h).trigger_at for h in handles]
    start = datetime(2026, 3, 16, 12, 0, tzinfo=timezone.utc)
    assert triggers == [start - timedelta(hours=24), start - timedelta(hours=3)]
