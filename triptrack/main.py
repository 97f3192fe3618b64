"""FastAPI application: entry point for the itinerary temporal service."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException

from triptrack.core import config
from triptrack.domain.bus import EventBus
from triptrack.domain.events import (
    FlightStatusRefreshed,
    NotificationFired,
    ReservationCreated,
    ReservationDeleted,
    ReservationUpdated,
    TripDeleted,
    TripSaved,
)
from triptrack.domain.handlers import HandlerRegistry
from triptrack.domain.models import (
    FLIGHT_STATUS_KEY,
    FlightRefreshResponse,
    FlightStatusSnapshot,
    ReminderSetView,
    Reservation,
    ReservationCreateRequest,
    ReservationStatusView,
    ReservationType,
    ReservationUpdateRequest,
    TimelineEntry,
    Trip,
    TripCreateRequest,
    TripStatus,
)
from triptrack.repos.json_store import JsonReminderHandleStore
from triptrack.repos.memory import (
    InMemoryReminderHandleStore,
    ReservationRepository,
    TimelineRepository,
    TripRepository,
)
from triptrack.services.changes import detect_changes
from triptrack.services.countdown import compose_countdown, compose_time_label
from triptrack.services.days import date_label, is_today, is_tomorrow
from triptrack.services.notifications import LocalNotificationCenter
from triptrack.services.phase import (
    expected_departure,
    flight_step,
    format_delay,
    infer_phase,
    phase_label,
)
from triptrack.services.polling import polling_interval
from triptrack.services.reminders import ReminderScheduler
from triptrack.services.resolver import DEFAULT_RESOLVER
from triptrack.services.trips import calculate_trip_status, effective_trip_status

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title=config.APP_NAME)

# ── Singletons (created at import time for simplicity) ────────────────
event_bus = EventBus()
trip_repo = TripRepository()
reservation_repo = ReservationRepository()
timeline_repo = TimelineRepository()
notification_center = LocalNotificationCenter()
handle_store = (
    JsonReminderHandleStore(config.REMINDER_STORE_PATH)
    if config.REMINDER_STORE_PATH
    else InMemoryReminderHandleStore()
)
logger.info("Reminder handles stored in %s", config.REMINDER_STORE_PATH or "memory")
reminder_scheduler = ReminderScheduler(notification_center, handle_store, DEFAULT_RESOLVER)

handler_registry = HandlerRegistry(
    bus=event_bus,
    trip_repo=trip_repo,
    reservation_repo=reservation_repo,
    timeline_repo=timeline_repo,
    scheduler=reminder_scheduler,
)


def _as_utc(value: datetime | None) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _get_trip(trip_id: str) -> Trip:
    trip = trip_repo.get(trip_id)
    if trip is None:
        raise HTTPException(status_code=404, detail="Trip not found")
    return trip


def _get_reservation(reservation_id: str) -> Reservation:
    reservation = reservation_repo.get(reservation_id)
    if reservation is None:
        raise HTTPException(status_code=404, detail="Reservation not found")
    return reservation


# ── Trips ─────────────────────────────────────────────────────────────


@app.post("/trips", response_model=Trip, status_code=201)
def create_trip(payload: TripCreateRequest) -> Trip:
    """Create a trip and schedule its trip-level reminders."""
    trip = Trip(
        **payload.model_dump(),
        status=calculate_trip_status(payload.start_date, payload.end_date),
    )
    trip_repo.add(trip)
    event_bus.publish(TripSaved(trip_id=trip.id))
    return trip


@app.get("/trips/{trip_id}", response_model=Trip)
def get_trip(trip_id: str) -> Trip:
    return _get_trip(trip_id)


@app.delete("/trips/{trip_id}", status_code=204)
def delete_trip(trip_id: str) -> None:
    """Delete a trip with its reservations; reminders are cancelled first."""
    _get_trip(trip_id)
    event_bus.publish(TripDeleted(trip_id=trip_id))


@app.get("/trips/{trip_id}/status")
def trip_status(trip_id: str, now: datetime | None = None) -> dict:
    trip = _get_trip(trip_id)
    status: TripStatus = effective_trip_status(
        trip, reservation_repo.list_for_trip(trip_id), _as_utc(now).date()
    )
    return {"trip_id": trip_id, "status": status}


# ── Reservations ──────────────────────────────────────────────────────


@app.post("/reservations", response_model=Reservation, status_code=201)
def create_reservation(payload: ReservationCreateRequest) -> Reservation:
    _get_trip(payload.trip_id)
    reservation = Reservation(**payload.model_dump())
    reservation_repo.add(reservation)

    # Publish to the event bus, which schedules reminders and records the timeline.
    event_bus.publish(ReservationCreated(reservation_id=reservation.id))
    return reservation


@app.get("/reservations/{reservation_id}", response_model=Reservation)
def get_reservation(reservation_id: str) -> Reservation:
    return _get_reservation(reservation_id)


@app.put("/reservations/{reservation_id}", response_model=Reservation)
def update_reservation(reservation_id: str, payload: ReservationUpdateRequest) -> Reservation:
    """Apply a partial update; reminders follow the new times."""
    reservation = _get_reservation(reservation_id)
    updates = payload.model_dump(exclude_unset=True)

    if "details" in updates:
        details = dict(updates["details"] or {})
        # The live snapshot belongs to the refresh flow, not to edits.
        if FLIGHT_STATUS_KEY in reservation.details and FLIGHT_STATUS_KEY not in details:
            details[FLIGHT_STATUS_KEY] = reservation.details[FLIGHT_STATUS_KEY]
        updates["details"] = details

    for field, value in updates.items():
        setattr(reservation, field, value)
    reservation.updated_at = datetime.now(timezone.utc)

    event_bus.publish(
        ReservationUpdated(reservation_id=reservation.id, changed_fields=sorted(updates))
    )
    return reservation


@app.delete("/reservations/{reservation_id}", status_code=204)
def delete_reservation(reservation_id: str) -> None:
    _get_reservation(reservation_id)
    event_bus.publish(ReservationDeleted(reservation_id=reservation_id))


@app.post("/reservations/{reservation_id}/flight-status", response_model=FlightRefreshResponse)
def refresh_flight_status(
    reservation_id: str, snapshot: FlightStatusSnapshot
) -> FlightRefreshResponse:
    """Accept a live snapshot from the refresh collaborator."""
    reservation = _get_reservation(reservation_id)
    if reservation.type != ReservationType.FLIGHT:
        raise HTTPException(
            status_code=400,
            detail=f"Flight status is not supported for {reservation.type} reservations",
        )

    changes = detect_changes(reservation.flight_status, snapshot)
    event_bus.publish(
        FlightStatusRefreshed(reservation_id=reservation.id, snapshot=snapshot, changes=changes)
    )
    return FlightRefreshResponse(
        reservation_id=reservation.id,
        phase=infer_phase(snapshot),
        changes=changes,
    )


@app.get("/reservations/{reservation_id}/status", response_model=ReservationStatusView)
def reservation_status(reservation_id: str, now: datetime | None = None) -> ReservationStatusView:
    """Everything a card needs to render the reservation at *now*."""
    reservation = _get_reservation(reservation_id)
    current_time = _as_utc(now)
    snapshot = reservation.flight_status

    view = ReservationStatusView(
        reservation_id=reservation.id,
        countdown=compose_countdown(reservation, snapshot, current_time, DEFAULT_RESOLVER),
        time_label=compose_time_label(reservation, snapshot, current_time, DEFAULT_RESOLVER),
        is_today=is_today(reservation, current_time, resolver=DEFAULT_RESOLVER),
        is_tomorrow=is_tomorrow(reservation, current_time, resolver=DEFAULT_RESOLVER),
        date_label=date_label(reservation, current_time, resolver=DEFAULT_RESOLVER),
    )
    if reservation.type != ReservationType.FLIGHT:
        return view

    view.duration = DEFAULT_RESOLVER.flight_duration(reservation)
    departure = None
    phase = None
    if snapshot is not None:
        phase = infer_phase(snapshot, current_time, DEFAULT_RESOLVER)
        view.phase = phase
        view.phase_label = phase_label(phase)
        view.flight_step = flight_step(snapshot, current_time, DEFAULT_RESOLVER).value
        view.delay_label = format_delay(snapshot.dep_delay)
        departure = expected_departure(snapshot, current_time, DEFAULT_RESOLVER)
    if departure is None:
        departure = DEFAULT_RESOLVER.reservation_start(reservation, current_time).instant

    end = DEFAULT_RESOLVER.reservation_end(reservation, current_time)
    arrival = end.instant if end is not None and end.is_confident else None
    interval = polling_interval(departure, phase, arrival, current_time)
    view.polling_interval_seconds = int(interval.total_seconds()) if interval else None
    return view


@app.get("/reservations/{reservation_id}/reminders", response_model=ReminderSetView)
def reservation_reminders(reservation_id: str) -> ReminderSetView:
    _get_reservation(reservation_id)
    handle_ids = reminder_scheduler.handles_for(reservation_id)
    return ReminderSetView(
        entity_id=reservation_id,
        handle_ids=handle_ids,
        pending=notification_center.pending_for(handle_ids),
    )


@app.get("/reservations/{reservation_id}/timeline", response_model=list[TimelineEntry])
def reservation_timeline(reservation_id: str) -> list[TimelineEntry]:
    _get_reservation(reservation_id)
    return timeline_repo.list_for_entity(reservation_id)


# ── Clock ─────────────────────────────────────────────────────────────


@app.post("/tick")
def tick(now: datetime | None = None) -> dict:
    """Advance simulated time and fire any due reminders.

    Pass *now* as a query param to control the simulated clock.
    Defaults to ``datetime.now(timezone.utc)`` when omitted.
    """
    current_time = _as_utc(now)
    fired: list[str] = []
    for notification in notification_center.list_due(current_time):
        notification_center.fire(notification.id)
        entity_key = notification.data.get("entity_key")
        if entity_key:
            event_bus.publish(
                NotificationFired(
                    entity_key=entity_key,
                    handle_id=notification.id,
                    fired_at=current_time,
                )
            )
        fired.append(notification.id)

    return {"time": current_time.isoformat(), "reminders_fired": fired}
