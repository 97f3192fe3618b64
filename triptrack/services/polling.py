"""Tiered polling cadence for live flight tracking.

- more than 24h out: every 6 hours
- 4-24h out: every hour
- 1-4h out: every 15 minutes
- boarding window through landing: every 5 minutes
- landed / cancelled / incident: stop
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from triptrack.domain.models import FlightPhase, Reservation, ReservationType, ResolutionSource
from triptrack.services.phase import expected_departure, infer_phase
from triptrack.services.resolver import DEFAULT_RESOLVER, DateResolver

STOP_PHASES = frozenset({FlightPhase.LANDED, FlightPhase.CANCELLED, FlightPhase.INCIDENT})
POST_ARRIVAL_CUTOFF = timedelta(hours=2)
BAGGAGE_INTERVAL = timedelta(minutes=5)

_TIERS = (
    (timedelta(hours=1), timedelta(minutes=5)),
    (timedelta(hours=4), timedelta(minutes=15)),
    (timedelta(hours=24), timedelta(hours=1)),
)
_FAR_OUT = timedelta(hours=6)
_IN_PROGRESS = timedelta(minutes=5)


def polling_interval(
    departure: datetime,
    phase: FlightPhase | None = None,
    arrival: datetime | None = None,
    now: datetime | None = None,
) -> timedelta | None:
    """How long to wait before the next status check, or None to stop."""
    now = now or datetime.now(timezone.utc)

    if phase in STOP_PHASES:
        return None
    if arrival is not None and now - arrival > POST_ARRIVAL_CUTOFF:
        return None

    until_departure = departure - now
    if phase == FlightPhase.ACTIVE or until_departure < timedelta(0):
        return _IN_PROGRESS
    for ceiling, interval in _TIERS:
        if until_departure <= ceiling:
            return interval
    return _FAR_OUT


def _landed_at(snapshot, now: datetime, resolver: DateResolver) -> datetime:
    if snapshot.arr_actual:
        resolved = resolver.resolve(snapshot.arr_actual, location_code=snapshot.arr_iata, now=now)
        if resolved.source != ResolutionSource.FALLBACK_NOW:
            return resolved.instant
    return snapshot.last_checked


def should_check_now(
    reservation: Reservation,
    now: datetime | None = None,
    resolver: DateResolver | None = None,
) -> bool:
    """Whether a fan-out refresh should query the provider for *reservation*.

    Landed flights get a few extra 5-minute checks until the baggage
    carousel shows up, then stop.
    """
    if reservation.type != ReservationType.FLIGHT:
        return False
    now = now or datetime.now(timezone.utc)
    resolver = resolver or DEFAULT_RESOLVER

    snapshot = reservation.flight_status
    if snapshot is None:
        return True

    phase = infer_phase(snapshot, now, resolver)
    since_check = now - snapshot.last_checked

    if phase == FlightPhase.LANDED:
        if snapshot.arr_baggage:
            return False
        if now - _landed_at(snapshot, now, resolver) > POST_ARRIVAL_CUTOFF:
            return False
        return since_check >= BAGGAGE_INTERVAL

    departure = expected_departure(snapshot, now, resolver)
    if departure is None:
        departure = resolver.reservation_start(reservation, now).instant
    end = resolver.reservation_end(reservation, now)
    arrival = end.instant if end is not None and end.is_confident else None

    interval = polling_interval(departure, phase, arrival, now)
    if interval is None:
        return False
    return since_check >= interval
