"""Service for date-driven trip status."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, timezone

from triptrack.domain.models import Reservation, ReservationStatus, Trip, TripStatus
from triptrack.services.resolver import extract_local_date


def calculate_trip_status(
    start_date: str, end_date: str, today: date | None = None
) -> TripStatus:
    """Compare date-only values, so ``"2026-02-12T00:00:00+00:00"`` never shifts a day."""
    today = today or datetime.now(timezone.utc).date()
    start = extract_local_date(start_date)
    end = extract_local_date(end_date) or start
    if start is None:
        return TripStatus.UPCOMING
    if today < start:
        return TripStatus.UPCOMING
    if today <= end:
        return TripStatus.ACTIVE
    return TripStatus.COMPLETED


def effective_trip_status(
    trip: Trip, reservations: Iterable[Reservation], today: date | None = None
) -> TripStatus:
    """Date-based status, except a trip whose every reservation is cancelled is over."""
    status = calculate_trip_status(trip.start_date, trip.end_date, today)
    if status == TripStatus.COMPLETED:
        return status
    reservations = list(reservations)
    if reservations and all(r.status == ReservationStatus.CANCELLED for r in reservations):
        return TripStatus.COMPLETED
    return status
