"""Tests for trip status calculation."""

from datetime import date

from triptrack.domain.models import Reservation, ReservationStatus, ReservationType, Trip, TripStatus
from triptrack.services.trips import calculate_trip_status, effective_trip_status

_TODAY = date(2026, 3, 14)


def test_status_by_date():
    assert calculate_trip_status("2026-03-20", "2026-03-28", _TODAY) == TripStatus.UPCOMING
    assert calculate_trip_status("2026-03-14", "2026-03-14", _TODAY) == TripStatus.ACTIVE
    assert calculate_trip_status("2026-03-01", "2026-03-13", _TODAY) == TripStatus.COMPLETED


def test_timestamptz_dates_do_not_shift():
    status = calculate_trip_status("2026-03-15T00:00:00+00:00", "2026-03-20T00:00:00+00:00", _TODAY)
    assert status == TripStatus.UPCOMING


def _reservation(status: ReservationStatus) -> Reservation:
    return Reservation(
        trip_id="trip-1",
        type=ReservationType.HOTEL,
        title="Inn",
        start_time="2026-03-20T15:00:00",
        status=status,
    )


def test_all_cancelled_reservations_complete_the_trip():
    trip = Trip(name="Japan", start_date="2026-03-20", end_date="2026-03-28")
    cancelled = [_reservation(ReservationStatus.CANCELLED)] * 2
    mixed = [_reservation(ReservationStatus.CANCELLED), _reservation(ReservationStatus.CONFIRMED)]

    assert effective_trip_status(trip, cancelled, _TODAY) == TripStatus.COMPLETED
    assert effective_trip_status(trip, mixed, _TODAY) == TripStatus.UPCOMING
    assert effective_trip_status(trip, [], _TODAY) == TripStatus.UPCOMING
