"""Tests for today/tomorrow classification."""

from datetime import datetime, timezone

from dateutil import tz

from triptrack.domain.models import Reservation, ReservationType
from triptrack.services.days import date_label, is_today, is_tomorrow
from triptrack.services.resolver import DateResolver

_RESOLVER = DateResolver({"NRT": "+09:00"})
_LOS_ANGELES = tz.gettz("America/Los_Angeles")
_TOKYO = tz.gettz("Asia/Tokyo")
_UTC = timezone.utc


def _reservation(start_time: str, type_=ReservationType.FLIGHT, **details) -> Reservation:
    return Reservation(
        trip_id="trip-1",
        type=type_,
        title="Reservation",
        start_time=start_time,
        details=details,
    )


def test_event_timezone_today_while_device_is_still_yesterday():
    # 05:00 on the 15th in Tokyo, evening of the 14th in Los Angeles.
    now = datetime(2026, 3, 14, 20, 0, tzinfo=timezone.utc)
    res = _reservation("2026-03-15T08:00:00", **{"Departure Timezone": "+09:00"})
    assert is_today(res, now, _LOS_ANGELES, _RESOLVER) is True
    assert date_label(res, now, _LOS_ANGELES, _RESOLVER) == "Today"


def test_device_today_while_event_timezone_is_yesterday():
    # Still the 14th in Honolulu, already the 15th on a Tokyo device.
    now = datetime(2026, 3, 15, 3, 0, tzinfo=timezone.utc)
    res = _reservation(
        "2026-03-15T09:00:00", ReservationType.HOTEL, **{"Location Timezone": "-10:00"}
    )
    assert is_today(res, now, _TOKYO, _RESOLVER) is True
    assert is_today(res, now, _UTC, _RESOLVER) is True
    assert is_today(res, now, _LOS_ANGELES, _RESOLVER) is False


def test_date_comes_from_local_string_not_utc_form():
    now = datetime(2026, 3, 15, 1, 0, tzinfo=timezone.utc)
    res = _reservation(
        "2026-03-14T23:00:00Z",
        **{"Local Start Time": "2026-03-15T08:00:00", "Departure Timezone": "+09:00"},
    )
    assert is_today(res, now, _UTC, _RESOLVER) is True


def test_tomorrow_across_month_boundary():
    now = datetime(2026, 3, 31, 12, 0, tzinfo=timezone.utc)
    res = _reservation("2026-04-01T10:00:00", **{"Departure Timezone": "+00:00"})
    assert is_today(res, now, _UTC, _RESOLVER) is False
    assert is_tomorrow(res, now, _UTC, _RESOLVER) is True
    assert date_label(res, now, _UTC, _RESOLVER) == "Tomorrow"


def test_tomorrow_in_event_timezone():
    # 23:30 on the 14th in Tokyo; the event is on the 15th there.
    now = datetime(2026, 3, 14, 14, 30, tzinfo=timezone.utc)
    res = _reservation("2026-03-15T10:00:00", **{"Departure Airport": "NRT"})
    assert is_tomorrow(res, now, _LOS_ANGELES, _RESOLVER) is True


def test_unresolvable_location_uses_device_calendar():
    now = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)
    res = _reservation("2026-03-14T18:00:00", ReservationType.MEETING)
    assert is_today(res, now, _UTC, _RESOLVER) is True


def test_neither_today_nor_tomorrow_gets_short_date():
    now = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)
    res = _reservation("2026-03-20T09:00:00", **{"Departure Timezone": "+09:00"})
    assert is_today(res, now, _UTC, _RESOLVER) is False
    assert is_tomorrow(res, now, _UTC, _RESOLVER) is False
    assert date_label(res, now, _UTC, _RESOLVER) == "Fri, Mar 20"


def test_unparseable_start_is_never_today():
    now = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)
    res = _reservation("sometime soon", ReservationType.EVENT)
    assert is_today(res, now, _UTC, _RESOLVER) is False
    assert date_label(res, now, _UTC, _RESOLVER) == ""
