"""Service for deciding whether a reservation falls today or tomorrow.

The event's date always comes from its location-local start string. That
date is compared both against the calendar at the event's location and
against the device calendar; a match on either counts, so a traveller
looking at tomorrow's early flight from across the date line still sees it
as "Today" when it is today where the flight leaves.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo

from dateutil import tz

from triptrack.core import config
from triptrack.domain.models import Reservation
from triptrack.services.resolver import DEFAULT_RESOLVER, DateResolver, extract_local_date


def device_zone() -> tzinfo:
    if config.DEVICE_TIMEZONE:
        zone = tz.gettz(config.DEVICE_TIMEZONE)
        if zone is not None:
            return zone
    return tz.tzlocal()


def _event_date(reservation: Reservation, resolver: DateResolver) -> date | None:
    return extract_local_date(resolver.local_time_iso(reservation, "start"))


def _calendars(
    reservation: Reservation,
    now: datetime,
    device_tz: tzinfo,
    resolver: DateResolver,
) -> tuple[date | None, date]:
    """(today at the event's location, today on the device)."""
    location = resolver.reservation_timezone(reservation)
    event_today = resolver.local_date(location, now) if location else None
    return event_today, now.astimezone(device_tz).date()


def _matches(
    reservation: Reservation,
    days_ahead: int,
    now: datetime | None,
    device_tz: tzinfo | None,
    resolver: DateResolver | None,
) -> bool:
    now = now or datetime.now(timezone.utc)
    resolver = resolver or DEFAULT_RESOLVER
    device_tz = device_tz or device_zone()

    event_date = _event_date(reservation, resolver)
    if event_date is None:
        return False

    shift = timedelta(days=days_ahead)
    event_today, device_today = _calendars(reservation, now, device_tz, resolver)
    if event_today is not None and event_date == event_today + shift:
        return True
    return event_date == device_today + shift


def is_today(
    reservation: Reservation,
    now: datetime | None = None,
    device_tz: tzinfo | None = None,
    resolver: DateResolver | None = None,
) -> bool:
    return _matches(reservation, 0, now, device_tz, resolver)


def is_tomorrow(
    reservation: Reservation,
    now: datetime | None = None,
    device_tz: tzinfo | None = None,
    resolver: DateResolver | None = None,
) -> bool:
    return _matches(reservation, 1, now, device_tz, resolver)


def date_label(
    reservation: Reservation,
    now: datetime | None = None,
    device_tz: tzinfo | None = None,
    resolver: DateResolver | None = None,
) -> str:
    """``"Today"``, ``"Tomorrow"``, or a short date like ``"Sat, Mar 14"``."""
    if is_today(reservation, now, device_tz, resolver):
        return "Today"
    if is_tomorrow(reservation, now, device_tz, resolver):
        return "Tomorrow"
    event_date = _event_date(reservation, resolver or DEFAULT_RESOLVER)
    if event_date is None:
        return ""
    return f"{event_date:%a, %b} {event_date.day}"
