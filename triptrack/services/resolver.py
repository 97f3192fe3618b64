"""Service for turning location-local timestamps into UTC instants.

Reservation times are recorded as wall-clock time at the event's location.
Resolution order for a timestamp:

1. a zulu suffix or numeric offset inside the string itself;
2. an explicit ``"+HH:MM"`` offset supplied by the caller;
3. the timezone of a location code found in the injected airport table;
4. the naive string read as UTC (best effort for legacy data).

Nothing here raises on bad input: a string that cannot be parsed at all
resolves to ``now`` and is tagged ``fallback_now``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from datetime import date, datetime, timedelta, timezone, tzinfo

import dateparser
from dateutil import tz
from dateutil.parser import isoparse

from triptrack.domain.models import (
    ARRIVAL_AIRPORT,
    ARRIVAL_TZ,
    DEPARTURE_AIRPORT,
    DEPARTURE_TZ,
    LOCAL_END_TIME,
    LOCAL_START_TIME,
    LOCATION_CODE,
    LOCATION_TZ,
    Reservation,
    ReservationType,
    Resolution,
    ResolutionSource,
)
from triptrack.services.airports import AIRPORT_ZONES, extract_airport_code

logger = logging.getLogger(__name__)

_OFFSET_RE = re.compile(r"^([+-])(\d{1,2}):?(\d{2})$")
_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_SPACE_SEPARATOR_RE = re.compile(r"^(\d{4}-\d{2}-\d{2}) +(?=\d)")
_EXTRA_FRACTION_RE = re.compile(r"(\.\d{6})\d+")

# Naive differences above this are treated as timezone artifacts.
_MAX_NAIVE_DURATION = timedelta(hours=30)


def parse_offset(value: str | None) -> int | None:
    """Parse ``"+09:00"`` / ``"-0530"`` into signed minutes, or None."""
    if not value or not isinstance(value, str):
        return None
    match = _OFFSET_RE.match(value.strip())
    if not match:
        return None
    sign = 1 if match.group(1) == "+" else -1
    hours, minutes = int(match.group(2)), int(match.group(3))
    if hours > 14 or minutes >= 60:
        return None
    return sign * (hours * 60 + minutes)


def normalize_timestamp(raw: str | None) -> str:
    """Tidy up storage quirks before parsing.

    ``"2026-02-12 10:10:00.000000123"`` -> ``"2026-02-12T10:10:00.000000"``
    """
    if not raw or not isinstance(raw, str):
        return ""
    text = raw.strip()
    text = _SPACE_SEPARATOR_RE.sub(r"\1T", text)
    return _EXTRA_FRACTION_RE.sub(r"\1", text)


def extract_local_date(text: str | None) -> date | None:
    """Read the ``YYYY-MM-DD`` prefix verbatim, with no timezone conversion."""
    if not text or not isinstance(text, str):
        return None
    match = _DATE_RE.match(text.strip())
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


def _detail(reservation: Reservation, key: str) -> str | None:
    value = (reservation.details or {}).get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _format_duration(total_minutes: int) -> str:
    hours, mins = divmod(total_minutes, 60)
    if hours > 0:
        return f"{hours}h {mins}m" if mins > 0 else f"{hours}h"
    return f"{mins}m"


class DateResolver:
    """Resolve location-local timestamps against an injected timezone table.

    ``airport_zones`` maps IATA codes to either a fixed ``"+HH:MM"`` offset
    or an IANA zone name.
    """

    def __init__(self, airport_zones: Mapping[str, str] = AIRPORT_ZONES) -> None:
        self._zones = airport_zones

    # ------------------------------------------------------------------
    # Zones and offsets
    # ------------------------------------------------------------------

    def zone_for_code(self, code: str | None) -> tzinfo | None:
        if not code or not isinstance(code, str):
            return None
        value = self._zones.get(code.strip().upper())
        if not value:
            return None
        minutes = parse_offset(value)
        if minutes is not None:
            return timezone(timedelta(minutes=minutes))
        return tz.gettz(value)

    def offset_minutes(
        self, offset_or_code: str | None, at: datetime | None = None
    ) -> int | None:
        """UTC offset in minutes for an offset string or a location code."""
        minutes = parse_offset(offset_or_code)
        if minutes is not None:
            return minutes
        zone = self.zone_for_code(offset_or_code)
        if zone is None:
            return None
        moment = at or datetime.now(timezone.utc)
        delta = moment.astimezone(zone).utcoffset()
        return int(delta.total_seconds() // 60) if delta is not None else None

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _parse(self, text: str, now: datetime) -> datetime | None:
        try:
            return isoparse(text)
        except (ValueError, OverflowError):
            pass
        settings = {
            "RELATIVE_BASE": now.astimezone(timezone.utc).replace(tzinfo=None),
            "RETURN_AS_TIMEZONE_AWARE": False,
        }
        try:
            return dateparser.parse(text, settings=settings)
        except (ValueError, OverflowError):
            return None

    def resolve(
        self,
        local_timestamp: str | None,
        explicit_offset: str | None = None,
        location_code: str | None = None,
        now: datetime | None = None,
    ) -> Resolution:
        now = now or datetime.now(timezone.utc)
        text = normalize_timestamp(local_timestamp)
        if not text:
            return Resolution(instant=now, source=ResolutionSource.FALLBACK_NOW)

        parsed = self._parse(text, now)
        if parsed is None:
            logger.warning("Unparseable timestamp %r, using now", local_timestamp)
            return Resolution(instant=now, source=ResolutionSource.FALLBACK_NOW)

        try:
            return self._to_utc(parsed, explicit_offset, location_code)
        except (OverflowError, ValueError):
            logger.warning("Timestamp %r is out of range, using now", local_timestamp)
            return Resolution(instant=now, source=ResolutionSource.FALLBACK_NOW)

    def _to_utc(
        self, parsed: datetime, explicit_offset: str | None, location_code: str | None
    ) -> Resolution:
        if parsed.tzinfo is not None:
            return Resolution(
                instant=parsed.astimezone(timezone.utc), source=ResolutionSource.MARKER
            )
        parsed = parsed.replace(tzinfo=None)

        offset = parse_offset(explicit_offset)
        if offset is not None:
            instant = (parsed - timedelta(minutes=offset)).replace(tzinfo=timezone.utc)
            return Resolution(instant=instant, source=ResolutionSource.OFFSET)
        if explicit_offset:
            logger.debug("Ignoring malformed offset %r", explicit_offset)

        zone = self.zone_for_code(location_code)
        if zone is not None:
            instant = parsed.replace(tzinfo=zone).astimezone(timezone.utc)
            return Resolution(instant=instant, source=ResolutionSource.LOCATION)

        return Resolution(
            instant=parsed.replace(tzinfo=timezone.utc),
            source=ResolutionSource.ASSUMED_UTC,
        )

    def resolve_utc(
        self,
        local_timestamp: str | None,
        explicit_offset: str | None = None,
        location_code: str | None = None,
        now: datetime | None = None,
    ) -> datetime:
        return self.resolve(local_timestamp, explicit_offset, location_code, now).instant

    def to_local_wall_clock(self, instant: datetime, offset_or_code: str) -> str | None:
        """Inverse of :meth:`resolve`: the naive wall time at the location."""
        try:
            minutes = self.offset_minutes(offset_or_code, at=instant)
            if minutes is None:
                return None
            local = instant.astimezone(timezone.utc) + timedelta(minutes=minutes)
        except (OverflowError, ValueError):
            logger.warning("Instant %s has no wall time at %r", instant, offset_or_code)
            return None
        return local.replace(tzinfo=None).isoformat()

    # ------------------------------------------------------------------
    # Calendar at the location
    # ------------------------------------------------------------------

    def local_date(
        self, offset_or_code: str | None, now: datetime | None = None
    ) -> date | None:
        """Today's calendar date at the location, independent of the device."""
        now = now or datetime.now(timezone.utc)
        try:
            minutes = self.offset_minutes(offset_or_code, at=now)
            if minutes is None:
                return None
            return (now.astimezone(timezone.utc) + timedelta(minutes=minutes)).date()
        except (OverflowError, ValueError):
            logger.warning("No local date at %r for %s", offset_or_code, now)
            return None

    def is_local_date_today(
        self,
        local_timestamp: str | None,
        offset_or_code: str | None,
        now: datetime | None = None,
    ) -> bool:
        event_date = extract_local_date(local_timestamp)
        today = self.local_date(offset_or_code, now)
        return event_date is not None and event_date == today

    # ------------------------------------------------------------------
    # Reservation helpers
    # ------------------------------------------------------------------

    def departure_code(self, reservation: Reservation) -> str | None:
        code = extract_airport_code(_detail(reservation, DEPARTURE_AIRPORT))
        if code:
            return code
        snapshot = reservation.flight_status
        return snapshot.dep_iata if snapshot else None

    def arrival_code(self, reservation: Reservation) -> str | None:
        code = extract_airport_code(_detail(reservation, ARRIVAL_AIRPORT))
        if code:
            return code
        snapshot = reservation.flight_status
        return snapshot.arr_iata if snapshot else None

    def reservation_start(
        self, reservation: Reservation, now: datetime | None = None
    ) -> Resolution:
        if reservation.type == ReservationType.FLIGHT:
            return self.resolve(
                reservation.start_time,
                _detail(reservation, DEPARTURE_TZ),
                self.departure_code(reservation),
                now,
            )
        return self.resolve(
            reservation.start_time,
            _detail(reservation, LOCATION_TZ),
            _detail(reservation, LOCATION_CODE),
            now,
        )

    def reservation_end(
        self, reservation: Reservation, now: datetime | None = None
    ) -> Resolution | None:
        if not reservation.end_time:
            return None
        if reservation.type == ReservationType.FLIGHT:
            return self.resolve(
                reservation.end_time,
                _detail(reservation, ARRIVAL_TZ),
                self.arrival_code(reservation),
                now,
            )
        return self.resolve(
            reservation.end_time,
            _detail(reservation, LOCATION_TZ),
            _detail(reservation, LOCATION_CODE),
            now,
        )

    def reservation_timezone(self, reservation: Reservation) -> str | None:
        """Best offset string or location code for where the event starts."""
        extractors: list[Callable[[Reservation], str | None]] = []
        if reservation.type == ReservationType.FLIGHT:
            extractors.append(lambda r: _detail(r, DEPARTURE_TZ))
        extractors += [
            lambda r: _detail(r, LOCATION_TZ),
            lambda r: _detail(r, ARRIVAL_TZ),
        ]
        if reservation.type == ReservationType.FLIGHT:
            extractors.append(self.departure_code)
        extractors += [
            lambda r: _detail(r, LOCATION_CODE),
            self.arrival_code,
        ]
        for extract in extractors:
            candidate = extract(reservation)
            if candidate and self.offset_minutes(candidate) is not None:
                return candidate
        return None

    def local_time_iso(self, reservation: Reservation, which: str = "start") -> str:
        """The preserved location-local time string for display."""
        if which == "start":
            return _detail(reservation, LOCAL_START_TIME) or reservation.start_time
        return _detail(reservation, LOCAL_END_TIME) or reservation.end_time or ""

    def flight_duration(self, reservation: Reservation) -> str | None:
        """Duration string such as ``"11h 55m"``, or None when unknown."""
        for key in ("Duration", "Journey Time"):
            supplied = _detail(reservation, key)
            if supplied:
                return supplied

        if not reservation.end_time:
            return None

        start = self.resolve(reservation.start_time, _detail(reservation, DEPARTURE_TZ))
        end = self.resolve(reservation.end_time, _detail(reservation, ARRIVAL_TZ))
        if start.is_confident and end.is_confident:
            diff = end.instant - start.instant
            if diff > timedelta(0):
                return _format_duration(round(diff.total_seconds() / 60))

        naive_start = self.resolve(reservation.start_time)
        naive_end = self.resolve(reservation.end_time)
        if ResolutionSource.FALLBACK_NOW in (naive_start.source, naive_end.source):
            return None
        diff = naive_end.instant - naive_start.instant
        if timedelta(0) < diff < _MAX_NAIVE_DURATION:
            return _format_duration(round(diff.total_seconds() / 60))
        return None


DEFAULT_RESOLVER = DateResolver()
