"""Service for composing countdowns and contextual time labels.

All minute arithmetic floors toward the past, so an event that started
30 seconds ago is ``-1`` minutes away and renders as "Now", never as a
negative value.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

from dateutil.parser import isoparse

from triptrack.domain.models import (
    ColorHint,
    CountdownResult,
    FlightPhase,
    FlightStatusSnapshot,
    Reservation,
    ReservationType,
    ResolutionSource,
    TimeLabel,
)
from triptrack.services.phase import expected_departure, infer_phase, is_stale
from triptrack.services.resolver import DEFAULT_RESOLVER, DateResolver, normalize_timestamp

URGENT_WINDOW_MINUTES = 30

_ACTION_LABELS = {
    ReservationType.FLIGHT: "Departs",
    ReservationType.HOTEL: "Check-in",
    ReservationType.CAR: "Pickup",
    ReservationType.TRAIN: "Departs",
    ReservationType.MEETING: "Starts",
    ReservationType.EVENT: "Starts",
}

_CLOCK_RE = re.compile(r"T(\d{2}):(\d{2})")


def minutes_until(target: datetime, now: datetime) -> int:
    return int((target - now).total_seconds() // 60)


def format_span(minutes: int) -> str:
    """``1500`` -> ``"1d 1h"``; ``135`` -> ``"2h 15m"``; ``120`` -> ``"2h"``."""
    hours, mins = divmod(minutes, 60)
    if hours >= 24:
        return f"{hours // 24}d {hours % 24}h"
    if hours > 0:
        return f"{hours}h {mins}m" if mins > 0 else f"{hours}h"
    return f"{minutes}m"


def _twelve_hour(hours: int, minutes: int) -> str:
    period = "PM" if hours >= 12 else "AM"
    display = 12 if hours % 12 == 0 else hours % 12
    return f"{display}:{minutes:02d} {period}"


def format_clock(iso_string: str | None) -> str:
    """Wall-clock time read straight from the string, never converted.

    Travel times display in the local time of the place they happen, so
    ``"2026-03-14T10:10:00Z"`` still shows ``"10:10 AM"``.
    """
    text = normalize_timestamp(iso_string)
    if not text:
        return "—"
    match = _CLOCK_RE.search(text)
    if match:
        return _twelve_hour(int(match.group(1)), int(match.group(2)))
    try:
        parsed = isoparse(text)
    except (ValueError, OverflowError):
        return "—"
    return _twelve_hour(parsed.hour, parsed.minute)


def _before_start(
    minutes: int,
    action_label: str,
    boarding_label: str | None = None,
    amber: bool = False,
) -> CountdownResult:
    in_window = 0 <= minutes < URGENT_WINDOW_MINUTES
    if boarding_label and (minutes < 0 or in_window):
        action_label = boarding_label

    if minutes < 0:
        return CountdownResult(
            label="Now", action_label=action_label, urgent=True, minutes=minutes
        )
    if in_window:
        return CountdownResult(
            label=f"{minutes}m",
            action_label=action_label,
            urgent=True,
            minutes=minutes,
            color=ColorHint.AMBER if amber else ColorHint.DEFAULT,
        )
    return CountdownResult(
        label=format_span(minutes), action_label=action_label, urgent=False, minutes=minutes
    )


def _basic_countdown(
    reservation: Reservation, now: datetime, resolver: DateResolver
) -> CountdownResult:
    start = resolver.reservation_start(reservation, now).instant
    minutes = minutes_until(start, now)
    if reservation.type == ReservationType.FLIGHT:
        return _before_start(minutes, "Departs", boarding_label="Board", amber=True)
    return _before_start(minutes, _ACTION_LABELS.get(reservation.type, "Starts"))


def _live_arrival(
    snapshot: FlightStatusSnapshot, now: datetime, resolver: DateResolver
) -> datetime | None:
    text = snapshot.arr_estimated or snapshot.arr_scheduled
    if not text:
        return None
    resolved = resolver.resolve(text, location_code=snapshot.arr_iata, now=now)
    if resolved.source == ResolutionSource.FALLBACK_NOW:
        return None
    return resolved.instant


def compose_countdown(
    reservation: Reservation,
    snapshot: FlightStatusSnapshot | None = None,
    now: datetime | None = None,
    resolver: DateResolver | None = None,
) -> CountdownResult:
    """Countdown for the reservation's next milestone given live data, if any."""
    now = now or datetime.now(timezone.utc)
    resolver = resolver or DEFAULT_RESOLVER

    if snapshot is None or reservation.type != ReservationType.FLIGHT:
        return _basic_countdown(reservation, now, resolver)

    phase = infer_phase(snapshot, now, resolver)

    if phase == FlightPhase.LANDED:
        return CountdownResult(
            label="✓", action_label="Landed", urgent=False, minutes=0, color=ColorHint.GREEN
        )

    if phase == FlightPhase.ACTIVE:
        arrival = _live_arrival(snapshot, now, resolver)
        if arrival is None:
            return CountdownResult(
                label="✈", action_label="In Flight", urgent=False, minutes=0, color=ColorHint.BLUE
            )
        minutes = minutes_until(arrival, now)
        if minutes <= 0:
            return CountdownResult(
                label="Soon", action_label="Landing", urgent=True, minutes=minutes, color=ColorHint.BLUE
            )
        return CountdownResult(
            label=format_span(minutes),
            action_label="Arrives",
            urgent=False,
            minutes=minutes,
            color=ColorHint.BLUE,
        )

    if phase == FlightPhase.CANCELLED:
        return CountdownResult(
            label="✕", action_label="Cancelled", urgent=False, minutes=0, color=ColorHint.RED
        )

    if phase in (FlightPhase.DIVERTED, FlightPhase.INCIDENT):
        return CountdownResult(
            label="⚠",
            action_label="Diverted" if phase == FlightPhase.DIVERTED else "Incident",
            urgent=True,
            minutes=0,
            color=ColorHint.RED,
        )

    if is_stale(snapshot, phase):
        return CountdownResult(label="?", action_label="Status Unknown", urgent=False, minutes=0)

    departure = expected_departure(snapshot, now, resolver)
    if departure is None:
        return _basic_countdown(reservation, now, resolver)
    return _before_start(
        minutes_until(departure, now), "Departs", boarding_label="Board", amber=True
    )


def compose_time_label(
    reservation: Reservation,
    snapshot: FlightStatusSnapshot | None = None,
    now: datetime | None = None,
    resolver: DateResolver | None = None,
) -> TimeLabel:
    """Label + local clock time that fits the reservation's current phase.

    Live snapshot times are already airport-local, and fresher than the
    stored reservation times, so they win whenever present.
    """
    resolver = resolver or DEFAULT_RESOLVER
    local_start = resolver.local_time_iso(reservation, "start")

    if reservation.type != ReservationType.FLIGHT or snapshot is None:
        return TimeLabel(
            label=_ACTION_LABELS.get(reservation.type, "Starts"),
            time=format_clock(local_start),
        )

    phase = infer_phase(snapshot, now, resolver)
    local_end = resolver.local_time_iso(reservation, "end")

    if phase == FlightPhase.LANDED:
        live = snapshot.arr_actual or snapshot.arr_estimated or snapshot.arr_scheduled
        return TimeLabel(
            label="Arrived" if snapshot.arr_actual else "Arrival",
            time=format_clock(live or local_end or local_start),
        )
    if phase == FlightPhase.ACTIVE:
        live = snapshot.arr_estimated or snapshot.arr_scheduled
        return TimeLabel(label="Est. Arrival", time=format_clock(live or local_end or local_start))
    if phase == FlightPhase.CANCELLED:
        return TimeLabel(label="Was scheduled", time=format_clock(local_start))
    if is_stale(snapshot, phase):
        return TimeLabel(label="Status Unknown", time=format_clock(snapshot.dep_actual))

    rescheduled = bool(snapshot.dep_estimated) and snapshot.dep_estimated != snapshot.dep_scheduled
    live = snapshot.dep_estimated or snapshot.dep_scheduled
    return TimeLabel(
        label="New Dep." if rescheduled else "Departs",
        time=format_clock(live or local_start),
    )
