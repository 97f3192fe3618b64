"""Service for inferring a flight's effective phase from a live snapshot.

Actual departure/arrival timestamps are ground truth; the provider's
categorical label is consulted only when timestamps cannot decide.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import Any

from pydantic import ValidationError

from triptrack.domain.models import FlightPhase, FlightStatusSnapshot, ResolutionSource
from triptrack.services.resolver import DEFAULT_RESOLVER, DateResolver

logger = logging.getLogger(__name__)

# No commercial flight exceeds this.
MAX_FLIGHT_DURATION = timedelta(hours=20)
MIN_FLIGHT_DURATION = timedelta(hours=1)
LANDING_GRACE = timedelta(hours=1)
BOARDING_WINDOW = timedelta(minutes=30)

TERMINAL_LABELS = frozenset(
    {FlightPhase.LANDED, FlightPhase.CANCELLED, FlightPhase.INCIDENT, FlightPhase.DIVERTED}
)

_PROVIDER_STATUS_MAP = {
    "scheduled": FlightPhase.SCHEDULED,
    "active": FlightPhase.ACTIVE,
    "landed": FlightPhase.LANDED,
    "cancelled": FlightPhase.CANCELLED,
    "incident": FlightPhase.INCIDENT,
    "diverted": FlightPhase.DIVERTED,
    "unknown": FlightPhase.UNKNOWN,
    "boarding": FlightPhase.SCHEDULED,
    # provider variations
    "en-route": FlightPhase.ACTIVE,
    "en_route": FlightPhase.ACTIVE,
    "enroute": FlightPhase.ACTIVE,
    "in-flight": FlightPhase.ACTIVE,
    "in_flight": FlightPhase.ACTIVE,
    "inflight": FlightPhase.ACTIVE,
    "airborne": FlightPhase.ACTIVE,
    "flying": FlightPhase.ACTIVE,
    "started": FlightPhase.ACTIVE,
    "departed": FlightPhase.ACTIVE,
    "taxiing": FlightPhase.ACTIVE,
    "gate": FlightPhase.SCHEDULED,
    "check-in": FlightPhase.SCHEDULED,
    "delayed": FlightPhase.SCHEDULED,
    "arrived": FlightPhase.LANDED,
    "on-ground": FlightPhase.LANDED,
    "on_ground": FlightPhase.LANDED,
    "canceled": FlightPhase.CANCELLED,
    "redirected": FlightPhase.DIVERTED,
}

_PHASE_LABELS = {
    FlightPhase.SCHEDULED: "Scheduled",
    FlightPhase.BOARDING: "Boarding",
    FlightPhase.ACTIVE: "In Flight",
    FlightPhase.LANDED: "Landed",
    FlightPhase.CANCELLED: "Cancelled",
    FlightPhase.INCIDENT: "Incident",
    FlightPhase.DIVERTED: "Diverted",
    FlightPhase.UNKNOWN: "Status Unknown",
}


class FlightStep(StrEnum):
    SCHEDULED = "scheduled"
    BOARDING = "boarding"
    DEPARTED = "departed"
    IN_FLIGHT = "in_flight"
    LANDED = "landed"


def normalize_provider_status(value: Any) -> FlightPhase:
    """Map a raw provider status string onto :class:`FlightPhase`."""
    if isinstance(value, FlightPhase):
        return value
    if not value or not isinstance(value, str):
        return FlightPhase.UNKNOWN
    mapped = _PROVIDER_STATUS_MAP.get(value.strip().lower())
    if mapped is None:
        logger.warning("Unmapped provider flight status %r, treating as unknown", value)
        return FlightPhase.UNKNOWN
    return mapped


def read_snapshot(raw: Any) -> FlightStatusSnapshot | None:
    """Load an embedded snapshot, treating unreadable data as absent."""
    if raw is None:
        return None
    if isinstance(raw, FlightStatusSnapshot):
        return raw
    if not isinstance(raw, dict):
        logger.warning("Ignoring flight snapshot of type %s", type(raw).__name__)
        return None
    try:
        return FlightStatusSnapshot.model_validate(raw)
    except ValidationError as exc:
        logger.warning("Ignoring malformed flight snapshot: %s", exc.errors()[:1])
        return None


# ---------------------------------------------------------------------------
# Inference rules (evaluated in order, first non-None wins)
# ---------------------------------------------------------------------------

PhaseRule = Callable[[FlightStatusSnapshot, datetime, DateResolver], FlightPhase | None]


def _terminal_label(snapshot, now, resolver):
    if snapshot.flight_status in TERMINAL_LABELS:
        return snapshot.flight_status
    return None


def _actual_arrival(snapshot, now, resolver):
    return FlightPhase.LANDED if snapshot.arr_actual else None


def _actual_departure(snapshot, now, resolver):
    if not snapshot.dep_actual:
        return None
    departed = resolver.resolve(snapshot.dep_actual, location_code=snapshot.dep_iata, now=now)

    expected = MAX_FLIGHT_DURATION
    arrival_text = snapshot.arr_estimated or snapshot.arr_scheduled
    if arrival_text:
        arrival = resolver.resolve(arrival_text, location_code=snapshot.arr_iata, now=now)
        if arrival.source != ResolutionSource.FALLBACK_NOW:
            expected = min(
                max(arrival.instant - departed.instant, MIN_FLIGHT_DURATION),
                MAX_FLIGHT_DURATION,
            )

    # Well past the landing deadline means a data gap, not a very long flight.
    if now - departed.instant > expected + LANDING_GRACE:
        return FlightPhase.UNKNOWN
    return FlightPhase.ACTIVE


def _label_active(snapshot, now, resolver):
    return FlightPhase.ACTIVE if snapshot.flight_status == FlightPhase.ACTIVE else None


def _label_scheduled(snapshot, now, resolver):
    return FlightPhase.SCHEDULED if snapshot.flight_status == FlightPhase.SCHEDULED else None


PHASE_RULES: tuple[PhaseRule, ...] = (
    _terminal_label,
    _actual_arrival,
    _actual_departure,
    _label_active,
    _label_scheduled,
)


def infer_phase(
    snapshot: FlightStatusSnapshot | None,
    now: datetime | None = None,
    resolver: DateResolver | None = None,
) -> FlightPhase:
    """Return the effective phase for *snapshot*, recomputed on every call."""
    if snapshot is None:
        return FlightPhase.UNKNOWN
    now = now or datetime.now(timezone.utc)
    resolver = resolver or DEFAULT_RESOLVER
    for rule in PHASE_RULES:
        phase = rule(snapshot, now, resolver)
        if phase is not None:
            return phase
    return snapshot.flight_status


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def is_stale(snapshot: FlightStatusSnapshot, phase: FlightPhase) -> bool:
    """Departed, but overdue for any landing signal."""
    return phase == FlightPhase.UNKNOWN and bool(snapshot.dep_actual)


def expected_departure(
    snapshot: FlightStatusSnapshot,
    now: datetime | None = None,
    resolver: DateResolver | None = None,
) -> datetime | None:
    """Scheduled departure in UTC plus any reported delay."""
    resolver = resolver or DEFAULT_RESOLVER
    base = None
    if snapshot.dep_scheduled_utc:
        # Documented as UTC even when the provider drops the Z.
        resolved = resolver.resolve(snapshot.dep_scheduled_utc, now=now)
        if resolved.source != ResolutionSource.FALLBACK_NOW:
            base = resolved.instant
    if base is None and snapshot.dep_scheduled:
        resolved = resolver.resolve(
            snapshot.dep_scheduled, location_code=snapshot.dep_iata, now=now
        )
        if resolved.is_confident:
            base = resolved.instant
    if base is None:
        return None
    try:
        return base + timedelta(minutes=snapshot.dep_delay or 0)
    except OverflowError:
        return None


def phase_label(phase: FlightPhase) -> str:
    return _PHASE_LABELS.get(phase, "Status Unknown")


def flight_step(
    snapshot: FlightStatusSnapshot,
    now: datetime | None = None,
    resolver: DateResolver | None = None,
) -> FlightStep:
    """Coarse journey step for a progress indicator."""
    now = now or datetime.now(timezone.utc)
    phase = infer_phase(snapshot, now, resolver)
    if phase == FlightPhase.LANDED:
        return FlightStep.LANDED
    if phase == FlightPhase.ACTIVE:
        return FlightStep.IN_FLIGHT
    # Overdue data: departed is the last step we actually know about.
    if snapshot.dep_actual:
        return FlightStep.DEPARTED
    departure = expected_departure(snapshot, now, resolver)
    if departure is not None and timedelta(0) < departure - now <= BOARDING_WINDOW:
        return FlightStep.BOARDING
    return FlightStep.SCHEDULED


def format_delay(delay_minutes: int | None) -> str | None:
    """``45`` -> ``"45m late"``; ``65`` -> ``"1h 5m late"``; on time -> None."""
    if not delay_minutes or delay_minutes <= 0:
        return None
    if delay_minutes < 60:
        return f"{delay_minutes}m late"
    hours, mins = divmod(delay_minutes, 60)
    return f"{hours}h {mins}m late" if mins else f"{hours}h late"
