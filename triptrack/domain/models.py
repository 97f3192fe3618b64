"""Domain models for the trip itinerary temporal engine."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class ReservationType(StrEnum):
    FLIGHT = "flight"
    HOTEL = "hotel"
    CAR = "car"
    TRAIN = "train"
    MEETING = "meeting"
    EVENT = "event"


class ReservationStatus(StrEnum):
    CONFIRMED = "confirmed"
    DELAYED = "delayed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class TripStatus(StrEnum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"


class FlightPhase(StrEnum):
    SCHEDULED = "scheduled"
    BOARDING = "boarding"
    ACTIVE = "active"
    LANDED = "landed"
    CANCELLED = "cancelled"
    DIVERTED = "diverted"
    INCIDENT = "incident"
    UNKNOWN = "unknown"


class ColorHint(StrEnum):
    GREEN = "green"
    BLUE = "blue"
    AMBER = "amber"
    RED = "red"
    DEFAULT = "default"


class ResolutionSource(StrEnum):
    MARKER = "marker"
    OFFSET = "offset"
    LOCATION = "location"
    ASSUMED_UTC = "assumed_utc"
    FALLBACK_NOW = "fallback_now"


class ChangeSeverity(StrEnum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class TimelineEntryType(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    FLIGHT_STATUS_REFRESHED = "flight_status_refreshed"
    FLIGHT_CHANGE = "flight_change"
    REMINDERS_SCHEDULED = "reminders_scheduled"
    REMINDERS_CANCELLED = "reminders_cancelled"
    REMINDER_FIRED = "reminder_fired"


# Keys the reservation-management collaborator writes into ``details``.
DEPARTURE_TZ = "Departure Timezone"
ARRIVAL_TZ = "Arrival Timezone"
LOCATION_TZ = "Location Timezone"
DEPARTURE_AIRPORT = "Departure Airport"
ARRIVAL_AIRPORT = "Arrival Airport"
LOCATION_CODE = "Location Code"
LOCAL_START_TIME = "Local Start Time"
LOCAL_END_TIME = "Local End Time"
FLIGHT_STATUS_KEY = "_flight_status"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Core domain models
# ---------------------------------------------------------------------------


class FlightStatusSnapshot(BaseModel):
    """Last known live-tracking result for a flight.

    Departure/arrival times are location-local airport times as reported by
    the provider; ``dep_scheduled_utc`` is the only field guaranteed to be
    UTC. ``flight_status`` is a hint only: actual timestamps outrank it.
    """

    flight_iata: str
    airline_name: str | None = None
    airline_iata: str | None = None

    dep_iata: str | None = None
    dep_airport: str | None = None
    dep_terminal: str | None = None
    dep_gate: str | None = None
    dep_scheduled: str | None = None
    dep_scheduled_utc: str | None = None
    dep_estimated: str | None = None
    dep_actual: str | None = None
    dep_delay: int | None = None

    arr_iata: str | None = None
    arr_airport: str | None = None
    arr_terminal: str | None = None
    arr_gate: str | None = None
    arr_baggage: str | None = None
    arr_scheduled: str | None = None
    arr_estimated: str | None = None
    arr_actual: str | None = None
    arr_delay: int | None = None

    flight_status: FlightPhase = FlightPhase.UNKNOWN
    aircraft_icao: str | None = None
    last_checked: datetime = Field(default_factory=_utcnow)
    provider: str = "airlabs"

    @field_validator("flight_status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> FlightPhase:
        from triptrack.services.phase import normalize_provider_status

        return normalize_provider_status(value)

    @field_validator("last_checked")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class Reservation(BaseModel):
    id: str = Field(default_factory=_new_id)
    trip_id: str
    type: ReservationType
    title: str
    start_time: str
    end_time: str | None = None
    location: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    status: ReservationStatus = ReservationStatus.CONFIRMED
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def flight_status(self) -> FlightStatusSnapshot | None:
        """The embedded live snapshot, or None when absent or unreadable."""
        from triptrack.services.phase import read_snapshot

        if self.type != ReservationType.FLIGHT:
            return None
        return read_snapshot(self.details.get(FLIGHT_STATUS_KEY))


class Trip(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    destination: str | None = None
    start_date: str
    end_date: str
    status: TripStatus = TripStatus.UPCOMING
    created_at: datetime = Field(default_factory=_utcnow)


class Resolution(BaseModel):
    """A UTC instant tagged with how confidently it was obtained."""

    instant: datetime
    source: ResolutionSource

    @property
    def is_confident(self) -> bool:
        return self.source in (
            ResolutionSource.MARKER,
            ResolutionSource.OFFSET,
            ResolutionSource.LOCATION,
        )


class CountdownResult(BaseModel):
    label: str
    action_label: str
    urgent: bool
    minutes: int
    color: ColorHint = ColorHint.DEFAULT


class TimeLabel(BaseModel):
    label: str
    time: str


class FlightChange(BaseModel):
    type: str
    field: str
    old_value: str | int | None = None
    new_value: str | int | None = None
    severity: ChangeSeverity
    message: str


class ReminderPlanItem(BaseModel):
    """One reminder the scheduler intends to hand to the notifier."""

    hours_before: int
    trigger_at: datetime
    title: str
    body: str
    data: dict[str, Any] = Field(default_factory=dict)


class PendingNotification(BaseModel):
    id: str = Field(default_factory=_new_id)
    title: str
    body: str
    trigger_at: datetime
    data: dict[str, Any] = Field(default_factory=dict)


class TimelineEntry(BaseModel):
    id: str = Field(default_factory=_new_id)
    entity_id: str
    timestamp: datetime = Field(default_factory=_utcnow)
    type: TimelineEntryType
    payload: dict = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class TripCreateRequest(BaseModel):
    name: str
    destination: str | None = None
    start_date: str
    end_date: str


class ReservationCreateRequest(BaseModel):
    trip_id: str
    type: ReservationType
    title: str
    start_time: str
    end_time: str | None = None
    location: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    status: ReservationStatus = ReservationStatus.CONFIRMED


class ReservationUpdateRequest(BaseModel):
    title: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    location: str | None = None
    details: dict[str, Any] | None = None
    status: ReservationStatus | None = None


class FlightRefreshResponse(BaseModel):
    reservation_id: str
    phase: FlightPhase
    changes: list[FlightChange] = Field(default_factory=list)


class ReservationStatusView(BaseModel):
    reservation_id: str
    phase: FlightPhase | None = None
    phase_label: str | None = None
    countdown: CountdownResult
    time_label: TimeLabel
    is_today: bool
    is_tomorrow: bool
    date_label: str
    polling_interval_seconds: int | None = None
    flight_step: str | None = None
    delay_label: str | None = None
    duration: str | None = None


class ReminderSetView(BaseModel):
    entity_id: str
    handle_ids: list[str]
    pending: list[PendingNotification] = Field(default_factory=list)
