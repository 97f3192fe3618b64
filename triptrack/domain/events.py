"""Domain events emitted as trips and reservations change."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from triptrack.domain.models import FlightChange, FlightStatusSnapshot


class TripSaved(BaseModel):
    """Fired after a trip is created or its dates change."""

    trip_id: str


class TripDeleted(BaseModel):
    trip_id: str


class ReservationCreated(BaseModel):
    reservation_id: str


class ReservationUpdated(BaseModel):
    reservation_id: str
    changed_fields: list[str] = []


class ReservationDeleted(BaseModel):
    """Reminders must be cancelled before the record goes away."""

    reservation_id: str


class FlightStatusRefreshed(BaseModel):
    """A refresh collaborator pushed a new live snapshot."""

    reservation_id: str
    snapshot: FlightStatusSnapshot
    changes: list[FlightChange] = []


class RemindersScheduled(BaseModel):
    entity_key: str
    handle_ids: list[str]


class NotificationFired(BaseModel):
    """Fired when a pending notification's time has come (via /tick)."""

    entity_key: str
    handle_id: str
    fired_at: datetime
