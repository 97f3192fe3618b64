"""In-memory repositories for trips, reservations, timeline and reminder handles."""

from __future__ import annotations

import threading

from triptrack.domain.models import Reservation, TimelineEntry, Trip


class TripRepository:
    """Dict-backed store for Trip instances, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, Trip] = {}

    def add(self, trip: Trip) -> None:
        self._store[trip.id] = trip

    def get(self, trip_id: str) -> Trip | None:
        return self._store.get(trip_id)

    def list_all(self) -> list[Trip]:
        return list(self._store.values())

    def delete(self, trip_id: str) -> None:
        self._store.pop(trip_id, None)


class ReservationRepository:
    """Dict-backed store for Reservation instances, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, Reservation] = {}

    def add(self, reservation: Reservation) -> None:
        self._store[reservation.id] = reservation

    def get(self, reservation_id: str) -> Reservation | None:
        return self._store.get(reservation_id)

    def list_all(self) -> list[Reservation]:
        return list(self._store.values())

    def list_for_trip(self, trip_id: str) -> list[Reservation]:
        return [r for r in self._store.values() if r.trip_id == trip_id]

    def delete(self, reservation_id: str) -> None:
        self._store.pop(reservation_id, None)


class TimelineRepository:
    """List-backed store for TimelineEntry instances."""

    def __init__(self) -> None:
        self._entries: list[TimelineEntry] = []

    def add(self, entry: TimelineEntry) -> None:
        self._entries.append(entry)

    def list_for_entity(self, entity_id: str) -> list[TimelineEntry]:
        return sorted(
            [e for e in self._entries if e.entity_id == entity_id],
            key=lambda e: e.timestamp,
        )


class InMemoryReminderHandleStore:
    """Entity key -> notification handle ids. At most one set per key."""

    def __init__(self) -> None:
        self._sets: dict[str, list[str]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> list[str]:
        with self._lock:
            return list(self._sets.get(key, []))

    def put(self, key: str, handle_ids: list[str]) -> None:
        with self._lock:
            if handle_ids:
                self._sets[key] = list(handle_ids)
            else:
                self._sets.pop(key, None)

    def remove_handle(self, key: str, handle_id: str) -> None:
        with self._lock:
            remaining = [h for h in self._sets.get(key, []) if h != handle_id]
            if remaining:
                self._sets[key] = remaining
            else:
                self._sets.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._sets)
