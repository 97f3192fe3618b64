"""Service for diffing two flight snapshots into user-facing changes."""

from __future__ import annotations

from triptrack.domain.models import ChangeSeverity, FlightChange, FlightPhase, FlightStatusSnapshot
from triptrack.services.countdown import format_clock


def _delay_severity(delay: int) -> ChangeSeverity:
    if delay >= 60:
        return ChangeSeverity.CRITICAL
    if delay >= 15:
        return ChangeSeverity.WARNING
    return ChangeSeverity.INFO


def _assignment(
    change_type: str, field: str, label: str, old: str | None, new: str | None
) -> FlightChange:
    return FlightChange(
        type=change_type,
        field=field,
        old_value=old,
        new_value=new,
        severity=ChangeSeverity.WARNING,
        message=f"{label} changed from {old} to {new}" if old else f"{label} assigned: {new}",
    )


def _delay_change(old: FlightStatusSnapshot, new: FlightStatusSnapshot) -> FlightChange | None:
    if new.dep_delay is None or old.dep_delay == new.dep_delay:
        return None
    old_delay, new_delay = old.dep_delay or 0, new.dep_delay

    if new_delay > old_delay and new_delay > 0:
        hours, mins = divmod(new_delay, 60)
        return FlightChange(
            type="delay_change",
            field="dep_delay",
            old_value=old_delay,
            new_value=new_delay,
            severity=_delay_severity(new_delay),
            message=(
                f"Flight delayed {new_delay} minutes"
                if new_delay < 60
                else f"Flight delayed {hours}h {mins}m"
            ),
        )
    if new_delay < old_delay and old_delay > 0:
        return FlightChange(
            type="delay_change",
            field="dep_delay",
            old_value=old_delay,
            new_value=new_delay,
            severity=ChangeSeverity.INFO,
            message=(
                "Flight back on schedule"
                if new_delay <= 0
                else f"Delay reduced to {new_delay} minutes"
            ),
        )
    return None


def _status_change(old: FlightStatusSnapshot, new: FlightStatusSnapshot) -> FlightChange | None:
    if old.flight_status == new.flight_status:
        return None
    if new.flight_status == FlightPhase.CANCELLED:
        return FlightChange(
            type="cancellation",
            field="flight_status",
            old_value=old.flight_status.value,
            new_value=new.flight_status.value,
            severity=ChangeSeverity.CRITICAL,
            message="Flight has been cancelled",
        )
    if new.flight_status == FlightPhase.DIVERTED:
        return FlightChange(
            type="diversion",
            field="flight_status",
            old_value=old.flight_status.value,
            new_value=new.flight_status.value,
            severity=ChangeSeverity.CRITICAL,
            message="Flight has been diverted",
        )
    messages = {
        FlightPhase.ACTIVE: "Flight has departed",
        FlightPhase.LANDED: "Flight has landed",
    }
    return FlightChange(
        type="status_change",
        field="flight_status",
        old_value=old.flight_status.value,
        new_value=new.flight_status.value,
        severity=ChangeSeverity.INFO,
        message=messages.get(new.flight_status, f"Flight status: {new.flight_status.value}"),
    )


def detect_changes(
    old: FlightStatusSnapshot | None, new: FlightStatusSnapshot
) -> list[FlightChange]:
    """List what changed between two refreshes of the same flight.

    A cancellation or diversion is reported on its own: nothing else about
    the flight matters once it happens. The first snapshot has no changes.
    """
    if old is None:
        return []
    changes: list[FlightChange] = []

    if new.dep_gate and old.dep_gate != new.dep_gate:
        changes.append(_assignment("gate_change", "dep_gate", "Gate", old.dep_gate, new.dep_gate))
    if new.dep_terminal and old.dep_terminal != new.dep_terminal:
        changes.append(
            _assignment(
                "terminal_change", "dep_terminal", "Terminal", old.dep_terminal, new.dep_terminal
            )
        )

    delay = _delay_change(old, new)
    if delay is not None:
        changes.append(delay)

    status = _status_change(old, new)
    if status is not None:
        if status.type in ("cancellation", "diversion"):
            return [status]
        changes.append(status)

    if new.arr_gate and old.arr_gate != new.arr_gate:
        changes.append(
            FlightChange(
                type="gate_change",
                field="arr_gate",
                old_value=old.arr_gate,
                new_value=new.arr_gate,
                severity=ChangeSeverity.INFO,
                message=f"Arrival gate: {new.arr_gate}",
            )
        )
    if new.arr_baggage and old.arr_baggage != new.arr_baggage:
        changes.append(
            FlightChange(
                type="baggage_update",
                field="arr_baggage",
                old_value=old.arr_baggage,
                new_value=new.arr_baggage,
                severity=ChangeSeverity.INFO,
                message=f"Baggage at carousel {new.arr_baggage}",
            )
        )

    if (
        new.dep_estimated
        and old.dep_estimated != new.dep_estimated
        and new.dep_estimated != new.dep_scheduled
    ):
        changes.append(
            FlightChange(
                type="time_change",
                field="dep_estimated",
                old_value=old.dep_estimated,
                new_value=new.dep_estimated,
                severity=ChangeSeverity.WARNING,
                message=f"New estimated departure: {format_clock(new.dep_estimated)}",
            )
        )
    if (
        new.arr_estimated
        and old.arr_estimated != new.arr_estimated
        and new.arr_estimated != new.arr_scheduled
    ):
        changes.append(
            FlightChange(
                type="time_change",
                field="arr_estimated",
                old_value=old.arr_estimated,
                new_value=new.arr_estimated,
                severity=ChangeSeverity.INFO,
                message=f"New estimated arrival: {format_clock(new.arr_estimated)}",
            )
        )
    return changes
