from __future__ import annotations

from datetime import datetime

from .errors import InvalidStateError
from .models import TERMINAL_STATUSES, ReservationRecord, ReservationStatus

ALLOWED_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset(
        {ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED, ReservationStatus.COMPLETED}
    ),
    ReservationStatus.CONFIRMED: frozenset(
        {ReservationStatus.PENDING, ReservationStatus.CANCELLED, ReservationStatus.COMPLETED}
    ),
    ReservationStatus.CANCELLED: frozenset(),
    ReservationStatus.COMPLETED: frozenset(),
}


def ensure_transition(current: ReservationStatus, target: ReservationStatus) -> None:
    if current in TERMINAL_STATUSES:
        raise InvalidStateError(f"Reservation is already {current.value}")
    if target is current:
        return
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStateError(f"Cannot change reservation from {current.value} to {target.value}")


def transition(record: ReservationRecord, target: ReservationStatus, now: datetime) -> ReservationRecord:
    """Return ``record`` moved to ``target``. Same-state updates on a live record are no-ops."""
    ensure_transition(record.status, target)
    if target is record.status:
        return record

    changes: dict[str, object] = {"status": target, "updated_at": now}
    if target is ReservationStatus.CANCELLED:
        changes["cancelled_at"] = now
    return record.with_changes(**changes)


def cancel(record: ReservationRecord, now: datetime) -> ReservationRecord:
    if record.status is ReservationStatus.CANCELLED:
        raise InvalidStateError("Reservation is already cancelled")
    if record.status is ReservationStatus.COMPLETED:
        raise InvalidStateError("Cannot cancel a completed reservation")
    return transition(record, ReservationStatus.CANCELLED, now)
