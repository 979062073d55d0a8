from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Iterable, Protocol

from .models import ReservationRecord, UnitSelector
from .time_interval import OperatingHours, TimeInterval, has_time_overlap, normalize_interval


class ReservationReader(Protocol):
    def find(self, pool_id: str, selector: UnitSelector, target_date: date) -> list[ReservationRecord]: ...


def available_units(
    reservations: Iterable[ReservationRecord],
    interval: TimeInterval,
    capacity: int,
    hours: OperatingHours | None = None,
) -> list[int]:
    """Unit numbers in ``1..capacity`` with no live reservation overlapping ``interval``.

    ``hours`` places stored start/end strings on the same venue-day scale as
    ``interval``; without it a stored end earlier than its start rolls into
    the next day.
    """
    if capacity <= 0:
        return []

    by_unit: dict[int, list[tuple[int, int]]] = defaultdict(list)
    for reservation in reservations:
        if not reservation.is_live:
            continue
        by_unit[reservation.unit_number].append(_placed(reservation, hours))

    free: list[int] = []
    for unit_number in range(1, capacity + 1):
        if not any(
            has_time_overlap(interval.start, interval.end, booked_start, booked_end)
            for booked_start, booked_end in by_unit.get(unit_number, [])
        ):
            free.append(unit_number)
    return free


def list_available_units(
    reader: ReservationReader,
    pool_id: str,
    selector: UnitSelector,
    target_date: date,
    interval: TimeInterval,
    capacity: int,
    hours: OperatingHours | None = None,
) -> list[int]:
    if capacity <= 0:
        return []
    existing = reader.find(pool_id, selector, target_date)
    return available_units(existing, interval, capacity, hours)


def _placed(reservation: ReservationRecord, hours: OperatingHours | None) -> tuple[int, int]:
    if hours is not None:
        start, end = hours.align(reservation.start, reservation.end)
        # Hours may have changed since the booking was stored.
        if end > start:
            return start, end
    placed = normalize_interval(reservation.start, reservation.end)
    return placed.start, placed.end
