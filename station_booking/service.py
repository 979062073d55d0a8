from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
import logging
from typing import Any, Callable
from uuid import uuid4

from . import lifecycle
from .availability import available_units, list_available_units
from .errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from .models import (
    LIVE_STATUSES,
    PaymentStatus,
    ReservationRecord,
    ReservationStatus,
    UnitSelector,
    parse_date,
    parse_status,
)
from .pools import PoolDirectory, ResourcePool
from .pricing import quote_price, resolve_rate
from .repository import ReservationRepository, Transaction
from .time_interval import OperatingHours, TimeInterval, format_minutes

logger = logging.getLogger(__name__)

MY_RESERVATIONS_PAGE_SIZE = 10
POOL_RESERVATIONS_PAGE_SIZE = 20


@dataclass(frozen=True)
class AvailabilityCheck:
    available: bool
    capacity: int
    duration_hours: float
    unit_rate: float
    estimated_cost: float
    selector: UnitSelector
    unit_number: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "available": self.available,
            "unit_kind": self.selector.kind.value,
            "unit_subtype": self.selector.subtype.value if self.selector.subtype else None,
            "unit_number": self.unit_number,
            "capacity": self.capacity,
            "duration_hours": self.duration_hours,
            "unit_rate": self.unit_rate,
            "estimated_cost": self.estimated_cost,
        }


@dataclass(frozen=True)
class UnitAvailability:
    available_units: list[int]
    capacity: int

    @property
    def first_available(self) -> int | None:
        return self.available_units[0] if self.available_units else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "available_units": list(self.available_units),
            "capacity": self.capacity,
            "available_count": len(self.available_units),
            "first_available": self.first_available,
        }


@dataclass(frozen=True)
class ReservationPage:
    reservations: list[ReservationRecord]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit

    def pagination(self) -> dict[str, int]:
        return {"total": self.total, "page": self.page, "pages": self.pages, "limit": self.limit}


@dataclass(frozen=True)
class MyReservations(ReservationPage):
    today: date

    @property
    def upcoming(self) -> list[ReservationRecord]:
        return [record for record in self.reservations if record.date >= self.today and record.status in LIVE_STATUSES]

    @property
    def past(self) -> list[ReservationRecord]:
        return [record for record in self.reservations if record.date < self.today or record.status not in LIVE_STATUSES]


@dataclass(frozen=True)
class _PlacedRequest:
    pool: ResourcePool
    selector: UnitSelector
    hours: OperatingHours
    interval: TimeInterval
    capacity: int


class ReservationService:
    """Availability queries, the authoritative reservation writer and lifecycle operations."""

    def __init__(
        self,
        repository: ReservationRepository,
        pools: PoolDirectory,
        clock: Callable[[], datetime] | None = None,
        min_duration_minutes: int = 60,
        notes_max_length: int = 500,
        transaction_timeout: float | None = None,
    ) -> None:
        self.repository = repository
        self.pools = pools
        self.clock: Callable[[], datetime] = clock or datetime.now
        self.min_duration_minutes = min_duration_minutes
        self.notes_max_length = notes_max_length
        self.transaction_timeout = transaction_timeout

    # -- advisory reads -------------------------------------------------

    def check_availability(
        self,
        pool_id: str,
        kind: str | None,
        subtype: str | None,
        target_date: str | date,
        start: str,
        end: str,
        unit_number: Any = None,
    ) -> AvailabilityCheck:
        selector = UnitSelector.parse(kind, subtype)
        parsed_date = parse_date(target_date)
        number = _parse_unit_number(unit_number) if unit_number is not None else None
        placed = self._place(self._require_pool(pool_id), selector, parsed_date, start, end)

        free = list_available_units(
            self.repository,
            placed.pool.pool_id,
            selector,
            parsed_date,
            placed.interval,
            placed.capacity,
            placed.hours,
        )
        available = (number in free) if number is not None else bool(free)
        quote = quote_price(placed.interval, resolve_rate(placed.pool, selector))
        return AvailabilityCheck(
            available=available,
            capacity=placed.capacity,
            duration_hours=quote.duration_hours,
            unit_rate=quote.unit_rate,
            estimated_cost=quote.total_amount,
            selector=selector,
            unit_number=number,
        )

    def list_available_units(
        self,
        pool_id: str,
        kind: str | None,
        subtype: str | None,
        target_date: str | date,
        start: str,
        end: str,
    ) -> UnitAvailability:
        selector = UnitSelector.parse(kind, subtype)
        parsed_date = parse_date(target_date)
        placed = self._place(self._require_pool(pool_id), selector, parsed_date, start, end)

        free = list_available_units(
            self.repository,
            placed.pool.pool_id,
            selector,
            parsed_date,
            placed.interval,
            placed.capacity,
            placed.hours,
        )
        return UnitAvailability(available_units=free, capacity=placed.capacity)

    # -- authoritative write --------------------------------------------

    def create_reservation(
        self,
        requester_id: str,
        pool_id: str,
        kind: str | None,
        subtype: str | None,
        unit_number: Any,
        target_date: str | date,
        start: str,
        end: str,
        notes: str | None = None,
    ) -> ReservationRecord:
        requester_id = _require_text(requester_id, "requester_id")
        selector = UnitSelector.parse(kind, subtype)
        parsed_date = parse_date(target_date)
        number = _parse_unit_number(unit_number)
        notes = self._clean_notes(notes)

        pool = self._require_pool(pool_id)
        if not pool.is_active:
            raise ValidationError("This venue is currently not accepting reservations")

        placed = self._place(pool, selector, parsed_date, start, end)
        if placed.capacity == 0:
            raise ValidationError(f"This venue does not have any {selector.label} available")
        if number > placed.capacity:
            raise ValidationError(f"Invalid unit number for {selector.label}. Available: 1-{placed.capacity}")
        if placed.interval.duration_minutes < self.min_duration_minutes:
            raise ValidationError(f"Minimum reservation duration is {self.min_duration_minutes} minutes")

        quote = quote_price(placed.interval, resolve_rate(pool, selector))

        def commit(tx: Transaction) -> ReservationRecord:
            free = available_units(
                tx.find(pool.pool_id, selector, parsed_date),
                placed.interval,
                placed.capacity,
                placed.hours,
            )
            if number not in free:
                raise ConflictError(
                    f"{selector.label} #{number} is already booked for {placed.interval.label()}",
                    available_units=free,
                )

            record = ReservationRecord(
                reservation_id=str(uuid4()),
                requester_id=requester_id,
                pool_id=pool.pool_id,
                selector=selector,
                unit_number=number,
                date=parsed_date,
                start=format_minutes(placed.interval.start),
                end=format_minutes(placed.interval.end),
                duration_hours=quote.duration_hours,
                unit_rate=quote.unit_rate,
                total_amount=quote.total_amount,
                status=ReservationStatus.CONFIRMED,
                payment_status=PaymentStatus.UNPAID,
                created_at=tx.now,
                updated_at=tx.now,
                notes=notes,
            )
            tx.create(record)
            tx.log(
                "RESERVATION_CREATED",
                {
                    "reservation_id": record.reservation_id,
                    "requester_id": requester_id,
                    "pool_id": pool.pool_id,
                    "unit": f"{selector.label} #{number}",
                    "date": parsed_date.isoformat(),
                    "start": record.start,
                    "end": record.end,
                    "total_amount": record.total_amount,
                },
            )
            return record

        try:
            return self.repository.run_transaction(commit, timeout=self.transaction_timeout)
        except ConflictError as error:
            logger.warning(
                "Reservation conflict on %s %s #%s %s: available %s",
                pool.pool_id,
                parsed_date.isoformat(),
                number,
                placed.interval.label(),
                error.available_units,
            )
            self.repository.log_event(
                "RESERVATION_CONFLICT",
                {
                    "requester_id": requester_id,
                    "pool_id": pool.pool_id,
                    "unit": f"{selector.label} #{number}",
                    "date": parsed_date.isoformat(),
                    "start": start,
                    "end": end,
                    "available_units": error.available_units,
                },
                self.clock(),
            )
            raise

    # -- lookups --------------------------------------------------------

    def get_reservation(self, actor_id: str, reservation_id: str) -> ReservationRecord:
        record = self.repository.get(reservation_id)
        if record is None:
            raise NotFoundError("Reservation not found")
        self._authorize(actor_id, record, "view")
        return record

    def list_my_reservations(
        self,
        requester_id: str,
        status: str | None = None,
        page: Any = None,
        limit: Any = None,
    ) -> MyReservations:
        """The requester's reservations, newest first, one page at a time.

        ``upcoming`` and ``past`` split the returned page only.
        """
        requester_id = _require_text(requester_id, "requester_id")
        wanted = parse_status(status) if status else None
        page_number = _parse_positive_int(1 if page is None else page, "page")
        page_size = _parse_positive_int(MY_RESERVATIONS_PAGE_SIZE if limit is None else limit, "limit")

        rows = self.repository.list_by_requester(requester_id)
        if wanted is not None:
            rows = [record for record in rows if record.status is wanted]
        rows.sort(key=lambda record: (record.date, record.start), reverse=True)

        offset = (page_number - 1) * page_size
        return MyReservations(
            reservations=rows[offset:offset + page_size],
            total=len(rows),
            page=page_number,
            limit=page_size,
            today=self.clock().date(),
        )

    def list_pool_reservations(
        self,
        actor_id: str,
        pool_id: str,
        target_date: str | date | None = None,
        status: str | None = None,
        page: Any = None,
        limit: Any = None,
    ) -> ReservationPage:
        parsed_date = parse_date(target_date) if target_date else None
        wanted = parse_status(status) if status else None
        page_number = _parse_positive_int(1 if page is None else page, "page")
        page_size = _parse_positive_int(POOL_RESERVATIONS_PAGE_SIZE if limit is None else limit, "limit")
        pool = self._require_pool(pool_id)
        if actor_id != pool.owner_id:
            raise ForbiddenError("Not authorized to view these reservations")

        rows = self.repository.list_by_pool(pool.pool_id, parsed_date, wanted)
        rows.sort(key=lambda record: (record.date, record.start, record.unit_number))

        offset = (page_number - 1) * page_size
        return ReservationPage(
            reservations=rows[offset:offset + page_size],
            total=len(rows),
            page=page_number,
            limit=page_size,
        )

    # -- lifecycle ------------------------------------------------------

    def cancel_reservation(self, actor_id: str, reservation_id: str) -> ReservationRecord:
        def apply(tx: Transaction) -> ReservationRecord:
            record = tx.get(reservation_id)
            if record is None:
                raise NotFoundError("Reservation not found")
            self._authorize(actor_id, record, "cancel")

            updated = lifecycle.cancel(record, tx.now)
            tx.update(updated)
            tx.log(
                "RESERVATION_STATUS_CHANGED",
                {
                    "reservation_id": reservation_id,
                    "actor_id": actor_id,
                    "from": record.status.value,
                    "to": updated.status.value,
                },
            )
            return updated

        return self.repository.run_transaction(apply, timeout=self.transaction_timeout)

    def set_reservation_status(self, actor_id: str, reservation_id: str, new_status: str) -> ReservationRecord:
        target = parse_status(new_status)

        def apply(tx: Transaction) -> ReservationRecord:
            record = tx.get(reservation_id)
            if record is None:
                raise NotFoundError("Reservation not found")
            pool = self.pools.get_pool(record.pool_id)
            if pool is None or pool.owner_id != actor_id:
                raise ForbiddenError("Not authorized to update this reservation")

            updated = lifecycle.transition(record, target, tx.now)
            if updated is not record:
                tx.update(updated)
                tx.log(
                    "RESERVATION_STATUS_CHANGED",
                    {
                        "reservation_id": reservation_id,
                        "actor_id": actor_id,
                        "from": record.status.value,
                        "to": updated.status.value,
                    },
                )
            return updated

        return self.repository.run_transaction(apply, timeout=self.transaction_timeout)

    def set_payment_status(self, reservation_id: str, payment_status: str | PaymentStatus) -> ReservationRecord:
        """Entry point for the payment collaborator; touches nothing but ``payment_status``."""
        try:
            target = PaymentStatus(payment_status)
        except ValueError:
            raise ValidationError("Invalid payment status") from None

        def apply(tx: Transaction) -> ReservationRecord:
            record = tx.get(reservation_id)
            if record is None:
                raise NotFoundError("Reservation not found")
            if record.payment_status is target:
                return record

            updated = record.with_changes(payment_status=target, updated_at=tx.now)
            tx.update(updated)
            tx.log(
                "PAYMENT_STATUS_CHANGED",
                {
                    "reservation_id": reservation_id,
                    "from": record.payment_status.value,
                    "to": target.value,
                },
            )
            return updated

        return self.repository.run_transaction(apply, timeout=self.transaction_timeout)

    # -- helpers --------------------------------------------------------

    def _require_pool(self, pool_id: str) -> ResourcePool:
        pool_id = _require_text(pool_id, "pool_id")
        pool = self.pools.get_pool(pool_id)
        if pool is None:
            raise NotFoundError("Venue not found")
        return pool

    def _place(
        self,
        pool: ResourcePool,
        selector: UnitSelector,
        target_date: date,
        start: str,
        end: str,
    ) -> _PlacedRequest:
        hours = pool.operating_hours(target_date)
        if hours is None:
            raise ValidationError(f"This venue is closed on {target_date.isoformat()}")
        try:
            interval = hours.place(start, end)
        except ValueError as error:
            raise ValidationError(str(error)) from None
        return _PlacedRequest(pool, selector, hours, interval, pool.capacity(selector))

    def _authorize(self, actor_id: str, record: ReservationRecord, action: str) -> None:
        if actor_id and actor_id == record.requester_id:
            return
        pool = self.pools.get_pool(record.pool_id)
        if pool is not None and actor_id and actor_id == pool.owner_id:
            return
        raise ForbiddenError(f"Not authorized to {action} this reservation")

    def _clean_notes(self, notes: str | None) -> str | None:
        if notes is None:
            return None
        cleaned = str(notes).strip()
        if not cleaned:
            return None
        if len(cleaned) > self.notes_max_length:
            raise ValidationError(f"notes must be at most {self.notes_max_length} characters")
        return cleaned


def _require_text(value: Any, field_name: str) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValidationError(f"{field_name} is required")
    return text


def _parse_unit_number(value: Any) -> int:
    return _parse_positive_int(value, "unit_number")


def _parse_positive_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a positive integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a positive integer") from None
    if isinstance(value, float) and value != number:
        raise ValidationError(f"{field_name} must be a positive integer")
    if number < 1:
        raise ValidationError(f"{field_name} must be a positive integer")
    return number
