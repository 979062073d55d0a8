from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum
from typing import Any

from .errors import ValidationError


class UnitKind(str, Enum):
    GENERIC = "generic"
    TYPED = "typed"


class ConsoleType(str, Enum):
    PS5 = "ps5"
    PS4 = "ps4"
    XBOX_SERIES_X = "xbox_series_x"
    XBOX_SERIES_S = "xbox_series_s"
    XBOX_ONE = "xbox_one"
    NINTENDO_SWITCH = "nintendo_switch"


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"


# Reservations in these states take part in overlap checks.
LIVE_STATUSES = frozenset({ReservationStatus.PENDING, ReservationStatus.CONFIRMED})
TERMINAL_STATUSES = frozenset({ReservationStatus.CANCELLED, ReservationStatus.COMPLETED})

_KIND_ALIASES = {
    "generic": UnitKind.GENERIC,
    "pc": UnitKind.GENERIC,
    "typed": UnitKind.TYPED,
    "console": UnitKind.TYPED,
}


@dataclass(frozen=True)
class UnitSelector:
    kind: UnitKind
    subtype: ConsoleType | None = None

    def __post_init__(self) -> None:
        if self.kind is UnitKind.TYPED and self.subtype is None:
            raise ValidationError("Console type is required for console reservations")
        if self.kind is UnitKind.GENERIC and self.subtype is not None:
            raise ValidationError("Console type is only allowed for console reservations")

    @classmethod
    def parse(cls, kind: str | UnitKind | None, subtype: str | ConsoleType | None = None) -> "UnitSelector":
        if isinstance(kind, UnitKind):
            parsed_kind = kind
        else:
            key = str(kind or "generic").strip().lower()
            if key not in _KIND_ALIASES:
                raise ValidationError(f"Invalid unit kind: {kind!r}. Valid kinds: generic, typed")
            parsed_kind = _KIND_ALIASES[key]

        parsed_subtype: ConsoleType | None = None
        if isinstance(subtype, ConsoleType):
            parsed_subtype = subtype
        elif subtype is not None and str(subtype).strip():
            try:
                parsed_subtype = ConsoleType(str(subtype).strip().lower())
            except ValueError:
                valid = ", ".join(item.value for item in ConsoleType)
                raise ValidationError(f"Invalid console type. Valid types: {valid}") from None

        return cls(parsed_kind, parsed_subtype)

    @property
    def label(self) -> str:
        if self.subtype is None:
            return "PC stations"
        return f"{self.subtype.value} consoles"


def parse_date(value: str | date) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r}. Use YYYY-MM-DD") from None


def parse_status(value: str | ReservationStatus) -> ReservationStatus:
    if isinstance(value, ReservationStatus):
        return value
    try:
        return ReservationStatus(str(value).strip().lower())
    except ValueError:
        raise ValidationError("Invalid status") from None


@dataclass(frozen=True)
class ReservationRecord:
    reservation_id: str
    requester_id: str
    pool_id: str
    selector: UnitSelector
    unit_number: int
    date: date
    start: str
    end: str
    duration_hours: float
    unit_rate: float
    total_amount: float
    status: ReservationStatus
    payment_status: PaymentStatus
    created_at: datetime
    updated_at: datetime
    notes: str | None = None
    cancelled_at: datetime | None = None

    @property
    def index_key(self) -> tuple[str, str, str | None, str]:
        return index_key(self.pool_id, self.selector, self.date)

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    def with_changes(self, **changes: Any) -> "ReservationRecord":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "reservation_id": self.reservation_id,
            "requester_id": self.requester_id,
            "pool_id": self.pool_id,
            "unit_kind": self.selector.kind.value,
            "unit_subtype": self.selector.subtype.value if self.selector.subtype else None,
            "unit_number": self.unit_number,
            "date": self.date.isoformat(),
            "start": self.start,
            "end": self.end,
            "duration_hours": self.duration_hours,
            "unit_rate": self.unit_rate,
            "total_amount": self.total_amount,
            "status": self.status.value,
            "payment_status": self.payment_status.value,
            "notes": self.notes,
            "created_at": self.created_at.isoformat(timespec="seconds"),
            "updated_at": self.updated_at.isoformat(timespec="seconds"),
        }
        if self.cancelled_at is not None:
            payload["cancelled_at"] = self.cancelled_at.isoformat(timespec="seconds")
        return payload

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "ReservationRecord":
        cancelled_at = data.get("cancelled_at")
        return ReservationRecord(
            reservation_id=str(data["reservation_id"]),
            requester_id=str(data["requester_id"]),
            pool_id=str(data["pool_id"]),
            selector=UnitSelector.parse(data["unit_kind"], data.get("unit_subtype")),
            unit_number=int(data["unit_number"]),
            date=date.fromisoformat(str(data["date"])),
            start=str(data["start"]),
            end=str(data["end"]),
            duration_hours=float(data["duration_hours"]),
            unit_rate=float(data["unit_rate"]),
            total_amount=float(data["total_amount"]),
            status=ReservationStatus(str(data["status"])),
            payment_status=PaymentStatus(str(data.get("payment_status", "unpaid"))),
            created_at=datetime.fromisoformat(str(data["created_at"])),
            updated_at=datetime.fromisoformat(str(data["updated_at"])),
            notes=(str(data.get("notes")) if data.get("notes") is not None else None),
            cancelled_at=(datetime.fromisoformat(str(cancelled_at)) if cancelled_at is not None else None),
        )


def index_key(pool_id: str, selector: UnitSelector, target_date: date) -> tuple[str, str, str | None, str]:
    """Secondary access pattern used for the overlap scan."""
    subtype = selector.subtype.value if selector.subtype else None
    return (pool_id, selector.kind.value, subtype, target_date.isoformat())
