from __future__ import annotations

from typing import Any


class ReservationError(Exception):
    """Base class for errors surfaced to callers of the booking engine."""

    code = "internal"
    http_status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"ok": False, "error": self.code, "message": self.message}


class ValidationError(ReservationError, ValueError):
    code = "validation"
    http_status = 400


class NotFoundError(ReservationError):
    code = "not_found"
    http_status = 404


class ForbiddenError(ReservationError):
    code = "forbidden"
    http_status = 403


class ConflictError(ReservationError):
    """The requested unit is no longer free; carries the units that still are."""

    code = "conflict"
    http_status = 409

    def __init__(self, message: str, available_units: list[int]) -> None:
        super().__init__(message)
        self.available_units = list(available_units)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["available_units"] = self.available_units
        payload["first_available"] = self.available_units[0] if self.available_units else None
        return payload


class InvalidStateError(ReservationError):
    code = "invalid_state"
    http_status = 409


class UnavailableError(ReservationError):
    code = "unavailable"
    http_status = 503


class ReservationStorageError(UnavailableError):
    pass
