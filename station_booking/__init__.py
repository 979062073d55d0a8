from .errors import (
	ConflictError,
	ForbiddenError,
	InvalidStateError,
	NotFoundError,
	ReservationError,
	ReservationStorageError,
	UnavailableError,
	ValidationError,
)
from .models import ConsoleType, PaymentStatus, ReservationRecord, ReservationStatus, UnitKind, UnitSelector
from .pools import ConsoleConfig, PoolDirectory, ResourcePool
from .repository import InMemoryReservationRepository, ReservationRepository
from .service import AvailabilityCheck, MyReservations, ReservationPage, ReservationService, UnitAvailability
from .time_interval import OperatingHours, TimeInterval, has_time_overlap, time_to_minutes
from .yaml_store import ReservationYamlRepository

__all__ = [
	"AvailabilityCheck",
	"ConflictError",
	"ConsoleConfig",
	"ConsoleType",
	"ForbiddenError",
	"InMemoryReservationRepository",
	"InvalidStateError",
	"MyReservations",
	"NotFoundError",
	"OperatingHours",
	"PaymentStatus",
	"PoolDirectory",
	"ReservationError",
	"ReservationPage",
	"ReservationRecord",
	"ReservationRepository",
	"ReservationService",
	"ReservationStatus",
	"ReservationStorageError",
	"ReservationYamlRepository",
	"ResourcePool",
	"TimeInterval",
	"UnavailableError",
	"UnitAvailability",
	"UnitKind",
	"UnitSelector",
	"ValidationError",
	"has_time_overlap",
	"time_to_minutes",
]
