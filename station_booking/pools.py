from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Iterable, Mapping

import holidays as pyholidays
import yaml

from .errors import ReservationStorageError
from .models import ConsoleType, UnitKind, UnitSelector
from .time_interval import OperatingHours

_HOLIDAY_CACHE: dict[tuple[str, int], set[date]] = {}


@dataclass(frozen=True)
class ConsoleConfig:
    quantity: int = 0
    hourly_rate: float | None = None


@dataclass(frozen=True)
class ResourcePool:
    """A venue's bookable inventory. Owned by the catalog service, read-only here."""

    pool_id: str
    name: str
    owner_id: str
    opening_time: str
    closing_time: str
    is_active: bool = True
    generic_units: int = 0
    generic_rate: float | None = None
    typed_rate: float | None = None
    default_rate: float | None = None
    consoles: Mapping[ConsoleType, ConsoleConfig] = field(default_factory=dict)
    closed_on_holidays: bool = False
    holiday_country: str | None = None

    def capacity(self, selector: UnitSelector) -> int:
        if selector.kind is UnitKind.GENERIC:
            return max(0, int(self.generic_units or 0))
        config = self.consoles.get(selector.subtype) if selector.subtype else None
        if config is None:
            return 0
        return max(0, int(config.quantity or 0))

    def operating_hours(self, target_date: date) -> OperatingHours | None:
        """Opening hours for ``target_date``, or None when the venue is closed that day."""
        if self.closed_on_holidays and self.holiday_country and _is_public_holiday(self.holiday_country, target_date):
            return None
        return OperatingHours.from_strings(self.opening_time, self.closing_time)

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "ResourcePool":
        consoles: dict[ConsoleType, ConsoleConfig] = {}
        for key, value in (data.get("consoles") or {}).items():
            value = value or {}
            consoles[ConsoleType(str(key))] = ConsoleConfig(
                quantity=int(value.get("quantity") or 0),
                hourly_rate=_optional_float(value.get("hourly_rate")),
            )

        return ResourcePool(
            pool_id=str(data["pool_id"]),
            name=str(data.get("name") or data["pool_id"]),
            owner_id=str(data["owner_id"]),
            opening_time=_clock_text(data["opening_time"]),
            closing_time=_clock_text(data["closing_time"]),
            is_active=bool(data.get("is_active", True)),
            generic_units=int(data.get("generic_units") or 0),
            generic_rate=_optional_float(data.get("generic_rate")),
            typed_rate=_optional_float(data.get("typed_rate")),
            default_rate=_optional_float(data.get("default_rate")),
            consoles=consoles,
            closed_on_holidays=bool(data.get("closed_on_holidays", False)),
            holiday_country=(str(data["holiday_country"]) if data.get("holiday_country") else None),
        )


class PoolDirectory:
    """Read-only lookup of resource pools by id."""

    def __init__(self, pools: Iterable[ResourcePool] = ()) -> None:
        self._pools = {pool.pool_id: pool for pool in pools}

    def get_pool(self, pool_id: str) -> ResourcePool | None:
        return self._pools.get(pool_id)

    def all_pools(self) -> list[ResourcePool]:
        return sorted(self._pools.values(), key=lambda pool: pool.pool_id)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "PoolDirectory":
        path = Path(path)
        if not path.exists():
            return cls()
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            raise ReservationStorageError(f"Failed to read pool directory: {path}") from error

        if payload is None:
            return cls()
        if not isinstance(payload, list):
            raise ReservationStorageError(f"Pool directory must be a YAML list: {path}")
        return cls(ResourcePool.from_dict(row) for row in payload if isinstance(row, dict))


def _optional_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def _clock_text(value: Any) -> str:
    # YAML 1.1 reads an unquoted 22:00 as the base-60 integer 1320.
    if isinstance(value, int) and not isinstance(value, bool):
        return f"{value // 60:02d}:{value % 60:02d}"
    return str(value)


def _is_public_holiday(country: str, target_date: date) -> bool:
    key = (country.upper(), target_date.year)
    if key not in _HOLIDAY_CACHE:
        holiday_map = pyholidays.country_holidays(key[0], years=[target_date.year])
        _HOLIDAY_CACHE[key] = set(holiday_map.keys())
    return target_date in _HOLIDAY_CACHE[key]
