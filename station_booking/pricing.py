from __future__ import annotations

from dataclasses import dataclass

from .models import UnitKind, UnitSelector
from .pools import ResourcePool
from .time_interval import TimeInterval


@dataclass(frozen=True)
class PriceQuote:
    duration_hours: float
    unit_rate: float
    total_amount: float

    def to_dict(self) -> dict[str, float]:
        return {
            "duration_hours": self.duration_hours,
            "unit_rate": self.unit_rate,
            "total_amount": self.total_amount,
        }


def resolve_rate(pool: ResourcePool, selector: UnitSelector) -> float:
    """Hourly rate for a unit: subtype rate, then the kind default, then the pool default.

    A rate of zero counts as unset.
    """
    candidates: list[float | None] = []
    if selector.kind is UnitKind.TYPED:
        config = pool.consoles.get(selector.subtype) if selector.subtype else None
        candidates.append(config.hourly_rate if config else None)
        candidates.append(pool.typed_rate)
    else:
        candidates.append(pool.generic_rate)
    candidates.append(pool.default_rate)

    for rate in candidates:
        if rate is not None and rate > 0:
            return float(rate)
    return 0.0


def quote_price(interval: TimeInterval, rate: float) -> PriceQuote:
    duration_hours = interval.duration_minutes / 60.0
    return PriceQuote(
        duration_hours=duration_hours,
        unit_rate=float(rate),
        total_amount=duration_hours * float(rate),
    )
