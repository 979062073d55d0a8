from __future__ import annotations

from dataclasses import dataclass
import re

MINUTES_PER_DAY = 24 * 60

_TIME_RE = re.compile(r"^(?P<hour>\d{1,2}):(?P<minute>\d{2})(?::(?P<second>\d{2}))?$")


def time_to_minutes(value: str) -> int:
    """Convert an ``HH:MM`` or ``HH:MM:SS`` time of day to minutes since midnight."""
    if value is None:
        raise ValueError("time must not be None")

    match = _TIME_RE.match(str(value).strip())
    if not match:
        raise ValueError(f"Invalid time of day: {value!r}. Expected HH:MM")

    hour = int(match.group("hour"))
    minute = int(match.group("minute"))
    if hour > 23 or minute > 59:
        raise ValueError(f"Invalid time of day: {value!r}")
    return hour * 60 + minute


def format_minutes(minutes: int) -> str:
    minutes = minutes % MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def has_time_overlap(new_start: int, new_end: int, exist_start: int, exist_end: int) -> bool:
    """Return True when two minute intervals overlap by even one minute.

    Intervals are treated as half-open ranges: [start, end)
    so touching boundaries (e.g. 10:00-11:00 and 11:00-12:00) do not overlap.
    """
    if new_start >= new_end:
        raise ValueError("new_start must be earlier than new_end.")
    if exist_start >= exist_end:
        raise ValueError("exist_start must be earlier than exist_end.")

    return new_start < exist_end and new_end > exist_start


@dataclass(frozen=True)
class TimeInterval:
    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError("Reservation start time must be earlier than end time.")

    @property
    def duration_minutes(self) -> int:
        return self.end - self.start

    @property
    def duration_hours(self) -> float:
        return self.duration_minutes / 60.0

    def overlaps(self, other: "TimeInterval") -> bool:
        return has_time_overlap(self.start, self.end, other.start, other.end)

    def label(self) -> str:
        return f"{format_minutes(self.start)}-{format_minutes(self.end)}"


def normalize_interval(start: str, end: str) -> TimeInterval:
    """Place a start/end pair on a single scale, rolling the end into the next day if needed."""
    start_minutes = time_to_minutes(start)
    end_minutes = time_to_minutes(end)
    if end_minutes < start_minutes:
        end_minutes += MINUTES_PER_DAY
    return TimeInterval(start_minutes, end_minutes)


@dataclass(frozen=True)
class OperatingHours:
    """Opening hours of a venue for one day.

    ``close < open`` means the venue closes after midnight; the close
    boundary is then compared as ``close + 1440``.
    """

    open: int
    close: int

    @classmethod
    def from_strings(cls, opening_time: str, closing_time: str) -> "OperatingHours":
        return cls(time_to_minutes(opening_time), time_to_minutes(closing_time))

    @property
    def crosses_midnight(self) -> bool:
        return self.close < self.open

    @property
    def close_on_day_scale(self) -> int:
        if self.crosses_midnight:
            return self.close + MINUTES_PER_DAY
        return self.close

    def align(self, start: str, end: str) -> tuple[int, int]:
        """Shift post-midnight times onto this venue day's scale without validating them."""
        start_minutes = time_to_minutes(start)
        end_minutes = time_to_minutes(end)
        if self.crosses_midnight:
            if start_minutes < self.open:
                start_minutes += MINUTES_PER_DAY
            if end_minutes < start_minutes:
                end_minutes += MINUTES_PER_DAY
        return start_minutes, end_minutes

    def place(self, start: str, end: str) -> TimeInterval:
        """Return the requested times as an interval on this venue day's scale.

        Raises ValueError for empty intervals and for intervals that fall
        outside the opening hours.
        """
        start_minutes, end_minutes = self.align(start, end)
        close = self.close_on_day_scale

        if end_minutes <= start_minutes:
            raise ValueError("End time must be after start time")
        if start_minutes < self.open or start_minutes >= close or end_minutes > close:
            raise ValueError(
                f"Reservation time must be within opening hours: {format_minutes(self.open)} - {format_minutes(self.close)}"
            )
        return TimeInterval(start_minutes, end_minutes)

    def label(self) -> str:
        return f"{format_minutes(self.open)}-{format_minutes(self.close)}"
