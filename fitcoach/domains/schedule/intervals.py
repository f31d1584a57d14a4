"""Time interval helpers.

All instants handled by the engine are timezone-aware. Wall-clock strings
("HH:MM") only acquire meaning once combined with a calendar date and the
operating zone, which every helper here takes explicitly.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo


@dataclass(frozen=True)
class TimeWindow:
    """Wall-clock window within a single day."""

    start: str  # HH:MM
    end: str  # HH:MM

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, data: dict) -> "TimeWindow":
        return cls(start=data["start"], end=data["end"])


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open overlap test: touching intervals do not overlap."""
    return start_a < end_b and start_b < end_a


def parse_hhmm(value: str) -> time:
    """Parse an ``HH:MM`` wall-clock string."""
    try:
        hours, minutes = value.split(":")
        return time(int(hours), int(minutes))
    except (AttributeError, TypeError, ValueError):
        raise ValueError(f"Invalid time of day {value!r}, expected HH:MM")


def ensure_utc(dt: datetime) -> datetime:
    """Return ``dt`` as an aware UTC datetime (naive values are taken as UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_local(dt: datetime, tz: tzinfo) -> datetime:
    return ensure_utc(dt).astimezone(tz)


def local_date_of(dt: datetime, tz: tzinfo) -> date:
    return to_local(dt, tz).date()


def combine_local(day: date, hhmm: str, tz: tzinfo) -> datetime:
    """Interpret ``hhmm`` on ``day`` in ``tz``."""
    return datetime.combine(day, parse_hhmm(hhmm), tzinfo=tz)


def window_bounds(day: date, window: TimeWindow, tz: tzinfo) -> tuple[datetime, datetime]:
    return combine_local(day, window.start, tz), combine_local(day, window.end, tz)


def start_of_local_day(dt: datetime, tz: tzinfo) -> datetime:
    """Local midnight of the day containing ``dt``, as an aware datetime."""
    return datetime.combine(local_date_of(dt, tz), time(0, 0), tzinfo=tz)


def local_midnight(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, time(0, 0), tzinfo=tz)


def session_interval(start: datetime, duration_minutes: int) -> tuple[datetime, datetime]:
    begin = ensure_utc(start)
    return begin, begin + timedelta(minutes=duration_minutes)


def date_range(start: date, end: date):
    """Yield every date from ``start`` to ``end`` inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
