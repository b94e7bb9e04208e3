from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterator, Sequence

from scheduling.errors import ValidationError

# 08:00 through 17:00, 1-hour steps
DEFAULT_BUSINESS_HOURS = tuple(time(h, 0) for h in range(8, 18))


@dataclass(frozen=True, order=True)
class Slot:
    date: date
    time: time

    def to_dict(self) -> dict:
        return {"date": self.date.isoformat(), "time": self.time.strftime("%H:%M")}


def parse_time(value: str) -> time:
    """Accepts HH:MM or HH:MM:SS."""
    value = (value or "").strip()
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(value, fmt).time()
        except ValueError:
            continue
    raise ValidationError("Invalid time format (use HH:MM:SS or HH:MM)")


def parse_business_hours(values) -> tuple:
    """
    Turn configured slot starts ("08:00,09:00,..." or a list) into ordered time values.
    Raises ValidationError on bad or unordered entries so a broken config fails at startup.
    """
    if isinstance(values, str):
        values = [v for v in (p.strip() for p in values.split(",")) if v]

    hours = tuple(v if isinstance(v, time) else parse_time(v) for v in values)
    if not hours:
        raise ValidationError("BUSINESS_HOURS must contain at least one slot")
    if any(a >= b for a, b in zip(hours, hours[1:])):
        raise ValidationError("BUSINESS_HOURS must be strictly ascending")
    return hours


def iter_dates(start: date, end: date) -> Iterator[date]:
    # never steps past end, so end == date.max is safe
    for n in range((end - start).days + 1):
        yield start + timedelta(days=n)


def iter_slots(start: date, end: date, business_hours: Sequence[time] = DEFAULT_BUSINESS_HOURS) -> Iterator[Slot]:
    """
    Every (date, time) in [start, end] x business_hours, dates ascending.
    Empty when end < start. Each call starts over; nothing is cached.
    """
    for day in iter_dates(start, end):
        for t in business_hours:
            yield Slot(day, t)
