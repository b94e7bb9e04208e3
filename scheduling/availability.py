import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional

from scheduling.calendar import DEFAULT_BUSINESS_HOURS, iter_slots
from scheduling import ledger

logger = logging.getLogger(__name__)


@dataclass
class Availability:
    start_date: date
    end_date: date
    slots_by_date: dict = field(default_factory=dict)  # date -> [time, ...] in business-hour order
    booked_slots: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "availableSlots": [
                {"date": d.isoformat(), "times": [t.strftime("%H:%M") for t in times]}
                for d, times in self.slots_by_date.items()
            ],
            "bookedSlots": [s.to_dict() for s in self.booked_slots],
        }


def parse_date_lenient(value: Optional[str]) -> Optional[date]:
    """YYYY-MM-DD, optionally followed by an ISO time part ("T..."). Anything else is None."""
    if not isinstance(value, str) or not value.strip():
        return None
    day_part = value.strip().split("T", 1)[0]
    try:
        return datetime.strptime(day_part, "%Y-%m-%d").date()
    except ValueError:
        return None


class AvailabilityEngine:
    """Public read path: business hours minus the ledger's occupied slots."""

    def __init__(self, business_hours=DEFAULT_BUSINESS_HOURS, default_days: int = 7,
                 cancelled_slots_rebookable: bool = True, max_days: int = 90):
        self.business_hours = tuple(business_hours)
        self.default_days = default_days
        self.max_days = max_days
        self.cancelled_slots_rebookable = cancelled_slots_rebookable

    @property
    def include_cancelled(self) -> bool:
        return not self.cancelled_slots_rebookable

    def resolve_range(self, start=None, end=None, today: Optional[date] = None):
        """
        Accepts date objects or YYYY-MM-DD strings. Missing or unparseable bounds
        fall back to today .. today + default_days. A span longer than max_days
        is clamped to start + max_days.
        """
        today = today or date.today()
        if isinstance(start, str) or start is None:
            start = parse_date_lenient(start)
        if isinstance(end, str) or end is None:
            end = parse_date_lenient(end)
        start = start or today
        end = end or (today + timedelta(days=self.default_days))
        if (end - start).days > self.max_days:
            end = start + timedelta(days=self.max_days)
        return start, end

    def availability(self, provider_id: str, start=None, end=None, today: Optional[date] = None) -> Availability:
        start_date, end_date = self.resolve_range(start, end, today=today)
        booked = ledger.booked_slots(provider_id, start_date, end_date, include_cancelled=self.include_cancelled)

        result = Availability(start_date=start_date, end_date=end_date)
        for slot in iter_slots(start_date, end_date, self.business_hours):
            times = result.slots_by_date.setdefault(slot.date, [])
            if slot not in booked:
                times.append(slot.time)

        result.booked_slots = sorted(booked)
        logger.debug(
            "Availability for %s %s..%s: %d booked", provider_id, start_date, end_date, len(booked)
        )
        return result
