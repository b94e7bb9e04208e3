from datetime import date, time, timedelta

import pytest

from scheduling.calendar import (
    DEFAULT_BUSINESS_HOURS, Slot, iter_dates, iter_slots, parse_business_hours, parse_time,
)
from scheduling.errors import ValidationError


def test_default_business_hours_are_ten_hourly_slots():
    assert len(DEFAULT_BUSINESS_HOURS) == 10
    assert DEFAULT_BUSINESS_HOURS[0] == time(8, 0)
    assert DEFAULT_BUSINESS_HOURS[-1] == time(17, 0)


def test_iter_slots_covers_every_date_and_hour_in_order():
    slots = list(iter_slots(date(2025, 1, 20), date(2025, 1, 22)))
    assert len(slots) == 30
    assert slots[0] == Slot(date(2025, 1, 20), time(8, 0))
    assert slots[-1] == Slot(date(2025, 1, 22), time(17, 0))
    assert slots == sorted(slots)


def test_iter_slots_single_day():
    slots = list(iter_slots(date(2025, 1, 20), date(2025, 1, 20), (time(9, 0), time(10, 0))))
    assert [s.time for s in slots] == [time(9, 0), time(10, 0)]


def test_iter_slots_empty_when_end_before_start():
    assert list(iter_slots(date(2025, 1, 21), date(2025, 1, 20))) == []


def test_iter_slots_restarts_on_each_call():
    start, end = date(2025, 1, 20), date(2025, 1, 20)
    assert list(iter_slots(start, end)) == list(iter_slots(start, end))


def test_slot_to_dict():
    assert Slot(date(2025, 1, 20), time(9, 0)).to_dict() == {"date": "2025-01-20", "time": "09:00"}


@pytest.mark.parametrize("raw,expected", [("09:00", time(9, 0)), ("14:30:00", time(14, 30)), (" 08:00 ", time(8, 0))])
def test_parse_time_accepts_both_formats(raw, expected):
    assert parse_time(raw) == expected


@pytest.mark.parametrize("raw", ["", "9am", "25:00", "12-00"])
def test_parse_time_rejects_garbage(raw):
    with pytest.raises(ValidationError):
        parse_time(raw)


def test_parse_business_hours_from_csv():
    assert parse_business_hours("09:00, 10:00,11:00") == (time(9, 0), time(10, 0), time(11, 0))


def test_parse_business_hours_rejects_empty_and_unordered():
    with pytest.raises(ValidationError):
        parse_business_hours("")
    with pytest.raises(ValidationError):
        parse_business_hours(["10:00", "09:00"])
    with pytest.raises(ValidationError):
        parse_business_hours(["09:00", "09:00"])


def test_iter_slots_on_the_last_representable_day():
    slots = list(iter_slots(date.max, date.max))
    assert len(slots) == 10
    assert {s.date for s in slots} == {date.max}


def test_iter_dates_stops_at_date_max():
    start = date.max - timedelta(days=2)
    assert list(iter_dates(start, date.max)) == [start, start + timedelta(days=1), date.max]
