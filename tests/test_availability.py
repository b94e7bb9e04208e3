from datetime import date, time, timedelta

from models import db
from scheduling.availability import AvailabilityEngine, parse_date_lenient
from scheduling.calendar import Slot, iter_slots

from tests.conftest import make_appointment, make_customer, make_provider

MONDAY = date(2025, 1, 20)


def test_booked_slot_is_excluded(app, provider, customer):
    make_appointment(provider, customer, day=MONDAY, at=time(10, 0))

    result = AvailabilityEngine().availability(provider.id, "2025-01-20", "2025-01-20")
    body = result.to_dict()

    assert body["startDate"] == body["endDate"] == "2025-01-20"
    assert body["availableSlots"] == [{
        "date": "2025-01-20",
        "times": ["08:00", "09:00", "11:00", "12:00", "13:00", "14:00", "15:00", "16:00", "17:00"],
    }]
    assert body["bookedSlots"] == [{"date": "2025-01-20", "time": "10:00"}]


def test_available_and_booked_partition_the_window(app, provider, customer):
    taken = [(MONDAY, time(8, 0)), (MONDAY, time(17, 0)), (MONDAY + timedelta(days=2), time(12, 0))]
    for day, at in taken:
        make_appointment(provider, customer, day=day, at=at)

    end = MONDAY + timedelta(days=3)
    result = AvailabilityEngine().availability(provider.id, MONDAY, end)

    available = {Slot(d, t) for d, times in result.slots_by_date.items() for t in times}
    booked = set(result.booked_slots)
    assert booked == {Slot(d, t) for d, t in taken}
    assert not available & booked
    assert available | booked == set(iter_slots(MONDAY, end))


def test_only_this_providers_bookings_count(app, provider, customer):
    other = make_provider("rival", "Rival Wash")
    make_appointment(other, customer, day=MONDAY, at=time(9, 0))

    result = AvailabilityEngine().availability(provider.id, MONDAY, MONDAY)
    assert result.booked_slots == []
    assert time(9, 0) in result.slots_by_date[MONDAY]


def test_cancelled_slot_is_open_by_default(app, provider, customer):
    appt = make_appointment(provider, customer, day=MONDAY, at=time(9, 0), status="cancelled")
    assert appt.status == "cancelled"

    result = AvailabilityEngine().availability(provider.id, MONDAY, MONDAY)
    assert time(9, 0) in result.slots_by_date[MONDAY]


def test_cancelled_slot_held_when_not_rebookable(app, provider, customer):
    make_appointment(provider, customer, day=MONDAY, at=time(9, 0), status="cancelled")

    engine = AvailabilityEngine(cancelled_slots_rebookable=False)
    result = engine.availability(provider.id, MONDAY, MONDAY)
    assert time(9, 0) not in result.slots_by_date[MONDAY]


def test_end_before_start_is_empty(app, provider):
    result = AvailabilityEngine().availability(provider.id, "2025-01-21", "2025-01-20")
    assert result.to_dict()["availableSlots"] == []
    assert result.booked_slots == []


def test_missing_or_bad_dates_default_to_a_week_from_today(app, provider):
    engine = AvailabilityEngine(default_days=7)
    start, end = engine.resolve_range("not-a-date", None, today=MONDAY)
    assert start == MONDAY
    assert end == MONDAY + timedelta(days=7)

    result = engine.availability(provider.id, today=MONDAY)
    assert len(result.slots_by_date) == 8


def test_custom_business_hours(app, provider):
    engine = AvailabilityEngine(business_hours=(time(9, 0), time(13, 0)))
    result = engine.availability(provider.id, MONDAY, MONDAY)
    assert result.slots_by_date[MONDAY] == [time(9, 0), time(13, 0)]


def test_parse_date_lenient():
    assert parse_date_lenient("2025-01-20") == MONDAY
    assert parse_date_lenient("2025-01-20T10:00:00Z") == MONDAY
    assert parse_date_lenient("20/01/2025") is None
    assert parse_date_lenient("") is None
    assert parse_date_lenient(None) is None


def test_second_customer_sees_slot_gone(app, provider, customer):
    other = make_customer("Jane Doe", "5559876543")
    make_appointment(provider, other, day=MONDAY, at=time(15, 0))
    db.session.expire_all()

    result = AvailabilityEngine().availability(provider.id, MONDAY, MONDAY)
    assert time(15, 0) not in result.slots_by_date[MONDAY]


def test_long_range_is_clamped_to_max_days(app, provider):
    engine = AvailabilityEngine(max_days=31)

    start, end = engine.resolve_range("2025-01-01", "2025-12-31")
    assert (start, end) == (date(2025, 1, 1), date(2025, 2, 1))

    result = engine.availability(provider.id, date.min, date.max)
    assert result.end_date == date.min + timedelta(days=31)
    assert len(result.slots_by_date) == 32


def test_range_of_exactly_max_days_is_kept(app):
    engine = AvailabilityEngine(max_days=31)
    assert engine.resolve_range("2025-01-01", "2025-02-01") == (date(2025, 1, 1), date(2025, 2, 1))


def test_range_ending_on_the_last_representable_day(app, provider):
    result = AvailabilityEngine().availability(provider.id, "9999-12-31", "9999-12-31")
    assert result.to_dict()["availableSlots"][0]["date"] == "9999-12-31"
    assert len(result.slots_by_date[date.max]) == 10


def test_parse_date_lenient_rejects_trailing_garbage():
    assert parse_date_lenient("2025-01-20garbage") is None
    assert parse_date_lenient("2025-01-20 10:00") is None
    assert parse_date_lenient(20250120) is None
