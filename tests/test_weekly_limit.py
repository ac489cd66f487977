# tests/test_weekly_limit.py
from datetime import date

from slot_booking import models
from slot_booking.services.weekly_limit import count_bookings_in_week, get_weekly_status, week_bounds

PHONE = "+919876543210"


def test_week_bounds_monday_to_sunday():
    assert week_bounds(date(2030, 1, 7)) == (date(2030, 1, 7), date(2030, 1, 13))
    assert week_bounds(date(2030, 1, 11)) == (date(2030, 1, 7), date(2030, 1, 13))


def test_sunday_belongs_to_preceding_week():
    assert week_bounds(date(2030, 1, 13)) == (date(2030, 1, 7), date(2030, 1, 13))
    assert week_bounds(date(2030, 1, 14))[0] == date(2030, 1, 14)


def test_count_within_week_only(db_session, make_booking):
    make_booking(date(2030, 1, 7))

    assert count_bookings_in_week(db_session, PHONE, date(2030, 1, 11)) == 1
    assert count_bookings_in_week(db_session, PHONE, date(2030, 1, 13)) == 1
    assert count_bookings_in_week(db_session, PHONE, date(2030, 1, 14)) == 0
    assert count_bookings_in_week(db_session, "+911111111111", date(2030, 1, 11)) == 0


def test_cancelled_bookings_do_not_count(db_session, make_booking):
    make_booking(date(2030, 1, 8), status=models.BookingStatus.cancelled)
    status = get_weekly_status(db_session, PHONE, date(2030, 1, 9))
    assert status.has_booked_this_week is False
    assert status.bookings_this_week == 0


def test_weekly_status_payload(db_session, make_booking):
    make_booking(date(2030, 1, 13))
    status = get_weekly_status(db_session, PHONE, date(2030, 1, 7))
    assert status.has_booked_this_week is True
    assert status.week_start == date(2030, 1, 7)
    assert status.week_end == date(2030, 1, 13)
