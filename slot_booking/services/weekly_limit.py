# slot_booking/services/weekly_limit.py
# Weeks run Monday..Sunday (ISO), so a Sunday booking counts toward the
# week that started the previous Monday.
from datetime import date, timedelta
from typing import Tuple

from sqlalchemy.orm import Session

from .. import crud, schemas


def week_bounds(target_date: date) -> Tuple[date, date]:
    monday = target_date - timedelta(days=target_date.weekday())
    return monday, monday + timedelta(days=6)


def count_bookings_in_week(db: Session, phone: str, target_date: date) -> int:
    monday, sunday = week_bounds(target_date)
    return crud.count_phone_bookings_between(db, phone, monday, sunday)


def get_weekly_status(db: Session, phone: str, target_date: date) -> schemas.WeeklyStatusResponse:
    monday, sunday = week_bounds(target_date)
    count = crud.count_phone_bookings_between(db, phone, monday, sunday)
    return schemas.WeeklyStatusResponse(
        has_booked_this_week=count > 0,
        bookings_this_week=count,
        week_start=monday,
        week_end=sunday,
    )
