# slot_booking/services/booking_service.py
from datetime import date
from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..audit import audit_logger, snapshot
from ..core.errors import Conflict, NotFound, ValidationFailed
from ..models import AuditAction, SlotStatus
from .slot_service import TIME_SLOTS, get_effective_config, max_per_slot
from .weekly_limit import count_bookings_in_week, week_bounds

logger = structlog.get_logger(__name__)

MSG_WEEKLY_LIMIT = "Weekly limit reached"
MSG_DAY_CLOSED = "Bookings are closed for this date"
MSG_INVALID_SLOT = "Time slot is not available for this date"
MSG_SLOT_FULL = "This time slot is fully booked"


def ensure_slot_open(db: Session, target_date: date, time_slot: str) -> None:
    """Reject a closed day, a label outside the day's set, or a full slot.

    Leaves the slot lock and the explicit configuration row (if any) held
    until the caller commits or rolls back.
    """
    time_slot = time_slot[:5]
    crud.lock_time_slot(db, target_date, time_slot)
    effective = get_effective_config(db, target_date, lock=True)
    if effective.status == SlotStatus.closed:
        db.rollback()
        raise Conflict(MSG_DAY_CLOSED)

    if time_slot not in TIME_SLOTS[effective.status]:
        db.rollback()
        raise ValidationFailed(MSG_INVALID_SLOT)

    taken = sum(1 for slot in crud.get_booked_time_slots(db, target_date) if slot[:5] == time_slot)
    if taken >= max_per_slot(effective):
        db.rollback()
        logger.info("booking_rejected", reason="slot_full", date=target_date.isoformat(), time_slot=time_slot)
        raise Conflict(MSG_SLOT_FULL)


def create_booking(db: Session, payload: schemas.BookingCreate) -> models.Booking:
    """Check eligibility and capacity, then store a confirmed booking."""
    if count_bookings_in_week(db, payload.phone, payload.date) > 0:
        logger.info("booking_rejected", reason="weekly_limit", phone=payload.phone, date=payload.date.isoformat())
        raise Conflict(MSG_WEEKLY_LIMIT)

    ensure_slot_open(db, payload.date, payload.time_slot)

    monday, _ = week_bounds(payload.date)
    try:
        booking = crud.create_booking(db, {
            "name": payload.name,
            "phone": payload.phone,
            "army_number": payload.army_number,
            "date": payload.date,
            "time_slot": payload.time_slot,
            "purpose": payload.purpose,
            "location": payload.location,
            "status": models.BookingStatus.confirmed,
            "week_start": monday,
        })
    except crud.DuplicateError:
        raise Conflict(MSG_WEEKLY_LIMIT)

    logger.info("booking_created", booking_id=booking.id, date=booking.date.isoformat(), time_slot=booking.time_slot)

    if payload.army_number:
        cache_profile(db, payload.army_number, payload.name, payload.phone)
    return booking


def cache_profile(db: Session, army_number: str, name: str, mobile: str) -> Optional[models.UserProfile]:
    """Refresh the contact cache; a failure here never affects the caller."""
    try:
        return crud.upsert_profile(db, army_number, name, mobile)
    except crud.CRUDError as e:
        logger.warning("profile_cache_failed", army_number=army_number, error=str(e))
        return None


def booking_stats(db: Session, target_date: date) -> schemas.AdminStats:
    effective = get_effective_config(db, target_date)
    total = crud.count_bookings_for_date(db, target_date)
    return schemas.AdminStats(
        date=target_date,
        status=effective.status,
        total_bookings=total,
        max_bookings=effective.max_slots,
        available_bookings=max(0, effective.max_slots - total),
        by_status=crud.count_bookings_grouped(db, models.Booking.status, target_date=target_date),
    )


def booking_analytics(db: Session) -> schemas.BookingAnalytics:
    return schemas.BookingAnalytics(
        total_bookings=crud.count_all_bookings(db),
        by_status=crud.count_bookings_grouped(db, models.Booking.status),
        by_purpose=crud.count_bookings_grouped(db, models.Booking.purpose),
        by_location=crud.count_bookings_grouped(db, models.Booking.location),
        by_time_slot=crud.count_bookings_grouped(db, models.Booking.time_slot),
        daily_trend=crud.count_bookings_grouped(db, models.Booking.date),
    )


# ---- Admin booking management ----

BOOKING_FIELDS = ("id", "name", "phone", "army_number", "date", "time_slot", "purpose", "location", "status")


def get_booking(db: Session, booking_id: int) -> models.Booking:
    booking = crud.get_booking(db, booking_id)
    if booking is None:
        raise NotFound("Booking not found")
    return booking


def update_booking_status(db: Session, actor, booking_id: int, status: models.BookingStatus) -> models.Booking:
    booking = get_booking(db, booking_id)
    old_values = snapshot(booking, ("status",))
    if booking.status == models.BookingStatus.cancelled and status != models.BookingStatus.cancelled:
        ensure_slot_open(db, booking.date, booking.time_slot)
    try:
        booking = crud.update_booking_status(db, booking, status)
    except crud.DuplicateError as e:
        raise Conflict(str(e))
    audit_logger.log(db, actor, AuditAction.UPDATE_BOOKING_STATUS, "booking", booking.id,
                     old_values=old_values, new_values=snapshot(booking, ("status",)))
    return booking


def delete_booking(db: Session, actor, booking_id: int) -> None:
    booking = get_booking(db, booking_id)
    captured = snapshot(booking, BOOKING_FIELDS)
    crud.delete_bookings(db, [booking])
    audit_logger.log(db, actor, AuditAction.DELETE_BOOKING, "booking", booking_id, old_values=captured)


def delete_bookings(db: Session, actor, ids: List[int]) -> int:
    bookings = crud.get_bookings_by_ids(db, ids)
    if not bookings:
        raise NotFound("No bookings found for the given ids")
    captured = [snapshot(b, BOOKING_FIELDS) for b in bookings]
    crud.delete_bookings(db, bookings)
    for values in captured:
        audit_logger.log(db, actor, AuditAction.DELETE_BOOKING_BULK, "booking", values["id"], old_values=values)
    logger.info("bookings_deleted", count=len(captured))
    return len(captured)
