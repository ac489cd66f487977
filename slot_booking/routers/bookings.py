# slot_booking/routers/bookings.py
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from .. import schemas
from ..config import get_settings
from ..core.errors import ValidationFailed
from ..database import get_db
from ..limiter import limiter
from ..services import booking_service, weekly_limit

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Bookings"])


@router.post("/bookings", response_model=schemas.BookingResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_settings().booking_rate_limit)
def create_booking(request: Request, booking: schemas.BookingCreate, db: Session = Depends(get_db)):
    return booking_service.create_booking(db, booking)


@router.get("/user/weekly-status", response_model=schemas.WeeklyStatusResponse)
def get_weekly_status(
    phone: Optional[str] = Query(None),
    target_date: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(get_db),
):
    phone = schemas.normalize_phone(phone or "")
    if not phone:
        raise ValidationFailed("Phone number required")
    if not schemas.PHONE_PATTERN.match(phone):
        raise ValidationFailed("Invalid phone number")
    return weekly_limit.get_weekly_status(db, phone, target_date or date.today())
