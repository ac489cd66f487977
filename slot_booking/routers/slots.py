# slot_booking/routers/slots.py
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..services import slot_service

router = APIRouter(
    prefix="/slots",
    tags=["Slots"],
)


@router.get("/status/overall", response_model=schemas.OverallSlotStatus)
def get_overall_slot_status(
    target_date: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(get_db),
):
    return slot_service.get_overall_status(db, target_date or date.today())


@router.get("/{slot_date}", response_model=schemas.SlotAvailabilityResponse)
def get_slot_availability(slot_date: date, db: Session = Depends(get_db)):
    """Per-label capacity and booking counts for one date."""
    return slot_service.get_slot_availability(db, slot_date)
