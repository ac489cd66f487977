# slot_booking/routers/admin.py
import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from .. import crud, schemas
from ..audit import audit_logger
from ..database import get_db
from ..models import AuditAction
from ..security import AdminContext, get_current_admin
from ..services import booking_service, export_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[Depends(get_current_admin)],
)


@router.get("/bookings", response_model=List[schemas.BookingResponse])
def list_bookings(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    db: Session = Depends(get_db),
):
    """All bookings in the range, newest first."""
    return crud.get_bookings(db, start_date, end_date)


@router.get("/stats", response_model=schemas.AdminStats)
def get_stats(target_date: Optional[date] = Query(None, alias="date"), db: Session = Depends(get_db)):
    return booking_service.booking_stats(db, target_date or date.today())


@router.get("/analytics", response_model=schemas.BookingAnalytics)
def get_analytics(db: Session = Depends(get_db)):
    return booking_service.booking_analytics(db)


@router.put("/bookings/{booking_id}/status", response_model=schemas.BookingResponse)
def update_booking_status(
    booking_id: int,
    payload: schemas.BookingStatusUpdate,
    db: Session = Depends(get_db),
    current_admin: AdminContext = Depends(get_current_admin),
):
    return booking_service.update_booking_status(db, current_admin, booking_id, payload.status)


@router.delete("/bookings/{booking_id}", response_model=schemas.MessageResponse)
def delete_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    current_admin: AdminContext = Depends(get_current_admin),
):
    booking_service.delete_booking(db, current_admin, booking_id)
    return {"message": "Booking deleted successfully"}


@router.delete("/bookings")
def delete_bookings(
    payload: schemas.BulkDeleteRequest,
    db: Session = Depends(get_db),
    current_admin: AdminContext = Depends(get_current_admin),
):
    deleted = booking_service.delete_bookings(db, current_admin, payload.ids)
    return {"message": f"{deleted} booking(s) deleted successfully", "deleted": deleted}


@router.get("/export")
def export_bookings(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    db: Session = Depends(get_db),
    current_admin: AdminContext = Depends(get_current_admin),
):
    bookings = crud.get_bookings(db, start_date, end_date)
    content = export_service.bookings_workbook(bookings)
    audit_logger.log(db, current_admin, AuditAction.EXPORT, "booking", None, new_values={
        "start_date": start_date, "end_date": end_date, "rows": len(bookings),
    })
    return Response(
        content=content,
        media_type=export_service.XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": "attachment; filename=bookings.xlsx"},
    )
