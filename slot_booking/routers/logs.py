# slot_booking/routers/logs.py
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from .. import crud, schemas
from ..audit import audit_logger
from ..database import get_db
from ..models import AuditAction
from ..security import AdminContext, get_current_admin
from ..services import export_service

router = APIRouter(
    prefix="/admin/audit-logs",
    tags=["Audit Logs"],
    dependencies=[Depends(get_current_admin)],
    responses={404: {"description": "Not found"}},
)


def audit_filters(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    action: Optional[str] = None,
    entity_type: Optional[str] = Query(None, alias="entityType"),
    admin_id: Optional[int] = Query(None, alias="adminId"),
):
    return {
        "start_date": start_date,
        "end_date": end_date,
        "action": action,
        "entity_type": entity_type,
        "admin_id": admin_id,
    }


@router.get("", response_model=schemas.AuditLogList)
def read_audit_logs(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    filters: dict = Depends(audit_filters),
    db: Session = Depends(get_db),
):
    """
    Retrieve audit logs, newest first, with optional filtering.
    """
    logs, total = crud.get_audit_logs(db, limit=limit, offset=offset, **filters)
    return {"logs": logs, "total": total, "limit": limit, "offset": offset}


@router.get("/stats", response_model=schemas.AuditLogStats)
def read_audit_stats(filters: dict = Depends(audit_filters), db: Session = Depends(get_db)):
    return crud.get_audit_log_stats(db, **filters)


@router.get("/export")
def export_audit_logs(
    filters: dict = Depends(audit_filters),
    db: Session = Depends(get_db),
    current_admin: AdminContext = Depends(get_current_admin),
):
    logs, _ = crud.get_audit_logs(db, limit=None, **filters)
    content = export_service.audit_logs_workbook(logs)
    audit_logger.log(db, current_admin, AuditAction.EXPORT, "audit_log", None, new_values={
        **filters, "rows": len(logs),
    })
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    return Response(
        content=content,
        media_type=export_service.XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename=audit_logs_{stamp}.xlsx"},
    )
