# slot_booking/routers/slot_management.py
from datetime import date, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..security import AdminContext, get_current_admin
from ..services import slot_configuration_service as config_service
from ..services import slot_service

DEFAULT_AVAILABILITY_DAYS = 30

router = APIRouter(
    prefix="/admin/slot-management",
    tags=["Slot Management"],
    dependencies=[Depends(get_current_admin)],
)


# --- Per-date configurations ---
@router.get("/configurations", response_model=List[schemas.SlotConfigurationResponse])
def list_configurations(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    db: Session = Depends(get_db),
):
    return config_service.list_configurations(db, start_date, end_date)


@router.get("/configuration/{config_id}", response_model=schemas.SlotConfigurationResponse)
def get_configuration(config_id: int, db: Session = Depends(get_db)):
    return config_service.get_configuration(db, config_id)


@router.post("/configuration", response_model=schemas.SlotConfigurationResponse, status_code=status.HTTP_201_CREATED)
def upsert_configuration(
    payload: schemas.SlotConfigurationCreate,
    db: Session = Depends(get_db),
    current_admin: AdminContext = Depends(get_current_admin),
):
    """Create the configuration for a date, replacing any existing one."""
    return config_service.upsert_configuration(
        db, current_admin, payload.date, payload.status, payload.max_slots, payload.reason
    )


@router.post("/configurations/bulk", response_model=schemas.BulkConfigurationResult)
def bulk_configure(
    payload: schemas.BulkSlotConfigurationCreate,
    db: Session = Depends(get_db),
    current_admin: AdminContext = Depends(get_current_admin),
):
    return config_service.bulk_configure(
        db, current_admin, payload.start_date, payload.end_date,
        payload.status, payload.max_slots, payload.reason,
    )


@router.put("/configuration/{config_id}", response_model=schemas.SlotConfigurationResponse)
def update_configuration(
    config_id: int,
    payload: schemas.SlotConfigurationUpdate,
    db: Session = Depends(get_db),
    current_admin: AdminContext = Depends(get_current_admin),
):
    return config_service.update_configuration(db, current_admin, config_id, payload)


@router.delete("/configuration/{config_id}", response_model=schemas.MessageResponse)
def delete_configuration(
    config_id: int,
    db: Session = Depends(get_db),
    current_admin: AdminContext = Depends(get_current_admin),
):
    config_service.delete_configuration(db, current_admin, config_id)
    return {"message": "Slot configuration deleted successfully"}


# --- Recurring rules ---
@router.get("/recurring-rules", response_model=List[schemas.RecurringRuleResponse])
def list_recurring_rules(
    active_only: bool = Query(False, alias="activeOnly"),
    db: Session = Depends(get_db),
):
    return config_service.list_rules(db, active_only=active_only)


@router.post("/recurring-rule", response_model=schemas.RecurringRuleResponse, status_code=status.HTTP_201_CREATED)
def create_recurring_rule(
    payload: schemas.RecurringRuleCreate,
    db: Session = Depends(get_db),
    current_admin: AdminContext = Depends(get_current_admin),
):
    return config_service.create_rule(db, current_admin, payload)


@router.put("/recurring-rule/{rule_id}", response_model=schemas.RecurringRuleResponse)
def update_recurring_rule(
    rule_id: int,
    payload: schemas.RecurringRuleUpdate,
    db: Session = Depends(get_db),
    current_admin: AdminContext = Depends(get_current_admin),
):
    return config_service.update_rule(db, current_admin, rule_id, payload)


@router.delete("/recurring-rule/{rule_id}", response_model=schemas.MessageResponse)
def delete_recurring_rule(
    rule_id: int,
    db: Session = Depends(get_db),
    current_admin: AdminContext = Depends(get_current_admin),
):
    config_service.delete_rule(db, current_admin, rule_id)
    return {"message": "Recurring rule deleted successfully"}


@router.post("/recurring-rule/{rule_id}/apply", response_model=schemas.RuleApplyResult)
def apply_recurring_rule(
    rule_id: int,
    payload: Optional[schemas.RecurringRuleApply] = None,
    db: Session = Depends(get_db),
    current_admin: AdminContext = Depends(get_current_admin),
):
    payload = payload or schemas.RecurringRuleApply()
    return config_service.apply_rule(
        db, current_admin, rule_id, payload.start_date, payload.end_date, payload.overwrite
    )


# --- Availability overview ---
@router.get("/availability", response_model=List[schemas.DayAvailability])
def get_availability(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    db: Session = Depends(get_db),
):
    start_date = start_date or date.today()
    end_date = end_date or start_date + timedelta(days=DEFAULT_AVAILABILITY_DAYS)
    return slot_service.get_availability_range(db, start_date, end_date)
