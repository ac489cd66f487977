# slot_booking/services/slot_configuration_service.py
"""
Admin-side slot configuration: single dates, bulk date ranges and recurring
rules.

Capacity figures supplied by admins are full-day numbers. ``derive_max_slots``
turns them into the stored value for the chosen status before anything is
written, so stored rows never need re-deriving at read time.
"""
from datetime import date
from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..audit import audit_logger, snapshot
from ..config import get_settings
from ..core.errors import NotFound, ValidationFailed
from ..models import AuditAction, SlotStatus
from .slot_service import date_range, rule_matches

logger = structlog.get_logger(__name__)

CONFIG_FIELDS = ("id", "date", "status", "max_slots", "reason")
RULE_FIELDS = ("id", "rule_type", "day_of_week", "day_of_month", "start_date", "end_date",
               "status", "max_slots", "reason", "is_active")

__all__ = [
    "derive_max_slots", "date_range", "list_configurations", "get_configuration",
    "upsert_configuration", "update_configuration", "delete_configuration", "bulk_configure",
    "list_rules", "create_rule", "update_rule", "delete_rule", "apply_rule",
]


def derive_max_slots(status: SlotStatus, input_max_slots: Optional[int] = None,
                     default_max_slots: Optional[int] = None) -> int:
    """Closed days hold nothing, half days hold half the full-day figure."""
    if input_max_slots is None:
        input_max_slots = default_max_slots if default_max_slots is not None else get_settings().default_max_slots
    status = SlotStatus(status)
    if status == SlotStatus.closed:
        return 0
    if status.is_half_day:
        return input_max_slots // 2
    return input_max_slots


# ---- Single-date configurations ----

def list_configurations(db: Session, start_date: Optional[date] = None,
                        end_date: Optional[date] = None) -> List[models.SlotConfiguration]:
    return crud.get_slot_configurations(db, start_date, end_date)


def get_configuration(db: Session, config_id: int) -> models.SlotConfiguration:
    config = crud.get_slot_configuration(db, config_id)
    if config is None:
        raise NotFound("Slot configuration not found")
    return config


def upsert_configuration(db: Session, actor, target_date: date, status: SlotStatus,
                         max_slots: Optional[int] = None, reason: Optional[str] = None,
                         audit: bool = True) -> models.SlotConfiguration:
    existing = crud.get_slot_configuration_by_date(db, target_date)
    old_values = snapshot(existing, CONFIG_FIELDS) if existing else None

    config = crud.upsert_slot_configuration(
        db,
        target_date=target_date,
        status=status,
        max_slots=derive_max_slots(status, max_slots),
        reason=reason,
        created_by=getattr(actor, "id", None),
    )
    logger.info("slot_configuration_saved", date=target_date.isoformat(), status=config.status.value,
                max_slots=config.max_slots, replaced=old_values is not None)

    if audit:
        audit_logger.log(
            db, actor,
            AuditAction.UPDATE_SLOT_CONFIG if old_values else AuditAction.CREATE_SLOT_CONFIG,
            "slot_configuration", config.id,
            old_values=old_values,
            new_values=snapshot(config, CONFIG_FIELDS),
        )
    return config


def update_configuration(db: Session, actor, config_id: int,
                         payload: schemas.SlotConfigurationUpdate) -> models.SlotConfiguration:
    config = get_configuration(db, config_id)
    old_values = snapshot(config, CONFIG_FIELDS)
    config = crud.update_slot_configuration(db, config, {
        "status": payload.status,
        "max_slots": derive_max_slots(payload.status, payload.max_slots),
        "reason": payload.reason,
    })
    audit_logger.log(db, actor, AuditAction.UPDATE_SLOT_CONFIG, "slot_configuration", config.id,
                     old_values=old_values, new_values=snapshot(config, CONFIG_FIELDS))
    return config


def delete_configuration(db: Session, actor, config_id: int) -> None:
    config = get_configuration(db, config_id)
    old_values = snapshot(config, CONFIG_FIELDS)
    crud.delete_slot_configuration(db, config)
    logger.info("slot_configuration_deleted", id=config_id, date=old_values["date"])
    audit_logger.log(db, actor, AuditAction.DELETE_SLOT_CONFIG, "slot_configuration", config_id,
                     old_values=old_values)


def bulk_configure(db: Session, actor, start_date: date, end_date: date, status: SlotStatus,
                   max_slots: Optional[int] = None, reason: Optional[str] = None) -> schemas.BulkConfigurationResult:
    """Upsert every date of an inclusive range, each in its own transaction."""
    dates = date_range(start_date, end_date)
    result = schemas.BulkConfigurationResult(requested=len(dates))

    for day in dates:
        try:
            upsert_configuration(db, actor, day, status, max_slots, reason, audit=False)
            result.succeeded.append(day)
        except crud.CRUDError as e:
            logger.warning("bulk_configuration_date_failed", date=day.isoformat(), error=str(e))
            result.failed.append(schemas.DateFailure(date=day, error=str(e)))

    audit_logger.log(db, actor, AuditAction.BULK_SLOT_CONFIG, "slot_configuration", None, new_values={
        "start_date": start_date,
        "end_date": end_date,
        "status": status,
        "max_slots": derive_max_slots(status, max_slots),
        "reason": reason,
        "succeeded": len(result.succeeded),
        "failed": len(result.failed),
    })
    logger.info("bulk_configuration_done", requested=result.requested,
                succeeded=len(result.succeeded), failed=len(result.failed))
    return result


# ---- Recurring rules ----

def list_rules(db: Session, active_only: bool = False) -> List[models.RecurringSlotRule]:
    return crud.get_recurring_rules(db, active_only=active_only)


def get_rule(db: Session, rule_id: int) -> models.RecurringSlotRule:
    rule = crud.get_recurring_rule(db, rule_id)
    if rule is None:
        raise NotFound("Recurring rule not found")
    return rule


def create_rule(db: Session, actor, payload: schemas.RecurringRuleCreate) -> models.RecurringSlotRule:
    rule = crud.create_recurring_rule(
        db,
        rule_type=payload.rule_type,
        day_of_week=payload.day_of_week if payload.rule_type == models.RecurrenceType.weekly else None,
        day_of_month=payload.day_of_month if payload.rule_type == models.RecurrenceType.monthly else None,
        start_date=payload.start_date,
        end_date=payload.end_date,
        status=payload.status,
        max_slots=derive_max_slots(payload.status, payload.max_slots),
        reason=payload.reason,
        is_active=True,
        created_by=getattr(actor, "id", None),
    )
    audit_logger.log(db, actor, AuditAction.CREATE_RECURRING_RULE, "recurring_rule", rule.id,
                     new_values=snapshot(rule, RULE_FIELDS))
    return rule


def update_rule(db: Session, actor, rule_id: int, payload: schemas.RecurringRuleUpdate) -> models.RecurringSlotRule:
    rule = get_rule(db, rule_id)
    old_values = snapshot(rule, RULE_FIELDS)
    changes = payload.model_dump(exclude_unset=True)

    fields = {}
    if changes.get("is_active") is not None:
        fields["is_active"] = changes["is_active"]
    if changes.get("status") is not None:
        fields["status"] = changes["status"]
    if "reason" in changes:
        fields["reason"] = changes["reason"]
    if "end_date" in changes:
        if changes["end_date"] is not None and changes["end_date"] < rule.start_date:
            raise ValidationFailed("End date must be on or after the rule start date")
        fields["end_date"] = changes["end_date"]

    new_status = SlotStatus(fields.get("status", rule.status))
    if changes.get("max_slots") is not None:
        fields["max_slots"] = derive_max_slots(new_status, changes["max_slots"])
    elif new_status == SlotStatus.closed:
        fields["max_slots"] = 0

    rule = crud.update_recurring_rule(db, rule, fields)
    audit_logger.log(db, actor, AuditAction.UPDATE_RECURRING_RULE, "recurring_rule", rule.id,
                     old_values=old_values, new_values=snapshot(rule, RULE_FIELDS))
    return rule


def delete_rule(db: Session, actor, rule_id: int) -> None:
    rule = get_rule(db, rule_id)
    old_values = snapshot(rule, RULE_FIELDS)
    crud.delete_recurring_rule(db, rule)
    audit_logger.log(db, actor, AuditAction.DELETE_RECURRING_RULE, "recurring_rule", rule_id,
                     old_values=old_values)


def apply_rule(db: Session, actor, rule_id: int, start_date: Optional[date] = None,
               end_date: Optional[date] = None, overwrite: bool = False) -> schemas.RuleApplyResult:
    """Write concrete configuration rows for every date the rule fires on.

    Dates that already carry an explicit configuration are skipped unless
    ``overwrite`` is set.
    """
    rule = get_rule(db, rule_id)
    if not rule.is_active:
        raise ValidationFailed("Cannot apply an inactive rule")
    if start_date and end_date and end_date < start_date:
        raise ValidationFailed("End date must be on or after start date")

    window_start = max(rule.start_date, start_date) if start_date else rule.start_date
    if rule.end_date and end_date:
        window_end = min(rule.end_date, end_date)
    else:
        window_end = rule.end_date or end_date
    if window_end is None:
        raise ValidationFailed("An end date is required to apply an open-ended rule")

    result = schemas.RuleApplyResult(rule_id=rule.id)
    if window_end < window_start:
        return result

    dates = date_range(window_start, window_end)
    existing = crud.get_slot_configurations_by_date(db, window_start, window_end)

    for day in dates:
        if not rule_matches(rule, day):
            continue
        if day in existing and not overwrite:
            result.skipped.append(day)
            continue
        try:
            crud.upsert_slot_configuration(
                db,
                target_date=day,
                status=rule.status,
                max_slots=rule.max_slots,
                reason=rule.reason,
                created_by=getattr(actor, "id", None),
            )
            result.applied.append(day)
        except crud.CRUDError as e:
            logger.warning("apply_rule_date_failed", rule_id=rule.id, date=day.isoformat(), error=str(e))
            result.failed.append(schemas.DateFailure(date=day, error=str(e)))

    audit_logger.log(db, actor, AuditAction.APPLY_RECURRING_RULE, "recurring_rule", rule.id, new_values={
        "start_date": window_start,
        "end_date": window_end,
        "overwrite": overwrite,
        "applied": len(result.applied),
        "skipped": len(result.skipped),
        "failed": len(result.failed),
    })
    logger.info("recurring_rule_applied", rule_id=rule.id, applied=len(result.applied),
                skipped=len(result.skipped), failed=len(result.failed))
    return result
