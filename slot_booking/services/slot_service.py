# slot_booking/services/slot_service.py
"""
Slot availability engine.

Everything here except the ``get_*`` wrappers is pure: given a date, the
explicit configuration row (if any), the candidate recurring rules and the
booked time labels, it computes the same answer every time. The wrappers only
load those inputs from the database.
"""
from collections import Counter
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

import structlog
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..config import get_settings
from ..core.errors import ValidationFailed
from ..models import SlotStatus

logger = structlog.get_logger(__name__)

TIME_SLOTS: Dict[SlotStatus, List[str]] = {
    SlotStatus.open: ["09:00", "09:30", "10:00", "10:30", "11:00", "11:30", "12:00", "15:00", "15:30", "16:00"],
    SlotStatus.half_day_pre: ["09:00", "09:30", "10:00", "10:30", "11:00"],
    SlotStatus.half_day_post: ["15:00", "15:30", "16:00", "16:30", "17:00"],
    SlotStatus.closed: [],
}

SOURCE_CONFIGURATION = "configuration"
SOURCE_RECURRING_RULE = "recurring_rule"
SOURCE_DEFAULT = "default"


@dataclass(frozen=True)
class EffectiveConfig:
    status: SlotStatus
    max_slots: int
    reason: Optional[str] = None
    source: str = SOURCE_DEFAULT
    rule_id: Optional[int] = None


def time_slots_for_status(status: SlotStatus) -> List[str]:
    return list(TIME_SLOTS.get(SlotStatus(status), []))


def date_range(start_date: date, end_date: date, max_days: Optional[int] = None) -> List[date]:
    """Inclusive list of dates. Rejects reversed ranges and ranges longer than ``max_days``."""
    if end_date < start_date:
        raise ValidationFailed("End date must be on or after start date")
    limit = max_days if max_days is not None else get_settings().max_range_days
    days = (end_date - start_date).days + 1
    if days > limit:
        raise ValidationFailed(f"Date range cannot exceed {limit} days")
    return [start_date + timedelta(days=offset) for offset in range(days)]


def rule_matches(rule, target_date: date) -> bool:
    """True if an active rule's window contains the date and its trigger fires on it."""
    if not rule.is_active:
        return False
    if target_date < rule.start_date:
        return False
    if rule.end_date is not None and target_date > rule.end_date:
        return False
    if rule.rule_type == models.RecurrenceType.weekly:
        return rule.day_of_week == target_date.weekday()
    if rule.rule_type == models.RecurrenceType.monthly:
        return rule.day_of_month == target_date.day
    return False


def resolve_effective_config(
    target_date: date,
    configuration: Optional[models.SlotConfiguration],
    rules: Sequence[models.RecurringSlotRule] = (),
    default_max_slots: Optional[int] = None,
) -> EffectiveConfig:
    """Explicit row, then the newest matching active rule, then the open default."""
    if configuration is not None:
        return EffectiveConfig(
            status=SlotStatus(configuration.status),
            max_slots=configuration.max_slots,
            reason=configuration.reason,
            source=SOURCE_CONFIGURATION,
        )

    matching = [rule for rule in rules if rule_matches(rule, target_date)]
    if matching:
        # Newest rule wins; id breaks ties between rules created in the same instant
        rule = max(matching, key=lambda r: (r.created_at is not None, r.created_at, r.id or 0))
        return EffectiveConfig(
            status=SlotStatus(rule.status),
            max_slots=rule.max_slots,
            reason=rule.reason,
            source=SOURCE_RECURRING_RULE,
            rule_id=rule.id,
        )

    if default_max_slots is None:
        default_max_slots = get_settings().default_max_slots
    return EffectiveConfig(status=SlotStatus.open, max_slots=default_max_slots)


def max_per_slot(effective: EffectiveConfig) -> int:
    labels = TIME_SLOTS[effective.status]
    if not labels:
        return 0
    return effective.max_slots // len(labels)


def compute_slot_availability(
    target_date: date,
    effective: EffectiveConfig,
    booked_time_slots: Iterable[str],
) -> schemas.SlotAvailabilityResponse:
    if effective.status == SlotStatus.closed:
        return schemas.SlotAvailabilityResponse(
            date=target_date,
            status=effective.status,
            reason=effective.reason,
            source=effective.source,
            slot_status=[],
            available_slots=[],
            fully_booked_slots=[],
            all_slots=[],
            total_bookings=0,
            max_bookings=0,
        )

    labels = TIME_SLOTS[effective.status]
    capacity = max_per_slot(effective)
    counts = Counter(slot[:5] for slot in booked_time_slots)

    slot_status = []
    for label in labels:
        count = counts.get(label, 0)
        slot_status.append(schemas.SlotState(
            time=label,
            booking_count=count,
            max_capacity=capacity,
            is_available=count < capacity,
            is_fully_booked=count >= capacity,
            available_spots=max(0, capacity - count),
        ))

    return schemas.SlotAvailabilityResponse(
        date=target_date,
        status=effective.status,
        reason=effective.reason,
        source=effective.source,
        slot_status=slot_status,
        available_slots=[s.time for s in slot_status if s.is_available],
        fully_booked_slots=[s.time for s in slot_status if s.is_fully_booked],
        all_slots=list(labels),
        total_bookings=sum(counts.values()),
        max_bookings=effective.max_slots,
    )


def get_effective_config(db: Session, target_date: date, lock: bool = False) -> EffectiveConfig:
    configuration = crud.get_slot_configuration_by_date(db, target_date, for_update=lock)
    rules = [] if configuration is not None else crud.get_active_rules_for_window(db, target_date, target_date)
    return resolve_effective_config(target_date, configuration, rules)


def get_slot_availability(db: Session, target_date: date) -> schemas.SlotAvailabilityResponse:
    effective = get_effective_config(db, target_date)
    booked = crud.get_booked_time_slots(db, target_date)
    logger.debug("slot_availability", date=target_date.isoformat(), status=effective.status.value,
                 source=effective.source, booked=len(booked))
    return compute_slot_availability(target_date, effective, booked)


def get_overall_status(db: Session, target_date: date) -> schemas.OverallSlotStatus:
    effective = get_effective_config(db, target_date)
    total = crud.count_bookings_for_date(db, target_date)
    return schemas.OverallSlotStatus(
        date=target_date,
        status=effective.status,
        total_bookings=total,
        max_slots=effective.max_slots,
        available_slots=max(0, effective.max_slots - total),
        reason=effective.reason,
    )


def get_availability_range(db: Session, start_date: date, end_date: date) -> List[schemas.DayAvailability]:
    dates = date_range(start_date, end_date)
    configurations = crud.get_slot_configurations_by_date(db, start_date, end_date)
    rules = crud.get_active_rules_for_window(db, start_date, end_date)
    booked = crud.count_bookings_by_date(db, start_date, end_date)

    days = []
    for day in dates:
        effective = resolve_effective_config(day, configurations.get(day), rules)
        booked_count = booked.get(day, 0)
        days.append(schemas.DayAvailability(
            date=day,
            status=effective.status,
            max_slots=effective.max_slots,
            booked_slots=booked_count,
            available_slots=max(0, effective.max_slots - booked_count),
            reason=effective.reason,
        ))
    return days
