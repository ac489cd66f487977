# tests/test_slot_service.py
from datetime import date, datetime
from types import SimpleNamespace

import pytest

from slot_booking.core.errors import ValidationFailed
from slot_booking.models import RecurrenceType, SlotStatus
from slot_booking.services.slot_service import (
    EffectiveConfig,
    compute_slot_availability,
    date_range,
    resolve_effective_config,
    rule_matches,
    time_slots_for_status,
)

MONDAY = date(2030, 1, 7)


def make_rule(rule_id=1, rule_type=RecurrenceType.weekly, day_of_week=0, day_of_month=None,
              start=date(2030, 1, 1), end=None, status=SlotStatus.closed, max_slots=0,
              is_active=True, created_at=datetime(2029, 12, 1), reason="Weekly closure"):
    return SimpleNamespace(
        id=rule_id, rule_type=rule_type, day_of_week=day_of_week, day_of_month=day_of_month,
        start_date=start, end_date=end, status=status, max_slots=max_slots, reason=reason,
        is_active=is_active, created_at=created_at,
    )


def test_no_configuration_defaults_to_open():
    effective = resolve_effective_config(MONDAY, None, [], default_max_slots=1200)
    assert effective.status == SlotStatus.open
    assert effective.max_slots == 1200
    assert effective.source == "default"


def test_explicit_configuration_outranks_rule():
    config = SimpleNamespace(status="half_day_post", max_slots=600, reason="Training")
    effective = resolve_effective_config(MONDAY, config, [make_rule()])
    assert effective.status == SlotStatus.half_day_post
    assert effective.max_slots == 600
    assert effective.source == "configuration"


def test_matching_rule_applies_when_no_configuration():
    effective = resolve_effective_config(MONDAY, None, [make_rule()], default_max_slots=1200)
    assert effective.status == SlotStatus.closed
    assert effective.source == "recurring_rule"
    assert effective.rule_id == 1


def test_inactive_rule_is_ignored():
    effective = resolve_effective_config(MONDAY, None, [make_rule(is_active=False)], default_max_slots=1200)
    assert effective.status == SlotStatus.open


def test_newest_matching_rule_wins():
    older = make_rule(rule_id=1, status=SlotStatus.closed, created_at=datetime(2029, 1, 1))
    newer = make_rule(rule_id=2, status=SlotStatus.half_day_pre, max_slots=600, created_at=datetime(2029, 6, 1))
    effective = resolve_effective_config(MONDAY, None, [older, newer])
    assert effective.rule_id == 2
    assert effective.status == SlotStatus.half_day_pre


def test_rule_matching():
    weekly = make_rule(day_of_week=0, end=date(2030, 1, 31))
    assert rule_matches(weekly, MONDAY)
    assert not rule_matches(weekly, date(2030, 1, 8))
    assert not rule_matches(weekly, date(2030, 2, 4))  # after end date
    assert not rule_matches(weekly, date(2029, 12, 31))  # before start date

    monthly = make_rule(rule_type=RecurrenceType.monthly, day_of_week=None, day_of_month=15)
    assert rule_matches(monthly, date(2030, 3, 15))
    assert not rule_matches(monthly, date(2030, 3, 16))


def test_closed_day_has_no_slots():
    effective = EffectiveConfig(status=SlotStatus.closed, max_slots=1200)
    result = compute_slot_availability(MONDAY, effective, ["09:00", "09:30"])
    assert result.available_slots == []
    assert result.all_slots == []
    assert result.slot_status == []
    assert result.total_bookings == 0
    assert result.max_bookings == 0


def test_open_day_capacity_per_label():
    effective = EffectiveConfig(status=SlotStatus.open, max_slots=1200)
    result = compute_slot_availability(MONDAY, effective, ["09:00"] * 120 + ["10:00"] * 3)

    by_time = {s.time: s for s in result.slot_status}
    assert len(result.slot_status) == 10
    assert by_time["09:00"].max_capacity == 120
    assert by_time["09:00"].is_fully_booked
    assert by_time["09:00"].available_spots == 0
    assert by_time["10:00"].booking_count == 3
    assert by_time["10:00"].available_spots == 117
    assert by_time["16:00"].booking_count == 0
    assert "09:00" in result.fully_booked_slots
    assert "09:00" not in result.available_slots
    assert result.total_bookings == 123
    assert result.max_bookings == 1200


def test_bookings_outside_labels_still_counted_in_total():
    effective = EffectiveConfig(status=SlotStatus.half_day_pre, max_slots=600)
    result = compute_slot_availability(MONDAY, effective, ["15:00", "09:00:00"])
    assert result.all_slots == time_slots_for_status(SlotStatus.half_day_pre)
    assert {s.time: s.booking_count for s in result.slot_status}["09:00"] == 1
    assert result.total_bookings == 2


def test_zero_capacity_marks_every_label_full():
    effective = EffectiveConfig(status=SlotStatus.open, max_slots=5)
    result = compute_slot_availability(MONDAY, effective, [])
    assert result.available_slots == []
    assert len(result.fully_booked_slots) == 10


def test_label_tables():
    assert time_slots_for_status(SlotStatus.half_day_post) == ["15:00", "15:30", "16:00", "16:30", "17:00"]
    assert time_slots_for_status(SlotStatus.closed) == []


def test_date_range_inclusive():
    days = date_range(date(2030, 1, 1), date(2030, 1, 14))
    assert len(days) == 14
    assert days[0] == date(2030, 1, 1) and days[-1] == date(2030, 1, 14)


def test_date_range_guards():
    with pytest.raises(ValidationFailed):
        date_range(date(2030, 1, 2), date(2030, 1, 1))
    assert len(date_range(date(2030, 1, 1), date(2030, 12, 31), max_days=365)) == 365
    with pytest.raises(ValidationFailed):
        date_range(date(2030, 1, 1), date(2031, 1, 1), max_days=365)
