# tests/test_slot_configuration.py
from datetime import date

import pytest

from slot_booking import crud, models, schemas
from slot_booking.core.errors import NotFound, ValidationFailed
from slot_booking.models import RecurrenceType, SlotStatus
from slot_booking.services import slot_configuration_service as service
from slot_booking.services import slot_service


@pytest.mark.parametrize("status,given,expected", [
    (SlotStatus.open, 1200, 1200),
    (SlotStatus.half_day_pre, 1200, 600),
    (SlotStatus.half_day_post, 1201, 600),
    (SlotStatus.closed, 1200, 0),
])
def test_derive_max_slots(status, given, expected):
    assert service.derive_max_slots(status, given) == expected


def test_derive_max_slots_uses_default_when_omitted():
    assert service.derive_max_slots(SlotStatus.half_day_pre, None, default_max_slots=1200) == 600


def test_upsert_is_idempotent(db_session, actor):
    first = service.upsert_configuration(db_session, actor, date(2030, 1, 7), SlotStatus.half_day_pre, 1200, "Drill")
    second = service.upsert_configuration(db_session, actor, date(2030, 1, 7), SlotStatus.half_day_pre, 1200, "Drill")

    rows = crud.get_slot_configurations(db_session)
    assert len(rows) == 1
    assert first.id == second.id
    assert rows[0].max_slots == 600


def test_upsert_replaces_existing_values(db_session, actor):
    service.upsert_configuration(db_session, actor, date(2030, 1, 7), SlotStatus.open, 1000)
    updated = service.upsert_configuration(db_session, actor, date(2030, 1, 7), SlotStatus.closed, 1000, "Holiday")
    assert updated.status == SlotStatus.closed
    assert updated.max_slots == 0
    assert updated.reason == "Holiday"

    actions = [log.action for log in db_session.query(models.AuditLog).order_by(models.AuditLog.id)]
    assert actions == ["CREATE_SLOT_CONFIG", "UPDATE_SLOT_CONFIG"]


def test_bulk_configure_fourteen_days(db_session, actor):
    result = service.bulk_configure(db_session, actor, date(2030, 1, 1), date(2030, 1, 14), SlotStatus.half_day_pre, 1200)

    assert result.requested == 14
    assert len(result.succeeded) == 14
    assert result.failed == []
    rows = crud.get_slot_configurations(db_session)
    assert len(rows) == 14
    assert {row.max_slots for row in rows} == {600}


def test_bulk_configure_reports_partial_failure(db_session, actor, monkeypatch):
    real_upsert = crud.upsert_slot_configuration

    def flaky_upsert(db, target_date, **kwargs):
        if target_date == date(2030, 1, 3):
            raise crud.CRUDError("Database error: disk full")
        return real_upsert(db, target_date=target_date, **kwargs)

    monkeypatch.setattr(crud, "upsert_slot_configuration", flaky_upsert)
    result = service.bulk_configure(db_session, actor, date(2030, 1, 1), date(2030, 1, 5), SlotStatus.open, 1000)

    assert len(result.succeeded) == 4
    assert [f.date for f in result.failed] == [date(2030, 1, 3)]
    assert len(crud.get_slot_configurations(db_session)) == 4


def test_bulk_range_too_long_writes_nothing(db_session, actor):
    with pytest.raises(ValidationFailed):
        service.bulk_configure(db_session, actor, date(2030, 1, 1), date(2031, 1, 1), SlotStatus.open, 1200)
    assert crud.get_slot_configurations(db_session) == []


def test_bulk_reversed_range_rejected(db_session, actor):
    with pytest.raises(ValidationFailed):
        service.bulk_configure(db_session, actor, date(2030, 1, 5), date(2030, 1, 1), SlotStatus.open, 1200)


def test_update_and_delete_missing_configuration(db_session, actor):
    payload = schemas.SlotConfigurationUpdate(status=SlotStatus.open, max_slots=100)
    with pytest.raises(NotFound):
        service.update_configuration(db_session, actor, 999, payload)
    with pytest.raises(NotFound):
        service.delete_configuration(db_session, actor, 999)


def _weekly_closure(db_session, actor, **overrides):
    fields = dict(rule_type=RecurrenceType.weekly, day_of_week=0, start_date=date(2030, 1, 1),
                  end_date=date(2030, 1, 31), status=SlotStatus.closed, max_slots=1200, reason="Maintenance")
    fields.update(overrides)
    return service.create_rule(db_session, actor, schemas.RecurringRuleCreate(**fields))


def test_rule_is_expanded_lazily(db_session, actor):
    rule = _weekly_closure(db_session, actor)
    assert rule.max_slots == 0

    effective = slot_service.get_effective_config(db_session, date(2030, 1, 14))
    assert effective.status == SlotStatus.closed
    assert effective.source == "recurring_rule"
    assert slot_service.get_effective_config(db_session, date(2030, 1, 15)).status == SlotStatus.open


def test_apply_rule_skips_explicit_configuration(db_session, actor):
    service.upsert_configuration(db_session, actor, date(2030, 1, 14), SlotStatus.open, 1200, "Exercise day")
    rule = _weekly_closure(db_session, actor)

    result = service.apply_rule(db_session, actor, rule.id)

    assert result.applied == [date(2030, 1, 7), date(2030, 1, 21), date(2030, 1, 28)]
    assert result.skipped == [date(2030, 1, 14)]
    kept = crud.get_slot_configuration_by_date(db_session, date(2030, 1, 14))
    assert kept.status == SlotStatus.open


def test_apply_rule_overwrite(db_session, actor):
    service.upsert_configuration(db_session, actor, date(2030, 1, 14), SlotStatus.open, 1200)
    rule = _weekly_closure(db_session, actor)

    result = service.apply_rule(db_session, actor, rule.id, overwrite=True)

    assert date(2030, 1, 14) in result.applied
    db_session.expire_all()
    assert crud.get_slot_configuration_by_date(db_session, date(2030, 1, 14)).status == SlotStatus.closed


def test_apply_open_ended_rule_needs_end_date(db_session, actor):
    rule = _weekly_closure(db_session, actor, end_date=None)
    with pytest.raises(ValidationFailed):
        service.apply_rule(db_session, actor, rule.id)

    result = service.apply_rule(db_session, actor, rule.id, end_date=date(2030, 1, 13))
    assert result.applied == [date(2030, 1, 7)]


def test_update_rule_capacity_derivation(db_session, actor):
    rule = _weekly_closure(db_session, actor, status=SlotStatus.open, max_slots=1200)

    rule = service.update_rule(db_session, actor, rule.id,
                               schemas.RecurringRuleUpdate(status=SlotStatus.half_day_pre, max_slots=1000))
    assert rule.max_slots == 500

    rule = service.update_rule(db_session, actor, rule.id, schemas.RecurringRuleUpdate(status=SlotStatus.closed))
    assert rule.max_slots == 0

    rule = service.update_rule(db_session, actor, rule.id, schemas.RecurringRuleUpdate(is_active=False))
    assert rule.is_active is False
    assert slot_service.get_effective_config(db_session, date(2030, 1, 7)).status == SlotStatus.open


def test_weekly_rule_requires_day_of_week():
    with pytest.raises(ValueError):
        schemas.RecurringRuleCreate(rule_type=RecurrenceType.weekly, start_date=date(2030, 1, 1), status=SlotStatus.closed)
