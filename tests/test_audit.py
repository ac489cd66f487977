# tests/test_audit.py
from unittest.mock import MagicMock

from sqlalchemy.exc import SQLAlchemyError

from slot_booking import models
from slot_booking.audit import audit_logger, snapshot
from slot_booking.models import AuditAction


def test_audit_entry_written(db_session, actor):
    entry = audit_logger.log(db_session, actor, AuditAction.EXPORT, "booking", 42, new_values={"rows": 3})

    assert entry is not None
    stored = db_session.query(models.AuditLog).one()
    assert stored.action == "EXPORT"
    assert stored.entity_id == "42"
    assert stored.admin_username == actor.username
    assert stored.ip_address == "127.0.0.1"
    assert stored.new_values == {"rows": 3}


def test_audit_failure_is_swallowed(actor):
    db = MagicMock()
    db.commit.side_effect = SQLAlchemyError("audit table unavailable")

    assert audit_logger.log(db, actor, AuditAction.DELETE_BOOKING, "booking", 1) is None
    db.rollback.assert_called_once()


def test_admin_action_survives_audit_failure(client, auth_headers, monkeypatch):
    def broken_entry(**kwargs):
        raise SQLAlchemyError("audit table unavailable")

    monkeypatch.setattr(models, "AuditLog", broken_entry)
    response = client.post(
        "/api/admin/slot-management/configuration",
        json={"date": "2030-01-07", "status": "open", "maxSlots": 500},
        headers=auth_headers,
    )
    assert response.status_code == 201
    assert response.json()["max_slots"] == 500


def test_snapshot_serializes_enums_and_dates(make_booking):
    from datetime import date

    booking = make_booking(date(2030, 1, 7))
    values = snapshot(booking, ("date", "status"))
    assert values == {"date": "2030-01-07", "status": "confirmed"}
