# tests/test_bookings_api.py
from datetime import date
from unittest.mock import MagicMock

from slot_booking import crud, models
from slot_booking.models import SlotStatus

PHONE = "+919876543210"


def booking_payload(**overrides):
    payload = {
        "name": "Ravi Kumar",
        "phone": PHONE,
        "army_number": "JC-123456",
        "date": "2030-01-07",
        "time_slot": "09:00",
        "purpose": "Pension query",
        "location": "HQ",
    }
    payload.update(overrides)
    return payload


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_slots_default_open(client):
    response = client.get("/api/slots/2030-01-07")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "open"
    assert data["maxBookings"] == 1200
    assert len(data["allSlots"]) == 10
    assert data["slotStatus"][0] == {
        "time": "09:00", "bookingCount": 0, "maxCapacity": 120,
        "isAvailable": True, "isFullyBooked": False, "availableSpots": 120,
    }


def test_slots_invalid_date(client):
    response = client.get("/api/slots/not-a-date")
    assert response.status_code == 400
    assert response.json()["detail"] == "Validation failed"


def test_create_booking(client, db_session):
    response = client.post("/api/bookings", json=booking_payload(time_slot="9:00"))
    assert response.status_code == 201, response.text
    data = response.json()
    assert data["time_slot"] == "09:00"
    assert data["status"] == "confirmed"

    profile = crud.get_profile(db_session, "JC-123456")
    assert profile is not None
    assert profile.mobile == PHONE


def test_booking_validation_errors(client):
    response = client.post("/api/bookings", json=booking_payload(phone="012345", name="A"))
    assert response.status_code == 400
    body = response.json()
    assert body["detail"] == "Validation failed"
    fields = {err["field"] for err in body["errors"]}
    assert {"phone", "name"} <= fields


def test_weekly_limit(client):
    assert client.post("/api/bookings", json=booking_payload()).status_code == 201

    same_week = client.post("/api/bookings", json=booking_payload(date="2030-01-11"))
    assert same_week.status_code == 409
    assert same_week.json()["detail"] == "Weekly limit reached"

    next_week = client.post("/api/bookings", json=booking_payload(date="2030-01-14"))
    assert next_week.status_code == 201


def test_cancelled_booking_frees_weekly_limit(client, make_booking):
    make_booking(date(2030, 1, 7), status=models.BookingStatus.cancelled)
    response = client.post("/api/bookings", json=booking_payload(date="2030-01-08"))
    assert response.status_code == 201

    slots = client.get("/api/slots/2030-01-07").json()
    assert slots["totalBookings"] == 0


def test_unique_index_conflict_maps_to_409(client, db_session):
    # Row whose week_start disagrees with its date slips past the application check
    db_session.add(models.Booking(
        name="Ravi Kumar", phone=PHONE, date=date(2030, 2, 1), time_slot="09:00", purpose="x",
        location="HQ", status=models.BookingStatus.confirmed, week_start=date(2030, 1, 7),
    ))
    db_session.commit()

    response = client.post("/api/bookings", json=booking_payload())
    assert response.status_code == 409


def test_closed_day_rejected(client, db_session):
    crud.upsert_slot_configuration(db_session, date(2030, 1, 7), SlotStatus.closed, 0, "Holiday")
    response = client.post("/api/bookings", json=booking_payload())
    assert response.status_code == 409

    slots = client.get("/api/slots/2030-01-07").json()
    assert slots["allSlots"] == []
    assert slots["availableSlots"] == []
    assert slots["reason"] == "Holiday"


def test_label_outside_half_day_rejected(client, db_session):
    crud.upsert_slot_configuration(db_session, date(2030, 1, 7), SlotStatus.half_day_pre, 600, None)
    response = client.post("/api/bookings", json=booking_payload(time_slot="15:00"))
    assert response.status_code == 400


def test_full_slot_rejected(client, db_session):
    crud.upsert_slot_configuration(db_session, date(2030, 1, 7), SlotStatus.open, 10, None)
    assert client.post("/api/bookings", json=booking_payload()).status_code == 201

    response = client.post("/api/bookings", json=booking_payload(phone="+919999999999", army_number=None))
    assert response.status_code == 409
    assert response.json()["detail"] == "This time slot is fully booked"

    slots = client.get("/api/slots/2030-01-07").json()
    assert "09:00" in slots["fullyBookedSlots"]


def test_profile_cache_failure_does_not_fail_booking(client, monkeypatch):
    def broken_upsert(*args, **kwargs):
        raise crud.CRUDError("Database error: profile table locked")

    monkeypatch.setattr(crud, "upsert_profile", broken_upsert)
    response = client.post("/api/bookings", json=booking_payload())
    assert response.status_code == 201


def test_weekly_status_endpoint(client):
    missing = client.get("/api/user/weekly-status")
    assert missing.status_code == 400
    assert missing.json()["detail"] == "Phone number required"

    client.post("/api/bookings", json=booking_payload())
    response = client.get("/api/user/weekly-status", params={"phone": PHONE, "date": "2030-01-13"})
    assert response.json() == {
        "hasBookedThisWeek": True,
        "bookingsThisWeek": 1,
        "weekStart": "2030-01-07",
        "weekEnd": "2030-01-13",
    }


def test_overall_status(client, db_session):
    crud.upsert_slot_configuration(db_session, date(2030, 1, 7), SlotStatus.half_day_post, 600, "Parade")
    client.post("/api/bookings", json=booking_payload(time_slot="15:30"))

    response = client.get("/api/slots/status/overall", params={"date": "2030-01-07"})
    assert response.json() == {
        "date": "2030-01-07",
        "status": "half_day_post",
        "totalBookings": 1,
        "maxSlots": 600,
        "availableSlots": 599,
        "reason": "Parade",
    }


def test_profile_endpoints(client):
    assert client.get("/api/profile/JC-1").status_code == 404

    saved = client.post("/api/profile", json={"armyNumber": "JC-1", "name": "Ravi", "mobile": "9876543210"})
    assert saved.status_code == 200
    assert saved.json()["profile"]["armyNumber"] == "JC-1"

    login = client.post("/api/auth/user/login", json={"armyNumber": "JC-1", "name": "Ravi K", "mobile": "9876543210"})
    assert login.json()["user"]["name"] == "Ravi K"

    assert client.delete("/api/profile/JC-1").status_code == 200
    assert client.get("/api/profile/JC-1").status_code == 404


def test_overlong_fields_rejected(client):
    for field, limit in (("name", 120), ("purpose", 255), ("location", 255)):
        response = client.post("/api/bookings", json=booking_payload(**{field: "x" * (limit + 1)}))
        assert response.status_code == 400, field
        assert field in {err["field"] for err in response.json()["errors"]}


def test_weekly_status_accepts_unescaped_plus(client):
    client.post("/api/bookings", json=booking_payload())
    response = client.get(f"/api/user/weekly-status?phone={PHONE}&date=2030-01-13")
    assert response.status_code == 200
    assert response.json()["hasBookedThisWeek"] is True

    invalid = client.get("/api/user/weekly-status", params={"phone": "abc"})
    assert invalid.status_code == 400
    assert invalid.json()["detail"] == "Invalid phone number"


def test_slot_lock_on_postgresql():
    db = MagicMock()
    db.get_bind.return_value.dialect.name = "postgresql"
    crud.lock_time_slot(db, date(2030, 1, 7), "09:30")

    statement, params = db.execute.call_args.args
    assert "pg_advisory_xact_lock" in str(statement)
    assert params == {"key": date(2030, 1, 7).toordinal() * 10000 + 930}


def test_slot_lock_skipped_on_sqlite():
    db = MagicMock()
    db.get_bind.return_value.dialect.name = "sqlite"
    crud.lock_time_slot(db, date(2030, 1, 7), "09:30")
    db.execute.assert_not_called()


def test_booking_takes_slot_lock(client, monkeypatch):
    calls = []
    monkeypatch.setattr(crud, "lock_time_slot", lambda db, target_date, time_slot: calls.append((target_date, time_slot)))

    assert client.post("/api/bookings", json=booking_payload(time_slot="9:00")).status_code == 201
    assert calls == [(date(2030, 1, 7), "09:00")]
