import datetime as dt
import time
import uuid

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.exc import OperationalError

from carebook.core.config import settings
from carebook.dependencies import (
    get_appointment_store,
    get_notification_sink,
    get_schedule_store,
)
from carebook.main import app

API = settings.API_PREFIX


def bearer(user_id, role):
    token = jwt.encode(
        {
            "sub": str(user_id),
            "aud": settings.JWT_AUDIENCE,
            "exp": int(time.time()) + 600,
            "role": "authenticated",
            "app_metadata": {"role": role},
        },
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(clock, schedule_store, appointment_store, sink):
    app.dependency_overrides[get_schedule_store] = lambda: schedule_store
    app.dependency_overrides[get_appointment_store] = lambda: appointment_store
    app.dependency_overrides[get_notification_sink] = lambda: sink
    # no `with`: lifespan (tables, reminder worker) stays off
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def doctor(doctor_id):
    return bearer(doctor_id, "doctor")


@pytest.fixture
def patient(patient_id):
    return bearer(patient_id, "patient")


def test_health(client):
    assert client.get(f"{API}/health").json() == {"status": "ok"}


def test_token_required(client):
    res = client.get(f"{API}/schedules")
    assert res.status_code == 401
    assert res.json()["detail"] == "missing_token"

    res = client.get(f"{API}/schedules", headers={"Authorization": "Bearer nope"})
    assert res.status_code == 401


def test_only_doctors_manage_schedules(client, patient):
    res = client.post(
        f"{API}/schedules", json={"date": "2025-12-02", "time_slot": "10:00-12:00"}, headers=patient
    )
    assert res.status_code == 403
    assert res.json()["detail"] == "forbidden_role"


def test_schedule_lifecycle(client, doctor, doctor_id):
    res = client.post(
        f"{API}/schedules", json={"date": "2025-12-02", "time_slot": "10:00-12:00"}, headers=doctor
    )
    assert res.status_code == 201
    body = res.json()
    assert body["time_slot"] == "10:00-12:00"
    assert body["doctor_id"] == str(doctor_id)
    schedule_id = body["id"]

    res = client.post(
        f"{API}/schedules", json={"date": "2025-12-02", "time_slot": "11:00-13:00"}, headers=doctor
    )
    assert res.status_code == 409
    assert res.json()["detail"] == "schedule_conflict"

    res = client.get(f"{API}/schedules/daily", params={"date": "2025-12-02"}, headers=doctor)
    assert [e["time_slot"] for e in res.json()] == ["10:00-12:00"]

    res = client.patch(f"{API}/schedules/{schedule_id}", json={"notes": "room 3"}, headers=doctor)
    assert res.status_code == 200
    assert res.json()["notes"] == "room 3"

    res = client.delete(f"{API}/schedules/{schedule_id}", headers=doctor)
    assert res.json() == {"success": True}
    assert client.get(f"{API}/schedules/{schedule_id}", headers=doctor).status_code == 404


def test_recurring_schedule_returns_list(client, doctor):
    res = client.post(
        f"{API}/schedules",
        json={"date": "2025-12-08", "time_slot": "09:00-10:00", "repeat_weekly": True},
        headers=doctor,
    )
    assert res.status_code == 201
    assert len(res.json()) == 12


def test_other_doctor_cannot_edit(client, doctor):
    res = client.post(
        f"{API}/schedules", json={"date": "2025-12-02", "time_slot": "10:00-12:00"}, headers=doctor
    )
    other = bearer(uuid.uuid4(), "doctor")

    res = client.delete(f"{API}/schedules/{res.json()['id']}", headers=other)
    assert res.status_code == 403


def test_invalid_slot_is_400(client, doctor):
    res = client.post(
        f"{API}/schedules", json={"date": "2025-12-02", "time_slot": "10-12"}, headers=doctor
    )
    assert res.status_code == 400
    assert res.json() == {
        "detail": "invalid_time_slot",
        "message": "Invalid time slot format. Use HH:mm-HH:mm",
    }


def test_lockout_is_400(client, doctor, clock):
    client.post(
        f"{API}/schedules", json={"date": "2025-12-02", "time_slot": "10:00-12:00"}, headers=doctor
    )
    clock.now = dt.datetime(2025, 12, 1, 12, 0)

    res = client.post(
        f"{API}/schedules/block-time",
        json={"date": "2025-12-02", "time_slot": "11:00-11:30"},
        headers=doctor,
    )
    assert res.status_code == 400
    assert res.json()["detail"] == "too_close_to_scheduled_time"


def test_booking_flow(client, doctor, patient, doctor_id, patient_id, sink):
    client.post(
        f"{API}/schedules", json={"date": "2025-12-02", "time_slot": "10:00-12:00"}, headers=doctor
    )

    res = client.post(
        f"{API}/appointments",
        json={"doctor_id": str(doctor_id), "date": "2025-12-02", "time_slot": "10:00-11:00"},
        headers=patient,
    )
    assert res.status_code == 201
    appointment = res.json()
    assert appointment["patient_id"] == str(patient_id)
    assert appointment["status"] == "scheduled"
    assert {event for _, event, _ in sink.events} == {"appointment_created"}

    res = client.post(
        f"{API}/appointments",
        json={"doctor_id": str(doctor_id), "date": "2025-12-02", "time_slot": "10:30-11:30"},
        headers=bearer(uuid.uuid4(), "patient"),
    )
    assert res.status_code == 409
    assert res.json()["detail"] == "appointment_conflict"

    res = client.post(
        f"{API}/schedules/block-time",
        json={"date": "2025-12-02", "time_slot": "11:00-11:30", "reason": "meeting"},
        headers=doctor,
    )
    assert res.status_code == 200
    assert res.json()["created"]["time_slot"] == "11:00-11:30"

    res = client.get(f"{API}/appointments/patient/{patient_id}", headers=patient)
    assert res.json()["total_count"] == 1
    assert res.json()["upcoming"][0]["id"] == appointment["id"]

    res = client.patch(
        f"{API}/appointments/{appointment['id']}/cancel",
        json={"cancel_reason": "feeling better"},
        headers=patient,
    )
    assert res.status_code == 200
    assert res.json()["notes"] == "Cancelled: feeling better"

    res = client.patch(f"{API}/appointments/{appointment['id']}/cancel", headers=patient)
    assert res.status_code == 409
    assert res.json()["detail"] == "already_cancelled"


def test_doctors_cannot_book(client, doctor, doctor_id):
    res = client.post(
        f"{API}/appointments",
        json={"doctor_id": str(doctor_id), "date": "2025-12-02", "time_slot": "10:00-11:00"},
        headers=doctor,
    )
    assert res.status_code == 403


def test_uncovered_booking_is_409(client, patient, doctor_id):
    res = client.post(
        f"{API}/appointments",
        json={"doctor_id": str(doctor_id), "date": "2025-12-02", "time_slot": "10:00-11:00"},
        headers=patient,
    )
    assert res.status_code == 409
    assert res.json()["detail"] == "not_covered_by_schedule"


def test_patient_cannot_cancel_someone_else(client, doctor, patient, doctor_id):
    client.post(
        f"{API}/schedules", json={"date": "2025-12-02", "time_slot": "10:00-12:00"}, headers=doctor
    )
    res = client.post(
        f"{API}/appointments",
        json={"doctor_id": str(doctor_id), "date": "2025-12-02", "time_slot": "10:00-11:00"},
        headers=patient,
    )

    res = client.patch(
        f"{API}/appointments/{res.json()['id']}/cancel", headers=bearer(uuid.uuid4(), "patient")
    )
    assert res.status_code == 403


def test_complete_is_doctor_only(client, doctor, patient, doctor_id):
    client.post(
        f"{API}/schedules", json={"date": "2025-12-02", "time_slot": "10:00-12:00"}, headers=doctor
    )
    appointment_id = client.post(
        f"{API}/appointments",
        json={"doctor_id": str(doctor_id), "date": "2025-12-02", "time_slot": "10:00-11:00"},
        headers=patient,
    ).json()["id"]

    assert client.patch(f"{API}/appointments/{appointment_id}/complete", headers=patient).status_code == 403

    res = client.patch(
        f"{API}/appointments/{appointment_id}/complete", json={"notes": "done"}, headers=doctor
    )
    assert res.status_code == 200
    assert res.json()["status"] == "completed"

    res = client.delete(f"{API}/appointments/{appointment_id}", headers=patient)
    assert res.json() == {"success": True}
    assert client.get(f"{API}/appointments/{appointment_id}", headers=doctor).status_code == 404


def test_malformed_stored_slot_is_500(client, doctor, doctor_id, schedule_store):
    schedule_store.insert_raw(doctor_id=doctor_id, date=dt.date(2025, 12, 2), time_slot="garbage")

    res = client.get(f"{API}/schedules", params={"doctor_id": str(doctor_id)}, headers=doctor)
    assert res.status_code == 500
    assert res.json()["detail"] == "data_integrity_error"


def test_database_outage_is_503(client, doctor):
    class DownStore:
        async def find_all_by_doctor(self, doctor_id, filters=None):
            raise OperationalError("SELECT", {}, Exception("connection refused"))

    app.dependency_overrides[get_schedule_store] = lambda: DownStore()

    res = client.get(f"{API}/schedules", headers=doctor)
    assert res.status_code == 503
    assert res.json() == {"detail": "database_unavailable"}


def test_admins_cannot_write_schedules_as_themselves(client, schedule_store):
    admin = bearer(uuid.uuid4(), "admin")

    res = client.post(
        f"{API}/schedules", json={"date": "2025-12-02", "time_slot": "10:00-12:00"}, headers=admin
    )
    assert res.status_code == 403
    res = client.post(
        f"{API}/schedules/block-time",
        json={"date": "2025-12-02", "time_slot": "10:00-10:30"},
        headers=admin,
    )
    assert res.status_code == 403
    assert schedule_store.rows == {}
