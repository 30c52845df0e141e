import datetime as dt
import uuid

from carebook.modules.appointments.models import Appointment
from carebook.modules.schedules.models import DoctorSchedule


def test_schedule_repr_shows_the_slot():
    entry = DoctorSchedule(date=dt.date(2025, 12, 2), start_time=dt.time(10), end_time=dt.time(12))
    text = repr(entry)

    assert text.startswith("<DoctorSchedule id=")
    assert "start_time=datetime.time(10, 0)" in text
    assert "notes" not in text


def test_appointment_repr_leaves_out_free_text():
    appointment = Appointment(
        doctor_id=uuid.uuid4(),
        patient_id=uuid.uuid4(),
        starts_at=dt.datetime(2025, 12, 2, 10),
        status="scheduled",
        reason="chest pain",
    )
    text = repr(appointment)

    assert "status='scheduled'" in text
    assert "chest pain" not in text


def test_appointments_are_soft_deletable():
    assert "deleted_at" in Appointment.__table__.c
    assert "deleted_at" not in DoctorSchedule.__table__.c
