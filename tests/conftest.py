# tests/conftest.py
from __future__ import annotations

import datetime as dt
import uuid
from typing import Any, Dict, List, Optional

import pytest

from carebook.core.config import settings
from carebook.core.errors import ConflictError, NotFoundError
from carebook.modules import timeslots
from carebook.modules.appointments.repository import conflict_window, reminder_field
from carebook.modules.appointments.schemas import (
    AppointmentFilters,
    AppointmentPublic,
    appointment_from_row,
)
from carebook.modules.schedules.schemas import ScheduleEntry, ScheduleFilters, entry_from_row
from carebook.modules.timeslots import TimeSlot

DEFAULT_NOW = dt.datetime(2025, 12, 1, 9, 0)


class FrozenClock:
    def __init__(self, now: dt.datetime):
        self.now = now

    def __call__(self) -> dt.datetime:
        return self.now


class InMemoryScheduleStore:
    """ScheduleStore keeping raw rows, read back through entry_from_row like the SQL store."""

    def __init__(self):
        self.rows: Dict[uuid.UUID, Dict[str, Any]] = {}
        self.locked: List[uuid.UUID] = []

    def insert_raw(self, **row: Any) -> uuid.UUID:
        row.setdefault("id", uuid.uuid4())
        row.setdefault("is_available", True)
        self.rows[row["id"]] = row
        return row["id"]

    async def find_all_by_doctor(
        self, doctor_id: Optional[uuid.UUID], filters: Optional[ScheduleFilters] = None
    ) -> List[ScheduleEntry]:
        filters = filters or ScheduleFilters()
        today = timeslots.clinic_now().date()
        rows = []
        for row in self.rows.values():
            if doctor_id and row["doctor_id"] != doctor_id:
                continue
            if filters.date and row["date"] != filters.date:
                continue
            if filters.start_date and row["date"] < filters.start_date:
                continue
            if filters.end_date and row["date"] > filters.end_date:
                continue
            if not filters.has_date_filter and not filters.include_past and row["date"] < today:
                continue
            if filters.is_available is not None and row["is_available"] != filters.is_available:
                continue
            rows.append(row)
        entries = [entry_from_row(r) for r in rows]
        return sorted(entries, key=lambda e: (e.date, e.time_slot.start))

    async def find_by_id(self, schedule_id: uuid.UUID) -> Optional[ScheduleEntry]:
        row = self.rows.get(schedule_id)
        return entry_from_row(row) if row else None

    async def create(
        self,
        *,
        doctor_id: uuid.UUID,
        date: dt.date,
        time_slot: TimeSlot,
        is_available: bool = True,
        notes: Optional[str] = None,
    ) -> ScheduleEntry:
        schedule_id = self.insert_raw(
            doctor_id=doctor_id,
            date=date,
            start_time=time_slot.start,
            end_time=time_slot.end,
            is_available=is_available,
            notes=notes,
        )
        return entry_from_row(self.rows[schedule_id])

    async def update(
        self,
        schedule_id: uuid.UUID,
        *,
        date: Optional[dt.date] = None,
        time_slot: Optional[TimeSlot] = None,
        is_available: Optional[bool] = None,
        notes: Optional[str] = None,
    ) -> ScheduleEntry:
        row = self.rows.get(schedule_id)
        if row is None:
            raise NotFoundError("Schedule not found", code="schedule_not_found")
        if date is not None:
            row["date"] = date
        if time_slot is not None:
            row["start_time"], row["end_time"] = time_slot.start, time_slot.end
        if is_available is not None:
            row["is_available"] = is_available
        if notes is not None:
            row["notes"] = notes
        return entry_from_row(row)

    async def remove(self, schedule_id: uuid.UUID) -> ScheduleEntry:
        row = self.rows.pop(schedule_id, None)
        if row is None:
            raise NotFoundError("Schedule not found", code="schedule_not_found")
        return entry_from_row(row)

    async def lock_doctor(self, doctor_id: uuid.UUID) -> None:
        self.locked.append(doctor_id)


class InMemoryAppointmentStore:
    """AppointmentStore with the same visibility rules as the SQL store, unique index included."""

    def __init__(self):
        self.rows: Dict[uuid.UUID, Dict[str, Any]] = {}
        self.locked: List[uuid.UUID] = []

    def _live(self):
        return [r for r in self.rows.values() if r.get("deleted_at") is None]

    async def find_by_id(self, appointment_id: uuid.UUID) -> Optional[AppointmentPublic]:
        row = self.rows.get(appointment_id)
        if row is None or row.get("deleted_at") is not None:
            return None
        return appointment_from_row(row)

    async def find_all(
        self, filters: Optional[AppointmentFilters] = None
    ) -> List[AppointmentPublic]:
        filters = filters or AppointmentFilters()
        found = []
        for row in self._live():
            if filters.patient_id and row["patient_id"] != filters.patient_id:
                continue
            if filters.doctor_id and row["doctor_id"] != filters.doctor_id:
                continue
            if filters.status and row["status"] != filters.status:
                continue
            if filters.date and row["appointment_date"] != filters.date:
                continue
            if filters.start_date and row["appointment_date"] < filters.start_date:
                continue
            if filters.end_date and row["appointment_date"] > filters.end_date:
                continue
            found.append(appointment_from_row(row))
        return sorted(found, key=lambda a: a.starts_at)

    async def find_conflicts(
        self,
        doctor_id: uuid.UUID,
        starts_at: dt.datetime,
        ends_at: Optional[dt.datetime] = None,
        exclude_appointment_id: Optional[uuid.UUID] = None,
    ) -> List[AppointmentPublic]:
        lower, upper = conflict_window(starts_at)
        found = []
        for row in self._live():
            if row["doctor_id"] != doctor_id or row["status"] != "scheduled":
                continue
            if exclude_appointment_id and row["id"] == exclude_appointment_id:
                continue
            near = lower <= row["starts_at"] <= upper
            overlapping = ends_at is not None and (
                row["starts_at"] < ends_at and row["ends_at"] > starts_at
            )
            if near or overlapping:
                found.append(appointment_from_row(row))
        return found

    def _check_unique(self, row: Dict[str, Any]) -> None:
        if row["status"] != "scheduled":
            return
        for other in self._live():
            if (
                other["id"] != row["id"]
                and other["status"] == "scheduled"
                and other["doctor_id"] == row["doctor_id"]
                and other["starts_at"] == row["starts_at"]
            ):
                raise ConflictError("Doctor is not available at this time.", code="appointment_conflict")

    async def create(
        self,
        *,
        patient_id: uuid.UUID,
        doctor_id: uuid.UUID,
        appointment_date: dt.date,
        time_slot: TimeSlot,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
        status: str = "scheduled",
    ) -> AppointmentPublic:
        row = {
            "id": uuid.uuid4(),
            "patient_id": patient_id,
            "doctor_id": doctor_id,
            "appointment_date": appointment_date,
            "start_time": time_slot.start,
            "end_time": time_slot.end,
            "starts_at": timeslots.slot_start_at(appointment_date, time_slot),
            "ends_at": timeslots.slot_end_at(appointment_date, time_slot),
            "status": status,
            "reason": reason,
            "notes": notes,
            "reminder_24h_sent_at": None,
            "reminder_2h_sent_at": None,
            "deleted_at": None,
        }
        self._check_unique(row)
        self.rows[row["id"]] = row
        return appointment_from_row(row)

    async def update(
        self,
        appointment_id: uuid.UUID,
        *,
        appointment_date: Optional[dt.date] = None,
        time_slot: Optional[TimeSlot] = None,
        status: Optional[str] = None,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> AppointmentPublic:
        current = self.rows.get(appointment_id)
        if current is None or current.get("deleted_at") is not None:
            raise NotFoundError("Appointment not found", code="appointment_not_found")
        row = dict(current)
        if appointment_date is not None:
            row["appointment_date"] = appointment_date
        if time_slot is not None:
            row["start_time"], row["end_time"] = time_slot.start, time_slot.end
        row["starts_at"] = dt.datetime.combine(row["appointment_date"], row["start_time"])
        row["ends_at"] = dt.datetime.combine(row["appointment_date"], row["end_time"])
        if status is not None:
            row["status"] = status
        if reason is not None:
            row["reason"] = reason
        if notes is not None:
            row["notes"] = notes
        self._check_unique(row)
        self.rows[appointment_id] = row
        return appointment_from_row(row)

    async def soft_delete(self, appointment_id: uuid.UUID) -> None:
        row = self.rows.get(appointment_id)
        if row is None or row.get("deleted_at") is not None:
            raise NotFoundError("Appointment not found", code="appointment_not_found")
        row["deleted_at"] = timeslots.clinic_now()

    async def find_due_reminders(
        self, start: dt.datetime, end: dt.datetime, kind: str
    ) -> List[AppointmentPublic]:
        field = reminder_field(kind)
        due = [
            r for r in self._live()
            if r["status"] == "scheduled"
            and start <= r["starts_at"] < end
            and r[field] is None
        ]
        return [appointment_from_row(r) for r in sorted(due, key=lambda r: r["starts_at"])]

    async def mark_reminder_sent(self, appointment_id: uuid.UUID, kind: str) -> bool:
        field = reminder_field(kind)
        row = self.rows.get(appointment_id)
        if row is None or row.get("deleted_at") is not None or row["status"] != "scheduled":
            return False
        if row[field] is not None:
            return False
        row[field] = timeslots.clinic_now()
        return True

    async def lock_doctor(self, doctor_id: uuid.UUID) -> None:
        self.locked.append(doctor_id)


class RecordingSink:
    def __init__(self):
        self.events: List[tuple] = []

    async def publish(self, room: str, event: str, payload: Dict[str, Any]) -> None:
        self.events.append((room, event, payload))


@pytest.fixture
def clock(monkeypatch):
    frozen = FrozenClock(DEFAULT_NOW)
    monkeypatch.setattr(timeslots, "clinic_now", frozen)
    return frozen


@pytest.fixture
def schedule_store():
    return InMemoryScheduleStore()


@pytest.fixture
def appointment_store():
    return InMemoryAppointmentStore()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def doctor_id():
    return uuid.uuid4()


@pytest.fixture
def patient_id():
    return uuid.uuid4()


@pytest.fixture(autouse=True)
def _scheduling_rules(monkeypatch):
    # Keep tests independent of a local .env
    monkeypatch.setattr(settings, "LOCKOUT_HOURS", 24)
    monkeypatch.setattr(settings, "CONFLICT_WINDOW_MINUTES", 60)
    monkeypatch.setattr(settings, "RECURRING_WEEKS", 12)
    monkeypatch.setattr(settings, "CLINIC_TIMEZONE", "UTC")
