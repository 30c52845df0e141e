# carebook/modules/appointments/schemas.py
from __future__ import annotations

import datetime as dt
from typing import Any, List, Mapping, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_serializer

from carebook.modules.timeslots import TimeSlot, slot_from_record


class AppointmentCreateRequest(BaseModel):
    """
    Payload to create appointment.
    - patient_id will be taken from current_user (role patient), not allowed to be sent by client.
    - date is kept as a string: ISO date or datetime, validated by the service.
    """
    doctor_id: UUID
    date: str = Field(..., examples=["2025-12-02"])
    time_slot: Optional[str] = Field(None, description="HH:mm-HH:mm", examples=["10:00-11:00"])
    reason: Optional[str] = None
    notes: Optional[str] = None


class AppointmentUpdateRequest(BaseModel):
    date: Optional[str] = None
    time_slot: Optional[str] = Field(None, description="HH:mm-HH:mm")
    reason: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = Field(None, description="scheduled | completed | cancelled")


class CancelRequest(BaseModel):
    cancel_reason: Optional[str] = None


class CompleteRequest(BaseModel):
    notes: Optional[str] = None


class AppointmentPublic(BaseModel):
    """
    DTO returns a detailed appointment.
    """
    id: UUID
    patient_id: UUID
    doctor_id: UUID
    appointment_date: dt.date
    time_slot: TimeSlot
    starts_at: dt.datetime
    status: str
    reason: Optional[str] = None
    notes: Optional[str] = None
    reminder_24h_sent_at: Optional[dt.datetime] = None
    reminder_2h_sent_at: Optional[dt.datetime] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None

    @field_serializer("time_slot")
    def _slot_as_string(self, slot: TimeSlot) -> str:
        return str(slot)


def appointment_from_row(row: Mapping[str, Any]) -> AppointmentPublic:
    """Build the DTO from a stored row; the slot goes through slot_from_record."""
    slot = slot_from_record(row)
    return AppointmentPublic(
        id=row["id"],
        patient_id=row["patient_id"],
        doctor_id=row["doctor_id"],
        appointment_date=row["appointment_date"],
        time_slot=slot,
        starts_at=row.get("starts_at") or dt.datetime.combine(row["appointment_date"], slot.start),
        status=row.get("status") or "scheduled",
        reason=row.get("reason"),
        notes=row.get("notes"),
        reminder_24h_sent_at=row.get("reminder_24h_sent_at"),
        reminder_2h_sent_at=row.get("reminder_2h_sent_at"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


class AppointmentFilters(BaseModel):
    patient_id: Optional[UUID] = None
    doctor_id: Optional[UUID] = None
    status: Optional[str] = None
    date: Optional[dt.date] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None


class AppointmentGroups(BaseModel):
    """
    One user's appointments split around the current time.
    past: start already reached. upcoming: start still ahead.
    """
    all: List[AppointmentPublic]
    past: List[AppointmentPublic]
    upcoming: List[AppointmentPublic]
    total_count: int
