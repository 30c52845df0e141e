# carebook/modules/schedules/schemas.py
from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Mapping, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_serializer

from carebook.modules.timeslots import TimeSlot, slot_from_record


class ScheduleEntry(BaseModel):
    """
    A doctor's availability (is_available=True) or block (False) for one
    date and one half-open time range.
    """
    id: UUID
    doctor_id: UUID
    date: dt.date
    time_slot: TimeSlot
    is_available: bool = True
    notes: Optional[str] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None

    @field_serializer("time_slot")
    def _slot_as_string(self, slot: TimeSlot) -> str:
        return str(slot)


def entry_from_row(row: Mapping[str, Any]) -> ScheduleEntry:
    """
    Storage-adapter boundary: build a ScheduleEntry from a row mapping that
    carries either `time_slot` or `start_time`/`end_time`.
    Raises DataIntegrityError when the row has no usable slot.
    """
    return ScheduleEntry(
        id=row["id"],
        doctor_id=row["doctor_id"],
        date=row["date"],
        time_slot=slot_from_record(row),
        is_available=bool(row.get("is_available", True)),
        notes=row.get("notes"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


class ScheduleFilters(BaseModel):
    """
    Filters for listing a doctor's schedule. With no date filter and
    include_past False only today onward is returned.
    """
    date: Optional[dt.date] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    is_available: Optional[bool] = None
    include_past: bool = False

    @property
    def has_date_filter(self) -> bool:
        return bool(self.date or self.start_date or self.end_date)


class ScheduleCreateRequest(BaseModel):
    """
    Payload to create availability.
    - doctor_id is taken from the current user, not from the client.
    - repeat_weekly creates the same slot for RECURRING_WEEKS consecutive weeks.
    """
    date: dt.date
    time_slot: str = Field(..., description="HH:mm-HH:mm", examples=["09:00-12:00"])
    is_available: bool = True
    repeat_weekly: bool = False
    notes: Optional[str] = None


class ScheduleUpdateRequest(BaseModel):
    date: Optional[dt.date] = None
    time_slot: Optional[str] = Field(None, description="HH:mm-HH:mm")
    is_available: Optional[bool] = None
    notes: Optional[str] = None


class BlockTimeRequest(BaseModel):
    date: dt.date
    time_slot: str = Field(..., description="HH:mm-HH:mm", examples=["11:00-11:30"])
    reason: Optional[str] = None


class BlockTimeResult(BaseModel):
    """
    Entries touched by a block: flipped or split existing entries, plus the
    new blocked entry when no existing entry matched the range exactly.
    """
    updated: List[ScheduleEntry]
    created: Optional[ScheduleEntry] = None


class WeeklySchedule(BaseModel):
    week_start: dt.date
    schedule: Dict[str, List[ScheduleEntry]]


class OperationResult(BaseModel):
    success: bool = True
