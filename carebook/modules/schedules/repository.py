# carebook/modules/schedules/repository.py
from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Optional, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from carebook.core.errors import NotFoundError
from carebook.db.locks import lock_doctor
from carebook.modules import timeslots
from carebook.modules.schedules.models import DoctorSchedule
from carebook.modules.schedules.schemas import ScheduleEntry, ScheduleFilters, entry_from_row
from carebook.modules.timeslots import TimeSlot

logger = logging.getLogger(__name__)


class ScheduleStore(Protocol):
    """Persistence contract the schedule and appointment services rely on."""

    async def find_all_by_doctor(
        self, doctor_id: Optional[UUID], filters: Optional[ScheduleFilters] = None
    ) -> list[ScheduleEntry]: ...

    async def find_by_id(self, schedule_id: UUID) -> Optional[ScheduleEntry]: ...

    async def create(
        self,
        *,
        doctor_id: UUID,
        date: dt.date,
        time_slot: TimeSlot,
        is_available: bool = True,
        notes: Optional[str] = None,
    ) -> ScheduleEntry: ...

    async def update(
        self,
        schedule_id: UUID,
        *,
        date: Optional[dt.date] = None,
        time_slot: Optional[TimeSlot] = None,
        is_available: Optional[bool] = None,
        notes: Optional[str] = None,
    ) -> ScheduleEntry: ...

    async def remove(self, schedule_id: UUID) -> ScheduleEntry: ...

    async def lock_doctor(self, doctor_id: UUID) -> None: ...


def _to_row(rec: DoctorSchedule) -> dict[str, Any]:
    return {
        "id": rec.id,
        "doctor_id": rec.doctor_id,
        "date": rec.date,
        "start_time": rec.start_time,
        "end_time": rec.end_time,
        "is_available": rec.is_available,
        "notes": rec.notes,
        "created_at": rec.created_at,
        "updated_at": rec.updated_at,
    }


class SqlScheduleStore:
    """ScheduleStore over the `doctor_schedules` table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_all_by_doctor(
        self, doctor_id: Optional[UUID], filters: Optional[ScheduleFilters] = None
    ) -> list[ScheduleEntry]:
        filters = filters or ScheduleFilters()
        conditions = []

        if doctor_id:
            conditions.append(DoctorSchedule.doctor_id == doctor_id)
        if filters.date:
            conditions.append(DoctorSchedule.date == filters.date)
        if filters.start_date:
            conditions.append(DoctorSchedule.date >= filters.start_date)
        if filters.end_date:
            conditions.append(DoctorSchedule.date <= filters.end_date)
        # Without any date filter only upcoming days are listed
        if not filters.has_date_filter and not filters.include_past:
            conditions.append(DoctorSchedule.date >= timeslots.clinic_now().date())
        if filters.is_available is not None:
            conditions.append(DoctorSchedule.is_available == filters.is_available)

        stmt = (
            select(DoctorSchedule)
            .where(*conditions)
            .order_by(DoctorSchedule.date, DoctorSchedule.start_time)
        )
        try:
            rows = (await self.session.execute(stmt)).scalars().all()
        except SQLAlchemyError:
            logger.exception("Error finding doctor schedules doctor_id=%s", doctor_id)
            raise
        return [entry_from_row(_to_row(r)) for r in rows]

    async def find_by_id(self, schedule_id: UUID) -> Optional[ScheduleEntry]:
        rec = await self.session.get(DoctorSchedule, schedule_id)
        return entry_from_row(_to_row(rec)) if rec else None

    async def create(
        self,
        *,
        doctor_id: UUID,
        date: dt.date,
        time_slot: TimeSlot,
        is_available: bool = True,
        notes: Optional[str] = None,
    ) -> ScheduleEntry:
        rec = DoctorSchedule(
            doctor_id=doctor_id,
            date=date,
            start_time=time_slot.start,
            end_time=time_slot.end,
            is_available=is_available,
            notes=notes,
        )
        self.session.add(rec)
        try:
            await self.session.flush()
        except SQLAlchemyError:
            logger.exception("Error creating schedule doctor_id=%s date=%s", doctor_id, date)
            raise
        await self.session.refresh(rec)
        return entry_from_row(_to_row(rec))

    async def update(
        self,
        schedule_id: UUID,
        *,
        date: Optional[dt.date] = None,
        time_slot: Optional[TimeSlot] = None,
        is_available: Optional[bool] = None,
        notes: Optional[str] = None,
    ) -> ScheduleEntry:
        rec = await self.session.get(DoctorSchedule, schedule_id)
        if rec is None:
            raise NotFoundError("Schedule not found", code="schedule_not_found")

        if date is not None:
            rec.date = date
        if time_slot is not None:
            rec.start_time, rec.end_time = time_slot.start, time_slot.end
        if is_available is not None:
            rec.is_available = is_available
        if notes is not None:
            rec.notes = notes

        try:
            await self.session.flush()
        except SQLAlchemyError:
            logger.exception("Error updating schedule %s", schedule_id)
            raise
        await self.session.refresh(rec)
        return entry_from_row(_to_row(rec))

    async def remove(self, schedule_id: UUID) -> ScheduleEntry:
        rec = await self.session.get(DoctorSchedule, schedule_id)
        if rec is None:
            raise NotFoundError("Schedule not found", code="schedule_not_found")
        entry = entry_from_row(_to_row(rec))
        await self.session.delete(rec)
        try:
            await self.session.flush()
        except SQLAlchemyError:
            logger.exception("Error deleting schedule %s", schedule_id)
            raise
        return entry

    async def lock_doctor(self, doctor_id: UUID) -> None:
        await lock_doctor(self.session, doctor_id)
