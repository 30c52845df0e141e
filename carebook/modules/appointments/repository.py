# carebook/modules/appointments/repository.py
from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Optional, Protocol
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from carebook.core.config import settings
from carebook.core.errors import ConflictError, NotFoundError
from carebook.db.locks import lock_doctor
from carebook.modules import timeslots
from carebook.modules.appointments.models import Appointment, ApptStatus
from carebook.modules.appointments.schemas import (
    AppointmentFilters,
    AppointmentPublic,
    appointment_from_row,
)
from carebook.modules.timeslots import TimeSlot

logger = logging.getLogger(__name__)

REMINDER_KINDS = ("24h", "2h")


class AppointmentStore(Protocol):
    """Persistence contract for the appointment service and reminder sweep."""

    async def find_by_id(self, appointment_id: UUID) -> Optional[AppointmentPublic]: ...

    async def find_all(
        self, filters: Optional[AppointmentFilters] = None
    ) -> list[AppointmentPublic]: ...

    async def find_conflicts(
        self,
        doctor_id: UUID,
        starts_at: dt.datetime,
        ends_at: Optional[dt.datetime] = None,
        exclude_appointment_id: Optional[UUID] = None,
    ) -> list[AppointmentPublic]: ...

    async def create(
        self,
        *,
        patient_id: UUID,
        doctor_id: UUID,
        appointment_date: dt.date,
        time_slot: TimeSlot,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> AppointmentPublic: ...

    async def update(
        self,
        appointment_id: UUID,
        *,
        appointment_date: Optional[dt.date] = None,
        time_slot: Optional[TimeSlot] = None,
        status: Optional[str] = None,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> AppointmentPublic: ...

    async def soft_delete(self, appointment_id: UUID) -> None: ...

    async def find_due_reminders(
        self, start: dt.datetime, end: dt.datetime, kind: str
    ) -> list[AppointmentPublic]: ...

    async def mark_reminder_sent(self, appointment_id: UUID, kind: str) -> bool: ...

    async def lock_doctor(self, doctor_id: UUID) -> None: ...


def reminder_field(kind: str) -> str:
    if kind not in REMINDER_KINDS:
        raise ValueError(f"unknown reminder kind {kind!r}")
    return f"reminder_{kind}_sent_at"


def conflict_window(starts_at: dt.datetime) -> tuple[dt.datetime, dt.datetime]:
    """Inclusive buffer around a start instant inside which a second booking clashes."""
    window = dt.timedelta(minutes=settings.CONFLICT_WINDOW_MINUTES)
    return starts_at - window, starts_at + window


def _to_row(rec: Appointment) -> dict[str, Any]:
    return {
        "id": rec.id,
        "patient_id": rec.patient_id,
        "doctor_id": rec.doctor_id,
        "appointment_date": rec.appointment_date,
        "start_time": rec.start_time,
        "end_time": rec.end_time,
        "starts_at": rec.starts_at,
        "status": rec.status,
        "reason": rec.reason,
        "notes": rec.notes,
        "reminder_24h_sent_at": rec.reminder_24h_sent_at,
        "reminder_2h_sent_at": rec.reminder_2h_sent_at,
        "created_at": rec.created_at,
        "updated_at": rec.updated_at,
    }


class SqlAppointmentStore:
    """AppointmentStore over the `appointments` table. Soft-deleted rows are invisible."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_live(self, appointment_id: UUID) -> Optional[Appointment]:
        stmt = select(Appointment).where(
            Appointment.id == appointment_id,
            Appointment.deleted_at.is_(None),
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def find_by_id(self, appointment_id: UUID) -> Optional[AppointmentPublic]:
        rec = await self._get_live(appointment_id)
        return appointment_from_row(_to_row(rec)) if rec else None

    async def find_all(
        self, filters: Optional[AppointmentFilters] = None
    ) -> list[AppointmentPublic]:
        filters = filters or AppointmentFilters()
        conditions = [Appointment.deleted_at.is_(None)]

        if filters.patient_id:
            conditions.append(Appointment.patient_id == filters.patient_id)
        if filters.doctor_id:
            conditions.append(Appointment.doctor_id == filters.doctor_id)
        if filters.status:
            conditions.append(Appointment.status == filters.status)
        if filters.date:
            conditions.append(Appointment.appointment_date == filters.date)
        if filters.start_date:
            conditions.append(Appointment.appointment_date >= filters.start_date)
        if filters.end_date:
            conditions.append(Appointment.appointment_date <= filters.end_date)

        stmt = select(Appointment).where(*conditions).order_by(Appointment.starts_at)
        try:
            rows = (await self.session.execute(stmt)).scalars().all()
        except SQLAlchemyError:
            logger.exception("Error listing appointments filters=%s", filters.model_dump())
            raise
        return [appointment_from_row(_to_row(r)) for r in rows]

    async def find_conflicts(
        self,
        doctor_id: UUID,
        starts_at: dt.datetime,
        ends_at: Optional[dt.datetime] = None,
        exclude_appointment_id: Optional[UUID] = None,
    ) -> list[AppointmentPublic]:
        """
        Scheduled, live appointments of the doctor starting within the
        conflict window of `starts_at` (bounds inclusive), or whose interval
        overlaps [starts_at, ends_at) when ends_at is given.
        """
        lower, upper = conflict_window(starts_at)
        clash = Appointment.starts_at.between(lower, upper)
        if ends_at is not None:
            clash = or_(
                clash,
                and_(Appointment.starts_at < ends_at, Appointment.ends_at > starts_at),
            )

        conditions = [
            Appointment.doctor_id == doctor_id,
            Appointment.status == ApptStatus.SCHEDULED.value,
            Appointment.deleted_at.is_(None),
            clash,
        ]
        if exclude_appointment_id:
            conditions.append(Appointment.id != exclude_appointment_id)

        stmt = select(Appointment).where(*conditions).order_by(Appointment.starts_at)
        try:
            rows = (await self.session.execute(stmt)).scalars().all()
        except SQLAlchemyError:
            logger.exception("Error checking appointment conflicts doctor_id=%s", doctor_id)
            raise
        return [appointment_from_row(_to_row(r)) for r in rows]

    async def create(
        self,
        *,
        patient_id: UUID,
        doctor_id: UUID,
        appointment_date: dt.date,
        time_slot: TimeSlot,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> AppointmentPublic:
        rec = Appointment(
            patient_id=patient_id,
            doctor_id=doctor_id,
            appointment_date=appointment_date,
            start_time=time_slot.start,
            end_time=time_slot.end,
            starts_at=timeslots.slot_start_at(appointment_date, time_slot),
            ends_at=timeslots.slot_end_at(appointment_date, time_slot),
            status=ApptStatus.SCHEDULED.value,
            reason=reason,
            notes=notes,
        )
        try:
            # savepoint: a lost race only undoes this insert
            async with self.session.begin_nested():
                self.session.add(rec)
        except IntegrityError as exc:
            logger.warning(
                "Booking rejected by unique index doctor_id=%s starts_at=%s",
                doctor_id, rec.starts_at,
            )
            raise ConflictError(
                "Doctor is not available at this time. Please choose another time slot.",
                code="appointment_conflict",
            ) from exc
        except SQLAlchemyError:
            logger.exception("Error creating appointment doctor_id=%s", doctor_id)
            raise
        await self.session.refresh(rec)
        return appointment_from_row(_to_row(rec))

    async def update(
        self,
        appointment_id: UUID,
        *,
        appointment_date: Optional[dt.date] = None,
        time_slot: Optional[TimeSlot] = None,
        status: Optional[str] = None,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> AppointmentPublic:
        rec = await self._get_live(appointment_id)
        if rec is None:
            raise NotFoundError("Appointment not found", code="appointment_not_found")

        try:
            async with self.session.begin_nested():
                if appointment_date is not None:
                    rec.appointment_date = appointment_date
                if time_slot is not None:
                    rec.start_time, rec.end_time = time_slot.start, time_slot.end
                if appointment_date is not None or time_slot is not None:
                    rec.starts_at = dt.datetime.combine(rec.appointment_date, rec.start_time)
                    rec.ends_at = dt.datetime.combine(rec.appointment_date, rec.end_time)
                if status is not None:
                    rec.status = status
                if reason is not None:
                    rec.reason = reason
                if notes is not None:
                    rec.notes = notes
        except IntegrityError as exc:
            raise ConflictError(
                "Doctor is not available at this time. Please choose another time slot.",
                code="appointment_conflict",
            ) from exc
        except SQLAlchemyError:
            logger.exception("Error updating appointment %s", appointment_id)
            raise
        await self.session.refresh(rec)
        return appointment_from_row(_to_row(rec))

    async def soft_delete(self, appointment_id: UUID) -> None:
        rec = await self._get_live(appointment_id)
        if rec is None:
            raise NotFoundError("Appointment not found", code="appointment_not_found")
        rec.deleted_at = timeslots.clinic_now()
        try:
            await self.session.flush()
        except SQLAlchemyError:
            logger.exception("Error deleting appointment %s", appointment_id)
            raise

    async def find_due_reminders(
        self, start: dt.datetime, end: dt.datetime, kind: str
    ) -> list[AppointmentPublic]:
        sent_at = getattr(Appointment, reminder_field(kind))
        stmt = (
            select(Appointment)
            .where(
                Appointment.status == ApptStatus.SCHEDULED.value,
                Appointment.deleted_at.is_(None),
                Appointment.starts_at >= start,
                Appointment.starts_at < end,
                sent_at.is_(None),
            )
            .order_by(Appointment.starts_at)
        )
        rows = (await self.session.execute(stmt)).scalars().all()
        return [appointment_from_row(_to_row(r)) for r in rows]

    async def mark_reminder_sent(self, appointment_id: UUID, kind: str) -> bool:
        """
        Claim the reminder: a single conditional UPDATE, so only one caller
        ever sees True for a given appointment and kind.
        """
        field = reminder_field(kind)
        sent_at = getattr(Appointment, field)
        stmt = (
            update(Appointment)
            .where(
                Appointment.id == appointment_id,
                Appointment.status == ApptStatus.SCHEDULED.value,
                Appointment.deleted_at.is_(None),
                sent_at.is_(None),
            )
            .values({field: timeslots.clinic_now()})
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def lock_doctor(self, doctor_id: UUID) -> None:
        await lock_doctor(self.session, doctor_id)
