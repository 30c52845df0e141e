# carebook/modules/appointments/service.py
from __future__ import annotations

import datetime as dt
import logging
from typing import List, NamedTuple, Optional
from uuid import UUID
from zoneinfo import ZoneInfo

from carebook.core.config import settings
from carebook.core.errors import (
    ConflictError,
    CoverageError,
    InvalidStateTransitionError,
    NotFoundError,
    PastDateError,
    ValidationError,
)
from carebook.core.security import Role
from carebook.modules import timeslots
from carebook.modules.appointments.models import TERMINAL_STATUSES, ApptStatus
from carebook.modules.appointments.repository import AppointmentStore
from carebook.modules.appointments.schemas import (
    AppointmentFilters,
    AppointmentGroups,
    AppointmentPublic,
    AppointmentUpdateRequest,
)
from carebook.modules.schedules.repository import ScheduleStore
from carebook.modules.schedules.schemas import OperationResult, ScheduleFilters
from carebook.modules.timeslots import TimeSlot
from carebook.notifications import NotificationSink, doctor_room, patient_room

logger = logging.getLogger(__name__)

NOT_AVAILABLE_MSG = "Doctor is not available at this time. Please choose another time slot."


class AppointmentDate(NamedTuple):
    day: dt.date  # calendar date as written, never shifted
    moment: dt.datetime  # naive clinic time, for the future check


def parse_appointment_date(value: str) -> AppointmentDate:
    """
    ISO date or datetime. A value that does not parse as-is is retried as a
    UTC midnight ("<value>T00:00:00+00:00").

    The booking day is the date part of the input itself. Only `moment` is
    converted to clinic time, so "2025-12-15T00:00:00Z" books Dec 15 in
    every clinic zone.
    """
    if not value or not isinstance(value, str):
        raise ValidationError("Invalid date format", code="invalid_date")

    raw = value.strip()
    try:
        parsed = dt.datetime.fromisoformat(raw)
    except ValueError:
        try:
            parsed = dt.datetime.fromisoformat(f"{raw}T00:00:00+00:00")
        except ValueError as exc:
            raise ValidationError("Invalid date format", code="invalid_date") from exc

    moment = parsed
    if parsed.tzinfo is not None:
        moment = parsed.astimezone(ZoneInfo(settings.CLINIC_TIMEZONE)).replace(tzinfo=None)
    return AppointmentDate(day=parsed.date(), moment=moment)


def _ensure_future(moment: dt.datetime) -> None:
    if moment <= timeslots.clinic_now():
        raise PastDateError("Appointment date must be in the future")


async def _ensure_bookable(
    store: AppointmentStore,
    schedule_store: ScheduleStore,
    *,
    doctor_id: UUID,
    day: dt.date,
    slot: TimeSlot,
    exclude_appointment_id: Optional[UUID] = None,
) -> None:
    """Conflict check then coverage check. Caller holds the doctor lock."""
    starts_at = timeslots.slot_start_at(day, slot)
    ends_at = timeslots.slot_end_at(day, slot)

    conflicts = await store.find_conflicts(
        doctor_id, starts_at, ends_at, exclude_appointment_id=exclude_appointment_id
    )
    if conflicts:
        logger.warning(
            "Booking conflict doctor_id=%s starts_at=%s existing=%s",
            doctor_id, starts_at, [str(c.id) for c in conflicts],
        )
        raise ConflictError(NOT_AVAILABLE_MSG, code="appointment_conflict")

    available = await schedule_store.find_all_by_doctor(
        doctor_id, ScheduleFilters(date=day, is_available=True)
    )
    if not timeslots.covers([e.time_slot for e in available], slot):
        logger.warning(
            "Slot not covered by schedule doctor_id=%s date=%s slot=%s", doctor_id, day, slot
        )
        raise CoverageError("Doctor is not available in doctor schedule at this time")


async def _publish(
    notifier: Optional[NotificationSink], event: str, appointment: AppointmentPublic
) -> None:
    if notifier is None:
        return
    payload = appointment.model_dump(mode="json")
    await notifier.publish(doctor_room(appointment.doctor_id), event, payload)
    await notifier.publish(patient_room(appointment.patient_id), event, payload)


# READ
async def get_appointment(store: AppointmentStore, appointment_id: UUID) -> AppointmentPublic:
    appointment = await store.find_by_id(appointment_id)
    if appointment is None:
        raise NotFoundError("Appointment not found", code="appointment_not_found")
    return appointment


async def list_appointments(
    store: AppointmentStore, filters: Optional[AppointmentFilters] = None
) -> List[AppointmentPublic]:
    return await store.find_all(filters or AppointmentFilters())


def _group(appointments: List[AppointmentPublic]) -> AppointmentGroups:
    now = timeslots.clinic_now()
    past = [a for a in appointments if a.starts_at < now]
    upcoming = [
        a for a in appointments
        if a.starts_at >= now and a.status == ApptStatus.SCHEDULED.value
    ]
    return AppointmentGroups(
        all=appointments, past=past, upcoming=upcoming, total_count=len(appointments)
    )


async def get_patient_appointments(store: AppointmentStore, patient_id: UUID) -> AppointmentGroups:
    return _group(await store.find_all(AppointmentFilters(patient_id=patient_id)))


async def get_doctor_appointments(store: AppointmentStore, doctor_id: UUID) -> AppointmentGroups:
    return _group(await store.find_all(AppointmentFilters(doctor_id=doctor_id)))


def _filters_for(user_id: UUID, role: Role) -> AppointmentFilters:
    if role == Role.patient:
        return AppointmentFilters(patient_id=user_id)
    if role == Role.doctor:
        return AppointmentFilters(doctor_id=user_id)
    return AppointmentFilters()  # admin => all


async def get_upcoming_appointments(
    store: AppointmentStore, user_id: UUID, role: Role
) -> List[AppointmentPublic]:
    filters = _filters_for(user_id, role)
    filters.status = ApptStatus.SCHEDULED.value
    now = timeslots.clinic_now()
    return [a for a in await store.find_all(filters) if a.starts_at >= now]


async def get_past_appointments(
    store: AppointmentStore, user_id: UUID, role: Role
) -> List[AppointmentPublic]:
    now = timeslots.clinic_now()
    past = [a for a in await store.find_all(_filters_for(user_id, role)) if a.starts_at < now]
    return sorted(past, key=lambda a: a.starts_at, reverse=True)


# CREATE
async def create_appointment(
    store: AppointmentStore,
    schedule_store: ScheduleStore,
    *,
    patient_id: UUID,
    doctor_id: UUID,
    date: str,
    time_slot: Optional[str],
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    notifier: Optional[NotificationSink] = None,
) -> AppointmentPublic:
    """
    Book a slot with a doctor.

    Logic:
    - date must parse and lie strictly in the future.
    - time_slot is required, HH:mm-HH:mm with start < end.
    - No other scheduled appointment of the doctor may start within
      CONFLICT_WINDOW_MINUTES of this start (inclusive) or overlap the slot.
    - The doctor's available schedule entries for that date must cover the slot.
    - The partial unique index has the last word on a lost race.
    """
    requested = parse_appointment_date(date)
    _ensure_future(requested.moment)
    slot = TimeSlot.parse(time_slot)
    day = requested.day

    await store.lock_doctor(doctor_id)
    await _ensure_bookable(store, schedule_store, doctor_id=doctor_id, day=day, slot=slot)

    appointment = await store.create(
        patient_id=patient_id,
        doctor_id=doctor_id,
        appointment_date=day,
        time_slot=slot,
        reason=reason,
        notes=notes,
    )

    logger.info(
        "Appointment created appointment_id=%s patient_id=%s doctor_id=%s",
        appointment.id, patient_id, doctor_id,
    )
    await _publish(notifier, "appointment_created", appointment)
    return appointment


# UPDATE
def _check_transition(current: str, target: str) -> None:
    if target not in {s.value for s in ApptStatus}:
        raise ValidationError(f"Unknown appointment status {target!r}", code="invalid_status")
    if current in TERMINAL_STATUSES and target != current:
        raise InvalidStateTransitionError(f"Cannot change a {current} appointment to {target}")


async def update_appointment(
    store: AppointmentStore,
    schedule_store: ScheduleStore,
    appointment_id: UUID,
    changes: AppointmentUpdateRequest,
) -> AppointmentPublic:
    existing = await store.find_by_id(appointment_id)
    if existing is None:
        raise NotFoundError("Appointment not found", code="appointment_not_found")

    if changes.status is not None:
        _check_transition(existing.status, changes.status)

    new_day = None
    new_slot = None
    if changes.date is not None or changes.time_slot is not None:
        if existing.status != ApptStatus.SCHEDULED.value:
            raise InvalidStateTransitionError(
                f"Cannot reschedule a {existing.status} appointment"
            )
        if changes.date is not None:
            requested = parse_appointment_date(changes.date)
            _ensure_future(requested.moment)
            new_day = requested.day
        if changes.time_slot is not None:
            new_slot = TimeSlot.parse(changes.time_slot)

        day = new_day or existing.appointment_date
        slot = new_slot if new_slot is not None else existing.time_slot
        _ensure_future(timeslots.slot_start_at(day, slot))

        await store.lock_doctor(existing.doctor_id)
        await _ensure_bookable(
            store,
            schedule_store,
            doctor_id=existing.doctor_id,
            day=day,
            slot=slot,
            exclude_appointment_id=appointment_id,
        )

    appointment = await store.update(
        appointment_id,
        appointment_date=new_day,
        time_slot=new_slot,
        status=changes.status,
        reason=changes.reason,
        notes=changes.notes,
    )

    logger.info("Appointment updated appointment_id=%s", appointment_id)
    return appointment


async def cancel_appointment(
    store: AppointmentStore,
    appointment_id: UUID,
    cancel_reason: Optional[str] = None,
    *,
    notifier: Optional[NotificationSink] = None,
) -> AppointmentPublic:
    existing = await store.find_by_id(appointment_id)
    if existing is None:
        raise NotFoundError("Appointment not found", code="appointment_not_found")

    if existing.status == ApptStatus.CANCELLED.value:
        raise InvalidStateTransitionError(
            "Appointment is already cancelled", code="already_cancelled"
        )
    if existing.status == ApptStatus.COMPLETED.value:
        raise InvalidStateTransitionError(
            "Cannot cancel completed appointment", code="cannot_cancel_completed"
        )

    appointment = await store.update(
        appointment_id,
        status=ApptStatus.CANCELLED.value,
        notes=f"Cancelled: {cancel_reason}" if cancel_reason else "Cancelled",
    )

    logger.info("Appointment cancelled appointment_id=%s reason=%s", appointment_id, cancel_reason)
    await _publish(notifier, "appointment_cancelled", appointment)
    return appointment


async def complete_appointment(
    store: AppointmentStore,
    schedule_store: ScheduleStore,
    appointment_id: UUID,
    notes: Optional[str] = None,
    *,
    notifier: Optional[NotificationSink] = None,
) -> AppointmentPublic:
    existing = await store.find_by_id(appointment_id)
    if existing is None:
        raise NotFoundError("Appointment not found", code="appointment_not_found")

    if existing.status == ApptStatus.COMPLETED.value:
        raise InvalidStateTransitionError(
            "Appointment is already completed", code="already_completed"
        )
    if existing.status == ApptStatus.CANCELLED.value:
        raise InvalidStateTransitionError(
            "Cannot complete cancelled appointment", code="cannot_complete_cancelled"
        )

    appointment = await update_appointment(
        store,
        schedule_store,
        appointment_id,
        AppointmentUpdateRequest(status=ApptStatus.COMPLETED.value, notes=notes),
    )
    await _publish(notifier, "appointment_completed", appointment)
    return appointment


# DELETE
async def delete_appointment(store: AppointmentStore, appointment_id: UUID) -> OperationResult:
    existing = await store.find_by_id(appointment_id)
    if existing is None:
        raise NotFoundError("Appointment not found", code="appointment_not_found")

    await store.soft_delete(appointment_id)

    logger.info("Appointment deleted appointment_id=%s", appointment_id)
    return OperationResult(success=True)
