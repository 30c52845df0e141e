# carebook/modules/schedules/service.py
from __future__ import annotations

import datetime as dt
import logging
from typing import List, Optional, Union
from uuid import UUID

from carebook.core.config import settings
from carebook.core.errors import ConflictError, LockoutError, NotFoundError
from carebook.modules import timeslots
from carebook.modules.schedules.repository import ScheduleStore
from carebook.modules.schedules.schemas import (
    BlockTimeResult,
    OperationResult,
    ScheduleEntry,
    ScheduleFilters,
    ScheduleUpdateRequest,
    WeeklySchedule,
)
from carebook.modules.timeslots import TimeSlot

logger = logging.getLogger(__name__)


def _ensure_outside_lockout(day: dt.date, slot: TimeSlot, action: str) -> None:
    """
    Availability may not be withdrawn inside the lockout window: a patient
    may be about to book it. Exactly LOCKOUT_HOURS ahead is still allowed.
    """
    starts_at = timeslots.slot_start_at(day, slot)
    remaining = timeslots.hours_until(starts_at, timeslots.clinic_now())
    if remaining < settings.LOCKOUT_HOURS:
        logger.warning("Lockout: cannot %s at %s (%.2fh ahead)", action, starts_at, remaining)
        raise LockoutError(
            f"Cannot {action} less than {settings.LOCKOUT_HOURS} hours before scheduled time"
        )


async def _find_overlap(
    store: ScheduleStore,
    doctor_id: UUID,
    day: dt.date,
    slot: TimeSlot,
    *,
    exclude_id: Optional[UUID] = None,
    only_available: bool = False,
) -> Optional[ScheduleEntry]:
    entries = await store.find_all_by_doctor(doctor_id, ScheduleFilters(date=day))
    for entry in entries:
        if exclude_id and entry.id == exclude_id:
            continue
        if only_available and not entry.is_available:
            continue
        if entry.time_slot.overlaps(slot):
            return entry
    return None


# READ
async def get_schedule(store: ScheduleStore, schedule_id: UUID) -> ScheduleEntry:
    schedule = await store.find_by_id(schedule_id)
    if schedule is None:
        raise NotFoundError("Schedule not found", code="schedule_not_found")
    return schedule


async def list_doctor_schedules(
    store: ScheduleStore,
    doctor_id: Optional[UUID],
    filters: Optional[ScheduleFilters] = None,
) -> List[ScheduleEntry]:
    return await store.find_all_by_doctor(doctor_id, filters or ScheduleFilters())


async def get_daily_schedule(
    store: ScheduleStore, doctor_id: UUID, day: dt.date
) -> List[ScheduleEntry]:
    return await store.find_all_by_doctor(doctor_id, ScheduleFilters(date=day))


async def get_weekly_schedule(
    store: ScheduleStore, doctor_id: UUID, day: dt.date
) -> WeeklySchedule:
    """Monday-to-Sunday view of the week containing `day`; every day is a key."""
    week_start = day - dt.timedelta(days=day.weekday())
    week_end = week_start + dt.timedelta(days=6)
    entries = await store.find_all_by_doctor(
        doctor_id, ScheduleFilters(start_date=week_start, end_date=week_end)
    )

    schedule = {}
    for offset in range(7):
        current = week_start + dt.timedelta(days=offset)
        schedule[current.isoformat()] = [e for e in entries if e.date == current]
    return WeeklySchedule(week_start=week_start, schedule=schedule)


# CREATE
async def create_schedule(
    store: ScheduleStore,
    *,
    doctor_id: UUID,
    date: dt.date,
    time_slot: str,
    is_available: bool = True,
    repeat_weekly: bool = False,
    notes: Optional[str] = None,
) -> Union[ScheduleEntry, List[ScheduleEntry]]:
    """
    Create one availability entry, or the same slot for RECURRING_WEEKS
    consecutive weeks when repeat_weekly is set.

    Logic:
    - Slot must be HH:mm-HH:mm with start < end.
    - Any overlap with an existing entry of that day is a conflict, whatever
      its availability.
    - Recurring: every week is checked before anything is written.
    """
    slot = TimeSlot.parse(time_slot)
    await store.lock_doctor(doctor_id)

    weeks = settings.RECURRING_WEEKS if repeat_weekly else 1
    days = [date + dt.timedelta(weeks=i) for i in range(weeks)]

    for day in days:
        clash = await _find_overlap(store, doctor_id, day, slot)
        if clash is not None:
            logger.warning(
                "Schedule conflict doctor_id=%s date=%s slot=%s existing=%s",
                doctor_id, day, slot, clash.time_slot,
            )
            raise ConflictError(
                "Schedule conflicts with existing time slots", code="schedule_conflict"
            )

    created: List[ScheduleEntry] = []
    for day in days:
        created.append(
            await store.create(
                doctor_id=doctor_id,
                date=day,
                time_slot=slot,
                is_available=is_available,
                notes=notes,
            )
        )

    if repeat_weekly:
        logger.info(
            "Created repeating weekly schedules doctor_id=%s count=%d", doctor_id, len(created)
        )
        return created

    logger.info("Schedule created schedule_id=%s doctor_id=%s", created[0].id, doctor_id)
    return created[0]


# UPDATE
async def update_schedule(
    store: ScheduleStore,
    schedule_id: UUID,
    changes: ScheduleUpdateRequest,
) -> ScheduleEntry:
    existing = await store.find_by_id(schedule_id)
    if existing is None:
        raise NotFoundError("Schedule not found", code="schedule_not_found")

    if changes.is_available is False and existing.is_available:
        _ensure_outside_lockout(existing.date, existing.time_slot, "make time slot unavailable")

    new_slot = TimeSlot.parse(changes.time_slot) if changes.time_slot is not None else None
    moved = new_slot is not None or (changes.date is not None and changes.date != existing.date)

    if moved:
        await store.lock_doctor(existing.doctor_id)
        clash = await _find_overlap(
            store,
            existing.doctor_id,
            changes.date or existing.date,
            new_slot if new_slot is not None else existing.time_slot,
            exclude_id=schedule_id,
        )
        if clash is not None:
            raise ConflictError(
                "Schedule conflicts with existing time slots", code="schedule_conflict"
            )
    elif changes.is_available and not existing.is_available:
        # Re-opening a block must not create two overlapping available entries
        await store.lock_doctor(existing.doctor_id)
        clash = await _find_overlap(
            store,
            existing.doctor_id,
            existing.date,
            existing.time_slot,
            exclude_id=schedule_id,
            only_available=True,
        )
        if clash is not None:
            raise ConflictError(
                f"Time slot overlaps available slot {clash.time_slot}",
                code="schedule_conflict",
            )

    schedule = await store.update(
        schedule_id,
        date=changes.date,
        time_slot=new_slot,
        is_available=changes.is_available,
        notes=changes.notes,
    )

    logger.info("Schedule updated schedule_id=%s", schedule_id)
    return schedule


# DELETE
async def delete_schedule(store: ScheduleStore, schedule_id: UUID) -> OperationResult:
    existing = await store.find_by_id(schedule_id)
    if existing is None:
        raise NotFoundError("Schedule not found", code="schedule_not_found")

    await store.remove(schedule_id)

    logger.info("Schedule deleted schedule_id=%s", schedule_id)
    return OperationResult(success=True)


# BLOCK TIME
async def block_time(
    store: ScheduleStore,
    *,
    doctor_id: UUID,
    date: dt.date,
    time_slot: str,
    reason: Optional[str] = None,
) -> BlockTimeResult:
    """
    Mark a range unavailable without losing the doctor's other time.

    Logic:
    1) Reject inside the lockout window.
    2) Reject if an already blocked entry overlaps the range.
    3) Available entry equal to the range -> flipped to blocked in place.
    4) Available entry partially overlapping -> split; the remainders on
       either side stay available, a fully covered entry is flipped.
    5) No exact match -> one new blocked entry for the range.
    """
    target = TimeSlot.parse(time_slot)
    _ensure_outside_lockout(date, target, "block time slot")

    await store.lock_doctor(doctor_id)
    existing = await store.find_all_by_doctor(doctor_id, ScheduleFilters(date=date))

    for entry in existing:
        if not entry.is_available and entry.time_slot.overlaps(target):
            logger.warning(
                "Block rejected doctor_id=%s date=%s slot=%s blocked=%s",
                doctor_id, date, target, entry.time_slot,
            )
            raise ConflictError(
                f"Requested time {target} overlaps an already-blocked slot: {entry.time_slot}",
                code="already_blocked",
            )

    updated: List[ScheduleEntry] = []
    exact_match = False

    for entry in existing:
        slot = entry.time_slot

        if slot == target:
            exact_match = True
            updated.append(await store.update(entry.id, is_available=False, notes=reason))
            continue

        if not slot.overlaps(target):
            continue

        left = TimeSlot(start=slot.start, end=target.start) if slot.start < target.start else None
        right = TimeSlot(start=target.end, end=slot.end) if slot.end > target.end else None

        if left is not None and right is not None:
            # original keeps the left part, the right part becomes a new entry
            updated.append(await store.update(entry.id, time_slot=left, is_available=True))
            updated.append(
                await store.create(
                    doctor_id=doctor_id,
                    date=date,
                    time_slot=right,
                    is_available=True,
                    notes=entry.notes,
                )
            )
        elif left is not None or right is not None:
            remainder = left if left is not None else right
            updated.append(await store.update(entry.id, time_slot=remainder, is_available=True))
        else:
            # target swallows the whole entry
            updated.append(await store.update(entry.id, is_available=False, notes=reason))

    created = None
    if not exact_match:
        created = await store.create(
            doctor_id=doctor_id,
            date=date,
            time_slot=target,
            is_available=False,
            notes=reason,
        )

    logger.info(
        "Time blocked doctor_id=%s date=%s slot=%s updated=%d created=%s",
        doctor_id, date, target, len(updated), created.id if created else None,
    )
    return BlockTimeResult(updated=updated, created=created)
