# carebook/routers/schedules.py
from __future__ import annotations

import datetime as dt
from typing import List, Optional, Union
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from carebook.core.permission import ensure_owner_or_admin, require_roles
from carebook.core.security import CurrentUser, Role
from carebook.dependencies import get_current_user, get_schedule_store
from carebook.modules.schedules import service
from carebook.modules.schedules.repository import ScheduleStore
from carebook.modules.schedules.schemas import (
    BlockTimeRequest,
    BlockTimeResult,
    OperationResult,
    ScheduleCreateRequest,
    ScheduleEntry,
    ScheduleFilters,
    ScheduleUpdateRequest,
    WeeklySchedule,
)

router = APIRouter(tags=["schedules"])

doctor_only = require_roles(Role.doctor)


@router.get(
    "/schedules",
    response_model=List[ScheduleEntry],
    summary="List a doctor's schedule entries",
)
async def schedules_list(
    doctor_id: Optional[UUID] = Query(None, description="Defaults to the caller when a doctor"),
    date: Optional[dt.date] = Query(None),
    start_date: Optional[dt.date] = Query(None),
    end_date: Optional[dt.date] = Query(None),
    is_available: Optional[bool] = Query(None),
    include_past: bool = Query(False),
    store: ScheduleStore = Depends(get_schedule_store),
    current_user: CurrentUser = Depends(get_current_user),
):
    if doctor_id is None and current_user.role == Role.doctor:
        doctor_id = current_user.id
    filters = ScheduleFilters(
        date=date,
        start_date=start_date,
        end_date=end_date,
        is_available=is_available,
        include_past=include_past,
    )
    return await service.list_doctor_schedules(store, doctor_id, filters)


@router.post(
    "/schedules",
    response_model=Union[List[ScheduleEntry], ScheduleEntry],
    status_code=status.HTTP_201_CREATED,
    summary="Create availability (optionally repeating weekly)",
)
async def schedules_create(
    payload: ScheduleCreateRequest,
    store: ScheduleStore = Depends(get_schedule_store),
    current_user: CurrentUser = Depends(doctor_only),
):
    return await service.create_schedule(
        store,
        doctor_id=current_user.id,
        date=payload.date,
        time_slot=payload.time_slot,
        is_available=payload.is_available,
        repeat_weekly=payload.repeat_weekly,
        notes=payload.notes,
    )


@router.get("/schedules/daily", response_model=List[ScheduleEntry])
async def schedules_daily(
    date: dt.date = Query(...),
    store: ScheduleStore = Depends(get_schedule_store),
    current_user: CurrentUser = Depends(doctor_only),
):
    return await service.get_daily_schedule(store, current_user.id, date)


@router.get("/schedules/weekly", response_model=WeeklySchedule)
async def schedules_weekly(
    date: dt.date = Query(..., description="Any day of the wanted week"),
    store: ScheduleStore = Depends(get_schedule_store),
    current_user: CurrentUser = Depends(doctor_only),
):
    return await service.get_weekly_schedule(store, current_user.id, date)


@router.post(
    "/schedules/block-time",
    response_model=BlockTimeResult,
    summary="Block a time range, splitting available entries around it",
)
async def schedules_block_time(
    payload: BlockTimeRequest,
    store: ScheduleStore = Depends(get_schedule_store),
    current_user: CurrentUser = Depends(doctor_only),
):
    return await service.block_time(
        store,
        doctor_id=current_user.id,
        date=payload.date,
        time_slot=payload.time_slot,
        reason=payload.reason,
    )


@router.get("/schedules/{schedule_id}", response_model=ScheduleEntry)
async def schedules_get(
    schedule_id: UUID,
    store: ScheduleStore = Depends(get_schedule_store),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.get_schedule(store, schedule_id)


@router.patch("/schedules/{schedule_id}", response_model=ScheduleEntry)
@router.put("/schedules/{schedule_id}", response_model=ScheduleEntry)
async def schedules_update(
    schedule_id: UUID,
    payload: ScheduleUpdateRequest,
    store: ScheduleStore = Depends(get_schedule_store),
    current_user: CurrentUser = Depends(doctor_only),
):
    existing = await service.get_schedule(store, schedule_id)
    ensure_owner_or_admin(current_user, existing.doctor_id)
    return await service.update_schedule(store, schedule_id, payload)


@router.delete("/schedules/{schedule_id}", response_model=OperationResult)
async def schedules_delete(
    schedule_id: UUID,
    store: ScheduleStore = Depends(get_schedule_store),
    current_user: CurrentUser = Depends(doctor_only),
):
    existing = await service.get_schedule(store, schedule_id)
    ensure_owner_or_admin(current_user, existing.doctor_id)
    return await service.delete_schedule(store, schedule_id)
