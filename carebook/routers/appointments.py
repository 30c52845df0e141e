# carebook/routers/appointments.py
from __future__ import annotations

import datetime as dt
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from carebook.core.permission import ensure_owner_or_admin, require_roles
from carebook.core.security import CurrentUser, Role
from carebook.dependencies import (
    get_appointment_store,
    get_current_user,
    get_notification_sink,
    get_schedule_store,
)
from carebook.modules.appointments import service
from carebook.modules.appointments.repository import AppointmentStore
from carebook.modules.appointments.schemas import (
    AppointmentCreateRequest,
    AppointmentFilters,
    AppointmentGroups,
    AppointmentPublic,
    AppointmentUpdateRequest,
    CancelRequest,
    CompleteRequest,
)
from carebook.modules.schedules.repository import ScheduleStore
from carebook.modules.schedules.schemas import OperationResult
from carebook.notifications import NotificationSink

router = APIRouter(tags=["appointments"])


@router.get(
    "/appointments",
    response_model=List[AppointmentPublic],
    summary="List appointments (patients only see their own)",
)
async def appointments_list(
    patient_id: Optional[UUID] = Query(None),
    doctor_id: Optional[UUID] = Query(None),
    status_: Optional[str] = Query(None, alias="status"),
    start_date: Optional[dt.date] = Query(None),
    end_date: Optional[dt.date] = Query(None),
    store: AppointmentStore = Depends(get_appointment_store),
    current_user: CurrentUser = Depends(get_current_user),
):
    if current_user.role == Role.patient:
        patient_id = current_user.id
    filters = AppointmentFilters(
        patient_id=patient_id,
        doctor_id=doctor_id,
        status=status_,
        start_date=start_date,
        end_date=end_date,
    )
    return await service.list_appointments(store, filters)


@router.get("/appointments/upcoming", response_model=List[AppointmentPublic])
async def appointments_upcoming(
    store: AppointmentStore = Depends(get_appointment_store),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.get_upcoming_appointments(store, current_user.id, current_user.role)


@router.get("/appointments/past", response_model=List[AppointmentPublic])
async def appointments_past(
    store: AppointmentStore = Depends(get_appointment_store),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.get_past_appointments(store, current_user.id, current_user.role)


@router.get("/appointments/patient/{patient_id}", response_model=AppointmentGroups)
async def appointments_for_patient(
    patient_id: UUID,
    store: AppointmentStore = Depends(get_appointment_store),
    current_user: CurrentUser = Depends(get_current_user),
):
    if current_user.role == Role.patient:
        ensure_owner_or_admin(current_user, patient_id)
    return await service.get_patient_appointments(store, patient_id)


@router.get("/appointments/doctor/{doctor_id}", response_model=AppointmentGroups)
async def appointments_for_doctor(
    doctor_id: UUID,
    store: AppointmentStore = Depends(get_appointment_store),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await service.get_doctor_appointments(store, doctor_id)


@router.post(
    "/appointments",
    response_model=AppointmentPublic,
    status_code=status.HTTP_201_CREATED,
    summary="Book an appointment (transactional execution)",
)
async def appointments_create(
    payload: AppointmentCreateRequest,
    store: AppointmentStore = Depends(get_appointment_store),
    schedule_store: ScheduleStore = Depends(get_schedule_store),
    notifier: NotificationSink = Depends(get_notification_sink),
    current_user: CurrentUser = Depends(require_roles(Role.patient)),
):
    return await service.create_appointment(
        store,
        schedule_store,
        patient_id=current_user.id,
        doctor_id=payload.doctor_id,
        date=payload.date,
        time_slot=payload.time_slot,
        reason=payload.reason,
        notes=payload.notes,
        notifier=notifier,
    )


@router.get("/appointments/{appointment_id}", response_model=AppointmentPublic)
async def appointments_get(
    appointment_id: UUID,
    store: AppointmentStore = Depends(get_appointment_store),
    current_user: CurrentUser = Depends(get_current_user),
):
    appointment = await service.get_appointment(store, appointment_id)
    if current_user.role == Role.patient:
        ensure_owner_or_admin(current_user, appointment.patient_id)
    return appointment


@router.put("/appointments/{appointment_id}", response_model=AppointmentPublic)
async def appointments_update(
    appointment_id: UUID,
    payload: AppointmentUpdateRequest,
    store: AppointmentStore = Depends(get_appointment_store),
    schedule_store: ScheduleStore = Depends(get_schedule_store),
    current_user: CurrentUser = Depends(require_roles(Role.patient, Role.doctor)),
):
    appointment = await service.get_appointment(store, appointment_id)
    owner = appointment.patient_id if current_user.role == Role.patient else appointment.doctor_id
    ensure_owner_or_admin(current_user, owner)
    return await service.update_appointment(store, schedule_store, appointment_id, payload)


@router.patch("/appointments/{appointment_id}/cancel", response_model=AppointmentPublic)
async def appointments_cancel(
    appointment_id: UUID,
    payload: Optional[CancelRequest] = None,
    store: AppointmentStore = Depends(get_appointment_store),
    notifier: NotificationSink = Depends(get_notification_sink),
    current_user: CurrentUser = Depends(
        require_roles(Role.patient, Role.doctor, Role.admin)
    ),
):
    # Patients may only cancel their own; doctors and admins any
    if current_user.role == Role.patient:
        appointment = await service.get_appointment(store, appointment_id)
        ensure_owner_or_admin(current_user, appointment.patient_id)
    return await service.cancel_appointment(
        store,
        appointment_id,
        payload.cancel_reason if payload else None,
        notifier=notifier,
    )


@router.patch("/appointments/{appointment_id}/complete", response_model=AppointmentPublic)
async def appointments_complete(
    appointment_id: UUID,
    payload: Optional[CompleteRequest] = None,
    store: AppointmentStore = Depends(get_appointment_store),
    schedule_store: ScheduleStore = Depends(get_schedule_store),
    notifier: NotificationSink = Depends(get_notification_sink),
    current_user: CurrentUser = Depends(require_roles(Role.doctor)),
):
    return await service.complete_appointment(
        store,
        schedule_store,
        appointment_id,
        payload.notes if payload else None,
        notifier=notifier,
    )


@router.delete("/appointments/{appointment_id}", response_model=OperationResult)
async def appointments_delete(
    appointment_id: UUID,
    store: AppointmentStore = Depends(get_appointment_store),
    current_user: CurrentUser = Depends(
        require_roles(Role.patient, Role.doctor, Role.admin)
    ),
):
    if current_user.role == Role.patient:
        appointment = await service.get_appointment(store, appointment_id)
        ensure_owner_or_admin(current_user, appointment.patient_id)
    return await service.delete_appointment(store, appointment_id)
