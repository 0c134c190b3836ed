"""Appointment booking and lifecycle endpoints."""

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from medibook.api.dependencies import get_caller, get_scheduling_engine
from medibook.core.identity import Caller
from medibook.core.models import AppointmentStatus
from medibook.core.schemas import AppointmentCreate, AppointmentRead, DecisionRequest
from medibook.scheduling import AppointmentFilter, SchedulingEngine

router = APIRouter(prefix="/appointments")


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


@router.get("", response_model=list[AppointmentRead])
async def list_appointments(
    status: Optional[AppointmentStatus] = Query(None),
    doctor_id: Optional[uuid.UUID] = Query(None),
    patient_id: Optional[uuid.UUID] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    offset: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    caller: Caller = Depends(get_caller),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    """Appointments visible to the caller, soonest first."""
    filters = AppointmentFilter(
        status=status,
        doctor_id=doctor_id,
        patient_id=patient_id,
        date_from=date_from,
        date_to=date_to,
        offset=offset,
        limit=limit,
    )
    return await engine.list_appointments(caller, filters)


@router.post("", response_model=AppointmentRead, status_code=201)
async def create_appointment(
    body: AppointmentCreate,
    request: Request,
    caller: Caller = Depends(get_caller),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    return await engine.create_appointment(
        caller,
        doctor_id=body.doctor_id,
        appointment_date=body.appointment_date,
        appointment_time=body.appointment_time,
        patient_note=body.patient_note,
        ip_address=_client_ip(request),
    )


@router.get("/{appointment_id}", response_model=AppointmentRead)
async def get_appointment(
    appointment_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    return await engine.get_appointment(appointment_id, caller)


@router.post("/{appointment_id}/decision", response_model=AppointmentRead)
async def decide_appointment(
    appointment_id: uuid.UUID,
    body: DecisionRequest,
    request: Request,
    caller: Caller = Depends(get_caller),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    """Confirm or reject a pending request."""
    return await engine.decide(
        appointment_id, caller, body.outcome, body.doctor_note, ip_address=_client_ip(request)
    )


@router.post("/{appointment_id}/cancel", response_model=AppointmentRead)
async def cancel_appointment(
    appointment_id: uuid.UUID,
    request: Request,
    caller: Caller = Depends(get_caller),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    return await engine.cancel(appointment_id, caller, ip_address=_client_ip(request))


@router.post("/{appointment_id}/complete", response_model=AppointmentRead)
async def complete_appointment(
    appointment_id: uuid.UUID,
    request: Request,
    caller: Caller = Depends(get_caller),
    engine: SchedulingEngine = Depends(get_scheduling_engine),
):
    return await engine.complete(appointment_id, caller, ip_address=_client_ip(request))
