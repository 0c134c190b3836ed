"""Doctor directory endpoints. Reads are public; writes are admin only."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from medibook.api.dependencies import get_caller, get_reference_service
from medibook.core.identity import Caller
from medibook.core.schemas import (
    AvailabilityIn,
    AvailabilityRead,
    DoctorCreate,
    DoctorRead,
    DoctorUpdate,
)
from medibook.scheduling import ReferenceDataService, doctor_view

router = APIRouter(prefix="/doctors")


@router.get("", response_model=list[DoctorRead])
async def list_doctors(
    department_id: Optional[uuid.UUID] = Query(None),
    specialty: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="Match on the doctor's name"),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    service: ReferenceDataService = Depends(get_reference_service),
):
    return await service.list_doctors(
        department_id=department_id,
        specialty=specialty,
        search=search,
        offset=offset,
        limit=limit,
    )


@router.get("/{doctor_id}", response_model=DoctorRead)
async def get_doctor(
    doctor_id: uuid.UUID,
    service: ReferenceDataService = Depends(get_reference_service),
):
    return doctor_view(await service.get_doctor(doctor_id))


@router.post("", response_model=DoctorRead, status_code=201)
async def create_doctor(
    body: DoctorCreate,
    caller: Caller = Depends(get_caller),
    service: ReferenceDataService = Depends(get_reference_service),
):
    return doctor_view(await service.create_doctor(caller, body))


@router.put("/{doctor_id}", response_model=DoctorRead)
async def update_doctor(
    doctor_id: uuid.UUID,
    body: DoctorUpdate,
    caller: Caller = Depends(get_caller),
    service: ReferenceDataService = Depends(get_reference_service),
):
    return doctor_view(await service.update_doctor(caller, doctor_id, body))


@router.delete("/{doctor_id}", status_code=204)
async def delete_doctor(
    doctor_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    service: ReferenceDataService = Depends(get_reference_service),
):
    await service.delete_doctor(caller, doctor_id)
    return Response(status_code=204)


# --- Availability windows ---

@router.get("/{doctor_id}/availability", response_model=list[AvailabilityRead])
async def list_availability(
    doctor_id: uuid.UUID,
    service: ReferenceDataService = Depends(get_reference_service),
):
    return await service.list_availability(doctor_id)


@router.post("/{doctor_id}/availability", response_model=AvailabilityRead, status_code=201)
async def create_availability(
    doctor_id: uuid.UUID,
    body: AvailabilityIn,
    caller: Caller = Depends(get_caller),
    service: ReferenceDataService = Depends(get_reference_service),
):
    return await service.create_availability(caller, doctor_id, body)
