"""Department endpoints."""

import uuid

from fastapi import APIRouter, Depends, Response

from medibook.api.dependencies import get_caller, get_reference_service
from medibook.core.identity import Caller
from medibook.core.schemas import DepartmentCreate, DepartmentRead, DepartmentUpdate
from medibook.scheduling import ReferenceDataService

router = APIRouter(prefix="/departments")


@router.get("", response_model=list[DepartmentRead])
async def list_departments(service: ReferenceDataService = Depends(get_reference_service)):
    return await service.list_departments()


@router.get("/{department_id}", response_model=DepartmentRead)
async def get_department(
    department_id: uuid.UUID,
    service: ReferenceDataService = Depends(get_reference_service),
):
    return await service.get_department(department_id)


@router.post("", response_model=DepartmentRead, status_code=201)
async def create_department(
    body: DepartmentCreate,
    caller: Caller = Depends(get_caller),
    service: ReferenceDataService = Depends(get_reference_service),
):
    return await service.create_department(caller, body)


@router.put("/{department_id}", response_model=DepartmentRead)
async def update_department(
    department_id: uuid.UUID,
    body: DepartmentUpdate,
    caller: Caller = Depends(get_caller),
    service: ReferenceDataService = Depends(get_reference_service),
):
    return await service.update_department(caller, department_id, body)


@router.delete("/{department_id}", status_code=204)
async def delete_department(
    department_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    service: ReferenceDataService = Depends(get_reference_service),
):
    await service.delete_department(caller, department_id)
    return Response(status_code=204)
