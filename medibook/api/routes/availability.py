"""Availability window edits by the owning doctor or an admin."""

import uuid

from fastapi import APIRouter, Depends, Response

from medibook.api.dependencies import get_caller, get_reference_service
from medibook.core.identity import Caller
from medibook.core.schemas import AvailabilityIn, AvailabilityRead
from medibook.scheduling import ReferenceDataService

router = APIRouter(prefix="/availability")


@router.put("/{availability_id}", response_model=AvailabilityRead)
async def update_availability(
    availability_id: uuid.UUID,
    body: AvailabilityIn,
    caller: Caller = Depends(get_caller),
    service: ReferenceDataService = Depends(get_reference_service),
):
    return await service.update_availability(caller, availability_id, body)


@router.delete("/{availability_id}", status_code=204)
async def delete_availability(
    availability_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    service: ReferenceDataService = Depends(get_reference_service),
):
    await service.delete_availability(caller, availability_id)
    return Response(status_code=204)
