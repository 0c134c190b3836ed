"""Current-user endpoint: the caller's own profile."""

from fastapi import APIRouter, Depends

from medibook.api.dependencies import get_caller, get_reference_service
from medibook.core.identity import Caller
from medibook.core.schemas import ProfileRead, ProfileUpdate
from medibook.scheduling import ReferenceDataService

router = APIRouter()


@router.get("/me", response_model=ProfileRead)
async def get_me(
    caller: Caller = Depends(get_caller),
    service: ReferenceDataService = Depends(get_reference_service),
):
    return await service.get_profile(caller)


@router.put("/me", response_model=ProfileRead)
async def update_me(
    body: ProfileUpdate,
    caller: Caller = Depends(get_caller),
    service: ReferenceDataService = Depends(get_reference_service),
):
    """Update name and phone. Role and email state belong to the identity subsystem."""
    return await service.update_profile(caller, body)
