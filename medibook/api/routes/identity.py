"""Hooks called by the identity subsystem when users sign up or verify email."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from medibook.api.dependencies import require_api_key
from medibook.core.database import get_db
from medibook.core.errors import NotFound
from medibook.core.identity import provision_profile, sync_email_confirmed
from medibook.core.schemas import EmailConfirmedRequest, ProfileRead, ProvisionRequest

router = APIRouter(prefix="/identity", dependencies=[Depends(require_api_key)])


@router.post("/users", response_model=ProfileRead, status_code=201)
async def user_created(body: ProvisionRequest, db: AsyncSession = Depends(get_db)):
    """Provision the Profile for a new identity. Safe to deliver twice."""
    return await provision_profile(
        db,
        body.id,
        metadata=body.metadata,
        email_confirmed=body.email_confirmed,
    )


@router.post("/users/{identity_id}/email-confirmed", response_model=ProfileRead)
async def email_confirmed(
    identity_id: uuid.UUID,
    body: EmailConfirmedRequest,
    db: AsyncSession = Depends(get_db),
):
    profile = await sync_email_confirmed(db, identity_id, body.confirmed)
    if profile is None:
        raise NotFound(f"Profile {identity_id} not found")
    return profile
