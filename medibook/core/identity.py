"""Identity & role resolution, plus the provisioning hooks the identity subsystem calls."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from medibook.core.auth import decode_token
from medibook.core.errors import InvalidRequest, ProfileIncomplete, Unauthenticated
from medibook.core.models import Doctor, Profile, ProfileRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Caller:
    """An authenticated caller as seen by the policy engine."""

    profile_id: uuid.UUID
    role: ProfileRole
    email_confirmed: bool = False
    doctor_id: Optional[uuid.UUID] = None

    @property
    def is_admin(self) -> bool:
        return self.role is ProfileRole.admin

    @property
    def is_doctor(self) -> bool:
        return self.role is ProfileRole.doctor

    @property
    def is_patient(self) -> bool:
        return self.role is ProfileRole.patient


class IdentityResolver:
    """Maps a caller token to a :class:`Caller`. Pure lookup."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def resolve(self, token: str | None) -> Caller:
        if not token:
            raise Unauthenticated("Missing caller token")

        claims = decode_token(token)
        if not claims or claims.get("type", "access") != "access":
            raise Unauthenticated("Invalid or expired token")

        subject = claims.get("sub")
        try:
            profile_id = uuid.UUID(str(subject))
        except ValueError:
            raise Unauthenticated("Invalid token subject")

        return await self.resolve_profile(profile_id)

    async def resolve_profile(self, profile_id: uuid.UUID) -> Caller:
        profile = await self.session.get(Profile, profile_id)
        if profile is None:
            raise Unauthenticated("No profile provisioned for this identity")

        role = ProfileRole(profile.role)
        doctor_id = None
        if role is ProfileRole.doctor:
            result = await self.session.execute(
                select(Doctor.id).where(Doctor.profile_id == profile.id)
            )
            doctor_id = result.scalar_one_or_none()
            if doctor_id is None:
                raise ProfileIncomplete()

        return Caller(
            profile_id=profile.id,
            role=role,
            email_confirmed=bool(profile.email_confirmed),
            doctor_id=doctor_id,
        )


# ---------------------------------------------------------------------------
# Provisioning hooks
# ---------------------------------------------------------------------------

async def provision_profile(
    session: AsyncSession,
    identity_id: uuid.UUID,
    metadata: dict[str, Any] | None = None,
    email_confirmed: bool = False,
) -> Profile:
    """Create the Profile for a newly signed-up identity.

    Returns the existing row untouched when the identity was already
    provisioned, so the hook can be delivered more than once.
    """
    existing = await session.get(Profile, identity_id)
    if existing is not None:
        return existing

    metadata = metadata or {}
    raw_role = metadata.get("role") or ProfileRole.patient.value
    try:
        role = ProfileRole(raw_role)
    except ValueError:
        raise InvalidRequest(f"Unknown role: {raw_role!r}")

    profile = Profile(
        id=identity_id,
        full_name=metadata.get("full_name") or "User",
        phone=metadata.get("phone"),
        role=role.value,
        email_confirmed=email_confirmed,
    )
    session.add(profile)
    await session.flush()
    logger.info("Provisioned profile %s role=%s", identity_id, role.value)
    return profile


async def sync_email_confirmed(
    session: AsyncSession,
    identity_id: uuid.UUID,
    confirmed: bool,
) -> Optional[Profile]:
    """Mirror the identity's email verification state onto its Profile."""
    profile = await session.get(Profile, identity_id)
    if profile is None:
        return None
    profile.email_confirmed = confirmed
    await session.flush()
    return profile
