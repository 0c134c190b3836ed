"""FastAPI dependencies: caller resolution, engines and hook authentication."""

from __future__ import annotations

import hmac
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medibook.authorization import PolicyEngine
from medibook.config import Settings, get_settings
from medibook.core.auth import bearer_token
from medibook.core.database import get_db, get_session_factory
from medibook.core.errors import Forbidden, Unauthenticated
from medibook.core.identity import Caller, IdentityResolver
from medibook.notifications import ChangeFeed, get_change_feed
from medibook.scheduling import ReferenceDataService, SchedulingEngine


async def get_caller(
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> Caller:
    """Resolve the ``Authorization: Bearer <token>`` header to a Caller."""
    return await IdentityResolver(db).resolve(bearer_token(authorization))


@lru_cache
def get_policy() -> PolicyEngine:
    return PolicyEngine()


def get_feed() -> ChangeFeed:
    return get_change_feed()


def get_scheduling_engine(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    policy: PolicyEngine = Depends(get_policy),
    feed: ChangeFeed = Depends(get_feed),
) -> SchedulingEngine:
    return SchedulingEngine(session_factory, policy=policy, feed=feed)


def get_reference_service(
    db: AsyncSession = Depends(get_db),
    policy: PolicyEngine = Depends(get_policy),
) -> ReferenceDataService:
    return ReferenceDataService(db, policy=policy)


async def require_api_key(
    x_api_key: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Guard for the identity subsystem's provisioning hooks."""
    if not settings.has_api_key:
        raise Forbidden("Provisioning hooks are disabled")
    if not x_api_key or not hmac.compare_digest(x_api_key, settings.api_key):
        raise Unauthenticated("Invalid or missing API key")
