"""Health check endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from medibook import __version__
from medibook.api.dependencies import get_feed
from medibook.core.database import get_db
from medibook.notifications import ChangeFeed

router = APIRouter()


@router.get("/health")
async def health_check() -> dict:
    """Basic health check."""
    return {
        "status": "healthy",
        "service": "medibook",
        "version": __version__,
    }


@router.get("/health/ready")
async def readiness_check(
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_feed),
) -> dict:
    """Readiness check - verifies the database answers."""
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        return {"status": "not_ready", "errors": [f"Database check failed: {e}"]}

    return {"status": "ready", "feed_subscribers": feed.subscriber_count}


@router.get("/health/live")
async def liveness_check() -> dict:
    """Liveness check - basic process health."""
    return {"status": "alive"}
