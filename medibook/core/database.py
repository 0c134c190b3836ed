"""Database engine and async session factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from functools import lru_cache
from pathlib import Path

from sqlalchemy import event, select
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from medibook.config import get_settings
from medibook.core.models import Base, Department

logger = logging.getLogger(__name__)

DEFAULT_DEPARTMENTS: list[tuple[str, str]] = [
    ("Cardiology", "Heart and cardiovascular system care"),
    ("Dermatology", "Skin, hair, and nail treatments"),
    ("Orthopedics", "Bone, joint, and muscle care"),
    ("Pediatrics", "Healthcare for children and adolescents"),
    ("General Medicine", "Primary care and general health"),
    ("Neurology", "Brain and nervous system care"),
]


def get_database_url() -> str:
    return get_settings().database_url


def enable_sqlite_foreign_keys(engine: AsyncEngine) -> AsyncEngine:
    """Turn on FK enforcement (and ON DELETE rules) for every new SQLite connection."""

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


@lru_cache
def _get_engine():
    url = make_url(get_database_url())
    if url.get_backend_name() == "sqlite":
        if url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        return enable_sqlite_foreign_keys(create_async_engine(url, echo=False))
    return create_async_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        echo=False,
    )


@lru_cache
def _get_session_factory():
    return async_sessionmaker(_get_engine(), class_=AsyncSession, expire_on_commit=False)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for components that own their transactions."""
    return _get_session_factory()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async session."""
    async with _get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create all tables (dev only; production uses migrations)."""
    engine = _get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    if get_settings().seed_departments:
        await seed_departments(_get_session_factory())


async def seed_departments(session_factory: async_sessionmaker[AsyncSession]) -> int:
    """Insert the default departments that are not present yet."""
    async with session_factory() as session:
        result = await session.execute(select(Department.name))
        existing = set(result.scalars().all())
        missing = [
            Department(name=name, description=description)
            for name, description in DEFAULT_DEPARTMENTS
            if name not in existing
        ]
        if not missing:
            return 0
        session.add_all(missing)
        await session.commit()
        logger.info("Seeded %d departments", len(missing))
        return len(missing)
