"""Pytest configuration and fixtures."""

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from medibook.authorization import PolicyEngine
from medibook.core.auth import create_access_token
from medibook.core.database import enable_sqlite_foreign_keys
from medibook.core.identity import Caller
from medibook.core.models import Base, Department, Doctor, Profile, ProfileRole
from medibook.notifications import ChangeFeed
from medibook.scheduling import SchedulingEngine

PATIENT_P = uuid.UUID("11111111-1111-1111-1111-111111111111")
PATIENT_Q = uuid.UUID("22222222-2222-2222-2222-222222222222")
PATIENT_UNCONFIRMED = uuid.UUID("33333333-3333-3333-3333-333333333333")
DOCTOR_PROFILE = uuid.UUID("44444444-4444-4444-4444-444444444444")
OTHER_DOCTOR_PROFILE = uuid.UUID("55555555-5555-5555-5555-555555555555")
UNLINKED_DOCTOR_PROFILE = uuid.UUID("66666666-6666-6666-6666-666666666666")
ADMIN = uuid.UUID("77777777-7777-7777-7777-777777777777")

DOCTOR_ID = uuid.UUID("dddddddd-dddd-dddd-dddd-dddddddddddd")
OTHER_DOCTOR_ID = uuid.UUID("eeeeeeee-eeee-eeee-eeee-eeeeeeeeeeee")
DEPARTMENT_ID = uuid.UUID("cccccccc-cccc-cccc-cccc-cccccccccccc")

# Fixed "now" for the engine; test slots are scheduled after it.
NOW = datetime(2030, 1, 1, 8, 0, tzinfo=timezone.utc)
SLOT_DATE = "2030-03-04"
SLOT_TIME = "09:00"


# ---------------------------------------------------------------------------
# Database: temp-file SQLite so separate sessions get separate connections
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    eng = enable_sqlite_foreign_keys(
        create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'medibook-test.db'}", echo=False)
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as sess:
        yield sess
        await sess.rollback()


@pytest_asyncio.fixture
async def seed(session_factory):
    """Two confirmed patients, one unconfirmed, two doctors, an admin."""
    async with session_factory() as sess:
        sess.add(Department(id=DEPARTMENT_ID, name="Cardiology", description="Heart care"))
        sess.add_all([
            Profile(id=PATIENT_P, full_name="Pat Patient", role="patient", email_confirmed=True),
            Profile(id=PATIENT_Q, full_name="Quinn Patient", role="patient", email_confirmed=True),
            Profile(id=PATIENT_UNCONFIRMED, full_name="Una Unverified", role="patient"),
            Profile(id=DOCTOR_PROFILE, full_name="Dana House", role="doctor", email_confirmed=True),
            Profile(id=OTHER_DOCTOR_PROFILE, full_name="Alex Grey", role="doctor", email_confirmed=True),
            Profile(id=UNLINKED_DOCTOR_PROFILE, full_name="Lee New", role="doctor", email_confirmed=True),
            Profile(id=ADMIN, full_name="Ada Admin", role="admin", email_confirmed=True),
        ])
        await sess.flush()
        sess.add_all([
            Doctor(
                id=DOCTOR_ID,
                profile_id=DOCTOR_PROFILE,
                department_id=DEPARTMENT_ID,
                specialty="Cardiologist",
                experience_years=12,
            ),
            Doctor(
                id=OTHER_DOCTOR_ID,
                profile_id=OTHER_DOCTOR_PROFILE,
                specialty="Dermatologist",
                experience_years=3,
            ),
        ])
        await sess.commit()
    return SimpleNamespace(
        patient_p=PATIENT_P,
        patient_q=PATIENT_Q,
        unconfirmed=PATIENT_UNCONFIRMED,
        doctor_profile=DOCTOR_PROFILE,
        other_doctor_profile=OTHER_DOCTOR_PROFILE,
        unlinked_doctor_profile=UNLINKED_DOCTOR_PROFILE,
        doctor_id=DOCTOR_ID,
        other_doctor_id=OTHER_DOCTOR_ID,
        department_id=DEPARTMENT_ID,
        admin=ADMIN,
    )


# ---------------------------------------------------------------------------
# Callers
# ---------------------------------------------------------------------------

@pytest.fixture
def patient_p() -> Caller:
    return Caller(profile_id=PATIENT_P, role=ProfileRole.patient, email_confirmed=True)


@pytest.fixture
def patient_q() -> Caller:
    return Caller(profile_id=PATIENT_Q, role=ProfileRole.patient, email_confirmed=True)


@pytest.fixture
def unconfirmed_patient() -> Caller:
    return Caller(profile_id=PATIENT_UNCONFIRMED, role=ProfileRole.patient)


@pytest.fixture
def doctor() -> Caller:
    return Caller(
        profile_id=DOCTOR_PROFILE, role=ProfileRole.doctor, email_confirmed=True, doctor_id=DOCTOR_ID
    )


@pytest.fixture
def other_doctor() -> Caller:
    return Caller(
        profile_id=OTHER_DOCTOR_PROFILE,
        role=ProfileRole.doctor,
        email_confirmed=True,
        doctor_id=OTHER_DOCTOR_ID,
    )


@pytest.fixture
def admin() -> Caller:
    return Caller(profile_id=ADMIN, role=ProfileRole.admin, email_confirmed=True)


# ---------------------------------------------------------------------------
# Core components
# ---------------------------------------------------------------------------

@pytest.fixture
def feed() -> ChangeFeed:
    return ChangeFeed(queue_size=10)


@pytest.fixture
def policy() -> PolicyEngine:
    return PolicyEngine()


@pytest.fixture
def scheduling_engine(session_factory, policy, feed) -> SchedulingEngine:
    return SchedulingEngine(
        session_factory,
        policy=policy,
        feed=feed,
        clock=lambda: NOW,
        clinic_timezone="UTC",
    )


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------

def auth_header(profile_id: uuid.UUID, role: str = "patient") -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(str(profile_id), role)}"}


@pytest.fixture
def headers():
    """Factory for ``Authorization`` headers: ``headers(PATIENT_P, "patient")``."""
    return auth_header


@pytest.fixture
def app(session_factory, feed, scheduling_engine):
    """FastAPI app wired to the test database, feed and fixed-clock engine."""
    from medibook.api.app import create_app
    from medibook.api.dependencies import get_feed, get_scheduling_engine
    from medibook.core.database import get_db, get_session_factory

    async def _override_get_db():
        async with session_factory() as sess:
            try:
                yield sess
                await sess.commit()
            except Exception:
                await sess.rollback()
                raise

    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    application.dependency_overrides[get_session_factory] = lambda: session_factory
    application.dependency_overrides[get_feed] = lambda: feed
    application.dependency_overrides[get_scheduling_engine] = lambda: scheduling_engine
    return application


@pytest_asyncio.fixture
async def client(app, seed):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
