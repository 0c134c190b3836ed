"""Departments, doctors, availability windows and profiles.

Request-scoped: the service works inside the caller's session and leaves
commit/rollback to the owner of that session (``get_db`` in the API).
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from medibook.authorization import Operation, PolicyEngine
from medibook.core.errors import InvalidRequest, NotFound
from medibook.core.identity import Caller
from medibook.core.models import Department, Doctor, DoctorAvailability, Profile, ProfileRole
from medibook.core.repository import (
    AvailabilityRepository,
    DepartmentRepository,
    DoctorRepository,
    ProfileRepository,
)
from medibook.core.schemas import (
    AvailabilityIn,
    DepartmentCreate,
    DepartmentUpdate,
    DoctorCreate,
    DoctorRead,
    DoctorUpdate,
    ProfileUpdate,
)

logger = logging.getLogger(__name__)


def doctor_view(doctor: Doctor) -> DoctorRead:
    """Doctor joined with the display name from its profile."""
    return DoctorRead(
        id=doctor.id,
        profile_id=doctor.profile_id,
        full_name=doctor.profile.full_name if doctor.profile else "",
        department_id=doctor.department_id,
        department_name=doctor.department.name if doctor.department else None,
        specialty=doctor.specialty,
        bio=doctor.bio,
        experience_years=doctor.experience_years or 0,
        photo_url=doctor.photo_url,
    )


class ReferenceDataService:
    def __init__(self, session: AsyncSession, policy: Optional[PolicyEngine] = None):
        self.session = session
        self.policy = policy or PolicyEngine()
        self.departments = DepartmentRepository(session)
        self.doctors = DoctorRepository(session)
        self.availability = AvailabilityRepository(session)
        self.profiles = ProfileRepository(session)

    # ------------------------------------------------------------------
    # Departments
    # ------------------------------------------------------------------

    async def list_departments(self) -> Sequence[Department]:
        return await self.departments.list()

    async def get_department(self, department_id: uuid.UUID) -> Department:
        dept = await self.departments.get_by_id(department_id)
        if dept is None:
            raise NotFound(f"Department {department_id} not found")
        return dept

    async def create_department(self, caller: Caller, data: DepartmentCreate) -> Department:
        self.policy.enforce(caller, Operation.CREATE, Department)
        if await self.departments.get_by_name(data.name):
            raise InvalidRequest(f"Department {data.name!r} already exists")
        dept = await self.departments.create(**data.model_dump())
        logger.info("Department %s created by %s", dept.name, caller.profile_id)
        return dept

    async def update_department(
        self, caller: Caller, department_id: uuid.UUID, data: DepartmentUpdate
    ) -> Department:
        dept = await self.get_department(department_id)
        changes = data.model_dump(exclude_unset=True)
        self.policy.enforce(caller, Operation.UPDATE, dept, changes)
        if changes.get("name") and changes["name"] != dept.name:
            if await self.departments.get_by_name(changes["name"]):
                raise InvalidRequest(f"Department {changes['name']!r} already exists")
        return await self.departments.update(dept, **changes)

    async def delete_department(self, caller: Caller, department_id: uuid.UUID) -> None:
        dept = await self.get_department(department_id)
        self.policy.enforce(caller, Operation.DELETE, dept)
        await self.departments.delete(dept)
        logger.info("Department %s deleted by %s", department_id, caller.profile_id)

    # ------------------------------------------------------------------
    # Doctors
    # ------------------------------------------------------------------

    async def list_doctors(
        self,
        department_id: Optional[uuid.UUID] = None,
        specialty: Optional[str] = None,
        search: Optional[str] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> list[DoctorRead]:
        doctors = await self.doctors.list(
            department_id=department_id,
            specialty=specialty,
            search=search,
            offset=offset,
            limit=limit,
        )
        return [doctor_view(d) for d in doctors]

    async def get_doctor(self, doctor_id: uuid.UUID) -> Doctor:
        doctor = await self.doctors.get_by_id(doctor_id)
        if doctor is None:
            raise NotFound(f"Doctor {doctor_id} not found")
        return doctor

    async def create_doctor(self, caller: Caller, data: DoctorCreate) -> Doctor:
        """Link a doctor-role profile to a new Doctor record (admin only)."""
        self.policy.enforce(caller, Operation.CREATE, Doctor)

        profile = await self.profiles.get_by_id(data.profile_id)
        if profile is None:
            raise NotFound(f"Profile {data.profile_id} not found")
        if profile.role != ProfileRole.doctor.value:
            raise InvalidRequest("Profile role must be doctor")
        if await self.doctors.get_by_profile(profile.id):
            raise InvalidRequest("Profile is already linked to a doctor")
        if data.department_id is not None:
            await self.get_department(data.department_id)

        doctor = await self.doctors.create(**data.model_dump())
        logger.info("Doctor %s linked to profile %s", doctor.id, profile.id)
        return doctor

    async def update_doctor(self, caller: Caller, doctor_id: uuid.UUID, data: DoctorUpdate) -> Doctor:
        doctor = await self.get_doctor(doctor_id)
        changes = data.model_dump(exclude_unset=True)
        self.policy.enforce(caller, Operation.UPDATE, doctor, changes)
        if changes.get("department_id") is not None:
            await self.get_department(changes["department_id"])
        return await self.doctors.update(doctor, **changes)

    async def delete_doctor(self, caller: Caller, doctor_id: uuid.UUID) -> None:
        doctor = await self.get_doctor(doctor_id)
        self.policy.enforce(caller, Operation.DELETE, doctor)
        await self.doctors.delete(doctor)
        logger.info("Doctor %s deleted by %s", doctor_id, caller.profile_id)

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    async def list_availability(self, doctor_id: uuid.UUID) -> Sequence[DoctorAvailability]:
        await self.get_doctor(doctor_id)
        return await self.availability.get_by_doctor(doctor_id)

    async def create_availability(
        self, caller: Caller, doctor_id: uuid.UUID, data: AvailabilityIn
    ) -> DoctorAvailability:
        await self.get_doctor(doctor_id)
        candidate = DoctorAvailability(doctor_id=doctor_id, **data.model_dump())
        self.policy.enforce(caller, Operation.CREATE, candidate)
        return await self.availability.create(doctor_id=doctor_id, **data.model_dump())

    async def update_availability(
        self, caller: Caller, availability_id: uuid.UUID, data: AvailabilityIn
    ) -> DoctorAvailability:
        window = await self._get_window(availability_id)
        changes = data.model_dump()
        self.policy.enforce(caller, Operation.UPDATE, window, changes)
        return await self.availability.update(window, **changes)

    async def delete_availability(self, caller: Caller, availability_id: uuid.UUID) -> None:
        window = await self._get_window(availability_id)
        self.policy.enforce(caller, Operation.DELETE, window)
        await self.availability.delete(window)

    async def _get_window(self, availability_id: uuid.UUID) -> DoctorAvailability:
        window = await self.availability.get_by_id(availability_id)
        if window is None:
            raise NotFound(f"Availability window {availability_id} not found")
        return window

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    async def get_profile(self, caller: Caller, profile_id: Optional[uuid.UUID] = None) -> Profile:
        profile_id = profile_id or caller.profile_id
        profile = await self.profiles.get_by_id(profile_id)
        if profile is None:
            raise NotFound(f"Profile {profile_id} not found")
        self.policy.enforce(caller, Operation.READ, profile)
        return profile

    async def update_profile(
        self,
        caller: Caller,
        data: ProfileUpdate,
        profile_id: Optional[uuid.UUID] = None,
    ) -> Profile:
        profile = await self.get_profile(caller, profile_id)
        changes = data.model_dump(exclude_unset=True)
        self.policy.enforce(caller, Operation.UPDATE, profile, changes)
        return await self.profiles.update(profile, **changes)
