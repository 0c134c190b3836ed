"""CRUD repositories for the scheduling schema."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from medibook.core.models import (
    Appointment,
    AuditLog,
    Department,
    Doctor,
    DoctorAvailability,
    Profile,
)


def _apply(obj, changes: dict[str, Any]) -> None:
    for k, v in changes.items():
        setattr(obj, k, v)


class ProfileRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, profile_id: uuid.UUID) -> Optional[Profile]:
        return await self.session.get(Profile, profile_id)

    async def update(self, profile: Profile, **kwargs) -> Profile:
        _apply(profile, kwargs)
        await self.session.flush()
        return profile


class DepartmentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Department:
        dept = Department(**kwargs)
        self.session.add(dept)
        await self.session.flush()
        return dept

    async def get_by_id(self, department_id: uuid.UUID) -> Optional[Department]:
        return await self.session.get(Department, department_id)

    async def get_by_name(self, name: str) -> Optional[Department]:
        result = await self.session.execute(select(Department).where(Department.name == name))
        return result.scalar_one_or_none()

    async def list(self) -> Sequence[Department]:
        result = await self.session.execute(select(Department).order_by(Department.name))
        return result.scalars().all()

    async def update(self, dept: Department, **kwargs) -> Department:
        _apply(dept, kwargs)
        await self.session.flush()
        return dept

    async def delete(self, dept: Department) -> None:
        await self.session.delete(dept)
        await self.session.flush()


class DoctorRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Doctor:
        doctor = Doctor(**kwargs)
        self.session.add(doctor)
        await self.session.flush()
        await self.session.refresh(doctor, ["profile", "department", "availability"])
        return doctor

    async def get_by_id(self, doctor_id: uuid.UUID) -> Optional[Doctor]:
        return await self.session.get(Doctor, doctor_id)

    async def get_by_profile(self, profile_id: uuid.UUID) -> Optional[Doctor]:
        result = await self.session.execute(select(Doctor).where(Doctor.profile_id == profile_id))
        return result.scalar_one_or_none()

    async def list(
        self,
        department_id: Optional[uuid.UUID] = None,
        specialty: Optional[str] = None,
        search: Optional[str] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> Sequence[Doctor]:
        stmt = select(Doctor).join(Profile, Doctor.profile_id == Profile.id)
        if department_id:
            stmt = stmt.where(Doctor.department_id == department_id)
        if specialty:
            stmt = stmt.where(Doctor.specialty.ilike(f"%{specialty}%"))
        if search:
            stmt = stmt.where(Profile.full_name.ilike(f"%{search}%"))
        stmt = stmt.order_by(Profile.full_name).offset(offset).limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def update(self, doctor: Doctor, **kwargs) -> Doctor:
        _apply(doctor, kwargs)
        await self.session.flush()
        await self.session.refresh(doctor, ["department"])
        return doctor

    async def delete(self, doctor: Doctor) -> None:
        await self.session.delete(doctor)
        await self.session.flush()


class AvailabilityRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> DoctorAvailability:
        window = DoctorAvailability(**kwargs)
        self.session.add(window)
        await self.session.flush()
        return window

    async def get_by_id(self, availability_id: uuid.UUID) -> Optional[DoctorAvailability]:
        return await self.session.get(DoctorAvailability, availability_id)

    async def get_by_doctor(self, doctor_id: uuid.UUID) -> Sequence[DoctorAvailability]:
        stmt = (
            select(DoctorAvailability)
            .where(DoctorAvailability.doctor_id == doctor_id)
            .order_by(DoctorAvailability.weekday, DoctorAvailability.start_time)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def update(self, window: DoctorAvailability, **kwargs) -> DoctorAvailability:
        _apply(window, kwargs)
        await self.session.flush()
        return window

    async def delete(self, window: DoctorAvailability) -> None:
        await self.session.delete(window)
        await self.session.flush()


class AppointmentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Appointment:
        appt = Appointment(**kwargs)
        self.session.add(appt)
        await self.session.flush()
        return appt

    async def get_by_id(self, appointment_id: uuid.UUID) -> Optional[Appointment]:
        return await self.session.get(Appointment, appointment_id, populate_existing=True)

    async def list(
        self,
        visibility: Optional[ColumnElement[bool]] = None,
        status: Optional[str] = None,
        doctor_id: Optional[uuid.UUID] = None,
        patient_id: Optional[uuid.UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        offset: int = 0,
        limit: int = 100,
    ) -> Sequence[Appointment]:
        stmt = select(Appointment)
        if visibility is not None:
            stmt = stmt.where(visibility)
        if status:
            stmt = stmt.where(Appointment.status == status)
        if doctor_id:
            stmt = stmt.where(Appointment.doctor_id == doctor_id)
        if patient_id:
            stmt = stmt.where(Appointment.patient_id == patient_id)
        if date_from:
            stmt = stmt.where(Appointment.appointment_date >= date_from)
        if date_to:
            stmt = stmt.where(Appointment.appointment_date <= date_to)
        stmt = (
            stmt.order_by(Appointment.appointment_date, Appointment.appointment_time)
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def compare_and_set(
        self,
        appointment_id: uuid.UUID,
        expected_status: str,
        **values: Any,
    ) -> bool:
        """Apply *values* only if the row still has *expected_status*.

        Single UPDATE statement, so a concurrent transition on the same row
        cannot interleave between the status check and the write.
        """
        values.setdefault("updated_at", datetime.now(timezone.utc))
        stmt = (
            update(Appointment)
            .where(Appointment.id == appointment_id, Appointment.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1


class AuditRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def log_action(
        self,
        action: str,
        resource_type: str,
        resource_id: str,
        user_id: Optional[str] = None,
        details: Optional[dict] = None,
        ip_address: Optional[str] = None,
    ) -> AuditLog:
        entry = AuditLog(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id),
            details=details,
            ip_address=ip_address,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def get_by_resource(self, resource_type: str, resource_id: str, limit: int = 50) -> Sequence[AuditLog]:
        stmt = (
            select(AuditLog)
            .where(AuditLog.resource_type == resource_type, AuditLog.resource_id == str(resource_id))
            .order_by(AuditLog.timestamp.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def history(self, resource_type: str, resource_id: str) -> Sequence[AuditLog]:
        """All entries for a resource, oldest first."""
        stmt = (
            select(AuditLog)
            .where(AuditLog.resource_type == resource_type, AuditLog.resource_id == str(resource_id))
            .order_by(AuditLog.timestamp)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()
