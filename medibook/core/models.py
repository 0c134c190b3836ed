"""SQLAlchemy 2.0 async models for the scheduling schema."""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime, time, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    Uuid,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import JSON


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_uuid() -> uuid.UUID:
    return uuid.uuid4()


class ProfileRole(str, enum.Enum):
    """Role of an authenticated identity. Fixed at provisioning."""
    patient = "patient"
    doctor = "doctor"
    admin = "admin"


class AppointmentStatus(str, enum.Enum):
    """Appointment lifecycle statuses."""
    pending = "pending"
    confirmed = "confirmed"
    rejected = "rejected"
    cancelled = "cancelled"
    completed = "completed"


# Statuses that occupy a doctor's slot.
ACTIVE_STATUSES = (AppointmentStatus.pending, AppointmentStatus.confirmed)
TERMINAL_STATUSES = (
    AppointmentStatus.rejected,
    AppointmentStatus.cancelled,
    AppointmentStatus.completed,
)

NO_DOUBLE_BOOKING_INDEX = "idx_appointments_no_double_booking"
_ACTIVE_SLOT_PREDICATE = text(
    "status IN (%s)" % ", ".join(f"'{s.value}'" for s in ACTIVE_STATUSES)
)


class Base(DeclarativeBase):
    pass


class Department(Base):
    __tablename__ = "departments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=_new_uuid)
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Profile(Base):
    __tablename__ = "profiles"

    # Shared with the identity subsystem; never generated here.
    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(20))
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=ProfileRole.patient.value)
    email_confirmed: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        CheckConstraint("role IN ('patient', 'doctor', 'admin')", name="ck_profiles_role"),
    )


class Doctor(Base):
    __tablename__ = "doctors"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=_new_uuid)
    profile_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(), ForeignKey("profiles.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    department_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(), ForeignKey("departments.id", ondelete="SET NULL")
    )
    specialty: Mapped[str | None] = mapped_column(String(200))
    bio: Mapped[str | None] = mapped_column(Text)
    experience_years: Mapped[int] = mapped_column(Integer, default=0)
    photo_url: Mapped[str | None] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    profile: Mapped[Profile] = relationship(lazy="selectin")
    department: Mapped[Department | None] = relationship(lazy="selectin")
    availability: Mapped[list[DoctorAvailability]] = relationship(
        back_populates="doctor", lazy="selectin", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_doctors_department_id", "department_id"),
    )


class DoctorAvailability(Base):
    __tablename__ = "doctor_availabilities"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=_new_uuid)
    doctor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(), ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False
    )
    weekday: Mapped[int] = mapped_column(Integer, nullable=False)  # 0=Mon..6=Sun
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    doctor: Mapped[Doctor] = relationship(back_populates="availability")

    __table_args__ = (
        CheckConstraint("weekday BETWEEN 0 AND 6", name="ck_availability_weekday"),
        CheckConstraint("start_time < end_time", name="ck_availability_window"),
        Index("ix_availability_doctor_day", "doctor_id", "weekday"),
    )


class Appointment(Base):
    __tablename__ = "appointments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=_new_uuid)
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    doctor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(), ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False
    )
    department_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(), ForeignKey("departments.id", ondelete="SET NULL")
    )
    appointment_date: Mapped[date] = mapped_column(Date, nullable=False)
    appointment_time: Mapped[time] = mapped_column(Time, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=AppointmentStatus.pending.value)
    patient_note: Mapped[str | None] = mapped_column(Text)
    doctor_note: Mapped[str | None] = mapped_column(Text)
    cancelled_by: Mapped[str | None] = mapped_column(String(20))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'rejected', 'cancelled', 'completed')",
            name="ck_appointments_status",
        ),
        CheckConstraint(
            "cancelled_by IS NULL OR cancelled_by IN ('patient', 'doctor', 'admin')",
            name="ck_appointments_cancelled_by",
        ),
        Index(
            NO_DOUBLE_BOOKING_INDEX,
            "doctor_id",
            "appointment_date",
            "appointment_time",
            unique=True,
            postgresql_where=_ACTIVE_SLOT_PREDICATE,
            sqlite_where=_ACTIVE_SLOT_PREDICATE,
        ),
        Index("ix_appointments_patient_id", "patient_id"),
        Index("ix_appointments_doctor_date", "doctor_id", "appointment_date"),
        Index("ix_appointments_status", "status"),
    )


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=_new_uuid)
    user_id: Mapped[str | None] = mapped_column(String(255))
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(255), nullable=False)
    details: Mapped[dict | None] = mapped_column(JSON)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    ip_address: Mapped[str | None] = mapped_column(String(45))

    __table_args__ = (
        Index("ix_audit_resource", "resource_type", "resource_id"),
        Index("ix_audit_timestamp", "timestamp"),
    )
