"""Pydantic schemas for API I/O."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _reject_explicit_nulls(model: BaseModel, *fields: str) -> None:
    """Partial updates send null to clear a column; these columns cannot be cleared."""
    for name in fields:
        if name in model.model_fields_set and getattr(model, name) is None:
            raise ValueError(f"{name} cannot be null")


# --- Profile ---

class ProfileRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    full_name: str
    phone: Optional[str] = None
    role: str
    email_confirmed: bool
    created_at: Optional[datetime] = None


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=20)

    @model_validator(mode="after")
    def _required_fields(self) -> "ProfileUpdate":
        _reject_explicit_nulls(self, "full_name")
        return self


class ProvisionRequest(BaseModel):
    """Payload of the identity subsystem's user-created hook."""

    id: uuid.UUID
    email_confirmed: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)


class EmailConfirmedRequest(BaseModel):
    confirmed: bool = True


# --- Department ---

class DepartmentCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None


class DepartmentUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None

    @model_validator(mode="after")
    def _required_fields(self) -> "DepartmentUpdate":
        _reject_explicit_nulls(self, "name")
        return self


class DepartmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: Optional[str] = None


# --- Doctor ---

class DoctorCreate(BaseModel):
    profile_id: uuid.UUID
    department_id: Optional[uuid.UUID] = None
    specialty: Optional[str] = None
    bio: Optional[str] = None
    experience_years: int = Field(default=0, ge=0)
    photo_url: Optional[str] = None


class DoctorUpdate(BaseModel):
    department_id: Optional[uuid.UUID] = None
    specialty: Optional[str] = None
    bio: Optional[str] = None
    experience_years: Optional[int] = Field(default=None, ge=0)
    photo_url: Optional[str] = None

    @model_validator(mode="after")
    def _required_fields(self) -> "DoctorUpdate":
        _reject_explicit_nulls(self, "experience_years")
        return self


class DoctorRead(BaseModel):
    id: uuid.UUID
    profile_id: uuid.UUID
    full_name: str
    department_id: Optional[uuid.UUID] = None
    department_name: Optional[str] = None
    specialty: Optional[str] = None
    bio: Optional[str] = None
    experience_years: int = 0
    photo_url: Optional[str] = None


# --- Availability ---

class AvailabilityIn(BaseModel):
    weekday: int = Field(ge=0, le=6)
    start_time: time
    end_time: time

    @model_validator(mode="after")
    def _window_order(self) -> "AvailabilityIn":
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class AvailabilityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    doctor_id: uuid.UUID
    weekday: int
    start_time: time
    end_time: time


# --- Appointment ---

class AppointmentCreate(BaseModel):
    # Kept as strings so malformed values surface as invalid_slot from the engine.
    doctor_id: uuid.UUID
    appointment_date: str
    appointment_time: str
    patient_note: Optional[str] = None


class DecisionRequest(BaseModel):
    outcome: Literal["confirmed", "rejected"]
    doctor_note: Optional[str] = None


class AppointmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    patient_id: uuid.UUID
    doctor_id: uuid.UUID
    department_id: Optional[uuid.UUID] = None
    appointment_date: date
    appointment_time: time
    status: str
    patient_note: Optional[str] = None
    doctor_note: Optional[str] = None
    cancelled_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
