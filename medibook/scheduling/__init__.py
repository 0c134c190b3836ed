"""Appointment scheduling and reference data."""

from medibook.scheduling.engine import SchedulingEngine, appointment_record
from medibook.scheduling.models import (
    TRANSITIONS,
    AppointmentFilter,
    can_transition,
    is_terminal,
    is_valid_path,
)
from medibook.scheduling.reference import ReferenceDataService, doctor_view

__all__ = [
    "TRANSITIONS",
    "AppointmentFilter",
    "ReferenceDataService",
    "SchedulingEngine",
    "appointment_record",
    "can_transition",
    "doctor_view",
    "is_terminal",
    "is_valid_path",
]
