"""State graph and request models for the scheduling engine."""

import uuid
from datetime import date
from typing import Optional

from pydantic import BaseModel, Field

from medibook.core.models import TERMINAL_STATUSES, AppointmentStatus

# Legal status transitions. Terminal statuses have no outgoing edges.
TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.pending: frozenset({
        AppointmentStatus.confirmed,
        AppointmentStatus.rejected,
        AppointmentStatus.cancelled,
    }),
    AppointmentStatus.confirmed: frozenset({
        AppointmentStatus.cancelled,
        AppointmentStatus.completed,
    }),
    AppointmentStatus.rejected: frozenset(),
    AppointmentStatus.cancelled: frozenset(),
    AppointmentStatus.completed: frozenset(),
}

DECISION_OUTCOMES = (AppointmentStatus.confirmed, AppointmentStatus.rejected)


def is_terminal(status: AppointmentStatus | str) -> bool:
    return AppointmentStatus(status) in TERMINAL_STATUSES


def can_transition(current: AppointmentStatus | str, new: AppointmentStatus | str) -> bool:
    return AppointmentStatus(new) in TRANSITIONS[AppointmentStatus(current)]


def is_valid_path(statuses: list[AppointmentStatus | str]) -> bool:
    """True when *statuses* starts at pending and only follows legal edges."""
    if not statuses or AppointmentStatus(statuses[0]) is not AppointmentStatus.pending:
        return False
    return all(can_transition(a, b) for a, b in zip(statuses, statuses[1:]))


class AppointmentFilter(BaseModel):
    """Optional narrowing applied on top of the caller's visibility."""

    status: Optional[AppointmentStatus] = None
    doctor_id: Optional[uuid.UUID] = None
    patient_id: Optional[uuid.UUID] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=100, ge=1, le=500)
