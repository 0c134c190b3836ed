"""Authorization policy engine.

Decides allow/deny for a (caller, operation, resource) triple. ``resource``
is either a model instance (the stored row, or the candidate row on create)
or a model class for class-level questions such as "may this caller list
appointments at all".

Appointment updates are transition-aware: ``changes`` carries the new field
values and every condition for the caller's role must hold, otherwise the
whole update is denied.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Union

from sqlalchemy import or_, true
from sqlalchemy.sql.elements import ColumnElement

from medibook.core.errors import Forbidden, Unauthenticated
from medibook.core.identity import Caller
from medibook.core.models import (
    TERMINAL_STATUSES,
    Appointment,
    AppointmentStatus,
    Base,
    Department,
    Doctor,
    DoctorAvailability,
    Profile,
    ProfileRole,
)

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(True)

    @classmethod
    def deny(cls, reason: str) -> "Decision":
        return cls(False, reason)

    def __bool__(self) -> bool:
        return self.allowed


Resource = Union[Base, type]
_Rule = Callable[[Optional[Caller], Operation, Optional[Any], dict[str, Any]], Decision]

# Fields each role may touch on an appointment update.
_PATIENT_FIELDS = frozenset({"status", "cancelled_by"})
_DOCTOR_FIELDS = frozenset({"status", "cancelled_by", "doctor_note"})
# Profile fields owned by the identity subsystem.
_PROFILE_LOCKED_FIELDS = frozenset({"id", "role", "email_confirmed"})

_AUTH_REQUIRED = "authentication required"


def _status(value: Any) -> Optional[AppointmentStatus]:
    try:
        return AppointmentStatus(value)
    except ValueError:
        return None


class PolicyEngine:
    """Evaluates the access-control table for every resource class."""

    def __init__(self) -> None:
        self._rules: dict[type, _Rule] = {
            Department: self._admin_managed,
            Doctor: self._admin_managed,
            Profile: self._profile,
            DoctorAvailability: self._availability,
            Appointment: self._appointment,
        }

    def authorize(
        self,
        caller: Optional[Caller],
        operation: Operation | str,
        resource: Resource,
        changes: Optional[dict[str, Any]] = None,
    ) -> Decision:
        operation = Operation(operation)
        if isinstance(resource, type):
            model, record = resource, None
        else:
            model, record = type(resource), resource

        rule = self._rules.get(model)
        if rule is None:
            return Decision.deny(f"no policy for {model.__name__}")
        return rule(caller, operation, record, changes or {})

    def enforce(
        self,
        caller: Optional[Caller],
        operation: Operation | str,
        resource: Resource,
        changes: Optional[dict[str, Any]] = None,
    ) -> None:
        """Raise ``Unauthenticated`` or ``Forbidden`` unless allowed."""
        decision = self.authorize(caller, operation, resource, changes)
        if decision:
            return
        if caller is None:
            raise Unauthenticated(decision.reason)
        logger.warning(
            "Denied %s on %s for %s (%s): %s",
            Operation(operation).value,
            resource.__name__ if isinstance(resource, type) else type(resource).__name__,
            caller.profile_id,
            caller.role.value,
            decision.reason,
        )
        raise Forbidden(decision.reason)

    # ------------------------------------------------------------------
    # Per-resource rules
    # ------------------------------------------------------------------

    def _admin_managed(self, caller, operation, record, changes) -> Decision:
        if operation is Operation.READ:
            return Decision.allow()
        if caller is None:
            return Decision.deny(_AUTH_REQUIRED)
        if caller.is_admin:
            return Decision.allow()
        return Decision.deny("admin only")

    def _profile(self, caller, operation, record, changes) -> Decision:
        if caller is None:
            return Decision.deny(_AUTH_REQUIRED)
        if operation is Operation.DELETE:
            return Decision.deny("profiles cannot be deleted")
        if record is None:
            return Decision.deny("profile record required")

        is_self = record.id == caller.profile_id
        if operation is Operation.CREATE:
            return Decision.allow() if is_self else Decision.deny("profiles are created by their own identity")

        if not (is_self or caller.is_admin):
            return Decision.deny("not your profile")
        if operation is Operation.UPDATE:
            locked = _PROFILE_LOCKED_FIELDS.intersection(changes)
            if locked:
                return Decision.deny(f"fields are immutable: {', '.join(sorted(locked))}")
        return Decision.allow()

    def _availability(self, caller, operation, record, changes) -> Decision:
        if operation is Operation.READ:
            return Decision.allow()
        if caller is None:
            return Decision.deny(_AUTH_REQUIRED)
        if caller.is_admin:
            return Decision.allow()
        if record is None:
            return Decision.deny("availability record required")
        if caller.is_doctor and caller.doctor_id is not None and record.doctor_id == caller.doctor_id:
            # A doctor cannot move a window onto another doctor.
            if "doctor_id" in changes and changes["doctor_id"] != caller.doctor_id:
                return Decision.deny("cannot reassign availability")
            return Decision.allow()
        return Decision.deny("only the owning doctor or an admin may manage availability")

    def _appointment(self, caller, operation, record, changes) -> Decision:
        if caller is None:
            return Decision.deny(_AUTH_REQUIRED)
        if operation is Operation.DELETE:
            return Decision.deny("appointments are cancelled, never deleted")

        if operation is Operation.READ:
            if record is None or self._can_see_appointment(caller, record):
                return Decision.allow()
            return Decision.deny("not your appointment")

        if operation is Operation.CREATE:
            if record is None:
                return Decision.deny("appointment record required")
            if not caller.is_patient:
                return Decision.deny("only patients may book appointments")
            if record.patient_id != caller.profile_id:
                return Decision.deny("patients may only book for themselves")
            if not caller.email_confirmed:
                return Decision.deny("email address must be confirmed before booking")
            return Decision.allow()

        if record is None:
            return Decision.deny("appointment record required")
        if caller.is_admin:
            return Decision.allow()
        if caller.is_patient:
            return self._patient_update(caller, record, changes)
        if caller.is_doctor:
            return self._doctor_update(caller, record, changes)
        return Decision.deny("role may not update appointments")

    # ------------------------------------------------------------------
    # Appointment helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _can_see_appointment(caller: Caller, record: Appointment) -> bool:
        if caller.is_admin:
            return True
        if record.patient_id == caller.profile_id:
            return True
        return caller.doctor_id is not None and record.doctor_id == caller.doctor_id

    @staticmethod
    def _patient_update(caller: Caller, record: Appointment, changes: dict[str, Any]) -> Decision:
        extra = set(changes) - _PATIENT_FIELDS
        checks = [
            (record.patient_id == caller.profile_id, "not your appointment"),
            (not extra, "patients may only change status"),
            (_status(changes.get("status")) is AppointmentStatus.cancelled, "patients may only cancel"),
            (changes.get("cancelled_by") == ProfileRole.patient.value, "cancelled_by must be patient"),
            (_status(record.status) not in TERMINAL_STATUSES, "appointment is already closed"),
        ]
        return _all_of(checks)

    @staticmethod
    def _doctor_update(caller: Caller, record: Appointment, changes: dict[str, Any]) -> Decision:
        if caller.doctor_id is None or record.doctor_id != caller.doctor_id:
            return Decision.deny("not your appointment")
        extra = set(changes) - _DOCTOR_FIELDS
        if extra:
            return Decision.deny("doctors may only change status and doctor note")

        prior = _status(record.status)
        new = _status(changes.get("status"))
        if new in (AppointmentStatus.confirmed, AppointmentStatus.rejected):
            return _all_of([
                (prior is AppointmentStatus.pending, "only pending requests can be decided"),
                (changes.get("cancelled_by") is None, "cancelled_by only applies to cancellations"),
            ])
        if new is AppointmentStatus.cancelled:
            return _all_of([
                (prior in (AppointmentStatus.pending, AppointmentStatus.confirmed),
                 "only pending or confirmed appointments can be cancelled"),
                (changes.get("cancelled_by") == ProfileRole.doctor.value, "cancelled_by must be doctor"),
            ])
        return Decision.deny("doctors may only confirm, reject or cancel")


def _all_of(checks: list[tuple[bool, str]]) -> Decision:
    for ok, reason in checks:
        if not ok:
            return Decision.deny(reason)
    return Decision.allow()


def appointment_visibility(caller: Caller) -> ColumnElement[bool]:
    """SQL predicate restricting appointment queries to rows the caller may read."""
    if caller.is_admin:
        return true()
    clauses = [Appointment.patient_id == caller.profile_id]
    if caller.doctor_id is not None:
        clauses.append(Appointment.doctor_id == caller.doctor_id)
    return or_(*clauses)
