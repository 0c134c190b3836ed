"""Appointment scheduling engine.

Every mutation is one transaction: the status change is a compare-and-set
UPDATE keyed on the expected prior status, written together with its audit
row. Booking relies on the partial unique index over active slots, so two
concurrent requests for the same slot resolve in the database and the loser
gets ``SlotTaken``. Change events go out only after the commit.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, time, timezone
from typing import Any, Callable, Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medibook.authorization import Operation, PolicyEngine, appointment_visibility
from medibook.config import get_settings
from medibook.core.errors import (
    Forbidden,
    InvalidRequest,
    InvalidSlot,
    InvalidTransition,
    NotFound,
    SchedulingError,
    SlotTaken,
    StorageFault,
)
from medibook.core.identity import Caller
from medibook.core.models import (
    NO_DOUBLE_BOOKING_INDEX,
    Appointment,
    AppointmentStatus,
    AuditLog,
    Doctor,
)
from medibook.core.repository import AppointmentRepository, AuditRepository
from medibook.core.schemas import AppointmentRead
from medibook.notifications import ChangeEvent, ChangeFeed, ChangeType, get_change_feed
from medibook.scheduling.models import DECISION_OUTCOMES, AppointmentFilter, is_terminal

logger = logging.getLogger(__name__)

TABLE = "appointments"
_SLOT_COLUMNS = ("doctor_id", "appointment_date", "appointment_time")

Clock = Callable[[], datetime]


def _utc_clock() -> datetime:
    return datetime.now(timezone.utc)


def appointment_record(appt: Appointment) -> dict[str, Any]:
    """JSON form of an appointment row, as carried by change events."""
    return AppointmentRead.model_validate(appt).model_dump(mode="json")


def _is_slot_conflict(exc: IntegrityError) -> bool:
    message = str(exc.orig) if exc.orig is not None else str(exc)
    if NO_DOUBLE_BOOKING_INDEX in message:
        return True
    # SQLite names the columns rather than the index.
    return all(f"appointments.{col}" in message for col in _SLOT_COLUMNS)


def _parse_date(value: date | str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise InvalidSlot(f"Invalid appointment date: {value!r}")


def _parse_time(value: time | str) -> time:
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(value)
    except (TypeError, ValueError):
        raise InvalidSlot(f"Invalid appointment time: {value!r}")


class SchedulingEngine:
    """Creates appointments and drives them through their lifecycle."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        policy: Optional[PolicyEngine] = None,
        feed: Optional[ChangeFeed] = None,
        clock: Optional[Clock] = None,
        clinic_timezone: Optional[str] = None,
    ) -> None:
        self._session_factory = session_factory
        self.policy = policy or PolicyEngine()
        self.feed = feed if feed is not None else get_change_feed()
        self._clock = clock or _utc_clock
        tz_name = clinic_timezone or get_settings().clinic_timezone
        try:
            self.timezone = ZoneInfo(tz_name)
        except ZoneInfoNotFoundError:
            raise InvalidRequest(f"Unknown clinic timezone: {tz_name!r}")

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_appointment(
        self,
        caller: Caller,
        doctor_id: uuid.UUID,
        appointment_date: date | str,
        appointment_time: time | str,
        patient_note: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Appointment:
        """Book a pending appointment for the calling patient.

        Raises:
            InvalidSlot: malformed date/time, or a slot already in the past.
            NotFound: unknown doctor.
            Forbidden: caller is not an email-confirmed patient.
            SlotTaken: the doctor already has an active booking for the slot.
        """
        slot_date = _parse_date(appointment_date)
        slot_time = _parse_time(appointment_time)
        slot_start = datetime.combine(slot_date, slot_time, tzinfo=self.timezone)
        if slot_start < self._clock():
            raise InvalidSlot("Appointment slot is in the past")

        async with self._session_factory() as session:
            try:
                async with session.begin():
                    doctor = await session.get(Doctor, doctor_id)
                    if doctor is None:
                        raise NotFound(f"Doctor {doctor_id} not found")

                    fields = dict(
                        patient_id=caller.profile_id,
                        doctor_id=doctor.id,
                        department_id=doctor.department_id,
                        appointment_date=slot_date,
                        appointment_time=slot_time,
                        status=AppointmentStatus.pending.value,
                        patient_note=patient_note,
                    )
                    self.policy.enforce(caller, Operation.CREATE, Appointment(**fields))

                    appt = await AppointmentRepository(session).create(**fields)
                    await AuditRepository(session).log_action(
                        action="create",
                        resource_type=TABLE,
                        resource_id=str(appt.id),
                        user_id=str(caller.profile_id),
                        details={"to": appt.status, "doctor_id": str(doctor.id)},
                        ip_address=ip_address,
                    )
            except IntegrityError as e:
                if _is_slot_conflict(e):
                    logger.info(
                        "Slot taken: doctor=%s %s %s", doctor_id, slot_date, slot_time
                    )
                    raise SlotTaken()
                logger.exception("Integrity error while booking appointment")
                raise StorageFault()
            except SchedulingError:
                raise
            except SQLAlchemyError:
                logger.exception("Storage failure while booking appointment")
                raise StorageFault()

        logger.info(
            "Appointment %s booked: patient=%s doctor=%s %s %s",
            appt.id, appt.patient_id, appt.doctor_id, slot_date, slot_time,
        )
        self._publish(ChangeType.INSERT, appointment_record(appt), None, caller)
        return appt

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def decide(
        self,
        appointment_id: uuid.UUID,
        caller: Caller,
        outcome: AppointmentStatus | str,
        doctor_note: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Appointment:
        """Confirm or reject a pending request (assigned doctor or admin)."""
        try:
            target = AppointmentStatus(outcome)
        except ValueError:
            raise InvalidRequest(f"Unknown outcome: {outcome!r}")
        if target not in DECISION_OUTCOMES:
            raise InvalidRequest("Outcome must be confirmed or rejected")

        def guard(appt: Appointment) -> None:
            if not (caller.is_admin or (caller.doctor_id is not None and appt.doctor_id == caller.doctor_id)):
                raise Forbidden("Only the assigned doctor may decide this request")
            if appt.status != AppointmentStatus.pending.value:
                raise InvalidTransition(f"Cannot {target.value} a {appt.status} appointment")

        changes: dict[str, Any] = {"status": target.value}
        if doctor_note is not None:
            changes["doctor_note"] = doctor_note
        return await self._transition(appointment_id, caller, "decide", changes, guard, ip_address)

    async def cancel(
        self, appointment_id: uuid.UUID, caller: Caller, ip_address: Optional[str] = None
    ) -> Appointment:
        """Cancel an appointment on behalf of its patient, its doctor or an admin."""

        def guard(appt: Appointment) -> None:
            if is_terminal(appt.status):
                raise InvalidTransition(f"Appointment is already {appt.status}")
            if caller.is_patient and appt.status != AppointmentStatus.pending.value:
                raise InvalidTransition("Patients can only cancel pending requests")

        changes = {
            "status": AppointmentStatus.cancelled.value,
            "cancelled_by": caller.role.value,
        }
        return await self._transition(appointment_id, caller, "cancel", changes, guard, ip_address)

    async def complete(
        self, appointment_id: uuid.UUID, caller: Caller, ip_address: Optional[str] = None
    ) -> Appointment:
        """Mark a confirmed appointment as completed. Admin only."""

        def guard(appt: Appointment) -> None:
            if not caller.is_admin:
                raise Forbidden("Only an admin may complete appointments")
            if appt.status != AppointmentStatus.confirmed.value:
                raise InvalidTransition(f"Cannot complete a {appt.status} appointment")

        changes = {"status": AppointmentStatus.completed.value}
        return await self._transition(appointment_id, caller, "complete", changes, guard, ip_address)

    async def _transition(
        self,
        appointment_id: uuid.UUID,
        caller: Caller,
        action: str,
        changes: dict[str, Any],
        guard: Callable[[Appointment], None],
        ip_address: Optional[str] = None,
    ) -> Appointment:
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    repo = AppointmentRepository(session)
                    appt = await repo.get_by_id(appointment_id)
                    if appt is None:
                        raise NotFound(f"Appointment {appointment_id} not found")
                    self.policy.enforce(caller, Operation.READ, appt)
                    guard(appt)
                    self.policy.enforce(caller, Operation.UPDATE, appt, changes)

                    old_record = appointment_record(appt)
                    prior = appt.status
                    if not await repo.compare_and_set(appt.id, prior, **changes):
                        raise InvalidTransition(
                            "Appointment was modified concurrently; reload and retry"
                        )

                    await AuditRepository(session).log_action(
                        action=action,
                        resource_type=TABLE,
                        resource_id=str(appointment_id),
                        user_id=str(caller.profile_id),
                        details={
                            "from": prior,
                            "to": changes["status"],
                            "role": caller.role.value,
                        },
                        ip_address=ip_address,
                    )
                    appt = await repo.get_by_id(appointment_id)
            except SchedulingError:
                raise
            except SQLAlchemyError:
                logger.exception("Storage failure during %s of %s", action, appointment_id)
                raise StorageFault()

        logger.info(
            "Appointment %s %s -> %s by %s (%s)",
            appointment_id, prior, changes["status"], caller.profile_id, caller.role.value,
        )
        self._publish(ChangeType.UPDATE, appointment_record(appt), old_record, caller)
        return appt

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_appointment(self, appointment_id: uuid.UUID, caller: Caller) -> Appointment:
        async with self._session_factory() as session:
            appt = await AppointmentRepository(session).get_by_id(appointment_id)
            if appt is None:
                raise NotFound(f"Appointment {appointment_id} not found")
            self.policy.enforce(caller, Operation.READ, appt)
            return appt

    async def list_appointments(
        self,
        caller: Caller,
        filters: Optional[AppointmentFilter] = None,
    ) -> Sequence[Appointment]:
        """Appointments visible to *caller*, ordered by date then time."""
        self.policy.enforce(caller, Operation.READ, Appointment)
        filters = filters or AppointmentFilter()
        async with self._session_factory() as session:
            return await AppointmentRepository(session).list(
                visibility=appointment_visibility(caller),
                status=filters.status.value if filters.status else None,
                doctor_id=filters.doctor_id,
                patient_id=filters.patient_id,
                date_from=filters.date_from,
                date_to=filters.date_to,
                offset=filters.offset,
                limit=filters.limit,
            )

    async def history(self, appointment_id: uuid.UUID, caller: Caller) -> Sequence[AuditLog]:
        """Audit trail of an appointment, oldest entry first."""
        await self.get_appointment(appointment_id, caller)
        async with self._session_factory() as session:
            return await AuditRepository(session).history(TABLE, str(appointment_id))

    # ------------------------------------------------------------------

    def _publish(
        self,
        event_type: ChangeType,
        record: dict[str, Any],
        old_record: Optional[dict[str, Any]],
        caller: Caller,
    ) -> None:
        event = ChangeEvent(
            table=TABLE,
            event_type=event_type,
            record=record,
            old_record=old_record,
            actor_id=str(caller.profile_id),
        )
        self.feed.publish(event)
