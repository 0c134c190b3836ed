"""Tests for the scheduling engine against a real SQLite database."""

import uuid
from datetime import date, time

import pytest
from sqlalchemy import func, select

from medibook.core.errors import (
    Forbidden,
    InvalidRequest,
    InvalidSlot,
    InvalidTransition,
    NotFound,
    SlotTaken,
)
from medibook.core.models import Appointment
from medibook.notifications import ChangeType
from medibook.scheduling import AppointmentFilter, SchedulingEngine, is_valid_path

pytestmark = pytest.mark.usefixtures("seed")

DAY = "2030-03-01"


async def _count(session_factory) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(Appointment))


class TestScenario:
    async def test_book_decide_cancel(self, scheduling_engine, seed, patient_p, patient_q, doctor, admin):
        appt = await scheduling_engine.create_appointment(patient_p, seed.doctor_id, DAY, "14:00")
        assert appt.status == "pending"
        assert appt.patient_id == seed.patient_p
        assert appt.department_id == seed.department_id

        with pytest.raises(SlotTaken):
            await scheduling_engine.create_appointment(patient_q, seed.doctor_id, DAY, "14:00")

        confirmed = await scheduling_engine.decide(appt.id, doctor, "confirmed")
        assert confirmed.status == "confirmed"

        with pytest.raises(InvalidTransition):
            await scheduling_engine.cancel(appt.id, patient_p)

        cancelled = await scheduling_engine.cancel(appt.id, admin)
        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_by == "admin"

    async def test_cancelled_slot_can_be_rebooked(self, scheduling_engine, seed, patient_p, patient_q):
        appt = await scheduling_engine.create_appointment(patient_p, seed.doctor_id, DAY, "14:00")
        await scheduling_engine.cancel(appt.id, patient_p)

        again = await scheduling_engine.create_appointment(patient_q, seed.doctor_id, DAY, "14:00")
        assert again.status == "pending"

    async def test_same_slot_other_doctor_is_free(self, scheduling_engine, seed, patient_p, patient_q):
        await scheduling_engine.create_appointment(patient_p, seed.doctor_id, DAY, "14:00")
        other = await scheduling_engine.create_appointment(patient_q, seed.other_doctor_id, DAY, "14:00")
        assert other.department_id is None


class TestCreate:
    async def test_unconfirmed_email_cannot_book(self, scheduling_engine, seed, unconfirmed_patient, session_factory):
        with pytest.raises(Forbidden):
            await scheduling_engine.create_appointment(unconfirmed_patient, seed.doctor_id, DAY, "10:00")
        assert await _count(session_factory) == 0

    async def test_doctor_cannot_book(self, scheduling_engine, seed, doctor):
        with pytest.raises(Forbidden):
            await scheduling_engine.create_appointment(doctor, seed.other_doctor_id, DAY, "10:00")

    @pytest.mark.parametrize(
        "day, at",
        [("2030-02-30", "10:00"), ("03/01/2030", "10:00"), (DAY, "25:00"), (DAY, "ten")],
    )
    async def test_malformed_slot(self, scheduling_engine, seed, patient_p, day, at):
        with pytest.raises(InvalidSlot):
            await scheduling_engine.create_appointment(patient_p, seed.doctor_id, day, at)

    async def test_past_slot(self, scheduling_engine, seed, patient_p):
        # Engine clock is 2030-01-01 08:00 UTC.
        with pytest.raises(InvalidSlot):
            await scheduling_engine.create_appointment(patient_p, seed.doctor_id, "2030-01-01", "07:30")

    async def test_past_check_uses_clinic_timezone(self, session_factory, policy, feed, seed, patient_p):
        from datetime import datetime, timezone

        engine = SchedulingEngine(
            session_factory,
            policy=policy,
            feed=feed,
            clock=lambda: datetime(2030, 1, 1, 8, 0, tzinfo=timezone.utc),
            clinic_timezone="America/New_York",
        )
        # 07:30 in New York is 12:30 UTC, still ahead of the clock.
        appt = await engine.create_appointment(patient_p, seed.doctor_id, "2030-01-01", "07:30")
        assert appt.appointment_time == time(7, 30)

    async def test_unknown_timezone(self, session_factory):
        with pytest.raises(InvalidRequest):
            SchedulingEngine(session_factory, clinic_timezone="Mars/Olympus")

    async def test_unknown_doctor(self, scheduling_engine, patient_p):
        with pytest.raises(NotFound):
            await scheduling_engine.create_appointment(patient_p, uuid.uuid4(), DAY, "10:00")

    async def test_accepts_date_and_time_objects(self, scheduling_engine, seed, patient_p):
        appt = await scheduling_engine.create_appointment(
            patient_p, seed.doctor_id, date(2030, 3, 1), time(11, 15), patient_note="Chest pain"
        )
        assert appt.appointment_date == date(2030, 3, 1)
        assert appt.patient_note == "Chest pain"


class TestDecide:
    async def test_reject_with_note(self, scheduling_engine, seed, patient_p, doctor):
        appt = await scheduling_engine.create_appointment(patient_p, seed.doctor_id, DAY, "09:00")
        rejected = await scheduling_engine.decide(appt.id, doctor, "rejected", "On leave")
        assert rejected.status == "rejected"
        assert rejected.doctor_note == "On leave"

    async def test_other_doctor_forbidden(self, scheduling_engine, seed, patient_p, other_doctor):
        appt = await scheduling_engine.create_appointment(patient_p, seed.doctor_id, DAY, "09:00")
        with pytest.raises(Forbidden):
            await scheduling_engine.decide(appt.id, other_doctor, "confirmed")

    async def test_patient_cannot_decide(self, scheduling_engine, seed, patient_p):
        appt = await scheduling_engine.create_appointment(patient_p, seed.doctor_id, DAY, "09:00")
        with pytest.raises(Forbidden):
            await scheduling_engine.decide(appt.id, patient_p, "confirmed")

    async def test_admin_may_decide(self, scheduling_engine, seed, patient_p, admin):
        appt = await scheduling_engine.create_appointment(patient_p, seed.doctor_id, DAY, "09:00")
        assert (await scheduling_engine.decide(appt.id, admin, "confirmed")).status == "confirmed"

    async def test_only_pending(self, scheduling_engine, seed, patient_p, doctor):
        appt = await scheduling_engine.create_appointment(patient_p, seed.doctor_id, DAY, "09:00")
        await scheduling_engine.decide(appt.id, doctor, "confirmed")
        with pytest.raises(InvalidTransition):
            await scheduling_engine.decide(appt.id, doctor, "rejected")

    async def test_unknown_appointment(self, scheduling_engine, doctor):
        with pytest.raises(NotFound):
            await scheduling_engine.decide(uuid.uuid4(), doctor, "confirmed")

    async def test_bad_outcome(self, scheduling_engine, seed, patient_p, doctor):
        appt = await scheduling_engine.create_appointment(patient_p, seed.doctor_id, DAY, "09:00")
        with pytest.raises(InvalidRequest):
            await scheduling_engine.decide(appt.id, doctor, "completed")


class TestCancel:
    async def test_cancel_twice_is_invalid_both_times(self, scheduling_engine, seed, patient_p, session_factory):
        appt = await scheduling_engine.create_appointment(patient_p, seed.doctor_id, DAY, "09:00")
        await scheduling_engine.cancel(appt.id, patient_p)

        for _ in range(2):
            with pytest.raises(InvalidTransition):
                await scheduling_engine.cancel(appt.id, patient_p)

        history = await scheduling_engine.history(appt.id, patient_p)
        assert [e.action for e in history] == ["create", "cancel"]

    async def test_doctor_cancels_confirmed(self, scheduling_engine, seed, patient_p, doctor):
        appt = await scheduling_engine.create_appointment(patient_p, seed.doctor_id, DAY, "09:00")
        await scheduling_engine.decide(appt.id, doctor, "confirmed")
        cancelled = await scheduling_engine.cancel(appt.id, doctor)
        assert cancelled.cancelled_by == "doctor"

    async def test_stranger_cannot_cancel(self, scheduling_engine, seed, patient_p, patient_q):
        appt = await scheduling_engine.create_appointment(patient_p, seed.doctor_id, DAY, "09:00")
        with pytest.raises(Forbidden):
            await scheduling_engine.cancel(appt.id, patient_q)


class TestComplete:
    async def test_admin_completes_confirmed(self, scheduling_engine, seed, patient_p, doctor, admin):
        appt = await scheduling_engine.create_appointment(patient_p, seed.doctor_id, DAY, "09:00")
        await scheduling_engine.decide(appt.id, doctor, "confirmed")
        assert (await scheduling_engine.complete(appt.id, admin)).status == "completed"

    async def test_doctor_cannot_complete(self, scheduling_engine, seed, patient_p, doctor):
        appt = await scheduling_engine.create_appointment(patient_p, seed.doctor_id, DAY, "09:00")
        await scheduling_engine.decide(appt.id, doctor, "confirmed")
        with pytest.raises(Forbidden):
            await scheduling_engine.complete(appt.id, doctor)

    async def test_pending_cannot_complete(self, scheduling_engine, seed, patient_p, admin):
        appt = await scheduling_engine.create_appointment(patient_p, seed.doctor_id, DAY, "09:00")
        with pytest.raises(InvalidTransition):
            await scheduling_engine.complete(appt.id, admin)


class TestReads:
    async def test_get_respects_ownership(self, scheduling_engine, seed, patient_p, patient_q, doctor):
        appt = await scheduling_engine.create_appointment(patient_p, seed.doctor_id, DAY, "09:00")
        assert (await scheduling_engine.get_appointment(appt.id, doctor)).id == appt.id
        with pytest.raises(Forbidden):
            await scheduling_engine.get_appointment(appt.id, patient_q)

    async def test_list_scoped_and_ordered(self, scheduling_engine, seed, patient_p, patient_q, doctor, admin):
        await scheduling_engine.create_appointment(patient_p, seed.doctor_id, "2030-03-02", "09:00")
        await scheduling_engine.create_appointment(patient_p, seed.doctor_id, "2030-03-01", "15:00")
        await scheduling_engine.create_appointment(patient_q, seed.other_doctor_id, "2030-03-01", "08:00")

        mine = await scheduling_engine.list_appointments(patient_p)
        assert [(str(a.appointment_date), a.appointment_time.hour) for a in mine] == [
            ("2030-03-01", 15),
            ("2030-03-02", 9),
        ]
        assert len(await scheduling_engine.list_appointments(doctor)) == 2
        assert len(await scheduling_engine.list_appointments(admin)) == 3

        # Filters narrow but never widen visibility.
        narrowed = await scheduling_engine.list_appointments(
            patient_p, AppointmentFilter(patient_id=seed.patient_q)
        )
        assert narrowed == []


class TestAuditAndEvents:
    async def test_history_is_a_valid_path(self, scheduling_engine, seed, patient_p, doctor, admin):
        appt = await scheduling_engine.create_appointment(patient_p, seed.doctor_id, DAY, "09:00")
        await scheduling_engine.decide(appt.id, doctor, "confirmed")
        await scheduling_engine.complete(appt.id, admin)

        history = await scheduling_engine.history(appt.id, admin)
        statuses = [entry.details["to"] for entry in history]
        assert statuses == ["pending", "confirmed", "completed"]
        assert is_valid_path(statuses)
        assert [entry.details.get("from") for entry in history[1:]] == ["pending", "confirmed"]

    async def test_history_records_client_address(self, scheduling_engine, seed, patient_p, doctor):
        appt = await scheduling_engine.create_appointment(
            patient_p, seed.doctor_id, DAY, "09:00", ip_address="203.0.113.7"
        )
        await scheduling_engine.cancel(appt.id, doctor, ip_address="198.51.100.2")

        history = await scheduling_engine.history(appt.id, doctor)
        assert [entry.ip_address for entry in history] == ["203.0.113.7", "198.51.100.2"]

    async def test_events_published_after_commit(self, scheduling_engine, feed, seed, patient_p, doctor):
        sub = feed.subscribe("appointments", {"patient_id": seed.patient_p})
        appt = await scheduling_engine.create_appointment(patient_p, seed.doctor_id, DAY, "09:00")
        await scheduling_engine.decide(appt.id, doctor, "confirmed")

        inserted = sub.get_nowait()
        assert inserted.event_type is ChangeType.INSERT
        assert inserted.record["status"] == "pending"
        assert inserted.old_record is None

        updated = sub.get_nowait()
        assert updated.event_type is ChangeType.UPDATE
        assert updated.record["status"] == "confirmed"
        assert updated.old_record["status"] == "pending"
        assert updated.actor_id == str(doctor.profile_id)

    async def test_failed_operations_publish_nothing(self, scheduling_engine, feed, seed, patient_p, patient_q):
        await scheduling_engine.create_appointment(patient_p, seed.doctor_id, DAY, "09:00")
        sub = feed.subscribe("appointments")
        with pytest.raises(SlotTaken):
            await scheduling_engine.create_appointment(patient_q, seed.doctor_id, DAY, "09:00")
        assert sub.pending() == 0
