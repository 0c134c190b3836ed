"""Tests for the in-process change feed."""

import asyncio
import logging

import pytest

from medibook.notifications import ChangeEvent, ChangeFeed, ChangeType


def _event(**record) -> ChangeEvent:
    return ChangeEvent(table="appointments", event_type=ChangeType.UPDATE, record=record)


class TestFiltering:
    def test_matches_all_filters(self):
        event = _event(patient_id="p1", doctor_id="d1", status="pending")
        assert event.matches({})
        assert event.matches({"patient_id": "p1", "doctor_id": "d1"})
        assert not event.matches({"patient_id": "p1", "doctor_id": "d2"})
        assert not event.matches({"missing": "x"})

    def test_falls_back_to_old_record(self):
        event = ChangeEvent(
            table="appointments",
            event_type=ChangeType.DELETE,
            old_record={"patient_id": "p1"},
        )
        assert event.matches({"patient_id": "p1"})

    def test_publish_routes_by_table_and_row(self):
        feed = ChangeFeed()
        mine = feed.subscribe("appointments", {"patient_id": "p1"})
        everything = feed.subscribe("appointments")
        doctors = feed.subscribe("doctors")

        delivered = feed.publish(_event(patient_id="p2"))

        assert delivered == 1
        assert mine.pending() == 0
        assert everything.pending() == 1
        assert doctors.pending() == 0


class TestBackpressure:
    def test_full_queue_drops_oldest(self, caplog):
        feed = ChangeFeed(queue_size=2)
        sub = feed.subscribe("appointments")

        with caplog.at_level(logging.WARNING, logger="medibook.notifications.feed"):
            for n in range(4):
                feed.publish(_event(seq=n))

        assert sub.dropped == 2
        assert [sub.get_nowait().record["seq"] for _ in range(2)] == [2, 3]
        assert "dropped oldest event" in caplog.text


class TestSubscriptionLifecycle:
    async def test_get_waits_for_publish(self):
        feed = ChangeFeed()
        sub = feed.subscribe("appointments")

        async def later():
            await asyncio.sleep(0.01)
            feed.publish(_event(status="confirmed"))

        task = asyncio.create_task(later())
        event = await sub.get(timeout=1.0)
        await task
        assert event.record["status"] == "confirmed"

    async def test_get_timeout(self):
        sub = ChangeFeed().subscribe("appointments")
        with pytest.raises(asyncio.TimeoutError):
            await sub.get(timeout=0.01)

    async def test_context_manager_unsubscribes(self):
        feed = ChangeFeed()
        async with feed.subscribe("appointments") as sub:
            assert feed.subscriber_count == 1
        assert sub.closed
        assert feed.subscriber_count == 0
        assert feed.publish(_event()) == 0


class TestCallbacks:
    def test_callbacks_see_every_event(self):
        feed = ChangeFeed()
        seen = []
        feed.add_callback(seen.append)
        feed.publish(_event(status="pending"))
        assert len(seen) == 1

    def test_failing_callback_is_isolated(self, caplog):
        feed = ChangeFeed()
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        feed.add_callback(broken)
        feed.add_callback(seen.append)
        sub = feed.subscribe("appointments")

        with caplog.at_level(logging.WARNING):
            assert feed.publish(_event()) == 1

        assert len(seen) == 1
        assert sub.pending() == 1
        assert "boom" in caplog.text
