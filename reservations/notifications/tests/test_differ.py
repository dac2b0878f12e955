"""Tests for invite diffing on reservation create and update."""

import asyncio
import json
from dataclasses import replace
from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest

from reservations.enums import JobType
from reservations.notifications.differ import (
    dispatch_after_commit,
    send_invites_on_create,
    send_invites_on_update,
)
from reservations.types import Booking


def _recipients(job) -> list[str]:
    return json.loads(job.payload)["recipients"]


class TestSendInvitesOnCreate:
    @pytest.mark.asyncio
    async def test_queues_one_job_for_everyone(self, fake_store, booking):
        job_id = await send_invites_on_create(booking)

        assert list(fake_store.jobs) == [job_id]
        job = fake_store.jobs[job_id]
        assert job.type is JobType.invite_create
        assert _recipients(job) == [
            "organizer@example.com",
            "alice@example.com",
            "bob@example.com",
        ]
        assert fake_store.invited(42) == {
            "organizer@example.com",
            "alice@example.com",
            "bob@example.com",
        }

    @pytest.mark.asyncio
    async def test_second_call_queues_nothing(self, fake_store, booking):
        await send_invites_on_create(booking)

        assert await send_invites_on_create(booking) is None
        assert len(fake_store.jobs) == 1

    @pytest.mark.asyncio
    async def test_only_new_recipients_are_invited(self, fake_store, booking):
        await fake_store.mark_invited(None, 42, "alice@example.com")

        job_id = await send_invites_on_create(booking)

        assert _recipients(fake_store.jobs[job_id]) == ["organizer@example.com", "bob@example.com"]

    @pytest.mark.asyncio
    async def test_payload_carries_snapshot_and_rendered_content(self, fake_store, booking):
        job_id = await send_invites_on_create(booking)

        payload = json.loads(fake_store.jobs[job_id].payload)
        assert payload["reservation"]["id"] == 42
        assert payload["reservation"]["start_time"] == "2025-01-06T09:00:00"
        assert payload["template"]["subject"] == "Room Reservation: Team Sync"

    @pytest.mark.asyncio
    async def test_ledger_failure_rolls_back_job(self, fake_store, booking):
        with patch(
            "reservations.notifications.differ.mark_invited",
            AsyncMock(side_effect=RuntimeError("db down")),
        ):
            with pytest.raises(RuntimeError):
                await send_invites_on_create(booking)

        assert fake_store.jobs == {}
        assert fake_store.invited(42) == set()

    @pytest.mark.asyncio
    async def test_unsaved_booking_is_rejected(self, fake_store, booking):
        with pytest.raises(ValueError):
            await send_invites_on_create(replace(booking, booking_id=None))


class TestSendInvitesOnUpdate:
    @pytest.mark.asyncio
    async def test_organizer_and_attendee_changes(self, fake_store):
        previous = Booking(
            booking_id=1,
            start=datetime(2025, 1, 6, 9),
            end=datetime(2025, 1, 6, 10),
            organizer_email="o1@example.com",
            attendee_emails=("a@example.com", "b@example.com"),
        )
        current = replace(
            previous,
            organizer_email="o2@example.com",
            attendee_emails=("a@example.com", "c@example.com"),
        )
        await send_invites_on_create(previous)
        fake_store.jobs.clear()

        job_ids = await send_invites_on_update(previous, current)

        jobs = [fake_store.jobs[job_id] for job_id in job_ids]
        assert [(job.type, _recipients(job)) for job in jobs] == [
            (JobType.invite_update, ["o2@example.com"]),
            (JobType.invite_cancel, ["o1@example.com"]),
            (JobType.invite_update, ["c@example.com"]),
            (JobType.invite_cancel, ["b@example.com"]),
        ]
        assert fake_store.invited(1) == {"o2@example.com", "a@example.com", "c@example.com"}

    @pytest.mark.asyncio
    async def test_cancel_carries_previous_snapshot(self, fake_store, booking):
        current = replace(
            booking,
            start=booking.start.replace(hour=11),
            end=booking.end.replace(hour=12),
            attendee_emails=("alice@example.com",),
        )

        job_ids = await send_invites_on_update(booking, current)

        assert len(job_ids) == 1
        payload = json.loads(fake_store.jobs[job_ids[0]].payload)
        assert payload["recipients"] == ["bob@example.com"]
        assert payload["reservation"]["start_time"] == "2025-01-06T09:00:00"

    @pytest.mark.asyncio
    async def test_old_organizer_kept_as_attendee_is_not_cancelled(self, fake_store, booking):
        current = replace(
            booking,
            organizer_email="new@example.com",
            attendee_emails=("alice@example.com", "bob@example.com", "organizer@example.com"),
        )

        job_ids = await send_invites_on_update(booking, current)

        jobs = [fake_store.jobs[job_id] for job_id in job_ids]
        assert [(job.type, _recipients(job)) for job in jobs] == [
            (JobType.invite_update, ["new@example.com"]),
        ]

    @pytest.mark.asyncio
    async def test_cleared_organizer_dropped_from_attendees_is_cancelled(self, fake_store, booking):
        previous = replace(booking, attendee_emails=("organizer@example.com", "alice@example.com"))
        await send_invites_on_create(previous)
        fake_store.jobs.clear()
        current = replace(previous, organizer_email=None, attendee_emails=("alice@example.com",))

        job_ids = await send_invites_on_update(previous, current)

        jobs = [fake_store.jobs[job_id] for job_id in job_ids]
        assert [(job.type, _recipients(job)) for job in jobs] == [
            (JobType.invite_cancel, ["organizer@example.com"]),
        ]
        assert fake_store.invited(42) == {"alice@example.com"}

    @pytest.mark.asyncio
    async def test_unchanged_recipients_queue_nothing(self, fake_store, booking):
        current = replace(booking, title="Renamed")

        assert await send_invites_on_update(booking, current) == []
        assert fake_store.jobs == {}

    @pytest.mark.asyncio
    async def test_mismatched_reservations_are_rejected(self, fake_store, booking):
        with pytest.raises(ValueError):
            await send_invites_on_update(replace(booking, booking_id=1), booking)


class TestDispatchAfterCommit:
    @pytest.mark.asyncio
    async def test_failure_is_reported_not_raised(self):
        async def failing():
            raise RuntimeError("queue unavailable")

        with patch("reservations.notifications.differ.sentry_sdk") as mock_sentry:
            task = dispatch_after_commit(failing(), "create reservation 42")
            await asyncio.wait_for(task, timeout=1)

        mock_sentry.capture_exception.assert_called_once()
        assert task.exception() is None

    @pytest.mark.asyncio
    async def test_runs_coroutine(self, fake_store, booking):
        task = dispatch_after_commit(send_invites_on_create(booking), "create reservation 42")
        await task

        assert len(fake_store.jobs) == 1
