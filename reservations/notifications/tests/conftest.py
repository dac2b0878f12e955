"""Pytest fixtures for notification pipeline tests."""

import copy
import json
from contextlib import ExitStack, asynccontextmanager
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from reservations.enums import JobStatus, JobType
from reservations.notifications.queue import DeadLetterRecord, NotificationJob
from reservations.types import Booking


class FakeStore:
    """
    In-memory stand-in for the ledger, queue and dead-letter tables.

    transaction() snapshots state and restores it if the block raises, so
    tests can observe that ledger and queue writes commit together.
    """

    def __init__(self):
        self.ledger: dict[tuple[int, str], datetime] = {}
        self.jobs: dict[int, NotificationJob] = {}
        self.dead: list[DeadLetterRecord] = []
        self.clock = datetime.now(timezone.utc)
        self._next_id = 1

    def advance(self, **kwargs) -> None:
        self.clock += timedelta(**kwargs)

    @asynccontextmanager
    async def transaction(self):
        snapshot = (copy.deepcopy(self.ledger), copy.deepcopy(self.jobs), list(self.dead))
        try:
            yield self
        except BaseException:
            self.ledger, self.jobs, self.dead = snapshot
            raise

    # Ledger -----------------------------------------------------------------

    async def get_invited_emails(self, conn, reservation_id):
        return {email for (rid, email) in self.ledger if rid == reservation_id}

    async def mark_invited(self, conn, reservation_id, email):
        self.ledger[(reservation_id, email)] = self.clock

    async def remove_invited(self, conn, reservation_id, email):
        self.ledger.pop((reservation_id, email), None)

    def invited(self, reservation_id) -> set[str]:
        return {email for (rid, email) in self.ledger if rid == reservation_id}

    # Queue ------------------------------------------------------------------

    async def enqueue_job(self, conn, job_type, payload):
        job_id = self._next_id
        self._next_id += 1
        self.jobs[job_id] = NotificationJob(
            id=job_id,
            type=JobType(job_type),
            payload=json.dumps(payload),
            status=JobStatus.pending,
            attempts=0,
            created_at=self.clock + timedelta(microseconds=job_id),
            next_eligible_at=self.clock,
        )
        return job_id

    async def claim_due_jobs(self, conn, limit, max_attempts):
        due = sorted(
            (
                job
                for job in self.jobs.values()
                if job.status in (JobStatus.pending, JobStatus.failed)
                and job.attempts < max_attempts
                and job.next_eligible_at <= self.clock
            ),
            key=lambda job: (job.created_at, job.id),
        )[:limit]
        for job in due:
            job.status = JobStatus.processing
            job.attempts += 1
            job.claimed_at = self.clock
        return [replace(job) for job in due]

    async def mark_job_sent(self, conn, job_id):
        job = self.jobs[job_id]
        job.status = JobStatus.sent
        job.processed_at = self.clock
        job.last_error = None
        return True

    async def mark_job_failed(self, conn, job_id, error, next_eligible_at):
        job = self.jobs[job_id]
        job.status = JobStatus.failed
        job.last_error = error
        job.processed_at = self.clock
        job.next_eligible_at = next_eligible_at
        return True

    async def move_to_dead_letter(self, conn, job, error):
        record = DeadLetterRecord(
            id=len(self.dead) + 1,
            original_job_id=job.id,
            type=job.type,
            payload=job.payload,
            attempts=job.attempts,
            last_error=error,
            failed_at=self.clock,
        )
        self.dead.append(record)
        del self.jobs[job.id]
        return record

    def jobs_of(self, job_type: JobType) -> list[NotificationJob]:
        return [job for job in self.jobs.values() if job.type == job_type]


@pytest.fixture
def fake_store():
    """Patch the differ and worker onto an in-memory FakeStore."""
    store = FakeStore()
    with ExitStack() as stack:
        for module in ("differ", "worker"):
            stack.enter_context(
                patch(f"reservations.notifications.{module}.get_transaction", store.transaction)
            )
        for name in ("get_invited_emails", "mark_invited", "remove_invited", "enqueue_job"):
            stack.enter_context(
                patch(f"reservations.notifications.differ.{name}", getattr(store, name))
            )
        for name in ("claim_due_jobs", "mark_job_sent", "mark_job_failed", "move_to_dead_letter"):
            stack.enter_context(
                patch(f"reservations.notifications.worker.{name}", getattr(store, name))
            )
        yield store


@pytest.fixture
def booking():
    return Booking(
        booking_id=42,
        start=datetime(2025, 1, 6, 9, 0),
        end=datetime(2025, 1, 6, 10, 0),
        organizer_email="organizer@example.com",
        attendee_emails=("alice@example.com", "bob@example.com"),
        title="Team Sync",
        description="Weekly planning",
        room_name_snapshot="Room 101",
        site_name_snapshot="Main Campus",
    )
