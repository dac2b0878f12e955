"""
Durable email job queue and dead-letter store.

Job lifecycle:
    pending -> processing -> sent                     (delivered)
    pending/failed -> processing -> failed            (retry after backoff)
    ... -> processing -> dead-lettered                (attempts exhausted)

Jobs are claimed with a single UPDATE ... RETURNING over rows locked with
FOR UPDATE SKIP LOCKED, so two workers can never claim the same row. The
claim itself increments attempts and sets status=processing before any
delivery is attempted; a crash mid-send leaves the row visible as
'processing' with the attempt already counted.

Retries are gated by next_eligible_at, which the worker pushes forward
with exponential backoff after each failure.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncConnection

from reservations.config import get_backoff_base_minutes
from reservations.enums import JobStatus, JobType
from reservations.tables import email_jobs, email_jobs_dead

logger = logging.getLogger(__name__)


@dataclass
class NotificationJob:
    """A row of the active queue."""

    id: int
    type: JobType
    payload: str
    status: JobStatus
    attempts: int
    last_error: str | None = None
    created_at: datetime | None = None
    processed_at: datetime | None = None
    next_eligible_at: datetime | None = None
    claimed_at: datetime | None = None

    @classmethod
    def from_row(cls, row) -> "NotificationJob":
        return cls(
            id=row["id"],
            type=JobType(row["type"]),
            payload=row["payload"],
            status=JobStatus(row["status"]),
            attempts=row["attempts"] or 0,
            last_error=row.get("last_error"),
            created_at=row.get("created_at"),
            processed_at=row.get("processed_at"),
            next_eligible_at=row.get("next_eligible_at"),
            claimed_at=row.get("claimed_at"),
        )

    def load_payload(self) -> dict:
        data = json.loads(self.payload) if isinstance(self.payload, str) else self.payload
        if not isinstance(data, dict):
            raise ValueError(f"Job {self.id} payload is not an object")
        return data


@dataclass(frozen=True)
class DeadLetterRecord:
    """A job that exhausted its attempts. Never reprocessed automatically."""

    id: int
    original_job_id: int
    type: JobType
    payload: str
    attempts: int
    last_error: str | None
    failed_at: datetime | None = None

    @classmethod
    def from_row(cls, row) -> "DeadLetterRecord":
        return cls(
            id=row["id"],
            original_job_id=row["original_job_id"],
            type=JobType(row["type"]),
            payload=row["payload"],
            attempts=row["attempts"],
            last_error=row.get("last_error"),
            failed_at=row.get("failed_at"),
        )


def get_backoff_delay(attempts: int, base_minutes: int | None = None) -> timedelta:
    """
    Delay before a failed job becomes eligible again.

    Args:
        attempts: Attempts made so far (1 after the first failure)
        base_minutes: Delay after the first failure; defaults to config

    Returns:
        base, 2*base, 4*base, ... (2, 4, 8, 16 minutes with the default)
    """
    if base_minutes is None:
        base_minutes = get_backoff_base_minutes()
    return timedelta(minutes=base_minutes * 2 ** (max(attempts, 1) - 1))


# =============================================================================
# Producer side
# =============================================================================


async def enqueue_job(conn: AsyncConnection, job_type: JobType | str, payload: dict) -> int:
    """
    Insert a pending job, eligible immediately.

    Runs on the caller's connection so it can commit together with ledger
    writes.

    Returns:
        The new job id
    """
    job_type = JobType(job_type)
    result = await conn.execute(
        insert(email_jobs)
        .values(
            type=job_type,
            payload=json.dumps(payload),
            status=JobStatus.pending,
            attempts=0,
            next_eligible_at=func.now(),
        )
        .returning(email_jobs.c.id)
    )
    job_id = result.scalar_one()
    logger.info(f"Email job {job_id} queued: {job_type.value}")
    return job_id


# =============================================================================
# Consumer side
# =============================================================================


def claim_statement(limit: int, max_attempts: int):
    """Claim-and-return: lock due rows, mark them processing, return them."""
    due = (
        select(email_jobs.c.id)
        .where(email_jobs.c.status.in_([JobStatus.pending, JobStatus.failed]))
        .where(email_jobs.c.attempts < max_attempts)
        .where(email_jobs.c.next_eligible_at <= func.now())
        .order_by(email_jobs.c.created_at, email_jobs.c.id)
        .limit(limit)
        .with_for_update(skip_locked=True)
        .cte("due_jobs")
    )
    return (
        update(email_jobs)
        .where(email_jobs.c.id == due.c.id)
        .values(
            status=JobStatus.processing,
            attempts=email_jobs.c.attempts + 1,
            claimed_at=func.now(),
        )
        .returning(*email_jobs.c)
    )


async def claim_due_jobs(
    conn: AsyncConnection, limit: int, max_attempts: int
) -> list[NotificationJob]:
    """
    Atomically claim up to `limit` due jobs, oldest first.

    Returned jobs already have status=processing and their attempt counted.
    """
    result = await conn.execute(claim_statement(limit, max_attempts))
    jobs = [NotificationJob.from_row(row) for row in result.mappings()]
    # RETURNING does not preserve the subquery's order
    jobs.sort(key=lambda job: (job.created_at, job.id))
    return jobs


async def mark_job_sent(conn: AsyncConnection, job_id: int) -> bool:
    result = await conn.execute(
        update(email_jobs)
        .where(email_jobs.c.id == job_id)
        .where(email_jobs.c.status == JobStatus.processing)
        .values(
            status=JobStatus.sent,
            processed_at=func.now(),
            last_error=None,
        )
    )
    return result.rowcount == 1


async def mark_job_failed(
    conn: AsyncConnection,
    job_id: int,
    error: str,
    next_eligible_at: datetime,
) -> bool:
    """Leave the job eligible for retry, but not before next_eligible_at."""
    result = await conn.execute(
        update(email_jobs)
        .where(email_jobs.c.id == job_id)
        .where(email_jobs.c.status == JobStatus.processing)
        .values(
            status=JobStatus.failed,
            last_error=error,
            processed_at=func.now(),
            next_eligible_at=next_eligible_at,
        )
    )
    return result.rowcount == 1


async def move_to_dead_letter(
    conn: AsyncConnection, job: NotificationJob, error: str
) -> DeadLetterRecord:
    """
    Copy a job into the dead-letter table and delete it from the queue.

    Call inside a transaction so the two statements commit together.
    """
    result = await conn.execute(
        insert(email_jobs_dead)
        .values(
            original_job_id=job.id,
            type=job.type,
            payload=job.payload,
            attempts=job.attempts,
            last_error=error,
            created_at=job.created_at,
            failed_at=func.now(),
        )
        .returning(*email_jobs_dead.c)
    )
    record = DeadLetterRecord.from_row(result.mappings().one())

    await conn.execute(delete(email_jobs).where(email_jobs.c.id == job.id))
    return record


async def reclaim_stale_jobs(
    conn: AsyncConnection, older_than: timedelta, max_attempts: int
) -> dict:
    """
    Recover jobs left in 'processing' by a worker that died mid-delivery.

    Jobs with attempts left go back to 'failed' (eligible now); exhausted
    ones are dead-lettered. Call inside a transaction.

    Returns dict with counts: {"requeued": N, "dead_lettered": N}
    """
    result = await conn.execute(
        select(email_jobs)
        .where(email_jobs.c.status == JobStatus.processing)
        .where(email_jobs.c.claimed_at < func.now() - older_than)
        .order_by(email_jobs.c.created_at)
        .with_for_update(skip_locked=True)
    )
    stale = [NotificationJob.from_row(row) for row in result.mappings()]

    requeued, dead = 0, 0
    for job in stale:
        error = f"Claim abandoned after attempt {job.attempts} (worker stopped mid-delivery)"
        if job.attempts >= max_attempts:
            await move_to_dead_letter(conn, job, error)
            logger.error(f"Stale email job {job.id} moved to dead-letter table")
            dead += 1
        else:
            await conn.execute(
                update(email_jobs)
                .where(email_jobs.c.id == job.id)
                .values(
                    status=JobStatus.failed,
                    last_error=error,
                    next_eligible_at=func.now(),
                )
            )
            logger.warning(f"Stale email job {job.id} released for retry")
            requeued += 1

    return {"requeued": requeued, "dead_lettered": dead}


# =============================================================================
# Dead-letter inspection (manual, never called by the worker)
# =============================================================================


async def list_dead_letters(conn: AsyncConnection, limit: int = 50) -> list[DeadLetterRecord]:
    result = await conn.execute(
        select(email_jobs_dead).order_by(email_jobs_dead.c.failed_at.desc()).limit(limit)
    )
    return [DeadLetterRecord.from_row(row) for row in result.mappings()]


async def requeue_dead_letter(conn: AsyncConnection, dead_id: int) -> int | None:
    """
    Queue a fresh copy of a dead-lettered job (attempts reset to 0).

    The dead-letter record itself is left untouched.

    Returns:
        The new job id, or None if the record doesn't exist
    """
    result = await conn.execute(select(email_jobs_dead).where(email_jobs_dead.c.id == dead_id))
    row = result.mappings().first()
    if not row:
        return None

    record = DeadLetterRecord.from_row(row)
    return await enqueue_job(conn, record.type, json.loads(record.payload))
