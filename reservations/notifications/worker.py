"""
Email worker: the single consumer of the email_jobs queue.

APScheduler runs process_jobs() on a fixed interval. Each tick claims up to
a batch of due jobs in one atomic statement and handles them one at a time,
so per-recipient ordering stays simple. A failure never escapes a tick: it
is logged, the job is rescheduled with backoff or dead-lettered, and the
next job proceeds.
"""

import logging
from datetime import datetime, timedelta, timezone

import sentry_sdk
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from reservations.config import (
    get_batch_size,
    get_max_attempts,
    get_poll_interval_seconds,
    get_stale_claim_minutes,
)
from reservations.database import get_transaction
from reservations.notifications.channels.calendar import build_ics, ics_method_for
from reservations.notifications.channels.email import send_invite_email
from reservations.notifications.queue import (
    NotificationJob,
    claim_due_jobs,
    get_backoff_delay,
    mark_job_failed,
    mark_job_sent,
    move_to_dead_letter,
    reclaim_stale_jobs,
)
from reservations.notifications.templates import RenderedContent, render_invite
from reservations.types import Booking

logger = logging.getLogger(__name__)


_scheduler: AsyncIOScheduler | None = None

PROCESS_JOB_ID = "email_worker_process_jobs"
RECLAIM_JOB_ID = "email_worker_reclaim_stale"


# =============================================================================
# Scheduler initialization and shutdown
# =============================================================================


def init_worker() -> AsyncIOScheduler:
    """
    Start polling the queue.

    Needs a running event loop. The queue lives in the database, so the
    scheduler itself keeps no persistent job store.
    """
    global _scheduler

    if _scheduler is not None:
        return _scheduler

    _scheduler = AsyncIOScheduler(
        job_defaults={
            "coalesce": True,  # Combine missed ticks into one
            "max_instances": 1,  # Never overlap ticks
        },
    )
    _scheduler.add_job(
        process_jobs,
        trigger="interval",
        seconds=get_poll_interval_seconds(),
        id=PROCESS_JOB_ID,
        replace_existing=True,
        next_run_time=datetime.now(timezone.utc),
    )
    _scheduler.add_job(
        reclaim_stale_claims,
        trigger="interval",
        minutes=get_stale_claim_minutes(),
        id=RECLAIM_JOB_ID,
        replace_existing=True,
    )
    _scheduler.start()
    logger.info(f"Email worker started (polling every {get_poll_interval_seconds()}s)")
    return _scheduler


def shutdown_worker() -> None:
    """Stop polling. The tick in progress finishes first."""
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=True)
        _scheduler = None
        logger.info("Email worker stopped")


# =============================================================================
# Tick
# =============================================================================


async def process_jobs() -> dict:
    """
    One worker tick: claim a batch of due jobs and process them in order.

    Returns dict with counts: {"claimed": N, "sent": N, "retried": N, "dead_lettered": N}
    """
    counts = {"claimed": 0, "sent": 0, "retried": 0, "dead_lettered": 0}

    try:
        async with get_transaction() as conn:
            jobs = await claim_due_jobs(conn, get_batch_size(), get_max_attempts())
    except Exception as e:
        logger.error(f"Email worker could not claim jobs: {e}")
        sentry_sdk.capture_exception(e)
        return counts

    counts["claimed"] = len(jobs)

    for job in jobs:
        try:
            outcome = await process_single_job(job)
        except Exception as e:
            # Bookkeeping failed after delivery was decided; the row stays
            # 'processing' until reclaim_stale_claims releases it
            logger.error(f"Email job {job.id} could not be updated: {e}")
            sentry_sdk.capture_exception(e)
            continue
        counts[outcome] += 1

    if jobs:
        logger.info(f"Email worker tick: {counts}")
    return counts


async def process_single_job(job: NotificationJob, max_attempts: int | None = None) -> str:
    """
    Deliver one claimed job and record the outcome.

    The claim already set status=processing and counted this attempt.

    Returns:
        "sent", "retried" or "dead_lettered"
    """
    if max_attempts is None:
        max_attempts = get_max_attempts()

    try:
        await deliver_job(job)
    except Exception as e:
        return await _record_failure(job, str(e) or type(e).__name__, max_attempts)

    async with get_transaction() as conn:
        await mark_job_sent(conn, job.id)

    logger.info(f"Email job {job.id} sent")
    return "sent"


async def deliver_job(job: NotificationJob) -> None:
    """Render the job's email and invite, then hand them to the mail transport."""
    payload = job.load_payload()
    booking = Booking.from_payload(payload["reservation"])
    recipients = list(payload.get("recipients") or [])
    method = ics_method_for(job.type)

    template = payload.get("template")
    if template:
        content = RenderedContent.from_payload(template)
    else:
        content = render_invite(job.type, booking)

    ics = build_ics(method, booking, recipients)

    await send_invite_email(
        recipients=recipients,
        subject=content.subject,
        html=content.html,
        text=content.text,
        ics=ics,
        ics_method=method,
    )


async def _record_failure(job: NotificationJob, error: str, max_attempts: int) -> str:
    if job.attempts >= max_attempts:
        async with get_transaction() as conn:
            await move_to_dead_letter(conn, job, error)

        logger.error(
            f"Email job {job.id} ({job.type.value}) permanently failed after "
            f"{job.attempts} attempts and was moved to the dead-letter table: {error}"
        )
        sentry_sdk.capture_message(
            f"Email job {job.id} dead-lettered after {job.attempts} attempts: {error}"
        )
        return "dead_lettered"

    delay = get_backoff_delay(job.attempts)
    next_eligible_at = datetime.now(timezone.utc) + delay

    async with get_transaction() as conn:
        await mark_job_failed(conn, job.id, error, next_eligible_at)

    logger.warning(
        f"Email job {job.id} failed (attempt {job.attempts}/{max_attempts}), "
        f"retrying in {delay}: {error}"
    )
    return "retried"


async def reclaim_stale_claims() -> dict:
    """Release jobs a crashed worker left in 'processing'."""
    try:
        async with get_transaction() as conn:
            result = await reclaim_stale_jobs(
                conn,
                older_than=timedelta(minutes=get_stale_claim_minutes()),
                max_attempts=get_max_attempts(),
            )
    except Exception as e:
        logger.error(f"Failed to reclaim stale email jobs: {e}")
        sentry_sdk.capture_exception(e)
        return {"requeued": 0, "dead_lettered": 0}

    if result["dead_lettered"]:
        sentry_sdk.capture_message(
            f"{result['dead_lettered']} stale email job(s) moved to the dead-letter table"
        )
    return result
