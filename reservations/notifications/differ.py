"""
Invite diffing: decide who gets which calendar email after a reservation change.

Called by the reservation API strictly after its own transaction commits.
Nothing here sends mail; it only writes jobs to the queue and keeps the
invite ledger in step with them. Each job insert commits in the same
transaction as the ledger writes it implies, so a recipient is never marked
invited without a queued job (or the reverse).

Main entry points:
- send_invites_on_create(booking) - one invite_create job for new recipients
- send_invites_on_update(previous, current) - one job per changed recipient
"""

import asyncio
import logging
from typing import Awaitable

import sentry_sdk

from reservations.database import get_transaction
from reservations.enums import JobType
from reservations.notifications.ledger import (
    get_invited_emails,
    mark_invited,
    remove_invited,
)
from reservations.notifications.queue import enqueue_job
from reservations.notifications.templates import render_invite
from reservations.types import Booking

logger = logging.getLogger(__name__)

# Keeps post-commit tasks referenced until they finish
_background_tasks: set[asyncio.Task] = set()


def build_job_payload(job_type: JobType, booking: Booking, recipients: list[str]) -> dict:
    """Booking snapshot, recipients and pre-rendered content for the worker."""
    return {
        "reservation": booking.to_payload(),
        "recipients": list(recipients),
        "template": render_invite(job_type, booking).to_payload(),
    }


async def send_invites_on_create(booking: Booking) -> int | None:
    """
    Queue the invite for a newly created reservation.

    Recipients are the organizer plus attendees, minus anyone the ledger says
    was already invited, so calling this twice queues nothing the second time.

    Returns:
        The queued job id, or None if there was nobody new to invite
    """
    reservation_id = _require_id(booking)
    recipients = booking.recipients

    async with get_transaction() as conn:
        already_invited = await get_invited_emails(conn, reservation_id)
        new_recipients = [email for email in recipients if email not in already_invited]

        if not new_recipients:
            logger.info(f"No new recipients to invite for reservation {reservation_id}")
            return None

        job_id = await enqueue_job(
            conn,
            JobType.invite_create,
            build_job_payload(JobType.invite_create, booking, new_recipients),
        )
        for email in new_recipients:
            await mark_invited(conn, reservation_id, email)

    logger.info(
        f"Queued invite_create job {job_id} for reservation {reservation_id} "
        f"({len(new_recipients)} recipients)"
    )
    return job_id


async def send_invites_on_update(previous: Booking, current: Booking) -> list[int]:
    """
    Queue REQUEST/CANCEL emails for the recipients an edit added or removed.

    1. Organizer changed: invite_update to the new organizer, invite_cancel to
       the old one (unless they stay on as an attendee).
       A cleared organizer is treated as an attendee in step 2.
    2. Attendees (organizers excluded): invite_update for each address added,
       invite_cancel for each address removed.

    Every recipient gets a separate job, committed with its ledger change, so
    one failure only affects that recipient.

    Returns:
        Ids of the queued jobs, in the order they were queued
    """
    reservation_id = _require_id(current)
    if previous.booking_id is not None and previous.booking_id != reservation_id:
        raise ValueError(
            f"Cannot diff reservation {previous.booking_id} against {reservation_id}"
        )

    job_ids = []
    old_organizer = previous.organizer_email
    new_organizer = current.organizer_email

    organizer_changed = bool(old_organizer and new_organizer and old_organizer != new_organizer)
    if organizer_changed:
        job_ids.append(await _invite(reservation_id, current, new_organizer))
        if old_organizer not in current.attendee_emails:
            job_ids.append(await _cancel(reservation_id, previous, old_organizer))

    organizers = {new_organizer} if new_organizer else set()
    if organizer_changed:
        organizers.add(old_organizer)
    previous_attendees = [e for e in previous.attendee_emails if e not in organizers]
    next_attendees = [e for e in current.attendee_emails if e not in organizers]

    for email in next_attendees:
        if email not in previous_attendees:
            job_ids.append(await _invite(reservation_id, current, email))

    for email in previous_attendees:
        if email not in next_attendees:
            job_ids.append(await _cancel(reservation_id, previous, email))

    logger.info(f"Queued {len(job_ids)} invite jobs for updated reservation {reservation_id}")
    return job_ids


async def _invite(reservation_id: int, booking: Booking, email: str) -> int:
    async with get_transaction() as conn:
        job_id = await enqueue_job(
            conn,
            JobType.invite_update,
            build_job_payload(JobType.invite_update, booking, [email]),
        )
        await mark_invited(conn, reservation_id, email)
    return job_id


async def _cancel(reservation_id: int, booking: Booking, email: str) -> int:
    async with get_transaction() as conn:
        job_id = await enqueue_job(
            conn,
            JobType.invite_cancel,
            build_job_payload(JobType.invite_cancel, booking, [email]),
        )
        await remove_invited(conn, reservation_id, email)
    return job_id


def _require_id(booking: Booking) -> int:
    if booking.booking_id is None:
        raise ValueError("Invites can only be queued for a saved reservation")
    return booking.booking_id


def dispatch_after_commit(coro: Awaitable, description: str) -> asyncio.Task:
    """
    Run an invite coroutine in the background after the booking committed.

    The booking request never waits on it and never sees its failure; a
    failure is logged and reported to Sentry.

    Usage:
        dispatch_after_commit(send_invites_on_create(booking), "create")
    """

    async def _run():
        try:
            await coro
        except Exception as e:
            logger.error(f"Calendar invite enqueue failed ({description}): {e}")
            sentry_sdk.capture_exception(e)

    task = asyncio.create_task(_run())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task
