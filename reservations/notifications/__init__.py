"""
Calendar invite notifications for room reservations.

Public API:
    send_invites_on_create(booking) - Queue invites for a new reservation
    send_invites_on_update(previous, current) - Queue invites/cancels for an edit
    dispatch_after_commit(coro, description) - Fire-and-forget wrapper for the above

Worker:
    init_worker() - Start polling the email_jobs queue
    shutdown_worker() - Stop polling
    process_jobs() - Run a single tick
"""

from .differ import (
    dispatch_after_commit,
    send_invites_on_create,
    send_invites_on_update,
)
from .worker import (
    init_worker,
    process_jobs,
    shutdown_worker,
)

__all__ = [
    "send_invites_on_create",
    "send_invites_on_update",
    "dispatch_after_commit",
    "init_worker",
    "shutdown_worker",
    "process_jobs",
]
