"""
Notification ledger: who currently holds an invite for which reservation.

One row per (reservation_id, email). This table is what keeps a repeated
create from inviting the same person twice. Every function takes the
caller's connection so ledger writes can share a transaction with the job
insert they belong to.
"""

from sqlalchemy import and_, delete, func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncConnection

from reservations.tables import reservation_invites


async def get_invited_emails(conn: AsyncConnection, reservation_id: int) -> set[str]:
    """Return every address already invited to a reservation."""
    result = await conn.execute(
        select(reservation_invites.c.email).where(
            reservation_invites.c.reservation_id == reservation_id
        )
    )
    return {row.email for row in result}


def mark_invited_statement(reservation_id: int, email: str):
    stmt = insert(reservation_invites).values(
        reservation_id=reservation_id,
        email=email,
        last_sent_at=func.now(),
    )
    return stmt.on_conflict_do_update(
        constraint="reservation_invites_reservation_email_unique",
        set_={"last_sent_at": func.now()},
    )


async def mark_invited(conn: AsyncConnection, reservation_id: int, email: str) -> None:
    """Record an invite; re-inviting only refreshes last_sent_at."""
    await conn.execute(mark_invited_statement(reservation_id, email))


async def remove_invited(conn: AsyncConnection, reservation_id: int, email: str) -> None:
    """Forget an invite after the recipient was removed from the reservation."""
    await conn.execute(
        delete(reservation_invites).where(
            and_(
                reservation_invites.c.reservation_id == reservation_id,
                reservation_invites.c.email == email,
            )
        )
    )
