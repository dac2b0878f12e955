"""SQLAlchemy Core table definitions for the notification schema."""

from sqlalchemy import (
    Column,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP

from .enums import JobStatus, job_status_enum, job_type_enum

# Naming convention for constraints (helps Alembic generate better names)
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}
metadata = MetaData(naming_convention=convention)


# =====================================================
# 1. RESERVATION_INVITES (notification ledger)
# =====================================================
# One row per (reservation, recipient) that currently holds an invite.
# reservation_id refers to the booking service's reservations table, which
# is not managed here, so there is no foreign key.
reservation_invites = Table(
    "reservation_invites",
    metadata,
    Column("invite_id", Integer, primary_key=True, autoincrement=True),
    Column("reservation_id", Integer, nullable=False),
    Column("email", Text, nullable=False),
    Column("last_sent_at", TIMESTAMP(timezone=True), server_default=func.now()),
    UniqueConstraint(
        "reservation_id", "email", name="reservation_invites_reservation_email_unique"
    ),
    Index("idx_reservation_invites_reservation_id", "reservation_id"),
)


# =====================================================
# 2. EMAIL_JOBS (active queue)
# =====================================================
email_jobs = Table(
    "email_jobs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("type", job_type_enum, nullable=False),
    Column("payload", Text, nullable=False),  # JSON document, opaque to SQL
    Column(
        "status",
        job_status_enum,
        nullable=False,
        server_default=JobStatus.pending.value,
    ),
    Column("attempts", Integer, nullable=False, server_default="0"),
    Column("last_error", Text),
    Column("created_at", TIMESTAMP(timezone=True), server_default=func.now()),
    Column("processed_at", TIMESTAMP(timezone=True)),
    # Backoff gate: the worker never claims a job before this moment
    Column(
        "next_eligible_at",
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    ),
    Column("claimed_at", TIMESTAMP(timezone=True)),
    Index("idx_email_jobs_due", "status", "next_eligible_at", "created_at"),
)


# =====================================================
# 3. EMAIL_JOBS_DEAD (dead-letter store)
# =====================================================
email_jobs_dead = Table(
    "email_jobs_dead",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("original_job_id", Integer, nullable=False),
    Column("type", job_type_enum, nullable=False),
    Column("payload", Text, nullable=False),
    Column("attempts", Integer, nullable=False),
    Column("last_error", Text),
    Column("created_at", TIMESTAMP(timezone=True)),
    Column("failed_at", TIMESTAMP(timezone=True), server_default=func.now()),
    Index("idx_email_jobs_dead_failed_at", "failed_at"),
)
