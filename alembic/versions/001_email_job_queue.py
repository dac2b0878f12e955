"""Create invite ledger, email job queue and dead-letter tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19

- reservation_invites: one row per (reservation, recipient) holding an invite
- email_jobs: active queue, with next_eligible_at gating retries and
  claimed_at for recovering abandoned claims
- email_jobs_dead: terminal store for jobs that exhausted their attempts
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


job_type = postgresql.ENUM(
    "invite_create", "invite_update", "invite_cancel", name="email_job_type"
)
job_status = postgresql.ENUM(
    "pending", "processing", "failed", "sent", name="email_job_status"
)


def upgrade() -> None:
    job_type.create(op.get_bind(), checkfirst=True)
    job_status.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "reservation_invites",
        sa.Column("invite_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("reservation_id", sa.Integer(), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column(
            "last_sent_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
        sa.PrimaryKeyConstraint("invite_id", name=op.f("pk_reservation_invites")),
        sa.UniqueConstraint(
            "reservation_id", "email", name="reservation_invites_reservation_email_unique"
        ),
    )
    op.create_index(
        "idx_reservation_invites_reservation_id",
        "reservation_invites",
        ["reservation_id"],
        unique=False,
    )

    op.create_table(
        "email_jobs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "type",
            postgresql.ENUM(name="email_job_type", create_type=False),
            nullable=False,
        ),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column(
            "status",
            postgresql.ENUM(name="email_job_status", create_type=False),
            server_default="pending",
            nullable=False,
        ),
        sa.Column("attempts", sa.Integer(), server_default="0", nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
        sa.Column("processed_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "next_eligible_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("claimed_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_email_jobs")),
    )
    op.create_index(
        "idx_email_jobs_due",
        "email_jobs",
        ["status", "next_eligible_at", "created_at"],
        unique=False,
    )

    op.create_table(
        "email_jobs_dead",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("original_job_id", sa.Integer(), nullable=False),
        sa.Column(
            "type",
            postgresql.ENUM(name="email_job_type", create_type=False),
            nullable=False,
        ),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "failed_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_email_jobs_dead")),
    )
    op.create_index(
        "idx_email_jobs_dead_failed_at", "email_jobs_dead", ["failed_at"], unique=False
    )


def downgrade() -> None:
    op.drop_index("idx_email_jobs_dead_failed_at", table_name="email_jobs_dead")
    op.drop_table("email_jobs_dead")
    op.drop_index("idx_email_jobs_due", table_name="email_jobs")
    op.drop_table("email_jobs")
    op.drop_index(
        "idx_reservation_invites_reservation_id", table_name="reservation_invites"
    )
    op.drop_table("reservation_invites")
    job_status.drop(op.get_bind(), checkfirst=True)
    job_type.drop(op.get_bind(), checkfirst=True)
