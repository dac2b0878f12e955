"""Enum definitions shared by the recurrence engine and the notification tables."""

import enum

from sqlalchemy import Enum as SQLEnum


# =====================================================
# Python Enum Classes
# =====================================================


class Frequency(str, enum.Enum):
    # Bi-weekly is weekly with interval=2, never a frequency of its own
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"


class JobType(str, enum.Enum):
    invite_create = "invite_create"
    invite_update = "invite_update"
    invite_cancel = "invite_cancel"


class JobStatus(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    failed = "failed"
    sent = "sent"


class IcsMethod(str, enum.Enum):
    REQUEST = "REQUEST"
    CANCEL = "CANCEL"


# =====================================================
# SQLAlchemy Enum Types
# These reference PostgreSQL types created by migrations (create_type=False)
# =====================================================

job_type_enum = SQLEnum(JobType, name="email_job_type", create_type=False, native_enum=True)
job_status_enum = SQLEnum(
    JobStatus, name="email_job_status", create_type=False, native_enum=True
)
