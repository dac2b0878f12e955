"""
Centralized configuration for the reservation notification pipeline.

All settings come from environment variables. Entry points load `.env` and
`.env.local` with python-dotenv before anything here is read.
"""

import os


def is_dev_mode() -> bool:
    """Check if running in development mode (DEV_MODE env)."""
    return os.getenv("DEV_MODE", "").lower() in ("true", "1", "yes")


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


def get_db_pool_size() -> int:
    return _get_int("DB_POOL_SIZE", 5)


def get_poll_interval_seconds() -> int:
    """Seconds between worker ticks."""
    return _get_int("WORKER_POLL_INTERVAL_SECONDS", 30)


def get_batch_size() -> int:
    """Maximum number of jobs claimed per worker tick."""
    return _get_int("WORKER_BATCH_SIZE", 5)


def get_max_attempts() -> int:
    """Delivery attempts before a job is moved to the dead-letter table."""
    return _get_int("WORKER_MAX_ATTEMPTS", 5)


def get_backoff_base_minutes() -> int:
    """Delay before the first retry; doubles with every further attempt."""
    return _get_int("WORKER_BACKOFF_BASE_MINUTES", 2)


def get_stale_claim_minutes() -> int:
    """How long a job may sit in 'processing' before it counts as abandoned."""
    return _get_int("WORKER_STALE_CLAIM_MINUTES", 30)


def get_weekends_enabled() -> bool:
    """Whether recurring series may place occurrences on Saturday/Sunday."""
    return os.getenv("RECURRENCE_WEEKENDS_ENABLED", "").lower() in ("true", "1", "yes")


def get_sendgrid_api_key() -> str | None:
    return os.getenv("SENDGRID_API_KEY") or None


def get_from_address() -> tuple[str, str]:
    """(email, display name) invites are sent from."""
    return (
        os.getenv("FROM_EMAIL", "reservations@briya.org"),
        os.getenv("FROM_NAME", "Briya Room Reservations"),
    )


def get_ics_uid_domain() -> str:
    """Domain part of calendar event UIDs. Changing it orphans existing events."""
    return os.getenv("ICS_UID_DOMAIN", "briya.org")


def get_ics_prodid() -> str:
    return os.getenv("ICS_PRODID", "-//Briya//Room Reservations//EN")


# (name, description, required even in DEV_MODE)
REQUIRED_ENV_VARS = [
    ("DATABASE_URL", "PostgreSQL connection string", True),
    ("SENDGRID_API_KEY", "SendGrid API key for invite emails", False),
    ("SENTRY_DSN", "Sentry DSN for dead-letter alerts", False),
]


def check_required_env_vars() -> tuple[bool, list[str]]:
    """
    Report missing settings before the worker starts.

    DATABASE_URL is always required. A missing SendGrid key or Sentry DSN
    is only reported outside DEV_MODE, and never blocks startup: mail then
    fails and is retried, and alerts only reach the log.

    Returns:
        (ok, messages): ok is False when a required setting is missing
    """
    in_dev = is_dev_mode()
    ok = True
    messages = []

    for name, description, always_required in REQUIRED_ENV_VARS:
        if os.environ.get(name):
            continue
        if always_required:
            ok = False
            messages.append(f"  ✗ {name}: Not set ({description})")
        elif not in_dev:
            messages.append(f"  ⚠ {name}: Not set ({description})")

    return ok, messages
