"""Root pytest configuration."""

from pathlib import Path

import pytest
from dotenv import load_dotenv

# Load environment variables before tests run
_root = Path(__file__).parent
load_dotenv(_root / ".env")
load_dotenv(_root / ".env.local", override=True)

# Settings whose defaults the tests rely on; a developer's .env may change them
PIPELINE_SETTINGS = (
    "WORKER_POLL_INTERVAL_SECONDS",
    "WORKER_BATCH_SIZE",
    "WORKER_MAX_ATTEMPTS",
    "WORKER_BACKOFF_BASE_MINUTES",
    "WORKER_STALE_CLAIM_MINUTES",
    "RECURRENCE_WEEKENDS_ENABLED",
    "ICS_UID_DOMAIN",
    "ICS_PRODID",
)


@pytest.fixture(autouse=True)
def default_pipeline_settings(monkeypatch):
    """Run every test against the default worker, recurrence and ICS settings."""
    for name in PIPELINE_SETTINGS:
        monkeypatch.delenv(name, raising=False)
