"""
Email worker entry point.

Architecture:
- A single asyncio process; several may poll the same database safely
- APScheduler ticks the email worker on a fixed interval
- The email_jobs table is the hand-off from the reservation API: the API
  only enqueues (durably, after its own commit); delivery happens here

Run with: python main.py [--once]
"""

import argparse
import asyncio
import logging
import os
import signal
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).parent

# .env.local (gitignored) wins over .env
load_dotenv(PROJECT_ROOT / ".env.local")
load_dotenv(PROJECT_ROOT / ".env")

import sentry_sdk

from reservations.config import check_required_env_vars
from reservations.database import close_engine
from reservations.notifications.worker import init_worker, process_jobs, shutdown_worker

logger = logging.getLogger(__name__)


def init_sentry() -> None:
    dsn = os.environ.get("SENTRY_DSN")
    if not dsn:
        print("Warning: SENTRY_DSN not set, dead-letter alerts only go to the log")
        return
    sentry_sdk.init(
        dsn=dsn,
        environment=os.environ.get("SENTRY_ENVIRONMENT", "development"),
        traces_sample_rate=0.0,
    )


async def run_worker() -> None:
    """Run the email worker until SIGINT/SIGTERM."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    init_worker()
    try:
        await stop.wait()
    finally:
        print("Shutting down email worker...")
        shutdown_worker()
        await close_engine()


async def run_once() -> None:
    """Run a single tick (useful from cron or for debugging)."""
    try:
        counts = await process_jobs()
        print(f"Processed: {counts}")
    finally:
        await close_engine()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Room reservation email worker")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Process a single batch and exit",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    ok, messages = check_required_env_vars()
    for message in messages:
        print(message)
    if not ok:
        raise SystemExit(1)

    init_sentry()
    asyncio.run(run_once() if args.once else run_worker())
