#!/usr/bin/env python3
"""
Inspect and requeue dead-lettered invite emails.

Dead letters are never retried automatically. Use this after fixing the
cause (bad address, SendGrid outage, ...).

Usage:
    python scripts/dead_letters.py list [--limit 20]
    python scripts/dead_letters.py requeue DEAD_ID [--execute]
"""

import argparse
import asyncio
import json

from dotenv import load_dotenv

load_dotenv(".env")
load_dotenv(".env.local", override=True)

from reservations.database import close_engine, get_connection, get_transaction
from reservations.notifications.queue import list_dead_letters, requeue_dead_letter


async def show_dead_letters(limit: int):
    async with get_connection() as conn:
        records = await list_dead_letters(conn, limit=limit)

    if not records:
        print("No dead-lettered jobs.")
        return

    print(f"Showing {len(records)} most recent dead-lettered jobs:")
    for record in records:
        recipients = json.loads(record.payload).get("recipients", [])
        print(
            f"  [{record.id}] job {record.original_job_id} {record.type.value} "
            f"to {', '.join(recipients)} - {record.attempts} attempts, "
            f"failed {record.failed_at}: {record.last_error}"
        )


async def requeue(dead_id: int, dry_run: bool = True):
    if dry_run:
        print(f"DRY RUN - would requeue dead letter {dead_id} (pass --execute)")
        return

    async with get_transaction() as conn:
        job_id = await requeue_dead_letter(conn, dead_id)

    if job_id is None:
        print(f"Dead letter {dead_id} not found.")
    else:
        print(f"Requeued dead letter {dead_id} as job {job_id}.")


async def main(args):
    try:
        if args.command == "list":
            await show_dead_letters(args.limit)
        else:
            await requeue(args.dead_id, dry_run=not args.execute)
    finally:
        await close_engine()


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    sub = parser.add_subparsers(dest="command", required=True)

    list_parser = sub.add_parser("list", help="Show recent dead letters")
    list_parser.add_argument("--limit", type=int, default=20)

    requeue_parser = sub.add_parser("requeue", help="Queue a fresh copy of a dead letter")
    requeue_parser.add_argument("dead_id", type=int)
    requeue_parser.add_argument("--execute", action="store_true", help="Actually requeue")

    asyncio.run(main(parser.parse_args()))
