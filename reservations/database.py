"""
SQLAlchemy async database client for the reservation notification tables.

The reservations table itself belongs to the booking service; this module
only manages the connections used for the ledger, queue and dead-letter
tables. The worker is long-running, so pooled connections are pinged
before use and recycled.
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from .config import get_db_pool_size
from .tables import metadata  # noqa: F401 - exported for Alembic

_engine: AsyncEngine | None = None

# Schemes we accept in DATABASE_URL, mapped to their bare postgresql form
_SCHEME_ALIASES = {
    "postgres://": "postgresql://",
    "postgresql+asyncpg://": "postgresql://",
    "postgresql+psycopg2://": "postgresql://",
}


def _normalize_url(database_url: str) -> str:
    for alias, scheme in _SCHEME_ALIASES.items():
        if database_url.startswith(alias):
            return scheme + database_url[len(alias):]
    return database_url


def _get_database_url() -> str:
    """
    DATABASE_URL rewritten for the asyncpg driver.

    Raises:
        ValueError: If DATABASE_URL is not set
    """
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL environment variable must be set.")

    database_url = _normalize_url(database_url)
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


def get_engine() -> AsyncEngine:
    """Get or create the async SQLAlchemy engine singleton."""
    global _engine
    if _engine is None:
        pool_size = get_db_pool_size()
        _engine = create_async_engine(
            _get_database_url(),
            echo=os.environ.get("SQL_ECHO", "").lower() == "true",
            pool_size=pool_size,
            max_overflow=pool_size,
            pool_timeout=30,
            pool_recycle=1800,
            pool_pre_ping=True,
        )
    return _engine


@asynccontextmanager
async def get_connection() -> AsyncGenerator[AsyncConnection, None]:
    """
    Pooled connection for reads.

    Usage:
        async with get_connection() as conn:
            records = await list_dead_letters(conn)
    """
    async with get_engine().connect() as conn:
        yield conn


@asynccontextmanager
async def get_transaction() -> AsyncGenerator[AsyncConnection, None]:
    """
    Connection inside a transaction: commits on success, rolls back on exception.

    Usage:
        async with get_transaction() as conn:
            await enqueue_job(conn, JobType.invite_create, payload)
            await mark_invited(conn, reservation_id, email)
    """
    async with get_engine().begin() as conn:
        yield conn


async def close_engine() -> None:
    """Dispose of the engine and its pool. Call on shutdown."""
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None


def is_configured() -> bool:
    return bool(os.environ.get("DATABASE_URL"))


def get_sync_database_url() -> str:
    """
    psycopg2 URL for Alembic, which runs migrations synchronously.

    Raises:
        ValueError: If DATABASE_URL is missing or not a PostgreSQL URL
    """
    database_url = _normalize_url(os.environ.get("DATABASE_URL", ""))
    if database_url.startswith("postgresql://"):
        return database_url
    raise ValueError("DATABASE_URL must be a PostgreSQL URL for migrations")
