"""
Alembic environment for the notification tables.

The database is shared with the booking service, which runs its own
migrations. This project keeps its revision history in a separate version
table and only autogenerates against the tables it defines.
"""

import os
import sys
from logging.config import fileConfig

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

load_dotenv(".env")
load_dotenv(".env.local", override=True)

from reservations.database import get_sync_database_url
from reservations.tables import metadata

VERSION_TABLE = "alembic_version_notifications"

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# ConfigParser interpolates "%", which URL-encoded passwords contain
config.set_main_option("sqlalchemy.url", get_sync_database_url().replace("%", "%%"))


def include_object(object, name, type_, reflected, compare_to):
    """Ignore reflected tables (and their indexes) owned by the booking service."""
    if type_ == "table":
        return name in metadata.tables
    if type_ == "index" and reflected and compare_to is None:
        return object.table.name in metadata.tables
    return True


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=metadata,
        version_table=VERSION_TABLE,
        include_object=include_object,
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of connecting."""
    _configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        _configure(connection=connection, compare_type=True)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
