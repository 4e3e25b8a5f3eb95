from __future__ import annotations

import asyncio
import os
import sys
from logging.config import fileConfig
from typing import Any, Dict

from alembic import context
from sqlalchemy import MetaData, pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

# Ensure the package is importable when alembic runs from a checkout
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from events_dashboard.core.database_manager import (  # noqa: E402
    SSL_QUERY_PARAMS,
    needs_ssl,
    normalize_database_url,
)
from events_dashboard.core.settings import get_settings  # noqa: E402
from events_dashboard.database import Base  # noqa: E402
import events_dashboard.models  # noqa: E402,F401

settings = get_settings()

# Single metadata for all models
TARGET_METADATA = Base.metadata

config = context.config

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)


# Prefer a db URL passed via `-x dburl=...`, then alembic.ini, then DATABASE_URL
x_args = context.get_x_argument(as_dictionary=True)
raw_url = (
    x_args.get("dburl")
    or config.get_main_option("sqlalchemy.url")
    or settings.database.DATABASE_URL
)
db_url = normalize_database_url(raw_url)
use_ssl = needs_ssl(db_url, settings)
if db_url.get_backend_name() == "postgresql":
    # asyncpg does not accept libpq-style ssl query arguments
    db_url = db_url.difference_update_query(SSL_QUERY_PARAMS)


def get_target_metadata() -> MetaData:
    return TARGET_METADATA


def run_migrations_offline() -> None:
    context.configure(
        url=db_url,
        target_metadata=get_target_metadata(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=get_target_metadata(),
        render_as_batch=connection.dialect.name == "sqlite",
        compare_type=True,
        compare_server_default=True,
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    connect_args: Dict[str, Any] = {}
    if use_ssl:
        connect_args["ssl"] = "require"
    connectable: AsyncEngine = create_async_engine(
        db_url, poolclass=pool.NullPool, connect_args=connect_args
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
