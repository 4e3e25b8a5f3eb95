"""
Startup schema verification: compare the columns the application expects on
the events table against the live catalog.
"""

import logging
from typing import Any, List, Optional, Set

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from events_dashboard.core.database_manager import StoreHandle
from events_dashboard.core.errors import (
    MIGRATION_HINT,
    SchemaDriftError,
    classify_store_error,
)
from events_dashboard.database import Base
from events_dashboard.models.event import CRITICAL_COLUMNS, EXPECTED_COLUMNS, Event

logger = logging.getLogger(__name__)


def _live_columns(sync_connection: Any) -> Optional[Set[str]]:
    inspector = inspect(sync_connection)
    if not inspector.has_table(Event.__tablename__):
        return None
    return {column["name"] for column in inspector.get_columns(Event.__tablename__)}


def missing_columns(actual: Set[str]) -> List[str]:
    return [column for column in EXPECTED_COLUMNS if column not in actual]


async def verify_schema(store: StoreHandle) -> None:
    """Raise SchemaDriftError when the table or any expected column is missing"""
    try:
        async with store.engine.connect() as connection:
            actual = await connection.run_sync(_live_columns)
    except (SQLAlchemyError, OSError) as e:
        raise classify_store_error(e) from e

    if actual is None:
        raise SchemaDriftError(
            f"Database table '{Event.__tablename__}' does not exist. {MIGRATION_HINT}"
        )

    missing = missing_columns(actual)
    if missing:
        critical = [column for column in missing if column in CRITICAL_COLUMNS]
        if critical:
            logger.error("Critical columns missing: %s", ", ".join(critical))
        raise SchemaDriftError(
            f"Database columns missing on '{Event.__tablename__}': "
            f"{', '.join(missing)}. {MIGRATION_HINT}"
        )

    logger.info("Schema verification passed for table '%s'", Event.__tablename__)


async def create_schema(store: StoreHandle) -> None:
    """Create missing tables; intended for development and tests"""
    try:
        async with store.engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
    except (SQLAlchemyError, OSError) as e:
        raise classify_store_error(e) from e
    logger.info("Database tables created")
