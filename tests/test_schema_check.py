from typing import Any, Awaitable, Callable, Iterator

import pytest
from sqlalchemy import text

from events_dashboard.core.database_manager import StoreHandle
from events_dashboard.core.errors import ConfigurationError, SchemaDriftError
from events_dashboard.core.schema_check import (
    create_schema,
    missing_columns,
    verify_schema,
)
from events_dashboard.core.settings import Settings
from events_dashboard.models.event import EXPECTED_COLUMNS

Run = Callable[[Awaitable[Any]], Any]

LEGACY_TABLE = """
CREATE TABLE events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name VARCHAR(255) NOT NULL,
    start_date DATETIME NOT NULL,
    end_date DATETIME NOT NULL,
    location VARCHAR(500) NOT NULL,
    status VARCHAR(50) NOT NULL DEFAULT 'draft'
)
"""


@pytest.fixture  # type: ignore[misc]
def bare_store(settings: Settings, run: Run) -> Iterator[StoreHandle]:
    handle = StoreHandle(settings)
    try:
        yield handle
    finally:
        run(handle.close())


def test_missing_table_is_reported(run: Run, bare_store: StoreHandle) -> None:
    with pytest.raises(SchemaDriftError) as exc_info:
        run(verify_schema(bare_store))

    assert "'events' does not exist" in exc_info.value.message
    assert "alembic upgrade head" in exc_info.value.message


def test_missing_columns_are_listed(run: Run, bare_store: StoreHandle) -> None:
    async def create_legacy_table() -> None:
        async with bare_store.engine.begin() as connection:
            await connection.execute(text(LEGACY_TABLE))

    run(create_legacy_table())

    with pytest.raises(SchemaDriftError) as exc_info:
        run(verify_schema(bare_store))

    message = exc_info.value.message
    assert exc_info.value.code == "SCHEMA_ERROR"
    assert "created_at" in message
    assert "timezone" in message
    assert "location" not in message


def test_created_schema_passes_verification(
    run: Run, bare_store: StoreHandle
) -> None:
    run(create_schema(bare_store))

    run(verify_schema(bare_store))


def test_missing_columns_preserves_declared_order() -> None:
    actual = set(EXPECTED_COLUMNS) - {"updated_at", "tags"}

    assert missing_columns(actual) == ["tags", "updated_at"]


def test_unconfigured_store_is_not_schema_drift(
    run: Run, make_settings: Callable[..., Settings]
) -> None:
    store = StoreHandle(make_settings(None))

    with pytest.raises(ConfigurationError):
        run(verify_schema(store))
