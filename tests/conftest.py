"""Pytest conftest to make repository importable during tests."""
import asyncio
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterator, Optional, TypeVar

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    # Insert at front so local package imports resolve
    sys.path.insert(0, str(REPO_ROOT))

from events_dashboard.core.database_manager import StoreHandle  # noqa: E402
from events_dashboard.core.schema_check import create_schema  # noqa: E402
from events_dashboard.core.settings import (  # noqa: E402
    DatabaseSettings,
    MonitoringSettings,
    Settings,
)
from events_dashboard.crud.event import EventRepository  # noqa: E402

T = TypeVar("T")

CRON_SECRET = "test-cron-secret"


def build_settings(database_url: Optional[str], **overrides: Any) -> Settings:
    return Settings(
        database=DatabaseSettings(
            DATABASE_URL=database_url, DB_AUTO_CREATE=True, DB_VERIFY_SCHEMA=True
        ),
        monitoring=MonitoringSettings(LOG_FORMAT="console", LOG_LEVEL="WARNING"),
        CRON_SECRET=CRON_SECRET,
        **overrides,
    )


@pytest.fixture  # type: ignore[misc]
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'events.db'}"


@pytest.fixture  # type: ignore[misc]
def make_settings() -> Callable[..., Settings]:
    return build_settings


@pytest.fixture  # type: ignore[misc]
def settings(database_url: str) -> Settings:
    return build_settings(database_url)


@pytest.fixture  # type: ignore[misc]
def run() -> Iterator[Callable[[Awaitable[T]], T]]:
    """Run coroutines on one event loop for the whole test"""
    loop = asyncio.new_event_loop()
    try:
        yield loop.run_until_complete
    finally:
        loop.close()


@pytest.fixture  # type: ignore[misc]
def store(
    settings: Settings, run: Callable[[Awaitable[Any]], Any]
) -> Iterator[StoreHandle]:
    handle = StoreHandle(settings)
    run(create_schema(handle))
    try:
        yield handle
    finally:
        run(handle.close())


@pytest.fixture  # type: ignore[misc]
def repository(store: StoreHandle) -> EventRepository:
    return EventRepository(store)


@pytest.fixture  # type: ignore[misc]
def event_payload() -> Callable[..., Dict[str, Any]]:
    def factory(**overrides: Any) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": "Finals",
            "startDate": "2025-06-01T00:00:00Z",
            "endDate": "2025-06-01T03:00:00Z",
            "location": "Arena",
        }
        payload.update(overrides)
        return payload

    return factory
