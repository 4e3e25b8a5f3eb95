import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List

import pytest
from sqlalchemy import insert
from sqlalchemy.exc import OperationalError

from events_dashboard.core.database_manager import StoreHandle
from events_dashboard.core.errors import SchemaDriftError
from events_dashboard.crud.event import EventRepository
from events_dashboard.models.event import Event as EventModel
from events_dashboard.models.event import EventStatus
from events_dashboard.schemas.event import (
    Event,
    EventFilters,
    PaginationParams,
    parse_create_input,
    parse_update_input,
)

Run = Callable[[Awaitable[Any]], Any]
Payload = Callable[..., Dict[str, Any]]


def _create(run: Run, repository: EventRepository, payload: Dict[str, Any]) -> Event:
    return run(repository.create(parse_create_input(payload)))


def _seed(
    run: Run, repository: EventRepository, payloads: List[Dict[str, Any]]
) -> List[Event]:
    return [_create(run, repository, payload) for payload in payloads]


def test_create_then_get_returns_the_same_record(
    run: Run, repository: EventRepository, event_payload: Payload
) -> None:
    created = _create(
        run,
        repository,
        event_payload(
            teams=[{"name": "Lions", "logo": "https://cdn.example.com/lions.png"}],
            tags=["final", "live"],
            ticketsSold=120,
        ),
    )

    assert created.id >= 1
    assert created.status == EventStatus.DRAFT
    assert created.timezone == "GMT-6"
    assert created.created_at is not None
    assert created.updated_at is not None

    fetched = run(repository.get_by_id(created.id))
    assert fetched == created
    assert fetched.teams[0].name == "Lions"
    assert fetched.tags == ["final", "live"]
    assert fetched.start_date == datetime(2025, 6, 1, tzinfo=timezone.utc)


def test_get_missing_event_returns_none(
    run: Run, repository: EventRepository
) -> None:
    assert run(repository.get_by_id(999)) is None


def test_partial_update_leaves_other_fields_alone(
    run: Run, repository: EventRepository, event_payload: Payload
) -> None:
    created = _create(run, repository, event_payload(description="Season finale"))

    updated = run(
        repository.update(created.id, parse_update_input({"status": "upcoming"}))
    )

    assert updated.status == EventStatus.UPCOMING
    assert updated.name == created.name
    assert updated.description == "Season finale"
    assert updated.start_date == created.start_date
    assert updated.created_at == created.created_at
    assert updated.updated_at > created.updated_at


def test_update_empty_string_clears_field(
    run: Run, repository: EventRepository, event_payload: Payload
) -> None:
    created = _create(
        run, repository, event_payload(imageUrl="https://cdn.example.com/a.png")
    )

    updated = run(repository.update(created.id, parse_update_input({"imageUrl": ""})))

    assert updated.image_url is None


def test_update_missing_event_returns_none(
    run: Run, repository: EventRepository
) -> None:
    result = run(repository.update(404, parse_update_input({"name": "Renamed"})))

    assert result is None


def test_delete_removes_the_event(
    run: Run, repository: EventRepository, event_payload: Payload
) -> None:
    created = _create(run, repository, event_payload())

    assert run(repository.delete(created.id)) is True
    assert run(repository.get_by_id(created.id)) is None
    assert run(repository.delete(created.id)) is False


def test_pages_cover_every_event_newest_first(
    run: Run, repository: EventRepository, event_payload: Payload
) -> None:
    created = _seed(
        run, repository, [event_payload(name=f"Match {i}") for i in range(7)]
    )

    seen: List[int] = []
    for page in (1, 2, 3):
        result = run(
            repository.list(EventFilters(), PaginationParams(page=page, limit=3))
        )
        assert result.total == 7
        seen.extend(event.id for event in result.events)

    assert seen == [event.id for event in reversed(created)]

    beyond = run(repository.list(EventFilters(), PaginationParams(page=4, limit=3)))
    assert beyond.events == []
    assert beyond.total == 7


def test_status_filter(
    run: Run, repository: EventRepository, event_payload: Payload
) -> None:
    _seed(
        run,
        repository,
        [
            event_payload(name="Draft"),
            event_payload(name="Soon", status="upcoming"),
            event_payload(name="Later", status="upcoming"),
        ],
    )

    result = run(repository.list(EventFilters(status=EventStatus.UPCOMING)))

    assert result.total == 2
    assert {event.name for event in result.events} == {"Soon", "Later"}


def test_search_is_case_sensitive_on_name_or_location(
    run: Run, repository: EventRepository, event_payload: Payload
) -> None:
    _seed(
        run,
        repository,
        [
            event_payload(name="Finals", location="Arena"),
            event_payload(name="arena cup", location="Park"),
            event_payload(name="Opening", location="Stadium"),
        ],
    )

    lower = run(repository.list(EventFilters(search="arena")))
    upper = run(repository.list(EventFilters(search="Arena")))

    assert [event.name for event in lower.events] == ["arena cup"]
    assert [event.name for event in upper.events] == ["Finals"]


def test_search_wildcards_match_literally(
    run: Run, repository: EventRepository, event_payload: Payload
) -> None:
    _seed(
        run,
        repository,
        [event_payload(name="100% Live"), event_payload(name="Quarter_Final")],
    )

    percent = run(repository.list(EventFilters(search="%")))
    underscore = run(repository.list(EventFilters(search="_")))

    assert [event.name for event in percent.events] == ["100% Live"]
    assert [event.name for event in underscore.events] == ["Quarter_Final"]


def test_date_range_bounds_the_start_date(
    run: Run, repository: EventRepository, event_payload: Payload
) -> None:
    _seed(
        run,
        repository,
        [
            event_payload(
                name="Early",
                startDate="2025-06-01T00:00:00Z",
                endDate="2025-06-01T03:00:00Z",
            ),
            event_payload(
                name="Middle",
                startDate="2025-06-10T00:00:00Z",
                endDate="2025-06-20T00:00:00Z",
            ),
            event_payload(
                name="Late",
                startDate="2025-06-20T00:00:00Z",
                endDate="2025-06-21T00:00:00Z",
            ),
        ],
    )

    filters = EventFilters(
        start_date=datetime(2025, 6, 5, tzinfo=timezone.utc),
        end_date=datetime(2025, 6, 15, tzinfo=timezone.utc),
    )
    result = run(repository.list(filters))

    assert [event.name for event in result.events] == ["Middle"]
    assert result.total == 1


def test_filters_combine(
    run: Run, repository: EventRepository, event_payload: Payload
) -> None:
    _seed(
        run,
        repository,
        [
            event_payload(name="Arena Night", location="Hall", status="upcoming"),
            event_payload(name="Arena Day", location="Hall"),
            event_payload(name="Park Night", location="Park", status="upcoming"),
            event_payload(name="Night Show", location="Arena", status="upcoming"),
        ],
    )

    result = run(
        repository.list(EventFilters(status=EventStatus.UPCOMING, search="Arena"))
    )

    # Matched on location and on name respectively
    assert [event.name for event in result.events] == ["Night Show", "Arena Night"]
    assert result.total == 2


def test_legacy_serialized_collections_are_decoded(
    run: Run, store: StoreHandle, repository: EventRepository
) -> None:
    async def insert_legacy_row() -> int:
        async with store.session() as session:
            result = await session.execute(
                insert(EventModel)
                .values(
                    name="Legacy",
                    start_date=datetime(2024, 1, 1, tzinfo=timezone.utc),
                    end_date=datetime(2024, 1, 2, tzinfo=timezone.utc),
                    location="Old Hall",
                    tickets_sold=None,
                    teams=json.dumps([{"name": "Veterans"}]),
                    tags=json.dumps(["archive"]),
                )
                .returning(EventModel.id)
            )
            return int(result.scalar_one())

    event_id = run(insert_legacy_row())
    fetched = run(repository.get_by_id(event_id))

    assert fetched.teams[0].name == "Veterans"
    assert fetched.tags == ["archive"]
    assert fetched.tickets_sold == 0


class CountFailsRepository(EventRepository):
    """Count query fails while the page query is still in flight"""

    page_cancelled = False

    async def _fetch_page(self, conditions: Any, pagination: Any) -> List[Event]:
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            self.page_cancelled = True
            raise
        return []

    async def _count(self, conditions: Any) -> int:
        await asyncio.sleep(0)
        raise OperationalError("SELECT", None, Exception("no such table: events"))


def test_failed_count_cancels_page_query(run: Run, store: StoreHandle) -> None:
    repository = CountFailsRepository(store)

    with pytest.raises(SchemaDriftError):
        run(repository.list(EventFilters()))

    assert repository.page_cancelled is True
