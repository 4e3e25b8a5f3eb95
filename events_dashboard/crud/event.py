import asyncio
import logging
from functools import wraps
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from sqlalchemy import delete, func, insert, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.elements import ColumnElement

from events_dashboard.core.database_manager import StoreHandle
from events_dashboard.core.errors import (
    EventsError,
    PersistenceError,
    classify_store_error,
)
from events_dashboard.models.event import Event, utcnow
from events_dashboard.schemas.event import Event as EventSchema
from events_dashboard.schemas.event import (
    EventCreate,
    EventFilters,
    EventPage,
    EventUpdate,
    PaginationParams,
)

logger = logging.getLogger(__name__)

R = TypeVar("R")


def translate_store_errors(
    operation: Callable[..., Awaitable[R]],
) -> Callable[..., Awaitable[R]]:
    """Classify raw store failures before they leave the repository"""

    @wraps(operation)
    async def wrapper(*args: Any, **kwargs: Any) -> R:
        try:
            return await operation(*args, **kwargs)
        except EventsError:
            raise
        except (SQLAlchemyError, OSError) as e:
            classified = classify_store_error(e)
            logger.error(
                "Event store operation %s failed [%s]: %s",
                operation.__name__,
                classified.code,
                e,
            )
            raise classified from e

    return wrapper


def build_conditions(filters: Optional[EventFilters]) -> List[ColumnElement[bool]]:
    """Conjunction of the optional list predicates"""
    conditions: List[ColumnElement[bool]] = []
    if filters is None:
        return conditions
    if filters.status is not None:
        conditions.append(Event.status == filters.status.value)
    if filters.search:
        conditions.append(
            or_(
                Event.name.contains(filters.search, autoescape=True),
                Event.location.contains(filters.search, autoescape=True),
            )
        )
    # Both range bounds apply to the event's start
    if filters.start_date is not None:
        conditions.append(Event.start_date >= filters.start_date)
    if filters.end_date is not None:
        conditions.append(Event.start_date <= filters.end_date)
    return conditions


class EventRepository:
    """Create, read, update, delete and list operations on the events table"""

    def __init__(self, store: StoreHandle) -> None:
        self.store = store

    @translate_store_errors
    async def create(self, data: EventCreate) -> EventSchema:
        async with self.store.session() as session:
            result = await session.execute(
                insert(Event).values(**data.to_row()).returning(Event)
            )
            db_event = result.scalars().first()
            if db_event is None:
                raise PersistenceError()
            created = EventSchema.model_validate(db_event)
        logger.info("Event %s created", created.id)
        return created

    @translate_store_errors
    async def get_by_id(self, event_id: int) -> Optional[EventSchema]:
        async with self.store.session() as session:
            result = await session.execute(
                select(Event).where(Event.id == event_id).limit(1)
            )
            db_event = result.scalars().first()
            if db_event is None:
                return None
            return EventSchema.model_validate(db_event)

    async def _fetch_page(
        self, conditions: List[ColumnElement[bool]], pagination: PaginationParams
    ) -> List[EventSchema]:
        query = (
            select(Event)
            .where(*conditions)
            .order_by(Event.created_at.desc(), Event.id.desc())
            .limit(pagination.limit)
            .offset(pagination.offset)
        )
        async with self.store.session() as session:
            result = await session.execute(query)
            return [EventSchema.model_validate(row) for row in result.scalars().all()]

    async def _count(self, conditions: List[ColumnElement[bool]]) -> int:
        query = select(func.count(Event.id)).where(*conditions)
        async with self.store.session() as session:
            result = await session.execute(query)
            return int(result.scalar_one() or 0)

    @translate_store_errors
    async def list(
        self,
        filters: Optional[EventFilters] = None,
        pagination: Optional[PaginationParams] = None,
    ) -> EventPage:
        """
        Filtered, paginated listing ordered by creation time, newest first.

        The page and the total are fetched concurrently on separate sessions,
        so under concurrent writes they may disagree.
        """
        pagination = pagination or PaginationParams()
        conditions = build_conditions(filters)
        page_task = asyncio.ensure_future(self._fetch_page(conditions, pagination))
        count_task = asyncio.ensure_future(self._count(conditions))
        try:
            events, total = await asyncio.gather(page_task, count_task)
        except BaseException:
            # Neither query may outlive the call, nor leave its error unread
            for task in (page_task, count_task):
                task.cancel()
            await asyncio.gather(page_task, count_task, return_exceptions=True)
            raise
        return EventPage(events=events, total=total)

    @translate_store_errors
    async def update(
        self, event_id: int, data: EventUpdate
    ) -> Optional[EventSchema]:
        changes = data.to_changes()
        changes["updated_at"] = utcnow()
        async with self.store.session() as session:
            result = await session.execute(
                update(Event)
                .where(Event.id == event_id)
                .values(**changes)
                .returning(Event)
            )
            db_event = result.scalars().first()
            if db_event is None:
                return None
            updated = EventSchema.model_validate(db_event)
        logger.info("Event %s updated (%s)", event_id, ", ".join(sorted(changes)))
        return updated

    @translate_store_errors
    async def delete(self, event_id: int) -> bool:
        """Hard delete; success is confirmed by looking the row up again"""
        async with self.store.session() as session:
            result = await session.execute(
                delete(Event).where(Event.id == event_id).returning(Event.id)
            )
            deleted_id = result.scalars().first()
        if deleted_id is None:
            return False
        deleted = await self.get_by_id(event_id) is None
        if deleted:
            logger.info("Event %s deleted", event_id)
        return deleted
