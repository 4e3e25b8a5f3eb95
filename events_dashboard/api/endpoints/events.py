import asyncio
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from events_dashboard.api import deps
from events_dashboard.core.errors import NotFoundError, QueryTimeoutError
from events_dashboard.core.settings import Settings
from events_dashboard.crud.event import EventRepository
from events_dashboard.middleware.monitoring import metrics
from events_dashboard.schemas.envelope import EventList, MessagePayload, SuccessResponse
from events_dashboard.schemas.event import Event as EventSchema
from events_dashboard.schemas.event import (
    PaginationMeta,
    parse_create_input,
    parse_list_query,
    parse_update_input,
)

router = APIRouter()


@router.post(
    "",
    response_model=SuccessResponse[EventSchema],
    status_code=status.HTTP_201_CREATED,
    summary="Create New Event",
)  # type: ignore[misc]
async def create_event(
    payload: Any = Body(...),
    repository: EventRepository = Depends(deps.get_repository),
) -> SuccessResponse[EventSchema]:
    """
    **Create New Event**

    **Request Body:**
    - `name` (string, 1-255): Event title
    - `startDate`, `endDate` (ISO-8601): Event schedule
    - `location` (string, 1-500): Event venue
    - `status` (string): draft, upcoming, ongoing, completed or cancelled (default draft)
    - `ticketsSold`, `totalRevenue`, `uniqueAttendees` (integer >= 0, default 0)
    - `imageUrl`, `logoUrl`, `organizerLogo` (URL or empty string)
    - `teams` (array of `{name, logo?}`), `tags` (array of strings)
    - `timezone` (string, default "GMT-6")

    **Example Request:**
    ```json
    {
        "name": "Finals",
        "startDate": "2025-06-01T00:00:00Z",
        "endDate": "2025-06-01T03:00:00Z",
        "location": "Arena"
    }
    ```

    **Errors:**
    - `400`: Validation failed; `details` maps each invalid field to a message
    - `500`: Database unreachable, misconfigured or out of date
    """
    event_in = parse_create_input(payload)
    event = await repository.create(event_in)
    metrics.events_created_total.inc()
    return SuccessResponse(data=event)


@router.get(
    "",
    response_model=SuccessResponse[EventList],
    summary="List Events with Filters",
)  # type: ignore[misc]
async def read_events(
    status_filter: Optional[str] = Query(
        None, alias="status", description="Exact status match"
    ),
    search: Optional[str] = Query(
        None, description="Case-sensitive substring of name or location"
    ),
    start_date: Optional[str] = Query(
        None, alias="startDate", description="Events starting at or after"
    ),
    end_date: Optional[str] = Query(
        None, alias="endDate", description="Events starting at or before"
    ),
    page: Optional[str] = Query(None, description="Page number, from 1"),
    limit: Optional[str] = Query(None, description="Page size"),
    repository: EventRepository = Depends(deps.get_repository),
    settings: Settings = Depends(deps.get_app_settings),
) -> SuccessResponse[EventList]:
    """
    **Retrieve Events with Filtering**

    Results are ordered by creation time, newest first.

    **Example Requests:**
    ```bash
    GET /api/events?status=upcoming&page=2&limit=20
    GET /api/events?search=Arena&startDate=2025-06-01&endDate=2025-06-30
    ```
    """
    filters, pagination = parse_list_query(
        {
            "status": status_filter,
            "search": search,
            "startDate": start_date,
            "endDate": end_date,
            "page": page,
            "limit": limit,
        },
        default_limit=settings.EVENTS_DEFAULT_PAGE_LIMIT,
        max_limit=settings.EVENTS_MAX_PAGE_LIMIT,
    )

    timeout = settings.EVENTS_LIST_TIMEOUT_SECONDS
    try:
        result = await asyncio.wait_for(
            repository.list(filters, pagination), timeout=timeout
        )
    except asyncio.TimeoutError as e:
        raise QueryTimeoutError(
            f"Database query timeout after {timeout:g} seconds"
        ) from e

    return SuccessResponse(
        data=EventList(
            events=result.events,
            pagination=PaginationMeta.create(result.total, pagination),
        )
    )


@router.get(
    "/{event_id}",
    response_model=SuccessResponse[EventSchema],
    summary="Get Event Details",
)  # type: ignore[misc]
async def read_event(
    event_id: str,
    repository: EventRepository = Depends(deps.get_repository),
) -> SuccessResponse[EventSchema]:
    """
    **Get Event by ID**

    **Errors:**
    - `400`: Invalid event ID format
    - `404`: Event not found
    """
    event = await repository.get_by_id(deps.parse_event_id(event_id))
    if event is None:
        raise NotFoundError()
    return SuccessResponse(data=event)


@router.put(
    "/{event_id}",
    response_model=SuccessResponse[EventSchema],
    summary="Update Event",
)  # type: ignore[misc]
async def update_event(
    event_id: str,
    payload: Any = Body(...),
    repository: EventRepository = Depends(deps.get_repository),
) -> SuccessResponse[EventSchema]:
    """
    **Update Event Details**

    Partial update: only the fields present in the body change. Sending `null`
    or an empty string clears an optional text or URL field.

    **Errors:**
    - `400`: Invalid event ID or validation failure
    - `404`: Event not found
    """
    parsed_id = deps.parse_event_id(event_id)
    event_in = parse_update_input(payload)
    event = await repository.update(parsed_id, event_in)
    if event is None:
        raise NotFoundError()
    return SuccessResponse(data=event)


@router.delete(
    "/{event_id}",
    response_model=SuccessResponse[MessagePayload],
    summary="Delete Event",
)  # type: ignore[misc]
async def delete_event(
    event_id: str,
    repository: EventRepository = Depends(deps.get_repository),
) -> SuccessResponse[MessagePayload]:
    """
    **Delete Event**

    Permanently deletes an event. This action cannot be undone; consider
    setting the status to `cancelled` to keep the record.
    """
    if not await repository.delete(deps.parse_event_id(event_id)):
        raise NotFoundError()
    return SuccessResponse(data=MessagePayload(message="Event deleted successfully"))
