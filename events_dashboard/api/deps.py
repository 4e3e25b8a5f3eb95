from fastapi import Depends, Request

from ..core.database_manager import StoreHandle
from ..core.errors import NotFoundError, ValidationError
from ..core.settings import Settings
from ..crud.event import EventRepository
from ..database import get_store


def get_app_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def get_repository(store: StoreHandle = Depends(get_store)) -> EventRepository:
    return EventRepository(store)


# Upper bound of the integer id column
MAX_EVENT_ID = 2**31 - 1


def parse_event_id(event_id: str) -> int:
    """
    Path ids must be positive base-10 integers. Well-formed ids beyond the
    column range cannot name a stored event and are reported as not found.
    """
    if not (event_id.isascii() and event_id.isdigit()):
        raise ValidationError({"id": "Invalid event ID"}, message="Invalid event ID")
    digits = event_id.lstrip("0")
    if not digits:
        raise ValidationError({"id": "Invalid event ID"}, message="Invalid event ID")
    if len(digits) > len(str(MAX_EVENT_ID)) or int(digits) > MAX_EVENT_ID:
        raise NotFoundError()
    return int(digits)
