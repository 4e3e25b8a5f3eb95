"""Uniform response envelope shared by every API route"""

from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel

from .event import CamelModel, Event, PaginationMeta

T = TypeVar("T")


class SuccessResponse(BaseModel, Generic[T]):
    success: Literal[True] = True
    data: T


class ErrorResponse(BaseModel):
    success: Literal[False] = False
    error: str
    message: Optional[str] = None
    details: Optional[Dict[str, str]] = None


class EventList(CamelModel):
    events: List[Event]
    pagination: PaginationMeta


class MessagePayload(BaseModel):
    message: str


def error_response(
    error: str,
    message: Optional[str] = None,
    details: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    body = ErrorResponse(error=error, message=message, details=details)
    return body.model_dump(exclude_none=True)
