"""
Error taxonomy for the events store and the classifier that maps raw
driver/SQLAlchemy failures onto it.
"""

import asyncio
import logging
import ssl
from typing import Dict, Optional

from fastapi import status
from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    InterfaceError,
    NoSuchTableError,
    TimeoutError as PoolTimeoutError,
)

logger = logging.getLogger(__name__)


class EventsError(Exception):
    """Base class for every error surfaced to API callers"""

    code = "INTERNAL_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(EventsError):
    code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input"

    def __init__(
        self, fields: Optional[Dict[str, str]] = None, message: Optional[str] = None
    ) -> None:
        self.fields: Dict[str, str] = dict(fields or {})
        if message is None and self.fields:
            message = "; ".join(f"{path}: {msg}" for path, msg in self.fields.items())
        super().__init__(message)


class NotFoundError(EventsError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Event not found"


class ConfigurationError(EventsError):
    code = "CONFIGURATION_ERROR"
    default_message = (
        "DATABASE_URL environment variable is not set. Please configure your "
        "database connection in your environment variables."
    )


class ConnectivityError(EventsError):
    code = "DATABASE_ERROR"
    default_message = (
        "Database connection failed. Please check: 1) DATABASE_URL is correct, "
        "2) the database server is running and reachable, 3) SSL is properly "
        "configured if required, 4) network/firewall allows connections."
    )


class AuthenticationError(ConnectivityError):
    default_message = (
        "Database authentication failed. Please verify the credentials and "
        "privileges of the DATABASE_URL user."
    )


class SchemaDriftError(EventsError):
    code = "SCHEMA_ERROR"
    default_message = (
        "Database schema does not match the application. Please run migrations: "
        "alembic upgrade head"
    )


class QueryTimeoutError(EventsError):
    code = "TIMEOUT"
    default_message = "Database query timed out; the outcome is unknown"


class InternalError(EventsError):
    pass


class PersistenceError(InternalError):
    default_message = "Failed to persist event: no data returned"


MIGRATION_HINT = "Please run migrations: alembic upgrade head"

# PostgreSQL SQLSTATE codes
UNDEFINED_TABLE = "42P01"
UNDEFINED_COLUMN = "42703"
INSUFFICIENT_PRIVILEGE = "42501"
CONNECTIVITY_SQLSTATES = {"53300", "57P01", "57P02", "57P03"}

# Message fragments consulted only when the driver exposes no SQLSTATE
CONNECTION_MARKERS = (
    "database_url",
    "connection",
    "connect",
    "timeout",
    "etimedout",
    "ssl",
    "certificate",
)
PERMISSION_MARKERS = ("permission", "access denied", "authentication")


def _sqlstate(exc: BaseException) -> Optional[str]:
    """Extract a SQLSTATE from a SQLAlchemy wrapper or a raw driver error"""
    candidates = [exc]
    orig = getattr(exc, "orig", None)
    if orig is not None:
        candidates.append(orig)
        cause = getattr(orig, "__cause__", None)
        if cause is not None:
            candidates.append(cause)
    for candidate in candidates:
        for attr in ("sqlstate", "pgcode"):
            code = getattr(candidate, attr, None)
            if isinstance(code, str) and code:
                return code
    return None


def _classify_sqlstate(code: str, detail: str) -> Optional[EventsError]:
    if code == UNDEFINED_TABLE:
        return SchemaDriftError(
            f"Database table 'events' does not exist. {MIGRATION_HINT}"
        )
    if code == UNDEFINED_COLUMN:
        return SchemaDriftError(f"Database column missing: {detail}. {MIGRATION_HINT}")
    if code.startswith("28") or code == INSUFFICIENT_PRIVILEGE:
        return AuthenticationError()
    if code.startswith("08") or code in CONNECTIVITY_SQLSTATES:
        return ConnectivityError()
    return None


def _classify_message(message: str) -> Optional[EventsError]:
    if "no such table" in message or (
        "does not exist" in message and "table" in message
    ):
        return SchemaDriftError(
            f"Database table 'events' does not exist. {MIGRATION_HINT}"
        )
    if "no such column" in message or (
        "does not exist" in message and "column" in message
    ):
        return SchemaDriftError(f"Database column missing. {MIGRATION_HINT}")
    if any(marker in message for marker in PERMISSION_MARKERS):
        return AuthenticationError()
    if any(marker in message for marker in CONNECTION_MARKERS):
        return ConnectivityError()
    return None


def classify_store_error(exc: BaseException) -> EventsError:
    """
    Map a raw store failure onto the error taxonomy.

    Structured driver codes are consulted first, then exception types, and
    message inspection only as a last resort for drivers without codes.
    """
    if isinstance(exc, EventsError):
        return exc

    detail = str(getattr(exc, "orig", None) or exc)

    code = _sqlstate(exc)
    if code:
        classified = _classify_sqlstate(code, detail)
        if classified is not None:
            return classified

    if isinstance(exc, NoSuchTableError):
        return SchemaDriftError(
            f"Database table '{exc}' does not exist. {MIGRATION_HINT}"
        )

    raw = getattr(exc, "orig", None) or exc
    if isinstance(
        exc, (DisconnectionError, InterfaceError, PoolTimeoutError)
    ) or isinstance(raw, (ssl.SSLError, OSError, asyncio.TimeoutError)):
        return ConnectivityError()

    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return ConnectivityError()

    if code is None:
        classified = _classify_message(detail.lower())
        if classified is not None:
            return classified

    return InternalError()
