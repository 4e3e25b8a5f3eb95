"""
Declarative base for ORM models and the FastAPI dependency that exposes the
process-wide store handle.
"""

from fastapi import Request
from sqlalchemy.orm import declarative_base

from events_dashboard.core.database_manager import StoreHandle

Base = declarative_base()


def get_store(request: Request) -> StoreHandle:
    """FastAPI dependency returning the store handle built at startup"""
    store: StoreHandle = request.app.state.store
    return store
