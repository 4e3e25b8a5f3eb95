# Import all models for easier access
from .event import Event, EventStatus  # noqa: F401
