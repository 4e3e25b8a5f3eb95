import enum
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from ..database import Base


class EventStatus(str, enum.Enum):
    DRAFT = "draft"
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


JSONColumn = JSON(none_as_null=True).with_variant(
    JSONB(none_as_null=True), "postgresql"
)


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    start_date = Column(DateTime(timezone=True), nullable=False, index=True)
    end_date = Column(DateTime(timezone=True), nullable=False)
    location = Column(String(500), nullable=False)
    category = Column(String(100))
    sub_category = Column(String(100))
    # Stored as a short string rather than a store-level enum
    status = Column(
        String(50),
        nullable=False,
        default=EventStatus.DRAFT.value,
        server_default=EventStatus.DRAFT.value,
        index=True,
    )
    tickets_sold = Column(Integer, default=0, server_default="0")
    total_revenue = Column(Integer, default=0, server_default="0")
    unique_attendees = Column(Integer, default=0, server_default="0")
    image_url = Column(Text)
    logo_url = Column(Text)
    policy = Column(String(255))
    organizer = Column(String(255))
    organizer_logo = Column(Text)
    teams = Column(JSONColumn)
    tags = Column(JSONColumn)
    timezone = Column(String(100), default="GMT-6", server_default="GMT-6")
    # Written by the external NFT minting flow only
    nft_mint_address = Column(String(255))
    created_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True
    )
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (Index("idx_event_status_start_date", "status", "start_date"),)


# Columns the application expects to find on the live table
EXPECTED_COLUMNS = tuple(column.name for column in Event.__table__.columns)
CRITICAL_COLUMNS = ("created_at", "updated_at")
