import enum

from sqlalchemy import Column, Integer, String, DateTime
from ..core.clock import utcnow
from ..database import Base, str_enum


class EventStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    CLOSED = "closed"


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    school_year = Column(String(16), nullable=False)
    starts_at = Column(DateTime, nullable=False)
    ends_at = Column(DateTime, nullable=False)
    timezone = Column(String(64), nullable=False, default="Europe/Berlin")
    status = Column(str_enum(EventStatus), nullable=False, default=EventStatus.DRAFT)
    booking_opens_at = Column(DateTime, nullable=True)
    booking_closes_at = Column(DateTime, nullable=True)
    # granularity the event's slots were generated with
    slot_minutes = Column(Integer, nullable=False, default=15)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
