import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from ..core.clock import utcnow
from ..database import Base, str_enum
from .visitor import VisitorColumns


class RequestStatus(str, enum.Enum):
    REQUESTED = "requested"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class BookingRequest(VisitorColumns, Base):
    __tablename__ = "booking_requests"

    id = Column(Integer, primary_key=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="SET NULL"), nullable=True)
    teacher_id = Column(Integer, ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False)
    requested_time = Column(String(16), nullable=False)   # HH:MM - HH:MM window
    date = Column(String(10), nullable=False)

    status = Column(str_enum(RequestStatus), nullable=False, default=RequestStatus.REQUESTED)

    verification_token_hash = Column(String(64), nullable=True, index=True)
    verification_sent_at = Column(DateTime, nullable=True)
    verified_at = Column(DateTime, nullable=True)
    confirmation_sent_at = Column(DateTime, nullable=True)
    assigned_slot_id = Column(Integer, ForeignKey("slots.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    assigned_slot = relationship("Slot", foreign_keys=[assigned_slot_id])
