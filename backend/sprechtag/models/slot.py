import enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from ..core.clock import utcnow
from ..database import Base, str_enum
from .visitor import VisitorColumns


class SlotStatus(str, enum.Enum):
    RESERVED = "reserved"      # direct reservation, waiting for the teacher
    CONFIRMED = "confirmed"    # confirmed by the teacher (or assigned from a request)


class Slot(VisitorColumns, Base):
    __tablename__ = "slots"

    id = Column(Integer, primary_key=True)
    teacher_id = Column(Integer, ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False)
    # NULL for legacy slots created before events existed
    event_id = Column(Integer, ForeignKey("events.id", ondelete="SET NULL"), nullable=True)
    date = Column(String(10), nullable=False)   # DD.MM.YYYY
    time = Column(String(16), nullable=False)   # HH:MM - HH:MM

    booked = Column(Boolean, nullable=False, default=False)
    status = Column(str_enum(SlotStatus), nullable=True)

    verification_token_hash = Column(String(64), nullable=True, index=True)
    verification_sent_at = Column(DateTime, nullable=True)
    verified_at = Column(DateTime, nullable=True)
    confirmation_sent_at = Column(DateTime, nullable=True)
    cancellation_sent_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    teacher = relationship("Teacher", back_populates="slots")

    __table_args__ = (Index("ix_slots_teacher_date_booked", "teacher_id", "date", "booked"),)
