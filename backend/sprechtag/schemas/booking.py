from __future__ import annotations
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..models.booking_request import RequestStatus
from ..models.slot import SlotStatus


class CamelModel(BaseModel):
    """The SPA speaks camelCase; Python code uses snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# -----------------------------
# VISITOR INPUT
# -----------------------------

class VisitorIn(CamelModel):
    """Raw visitor fields. Type specific validation happens in ``VisitorInfo.from_payload``."""
    visitor_type: Optional[str] = None
    parent_name: Optional[str] = None
    company_name: Optional[str] = None
    student_name: Optional[str] = None
    trainee_name: Optional[str] = None
    representative_name: Optional[str] = None
    class_name: Optional[str] = None
    email: Optional[str] = None
    message: Optional[str] = None


class ReservationIn(VisitorIn):
    """Direct reservation of a concrete slot."""
    slot_id: Optional[int] = None


class BookingRequestIn(VisitorIn):
    """Request for a half-hour window; the teacher assigns the concrete slot."""
    teacher_id: Optional[int] = None
    requested_time: Optional[str] = None


class AcceptRequestIn(CamelModel):
    time: Optional[str] = None
    times: list[str] = Field(default_factory=list)
    teacher_message: Optional[str] = None

    def requested_times(self) -> list[str]:
        # 'times' wins; 'time' is the single slot form
        picked = [t.strip() for t in self.times if isinstance(t, str) and t.strip()]
        if not picked and self.time and self.time.strip():
            picked = [self.time.strip()]
        return picked


# -----------------------------
# OUTPUT
# -----------------------------

class PublicSlotOut(CamelModel):
    id: int
    event_id: Optional[int] = None
    teacher_id: int
    time: str
    date: str
    booked: bool = False


class SlotOut(CamelModel):
    id: int
    teacher_id: int
    event_id: Optional[int] = None
    date: str
    time: str
    booked: bool
    status: Optional[SlotStatus] = None

    visitor_type: Optional[str] = None
    parent_name: Optional[str] = None
    company_name: Optional[str] = None
    student_name: Optional[str] = None
    trainee_name: Optional[str] = None
    representative_name: Optional[str] = None
    class_name: Optional[str] = None
    email: Optional[str] = None
    message: Optional[str] = None

    verified_at: Optional[datetime] = None
    confirmation_sent_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BookingOut(SlotOut):
    """A booked slot with the teacher's name, for the booking lists."""
    teacher_name: Optional[str] = None
    teacher_subject: Optional[str] = None


class BookingRequestOut(CamelModel):
    id: int
    event_id: Optional[int] = None
    teacher_id: int
    requested_time: str
    date: str
    status: RequestStatus

    visitor_type: Optional[str] = None
    parent_name: Optional[str] = None
    company_name: Optional[str] = None
    student_name: Optional[str] = None
    trainee_name: Optional[str] = None
    representative_name: Optional[str] = None
    class_name: Optional[str] = None
    email: Optional[str] = None
    message: Optional[str] = None

    verified_at: Optional[datetime] = None
    confirmation_sent_at: Optional[datetime] = None
    assigned_slot_id: Optional[int] = None
    created_at: Optional[datetime] = None


class PendingRequestOut(BookingRequestOut):
    assignable_times: list[str] = Field(default_factory=list)
    available_times: list[str] = Field(default_factory=list)


class AcceptRequestOut(CamelModel):
    success: bool = True
    request: BookingRequestOut
    slot: Optional[SlotOut] = None
    slots: list[SlotOut] = Field(default_factory=list)


class VerifyOut(CamelModel):
    success: bool = True
    message: str
    verified_at: Optional[datetime] = None
