from __future__ import annotations
from datetime import date, datetime
from typing import Optional

from pydantic import field_validator

from ..core.clock import to_naive_utc
from ..core.timewindows import ALLOWED_SLOT_MINUTES
from ..models.event import EventStatus
from ..models.user import Role
from .booking import CamelModel


# -----------------------------
# TEACHERS
# -----------------------------

class TeacherIn(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
    salutation: Optional[str] = None
    subject: Optional[str] = None
    system: Optional[str] = None
    room: Optional[str] = None
    # only used on create
    username: Optional[str] = None
    password: Optional[str] = None


class PublicTeacherOut(CamelModel):
    id: int
    name: str
    salutation: Optional[str] = None
    subject: str
    system: str
    room: Optional[str] = None


class TeacherOut(PublicTeacherOut):
    email: Optional[str] = None


class TeacherLoginOut(CamelModel):
    username: str
    temp_password: str


# -----------------------------
# SLOTS / SETTINGS / USERS / FEEDBACK
# -----------------------------

class SlotCreateIn(CamelModel):
    teacher_id: Optional[int] = None
    event_id: Optional[int] = None
    date: Optional[str] = None
    time: Optional[str] = None


class SlotUpdateIn(CamelModel):
    date: Optional[str] = None
    time: Optional[str] = None


class SettingsIn(CamelModel):
    event_name: Optional[str] = None
    event_date: Optional[date] = None


class SettingsOut(CamelModel):
    id: int = 1
    event_name: str
    event_date: Optional[date] = None
    updated_at: Optional[datetime] = None


class UserRoleIn(CamelModel):
    role: Optional[str] = None


class AdminUserOut(CamelModel):
    id: int
    username: str
    role: Role
    teacher_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FeedbackIn(CamelModel):
    message: Optional[str] = None


class FeedbackOut(CamelModel):
    id: int
    message: str
    created_at: datetime


# -----------------------------
# EVENTS
# -----------------------------

class EventUpdateIn(CamelModel):
    name: Optional[str] = None
    school_year: Optional[str] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    timezone: Optional[str] = None
    status: Optional[EventStatus] = None
    booking_opens_at: Optional[datetime] = None
    booking_closes_at: Optional[datetime] = None
    slot_minutes: Optional[int] = None

    @field_validator("starts_at", "ends_at", "booking_opens_at", "booking_closes_at")
    @classmethod
    def _naive_utc(cls, v):
        return to_naive_utc(v)

    @field_validator("slot_minutes")
    @classmethod
    def _allowed_minutes(cls, v):
        if v is not None and v not in ALLOWED_SLOT_MINUTES:
            raise ValueError(f"slotMinutes must be one of {ALLOWED_SLOT_MINUTES}")
        return v


class EventIn(EventUpdateIn):
    status: EventStatus = EventStatus.DRAFT


class EventOut(CamelModel):
    id: int
    name: str
    school_year: str
    starts_at: datetime
    ends_at: datetime
    timezone: str
    status: EventStatus
    booking_opens_at: Optional[datetime] = None
    booking_closes_at: Optional[datetime] = None
    slot_minutes: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class GenerateSlotsIn(CamelModel):
    dry_run: bool = False
    replace_existing: bool = False
    slot_minutes: Optional[int] = None


class EventStatsOut(CamelModel):
    event_id: int
    total_slots: int
    available_slots: int
    booked_slots: int
    reserved_slots: int
    confirmed_slots: int


class GeneratedSlotsOut(CamelModel):
    success: bool = True
    event_id: Optional[int] = None
    event_date: Optional[str] = None
    created: int = 0
    skipped: int = 0
    dry_run: bool = False
    replace_existing: bool = False
    teacher_id: Optional[int] = None


class HealthOut(CamelModel):
    status: str = "ok"
    teacher_count: int
    slot_count: int
    booked_count: int
