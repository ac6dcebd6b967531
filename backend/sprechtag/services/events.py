import logging
from datetime import datetime

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..config import settings
from ..core.clock import utcnow
from ..core.errors import BookingsClosed
from ..core.timewindows import format_date_de, normalize_slot_minutes
from ..models.event import Event, EventStatus
from ..models.settings import AppSettings
from ..models.slot import Slot, SlotStatus

logger = logging.getLogger(__name__)


def get_active_event(db: Session, now: datetime | None = None) -> Event | None:
    """Published event whose booking window contains ``now`` (unbounded sides allowed).

    If several match, the one starting last wins.
    """
    now = now or utcnow()
    return (
        db.query(Event)
        .filter(
            Event.status == EventStatus.PUBLISHED,
            or_(Event.booking_opens_at.is_(None), Event.booking_opens_at <= now),
            or_(Event.booking_closes_at.is_(None), Event.booking_closes_at >= now),
        )
        .order_by(Event.starts_at.desc())
        .first()
    )


def require_active_event(db: Session, now: datetime | None = None) -> Event:
    event = get_active_event(db, now)
    if not event:
        raise BookingsClosed()
    return event


def upcoming_events(db: Session, now: datetime | None = None, limit: int = 3) -> list[Event]:
    now = now or utcnow()
    return (
        db.query(Event)
        .filter(Event.status == EventStatus.PUBLISHED, Event.starts_at >= now)
        .order_by(Event.starts_at.asc())
        .limit(limit)
        .all()
    )


def event_date(event: Event | None) -> str | None:
    return format_date_de(event.starts_at) if event else None


def slot_minutes_for(event: Event | None) -> int:
    default = normalize_slot_minutes(settings.DEFAULT_SLOT_MINUTES)
    if event is None:
        return default
    return normalize_slot_minutes(event.slot_minutes, default)


def resolve_slot_target(db: Session, now: datetime | None = None) -> tuple[Event | None, str]:
    """Where new teacher slots go: active event, else newest event,
    else the date in settings, else today."""
    event = get_active_event(db, now)
    if event is None:
        event = db.query(Event).order_by(Event.starts_at.desc()).first()
    if event is not None:
        return event, event_date(event)

    row = db.get(AppSettings, 1)
    if row and row.event_date:
        return None, format_date_de(row.event_date)

    return None, format_date_de(now or utcnow())


def event_stats(db: Session, event_id: int) -> dict:
    def count(*conds) -> int:
        return db.query(func.count(Slot.id)).filter(Slot.event_id == event_id, *conds).scalar() or 0

    return {
        "eventId": event_id,
        "totalSlots": count(),
        "availableSlots": count(Slot.booked == False),
        "bookedSlots": count(Slot.booked == True),
        "reservedSlots": count(Slot.status == SlotStatus.RESERVED),
        "confirmedSlots": count(Slot.status == SlotStatus.CONFIRMED),
    }
