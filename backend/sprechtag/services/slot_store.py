"""Slot Store: the authoritative set of bookable slots.

A slot is free (``booked = false``, no visitor data) or held by exactly one
booking. Claiming requires ``booked = false`` in the UPDATE itself, so of two
concurrent claims exactly one wins and the other gets ``SlotAlreadyBooked``.
"""
import logging
from datetime import datetime

from sqlalchemy.orm import Session

from ..core.errors import NotFound, SlotAlreadyBooked
from ..core.timewindows import slot_times_for_system
from ..models.slot import Slot, SlotStatus
from ..models.teacher import Teacher
from ..models.visitor import VisitorInfo
from .transitions import try_transition

logger = logging.getLogger(__name__)

# verification / notification state that belongs to a booking, not to the slot
BOOKING_STATE_CLEARED = {
    "verification_token_hash": None,
    "verification_sent_at": None,
    "verified_at": None,
    "confirmation_sent_at": None,
}


def claim_slot(
    db: Session,
    slot_id: int,
    visitor: VisitorInfo,
    *,
    status: SlotStatus,
    teacher_id: int | None = None,
    patch: dict | None = None,
    now: datetime | None = None,
) -> Slot:
    """Book a free slot for ``visitor``. Raises ``SlotAlreadyBooked`` on a lost race."""
    expected = {"booked": False}
    if teacher_id is not None:
        expected["teacher_id"] = teacher_id

    values = {
        "booked": True,
        "status": status,
        "cancellation_sent_at": None,
        **visitor.as_columns(),
        **(patch or {}),
    }
    slot = try_transition(db, Slot, slot_id, expected=expected, patch=values, now=now)
    if slot is None:
        raise SlotAlreadyBooked()
    return slot


def release_slot(
    db: Session,
    slot_id: int,
    *,
    teacher_id: int | None = None,
    now: datetime | None = None,
) -> tuple[dict, Slot]:
    """Clear a booking. Scoped to ``teacher_id`` unless called by an admin (``None``).

    Returns ``(previous, cleared)`` where ``previous`` keeps what the
    cancellation mail needs.
    """
    q = db.query(Slot).filter(Slot.id == slot_id, Slot.booked == True)
    if teacher_id is not None:
        q = q.filter(Slot.teacher_id == teacher_id)
    current = q.first()
    if not current:
        raise NotFound("Slot not found, not booked, or not yours")

    previous = {
        "teacher_id": current.teacher_id,
        "date": current.date,
        "time": current.time,
        "email": current.email,
        "verified_at": current.verified_at,
    }

    expected = {"booked": True}
    if teacher_id is not None:
        expected["teacher_id"] = teacher_id
    values = {
        "booked": False,
        "status": None,
        **VisitorInfo.cleared_columns(),
        **BOOKING_STATE_CLEARED,
    }
    cleared = try_transition(db, Slot, slot_id, expected=expected, patch=values, now=now)
    if cleared is None:
        raise NotFound("Slot not found, not booked, or not yours")
    return previous, cleared


def list_free_slots_for_window(
    db: Session, teacher_id: int, date: str, candidate_times: list[str], limit: int = 50
) -> list[Slot]:
    """Free slots of a teacher on ``date``; restricted to ``candidate_times`` when given."""
    q = db.query(Slot).filter(
        Slot.teacher_id == teacher_id,
        Slot.date == date,
        Slot.booked == False,
    )
    if candidate_times:
        q = q.filter(Slot.time.in_(candidate_times))
    return q.order_by(Slot.time.asc(), Slot.id.asc()).limit(limit).all()


def pick_preferred_slot(rows: list[Slot], ordered_times: list[str], event_id: int | None) -> Slot | None:
    """First time in preference order wins; per time, the request's own event
    beats a legacy slot without event."""
    for t in ordered_times:
        at_time = [r for r in rows if r.time == t]
        if not at_time:
            continue
        if event_id is not None:
            for r in at_time:
                if r.event_id == event_id:
                    return r
            for r in at_time:
                if r.event_id is None:
                    return r
            continue

        for r in at_time:
            if r.event_id is None:
                return r
        return at_time[0]
    return None


def generate_slots_for_teacher(
    db: Session,
    teacher: Teacher,
    event_id: int | None,
    date: str,
    slot_minutes: int = 15,
    dry_run: bool = False,
) -> tuple[int, int]:
    """Create the teacher's day of slots, skipping times that already exist in
    the same (teacher, date, event) scope. Returns ``(created, skipped)``."""
    times = slot_times_for_system(teacher.system, slot_minutes)

    q = db.query(Slot.time).filter(Slot.teacher_id == teacher.id, Slot.date == date)
    if event_id is None:
        q = q.filter(Slot.event_id.is_(None))
    else:
        q = q.filter(Slot.event_id == event_id)
    existing = {row[0] for row in q.all()}

    to_insert = [
        Slot(teacher_id=teacher.id, event_id=event_id, date=date, time=t, booked=False)
        for t in times
        if t not in existing
    ]
    skipped = len(times) - len(to_insert)
    if to_insert and not dry_run:
        db.add_all(to_insert)
        db.flush()
    return len(to_insert), skipped


def list_bookings(db: Session, teacher_id: int | None = None) -> list[tuple[Slot, Teacher]]:
    q = (
        db.query(Slot, Teacher)
        .outerjoin(Teacher, Slot.teacher_id == Teacher.id)
        .filter(Slot.booked == True)
    )
    if teacher_id is not None:
        q = q.filter(Slot.teacher_id == teacher_id)
    return q.order_by(Slot.date.asc(), Slot.time.asc()).all()
