"""Assignment Resolver: turns a verified booking request into confirmed slot(s).

Two conditional updates, in order: claim the slot (``booked = false``), then
move the request ``requested -> accepted``. If the second one loses, the slot
claimed by the first stays assigned.
"""
import logging
from datetime import datetime

from sqlalchemy.orm import Session

from ..core.clock import utcnow
from ..core.errors import (
    BookingError,
    InvalidTimeSelection,
    NoSlotAvailable,
    RequestNotPendingAnymore,
)
from ..core.timewindows import candidate_times, canonical_window
from ..models.booking_request import BookingRequest, RequestStatus
from ..models.event import Event
from ..models.slot import Slot, SlotStatus
from ..models.teacher import Teacher
from ..models.visitor import VisitorInfo
from . import notifications
from .events import slot_minutes_for
from .slot_store import claim_slot, list_free_slots_for_window, pick_preferred_slot
from .transitions import try_transition

logger = logging.getLogger(__name__)


def _slot_minutes(db: Session, request: BookingRequest) -> int:
    event = db.get(Event, request.event_id) if request.event_id else None
    return slot_minutes_for(event)


def _claim_for_request(db: Session, request: BookingRequest, slot: Slot, teacher_id: int, now) -> Slot:
    """Copy the request's visitor snapshot onto ``slot`` and confirm it."""
    patch = {
        "event_id": request.event_id if request.event_id is not None else slot.event_id,
        "verified_at": request.verified_at,
        "verification_token_hash": None,
        "verification_sent_at": None,
    }
    return claim_slot(
        db,
        slot.id,
        VisitorInfo.from_row(request),
        status=SlotStatus.CONFIRMED,
        teacher_id=teacher_id,
        patch=patch,
        now=now,
    )


def assign_request(
    db: Session,
    request: BookingRequest,
    teacher_id: int,
    *,
    preferred_time: str | None = None,
    teacher_message: str = "",
    notify: bool = True,
    now: datetime | None = None,
) -> tuple[BookingRequest, Slot]:
    """Resolve a request to its best free slot and accept it.

    Raises ``InvalidTimeSelection``, ``NoSlotAvailable``, ``SlotAlreadyBooked``
    or ``RequestNotPendingAnymore``. Commits on success.
    """
    now = now or utcnow()
    slot_minutes = _slot_minutes(db, request)
    candidates = candidate_times(request.requested_time, slot_minutes)

    preferred = (preferred_time or "").strip()
    if preferred:
        preferred = canonical_window(preferred)
        if not preferred:
            raise InvalidTimeSelection(details={"assignableTimes": candidates})

    ordered = [preferred] if preferred else []
    ordered += [t for t in candidates if t not in ordered]

    if not ordered:
        # malformed window and no explicit choice: any free slot on that date
        ordered = [s.time for s in list_free_slots_for_window(db, teacher_id, request.date, [])]
        ordered = list(dict.fromkeys(ordered))
        if not ordered:
            raise NoSlotAvailable()

    rows = list_free_slots_for_window(db, teacher_id, request.date, ordered)
    slot = pick_preferred_slot(rows, ordered, request.event_id)
    if slot is None:
        raise NoSlotAvailable(details={
            "requestEventId": request.event_id,
            "teacherId": teacher_id,
            "date": request.date,
            "requestedTime": request.requested_time,
            "candidateTimes": ordered,
            "matchingSlotsFound": len(rows),
            "matchingEventIds": sorted({r.event_id for r in rows}, key=lambda v: (v is not None, v)),
        })

    claimed = _claim_for_request(db, request, slot, teacher_id, now)
    # the claim is kept even if the request moved on meanwhile
    db.commit()

    accepted = try_transition(
        db,
        BookingRequest,
        request.id,
        expected={"status": RequestStatus.REQUESTED, "teacher_id": teacher_id},
        patch={"status": RequestStatus.ACCEPTED, "assigned_slot_id": claimed.id},
        now=now,
    )
    if accepted is None:
        logger.warning(
            "request %s left pending state while slot %s was claimed for it", request.id, claimed.id
        )
        raise RequestNotPendingAnymore()
    db.commit()
    logger.info("request %s accepted on slot %s (%s %s)", accepted.id, claimed.id, claimed.date, claimed.time)

    if notify:
        send_confirmation(db, accepted, [claimed], teacher_message, now=now)
    return accepted, claimed


def assign_extra_slot(
    db: Session,
    request: BookingRequest,
    teacher_id: int,
    time: str,
    *,
    now: datetime | None = None,
) -> Slot:
    """Book one more slot for an accepted request; the request row is untouched."""
    now = now or utcnow()
    wanted = canonical_window(time)
    if not wanted:
        raise InvalidTimeSelection()

    rows = list_free_slots_for_window(db, teacher_id, request.date, [wanted], limit=10)
    slot = pick_preferred_slot(rows, [wanted], request.event_id)
    if slot is None:
        raise NoSlotAvailable()

    claimed = _claim_for_request(db, request, slot, teacher_id, now)
    db.commit()
    return claimed


def accept_with_slots(
    db: Session,
    request: BookingRequest,
    teacher_id: int,
    times: list[str],
    *,
    teacher_message: str = "",
    now: datetime | None = None,
) -> tuple[BookingRequest, list[Slot]]:
    """The first time drives the request transition; every further time is
    claimed best-effort. Failures there are logged and skipped, nothing is
    rolled back."""
    now = now or utcnow()
    first = times[0] if times else None
    accepted, first_slot = assign_request(
        db,
        request,
        teacher_id,
        preferred_time=first,
        teacher_message=teacher_message,
        notify=False,
        now=now,
    )

    slots = [first_slot]
    for extra in times[1:]:
        try:
            slots.append(assign_extra_slot(db, accepted, teacher_id, extra, now=now))
        except BookingError as e:
            db.rollback()
            logger.warning(
                "multi-slot accept of request %s: could not assign %s (%s)", accepted.id, extra, e.code
            )
        except Exception:
            db.rollback()
            logger.exception("multi-slot accept of request %s: assigning %s crashed", accepted.id, extra)

    if len(slots) < len(times):
        logger.info("request %s accepted with %d of %d requested slots", accepted.id, len(slots), len(times))

    send_confirmation(db, accepted, slots, teacher_message, now=now)
    return accepted, slots


def send_confirmation(
    db: Session,
    request: BookingRequest,
    slots: list[Slot],
    teacher_message: str | None = None,
    *,
    now: datetime | None = None,
) -> bool:
    """Mail the visitor; on success stamp ``confirmation_sent_at`` on slots and request."""
    teacher = db.get(Teacher, request.teacher_id)
    if len(slots) > 1:
        sent = notifications.send_multi_slot_confirmation(slots, teacher, teacher_message)
    else:
        sent = notifications.send_slot_confirmation(slots[0], teacher, teacher_message, from_request=True)
    if not sent:
        return False

    stamp = now or utcnow()
    db.query(Slot).filter(Slot.id.in_([s.id for s in slots])).update(
        {"confirmation_sent_at": stamp}, synchronize_session=False
    )
    db.query(BookingRequest).filter(BookingRequest.id == request.id).update(
        {"confirmation_sent_at": stamp, "updated_at": stamp}, synchronize_session=False
    )
    db.commit()
    return True
