"""Booking request lifecycle: ``requested -> accepted | declined``.

E-mail verification runs alongside (``verified_at`` NULL -> set, once).
"""
import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from ..config import settings
from ..core.clock import utcnow
from ..core.errors import (
    LinkExpired,
    NotFound,
    NotVerified,
    RequestNotPendingAnymore,
    ValidationFailed,
)
from ..core.security import hash_verification_token, new_verification_token
from ..core.timewindows import candidate_times, requested_windows_for_system
from ..models.booking_request import BookingRequest, RequestStatus
from ..models.event import Event
from ..models.slot import Slot, SlotStatus
from ..models.teacher import Teacher
from ..models.visitor import VisitorInfo
from . import notifications
from .assignment import accept_with_slots, send_confirmation
from .events import event_date, require_active_event, slot_minutes_for
from .transitions import try_transition

logger = logging.getLogger(__name__)

TEACHER_MESSAGE_MAX = 1000

MSG_SLOT_VERIFIED = "E-Mail bestätigt. Wir informieren Sie bei Bestätigung durch die Lehrkraft."
MSG_REQUEST_VERIFIED = (
    "E-Mail bestätigt. Wir informieren Sie, sobald die Lehrkraft Ihnen einen Termin zuweist."
)


def create_booking_request(db: Session, payload, *, now: datetime | None = None) -> tuple[BookingRequest, str]:
    """Validate and store a request. Returns ``(row, token)``; only the token's
    hash is persisted. The caller sends the verification mail."""
    now = now or utcnow()
    event = require_active_event(db, now)

    teacher = db.get(Teacher, payload.teacher_id) if payload.teacher_id else None
    if not teacher:
        raise NotFound("Teacher not found")

    requested_time = (payload.requested_time or "").strip()
    if requested_time not in requested_windows_for_system(teacher.system):
        raise ValidationFailed("requestedTime invalid")

    visitor = VisitorInfo.from_payload(payload)
    token, token_hash = new_verification_token()

    row = BookingRequest(
        event_id=event.id,
        teacher_id=teacher.id,
        requested_time=requested_time,
        date=event_date(event),
        status=RequestStatus.REQUESTED,
        verification_token_hash=token_hash,
        verification_sent_at=now,
        created_at=now,
        updated_at=now,
        **visitor.as_columns(),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("booking request %s created for teacher %s (%s)", row.id, teacher.id, requested_time)
    return row, token


def send_request_verification(db: Session, row: BookingRequest, token: str) -> bool:
    teacher = db.get(Teacher, row.teacher_id)
    return notifications.send_request_verification(row, teacher, token)


def _check_ttl(sent_at: datetime | None, now: datetime, ttl_hours: int) -> None:
    if sent_at and now - sent_at > timedelta(hours=ttl_hours):
        raise LinkExpired()


def _verify_row(db: Session, model, row, now: datetime, ttl_hours: int):
    """Set ``verified_at`` once; a repeat returns the stored timestamp."""
    if row.verified_at:
        return row
    _check_ttl(row.verification_sent_at, now, ttl_hours)
    # the link takes effect once but stays resolvable: the hash is kept, so
    # later clicks find the row and report the first verified_at
    updated = try_transition(
        db,
        model,
        row.id,
        expected={"verified_at": None, "verification_token_hash": row.verification_token_hash},
        patch={"verified_at": now},
        now=now,
    )
    if updated is None:
        # a concurrent verify won; its timestamp is the one to report
        db.rollback()
        updated = db.get(model, row.id, populate_existing=True)
        if updated is None or not updated.verified_at:
            raise NotFound("Ungültiger oder abgelaufener Link")
        return updated
    db.commit()
    return updated


def verify_token(
    db: Session,
    token: str | None,
    *,
    now: datetime | None = None,
    ttl_hours: int | None = None,
) -> tuple[datetime, str]:
    """Verify the e-mail address behind ``token``: reservation slots first, then
    requests. Returns ``(verified_at, message)``.

    Raises ``NotFound`` for an unknown token and ``LinkExpired`` when an
    unverified token is older than the TTL.
    """
    if not token or not isinstance(token, str):
        raise NotFound("Ungültiger oder abgelaufener Link")
    now = now or utcnow()
    ttl = ttl_hours if ttl_hours is not None else settings.VERIFICATION_TOKEN_TTL_HOURS
    token_hash = hash_verification_token(token)

    slot = (
        db.query(Slot)
        .filter(Slot.booked == True, Slot.verification_token_hash == token_hash)
        .first()
    )
    if slot:
        slot = _verify_row(db, Slot, slot, now, ttl)
        if slot.status == SlotStatus.CONFIRMED and not slot.confirmation_sent_at:
            _confirm_slot_after_verify(db, slot, now)
        return slot.verified_at, MSG_SLOT_VERIFIED

    request = (
        db.query(BookingRequest)
        .filter(BookingRequest.verification_token_hash == token_hash)
        .first()
    )
    if not request:
        raise NotFound("Ungültiger oder abgelaufener Link")

    request = _verify_row(db, BookingRequest, request, now, ttl)
    if (
        request.status == RequestStatus.ACCEPTED
        and request.assigned_slot_id
        and not request.confirmation_sent_at
    ):
        assigned = db.get(Slot, request.assigned_slot_id)
        if assigned:
            send_confirmation(db, request, [assigned], now=now)
    return request.verified_at, MSG_REQUEST_VERIFIED


def _confirm_slot_after_verify(db: Session, slot: Slot, now: datetime) -> None:
    teacher = db.get(Teacher, slot.teacher_id)
    if notifications.send_slot_confirmation(slot, teacher):
        db.query(Slot).filter(Slot.id == slot.id).update(
            {"confirmation_sent_at": now, "updated_at": now}, synchronize_session=False
        )
        db.commit()


def get_teacher_request(db: Session, request_id: int, teacher_id: int) -> BookingRequest:
    row = (
        db.query(BookingRequest)
        .filter(BookingRequest.id == request_id, BookingRequest.teacher_id == teacher_id)
        .first()
    )
    if not row:
        raise NotFound("Request not found")
    return row


def accept_request(
    db: Session,
    request_id: int,
    teacher_id: int,
    *,
    times: list[str] | None = None,
    teacher_message: str | None = None,
    now: datetime | None = None,
) -> tuple[BookingRequest, list[Slot]]:
    """Teacher accepts a verified request. An already accepted request is a
    no-op returning ``(row, [])``."""
    row = get_teacher_request(db, request_id, teacher_id)
    if row.status == RequestStatus.ACCEPTED:
        return row, []
    if row.status != RequestStatus.REQUESTED:
        raise RequestNotPendingAnymore("Request is not pending")
    if not row.verified_at:
        raise NotVerified()

    message = (teacher_message or "").strip()
    if len(message) > TEACHER_MESSAGE_MAX:
        raise ValidationFailed("Nachricht der Lehrkraft darf maximal 1000 Zeichen lang sein")

    return accept_with_slots(db, row, teacher_id, list(times or []), teacher_message=message, now=now)


def decline_request(db: Session, request_id: int, teacher_id: int, *, now: datetime | None = None) -> BookingRequest:
    declined = try_transition(
        db,
        BookingRequest,
        request_id,
        expected={"status": RequestStatus.REQUESTED, "teacher_id": teacher_id},
        patch={"status": RequestStatus.DECLINED},
        now=now,
    )
    if declined is None:
        exists = (
            db.query(BookingRequest.id)
            .filter(BookingRequest.id == request_id, BookingRequest.teacher_id == teacher_id)
            .first()
        )
        if not exists:
            raise NotFound("Request not found")
        raise RequestNotPendingAnymore()
    db.commit()
    logger.info("booking request %s declined by teacher %s", request_id, teacher_id)
    return declined


def list_pending_requests(db: Session, teacher_id: int, limit: int = 500) -> list[dict]:
    """Pending requests, newest first, each with the times it may be assigned to
    (``assignable_times``) and the teacher's free slot times that day
    (``available_times``)."""
    rows = (
        db.query(BookingRequest)
        .filter(BookingRequest.teacher_id == teacher_id, BookingRequest.status == RequestStatus.REQUESTED)
        .order_by(BookingRequest.created_at.desc())
        .limit(limit)
        .all()
    )
    dates = {r.date for r in rows if r.date}
    free_by_date: dict[str, list[str]] = {}
    if dates:
        free = (
            db.query(Slot.date, Slot.time)
            .filter(Slot.teacher_id == teacher_id, Slot.booked == False, Slot.date.in_(dates))
            .order_by(Slot.time.asc())
            .limit(3000)
            .all()
        )
        for d, t in free:
            times = free_by_date.setdefault(d, [])
            if t not in times:
                times.append(t)

    out = []
    for r in rows:
        event = db.get(Event, r.event_id) if r.event_id else None
        out.append({
            "row": r,
            "assignable_times": candidate_times(r.requested_time, slot_minutes_for(event)),
            "available_times": free_by_date.get(r.date, []),
        })
    return out
