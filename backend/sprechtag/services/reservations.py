"""Direct reservation of a concrete slot (``reserved -> confirmed``) and cancellation."""
import logging
from datetime import datetime

from sqlalchemy.orm import Session

from ..core.clock import utcnow
from ..core.errors import Conflict, NotFound, NotVerified, SlotAlreadyBooked
from ..core.security import new_verification_token
from ..models.slot import Slot, SlotStatus
from ..models.teacher import Teacher
from ..models.visitor import VisitorInfo
from . import notifications
from .events import require_active_event
from .slot_store import claim_slot, release_slot
from .transitions import try_transition

logger = logging.getLogger(__name__)


def reserve_slot(db: Session, payload, *, now: datetime | None = None) -> tuple[Slot, str]:
    """Claim ``payload.slot_id`` as ``reserved`` for the visitor. Returns ``(slot, token)``."""
    now = now or utcnow()
    event = require_active_event(db, now)
    visitor = VisitorInfo.from_payload(payload)

    slot = db.get(Slot, payload.slot_id) if payload.slot_id else None
    if slot is None:
        raise SlotAlreadyBooked("Slot already booked or not found")
    if slot.event_id is not None and slot.event_id != event.id:
        raise Conflict("Dieser Termin gehört nicht zum aktuell freigegebenen Elternsprechtag")

    token, token_hash = new_verification_token()
    claimed = claim_slot(
        db,
        slot.id,
        visitor,
        status=SlotStatus.RESERVED,
        patch={
            "verification_token_hash": token_hash,
            "verification_sent_at": now,
            "verified_at": None,
            "confirmation_sent_at": None,
        },
        now=now,
    )
    db.commit()
    logger.info("slot %s reserved (teacher %s, %s %s)", claimed.id, claimed.teacher_id, claimed.date, claimed.time)
    return claimed, token


def send_reservation_verification(db: Session, slot: Slot, token: str) -> bool:
    teacher = db.get(Teacher, slot.teacher_id)
    return notifications.send_reservation_verification(slot, teacher, token)


def confirm_reservation(db: Session, slot_id: int, teacher_id: int, *, now: datetime | None = None) -> Slot:
    """Teacher confirms a reserved slot once the visitor verified the address."""
    now = now or utcnow()
    current = (
        db.query(Slot)
        .filter(Slot.id == slot_id, Slot.teacher_id == teacher_id, Slot.booked == True)
        .first()
    )
    if not current:
        raise NotFound("Slot not found or not booked")
    if current.status == SlotStatus.CONFIRMED:
        return current
    if not current.verified_at:
        raise NotVerified(
            "Buchung kann erst bestätigt werden, nachdem die E-Mail-Adresse verifiziert wurde"
        )

    confirmed = try_transition(
        db,
        Slot,
        slot_id,
        expected={"teacher_id": teacher_id, "booked": True, "status": SlotStatus.RESERVED},
        patch={"status": SlotStatus.CONFIRMED},
        now=now,
    )
    if confirmed is None:
        raise NotFound("Slot not found or not booked")
    db.commit()

    if not confirmed.confirmation_sent_at:
        teacher = db.get(Teacher, teacher_id)
        if notifications.send_slot_confirmation(confirmed, teacher):
            confirmed = try_transition(
                db, Slot, slot_id, expected={}, patch={"confirmation_sent_at": now}, now=now
            )
            db.commit()
    return confirmed


def cancel_booking(db: Session, slot_id: int, *, teacher_id: int | None = None,
                   now: datetime | None = None) -> Slot:
    """Release a booked slot; mail the visitor if their address was verified."""
    now = now or utcnow()
    previous, cleared = release_slot(db, slot_id, teacher_id=teacher_id, now=now)
    db.commit()
    logger.info("booking on slot %s cancelled (%s %s)", slot_id, previous["date"], previous["time"])

    if previous["email"] and previous["verified_at"]:
        teacher = db.get(Teacher, previous["teacher_id"])
        if notifications.send_cancellation(previous["email"], previous["date"], previous["time"], teacher):
            cleared = try_transition(
                db, Slot, slot_id, expected={}, patch={"cancellation_sent_at": now}, now=now
            )
            db.commit()
    return cleared
