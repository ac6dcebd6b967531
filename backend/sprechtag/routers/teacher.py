import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import current_teacher_id, get_current_user
from ..core.clock import utcnow
from ..core.errors import ValidationFailed
from ..core.security import hash_password, verify_password
from ..models.feedback import Feedback
from ..models.slot import Slot
from ..models.user import User
from ..schemas.admin import FeedbackIn, FeedbackOut, TeacherOut
from ..schemas.auth import PasswordChangeIn
from ..schemas.booking import (
    AcceptRequestIn,
    AcceptRequestOut,
    BookingOut,
    BookingRequestOut,
    PendingRequestOut,
    SlotOut,
)
from ..services import booking_requests, reservations
from ..services.slot_store import list_bookings
from ..services.sweeper import sweep_teacher
from ..services.teachers import MIN_PASSWORD_LENGTH, get_teacher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/teacher", tags=["teacher"])

FEEDBACK_MAX = 2000


def booking_out(slot: Slot, teacher) -> BookingOut:
    out = BookingOut.model_validate(slot)
    if teacher is not None:
        out.teacher_name = teacher.name
        out.teacher_subject = teacher.subject
    return out


# -----------------------------------------------------------------------------
# BOOKINGS / SLOTS
# -----------------------------------------------------------------------------
@router.get("/bookings")
def my_bookings(teacher_id: int = Depends(current_teacher_id), db: Session = Depends(get_db)):
    return {"bookings": [booking_out(s, t) for s, t in list_bookings(db, teacher_id)]}


@router.get("/slots")
def my_slots(teacher_id: int = Depends(current_teacher_id), db: Session = Depends(get_db)):
    rows = (
        db.query(Slot)
        .filter(Slot.teacher_id == teacher_id)
        .order_by(Slot.date.asc(), Slot.time.asc())
        .all()
    )
    return {"slots": [SlotOut.model_validate(s) for s in rows]}


@router.delete("/bookings/{slot_id}")
def cancel_booking(slot_id: int, teacher_id: int = Depends(current_teacher_id),
                   db: Session = Depends(get_db)):
    slot = reservations.cancel_booking(db, slot_id, teacher_id=teacher_id)
    return {"success": True, "slot": SlotOut.model_validate(slot)}


@router.put("/bookings/{slot_id}/accept")
def confirm_booking(slot_id: int, teacher_id: int = Depends(current_teacher_id),
                    db: Session = Depends(get_db)):
    slot = reservations.confirm_reservation(db, slot_id, teacher_id)
    return {"success": True, "slot": SlotOut.model_validate(slot)}


# -----------------------------------------------------------------------------
# REQUESTS
# -----------------------------------------------------------------------------
@router.get("/requests")
def pending_requests(teacher_id: int = Depends(current_teacher_id), db: Session = Depends(get_db)):
    # overdue verified requests are resolved before the list is shown
    sweep_teacher(db, teacher_id)
    items = booking_requests.list_pending_requests(db, teacher_id)
    return {
        "requests": [
            PendingRequestOut.model_validate(item["row"]).model_copy(update={
                "assignable_times": item["assignable_times"],
                "available_times": item["available_times"],
            })
            for item in items
        ]
    }


@router.put("/requests/{request_id}/accept", response_model=AcceptRequestOut)
def accept_request(
    request_id: int,
    payload: AcceptRequestIn | None = None,
    teacher_id: int = Depends(current_teacher_id),
    db: Session = Depends(get_db),
):
    payload = payload or AcceptRequestIn()
    row, slots = booking_requests.accept_request(
        db,
        request_id,
        teacher_id,
        times=payload.requested_times(),
        teacher_message=payload.teacher_message,
    )
    slot_out = [SlotOut.model_validate(s) for s in slots]
    return AcceptRequestOut(
        request=BookingRequestOut.model_validate(row),
        slot=slot_out[0] if slot_out else None,
        slots=slot_out,
    )


@router.put("/requests/{request_id}/decline")
def decline_request(request_id: int, teacher_id: int = Depends(current_teacher_id),
                    db: Session = Depends(get_db)):
    row = booking_requests.decline_request(db, request_id, teacher_id)
    return {"success": True, "request": BookingRequestOut.model_validate(row)}


# -----------------------------------------------------------------------------
# ACCOUNT
# -----------------------------------------------------------------------------
@router.get("/info")
def info(teacher_id: int = Depends(current_teacher_id), db: Session = Depends(get_db)):
    return {"teacher": TeacherOut.model_validate(get_teacher(db, teacher_id))}


@router.post("/feedback")
def feedback(payload: FeedbackIn, teacher_id: int = Depends(current_teacher_id),
             db: Session = Depends(get_db)):
    message = (payload.message or "").strip()
    if not message:
        raise ValidationFailed("Bitte eine Nachricht eingeben.")
    if len(message) > FEEDBACK_MAX:
        raise ValidationFailed("Nachricht darf maximal 2000 Zeichen lang sein.")
    # stored anonymously, without the teacher id
    row = Feedback(message=message)
    db.add(row)
    db.commit()
    db.refresh(row)
    return {"success": True, "feedback": FeedbackOut.model_validate(row)}


@router.put("/password")
def change_password(
    payload: PasswordChangeIn,
    teacher_id: int = Depends(current_teacher_id),
    me: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    new_password = (payload.new_password or "").strip()
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed("Neues Passwort muss mindestens 8 Zeichen haben")
    if not payload.current_password or not verify_password(payload.current_password, me.password_hash):
        raise HTTPException(status_code=401, detail="Aktuelles Passwort ist falsch")

    user = db.get(User, me.id)
    user.password_hash = hash_password(new_password)
    user.updated_at = utcnow()
    db.commit()
    logger.info("password changed for %s", user.username)
    return {"success": True, "message": "Passwort erfolgreich geändert"}
