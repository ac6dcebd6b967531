import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..database import get_db
from ..core.clock import utcnow
from ..core.errors import NotFound
from ..core.timewindows import format_date_de, requested_windows_for_system
from ..models.event import Event
from ..models.slot import Slot
from ..models.teacher import Teacher
from ..schemas.admin import EventOut, HealthOut, PublicTeacherOut
from ..schemas.booking import (
    BookingRequestIn,
    BookingRequestOut,
    PublicSlotOut,
    ReservationIn,
    SlotOut,
    VerifyOut,
)
from ..services import booking_requests, reservations
from ..services.events import get_active_event, upcoming_events

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["public"])


@router.get("/health", response_model=HealthOut)
def health(db: Session = Depends(get_db)):
    return HealthOut(
        teacher_count=db.query(func.count(Teacher.id)).scalar() or 0,
        slot_count=db.query(func.count(Slot.id)).scalar() or 0,
        booked_count=db.query(func.count(Slot.id)).filter(Slot.booked == True).scalar() or 0,
    )


@router.get("/teachers")
def list_teachers(db: Session = Depends(get_db)):
    rows = db.query(Teacher).order_by(Teacher.name.asc(), Teacher.id.asc()).all()
    return {"teachers": [PublicTeacherOut.model_validate(t) for t in rows]}


# -----------------------------------------------------------------------------
# SLOTS: half-hour windows only, occupancy is never exposed here
# -----------------------------------------------------------------------------
@router.get("/slots")
def list_windows(
    teacher_id: int = Query(..., alias="teacherId"),
    event_id: int | None = Query(None, alias="eventId"),
    db: Session = Depends(get_db),
):
    teacher = db.get(Teacher, teacher_id)
    if not teacher:
        raise NotFound("Teacher not found")

    event = db.get(Event, event_id) if event_id is not None else get_active_event(db)
    date = format_date_de(event.starts_at) if event else format_date_de(utcnow())
    windows = requested_windows_for_system(teacher.system)
    return {
        "slots": [
            PublicSlotOut(
                id=i,
                event_id=event.id if event else None,
                teacher_id=teacher.id,
                time=t,
                date=date,
            )
            for i, t in enumerate(windows, start=1)
        ]
    }


# -----------------------------------------------------------------------------
# EVENTS
# -----------------------------------------------------------------------------
@router.get("/events/active")
def active_event(db: Session = Depends(get_db)):
    event = get_active_event(db)
    return {"event": EventOut.model_validate(event) if event else None}


@router.get("/events/upcoming")
def upcoming(db: Session = Depends(get_db)):
    return {"events": [EventOut.model_validate(e) for e in upcoming_events(db, limit=3)]}


# -----------------------------------------------------------------------------
# BOOKING
# -----------------------------------------------------------------------------
@router.post("/bookings")
def reserve(payload: ReservationIn, db: Session = Depends(get_db)):
    slot, token = reservations.reserve_slot(db, payload)
    reservations.send_reservation_verification(db, slot, token)
    return {"success": True, "updatedSlot": SlotOut.model_validate(slot)}


@router.post("/booking-requests")
def create_request(payload: BookingRequestIn, db: Session = Depends(get_db)):
    row, token = booking_requests.create_booking_request(db, payload)
    booking_requests.send_request_verification(db, row, token)
    return {"success": True, "request": BookingRequestOut.model_validate(row)}


@router.get("/bookings/verify/{token}", response_model=VerifyOut)
def verify_path(token: str, db: Session = Depends(get_db)):
    verified_at, message = booking_requests.verify_token(db, token)
    return VerifyOut(message=message, verified_at=verified_at)


@router.get("/verify", response_model=VerifyOut)
def verify_query(token: str | None = None, db: Session = Depends(get_db)):
    verified_at, message = booking_requests.verify_token(db, token)
    return VerifyOut(message=message, verified_at=verified_at)
