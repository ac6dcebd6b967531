import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import require_admin
from ..core.clock import utcnow
from ..core.errors import NotFound, ValidationFailed
from ..core.timewindows import canonical_window
from ..models.event import Event
from ..models.feedback import Feedback
from ..models.settings import AppSettings
from ..models.slot import Slot
from ..models.teacher import Teacher
from ..models.user import Role, User
from ..schemas.admin import (
    AdminUserOut,
    EventIn,
    EventOut,
    EventStatsOut,
    EventUpdateIn,
    FeedbackOut,
    GeneratedSlotsOut,
    GenerateSlotsIn,
    SettingsIn,
    SettingsOut,
    SlotCreateIn,
    SlotUpdateIn,
    TeacherIn,
    TeacherLoginOut,
    TeacherOut,
    UserRoleIn,
)
from ..schemas.booking import SlotOut
from ..services import reservations, teachers
from ..services.events import event_stats
from ..services.slot_store import list_bookings
from .teacher import booking_out

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


# -----------------------------------------------------------------------------
# TEACHERS
# -----------------------------------------------------------------------------
@router.get("/teachers")
def list_teachers(db: Session = Depends(get_db)):
    rows = db.query(Teacher).order_by(Teacher.id.asc()).all()
    return {"teachers": [TeacherOut.model_validate(t) for t in rows]}


@router.post("/teachers")
def create_teacher(payload: TeacherIn, db: Session = Depends(get_db)):
    result = teachers.create_teacher(db, payload)
    result["teacher"] = TeacherOut.model_validate(result["teacher"])
    return {"success": True, **result}


@router.put("/teachers/{teacher_id}")
def update_teacher(teacher_id: int, payload: TeacherIn, db: Session = Depends(get_db)):
    teacher = teachers.update_teacher(db, teacher_id, payload)
    return {"success": True, "teacher": TeacherOut.model_validate(teacher)}


@router.delete("/teachers/{teacher_id}")
def delete_teacher(teacher_id: int, db: Session = Depends(get_db)):
    teachers.delete_teacher(db, teacher_id)
    return {"success": True, "message": "Teacher deleted successfully"}


@router.put("/teachers/{teacher_id}/reset-login")
def reset_login(teacher_id: int, db: Session = Depends(get_db)):
    login = teachers.reset_teacher_login(db, teacher_id)
    return {"success": True, "user": TeacherLoginOut.model_validate(login)}


@router.post("/teachers/{teacher_id}/generate-slots", response_model=GeneratedSlotsOut)
def generate_teacher_slots(teacher_id: int, db: Session = Depends(get_db)):
    teacher = teachers.get_teacher(db, teacher_id)
    result = teachers.generate_slots_for_target(db, teacher)
    db.commit()
    return {"teacherId": teacher_id, **result}


# -----------------------------------------------------------------------------
# SLOTS
# -----------------------------------------------------------------------------
@router.get("/slots")
def list_slots(
    teacher_id: int | None = Query(None, alias="teacherId"),
    event_id: str | None = Query(None, alias="eventId"),
    booked: bool | None = None,
    limit: int = Query(2000, ge=1, le=10000),
    db: Session = Depends(get_db),
):
    q = db.query(Slot)
    if teacher_id is not None:
        q = q.filter(Slot.teacher_id == teacher_id)
    if event_id is not None:
        if event_id == "null":
            q = q.filter(Slot.event_id.is_(None))
        elif event_id.isdigit():
            q = q.filter(Slot.event_id == int(event_id))
        else:
            raise ValidationFailed('eventId must be a number or "null"')
    if booked is not None:
        q = q.filter(Slot.booked == booked)
    rows = q.order_by(Slot.date.asc(), Slot.time.asc()).limit(limit).all()
    return {"slots": [SlotOut.model_validate(s) for s in rows]}


def _slot_fields(payload) -> tuple[str, str]:
    date = (payload.date or "").strip()
    time = canonical_window(payload.time)
    if not date or not time:
        raise ValidationFailed("time and date required")
    return date, time


@router.post("/slots")
def create_slot(payload: SlotCreateIn, db: Session = Depends(get_db)):
    if not payload.teacher_id:
        raise ValidationFailed("teacher_id, time, and date required")
    date, time = _slot_fields(payload)
    teachers.get_teacher(db, payload.teacher_id)
    slot = Slot(teacher_id=payload.teacher_id, event_id=payload.event_id, date=date, time=time, booked=False)
    db.add(slot)
    db.commit()
    db.refresh(slot)
    return {"success": True, "slot": SlotOut.model_validate(slot)}


@router.put("/slots/{slot_id}")
def update_slot(slot_id: int, payload: SlotUpdateIn, db: Session = Depends(get_db)):
    date, time = _slot_fields(payload)
    slot = db.get(Slot, slot_id)
    if not slot:
        raise NotFound("Slot not found")
    slot.date = date
    slot.time = time
    slot.updated_at = utcnow()
    db.commit()
    db.refresh(slot)
    return {"success": True, "slot": SlotOut.model_validate(slot)}


@router.delete("/slots/{slot_id}")
def delete_slot(slot_id: int, db: Session = Depends(get_db)):
    db.query(Slot).filter(Slot.id == slot_id).delete(synchronize_session=False)
    db.commit()
    return {"success": True, "message": "Slot deleted successfully"}


# -----------------------------------------------------------------------------
# BOOKINGS
# -----------------------------------------------------------------------------
@router.get("/bookings")
def all_bookings(db: Session = Depends(get_db)):
    return {"bookings": [booking_out(s, t) for s, t in list_bookings(db)]}


@router.delete("/bookings/{slot_id}")
def cancel_booking(slot_id: int, db: Session = Depends(get_db)):
    slot = reservations.cancel_booking(db, slot_id)
    return {"success": True, "slot": SlotOut.model_validate(slot)}


# -----------------------------------------------------------------------------
# SETTINGS
# -----------------------------------------------------------------------------
@router.get("/settings", response_model=SettingsOut)
def get_settings(db: Session = Depends(get_db)):
    row = db.get(AppSettings, 1)
    if not row:
        return SettingsOut(event_name="BKSB Elternsprechtag", event_date=utcnow().date())
    return row


@router.put("/settings")
def update_settings(payload: SettingsIn, db: Session = Depends(get_db)):
    name = (payload.event_name or "").strip()
    if not name or not payload.event_date:
        raise ValidationFailed("event_name and event_date required")
    row = db.get(AppSettings, 1)
    if not row:
        row = AppSettings(id=1)
        db.add(row)
    row.event_name = name
    row.event_date = payload.event_date
    row.updated_at = utcnow()
    db.commit()
    db.refresh(row)
    return {"success": True, "settings": SettingsOut.model_validate(row)}


# -----------------------------------------------------------------------------
# USERS
# -----------------------------------------------------------------------------
@router.get("/users")
def list_users(db: Session = Depends(get_db)):
    rows = db.query(User).order_by(User.id.asc()).all()
    return {"users": [AdminUserOut.model_validate(u) for u in rows]}


@router.patch("/users/{user_id}")
def update_user_role(
    user_id: int,
    payload: UserRoleIn,
    me: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    role = (payload.role or "").strip()
    if role not in (Role.ADMIN.value, Role.TEACHER.value):
        raise ValidationFailed('role must be "admin" or "teacher"')
    if me.id == user_id and role != Role.ADMIN.value:
        raise ValidationFailed("You cannot remove your own admin role.")

    user = db.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    user.role = Role(role)
    user.updated_at = utcnow()
    db.commit()
    db.refresh(user)
    logger.info("user %s role set to %s by %s", user.username, role, me.username)
    return {"success": True, "user": AdminUserOut.model_validate(user)}


# -----------------------------------------------------------------------------
# EVENTS
# -----------------------------------------------------------------------------
# NOT NULL columns an update may change but never clear
EVENT_REQUIRED_FIELDS = ("name", "school_year", "starts_at", "ends_at", "timezone", "status", "slot_minutes")


def _get_event(db: Session, event_id: int) -> Event:
    event = db.get(Event, event_id)
    if not event:
        raise NotFound("Event not found")
    return event


@router.get("/events")
def list_events(db: Session = Depends(get_db)):
    rows = db.query(Event).order_by(Event.starts_at.desc()).all()
    return {"events": [EventOut.model_validate(e) for e in rows]}


@router.post("/events")
def create_event(payload: EventIn, db: Session = Depends(get_db)):
    if not payload.name or not payload.school_year or not payload.starts_at or not payload.ends_at:
        raise ValidationFailed("name, school_year, starts_at, ends_at required")
    data = payload.model_dump(exclude_none=True)
    event = Event(**data)
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info("event %s created (%s)", event.id, event.name)
    return {"success": True, "event": EventOut.model_validate(event)}


@router.put("/events/{event_id}")
def update_event(event_id: int, payload: EventUpdateIn, db: Session = Depends(get_db)):
    patch = payload.model_dump(exclude_unset=True)
    if not patch:
        raise ValidationFailed("No fields to update")
    cleared = sorted(k for k in EVENT_REQUIRED_FIELDS if k in patch and patch[k] is None)
    if cleared:
        raise ValidationFailed("Pflichtfelder dürfen nicht leer sein", details={"fields": cleared})
    event = _get_event(db, event_id)
    for key, value in patch.items():
        setattr(event, key, value)
    event.updated_at = utcnow()
    db.commit()
    db.refresh(event)
    return {"success": True, "event": EventOut.model_validate(event)}


@router.delete("/events/{event_id}")
def delete_event(event_id: int, db: Session = Depends(get_db)):
    db.query(Event).filter(Event.id == event_id).delete(synchronize_session=False)
    db.commit()
    return {"success": True}


@router.get("/events/{event_id}/stats", response_model=EventStatsOut)
def stats(event_id: int, db: Session = Depends(get_db)):
    _get_event(db, event_id)
    return event_stats(db, event_id)


@router.post("/events/{event_id}/generate-slots", response_model=GeneratedSlotsOut)
def generate_event_slots(event_id: int, payload: GenerateSlotsIn | None = None,
                         db: Session = Depends(get_db)):
    payload = payload or GenerateSlotsIn()
    return teachers.generate_event_slots(
        db,
        event_id,
        slot_minutes=payload.slot_minutes,
        dry_run=payload.dry_run,
        replace_existing=payload.replace_existing,
    )


# -----------------------------------------------------------------------------
# FEEDBACK
# -----------------------------------------------------------------------------
@router.get("/feedback")
def list_feedback(db: Session = Depends(get_db)):
    rows = db.query(Feedback).order_by(Feedback.created_at.desc()).limit(200).all()
    return {"feedback": [FeedbackOut.model_validate(f) for f in rows]}


@router.delete("/feedback/{feedback_id}")
def delete_feedback(feedback_id: int, db: Session = Depends(get_db)):
    deleted = db.query(Feedback).filter(Feedback.id == feedback_id).delete(synchronize_session=False)
    if not deleted:
        raise NotFound("Feedback not found")
    db.commit()
    return {"success": True}
