"""Teacher administration: teacher rows, their login user and their slots."""
import logging
import re
from datetime import datetime

from sqlalchemy.orm import Session

from ..config import settings
from ..core.clock import utcnow
from ..core.errors import NotFound, ValidationFailed
from ..core.security import hash_password, temp_password
from ..core.timewindows import format_date_de, normalize_slot_minutes
from ..models.event import Event
from ..models.slot import Slot
from ..models.teacher import Teacher, TeacherSystem
from ..models.user import Role, User
from .events import resolve_slot_target, slot_minutes_for
from .slot_store import generate_slots_for_teacher

logger = logging.getLogger(__name__)

SALUTATIONS = ("Herr", "Frau", "Divers")
MIN_PASSWORD_LENGTH = 8

_UMLAUTS = (("ä", "ae"), ("ö", "oe"), ("ü", "ue"), ("ß", "ss"))


def normalize_teacher_email(raw) -> str:
    email = raw.strip().lower() if isinstance(raw, str) else ""
    domain = re.escape(settings.TEACHER_EMAIL_DOMAIN.lower())
    if not email or not re.fullmatch(rf"[a-z0-9._%+-]+@{domain}", email):
        raise ValidationFailed(
            f"Ungültige E-Mail-Adresse. Sie muss auf @{settings.TEACHER_EMAIL_DOMAIN} enden."
        )
    return email


def normalize_salutation(raw) -> str:
    salutation = raw.strip() if isinstance(raw, str) else ""
    if salutation not in SALUTATIONS:
        raise ValidationFailed("Ungültige Anrede. Erlaubt: Herr, Frau, Divers.")
    return salutation


def teacher_columns(payload) -> dict:
    """Validated column values from a teacher create/update payload."""
    name = (payload.name or "").strip()
    if not name:
        raise ValidationFailed("name required")
    system = payload.system or TeacherSystem.DUAL.value
    if system not in (TeacherSystem.DUAL.value, TeacherSystem.VOLLZEIT.value):
        raise ValidationFailed('system must be "dual" or "vollzeit"')
    room = (payload.room or "").strip()
    return {
        "name": name,
        "email": normalize_teacher_email(payload.email),
        "salutation": normalize_salutation(payload.salutation),
        "subject": payload.subject or "Sprechstunde",
        "system": system,
        "room": room or None,
    }


def derive_username(base: str | None, teacher_id: int) -> str:
    """``"Frau Müller"`` + 7 -> ``"fraumueller7"``."""
    value = (base or "").lower()
    for umlaut, repl in _UMLAUTS:
        value = value.replace(umlaut, repl)
    value = re.sub(r"[^a-z0-9]+", "", value)[:20] or f"teacher{teacher_id}"
    return value if value.endswith(str(teacher_id)) else f"{value}{teacher_id}"


def _initial_password(provided) -> str:
    pw = provided.strip() if isinstance(provided, str) else ""
    return pw if len(pw) >= MIN_PASSWORD_LENGTH else temp_password()


def get_teacher(db: Session, teacher_id: int) -> Teacher:
    teacher = db.get(Teacher, teacher_id)
    if not teacher:
        raise NotFound("Teacher not found")
    return teacher


def generate_slots_for_target(db: Session, teacher: Teacher, now: datetime | None = None) -> dict:
    """Create a teacher's slots on the current slot target (see ``resolve_slot_target``)."""
    event, date = resolve_slot_target(db, now)
    event_id = event.id if event else None
    created, skipped = generate_slots_for_teacher(
        db, teacher, event_id, date, slot_minutes_for(event)
    )
    return {"eventId": event_id, "eventDate": date, "created": created, "skipped": skipped}


def create_teacher(db: Session, payload, *, now: datetime | None = None) -> dict:
    """Teacher row, its day of slots and a login user with a temporary password."""
    teacher = Teacher(**teacher_columns(payload))
    db.add(teacher)
    db.flush()

    generated = generate_slots_for_target(db, teacher, now)

    username = derive_username(payload.username or teacher.name, teacher.id)
    password = _initial_password(payload.password)
    user = db.query(User).filter(User.username == username).first()
    if user is None:
        user = User(username=username)
        db.add(user)
    user.password_hash = hash_password(password)
    user.role = Role.TEACHER
    user.teacher_id = teacher.id
    user.updated_at = now or utcnow()

    db.commit()
    db.refresh(teacher)
    logger.info("teacher %s created with user %s (%d slots)", teacher.id, username, generated["created"])
    return {
        "teacher": teacher,
        "slotsCreated": generated["created"],
        "slotsEventId": generated["eventId"],
        "slotsEventDate": generated["eventDate"],
        "user": {"username": username, "tempPassword": password},
    }


def update_teacher(db: Session, teacher_id: int, payload) -> Teacher:
    values = teacher_columns(payload)
    teacher = get_teacher(db, teacher_id)
    for key, value in values.items():
        setattr(teacher, key, value)
    db.commit()
    db.refresh(teacher)
    return teacher


def delete_teacher(db: Session, teacher_id: int) -> None:
    """Refused while any of the teacher's slots is booked."""
    teacher = get_teacher(db, teacher_id)
    has_booked = (
        db.query(Slot.id).filter(Slot.teacher_id == teacher_id, Slot.booked == True).first()
    )
    if has_booked:
        raise ValidationFailed(
            "Lehrkraft kann nicht gelöscht werden, da noch gebuchte Termine existieren. "
            "Bitte zuerst alle gebuchten Termine stornieren."
        )
    db.query(Slot).filter(Slot.teacher_id == teacher_id).delete(synchronize_session=False)
    db.delete(teacher)
    db.commit()
    logger.info("teacher %s deleted", teacher_id)


def reset_teacher_login(db: Session, teacher_id: int) -> dict:
    user = db.query(User).filter(User.teacher_id == teacher_id).first()
    if not user:
        raise NotFound("Kein Benutzer für diese Lehrkraft gefunden")
    password = temp_password()
    user.password_hash = hash_password(password)
    user.updated_at = utcnow()
    db.commit()
    return {"username": user.username, "tempPassword": password}


def generate_event_slots(
    db: Session,
    event_id: int,
    *,
    slot_minutes=None,
    dry_run: bool = False,
    replace_existing: bool = False,
) -> dict:
    """Create every teacher's slots for one event day.

    ``replace_existing`` first drops the event's free slots on that day; booked
    slots are kept.
    """
    event = db.get(Event, event_id)
    if not event:
        raise NotFound("Event not found")
    date = format_date_de(event.starts_at)
    minutes = normalize_slot_minutes(slot_minutes, slot_minutes_for(event))

    if replace_existing and not dry_run:
        db.query(Slot).filter(
            Slot.event_id == event_id, Slot.date == date, Slot.booked == False
        ).delete(synchronize_session=False)

    created = skipped = 0
    for teacher in db.query(Teacher).order_by(Teacher.id).all():
        c, s = generate_slots_for_teacher(db, teacher, event_id, date, minutes, dry_run=dry_run)
        created += c
        skipped += s

    if not dry_run:
        event.slot_minutes = minutes
        event.updated_at = utcnow()
        db.commit()
    else:
        db.rollback()

    logger.info("event %s: %d slots created, %d skipped (dry_run=%s)", event_id, created, skipped, dry_run)
    return {
        "eventId": event_id,
        "eventDate": date,
        "created": created,
        "skipped": skipped,
        "dryRun": bool(dry_run),
        "replaceExisting": bool(replace_existing),
    }
