import pytest
from sqlalchemy.exc import OperationalError

from sprechtag.core.errors import (
    InvalidTimeSelection,
    NoSlotAvailable,
    RequestNotPendingAnymore,
)
from sprechtag.models.booking_request import BookingRequest, RequestStatus
from sprechtag.models.slot import Slot, SlotStatus
from sprechtag.models.visitor import VisitorInfo
from sprechtag.schemas.booking import VisitorIn
from sprechtag.services import assignment, notifications
from sprechtag.services.assignment import assign_request
from sprechtag.services.booking_requests import accept_request, decline_request
from sprechtag.services.slot_store import claim_slot

from helpers import PARENT, fresh


def test_accept_assigns_first_candidate(db, teacher, slots, make_request, outbox):
    row, _ = make_request("16:00 - 16:30")
    accepted, assigned = accept_request(db, row.id, teacher.id)

    slot = assigned[0]
    assert slot.time == "16:00 - 16:15"
    assert slot.booked is True
    assert slot.status == SlotStatus.CONFIRMED
    assert slot.parent_name == "Eva Schmidt"
    assert slot.verified_at == row.verified_at
    assert slot.verification_token_hash is None
    assert accepted.assigned_slot_id == slot.id

    # confirmation went out and is stamped on both rows
    assert len(outbox) == 1
    assert "angenommen" in outbox[0][2]
    assert fresh(db, Slot, slot.id).confirmation_sent_at is not None
    assert fresh(db, BookingRequest, row.id).confirmation_sent_at is not None


def test_same_window_fills_up_then_runs_out(db, teacher, slots, make_request):
    times = []
    for i in range(2):
        row, _ = make_request("16:00 - 16:30", email=f"eltern{i}@example.org")
        _, assigned = accept_request(db, row.id, teacher.id)
        times.append(assigned[0].time)
    assert times == ["16:00 - 16:15", "16:15 - 16:30"]

    row, _ = make_request("16:00 - 16:30", email="spaet@example.org")
    with pytest.raises(NoSlotAvailable) as exc:
        accept_request(db, row.id, teacher.id)
    details = exc.value.details
    assert details["candidateTimes"] == ["16:00 - 16:15", "16:15 - 16:30"]
    assert details["matchingSlotsFound"] == 0
    assert fresh(db, BookingRequest, row.id).status == RequestStatus.REQUESTED


def test_teacher_may_choose_the_time(db, teacher, slots, make_request):
    row, _ = make_request("16:00 - 16:30")
    _, assigned = accept_request(db, row.id, teacher.id, times=["16:15 - 16:30"])
    assert assigned[0].time == "16:15 - 16:30"


def test_invalid_time_lists_assignable_times(db, teacher, slots, make_request):
    row, _ = make_request("16:30 - 17:00")
    with pytest.raises(InvalidTimeSelection) as exc:
        accept_request(db, row.id, teacher.id, times=["gleich"])
    assert exc.value.details == {"assignableTimes": ["16:30 - 16:45", "16:45 - 17:00"]}
    assert exc.value.status_code == 400


def test_no_slots_generated(db, teacher, event, make_request):
    row, _ = make_request()
    with pytest.raises(NoSlotAvailable) as exc:
        accept_request(db, row.id, teacher.id)
    assert exc.value.details["requestEventId"] == event.id


def test_event_slot_beats_legacy_slot(db, teacher, event, event_date, make_request):
    legacy = Slot(teacher_id=teacher.id, event_id=None, date=event_date, time="16:00 - 16:15")
    db.add(legacy)
    db.commit()
    current = Slot(teacher_id=teacher.id, event_id=event.id, date=event_date, time="16:00 - 16:15")
    db.add(current)
    db.commit()

    row, _ = make_request()
    _, assigned = accept_request(db, row.id, teacher.id)
    assert assigned[0].id == current.id

    # the legacy slot still serves the next request, keeping the event id
    row, _ = make_request(email="zweite@example.org")
    _, assigned = accept_request(db, row.id, teacher.id)
    assert assigned[0].id == legacy.id
    assert assigned[0].event_id == event.id


def test_multi_slot_skips_taken_times(db, teacher, slots, make_request, outbox):
    taken = next(s for s in slots if s.time == "16:15 - 16:30")
    claim_slot(db, taken.id, VisitorInfo.from_payload(VisitorIn(**PARENT)), status=SlotStatus.RESERVED)
    db.commit()

    row, _ = make_request("16:00 - 16:30")
    accepted, assigned = accept_request(
        db, row.id, teacher.id,
        times=["16:00 - 16:15", "16:15 - 16:30", "16:30 - 16:45"],
        teacher_message="Bitte Zeugnis mitbringen",
    )
    assert accepted.status == RequestStatus.ACCEPTED
    assert [s.time for s in assigned] == ["16:00 - 16:15", "16:30 - 16:45"]
    assert accepted.assigned_slot_id == assigned[0].id

    assert len(outbox) == 1
    subject, text = outbox[0][1], outbox[0][2]
    assert "2 Termine" in subject
    assert "Bitte Zeugnis mitbringen" in text


def test_claimed_slot_survives_a_lost_request_transition(db, teacher, slots, make_request):
    row, _ = make_request()
    stale = db.get(BookingRequest, row.id)
    decline_request(db, row.id, teacher.id)

    with pytest.raises(RequestNotPendingAnymore):
        assign_request(db, stale, teacher.id, now=stale.created_at)

    taken = db.query(Slot).filter(Slot.booked == True).all()
    assert [s.time for s in taken] == ["16:00 - 16:15"]
    assert fresh(db, BookingRequest, row.id).status == RequestStatus.DECLINED


def test_accept_survives_mail_failure(db, teacher, slots, make_request, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("gmail down")

    monkeypatch.setattr(notifications, "send_mail", broken)
    row, _ = make_request()
    accepted, assigned = accept_request(db, row.id, teacher.id)
    assert accepted.status == RequestStatus.ACCEPTED
    assert fresh(db, Slot, assigned[0].id).confirmation_sent_at is None
    assert fresh(db, BookingRequest, row.id).confirmation_sent_at is None


def test_multi_slot_accept_survives_a_crashing_extra_slot(db, teacher, slots, make_request, outbox, monkeypatch):
    def crash(*args, **kwargs):
        raise OperationalError("UPDATE slots", {}, Exception("database is locked"))

    monkeypatch.setattr(assignment, "assign_extra_slot", crash)
    row, _ = make_request("16:00 - 16:30")
    accepted, assigned = accept_request(db, row.id, teacher.id, times=["16:00 - 16:15", "16:15 - 16:30"])

    assert accepted.status == RequestStatus.ACCEPTED
    assert [s.time for s in assigned] == ["16:00 - 16:15"]
    assert len(outbox) == 1
    assert fresh(db, BookingRequest, row.id).confirmation_sent_at is not None
    assert fresh(db, Slot, assigned[0].id).confirmation_sent_at is not None
