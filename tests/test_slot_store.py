import pytest

from sprechtag.core.errors import NotFound, SlotAlreadyBooked
from sprechtag.database import SessionLocal
from sprechtag.models.slot import Slot, SlotStatus
from sprechtag.models.visitor import VisitorInfo
from sprechtag.schemas.booking import VisitorIn
from sprechtag.services.slot_store import (
    claim_slot,
    generate_slots_for_teacher,
    list_free_slots_for_window,
    pick_preferred_slot,
    release_slot,
)
from sprechtag.services.transitions import try_transition

from helpers import PARENT, fresh


@pytest.fixture
def visitor():
    return VisitorInfo.from_payload(VisitorIn(**PARENT))


def test_try_transition_only_applies_to_expected_state(db, slots):
    slot = slots[0]
    moved = try_transition(db, Slot, slot.id, expected={"booked": False}, patch={"booked": True})
    assert moved is not None and moved.booked
    db.commit()

    assert try_transition(db, Slot, slot.id, expected={"booked": False}, patch={"booked": True}) is None
    assert try_transition(db, Slot, 99999, expected={}, patch={"booked": True}) is None


def test_try_transition_matches_null(db, slots):
    slot = slots[0]
    assert try_transition(db, Slot, slot.id, expected={"verified_at": None}, patch={"message": "x"})


def test_claim_copies_visitor_and_marks_booked(db, slots, visitor):
    slot = claim_slot(db, slots[0].id, visitor, status=SlotStatus.RESERVED)
    db.commit()
    assert slot.booked is True
    assert slot.status == SlotStatus.RESERVED
    assert slot.parent_name == "Eva Schmidt"
    assert slot.email == "eva@example.org"


def test_second_claim_loses(db, slots, visitor):
    claim_slot(db, slots[0].id, visitor, status=SlotStatus.RESERVED)
    db.commit()
    with pytest.raises(SlotAlreadyBooked) as exc:
        claim_slot(db, slots[0].id, visitor, status=SlotStatus.RESERVED)
    assert exc.value.status_code == 409


def test_claim_on_stale_read_loses(db, slots, visitor):
    other = SessionLocal()
    try:
        # both sessions saw the slot free; only the first UPDATE wins
        stale = other.get(Slot, slots[1].id)
        assert stale.booked is False

        claim_slot(db, slots[1].id, visitor, status=SlotStatus.RESERVED)
        db.commit()

        with pytest.raises(SlotAlreadyBooked):
            claim_slot(other, stale.id, visitor, status=SlotStatus.CONFIRMED)
        other.rollback()
    finally:
        other.close()

    slot = fresh(db, Slot, slots[1].id)
    assert slot.status == SlotStatus.RESERVED


def test_claim_is_scoped_to_teacher(db, slots, visitor, teacher):
    with pytest.raises(SlotAlreadyBooked):
        claim_slot(db, slots[0].id, visitor, status=SlotStatus.CONFIRMED, teacher_id=teacher.id + 1)


def test_release_clears_booking(db, slots, visitor):
    claim_slot(db, slots[0].id, visitor, status=SlotStatus.RESERVED,
               patch={"verification_token_hash": "a" * 64})
    db.commit()

    previous, cleared = release_slot(db, slots[0].id)
    db.commit()
    assert previous["email"] == "eva@example.org"
    assert previous["time"] == slots[0].time
    assert cleared.booked is False
    assert cleared.status is None
    assert cleared.email is None
    assert cleared.verification_token_hash is None


def test_release_requires_booked_own_slot(db, slots, visitor, teacher):
    with pytest.raises(NotFound):
        release_slot(db, slots[0].id)

    claim_slot(db, slots[0].id, visitor, status=SlotStatus.RESERVED)
    db.commit()
    with pytest.raises(NotFound):
        release_slot(db, slots[0].id, teacher_id=teacher.id + 1)


def test_free_slots_for_window(db, slots, visitor, teacher, event_date):
    claim_slot(db, slots[0].id, visitor, status=SlotStatus.RESERVED)
    db.commit()

    rows = list_free_slots_for_window(db, teacher.id, event_date, ["16:00 - 16:15", "16:15 - 16:30"])
    assert [r.time for r in rows] == ["16:15 - 16:30"]

    all_free = list_free_slots_for_window(db, teacher.id, event_date, [])
    assert len(all_free) == 7


def test_pick_prefers_order_then_event():
    legacy = Slot(id=1, time="16:00 - 16:15", event_id=None)
    current = Slot(id=2, time="16:00 - 16:15", event_id=5)
    foreign = Slot(id=3, time="16:15 - 16:30", event_id=9)
    rows = [legacy, current, foreign]

    assert pick_preferred_slot(rows, ["16:00 - 16:15"], 5) is current
    assert pick_preferred_slot(rows, ["16:00 - 16:15"], 7) is legacy
    # a slot of another event never serves a request of this event
    assert pick_preferred_slot(rows, ["16:15 - 16:30"], 5) is None
    # without an event: legacy first, otherwise any slot at that time
    assert pick_preferred_slot(rows, ["16:00 - 16:15"], None) is legacy
    assert pick_preferred_slot(rows, ["16:15 - 16:30", "16:00 - 16:15"], None) is foreign


def test_generate_skips_existing_times(db, teacher, event, event_date):
    assert generate_slots_for_teacher(db, teacher, event.id, event_date, 15) == (8, 0)
    db.commit()
    assert generate_slots_for_teacher(db, teacher, event.id, event_date, 15) == (0, 8)
    # legacy scope (no event) is separate
    assert generate_slots_for_teacher(db, teacher, None, event_date, 30, dry_run=True) == (4, 0)
    assert db.query(Slot).count() == 8
