from datetime import timedelta

import pytest

from sprechtag.core.clock import utcnow
from sprechtag.core.errors import (
    BookingsClosed,
    LinkExpired,
    NotFound,
    NotVerified,
    RequestNotPendingAnymore,
    ValidationFailed,
)
from sprechtag.core.security import hash_verification_token
from sprechtag.models.booking_request import BookingRequest, RequestStatus
from sprechtag.schemas.booking import BookingRequestIn
from sprechtag.services import booking_requests
from sprechtag.services.booking_requests import (
    accept_request,
    create_booking_request,
    decline_request,
    list_pending_requests,
    verify_token,
)

from helpers import PARENT, fresh, token_from


def _payload(teacher_id, requested_time="16:00 - 16:30", **extra):
    return BookingRequestIn(teacher_id=teacher_id, requested_time=requested_time, **{**PARENT, **extra})


# -----------------------------------------------------------------------------
# create
# -----------------------------------------------------------------------------
def test_create_stores_only_the_token_hash(db, teacher, event, event_date):
    row, token = create_booking_request(db, _payload(teacher.id))
    assert row.status == RequestStatus.REQUESTED
    assert row.event_id == event.id
    assert row.date == event_date
    assert row.verified_at is None
    assert row.verification_token_hash == hash_verification_token(token)
    assert token not in (row.verification_token_hash or "")


def test_create_sends_verification_link(db, teacher, event, outbox):
    row, token = create_booking_request(db, _payload(teacher.id))
    assert booking_requests.send_request_verification(db, row, token) is True
    assert len(outbox) == 1
    assert outbox[0][0] == "eva@example.org"
    assert token_from(outbox[0]) == token
    assert "Frau Müller" in outbox[0][2]


def test_create_without_active_event(db, teacher):
    with pytest.raises(BookingsClosed) as exc:
        create_booking_request(db, _payload(teacher.id))
    assert exc.value.code == "BOOKINGS_CLOSED"


def test_create_rejects_unknown_teacher(db, teacher, event):
    with pytest.raises(NotFound):
        create_booking_request(db, _payload(teacher.id + 100))


@pytest.mark.parametrize("window", ["16:15 - 16:45", "19:00 - 19:30", "18:00 - 18:30", ""])
def test_create_rejects_window_outside_teacher_system(db, teacher, event, window):
    # dual teachers take 16:00 to 18:00, on the half hour
    with pytest.raises(ValidationFailed):
        create_booking_request(db, _payload(teacher.id, window))


# -----------------------------------------------------------------------------
# verify
# -----------------------------------------------------------------------------
def test_verify_is_idempotent(db, make_request):
    t0 = utcnow()
    row, token = make_request(verified=False, created_at=t0)

    first, _ = verify_token(db, token, now=t0 + timedelta(minutes=5))
    again, message = verify_token(db, token, now=t0 + timedelta(hours=1))
    assert first == again == t0 + timedelta(minutes=5)
    assert "E-Mail bestätigt" in message
    # the link keeps working after the TTL once it has been used
    late, _ = verify_token(db, token, now=t0 + timedelta(hours=100))
    assert late == first

    # repeated clicks find the row again but write nothing
    stored = fresh(db, BookingRequest, row.id)
    assert stored.verification_token_hash == hash_verification_token(token)
    assert stored.updated_at == first


def test_verify_expires_after_ttl(db, make_request):
    t0 = utcnow()
    _, token = make_request(verified=False, created_at=t0)

    with pytest.raises(LinkExpired) as exc:
        verify_token(db, token, now=t0 + timedelta(hours=72, seconds=1), ttl_hours=72)
    assert exc.value.status_code == 410

    verified_at, _ = verify_token(db, token, now=t0 + timedelta(hours=72) - timedelta(seconds=1), ttl_hours=72)
    assert verified_at is not None


@pytest.mark.parametrize("token", ["0" * 64, "", None])
def test_verify_unknown_token(db, event, token):
    with pytest.raises(NotFound):
        verify_token(db, token)


# -----------------------------------------------------------------------------
# accept / decline
# -----------------------------------------------------------------------------
def test_accept_requires_verified_email(db, teacher, slots, make_request):
    row, _ = make_request(verified=False)
    with pytest.raises(NotVerified) as exc:
        accept_request(db, row.id, teacher.id)
    assert exc.value.code == "NOT_VERIFIED"
    assert fresh(db, BookingRequest, row.id).status == RequestStatus.REQUESTED


def test_accept_twice_is_a_noop(db, teacher, slots, make_request):
    row, _ = make_request()
    accepted, assigned = accept_request(db, row.id, teacher.id)
    assert accepted.status == RequestStatus.ACCEPTED
    assert len(assigned) == 1

    again, none = accept_request(db, row.id, teacher.id)
    assert again.status == RequestStatus.ACCEPTED
    assert none == []
    assert again.assigned_slot_id == assigned[0].id


def test_accepted_request_cannot_be_declined(db, teacher, slots, make_request):
    row, _ = make_request()
    accept_request(db, row.id, teacher.id)
    with pytest.raises(RequestNotPendingAnymore):
        decline_request(db, row.id, teacher.id)


def test_declined_request_is_terminal(db, teacher, slots, make_request):
    row, _ = make_request()
    declined = decline_request(db, row.id, teacher.id)
    assert declined.status == RequestStatus.DECLINED

    with pytest.raises(RequestNotPendingAnymore):
        accept_request(db, row.id, teacher.id)
    with pytest.raises(RequestNotPendingAnymore):
        decline_request(db, row.id, teacher.id)


def test_other_teacher_cannot_touch_request(db, teacher, slots, make_request):
    row, _ = make_request()
    with pytest.raises(NotFound):
        decline_request(db, row.id, teacher.id + 1)
    with pytest.raises(NotFound):
        accept_request(db, row.id, teacher.id + 1)


def test_teacher_message_is_limited(db, teacher, slots, make_request):
    row, _ = make_request()
    with pytest.raises(ValidationFailed):
        accept_request(db, row.id, teacher.id, teacher_message="x" * 1001)


def test_pending_list_shows_assignable_and_free_times(db, teacher, slots, make_request):
    make_request("16:30 - 17:00")
    accepted, _ = make_request("16:00 - 16:30", email="zweite@example.org")
    accept_request(db, accepted.id, teacher.id)

    items = list_pending_requests(db, teacher.id)
    assert len(items) == 1
    item = items[0]
    assert item["row"].requested_time == "16:30 - 17:00"
    assert item["assignable_times"] == ["16:30 - 16:45", "16:45 - 17:00"]
    assert "16:00 - 16:15" not in item["available_times"]
    assert len(item["available_times"]) == 7
