"""
Tests for the booking transition table and its guards (no database).
"""

import pytest

from booking_engine.core.errors import IllegalTransition, PermissionDenied, ReasonRequired
from booking_engine.core.security import Identity
from booking_engine.models.booking import Booking, BookingStatus
from booking_engine.services import state_machine
from booking_engine.services.state_machine import BookingEvent

from conftest import ADMIN, ALICE, BOB


def make_booking(status=BookingStatus.PENDING, **kwargs) -> Booking:
    kwargs.setdefault("user_id", ALICE.subject)
    return Booking(id=1, status=status, **kwargs)


@pytest.mark.parametrize(
    "source,event,target",
    [
        (BookingStatus.PENDING, BookingEvent.CONFIRM, BookingStatus.CONFIRMED),
        (BookingStatus.PENDING, BookingEvent.REJECT, BookingStatus.REJECTED),
        (BookingStatus.PENDING, BookingEvent.REQUEST_CANCEL, BookingStatus.CANCEL_REQUEST),
        (BookingStatus.CONFIRMED, BookingEvent.REQUEST_CANCEL, BookingStatus.CANCEL_REQUEST),
        (BookingStatus.CANCEL_REQUEST, BookingEvent.APPROVE_CANCEL, BookingStatus.CANCELLED),
        (BookingStatus.CONFIRMED, BookingEvent.COMPLETE, BookingStatus.COMPLETED),
        (BookingStatus.REJECTED, BookingEvent.PURGE, BookingStatus.DELETED),
        (BookingStatus.CANCELLED, BookingEvent.PURGE, BookingStatus.DELETED),
    ],
)
def test_allowed_transitions(source, event, target):
    assert state_machine.lookup(source, event).target is target


@pytest.mark.parametrize(
    "source,event",
    [
        (BookingStatus.PENDING, BookingEvent.COMPLETE),
        (BookingStatus.PENDING, BookingEvent.PURGE),
        (BookingStatus.CONFIRMED, BookingEvent.CONFIRM),
        (BookingStatus.CONFIRMED, BookingEvent.REJECT),
        (BookingStatus.REJECTED, BookingEvent.CONFIRM),
        (BookingStatus.CANCELLED, BookingEvent.REQUEST_CANCEL),
        (BookingStatus.COMPLETED, BookingEvent.REQUEST_CANCEL),
        (BookingStatus.COMPLETED, BookingEvent.PURGE),
        (BookingStatus.DELETED, BookingEvent.PURGE),
        (BookingStatus.CANCEL_REQUEST, BookingEvent.COMPLETE),
    ],
)
def test_illegal_transitions(source, event):
    with pytest.raises(IllegalTransition):
        state_machine.lookup(source, event)


def test_terminal_statuses_have_no_way_out():
    for status in state_machine.TERMINAL_STATUSES:
        for event in BookingEvent:
            assert (status, event) not in state_machine.TRANSITIONS


def test_only_rejections_and_approved_cancellations_release_seats():
    releasing = {(t.source, t.event) for t in state_machine.TRANSITIONS.values() if t.releases_seats}
    assert releasing == {
        (BookingStatus.PENDING, BookingEvent.REJECT),
        (BookingStatus.CANCEL_REQUEST, BookingEvent.APPROVE_CANCEL),
    }


def test_admin_events_refuse_holders():
    transition = state_machine.lookup(BookingStatus.PENDING, BookingEvent.CONFIRM)
    with pytest.raises(PermissionDenied):
        state_machine.check_guards(transition, make_booking(), ALICE, None)
    state_machine.check_guards(transition, make_booking(), ADMIN, None)


def test_cancel_request_is_holder_only():
    transition = state_machine.lookup(BookingStatus.CONFIRMED, BookingEvent.REQUEST_CANCEL)
    booking = make_booking(BookingStatus.CONFIRMED)

    state_machine.check_guards(transition, booking, ALICE, None)
    with pytest.raises(PermissionDenied):
        state_machine.check_guards(transition, booking, BOB, None)
    with pytest.raises(PermissionDenied):
        state_machine.check_guards(transition, booking, ADMIN, None)


def test_guest_holder_matches_on_token():
    booking = make_booking(user_id=None, guest_token="guest-secret")
    assert state_machine.is_holder(booking, Identity(guest_token="guest-secret"))
    assert not state_machine.is_holder(booking, Identity(guest_token="other"))
    assert not state_machine.is_holder(booking, Identity())


@pytest.mark.parametrize("reason", [None, "", "   "])
def test_reject_requires_reason(reason):
    transition = state_machine.lookup(BookingStatus.PENDING, BookingEvent.REJECT)
    with pytest.raises(ReasonRequired):
        state_machine.check_guards(transition, make_booking(), ADMIN, reason)


def test_reject_cancel_restores_prior_status():
    transition = state_machine.lookup(BookingStatus.CANCEL_REQUEST, BookingEvent.REJECT_CANCEL)
    booking = make_booking(BookingStatus.CANCEL_REQUEST, status_before_cancel=BookingStatus.PENDING)

    assert state_machine.resolve_target(transition, booking, True) is BookingStatus.PENDING
    assert state_machine.resolve_target(transition, booking, False) is BookingStatus.CONFIRMED


def test_reject_cancel_without_recorded_prior_status_confirms():
    transition = state_machine.lookup(BookingStatus.CANCEL_REQUEST, BookingEvent.REJECT_CANCEL)
    booking = make_booking(BookingStatus.CANCEL_REQUEST)
    assert state_machine.resolve_target(transition, booking, True) is BookingStatus.CONFIRMED
