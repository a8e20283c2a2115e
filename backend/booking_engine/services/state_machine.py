"""
Booking state machine: the transition table and its guards.

Pure logic, no I/O. `booking_service.apply_transition` is the only caller; it
persists the resulting status and runs the side effects this module names.

    PENDING         --CONFIRM-------->  CONFIRMED
    PENDING         --REJECT(r)------>  REJECTED        release seats
    PENDING         --REQUEST_CANCEL->  CANCEL_REQUEST
    CONFIRMED       --REQUEST_CANCEL->  CANCEL_REQUEST
    CANCEL_REQUEST  --APPROVE_CANCEL->  CANCELLED       release seats
    CANCEL_REQUEST  --REJECT_CANCEL(r)> prior status (or CONFIRMED)
    CONFIRMED       --COMPLETE------->  COMPLETED
    REJECTED        --PURGE---------->  DELETED
    CANCELLED       --PURGE---------->  DELETED
"""

import enum
from dataclasses import dataclass
from typing import Optional

from booking_engine.core.errors import IllegalTransition, PermissionDenied, ReasonRequired
from booking_engine.core.security import Identity
from booking_engine.models.booking import Booking, BookingStatus


class BookingEvent(str, enum.Enum):
    CONFIRM = "CONFIRM"
    REJECT = "REJECT"
    REQUEST_CANCEL = "REQUEST_CANCEL"
    APPROVE_CANCEL = "APPROVE_CANCEL"
    REJECT_CANCEL = "REJECT_CANCEL"
    COMPLETE = "COMPLETE"
    PURGE = "PURGE"


@dataclass(frozen=True)
class Transition:
    source: BookingStatus
    event: BookingEvent
    target: BookingStatus
    releases_seats: bool = False
    admin_only: bool = True
    holder_only: bool = False
    requires_reason: bool = False


_TABLE = [
    Transition(BookingStatus.PENDING, BookingEvent.CONFIRM, BookingStatus.CONFIRMED),
    Transition(
        BookingStatus.PENDING, BookingEvent.REJECT, BookingStatus.REJECTED,
        releases_seats=True, requires_reason=True,
    ),
    Transition(
        BookingStatus.PENDING, BookingEvent.REQUEST_CANCEL, BookingStatus.CANCEL_REQUEST,
        admin_only=False, holder_only=True,
    ),
    Transition(
        BookingStatus.CONFIRMED, BookingEvent.REQUEST_CANCEL, BookingStatus.CANCEL_REQUEST,
        admin_only=False, holder_only=True,
    ),
    Transition(
        BookingStatus.CANCEL_REQUEST, BookingEvent.APPROVE_CANCEL, BookingStatus.CANCELLED,
        releases_seats=True,
    ),
    # Target is resolved against the status held before the request, see resolve_target()
    Transition(
        BookingStatus.CANCEL_REQUEST, BookingEvent.REJECT_CANCEL, BookingStatus.CONFIRMED,
        requires_reason=True,
    ),
    Transition(BookingStatus.CONFIRMED, BookingEvent.COMPLETE, BookingStatus.COMPLETED),
    Transition(BookingStatus.REJECTED, BookingEvent.PURGE, BookingStatus.DELETED),
    Transition(BookingStatus.CANCELLED, BookingEvent.PURGE, BookingStatus.DELETED),
]

TRANSITIONS: dict[tuple[BookingStatus, BookingEvent], Transition] = {
    (t.source, t.event): t for t in _TABLE
}

TERMINAL_STATUSES = frozenset({BookingStatus.DELETED, BookingStatus.COMPLETED})
# Statuses in which the payment sub-state may still change
ACTIVE_STATUSES = frozenset({
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
    BookingStatus.CANCEL_REQUEST,
    BookingStatus.COMPLETED,
})
# Statuses in which a new payment may be initiated
PAYABLE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})


def lookup(current: BookingStatus, event: BookingEvent) -> Transition:
    transition = TRANSITIONS.get((current, event))
    if transition is None:
        raise IllegalTransition(current, event)
    return transition


def is_holder(booking: Booking, identity: Identity) -> bool:
    if booking.user_id is not None:
        return identity.subject is not None and identity.subject == booking.user_id
    return identity.guest_token is not None and identity.guest_token == booking.guest_token


def check_guards(transition: Transition, booking: Booking, identity: Identity, reason: Optional[str]) -> None:
    if transition.admin_only and not identity.is_admin:
        raise PermissionDenied(f"Only administrators can {transition.event.value.lower()} a booking")
    if transition.holder_only and not is_holder(booking, identity):
        raise PermissionDenied("Only the booking holder can request cancellation")
    if transition.requires_reason and not (reason and reason.strip()):
        raise ReasonRequired(transition.event)


def resolve_target(transition: Transition, booking: Booking, restore_prior_status: bool) -> BookingStatus:
    if transition.event is BookingEvent.REJECT_CANCEL and restore_prior_status and booking.status_before_cancel:
        return booking.status_before_cancel
    return transition.target
