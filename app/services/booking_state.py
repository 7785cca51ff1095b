"""
Booking status state machine.

    Pending -> Confirmed -> InProgress -> Completed
    any non-terminal state -> Cancelled
    any non-terminal state -> Completed

The functions here only look at the values they are given, so the rules can
be checked without a database session.
"""

from datetime import date, datetime
from typing import Dict, FrozenSet, Optional

from app.core.exceptions import BookingNotCancellable, CancellationReasonRequired, InvalidStatusTransition
from app.models.booking import BookingStatus

TERMINAL_STATUSES: FrozenSet[BookingStatus] = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})

ALLOWED_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.COMPLETED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED, BookingStatus.COMPLETED}),
    BookingStatus.IN_PROGRESS: frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}


def is_terminal(status: BookingStatus) -> bool:
    return status in TERMINAL_STATUSES


def is_past(booking_date: date, today: date) -> bool:
    return booking_date < today


def can_be_cancelled(booking, today: date) -> bool:
    return not is_terminal(booking.booking_status) and not is_past(booking.booking_date, today)


def ensure_cancellable(booking, today: date) -> None:
    if not can_be_cancelled(booking, today):
        raise BookingNotCancellable()


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def check_transition(current: BookingStatus, target: BookingStatus) -> None:
    if not can_transition(current, target):
        raise InvalidStatusTransition(
            f"Cannot change booking status from {current.value} to {target.value}"
        )


def apply_transition(booking, target: BookingStatus, now: datetime, reason: Optional[str] = None) -> None:
    """Move ``booking`` to ``target`` and stamp the matching timestamp.

    Cancelling frees the booking's capacity slot for the date. The date is
    not checked here, so admins may still cancel past bookings.
    """
    if target == BookingStatus.CANCELLED and is_terminal(booking.booking_status):
        raise BookingNotCancellable()
    check_transition(booking.booking_status, target)

    if target == BookingStatus.CANCELLED:
        if not reason or not reason.strip():
            raise CancellationReasonRequired()
        booking.cancelled_at = now
        booking.cancellation_reason = reason.strip()
        booking.capacity_slot = None
    elif target == BookingStatus.CONFIRMED:
        booking.confirmed_at = now
    elif target == BookingStatus.COMPLETED:
        booking.completed_at = now

    booking.booking_status = target
