"""
Money-state transitions for payments and their booking.

Every write is a guarded ``UPDATE ... WHERE <expected state>`` so two workers
applying the same processor event cannot both succeed, and ``total_paid`` is
always changed relative to the stored value rather than overwritten from a
possibly stale in-memory copy. Callers own the transaction: they commit after
a transition returns and roll back on ``SettlementConflict``.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import case, update
from sqlalchemy.orm import Session

from app.models.booking import Booking, BookingPaymentStatus, BookingStatus
from app.models.payment import Payment, PaymentStatus, PaymentType, OPEN_PAYMENT_STATUSES, UNSETTLED_PAYMENT_STATUSES

logger = logging.getLogger(__name__)


class SettlementConflict(Exception):
    """The stored state does not allow the transition; nothing may be committed."""


def _guarded(db: Session, statement) -> int:
    result = db.execute(statement.execution_options(synchronize_session=False))
    return result.rowcount


def mark_processing(db: Session, payment: Payment) -> bool:
    return _guarded(db, update(Payment).where(
        Payment.id == payment.id,
        Payment.status.in_((PaymentStatus.PENDING, PaymentStatus.FAILED)),
    ).values(status=PaymentStatus.PROCESSING)) == 1


def mark_cancelled(db: Session, payment: Payment) -> bool:
    return _guarded(db, update(Payment).where(
        Payment.id == payment.id,
        Payment.status.in_(UNSETTLED_PAYMENT_STATUSES),
    ).values(status=PaymentStatus.CANCELLED)) == 1


def mark_failed(db: Session, payment: Payment, reason: str) -> bool:
    return _guarded(db, update(Payment).where(
        Payment.id == payment.id,
        Payment.status.in_(OPEN_PAYMENT_STATUSES),
    ).values(status=PaymentStatus.FAILED, failure_reason=reason)) == 1


def settle_success(db: Session, payment: Payment, charge_id: Optional[str], now: datetime) -> bool:
    """Record a captured payment against its booking.

    Returns False when the payment is already settled one way or another,
    i.e. the event was applied before.
    """
    claimed = _guarded(db, update(Payment).where(
        Payment.id == payment.id,
        Payment.status.in_(UNSETTLED_PAYMENT_STATUSES),
    ).values(
        status=PaymentStatus.SUCCEEDED,
        stripe_charge_id=charge_id,
        paid_at=now,
        failure_reason=None,
    ))
    if not claimed:
        return False

    amount = payment.amount
    credited = _guarded(db, update(Booking).where(
        Booking.id == payment.booking_id,
        Booking.total_paid + amount <= Booking.package_price,
    ).values(total_paid=Booking.total_paid + amount))
    if not credited:
        raise SettlementConflict(
            f"Payment {payment.id} of {amount} would take booking {payment.booking_id} past its package price"
        )

    if payment.payment_type == PaymentType.DEPOSIT:
        # a deposit never downgrades a booking that is already further along
        _guarded(db, update(Booking).where(
            Booking.id == payment.booking_id,
            Booking.payment_status == BookingPaymentStatus.PENDING,
        ).values(payment_status=BookingPaymentStatus.DEPOSIT_PAID))
    else:
        _guarded(db, update(Booking).where(
            Booking.id == payment.booking_id,
        ).values(payment_status=BookingPaymentStatus.FULLY_PAID))

    confirmed = _guarded(db, update(Booking).where(
        Booking.id == payment.booking_id,
        Booking.booking_status == BookingStatus.PENDING,
    ).values(booking_status=BookingStatus.CONFIRMED, confirmed_at=now))
    if confirmed:
        logger.info("Booking %s confirmed by %s payment %s", payment.booking_id, payment.payment_type.value, payment.id)
    return True


def settle_refund(
    db: Session,
    payment: Payment,
    refunded_amount: Decimal,
    now: datetime,
    refund_id: Optional[str] = None,
) -> bool:
    """Mark a succeeded payment refunded and take the money off the booking.

    Returns False when the payment is not (or no longer) in Succeeded.
    """
    refunded_amount = min(Decimal(refunded_amount), Decimal(payment.amount))
    values = {
        "status": PaymentStatus.REFUNDED,
        "refunded_amount": refunded_amount,
        "refunded_at": now,
    }
    if refund_id:
        values["stripe_refund_id"] = refund_id

    claimed = _guarded(db, update(Payment).where(
        Payment.id == payment.id,
        Payment.status == PaymentStatus.SUCCEEDED,
    ).values(**values))
    if not claimed:
        return False

    _guarded(db, update(Booking).where(
        Booking.id == payment.booking_id,
    ).values(
        total_paid=case(
            (Booking.total_paid >= refunded_amount, Booking.total_paid - refunded_amount),
            else_=0,
        ),
        payment_status=BookingPaymentStatus.REFUNDED,
    ))
    return True
