from datetime import datetime, timezone
from decimal import Decimal

import pytest

from app.core.exceptions import (
    Forbidden, InvalidPaymentState, PaymentNotFound, PaymentProcessorError, ValidationError,
)
from app.models import BookingPaymentStatus, Payment, PaymentStatus, PaymentType
from app.services import settlement
from app.services.booking_service import BookingService
from app.services.payment_service import PaymentService


def _settle(db, payment, charge_id="ch_test"):
    assert settlement.settle_success(db, payment, charge_id, datetime.now(timezone.utc))
    db.commit()


def test_deposit_intent_records_pending_payment(db, make_booking, customer, gateway):
    booking = make_booking()

    result = PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.DEPOSIT)

    assert result.amount == Decimal("300.00")
    assert result.client_secret.startswith(result.payment_intent_id)
    assert gateway.created[0][1] == Decimal("300.00")
    assert gateway.created[0][2]["type"] == "Deposit"

    payment = db.query(Payment).filter(Payment.stripe_payment_intent_id == result.payment_intent_id).one()
    assert payment.status == PaymentStatus.PENDING
    assert payment.payment_type == PaymentType.DEPOSIT
    assert payment.currency == "USD"
    db.refresh(booking)
    assert booking.stripe_deposit_intent_id == result.payment_intent_id


def test_only_owner_can_pay(db, make_booking, other_customer, gateway):
    booking = make_booking()
    with pytest.raises(Forbidden):
        PaymentService.create_intent(db, gateway, booking.id, other_customer, PaymentType.DEPOSIT)
    assert gateway.created == []


def test_remaining_requires_deposit(db, make_booking, customer, gateway):
    booking = make_booking()
    with pytest.raises(InvalidPaymentState):
        PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.REMAINING)


def test_cancelled_bookings_cannot_be_paid(db, make_booking, customer, gateway, notifier):
    booking = make_booking()
    BookingService.cancel_booking(db, booking.id, customer, notifier)
    with pytest.raises(InvalidPaymentState):
        PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.DEPOSIT)


def test_repeated_request_reuses_open_intent(db, make_booking, customer, gateway):
    booking = make_booking()

    first = PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.DEPOSIT)
    second = PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.DEPOSIT)

    assert second.payment_intent_id == first.payment_intent_id
    assert second.client_secret == first.client_secret
    assert len(gateway.created) == 1
    assert db.query(Payment).filter(Payment.booking_id == booking.id).count() == 1


def test_switching_to_full_payment_replaces_deposit_intent(db, make_booking, customer, gateway):
    booking = make_booking()
    deposit = PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.DEPOSIT)

    full = PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.FULL)

    assert full.amount == Decimal("1000.00")
    assert full.payment_intent_id != deposit.payment_intent_id
    assert gateway.cancelled == [deposit.payment_intent_id]
    statuses = {p.stripe_payment_intent_id: p.status for p in db.query(Payment).all()}
    assert statuses == {
        deposit.payment_intent_id: PaymentStatus.CANCELLED,
        full.payment_intent_id: PaymentStatus.PENDING,
    }


def test_intent_cancelled_at_processor_is_replaced(db, make_booking, customer, gateway):
    booking = make_booking()
    first = PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.DEPOSIT)
    gateway.intents[first.payment_intent_id].status = "canceled"

    second = PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.DEPOSIT)

    assert second.payment_intent_id != first.payment_intent_id
    old = db.query(Payment).filter(Payment.stripe_payment_intent_id == first.payment_intent_id).one()
    db.refresh(old)
    assert old.status == PaymentStatus.CANCELLED


def test_intent_being_charged_blocks_new_request(db, make_booking, customer, gateway):
    booking = make_booking()
    first = PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.DEPOSIT)
    gateway.intents[first.payment_intent_id].status = "processing"

    with pytest.raises(InvalidPaymentState):
        PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.FULL)
    assert len(gateway.created) == 1


def test_processor_failure_leaves_no_payment(db, make_booking, customer, gateway):
    booking = make_booking()
    gateway.fail_create = True

    with pytest.raises(PaymentProcessorError):
        PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.DEPOSIT)
    assert db.query(Payment).count() == 0


def test_zero_deposit_has_nothing_to_pay(db, make_booking, package, customer, gateway):
    package.deposit_percentage = 0
    db.commit()
    booking = make_booking()

    with pytest.raises(InvalidPaymentState):
        PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.DEPOSIT)
    # the whole price can still be paid at once
    assert PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.FULL).amount == Decimal("1000.00")


def test_history_is_scoped_to_the_user(db, make_booking, customer, other_customer, admin, gateway):
    PaymentService.create_intent(db, gateway, make_booking().id, customer, PaymentType.DEPOSIT)
    PaymentService.create_intent(db, gateway, make_booking(user=other_customer).id, other_customer, PaymentType.FULL)

    assert len(PaymentService.get_payment_history(db, customer)) == 1
    assert len(PaymentService.get_payment_history(db, admin)) == 2


def test_admin_refund(db, make_booking, customer, gateway):
    booking = make_booking()
    result = PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.DEPOSIT)
    _settle(db, result.payment)

    payment = PaymentService.refund_payment(db, gateway, result.payment.id, Decimal("100.00"))

    assert payment.status == PaymentStatus.REFUNDED
    assert payment.refunded_amount == Decimal("100.00")
    assert payment.stripe_refund_id == "re_test_1"
    assert gateway.refunds == [(result.payment_intent_id, Decimal("100.00"))]

    db.refresh(booking)
    assert booking.total_paid == Decimal("200.00")
    assert booking.payment_status == BookingPaymentStatus.REFUNDED


def test_refund_guards(db, make_booking, customer, gateway):
    booking = make_booking()
    result = PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.DEPOSIT)

    with pytest.raises(InvalidPaymentState):
        PaymentService.refund_payment(db, gateway, result.payment.id)

    _settle(db, result.payment)
    with pytest.raises(ValidationError):
        PaymentService.refund_payment(db, gateway, result.payment.id, Decimal("300.01"))
    with pytest.raises(PaymentNotFound):
        PaymentService.refund_payment(db, gateway, 999)
    assert gateway.refunds == []
