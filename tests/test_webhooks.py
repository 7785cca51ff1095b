import json
import time
from decimal import Decimal

import pytest

from app.core.exceptions import InvalidWebhookSignature
from app.models import Booking, BookingPaymentStatus, BookingStatus, Payment, PaymentStatus, PaymentType
from app.services.payment_service import PaymentService
from app.services.webhook_service import WebhookService

from conftest import make_event, refunded_event, sign_payload, succeeded_event


@pytest.fixture
def webhooks(db, gateway, notifier):
    service = WebhookService(db, gateway, notifier)

    def deliver(payload, signature=None):
        return service.process(payload.encode("utf-8"), signature or sign_payload(payload))
    return deliver


def _reload(db, booking):
    db.expire_all()
    return db.get(Booking, booking.id)


def test_deposit_then_remaining(db, make_booking, customer, gateway, notifier, webhooks):
    booking = make_booking()

    deposit = PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.DEPOSIT)
    assert webhooks(succeeded_event(deposit.payment_intent_id, "ch_dep")) == {"received": True}

    booking = _reload(db, booking)
    assert booking.payment_status == BookingPaymentStatus.DEPOSIT_PAID
    assert booking.booking_status == BookingStatus.CONFIRMED
    assert booking.confirmed_at is not None
    assert booking.total_paid == Decimal("300.00")

    remaining = PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.REMAINING)
    assert remaining.amount == Decimal("700.00")
    webhooks(succeeded_event(remaining.payment_intent_id, "ch_rem"))

    booking = _reload(db, booking)
    assert booking.payment_status == BookingPaymentStatus.FULLY_PAID
    assert booking.booking_status == BookingStatus.CONFIRMED
    assert booking.total_paid == Decimal("1000.00")
    assert notifier.kinds() == ["receipt", "receipt"]

    payment = db.query(Payment).filter(Payment.stripe_payment_intent_id == deposit.payment_intent_id).one()
    assert payment.status == PaymentStatus.SUCCEEDED
    assert payment.stripe_charge_id == "ch_dep"
    assert payment.paid_at is not None


def test_full_payment_confirms_booking(db, make_booking, customer, gateway, webhooks):
    booking = make_booking()
    full = PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.FULL)

    webhooks(succeeded_event(full.payment_intent_id))

    booking = _reload(db, booking)
    assert booking.payment_status == BookingPaymentStatus.FULLY_PAID
    assert booking.booking_status == BookingStatus.CONFIRMED
    assert booking.total_paid == Decimal("1000.00")


def test_redelivered_success_is_a_no_op(db, make_booking, customer, gateway, notifier, webhooks):
    booking = make_booking()
    deposit = PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.DEPOSIT)
    event = succeeded_event(deposit.payment_intent_id)

    webhooks(event)
    webhooks(event)
    webhooks(succeeded_event(deposit.payment_intent_id))

    booking = _reload(db, booking)
    assert booking.total_paid == Decimal("300.00")
    assert notifier.kinds() == ["receipt"]


def test_unknown_intent_changes_nothing(db, make_booking, notifier, webhooks):
    booking = make_booking()

    assert webhooks(succeeded_event("pi_does_not_exist")) == {"received": True}
    assert webhooks(refunded_event("ch_nope", "pi_does_not_exist", 1000)) == {"received": True}

    booking = _reload(db, booking)
    assert booking.total_paid == Decimal("0.00")
    assert booking.payment_status == BookingPaymentStatus.PENDING
    assert booking.booking_status == BookingStatus.PENDING
    assert db.query(Payment).count() == 0
    assert notifier.sent == []


def test_unhandled_event_types_are_acknowledged(webhooks):
    assert webhooks(make_event("customer.created", {"id": "cus_1"})) == {"received": True}


@pytest.mark.parametrize("signature", [
    None,
    "t=1,v1=deadbeef",
    "garbage",
])
def test_bad_signatures_are_rejected(db, make_booking, customer, gateway, notifier, signature):
    booking = make_booking()
    deposit = PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.DEPOSIT)
    payload = succeeded_event(deposit.payment_intent_id)

    with pytest.raises(InvalidWebhookSignature):
        WebhookService(db, gateway, notifier).process(payload.encode("utf-8"), signature)

    booking = _reload(db, booking)
    assert booking.payment_status == BookingPaymentStatus.PENDING


def test_wrong_secret_and_stale_timestamp_are_rejected(db, gateway, notifier):
    payload = make_event("payment_intent.succeeded", {"id": "pi_x"})
    service = WebhookService(db, gateway, notifier)

    with pytest.raises(InvalidWebhookSignature):
        service.process(payload.encode("utf-8"), sign_payload(payload, secret="whsec_other"))
    with pytest.raises(InvalidWebhookSignature):
        service.process(payload.encode("utf-8"), sign_payload(payload, timestamp=int(time.time()) - 3600))


def test_failed_attempt_then_success(db, make_booking, customer, gateway, webhooks):
    booking = make_booking()
    deposit = PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.DEPOSIT)

    webhooks(make_event("payment_intent.payment_failed", {
        "id": deposit.payment_intent_id,
        "last_payment_error": {"message": "Your card was declined."},
    }))
    payment = db.query(Payment).filter(Payment.stripe_payment_intent_id == deposit.payment_intent_id).one()
    assert payment.status == PaymentStatus.FAILED
    assert payment.failure_reason == "Your card was declined."
    assert _reload(db, booking).payment_status == BookingPaymentStatus.PENDING

    # the client retries on the same intent and it goes through
    webhooks(succeeded_event(deposit.payment_intent_id))
    booking = _reload(db, booking)
    assert booking.payment_status == BookingPaymentStatus.DEPOSIT_PAID
    assert booking.total_paid == Decimal("300.00")


def test_processing_and_canceled_events(db, make_booking, customer, gateway, webhooks):
    booking = make_booking()
    deposit = PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.DEPOSIT)

    webhooks(make_event("payment_intent.processing", {"id": deposit.payment_intent_id}))
    db.expire_all()
    payment = db.query(Payment).filter(Payment.stripe_payment_intent_id == deposit.payment_intent_id).one()
    assert payment.status == PaymentStatus.PROCESSING

    webhooks(make_event("payment_intent.canceled", {"id": deposit.payment_intent_id}))
    db.expire_all()
    assert db.get(Payment, payment.id).status == PaymentStatus.CANCELLED


def test_refund_takes_money_off_the_booking(db, make_booking, customer, gateway, webhooks):
    booking = make_booking()
    deposit = PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.DEPOSIT)
    webhooks(succeeded_event(deposit.payment_intent_id, "ch_dep"))

    webhooks(refunded_event("ch_dep", deposit.payment_intent_id, 30000, refund_id="re_1"))

    booking = _reload(db, booking)
    assert booking.total_paid == Decimal("0.00")
    assert booking.payment_status == BookingPaymentStatus.REFUNDED
    payment = db.query(Payment).filter(Payment.stripe_charge_id == "ch_dep").one()
    assert payment.status == PaymentStatus.REFUNDED
    assert payment.refunded_amount == Decimal("300.00")
    assert payment.stripe_refund_id == "re_1"


def test_refund_is_capped_and_idempotent(db, make_booking, customer, gateway, webhooks):
    booking = make_booking()
    deposit = PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.DEPOSIT)
    webhooks(succeeded_event(deposit.payment_intent_id, "ch_dep"))

    event = refunded_event("ch_dep", deposit.payment_intent_id, 99999)
    webhooks(event)
    webhooks(event)

    booking = _reload(db, booking)
    assert booking.total_paid == Decimal("0.00")
    payment = db.query(Payment).filter(Payment.stripe_charge_id == "ch_dep").one()
    assert payment.refunded_amount == Decimal("300.00")


def test_refund_before_payment_settles_is_ignored(db, make_booking, customer, gateway, webhooks):
    booking = make_booking()
    deposit = PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.DEPOSIT)

    webhooks(refunded_event("ch_unknown", deposit.payment_intent_id, 30000))

    db.expire_all()
    payment = db.query(Payment).filter(Payment.stripe_payment_intent_id == deposit.payment_intent_id).one()
    assert payment.status == PaymentStatus.PENDING
    assert _reload(db, booking).payment_status == BookingPaymentStatus.PENDING


def test_total_paid_never_exceeds_price(db, make_booking, customer, gateway, webhooks):
    booking = make_booking()
    full = PaymentService.create_intent(db, gateway, booking.id, customer, PaymentType.FULL)
    webhooks(succeeded_event(full.payment_intent_id))

    # a stray deposit row for the same booking would push the total past the price
    stray = Payment(
        booking_id=booking.id,
        user_id=customer.id,
        amount=Decimal("300.00"),
        currency="USD",
        payment_type=PaymentType.DEPOSIT,
        status=PaymentStatus.PENDING,
        stripe_payment_intent_id="pi_stray",
    )
    db.add(stray)
    db.commit()

    assert webhooks(succeeded_event("pi_stray")) == {"received": True}

    booking = _reload(db, booking)
    assert booking.total_paid == Decimal("1000.00")
    assert db.get(Payment, stray.id).status == PaymentStatus.PENDING


def test_non_utf8_body_is_rejected(db, gateway, notifier):
    with pytest.raises(InvalidWebhookSignature):
        WebhookService(db, gateway, notifier).process(b"\xff\xfe{}", sign_payload("x"))


@pytest.mark.parametrize("data", [
    {"object": "pi_123"},
    {"object": ["pi_123"]},
    "not-a-dict",
])
def test_event_without_object_is_acknowledged(db, make_booking, notifier, webhooks, data):
    booking = make_booking()
    payload = json.dumps({"id": "evt_odd", "type": "payment_intent.succeeded", "data": data})

    assert webhooks(payload) == {"received": True}
    assert _reload(db, booking).payment_status == BookingPaymentStatus.PENDING
    assert notifier.sent == []
