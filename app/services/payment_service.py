import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, FrozenSet, List, Optional, Tuple

from sqlalchemy.orm import Session, joinedload

from app.core.exceptions import (
    BookingNotFound, Forbidden, InvalidPaymentState, PaymentNotFound, PaymentProcessorError, ValidationError,
)
from app.models.booking import Booking, BookingStatus, BookingPaymentStatus
from app.models.payment import Payment, PaymentStatus, PaymentType, UNSETTLED_PAYMENT_STATUSES
from app.models.user import User
from app.services import settlement
from app.services.pricing import to_decimal
from app.services.stripe_gateway import PAYABLE_INTENT_STATUSES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntentRule:
    required_status: BookingPaymentStatus
    amount_field: str
    # open intents of these types compete for the same money
    competing_types: FrozenSet[PaymentType]
    message: str


INTENT_RULES: Dict[PaymentType, IntentRule] = {
    PaymentType.DEPOSIT: IntentRule(
        required_status=BookingPaymentStatus.PENDING,
        amount_field="deposit_amount",
        competing_types=frozenset({PaymentType.DEPOSIT, PaymentType.FULL}),
        message="Deposit has already been paid",
    ),
    PaymentType.REMAINING: IntentRule(
        required_status=BookingPaymentStatus.DEPOSIT_PAID,
        amount_field="remaining_amount",
        competing_types=frozenset({PaymentType.REMAINING}),
        message="Deposit must be paid before paying the remaining amount",
    ),
    PaymentType.FULL: IntentRule(
        required_status=BookingPaymentStatus.PENDING,
        amount_field="package_price",
        competing_types=frozenset({PaymentType.DEPOSIT, PaymentType.FULL}),
        message="Full payment is only possible before any payment was made",
    ),
}


@dataclass
class IntentResult:
    client_secret: str
    payment_intent_id: str
    amount: Decimal
    payment: Payment


class PaymentService:
    @staticmethod
    def create_intent(
        db: Session,
        gateway,
        booking_id: int,
        user: User,
        payment_type: PaymentType,
        currency: str = "usd",
    ) -> IntentResult:
        """Create (or reuse) the processor intent for one payment step.

        The Payment row and the intent id on the booking are committed before
        the client secret is handed out, so a webhook can never arrive for an
        intent this service does not know about.
        """
        rule = INTENT_RULES[payment_type]
        try:
            booking = db.query(Booking).filter(Booking.id == booking_id).with_for_update().first()
            if not booking:
                raise BookingNotFound()
            if booking.user_id != user.id:
                raise Forbidden("You are not authorized to make payment for this booking")
            if booking.booking_status == BookingStatus.CANCELLED:
                raise InvalidPaymentState("Cancelled bookings cannot be paid")
            if booking.payment_status != rule.required_status:
                raise InvalidPaymentState(rule.message)

            amount = getattr(booking, rule.amount_field)
            if amount <= 0:
                raise InvalidPaymentState("There is no amount due for this payment")

            reusable = PaymentService._settle_open_intents(db, gateway, booking, payment_type, amount)
            if reusable is not None:
                payment, client_secret = reusable
                db.commit()
                logger.info("Reusing %s intent %s for booking %s", payment_type.value, payment.stripe_payment_intent_id, booking.id)
                return IntentResult(client_secret, payment.stripe_payment_intent_id, amount, payment)

            intent = gateway.create_payment_intent(amount, {
                "booking_id": booking.id,
                "user_id": user.id,
                "type": payment_type.value,
            })
        except Exception:
            db.rollback()
            raise

        payment = Payment(
            booking_id=booking.id,
            user_id=user.id,
            amount=amount,
            currency=currency.upper(),
            payment_type=payment_type,
            status=PaymentStatus.PENDING,
            stripe_payment_intent_id=intent.id,
        )
        db.add(payment)
        if payment_type == PaymentType.DEPOSIT:
            booking.stripe_deposit_intent_id = intent.id
        else:
            booking.stripe_payment_intent_id = intent.id

        try:
            db.commit()
        except Exception:
            db.rollback()
            logger.error("Could not record intent %s for booking %s, cancelling it", intent.id, booking_id)
            try:
                gateway.cancel_payment_intent(intent.id)
            except PaymentProcessorError:
                logger.warning("Orphaned payment intent %s could not be cancelled", intent.id)
            raise

        db.refresh(payment)
        logger.info("Created %s intent %s for booking %s (%s)", payment_type.value, intent.id, booking_id, amount)
        return IntentResult(intent.client_secret, intent.id, amount, payment)

    @staticmethod
    def _settle_open_intents(
        db: Session,
        gateway,
        booking: Booking,
        payment_type: PaymentType,
        amount: Decimal,
    ) -> Optional[Tuple[Payment, str]]:
        """Deal with intents already open for this booking step.

        The newest still-payable intent of the same type and amount is reused.
        Other payable ones are cancelled at the processor and locally. An
        intent the processor is already charging blocks a new request.
        """
        rule = INTENT_RULES[payment_type]
        open_payments = db.query(Payment).filter(
            Payment.booking_id == booking.id,
            Payment.payment_type.in_(rule.competing_types),
            Payment.status.in_(UNSETTLED_PAYMENT_STATUSES),
        ).order_by(Payment.id.desc()).all()

        reusable = None
        for payment in open_payments:
            intent = gateway.retrieve_payment_intent(payment.stripe_payment_intent_id)

            if intent.status == "canceled":
                settlement.mark_cancelled(db, payment)
                continue
            if intent.status not in PAYABLE_INTENT_STATUSES:
                raise InvalidPaymentState("A payment for this booking is already being processed")

            if reusable is None and payment.payment_type == payment_type and payment.amount == amount:
                reusable = (payment, intent.client_secret)
                continue

            gateway.cancel_payment_intent(intent.id)
            settlement.mark_cancelled(db, payment)
            logger.info("Superseded %s intent %s for booking %s", payment.payment_type.value, intent.id, booking.id)
        return reusable

    @staticmethod
    def get_payment_history(db: Session, user: User) -> List[Payment]:
        query = db.query(Payment).options(joinedload(Payment.booking))
        if not user.is_admin:
            query = query.filter(Payment.user_id == user.id)
        return query.order_by(Payment.created_at.desc(), Payment.id.desc()).all()

    @staticmethod
    def refund_payment(db: Session, gateway, payment_id: int, amount: Optional[Decimal] = None) -> Payment:
        """Admin refund of a succeeded payment.

        The local transition is the same one the ``charge.refunded`` webhook
        applies, so whichever lands second is a no-op.
        """
        try:
            payment = db.query(Payment).filter(Payment.id == payment_id).with_for_update().first()
            if not payment:
                raise PaymentNotFound()
            if payment.status != PaymentStatus.SUCCEEDED:
                raise InvalidPaymentState("Only successful payments can be refunded")

            refund_amount = to_decimal(amount) if amount is not None else payment.amount
            if refund_amount > payment.amount:
                raise ValidationError("Refund amount cannot exceed the payment amount")

            refund_id = gateway.create_refund(
                payment.stripe_payment_intent_id,
                amount=refund_amount if amount is not None else None,
            )
            settlement.settle_refund(db, payment, refund_amount, datetime.now(timezone.utc), refund_id=refund_id)
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(payment)
        logger.info("Refunded %s on payment %s (booking %s)", refund_amount, payment.id, payment.booking_id)
        return payment
