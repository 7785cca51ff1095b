import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from app.models.payment import Payment
from app.services import settlement
from app.services.email import notify_safely
from app.services.pricing import from_minor_units

logger = logging.getLogger(__name__)


class WebhookService:
    """Applies verified Stripe events to payments and bookings.

    Processor delivery is at-least-once: every handler is safe to run twice
    for the same event, the second run finds the payment already moved on and
    changes nothing.
    """

    def __init__(self, db: Session, gateway, notifier):
        self.db = db
        self.gateway = gateway
        self.notifier = notifier
        self._handlers: Dict[str, Callable[[dict], None]] = {
            "payment_intent.succeeded": self.handle_payment_succeeded,
            "payment_intent.payment_failed": self.handle_payment_failed,
            "payment_intent.processing": self.handle_payment_processing,
            "payment_intent.canceled": self.handle_payment_canceled,
            "charge.refunded": self.handle_charge_refunded,
        }

    def process(self, payload: bytes, signature: Optional[str]) -> dict:
        """Verify, then apply one webhook delivery.

        A bad signature raises ``InvalidWebhookSignature`` before anything is
        read. Once verified the delivery is always acknowledged, whatever the
        outcome of applying the event.
        """
        event = self.gateway.verify_webhook(payload, signature)
        event_type = event.get("type", "")
        event_id = event.get("id")

        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info("Unhandled webhook event type %s (%s)", event_type, event_id)
            return {"received": True}

        data = event.get("data")
        obj = data.get("object") if isinstance(data, dict) else None
        if not isinstance(obj, dict):
            logger.warning("Webhook event %s (%s) has no object, ignoring", event_type, event_id)
            return {"received": True}

        logger.info("Processing webhook event %s (%s) for %s", event_type, event_id, obj.get("id"))
        try:
            handler(obj)
        except settlement.SettlementConflict as e:
            self.db.rollback()
            logger.error("Webhook event %s (%s) rejected: %s", event_type, event_id, e)
        except Exception:
            self.db.rollback()
            logger.exception("Webhook event %s (%s) failed", event_type, event_id)
        return {"received": True}

    def _payment_for_intent(self, intent_id: Optional[str]) -> Optional[Payment]:
        if not intent_id:
            return None
        payment = self.db.query(Payment).filter(Payment.stripe_payment_intent_id == intent_id).first()
        if not payment:
            logger.warning("Payment not found for intent %s, dropping event", intent_id)
        return payment

    def _payment_for_charge(self, charge: dict) -> Optional[Payment]:
        charge_id = charge.get("id")
        payment = None
        if charge_id:
            payment = self.db.query(Payment).filter(Payment.stripe_charge_id == charge_id).first()
        if payment is None and charge.get("payment_intent"):
            # the refund can arrive before the success event recorded the charge id
            payment = self.db.query(Payment).filter(
                Payment.stripe_payment_intent_id == charge["payment_intent"]
            ).first()
        if payment is None:
            logger.warning("Payment not found for charge %s, dropping event", charge_id)
        return payment

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def handle_payment_succeeded(self, intent: dict) -> None:
        payment = self._payment_for_intent(intent.get("id"))
        if payment is None:
            return

        applied = settlement.settle_success(self.db, payment, intent.get("latest_charge"), self._now())
        if not applied:
            self.db.rollback()
            logger.info("Payment %s already settled, ignoring duplicate success", payment.id)
            return
        self.db.commit()

        self.db.refresh(payment)
        booking = payment.booking
        self.db.refresh(booking)
        logger.info(
            "Payment %s succeeded: booking %s now %s/%s, total paid %s",
            payment.id, booking.id, booking.payment_status.value, booking.booking_status.value, booking.total_paid,
        )
        notify_safely(self.notifier.send_payment_receipt, booking, payment)

    def handle_payment_failed(self, intent: dict) -> None:
        payment = self._payment_for_intent(intent.get("id"))
        if payment is None:
            return

        error = intent.get("last_payment_error") or {}
        reason = error.get("message") or "Payment failed"
        if settlement.mark_failed(self.db, payment, reason):
            self.db.commit()
            logger.info("Payment %s failed: %s", payment.id, reason)
        else:
            self.db.rollback()
            logger.info("Payment %s is no longer open, ignoring failure event", payment.id)

    def handle_payment_processing(self, intent: dict) -> None:
        payment = self._payment_for_intent(intent.get("id"))
        if payment is None:
            return
        if settlement.mark_processing(self.db, payment):
            self.db.commit()
        else:
            self.db.rollback()

    def handle_payment_canceled(self, intent: dict) -> None:
        payment = self._payment_for_intent(intent.get("id"))
        if payment is None:
            return
        if settlement.mark_cancelled(self.db, payment):
            self.db.commit()
            logger.info("Payment %s cancelled at the processor", payment.id)
        else:
            self.db.rollback()

    def handle_charge_refunded(self, charge: dict) -> None:
        payment = self._payment_for_charge(charge)
        if payment is None:
            return

        refunded_amount = from_minor_units(charge.get("amount_refunded") or 0)
        refunds = (charge.get("refunds") or {}).get("data") or []
        refund_id = refunds[0].get("id") if refunds else None

        if settlement.settle_refund(self.db, payment, refunded_amount, self._now(), refund_id=refund_id):
            self.db.commit()
            logger.info("Payment %s refunded %s", payment.id, refunded_amount)
        else:
            self.db.rollback()
            logger.info("Payment %s not refundable from its current state, ignoring refund event", payment.id)
