import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import stripe

from app.core.exceptions import InvalidWebhookSignature, PaymentProcessorError
from app.services.pricing import to_minor_units

logger = logging.getLogger(__name__)

# Intent states in which the client can still complete the payment
PAYABLE_INTENT_STATUSES = frozenset({
    "requires_payment_method",
    "requires_confirmation",
    "requires_action",
})


@dataclass
class IntentHandle:
    id: str
    client_secret: str
    status: str


class StripeGateway:
    """Thin wrapper around the Stripe SDK.

    The API key is passed on every call instead of being set on the ``stripe``
    module so several gateways (e.g. test and live) can coexist.
    """

    def __init__(self, secret_key: str, webhook_secret: str, currency: str = "usd", webhook_tolerance: int = 300):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = currency
        self.webhook_tolerance = webhook_tolerance

    def create_payment_intent(self, amount: Decimal, metadata: dict) -> IntentHandle:
        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.secret_key,
                amount=to_minor_units(amount),
                currency=self.currency,
                metadata={key: str(value) for key, value in metadata.items()},
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as e:
            logger.error("Stripe payment intent creation failed: %s", e)
            raise PaymentProcessorError("Failed to create payment intent")
        return IntentHandle(id=intent.id, client_secret=intent.client_secret, status=intent.status)

    def retrieve_payment_intent(self, intent_id: str) -> IntentHandle:
        try:
            intent = stripe.PaymentIntent.retrieve(intent_id, api_key=self.secret_key)
        except stripe.StripeError as e:
            logger.error("Stripe payment intent retrieval failed for %s: %s", intent_id, e)
            raise PaymentProcessorError("Failed to retrieve payment intent")
        return IntentHandle(id=intent.id, client_secret=intent.client_secret, status=intent.status)

    def cancel_payment_intent(self, intent_id: str) -> None:
        try:
            stripe.PaymentIntent.cancel(intent_id, api_key=self.secret_key)
        except stripe.StripeError as e:
            logger.error("Stripe payment intent cancellation failed for %s: %s", intent_id, e)
            raise PaymentProcessorError("Failed to cancel payment intent")

    def create_refund(self, intent_id: str, amount: Optional[Decimal] = None) -> str:
        params = {"payment_intent": intent_id, "api_key": self.secret_key}
        if amount is not None:
            params["amount"] = to_minor_units(amount)
        try:
            refund = stripe.Refund.create(**params)
        except stripe.StripeError as e:
            logger.error("Stripe refund failed for %s: %s", intent_id, e)
            raise PaymentProcessorError("Failed to create refund")
        return refund.id

    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> dict:
        """Check the ``Stripe-Signature`` header and return the parsed event.

        Nothing in the payload is looked at before the signature matches.
        """
        if not signature or not self.webhook_secret:
            raise InvalidWebhookSignature()

        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        except UnicodeDecodeError:
            logger.warning("Webhook body is not valid UTF-8")
            raise InvalidWebhookSignature()

        try:
            stripe.WebhookSignature.verify_header(body, signature, self.webhook_secret, self.webhook_tolerance)
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", e)
            raise InvalidWebhookSignature()

        try:
            event = json.loads(body)
        except json.JSONDecodeError:
            logger.warning("Webhook body is not valid JSON")
            raise InvalidWebhookSignature("Webhook payload could not be parsed")
        if not isinstance(event, dict):
            raise InvalidWebhookSignature("Webhook payload could not be parsed")
        return event
