from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

import pytest
import requests
import stripe

from app.core.cloudinary import CloudinaryAssetStore
from app.core.exceptions import AssetUploadFailed, InvalidWebhookSignature, PaymentProcessorError
from app.services.email import EmailService, notify_safely
from app.services.stripe_gateway import StripeGateway

from conftest import make_event, sign_payload


def _email_service(api_key="SG.test"):
    return EmailService(api_key, "studio@example.com", "Studio", "https://studio.example/")


def _booking():
    return SimpleNamespace(
        id=1,
        contact_name="Ada",
        contact_email="ada@example.com",
        booking_date="2026-07-01",
        booking_time="14:30",
        location=None,
        package=SimpleNamespace(name="Standard Package"),
        package_price=Decimal("1000.00"),
        deposit_amount=Decimal("300.00"),
        remaining_amount=Decimal("700.00"),
        total_paid=Decimal("300.00"),
        cancellation_reason="Rain",
    )


def test_email_without_api_key_is_skipped():
    with patch("app.services.email.requests.post") as post:
        assert _email_service(api_key="").send_booking_confirmation(_booking()) is False
    post.assert_not_called()


def test_email_is_sent_through_sendgrid():
    with patch("app.services.email.requests.post", return_value=SimpleNamespace(status_code=202, text="")) as post:
        assert _email_service().send_booking_cancellation(_booking()) is True

    payload = post.call_args.kwargs["json"]
    assert payload["personalizations"][0]["to"] == [{"email": "ada@example.com"}]
    assert "Rain" in payload["content"][1]["value"]
    assert "<" not in payload["content"][0]["value"]


def test_delivery_email_links_to_frontend():
    delivery = SimpleNamespace(id=7, album_name="Album", photo_count=3)
    with patch("app.services.email.requests.post", return_value=SimpleNamespace(status_code=202, text="")) as post:
        _email_service().send_photo_delivery(_booking(), delivery)
    assert "https://studio.example/deliveries/7" in post.call_args.kwargs["json"]["content"][1]["value"]


def test_email_transport_errors_are_reported_not_raised():
    with patch("app.services.email.requests.post", side_effect=requests.ConnectionError("down")):
        assert _email_service().send_booking_confirmation(_booking()) is False
    with patch("app.services.email.requests.post", return_value=SimpleNamespace(status_code=400, text="bad")):
        assert _email_service().send_booking_confirmation(_booking()) is False


def test_notify_safely_swallows_errors():
    def explode(*args):
        raise RuntimeError("boom")
    assert notify_safely(explode, 1) is False
    assert notify_safely(lambda value: value, "ok") is True


def test_stripe_errors_become_processor_errors():
    gateway = StripeGateway("sk_test", "whsec_test")
    with patch("stripe.PaymentIntent.create", side_effect=stripe.APIConnectionError("offline")):
        with pytest.raises(PaymentProcessorError):
            gateway.create_payment_intent(Decimal("300.00"), {"booking_id": 1})


def test_stripe_intent_amounts_are_minor_units():
    gateway = StripeGateway("sk_test", "whsec_test", currency="eur")
    intent = SimpleNamespace(id="pi_1", client_secret="pi_1_secret", status="requires_payment_method")
    with patch("stripe.PaymentIntent.create", return_value=intent) as create:
        handle = gateway.create_payment_intent(Decimal("300.50"), {"booking_id": 1})

    assert handle.id == "pi_1"
    assert create.call_args.kwargs["amount"] == 30050
    assert create.call_args.kwargs["currency"] == "eur"
    assert create.call_args.kwargs["metadata"] == {"booking_id": "1"}
    assert create.call_args.kwargs["api_key"] == "sk_test"


def test_webhook_verification():
    gateway = StripeGateway("sk_test", "whsec_test")
    payload = make_event("payment_intent.succeeded", {"id": "pi_1"})

    event = gateway.verify_webhook(payload.encode("utf-8"), sign_payload(payload, secret="whsec_test"))
    assert event["data"]["object"]["id"] == "pi_1"

    with pytest.raises(InvalidWebhookSignature):
        StripeGateway("sk_test", "").verify_webhook(payload.encode("utf-8"), sign_payload(payload, secret=""))


def test_cloudinary_upload_many_rolls_back():
    store = CloudinaryAssetStore("cloud", "key", "secret", base_folder="studio")
    results = [
        {"secure_url": "https://res.cloudinary.com/a.jpg", "public_id": "studio/deliveries/a", "format": "jpg", "bytes": 10},
        Exception("quota exceeded"),
    ]

    with patch("cloudinary.uploader.upload", side_effect=results) as upload, \
            patch("cloudinary.uploader.destroy", return_value={"result": "ok"}) as destroy:
        with pytest.raises(AssetUploadFailed):
            store.upload_many([("a.jpg", b"a"), ("b.jpg", b"b")])

    assert upload.call_args.kwargs["folder"] == "studio/deliveries"
    assert upload.call_args.kwargs["cloud_name"] == "cloud"
    destroy.assert_called_once()
    assert destroy.call_args.args[0] == "studio/deliveries/a"
