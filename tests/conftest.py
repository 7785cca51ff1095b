import hashlib
import hmac
import itertools
import json
import time
from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from app.core.cloudinary import CloudinaryAssetStore
from app.core.config import Settings
from app.core.context import AppContext
from app.core.exceptions import AssetUploadFailed, PaymentProcessorError
from app.core.security import create_access_token
from app.database import Base, build_engine, build_session_factory
from app.main import create_app
from app.models import Package, PackageCategory, User, UserRole
from app.schemas.booking import BookingCreate
from app.services.booking_service import BookingService
from app.services.stripe_gateway import IntentHandle, StripeGateway

WEBHOOK_SECRET = "whsec_test_secret"


class FakeStripeGateway(StripeGateway):
    """Keeps intents in memory; signature verification is the real one."""

    def __init__(self):
        super().__init__(secret_key="sk_test", webhook_secret=WEBHOOK_SECRET, currency="usd")
        self._ids = itertools.count(1)
        self.intents = {}
        self.created = []
        self.cancelled = []
        self.refunds = []
        self.fail_create = False

    def create_payment_intent(self, amount, metadata):
        if self.fail_create:
            raise PaymentProcessorError("Failed to create payment intent")
        n = next(self._ids)
        intent = IntentHandle(id=f"pi_test_{n}", client_secret=f"pi_test_{n}_secret_{n}", status="requires_payment_method")
        self.intents[intent.id] = intent
        self.created.append((intent.id, Decimal(amount), dict(metadata)))
        return intent

    def retrieve_payment_intent(self, intent_id):
        return self.intents[intent_id]

    def cancel_payment_intent(self, intent_id):
        self.intents[intent_id].status = "canceled"
        self.cancelled.append(intent_id)

    def create_refund(self, intent_id, amount=None):
        refund_id = f"re_test_{len(self.refunds) + 1}"
        self.refunds.append((intent_id, amount))
        return refund_id


class FakeAssetStore(CloudinaryAssetStore):
    """Stores nothing; content equal to ``FAIL_CONTENT`` makes an upload fail."""

    FAIL_CONTENT = b"broken"

    def __init__(self):
        super().__init__(cloud_name="test", api_key="key", api_secret="secret", base_folder="test")
        self._ids = itertools.count(1)
        self.stored = {}
        self.deleted = []

    def upload_image(self, file, folder="deliveries"):
        data = file.read() if hasattr(file, "read") else file
        if data == self.FAIL_CONTENT:
            raise AssetUploadFailed()
        public_id = f"{self.base_folder}/{folder}/photo_{next(self._ids)}"
        self.stored[public_id] = data
        return {
            "url": f"https://res.cloudinary.test/{public_id}.jpg",
            "public_id": public_id,
            "format": "jpg",
            "size": len(data),
        }

    def delete_image(self, public_id):
        self.stored.pop(public_id, None)
        self.deleted.append(public_id)


class FakeNotifier:
    def __init__(self):
        self.sent = []
        self.fail = False

    def _record(self, kind, *args):
        if self.fail:
            raise RuntimeError("mail server down")
        self.sent.append((kind,) + args)
        return True

    def send_booking_confirmation(self, booking):
        return self._record("confirmation", booking.id)

    def send_payment_receipt(self, booking, payment):
        return self._record("receipt", booking.id, payment.id)

    def send_booking_cancellation(self, booking):
        return self._record("cancellation", booking.id)

    def send_photo_delivery(self, booking, delivery, expires_at=None):
        return self._record("delivery", booking.id, delivery.id)

    def kinds(self):
        return [entry[0] for entry in self.sent]


@pytest.fixture
def context(tmp_path):
    settings = Settings(DATABASE_URL=f"sqlite:///{tmp_path / 'test.db'}")
    engine = build_engine(settings)
    Base.metadata.create_all(bind=engine)
    ctx = AppContext(
        settings=settings,
        engine=engine,
        session_factory=build_session_factory(engine),
        payments=FakeStripeGateway(),
        assets=FakeAssetStore(),
        notifier=FakeNotifier(),
    )
    yield ctx
    ctx.close()


@pytest.fixture
def db(context):
    session = context.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway(context):
    return context.payments


@pytest.fixture
def assets(context):
    return context.assets


@pytest.fixture
def notifier(context):
    return context.notifier


@pytest.fixture
def client(context):
    return TestClient(create_app(context))


def _make_user(db, email, name, role=UserRole.CLIENT):
    user = User(email=email, name=name, role=role, is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def customer(db):
    return _make_user(db, "ada@example.com", "Ada Client")


@pytest.fixture
def other_customer(db):
    return _make_user(db, "bo@example.com", "Bo Client")


@pytest.fixture
def admin(db):
    return _make_user(db, "admin@example.com", "Studio Admin", role=UserRole.ADMIN)


def auth_headers(user):
    token = create_access_token({"user_id": user.id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def package(db):
    package = Package(
        name="Standard Package",
        description="Six hours of coverage",
        price=Decimal("1000.00"),
        deposit_percentage=30,
        max_bookings_per_day=2,
        duration_hours=6,
        category=PackageCategory.WEDDING,
        is_active=True,
    )
    db.add(package)
    db.commit()
    db.refresh(package)
    return package


@pytest.fixture
def future_date():
    return date.today() + timedelta(days=30)


def booking_payload(package_id, booking_date, **overrides):
    data = {
        "package_id": package_id,
        "booking_date": booking_date.isoformat() if hasattr(booking_date, "isoformat") else booking_date,
        "booking_time": "14:30",
        "location": "Studio A",
        "notes": "Bring the dog",
        "contact_info": {"name": "Ada Client", "email": "ada@example.com", "phone": "+233241234567"},
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_booking(db, package, customer, future_date):
    def _make(user=None, booking_date=None, package_id=None):
        data = BookingCreate(**booking_payload(package_id or package.id, booking_date or future_date))
        return BookingService.create_booking(db, data, user or customer)
    return _make


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    signature = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


_event_ids = itertools.count(1)


def make_event(event_type: str, obj: dict) -> str:
    return json.dumps({
        "id": f"evt_test_{next(_event_ids)}",
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    })


def succeeded_event(intent_id: str, charge_id: str = "ch_test_1") -> str:
    return make_event("payment_intent.succeeded", {
        "id": intent_id, "object": "payment_intent", "status": "succeeded", "latest_charge": charge_id,
    })


def refunded_event(charge_id: str, intent_id: str, amount_refunded: int, refund_id: str = "re_evt_1") -> str:
    return make_event("charge.refunded", {
        "id": charge_id,
        "object": "charge",
        "payment_intent": intent_id,
        "amount_refunded": amount_refunded,
        "refunds": {"data": [{"id": refund_id}]},
    })
