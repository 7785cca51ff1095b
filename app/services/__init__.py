from .package_service import PackageService
from .booking_service import BookingService
from .payment_service import PaymentService
from .delivery_service import DeliveryService
from .webhook_service import WebhookService
from .email import EmailService

__all__ = [
    "PackageService",
    "BookingService",
    "PaymentService",
    "DeliveryService",
    "WebhookService",
    "EmailService"
]
