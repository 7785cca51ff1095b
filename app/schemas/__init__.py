from .package import PackageResponse
from .booking import (
    BookingCreate, BookingResponse, BookingListResponse, BookingStatusUpdate, BookingCancel,
    AvailabilityResponse, ContactInfo,
)
from .payment import PaymentResponse, PaymentInitiate, PaymentIntentResponse, RefundRequest, WebhookAck
from .delivery import DeliveryOptions, DeliveryResponse, DownloadResponse

__all__ = [
    "PackageResponse",
    "BookingCreate", "BookingResponse", "BookingListResponse", "BookingStatusUpdate", "BookingCancel",
    "AvailabilityResponse", "ContactInfo",
    "PaymentResponse", "PaymentInitiate", "PaymentIntentResponse", "RefundRequest", "WebhookAck",
    "DeliveryOptions", "DeliveryResponse", "DownloadResponse",
]
