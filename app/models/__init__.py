from .user import User, UserRole
from .package import Package, PackageCategory
from .booking import Booking, BookingStatus, BookingPaymentStatus
from .payment import Payment, PaymentStatus, PaymentType
from .delivery import Delivery

from sqlalchemy.orm import configure_mappers
configure_mappers()

__all__ = [
    "User", "UserRole",
    "Package", "PackageCategory",
    "Booking", "BookingStatus", "BookingPaymentStatus",
    "Payment", "PaymentStatus", "PaymentType",
    "Delivery",
]
