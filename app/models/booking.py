from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, Text, Numeric, ForeignKey, Enum,
    CheckConstraint, UniqueConstraint, Index,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from app.database import Base

class BookingStatus(str, enum.Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

class BookingPaymentStatus(str, enum.Enum):
    PENDING = "Pending"
    DEPOSIT_PAID = "DepositPaid"
    FULLY_PAID = "FullyPaid"
    REFUNDED = "Refunded"

class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        # Non-cancelled bookings hold a slot in [0, max_bookings_per_day);
        # cancelled ones release it (NULL never collides).
        UniqueConstraint("package_id", "booking_date", "capacity_slot", name="uq_bookings_package_date_slot"),
        CheckConstraint("total_paid >= 0 AND total_paid <= package_price", name="ck_bookings_total_paid"),
        Index("ix_bookings_package_date", "package_id", "booking_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    package_id = Column(Integer, ForeignKey("packages.id"), nullable=False)
    booking_date = Column(Date, nullable=False, index=True)
    booking_time = Column(String(50), nullable=False)
    location = Column(String(255))
    notes = Column(String(1000))
    capacity_slot = Column(Integer)

    # Contact snapshot
    contact_name = Column(String(200), nullable=False)
    contact_email = Column(String(255), nullable=False)
    contact_phone = Column(String(20))

    # Pricing snapshot, frozen at creation
    package_price = Column(Numeric(10, 2), nullable=False)
    deposit_amount = Column(Numeric(10, 2), nullable=False)
    remaining_amount = Column(Numeric(10, 2), nullable=False)
    total_paid = Column(Numeric(10, 2), nullable=False, default=0)

    payment_status = Column(Enum(BookingPaymentStatus), default=BookingPaymentStatus.PENDING, nullable=False, index=True)
    booking_status = Column(Enum(BookingStatus), default=BookingStatus.PENDING, nullable=False, index=True)

    stripe_deposit_intent_id = Column(String(255))
    stripe_payment_intent_id = Column(String(255))

    cancellation_reason = Column(Text)
    cancelled_at = Column(DateTime(timezone=True))
    confirmed_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    photos_delivered = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="bookings")
    package = relationship("Package", back_populates="bookings")
    payments = relationship("Payment", back_populates="booking", cascade="all, delete-orphan", order_by="Payment.id")
    delivery = relationship("Delivery", back_populates="booking", uselist=False, cascade="all, delete-orphan")

    @property
    def contact_info(self) -> dict:
        return {"name": self.contact_name, "email": self.contact_email, "phone": self.contact_phone}

    @property
    def pricing(self) -> dict:
        return {
            "package_price": self.package_price,
            "deposit_amount": self.deposit_amount,
            "remaining_amount": self.remaining_amount,
            "total_paid": self.total_paid,
        }
