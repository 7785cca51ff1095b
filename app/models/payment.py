from sqlalchemy import Column, Integer, String, DateTime, Text, Numeric, ForeignKey, Enum, Index, text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from app.database import Base

class PaymentStatus(str, enum.Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    CANCELLED = "Cancelled"
    REFUNDED = "Refunded"

class PaymentType(str, enum.Enum):
    DEPOSIT = "Deposit"
    REMAINING = "Remaining"
    FULL = "Full"
    REFUND = "Refund"

# Statuses a webhook may still move forward from
OPEN_PAYMENT_STATUSES = (PaymentStatus.PENDING, PaymentStatus.PROCESSING)

# A failed attempt leaves the intent payable, so a later success still counts
UNSETTLED_PAYMENT_STATUSES = OPEN_PAYMENT_STATUSES + (PaymentStatus.FAILED,)

_SUCCEEDED_ONLY = text("status = 'SUCCEEDED'")

class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        Index(
            "uq_payments_booking_type_succeeded",
            "booking_id",
            "payment_type",
            unique=True,
            sqlite_where=_SUCCEEDED_ONLY,
            postgresql_where=_SUCCEEDED_ONLY,
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), default="USD", nullable=False)
    payment_type = Column(Enum(PaymentType), nullable=False)
    status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False, index=True)
    stripe_payment_intent_id = Column(String(255), unique=True, index=True)
    stripe_charge_id = Column(String(255), index=True)
    stripe_refund_id = Column(String(255))
    failure_reason = Column(Text)
    refunded_amount = Column(Numeric(10, 2), default=0, nullable=False)
    refunded_at = Column(DateTime(timezone=True))
    paid_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    booking = relationship("Booking", back_populates="payments")
    user = relationship("User", back_populates="payments")
