from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, Numeric, Enum, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from app.database import Base

class PackageCategory(str, enum.Enum):
    WEDDING = "Wedding"
    PORTRAIT = "Portrait"
    STUDIO = "Studio"
    EVENT = "Event"
    PRODUCT = "Product"

class Package(Base):
    __tablename__ = "packages"
    __table_args__ = (
        CheckConstraint("deposit_percentage >= 0 AND deposit_percentage <= 100", name="ck_packages_deposit_percentage"),
        CheckConstraint("max_bookings_per_day > 0", name="ck_packages_max_bookings_per_day"),
        CheckConstraint("price >= 0", name="ck_packages_price"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False)
    description = Column(Text)
    price = Column(Numeric(10, 2), nullable=False)
    deposit_percentage = Column(Integer, nullable=False, default=50)
    max_bookings_per_day = Column(Integer, nullable=False, default=1)
    duration_hours = Column(Integer, nullable=False, default=1)
    category = Column(Enum(PackageCategory), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    bookings = relationship("Booking", back_populates="package")
