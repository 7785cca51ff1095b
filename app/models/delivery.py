from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base

class Delivery(Base):
    __tablename__ = "deliveries"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), unique=True, nullable=False)
    album_name = Column(String(255), nullable=False)
    description = Column(String(1000))
    # Ordered list of {url, public_id, filename, size, format, watermarked, order}
    photos = Column(JSON, nullable=False, default=list)
    expires_at = Column(DateTime(timezone=True))
    password_hash = Column(String(255))
    is_public = Column(Boolean, default=False, nullable=False)
    allow_download = Column(Boolean, default=True, nullable=False)
    watermark_enabled = Column(Boolean, default=False, nullable=False)
    views = Column(Integer, default=0, nullable=False)
    downloads = Column(Integer, default=0, nullable=False)
    notified_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    booking = relationship("Booking", back_populates="delivery")

    @property
    def photo_count(self) -> int:
        return len(self.photos or [])

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)
