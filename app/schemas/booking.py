from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from typing import Optional, List, Union
from datetime import date, datetime
from decimal import Decimal

from app.models.booking import BookingStatus, BookingPaymentStatus
from app.utils.validators import validate_phone_number, validate_time_slot, sanitize_input

class ContactInfo(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    phone: Optional[str] = None

    @field_validator('phone')
    @classmethod
    def check_phone(cls, v):
        if v and not validate_phone_number(v):
            raise ValueError('Phone number must contain 9 to 15 digits, optionally prefixed with +')
        return v

class BookingCreate(BaseModel):
    package_id: Union[int, str]
    booking_date: date
    booking_time: str
    location: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = Field(default=None, max_length=1000)
    contact_info: ContactInfo

    @field_validator('booking_time')
    @classmethod
    def check_booking_time(cls, v):
        if not validate_time_slot(v.strip()):
            raise ValueError('Booking time must look like 14:30 or 2:30 PM')
        return v.strip()

    @field_validator('notes', 'location')
    @classmethod
    def clean_text(cls, v):
        return sanitize_input(v) if v else v

class BookingStatusUpdate(BaseModel):
    status: BookingStatus
    cancellation_reason: Optional[str] = Field(default=None, max_length=1000)

    @model_validator(mode='after')
    def reason_only_for_cancel(self):
        has_reason = bool((self.cancellation_reason or '').strip())
        if self.status == BookingStatus.CANCELLED and not has_reason:
            raise ValueError('cancellation_reason is required when cancelling a booking')
        if self.status != BookingStatus.CANCELLED and has_reason:
            raise ValueError('cancellation_reason is only accepted when cancelling a booking')
        return self

class BookingCancel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)

class PricingResponse(BaseModel):
    package_price: Decimal
    deposit_amount: Decimal
    remaining_amount: Decimal
    total_paid: Decimal

class ContactInfoResponse(BaseModel):
    name: str
    email: str
    phone: Optional[str] = None

class BookingResponse(BaseModel):
    id: int
    user_id: int
    package_id: int
    booking_date: date
    booking_time: str
    location: Optional[str] = None
    notes: Optional[str] = None
    contact_info: ContactInfoResponse
    pricing: PricingResponse
    payment_status: BookingPaymentStatus
    booking_status: BookingStatus
    stripe_deposit_intent_id: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    photos_delivered: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class BookingListResponse(BaseModel):
    total: int
    page: int
    pages: int
    bookings: List[BookingResponse]

class AvailabilityResponse(BaseModel):
    package_id: int
    date: date
    available: bool
    remaining: int
