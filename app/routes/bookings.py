from fastapi import APIRouter, Depends, Query, status as http_status
from sqlalchemy.orm import Session
from typing import List, Optional

from app.core.context import AppContext
from app.core.dependencies import get_context, get_current_user, require_admin
from app.database import get_db
from app.models.booking import BookingStatus, BookingPaymentStatus
from app.models.user import User
from app.schemas.booking import (
    BookingCancel, BookingCreate, BookingListResponse, BookingResponse, BookingStatusUpdate,
)
from app.services.booking_service import BookingService

router = APIRouter()

@router.post("", response_model=BookingResponse, status_code=http_status.HTTP_201_CREATED)
def create_booking(
    booking_data: BookingCreate,
    current_user: User = Depends(get_current_user),
    context: AppContext = Depends(get_context),
    db: Session = Depends(get_db)
):
    """Create a pending booking for the current user"""
    return BookingService.create_booking(
        db, booking_data, current_user, max_attempts=context.settings.BOOKING_SLOT_RETRIES
    )

@router.get("/my", response_model=List[BookingResponse])
def get_my_bookings(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return BookingService.get_user_bookings(db, current_user.id)

@router.get("", response_model=BookingListResponse)
def list_bookings(
    booking_status: Optional[BookingStatus] = Query(None),
    payment_status: Optional[BookingPaymentStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """All bookings, for administrators"""
    total, pages, bookings = BookingService.list_bookings(db, booking_status, payment_status, page, limit)
    return {"total": total, "page": page, "pages": pages, "bookings": bookings}

@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return BookingService.get_booking_for_user(db, booking_id, current_user)

@router.put("/{booking_id}/status", response_model=BookingResponse)
def update_booking_status(
    booking_id: int,
    status_data: BookingStatusUpdate,
    current_user: User = Depends(require_admin),
    context: AppContext = Depends(get_context),
    db: Session = Depends(get_db)
):
    """Move a booking through its lifecycle (admin)"""
    return BookingService.update_status(
        db, booking_id, status_data.status, context.notifier,
        cancellation_reason=status_data.cancellation_reason,
    )

@router.post("/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(
    booking_id: int,
    cancel_data: Optional[BookingCancel] = None,
    current_user: User = Depends(get_current_user),
    context: AppContext = Depends(get_context),
    db: Session = Depends(get_db)
):
    """Cancel an upcoming booking"""
    reason = cancel_data.reason if cancel_data else None
    return BookingService.cancel_booking(db, booking_id, current_user, context.notifier, reason=reason)
