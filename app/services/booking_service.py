import logging
import math
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, List, Set, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from app.core.exceptions import (
    BookingNotFound, CapacityExceeded, Forbidden, PackageUnavailable, ValidationError,
)
from app.models.booking import Booking, BookingStatus, BookingPaymentStatus
from app.models.package import Package
from app.models.user import User
from app.schemas.booking import BookingCreate
from app.services import booking_state
from app.services.email import notify_safely
from app.services.package_service import PackageService
from app.services.pricing import pricing_for_package

logger = logging.getLogger(__name__)

DEFAULT_CANCELLATION_REASON = "Cancelled by user"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BookingService:
    @staticmethod
    def _taken_slots(db: Session, package_id: int, booking_date: date) -> Set[int]:
        rows = db.query(Booking.capacity_slot).filter(
            Booking.package_id == package_id,
            Booking.booking_date == booking_date,
            Booking.capacity_slot.isnot(None),
        ).all()
        return {slot for (slot,) in rows}

    @staticmethod
    def _free_slot(db: Session, package: Package, booking_date: date) -> Optional[int]:
        taken = BookingService._taken_slots(db, package.id, booking_date)
        for slot in range(package.max_bookings_per_day):
            if slot not in taken:
                return slot
        return None

    @staticmethod
    def create_booking(
        db: Session,
        booking_data: BookingCreate,
        user: User,
        max_attempts: int = 3,
        today: Optional[date] = None,
    ) -> Booking:
        """Create a pending booking with a frozen pricing snapshot.

        The package row is locked while a capacity slot is picked, and the
        (package, date, slot) unique constraint rejects a concurrent insert
        that picked the same slot; that attempt is retried with fresh data.
        """
        today = today or date.today()
        if booking_data.booking_date < today:
            raise ValidationError("Booking date cannot be in the past")

        for attempt in range(1, max_attempts + 1):
            try:
                package = PackageService.get_package(db, booking_data.package_id, for_update=True)
                if not package.is_active:
                    raise PackageUnavailable()

                slot = BookingService._free_slot(db, package, booking_data.booking_date)
                if slot is None:
                    raise CapacityExceeded()

                pricing = pricing_for_package(package)
                contact = booking_data.contact_info
                booking = Booking(
                    user_id=user.id,
                    package_id=package.id,
                    booking_date=booking_data.booking_date,
                    booking_time=booking_data.booking_time,
                    location=booking_data.location,
                    notes=booking_data.notes,
                    capacity_slot=slot,
                    contact_name=contact.name,
                    contact_email=contact.email,
                    contact_phone=contact.phone,
                    package_price=pricing.package_price,
                    deposit_amount=pricing.deposit_amount,
                    remaining_amount=pricing.remaining_amount,
                    total_paid=Decimal("0.00"),
                    payment_status=BookingPaymentStatus.PENDING,
                    booking_status=BookingStatus.PENDING,
                )
                db.add(booking)
                db.commit()
            except IntegrityError:
                db.rollback()
                logger.warning(
                    "Capacity slot race on package %s for %s (attempt %d/%d)",
                    booking_data.package_id, booking_data.booking_date, attempt, max_attempts,
                )
                continue
            except Exception:
                db.rollback()
                raise

            db.refresh(booking)
            logger.info(
                "Booking %s created for package %s on %s (slot %s)",
                booking.id, booking.package_id, booking.booking_date, slot,
            )
            return booking

        raise CapacityExceeded()

    @staticmethod
    def get_booking(db: Session, booking_id: int, for_update: bool = False) -> Booking:
        query = db.query(Booking)
        if for_update:
            query = query.with_for_update()
        else:
            query = query.options(joinedload(Booking.package))
        booking = query.filter(Booking.id == booking_id).first()
        if not booking:
            raise BookingNotFound()
        return booking

    @staticmethod
    def ensure_can_access(booking: Booking, user: User) -> None:
        if not user.is_admin and booking.user_id != user.id:
            raise Forbidden("You are not authorized to access this booking")

    @staticmethod
    def get_booking_for_user(db: Session, booking_id: int, user: User) -> Booking:
        booking = BookingService.get_booking(db, booking_id)
        BookingService.ensure_can_access(booking, user)
        return booking

    @staticmethod
    def get_user_bookings(db: Session, user_id: int) -> List[Booking]:
        return db.query(Booking).filter(
            Booking.user_id == user_id
        ).order_by(Booking.created_at.desc(), Booking.id.desc()).all()

    @staticmethod
    def list_bookings(
        db: Session,
        booking_status: Optional[BookingStatus] = None,
        payment_status: Optional[BookingPaymentStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[int, int, List[Booking]]:
        """Admin listing, newest first. Returns (total, pages, bookings)."""
        query = db.query(Booking)
        if booking_status:
            query = query.filter(Booking.booking_status == booking_status)
        if payment_status:
            query = query.filter(Booking.payment_status == payment_status)

        total = query.count()
        offset = (page - 1) * limit
        bookings = query.order_by(Booking.created_at.desc(), Booking.id.desc()).offset(offset).limit(limit).all()
        return total, math.ceil(total / limit) if total else 0, bookings

    @staticmethod
    def update_status(
        db: Session,
        booking_id: int,
        target: BookingStatus,
        notifier,
        cancellation_reason: Optional[str] = None,
    ) -> Booking:
        """Admin status change, validated against the transition table"""
        try:
            booking = BookingService.get_booking(db, booking_id, for_update=True)
            previous = booking.booking_status
            booking_state.apply_transition(booking, target, _utcnow(), reason=cancellation_reason)
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(booking)
        logger.info("Booking %s moved from %s to %s by admin", booking.id, previous.value, target.value)

        if target == BookingStatus.CONFIRMED:
            notify_safely(notifier.send_booking_confirmation, booking)
        elif target == BookingStatus.CANCELLED:
            notify_safely(notifier.send_booking_cancellation, booking)
        return booking

    @staticmethod
    def cancel_booking(
        db: Session,
        booking_id: int,
        user: User,
        notifier,
        reason: Optional[str] = None,
        today: Optional[date] = None,
    ) -> Booking:
        """Owner or admin cancellation, only for upcoming non-terminal bookings"""
        today = today or date.today()
        try:
            booking = BookingService.get_booking(db, booking_id, for_update=True)
            BookingService.ensure_can_access(booking, user)
            booking_state.ensure_cancellable(booking, today)
            booking_state.apply_transition(
                booking,
                BookingStatus.CANCELLED,
                _utcnow(),
                reason=(reason or "").strip() or DEFAULT_CANCELLATION_REASON,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(booking)
        logger.info("Booking %s cancelled by user %s", booking.id, user.id)
        notify_safely(notifier.send_booking_cancellation, booking)
        return booking
