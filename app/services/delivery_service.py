import logging
from datetime import datetime, timezone
from typing import BinaryIO, List, Optional, Sequence, Tuple, Union

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import (
    DeliveryAlreadyExists, DeliveryExpired, DeliveryNotFound, DownloadsDisabled, EmptyDelivery, Forbidden,
    InvalidStatusTransition,
)
from app.core.security import hash_password, verify_password
from app.models.booking import Booking, BookingStatus
from app.models.delivery import Delivery
from app.models.user import User
from app.schemas.delivery import DeliveryOptions
from app.services import booking_state
from app.services.booking_service import BookingService
from app.services.email import notify_safely

logger = logging.getLogger(__name__)

PhotoUpload = Tuple[str, Union[bytes, BinaryIO]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands timestamps back without tzinfo; they are stored as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _photo_entries(uploaded: List[dict], watermarked: bool, start: int = 0) -> List[dict]:
    return [
        {
            "url": asset["url"],
            "public_id": asset["public_id"],
            "filename": asset.get("filename"),
            "size": asset.get("size"),
            "format": asset.get("format"),
            "watermarked": watermarked,
            "order": start + index,
        }
        for index, asset in enumerate(uploaded)
    ]


class DeliveryService:
    @staticmethod
    def _folder(booking_id: int) -> str:
        return f"deliveries/booking_{booking_id}"

    @staticmethod
    def create_delivery(
        db: Session,
        assets,
        notifier,
        booking_id: int,
        photos: Sequence[PhotoUpload],
        options: DeliveryOptions,
    ) -> Delivery:
        """Upload the album, persist it and complete the booking.

        Uploads are all-or-nothing. If the delivery row cannot be stored the
        uploaded assets are removed again, so a failed request leaves nothing
        behind in the asset store.
        """
        booking = BookingService.get_booking(db, booking_id)
        if booking.booking_status == BookingStatus.CANCELLED:
            raise InvalidStatusTransition("Cannot deliver photos for a cancelled booking")
        if db.query(Delivery.id).filter(Delivery.booking_id == booking_id).first():
            raise DeliveryAlreadyExists()
        if not photos:
            raise EmptyDelivery()

        uploaded = assets.upload_many(photos, folder=DeliveryService._folder(booking_id))
        now = _utcnow()

        try:
            booking = BookingService.get_booking(db, booking_id, for_update=True)
            delivery = Delivery(
                booking_id=booking.id,
                album_name=options.album_name,
                description=options.description,
                photos=_photo_entries(uploaded, options.watermark_enabled),
                expires_at=options.expires_at,
                password_hash=hash_password(options.password) if options.password else None,
                is_public=options.is_public,
                allow_download=options.allow_download,
                watermark_enabled=options.watermark_enabled,
            )
            db.add(delivery)
            if booking.booking_status != BookingStatus.COMPLETED:
                booking_state.apply_transition(booking, BookingStatus.COMPLETED, now)
            booking.photos_delivered = True
            db.commit()
        except IntegrityError:
            db.rollback()
            assets.discard(photo["public_id"] for photo in uploaded)
            raise DeliveryAlreadyExists()
        except Exception:
            db.rollback()
            assets.discard(photo["public_id"] for photo in uploaded)
            raise

        db.refresh(delivery)
        logger.info("Delivery %s created for booking %s with %d photos", delivery.id, booking_id, delivery.photo_count)

        if notify_safely(notifier.send_photo_delivery, booking, delivery, expires_at=delivery.expires_at):
            delivery.notified_at = _utcnow()
            db.commit()
            db.refresh(delivery)
        return delivery

    @staticmethod
    def _get_by_booking(db: Session, booking_id: int) -> Delivery:
        delivery = db.query(Delivery).filter(Delivery.booking_id == booking_id).first()
        if not delivery:
            raise DeliveryNotFound()
        return delivery

    @staticmethod
    def _authorize(delivery: Delivery, user: User, password: Optional[str]) -> None:
        if user.is_admin or delivery.booking.user_id == user.id:
            return
        if not delivery.is_public:
            raise Forbidden("You are not authorized to view this delivery")
        if delivery.password_hash and not verify_password(password, delivery.password_hash):
            raise Forbidden("Invalid delivery password")

    @staticmethod
    def _ensure_not_expired(delivery: Delivery) -> None:
        expires_at = _as_aware(delivery.expires_at)
        if expires_at is not None and expires_at <= _utcnow():
            raise DeliveryExpired()

    @staticmethod
    def _bump(db: Session, delivery: Delivery, column) -> None:
        db.execute(
            update(Delivery)
            .where(Delivery.id == delivery.id)
            .values({column: column + 1})
            .execution_options(synchronize_session=False)
        )
        db.commit()
        db.refresh(delivery)

    @staticmethod
    def get_delivery(db: Session, booking_id: int, user: User, password: Optional[str] = None) -> Delivery:
        delivery = DeliveryService._get_by_booking(db, booking_id)
        DeliveryService._authorize(delivery, user, password)
        DeliveryService._ensure_not_expired(delivery)
        DeliveryService._bump(db, delivery, Delivery.views)
        return delivery

    @staticmethod
    def download_delivery(db: Session, booking_id: int, user: User, password: Optional[str] = None) -> Delivery:
        delivery = DeliveryService._get_by_booking(db, booking_id)
        DeliveryService._authorize(delivery, user, password)
        if not delivery.allow_download:
            raise DownloadsDisabled()
        DeliveryService._ensure_not_expired(delivery)
        DeliveryService._bump(db, delivery, Delivery.downloads)
        return delivery

    @staticmethod
    def list_my_deliveries(db: Session, user: User) -> List[Delivery]:
        return db.query(Delivery).join(Booking).filter(
            Booking.user_id == user.id
        ).order_by(Delivery.created_at.desc(), Delivery.id.desc()).all()

    @staticmethod
    def add_photos(db: Session, assets, delivery_id: int, photos: Sequence[PhotoUpload]) -> Delivery:
        """Append photos to an existing album; existing entries keep their order."""
        delivery = db.query(Delivery).filter(Delivery.id == delivery_id).first()
        if not delivery:
            raise DeliveryNotFound()
        if not photos:
            raise EmptyDelivery()

        uploaded = assets.upload_many(photos, folder=DeliveryService._folder(delivery.booking_id))
        try:
            delivery = db.query(Delivery).filter(Delivery.id == delivery_id).with_for_update().first()
            existing = list(delivery.photos or [])
            # JSON columns only detect reassignment, not in-place mutation
            delivery.photos = existing + _photo_entries(uploaded, delivery.watermark_enabled, start=len(existing))
            db.commit()
        except Exception:
            db.rollback()
            assets.discard(photo["public_id"] for photo in uploaded)
            raise

        db.refresh(delivery)
        logger.info("Added %d photos to delivery %s", len(uploaded), delivery.id)
        return delivery

    @staticmethod
    def delete_delivery(db: Session, assets, delivery_id: int) -> None:
        """Remove a delivery (admin); its stored photos are cleaned up best effort."""
        try:
            delivery = db.query(Delivery).filter(Delivery.id == delivery_id).with_for_update().first()
            if not delivery:
                raise DeliveryNotFound()
            public_ids = [photo["public_id"] for photo in delivery.photos or [] if photo.get("public_id")]
            booking = db.query(Booking).filter(Booking.id == delivery.booking_id).with_for_update().first()
            if booking:
                booking.photos_delivered = False
            db.delete(delivery)
            db.commit()
        except Exception:
            db.rollback()
            raise

        assets.discard(public_ids)
        logger.info("Deleted delivery %s and %d photos", delivery_id, len(public_ids))
