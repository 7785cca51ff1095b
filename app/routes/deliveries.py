from datetime import datetime
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status as http_status
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session
from typing import List, Optional

from app.core.context import AppContext
from app.core.dependencies import get_context, get_current_user, require_admin
from app.core.exceptions import ValidationError
from app.database import get_db
from app.models.user import User
from app.schemas.delivery import DeliveryOptions, DeliveryResponse, DownloadResponse
from app.services.delivery_service import DeliveryService

router = APIRouter()

def _uploads(photos: Optional[List[UploadFile]]):
    return [(photo.filename, photo.file) for photo in photos or []]

@router.post("/{booking_id}", response_model=DeliveryResponse, status_code=http_status.HTTP_201_CREATED)
def create_delivery(
    booking_id: int,
    album_name: str = Form(...),
    description: Optional[str] = Form(None),
    expires_at: Optional[datetime] = Form(None),
    password: Optional[str] = Form(None),
    is_public: bool = Form(False),
    allow_download: bool = Form(True),
    watermark_enabled: bool = Form(False),
    photos: Optional[List[UploadFile]] = File(None),
    current_user: User = Depends(require_admin),
    context: AppContext = Depends(get_context),
    db: Session = Depends(get_db)
):
    """Upload the finished photos for a booking and notify the client (admin)"""
    try:
        options = DeliveryOptions(
            album_name=album_name,
            description=description,
            expires_at=expires_at,
            password=password or None,
            is_public=is_public,
            allow_download=allow_download,
            watermark_enabled=watermark_enabled,
        )
    except PydanticValidationError as e:
        raise ValidationError(e.errors()[0]["msg"])

    return DeliveryService.create_delivery(
        db, context.assets, context.notifier, booking_id, _uploads(photos), options
    )

@router.get("/my", response_model=List[DeliveryResponse])
def get_my_deliveries(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return DeliveryService.list_my_deliveries(db, current_user)

@router.get("/{booking_id}", response_model=DeliveryResponse)
def get_delivery(
    booking_id: int,
    password: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """View a delivered album"""
    return DeliveryService.get_delivery(db, booking_id, current_user, password)

@router.get("/{booking_id}/download", response_model=DownloadResponse)
def download_delivery(
    booking_id: int,
    password: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Download links for every photo in the album"""
    delivery = DeliveryService.download_delivery(db, booking_id, current_user, password)
    return {
        "delivery_id": delivery.id,
        "photos": [
            {"url": photo["url"], "filename": photo.get("filename")}
            for photo in sorted(delivery.photos, key=lambda p: p["order"])
        ],
    }

@router.post("/{delivery_id}/photos", response_model=DeliveryResponse)
def add_photos(
    delivery_id: int,
    photos: Optional[List[UploadFile]] = File(None),
    current_user: User = Depends(require_admin),
    context: AppContext = Depends(get_context),
    db: Session = Depends(get_db)
):
    """Append photos to an existing delivery (admin)"""
    return DeliveryService.add_photos(db, context.assets, delivery_id, _uploads(photos))

@router.delete("/{delivery_id}")
def delete_delivery(
    delivery_id: int,
    current_user: User = Depends(require_admin),
    context: AppContext = Depends(get_context),
    db: Session = Depends(get_db)
):
    """Delete a delivery and its photos (admin)"""
    DeliveryService.delete_delivery(db, context.assets, delivery_id)
    return {"message": "Delivery deleted successfully"}
