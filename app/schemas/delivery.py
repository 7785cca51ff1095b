from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime

class DeliveryOptions(BaseModel):
    album_name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    expires_at: Optional[datetime] = None
    password: Optional[str] = Field(default=None, min_length=4, max_length=72)
    is_public: bool = False
    allow_download: bool = True
    watermark_enabled: bool = False

class DeliveryPhoto(BaseModel):
    url: str
    public_id: str
    filename: Optional[str] = None
    size: Optional[int] = None
    format: Optional[str] = None
    watermarked: bool = False
    order: int

class DeliveryResponse(BaseModel):
    id: int
    booking_id: int
    album_name: str
    description: Optional[str] = None
    photos: List[DeliveryPhoto]
    photo_count: int
    expires_at: Optional[datetime] = None
    has_password: bool
    is_public: bool
    allow_download: bool
    watermark_enabled: bool
    views: int
    downloads: int
    notified_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class DownloadLink(BaseModel):
    url: str
    filename: Optional[str] = None

class DownloadResponse(BaseModel):
    delivery_id: int
    photos: List[DownloadLink]
