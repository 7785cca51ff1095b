from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime
from decimal import Decimal

from app.models.package import PackageCategory

class PackageResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    price: Decimal
    deposit_percentage: int
    max_bookings_per_day: int
    duration_hours: int
    category: PackageCategory
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
