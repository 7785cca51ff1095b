from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.package import PackageCategory
from app.schemas.booking import AvailabilityResponse
from app.schemas.package import PackageResponse
from app.services.package_service import PackageService

router = APIRouter()

@router.get("", response_model=List[PackageResponse])
def list_packages(
    category: Optional[PackageCategory] = Query(None),
    db: Session = Depends(get_db)
):
    """List active packages, cheapest first"""
    return PackageService.list_packages(db, category)

@router.get("/{identifier}", response_model=PackageResponse)
def get_package(identifier: str, db: Session = Depends(get_db)):
    """Get a package by id, short name (basic/standard/premium) or full name"""
    return PackageService.get_package(db, identifier)

@router.get("/{identifier}/availability", response_model=AvailabilityResponse)
def check_availability(
    identifier: str,
    booking_date: date = Query(..., alias="date"),
    db: Session = Depends(get_db)
):
    """How many bookings are still possible for the package on a date"""
    return PackageService.check_availability(db, identifier, booking_date)
