from datetime import date
from typing import Dict, List, Optional, Union

from sqlalchemy.orm import Session

from app.core.exceptions import PackageNotFound, PackageUnavailable
from app.models.booking import Booking, BookingStatus
from app.models.package import Package, PackageCategory

# Short names the storefront uses for the default packages
PACKAGE_ALIASES: Dict[str, str] = {
    "basic": "Basic Package",
    "standard": "Standard Package",
    "premium": "Premium Package",
}


def resolve_alias(identifier: str) -> str:
    return PACKAGE_ALIASES.get(identifier.strip().lower(), identifier.strip())


class PackageService:
    @staticmethod
    def list_packages(db: Session, category: Optional[PackageCategory] = None) -> List[Package]:
        query = db.query(Package).filter(Package.is_active.is_(True))
        if category:
            query = query.filter(Package.category == category)
        return query.order_by(Package.price.asc(), Package.id.asc()).all()

    @staticmethod
    def get_package(db: Session, identifier: Union[int, str], for_update: bool = False) -> Package:
        """Look a package up by id, alias or exact name"""
        query = db.query(Package)
        if for_update:
            query = query.with_for_update()

        if isinstance(identifier, int) or str(identifier).strip().isdigit():
            package = query.filter(Package.id == int(identifier)).first()
        else:
            package = query.filter(Package.name == resolve_alias(str(identifier))).first()

        if not package:
            raise PackageNotFound()
        return package

    @staticmethod
    def count_active_bookings(db: Session, package_id: int, booking_date: date) -> int:
        return db.query(Booking).filter(
            Booking.package_id == package_id,
            Booking.booking_date == booking_date,
            Booking.booking_status != BookingStatus.CANCELLED,
        ).count()

    @staticmethod
    def check_availability(db: Session, identifier: Union[int, str], booking_date: date) -> dict:
        package = PackageService.get_package(db, identifier)
        if not package.is_active:
            raise PackageUnavailable()

        booked = PackageService.count_active_bookings(db, package.id, booking_date)
        remaining = max(package.max_bookings_per_day - booked, 0)
        return {
            "package_id": package.id,
            "date": booking_date,
            "available": remaining > 0,
            "remaining": remaining,
        }
