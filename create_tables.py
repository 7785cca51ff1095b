import logging
import os
import sys
from decimal import Decimal

# Add the current directory to sys.path so we can import from app
sys.path.append(os.getcwd())

from app.core.config import settings
from app.database import Base, build_engine, build_session_factory
# Import all models to ensure they are registered with Base.metadata
from app.models import Package, PackageCategory

logger = logging.getLogger("create_tables")

DEFAULT_PACKAGES = [
    {
        "name": "Basic Package",
        "description": "2 hours of coverage and 50 edited high-resolution images",
        "price": Decimal("499.00"),
        "deposit_percentage": 30,
        "max_bookings_per_day": 3,
        "duration_hours": 2,
        "category": PackageCategory.EVENT,
    },
    {
        "name": "Standard Package",
        "description": "6 hours of coverage, 200 edited images and a second photographer",
        "price": Decimal("999.00"),
        "deposit_percentage": 30,
        "max_bookings_per_day": 2,
        "duration_hours": 6,
        "category": PackageCategory.WEDDING,
    },
    {
        "name": "Premium Package",
        "description": "Full day coverage, 500+ edited images, album and drone photography",
        "price": Decimal("1999.00"),
        "deposit_percentage": 50,
        "max_bookings_per_day": 1,
        "duration_hours": 12,
        "category": PackageCategory.WEDDING,
    },
]


def create_tables(engine) -> None:
    logger.info("Creating tables in database...")
    # This checks the DB and creates any missing tables defined in your models
    Base.metadata.create_all(bind=engine)
    logger.info("Tables created: %s", ", ".join(sorted(Base.metadata.tables)))


def seed_packages(session_factory) -> int:
    """Insert the default packages that are not there yet. Returns how many were added."""
    db = session_factory()
    added = 0
    try:
        for data in DEFAULT_PACKAGES:
            if db.query(Package.id).filter(Package.name == data["name"]).first():
                continue
            db.add(Package(**data))
            added += 1
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
    logger.info("Seeded %d package(s)", added)
    return added


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL.upper())
    engine = build_engine(settings)
    try:
        create_tables(engine)
        seed_packages(build_session_factory(engine))
    finally:
        engine.dispose()
