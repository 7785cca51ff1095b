from .packages import router as packages_router
from .bookings import router as bookings_router
from .payments import router as payments_router
from .deliveries import router as deliveries_router

__all__ = [
    "packages_router",
    "bookings_router",
    "payments_router",
    "deliveries_router"
]
