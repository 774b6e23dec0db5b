"""FastAPI routers package."""

from .admin import router as admin_router
from .booking import router as booking_router
from .health import router as health_router
from .metrics import router as metrics_router
from .seats import router as seats_router
from .trip import router as trip_router

__all__ = [
    "admin_router",
    "booking_router",
    "health_router",
    "metrics_router",
    "seats_router",
    "trip_router",
]
