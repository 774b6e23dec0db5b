"""Models module exporting all database models."""

from .booking import ALLOWED_TRANSITIONS, Booking, BookingStatus, can_transition
from .price_rule import PriceRule
from .trip import Trip

__all__ = [
    # Reference data
    "PriceRule",

    # Seat inventory
    "Trip",

    # Booking entity
    "Booking",
    "BookingStatus",
    "ALLOWED_TRANSITIONS",
    "can_transition",
]
