"""Trip and seat-related Pydantic schemas."""

from datetime import date as Date
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class SeatEntry(BaseModel):
    """One passenger's seat inside a trip's seat list."""

    booking_id: str = Field(..., description="Booking occupying the seat")
    name: str = Field(..., description="Rider name")
    phone: str = Field(..., description="Rider phone number")
    hold_expires_at: Optional[datetime] = Field(
        None,
        description="When an unpaid hold lapses; absent for paid seats"
    )

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class Trip(BaseModel):
    """Trip (vehicle instance) response schema."""

    id: str = Field(..., description="Deterministic trip ID")
    price_rule_id: str = Field(..., description="Route rule the trip belongs to")
    pickup: str = Field(..., description="Pickup location")
    destination: str = Field(..., description="Destination")
    vehicle_type: str = Field(..., description="Vehicle type")
    date: str = Field(..., description="Travel date (YYYY-MM-DD)")
    vehicle_index: int = Field(..., ge=1, description="Ordinal of this vehicle for the route and date")
    capacity: int = Field(..., ge=1, description="Seats in this vehicle")
    passengers: List[SeatEntry] = Field(default_factory=list, description="Seat entries as stored")
    active_seats: int = Field(..., ge=0, description="Seats currently occupied after hold expiry")
    is_full: bool = Field(..., description="Whether active seats have reached capacity")


class ListTripsRequest(BaseModel):
    """Request schema for listing trips."""

    date: Optional[Date] = Field(None, description="Only trips on this travel date")


class ListTripsResponse(BaseModel):
    """Trip listing response schema."""

    trips: List[Trip] = Field(..., description="Trips ordered by date, route and vehicle index")


class SeatAvailabilityRequest(BaseModel):
    """Request schema for checking seat availability on a route."""

    pickup: str = Field(..., min_length=1, max_length=128, description="Pickup location")
    destination: str = Field(..., min_length=1, max_length=128, description="Destination")
    vehicle_type: str = Field(..., min_length=1, max_length=64, description="Vehicle type")
    date: Date = Field(..., description="Travel date")


class SeatAvailability(BaseModel):
    """Seat availability response schema."""

    available_seats: int = Field(..., ge=0, description="Seats still bookable for the date")
    total_capacity: int = Field(..., ge=0, description="Seats across every allocated vehicle")
    is_full: bool = Field(..., description="True when no seat can be booked")
