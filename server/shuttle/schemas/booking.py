"""Booking-related Pydantic schemas."""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..models.booking import BookingStatus


class CreateBookingRequest(BaseModel):
    """Request schema for submitting a booking."""

    name: str = Field(..., min_length=1, max_length=255, description="Rider name")
    email: str = Field(..., max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", description="Rider email address")
    phone: str = Field(..., min_length=5, max_length=32, description="Rider phone number")
    pickup: str = Field(..., min_length=1, max_length=128, description="Pickup location")
    destination: str = Field(..., min_length=1, max_length=128, description="Destination")
    vehicle_type: str = Field(..., min_length=1, max_length=64, description="Vehicle type")
    intended_date: date = Field(..., description="Travel date")
    luggage_count: int = Field(0, ge=0, le=20, description="Pieces of luggage")
    allow_reschedule: bool = Field(False, description="Consent to an automatic next-day move")


class VerifyPaymentRequest(BaseModel):
    """Request schema for verifying a hosted-checkout payment."""

    reference: str = Field(..., min_length=1, max_length=128, description="Gateway payment reference")


class GetBookingRequest(BaseModel):
    """Request schema for getting a booking."""

    booking_id: str = Field(..., description="Booking to retrieve")


class CancelBookingRequest(BaseModel):
    """Request schema for cancelling a booking."""

    booking_id: str = Field(..., description="Booking to cancel")


class RefundRequest(BaseModel):
    """Request schema for asking an operator to refund a cancelled booking."""

    booking_id: str = Field(..., description="Cancelled booking to refund")


class RescheduleBookingRequest(BaseModel):
    """Request schema for an operator moving a booking to another date."""

    booking_id: str = Field(..., description="Booking to move")
    new_date: date = Field(..., description="New travel date")


class SetBookingStatusRequest(BaseModel):
    """Request schema for an operator status override."""

    booking_id: str = Field(..., description="Booking to update")
    status: BookingStatus = Field(..., description="Target status")


class DeleteBookingRequest(BaseModel):
    """Request schema for purging a booking."""

    booking_id: str = Field(..., description="Booking to delete")


class DeleteBookingRangeRequest(BaseModel):
    """Request schema for purging bookings by creation date."""

    start: Optional[date] = Field(None, description="First creation date to purge (inclusive)")
    end: Optional[date] = Field(None, description="Last creation date to purge (inclusive)")


class Booking(BaseModel):
    """Booking response schema."""

    id: str = Field(..., description="Unique booking ID")
    name: str = Field(..., description="Rider name")
    email: str = Field(..., description="Rider email address")
    phone: str = Field(..., description="Rider phone number")
    pickup: str = Field(..., description="Pickup location")
    destination: str = Field(..., description="Destination")
    vehicle_type: str = Field(..., description="Vehicle type")
    intended_date: str = Field(..., description="Travel date (YYYY-MM-DD)")
    luggage_count: int = Field(..., ge=0, description="Pieces of luggage")
    total_fare: int = Field(..., ge=0, description="Fare charged for the seat")
    allow_reschedule: bool = Field(..., description="Consent to an automatic next-day move")
    status: BookingStatus = Field(..., description="Booking status")
    trip_id: Optional[str] = Field(None, description="Trip currently holding the seat")
    payment_reference: Optional[str] = Field(None, description="Gateway payment reference")
    confirmed_date: Optional[str] = Field(None, description="Date the trip was confirmed for")
    rescheduled_count: int = Field(..., ge=0, description="Times the booking has been moved")
    created_at: datetime = Field(..., description="Booking creation time (ISO 8601)")

    model_config = {"from_attributes": True}


class CreateBookingResponse(BaseModel):
    """Response schema for a submitted booking."""

    booking: Booking = Field(..., description="The stored booking")
    authorization_url: Optional[str] = Field(
        None,
        description="Hosted checkout to redirect the rider to when payment is enabled"
    )
    message: str = Field(..., description="Human-readable outcome")


class DeleteBookingsResponse(BaseModel):
    """Response schema for bulk purges."""

    deleted: int = Field(..., ge=0, description="Number of bookings removed")
