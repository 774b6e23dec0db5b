"""Sweep request and report schemas."""

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field


class CleanupRequest(BaseModel):
    """Request schema for an ad-hoc cleanup pass."""

    deleted_booking_ids: List[str] = Field(
        default_factory=list,
        description="Bookings whose seats must be dropped regardless of hold state"
    )


class CleanupReport(BaseModel):
    """Outcome of a cleanup pass."""

    trips_modified: int = Field(..., ge=0, description="Trips whose seat list was rewritten")


class RescheduleRequest(BaseModel):
    """Request schema for triggering the reschedule sweep."""

    today: Optional[date] = Field(None, description="Override for the sweep's current date")


class RescheduleFailure(BaseModel):
    """One passenger the sweep could not move."""

    booking_id: str = Field(..., description="Affected booking")
    trip_id: str = Field(..., description="Trip the passenger was on")
    reason: str = Field(..., description="Why the move failed")


class RescheduleReport(BaseModel):
    """Outcome of a reschedule sweep."""

    today: str = Field(..., description="Date passengers were moved to")
    trips_scanned: int = Field(0, ge=0, description="Under-filled trips from yesterday")
    passengers_processed: int = Field(0, ge=0, description="Seat entries examined")
    migrated: int = Field(0, ge=0, description="Passengers placed on a trip for today")
    skipped: int = Field(0, ge=0, description="Passengers left alone")
    escalated: int = Field(0, ge=0, description="Skipped passengers referred to an operator")
    failed: int = Field(0, ge=0, description="Passengers whose reassignment failed")
    errors: List[RescheduleFailure] = Field(default_factory=list, description="Failure details")
