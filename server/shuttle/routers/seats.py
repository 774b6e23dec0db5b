"""Seat availability router."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..core.dependencies import ASSIGNMENT_DEPENDENCY
from ..schemas.trip import SeatAvailability, SeatAvailabilityRequest
from ..services.trip_assignment import TripAssignmentService

router = APIRouter(prefix="/v1/seats", tags=["seats"])


@router.post("/availability", response_model=SeatAvailability)
async def seat_availability(
    request: SeatAvailabilityRequest,
    assignment: TripAssignmentService = ASSIGNMENT_DEPENDENCY,
) -> JSONResponse:
    """
    Seats left on a route for a date.

    Unknown or disabled routes report zero capacity and are full.
    """
    availability = await assignment.availability(
        request.pickup,
        request.destination,
        request.vehicle_type,
        request.date,
    )
    return JSONResponse(status_code=200, content=availability.model_dump())
