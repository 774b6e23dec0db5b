"""Trip router for listing vehicle instances."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..core.dependencies import ASSIGNMENT_DEPENDENCY
from ..schemas.trip import ListTripsRequest, ListTripsResponse
from ..services.trip_assignment import TripAssignmentService

router = APIRouter(prefix="/v1/trip", tags=["trip"])


@router.post("/list", response_model=ListTripsResponse)
async def list_trips(
    request: ListTripsRequest,
    assignment: TripAssignmentService = ASSIGNMENT_DEPENDENCY,
) -> JSONResponse:
    """List trips with their seat lists, optionally for a single date."""
    trips = await assignment.list_trips(request.date)
    response_data = ListTripsResponse(trips=trips)
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
