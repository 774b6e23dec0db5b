"""Operator router for booking overrides and sweeps."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..core.dependencies import CLEANUP_DEPENDENCY, LIFECYCLE_DEPENDENCY, RESCHEDULE_DEPENDENCY
from ..schemas.booking import (
    Booking,
    DeleteBookingRangeRequest,
    DeleteBookingRequest,
    DeleteBookingsResponse,
    RescheduleBookingRequest,
    SetBookingStatusRequest,
)
from ..schemas.sweep import CleanupReport, CleanupRequest, RescheduleReport, RescheduleRequest
from ..services.booking_lifecycle import BookingLifecycle
from ..services.cleanup import CleanupSweep
from ..services.reschedule import RescheduleSweep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/admin", tags=["admin"])


@router.post("/booking/reschedule", response_model=Booking)
async def reschedule_booking(
    request: RescheduleBookingRequest,
    lifecycle: BookingLifecycle = LIFECYCLE_DEPENDENCY,
) -> JSONResponse:
    """Move a booking to another date and seat it there."""
    booking = await lifecycle.reschedule(request.booking_id, request.new_date)
    return JSONResponse(
        status_code=200,
        content=Booking.model_validate(booking).model_dump(mode="json")
    )


@router.post("/booking/status", response_model=Booking)
async def set_booking_status(
    request: SetBookingStatusRequest,
    lifecycle: BookingLifecycle = LIFECYCLE_DEPENDENCY,
) -> JSONResponse:
    """Override a booking's status."""
    booking = await lifecycle.set_status(request.booking_id, request.status)

    logger.info(
        "Booking status overridden",
        extra={"booking_id": request.booking_id, "status": request.status.value}
    )

    return JSONResponse(
        status_code=200,
        content=Booking.model_validate(booking).model_dump(mode="json")
    )


@router.post("/booking/delete", response_model=DeleteBookingsResponse)
async def delete_booking(
    request: DeleteBookingRequest,
    lifecycle: BookingLifecycle = LIFECYCLE_DEPENDENCY,
) -> JSONResponse:
    """Purge one booking and free its seat."""
    await lifecycle.delete(request.booking_id)
    return JSONResponse(status_code=200, content=DeleteBookingsResponse(deleted=1).model_dump())


@router.post("/booking/delete-range", response_model=DeleteBookingsResponse)
async def delete_bookings_in_range(
    request: DeleteBookingRangeRequest,
    lifecycle: BookingLifecycle = LIFECYCLE_DEPENDENCY,
) -> JSONResponse:
    """Purge every booking created in a date range, or all bookings."""
    deleted = await lifecycle.delete_in_range(request.start, request.end)
    return JSONResponse(status_code=200, content=DeleteBookingsResponse(deleted=deleted).model_dump())


@router.post("/sweep/cleanup", response_model=CleanupReport)
async def run_cleanup(
    request: CleanupRequest,
    sweep: CleanupSweep = CLEANUP_DEPENDENCY,
) -> JSONResponse:
    """Drop expired holds and the listed bookings from every trip."""
    modified = await sweep.cleanup(request.deleted_booking_ids)
    return JSONResponse(status_code=200, content=CleanupReport(trips_modified=modified).model_dump())


@router.post("/sweep/reschedule", response_model=RescheduleReport)
async def run_reschedule(
    request: RescheduleRequest,
    sweep: RescheduleSweep = RESCHEDULE_DEPENDENCY,
) -> JSONResponse:
    """Move consenting riders off yesterday's under-filled trips."""
    report = await sweep.run(request.today)
    return JSONResponse(status_code=200, content=report.model_dump(mode="json"))
