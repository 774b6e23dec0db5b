"""Booking router for rider-facing booking operations."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..core.dependencies import LIFECYCLE_DEPENDENCY
from ..schemas.booking import (
    Booking,
    CancelBookingRequest,
    CreateBookingRequest,
    CreateBookingResponse,
    GetBookingRequest,
    RefundRequest,
    VerifyPaymentRequest,
)
from ..schemas.common import OperationResult, Problem
from ..services.booking_lifecycle import BookingLifecycle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"])


def _convert_booking_to_schema(booking_model) -> Booking:
    """Convert booking model to schema."""
    return Booking.model_validate(booking_model)


@router.post(
    "/create",
    response_model=CreateBookingResponse,
    status_code=201,
    responses={
        400: {"model": Problem, "description": "Date outside the booking rules or too much luggage"},
        409: {"model": Problem, "description": "Every vehicle for the date is full"},
        422: {"model": Problem, "description": "Route has no capacity rule or is disabled"},
    },
)
async def create_booking(
    request: CreateBookingRequest,
    lifecycle: BookingLifecycle = LIFECYCLE_DEPENDENCY,
) -> JSONResponse:
    """
    Submit a booking and hold a seat for it.

    When online payment is enabled the response carries the hosted
    checkout URL; the held seat lapses if payment does not complete.
    """
    submission = await lifecycle.submit(request)

    if submission.authorization_url:
        message = "Your seat is held. Complete payment to secure it."
    else:
        message = "Your booking has been received."

    response_data = CreateBookingResponse(
        booking=_convert_booking_to_schema(submission.booking),
        authorization_url=submission.authorization_url,
        message=message,
    )
    return JSONResponse(status_code=201, content=response_data.model_dump(mode="json"))


@router.post("/verify-payment", response_model=Booking)
async def verify_payment(
    request: VerifyPaymentRequest,
    lifecycle: BookingLifecycle = LIFECYCLE_DEPENDENCY,
) -> JSONResponse:
    """
    Verify a hosted-checkout payment and mark its booking paid.

    Safe to call repeatedly for the same reference.
    """
    booking = await lifecycle.verify_payment(request.reference)
    return JSONResponse(
        status_code=200,
        content=_convert_booking_to_schema(booking).model_dump(mode="json")
    )


@router.post("/get", response_model=Booking)
async def get_booking(
    request: GetBookingRequest,
    lifecycle: BookingLifecycle = LIFECYCLE_DEPENDENCY,
) -> JSONResponse:
    """Get booking details."""
    booking = await lifecycle.get(request.booking_id)
    return JSONResponse(
        status_code=200,
        content=_convert_booking_to_schema(booking).model_dump(mode="json")
    )


@router.post("/cancel", response_model=Booking)
async def cancel_booking(
    request: CancelBookingRequest,
    lifecycle: BookingLifecycle = LIFECYCLE_DEPENDENCY,
) -> JSONResponse:
    """
    Cancel a booking and release its seat.

    Cancelling an already cancelled booking returns it unchanged.
    """
    booking = await lifecycle.cancel(request.booking_id)
    return JSONResponse(
        status_code=200,
        content=_convert_booking_to_schema(booking).model_dump(mode="json")
    )


@router.post("/request-refund", response_model=OperationResult)
async def request_refund(
    request: RefundRequest,
    lifecycle: BookingLifecycle = LIFECYCLE_DEPENDENCY,
) -> JSONResponse:
    """Ask an operator to refund a cancelled booking."""
    await lifecycle.request_refund(request.booking_id)

    logger.info("Refund request dispatched", extra={"booking_id": request.booking_id})

    response_data = OperationResult(message="Your refund request has been sent to our team.")
    return JSONResponse(status_code=200, content=response_data.model_dump())
