"""Domain errors rendered as RFC 9457 Problem Details."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

PROBLEM_BASE_URI = "https://example.com/problems"


class ProblemDetailsException(HTTPException):
    """
    Base class for every error the API reports.

    Subclasses set the class attributes below; the instance carries the
    rendered ``problem_details`` body. ``code`` is the machine readable
    failure code and ``retryable`` tells clients whether the same call
    may succeed later.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    status: int = 500
    title: str = "Internal Server Error"
    slug: Optional[str] = None
    error_code: Optional[str] = None
    retryable: bool = False

    def __init__(
        self,
        detail: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        title: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        status_code = status_code or self.status
        self.title = title or self.title
        self.type_uri = f"{PROBLEM_BASE_URI}/{self.slug}" if self.slug else f"about:blank#{status_code}"

        body: Dict[str, Any] = {
            "type": self.type_uri,
            "title": self.title,
            "status": status_code,
        }
        if detail:
            body["detail"] = detail
        if instance:
            body["instance"] = instance
        if self.error_code:
            body["code"] = self.error_code
            body["retryable"] = self.retryable
        body.update(extensions or {})
        self.problem_details = body

        super().__init__(status_code=status_code, detail=body, headers=headers)

    @property
    def code(self) -> Optional[str]:
        return self.problem_details.get("code")

    @property
    def reason(self) -> str:
        """Text suitable for riders and operator alerts."""
        return self.problem_details.get("detail") or self.title


class ValidationError(ProblemDetailsException):
    status = 400
    title = "Validation Error"
    slug = "validation-error"
    error_code = "VALIDATION"

    def __init__(self, detail: str = "The request data failed validation", errors: Optional[Dict[str, Any]] = None):
        super().__init__(detail, extensions={"errors": errors} if errors else None)


class NotFoundError(ProblemDetailsException):
    status = 404
    title = "Resource Not Found"
    slug = "resource-not-found"
    error_code = "NOT_FOUND"

    def __init__(self, resource_type: str = "resource", resource_id: Optional[str] = None):
        detail = f"No {resource_type} with ID '{resource_id}'" if resource_id else f"No such {resource_type}"
        extensions = {"resource_type": resource_type}
        if resource_id:
            extensions["resource_id"] = resource_id
        super().__init__(detail, extensions=extensions)


class ConflictError(ProblemDetailsException):
    """The request clashes with the current state of a booking or trip."""

    status = 409
    title = "Resource Conflict"
    slug = "resource-conflict"
    error_code = "CONFLICT"


class RouteUnavailableError(ProblemDetailsException):
    """No capacity rule exists for the route, or the operator disabled it."""

    NO_CAPACITY_RULE = "NO_CAPACITY_RULE"
    ROUTE_DISABLED = "ROUTE_DISABLED"

    status = 422
    title = "Route Unavailable"
    slug = "route-unavailable"

    def __init__(self, price_rule_id: str, code: str = NO_CAPACITY_RULE):
        self.error_code = code
        if code == self.ROUTE_DISABLED:
            detail = "This route is currently unavailable. No vehicles are allocated for it."
        else:
            detail = "This route is unavailable. No pricing or capacity is configured for it."
        super().__init__(detail, extensions={"price_rule_id": price_rule_id})
        self.price_rule_id = price_rule_id


class TripFullError(ConflictError):
    """Every allocated vehicle for the route and date is full."""

    title = "Trip Full"
    slug = "trip-full"
    error_code = "TRIP_FULL"

    def __init__(self, route_date_key: str, vehicle_count: int = 0):
        super().__init__(
            "This trip is full. Please pick another date.",
            extensions={"route_date": route_date_key, "vehicle_count": vehicle_count},
        )
        self.route_date_key = route_date_key


class InvalidBookingStateError(ConflictError):
    """Requested status change is not permitted from the booking's current status."""

    error_code = "INVALID_STATE"

    def __init__(self, booking_id: str, current_status: str, detail: str):
        super().__init__(detail, extensions={"booking_id": booking_id, "current_status": current_status})


class TransactionConflictError(ProblemDetailsException):
    """Concurrent writers kept colliding on the same rows."""

    status = 503
    title = "Busy"
    slug = "conflict-retry"
    error_code = "CONFLICT_RETRY"
    retryable = True

    def __init__(self, operation: str, attempts: int):
        super().__init__(
            f"Could not complete {operation} after {attempts} attempts due to concurrent updates",
            headers={"Retry-After": "1"},
        )
        self.operation = operation
        self.attempts = attempts


class ExternalServiceError(ProblemDetailsException):
    """A collaborator (notification sink or payment gateway) failed."""

    status = 502
    title = "External Service Failure"
    slug = "external-service-failure"
    error_code = "EXTERNAL_SERVICE"
    retryable = True

    def __init__(self, service: str, detail: Optional[str] = None):
        super().__init__(
            detail or f"The {service} service could not complete the request",
            extensions={"service": service},
        )
        self.service = service


class PaymentVerificationError(ProblemDetailsException):
    status = 400
    title = "Payment Not Verified"
    slug = "payment-not-verified"
    error_code = "PAYMENT_NOT_VERIFIED"

    def __init__(self, reference: str, detail: str):
        super().__init__(detail, extensions={"reference": reference})


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.problem_details,
        headers=exc.headers,
        media_type="application/problem+json",
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render anything unexpected as an opaque 500 and log it under an error id."""
    error_id = str(uuid.uuid4())
    logger.exception("Unhandled error", extra={"error_id": error_id, "path": request.url.path})

    return JSONResponse(
        status_code=500,
        content={
            "type": f"{PROBLEM_BASE_URI}/internal-server-error",
            "title": "Internal Server Error",
            "status": 500,
            "detail": "An unexpected error occurred while processing the request",
            "instance": str(request.url),
            "error_id": error_id,
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "code": "INTERNAL",
            "retryable": False,
        },
        media_type="application/problem+json",
    )
