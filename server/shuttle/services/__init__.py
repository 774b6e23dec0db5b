"""Service layer package."""

from .booking_lifecycle import BookingLifecycle, BookingSubmission
from .cleanup import CleanupSweep
from .holds import active_seats, is_active, utc_now
from .notifications import LogNotifier, NotificationKind, Notifier, WebhookNotifier, notify_safely
from .payments import PaymentGateway, PaymentInitialization, PaymentVerification, PaystackGateway
from .reschedule import RescheduleSweep
from .route_capacity import VEHICLE_CATALOG, RouteCapacity, RouteCapacityLookup, price_rule_id, route_date_key, trip_id
from .trip_assignment import TripAssignmentService
from .trip_confirmation import TripConfirmationChecker

__all__ = [
    "BookingLifecycle",
    "BookingSubmission",
    "CleanupSweep",
    "LogNotifier",
    "NotificationKind",
    "Notifier",
    "PaymentGateway",
    "PaymentInitialization",
    "PaymentVerification",
    "PaystackGateway",
    "RescheduleSweep",
    "RouteCapacity",
    "RouteCapacityLookup",
    "TripAssignmentService",
    "TripConfirmationChecker",
    "VEHICLE_CATALOG",
    "WebhookNotifier",
    "active_seats",
    "is_active",
    "notify_safely",
    "price_rule_id",
    "route_date_key",
    "trip_id",
    "utc_now",
]
