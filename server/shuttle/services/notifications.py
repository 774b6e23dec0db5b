"""Rider and operator notifications."""

import logging
from enum import Enum
from typing import Any, Optional, Protocol

import httpx

from ..core.config import settings
from ..core.exceptions import ExternalServiceError
from ..core.observability import metrics_collector
from ..models.booking import Booking

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    """Notification kinds understood by the delivery sink."""
    BOOKING_RECEIVED = "booking-received"
    BOOKING_CONFIRMED = "booking-confirmed"
    BOOKING_CANCELLED = "booking-cancelled"
    BOOKING_REFUNDED = "booking-refunded"
    BOOKING_RESCHEDULED_AUTO = "booking-rescheduled-auto"
    BOOKING_RESCHEDULED_MANUAL = "booking-rescheduled-manual"
    CAPACITY_OVERFLOW_ALERT = "capacity-overflow-alert"
    RESCHEDULE_ESCALATION_ALERT = "reschedule-escalation-alert"
    REFUND_REQUEST = "refund-request"


class Notifier(Protocol):
    async def send(self, kind: NotificationKind, recipient: str, payload: dict[str, Any]) -> None:
        """Deliver one notification, raising ExternalServiceError on failure."""


class LogNotifier:
    """Writes notifications to the application log instead of delivering them."""

    async def send(self, kind: NotificationKind, recipient: str, payload: dict[str, Any]) -> None:
        logger.info(
            "Notification",
            extra={"kind": NotificationKind(kind).value, "recipient": recipient, "payload": payload}
        )


class WebhookNotifier:
    """Posts notifications to a delivery webhook (email relay, chat bridge)."""

    def __init__(self, url: str, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    async def send(self, kind: NotificationKind, recipient: str, payload: dict[str, Any]) -> None:
        body = {"kind": NotificationKind(kind).value, "recipient": recipient, "payload": payload}
        try:
            if self._client is not None:
                response = await self._client.post(self.url, json=body, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.url, json=body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ExternalServiceError("notification", f"Could not deliver {body['kind']}: {e}") from e


def build_notifier() -> Notifier:
    if settings.notification_webhook_url:
        return WebhookNotifier(settings.notification_webhook_url)
    return LogNotifier()


async def notify_safely(
    notifier: Notifier,
    kind: NotificationKind,
    recipient: str,
    payload: dict[str, Any],
) -> bool:
    """
    Send a notification whose failure must not undo the caller's work.

    Returns:
        True if the sink accepted the notification
    """
    try:
        await notifier.send(kind, recipient, payload)
        return True
    except Exception as e:
        metrics_collector.record_notification_failure(NotificationKind(kind).value)
        logger.error(
            "Notification failed",
            extra={"kind": NotificationKind(kind).value, "recipient": recipient, "error": str(e)}
        )
        return False


def booking_payload(booking: Booking, **extra: Any) -> dict[str, Any]:
    """Payload describing a booking, shared by rider and operator messages."""
    payload = {
        "booking_id": booking.id,
        "name": booking.name,
        "email": booking.email,
        "phone": booking.phone,
        "pickup": booking.pickup,
        "destination": booking.destination,
        "vehicle_type": booking.vehicle_type,
        "intended_date": booking.intended_date,
        "total_fare": booking.total_fare,
        "status": booking.booking_status.value,
    }
    if booking.confirmed_date:
        payload["confirmed_date"] = booking.confirmed_date
    payload.update(extra)
    return payload
