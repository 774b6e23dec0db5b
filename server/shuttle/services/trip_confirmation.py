"""Promotes paid riders to Confirmed once their vehicle is fully paid."""

import logging
from functools import partial

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import TransactionRunner
from ..core.observability import metrics_collector
from ..models.booking import Booking, BookingStatus
from ..models.trip import Trip
from .notifications import NotificationKind, Notifier, booking_payload, notify_safely
from .route_capacity import price_rule_of_trip, route_date_of_trip

logger = logging.getLogger(__name__)

_COUNTED_STATUSES = (BookingStatus.PAID, BookingStatus.CONFIRMED)


class TripConfirmationChecker:
    """Confirms a trip's riders when paid and confirmed riders fill its capacity."""

    def __init__(self, runner: TransactionRunner, notifier: Notifier):
        self.runner = runner
        self.notifier = notifier

    async def check_and_confirm(self, trip_id: str) -> list[Booking]:
        """
        Re-evaluate one trip and confirm its paid riders if it is full.

        Pending holds never count, so a vehicle with unpaid seats stays
        unconfirmed. Riders already Confirmed are left alone, which makes
        a repeated call with no state change write nothing.

        Returns:
            Bookings moved from Paid to Confirmed by this call
        """
        confirmed = await self.runner.run(
            partial(self._confirm, trip_id=trip_id),
            lock_key=route_date_of_trip(trip_id),
            description="trip confirmation",
        )
        if not confirmed:
            return confirmed

        metrics_collector.record_bookings_confirmed(price_rule_of_trip(trip_id), len(confirmed))
        logger.info(
            "Trip confirmed",
            extra={"trip_id": trip_id, "bookings_confirmed": [b.id for b in confirmed]}
        )

        for booking in confirmed:
            await notify_safely(
                self.notifier,
                NotificationKind.BOOKING_CONFIRMED,
                booking.email,
                booking_payload(booking),
            )
        return confirmed

    async def _confirm(self, session: AsyncSession, trip_id: str) -> list[Booking]:
        trip = await session.get(Trip, trip_id)
        if trip is None:
            return []

        booking_ids = {entry.booking_id for entry in trip.seat_entries}
        if not booking_ids:
            return []

        result = await session.execute(select(Booking).where(Booking.id.in_(booking_ids)))
        bookings = list(result.scalars().all())

        counted = [b for b in bookings if b.booking_status in _COUNTED_STATUSES]
        if len(counted) < trip.capacity:
            return []

        to_confirm = [b for b in bookings if b.booking_status == BookingStatus.PAID]
        for booking in to_confirm:
            booking.status = BookingStatus.CONFIRMED
            booking.confirmed_date = trip.date
        return to_confirm
