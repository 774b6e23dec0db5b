"""Nightly sweep moving riders off yesterday's under-filled vehicles."""

from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from functools import partial
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import TransactionRunner
from ..core.exceptions import ProblemDetailsException
from ..core.observability import get_logger, metrics_collector
from ..models.booking import Booking, BookingStatus
from ..models.trip import Trip
from ..schemas.sweep import RescheduleFailure, RescheduleReport
from ..schemas.trip import SeatEntry
from .holds import Clock, active_seats, utc_now
from .notifications import NotificationKind, Notifier, booking_payload, notify_safely
from .route_capacity import route_date_of_trip
from .trip_assignment import TripAssignmentService

logger = get_logger(__name__)

# Auto-reschedule happens at most this many times per booking
MAX_AUTO_RESCHEDULES = 1


class _Decision(str, Enum):
    MIGRATE = "migrate"
    SKIP = "skip"
    ESCALATE = "escalate"


@dataclass
class _Preparation:
    decision: _Decision
    booking: Optional[Booking] = None
    previous_date: Optional[str] = None


class RescheduleSweep:
    """Migrates consenting riders from yesterday's under-filled trips to today."""

    def __init__(
        self,
        runner: TransactionRunner,
        assignment: TripAssignmentService,
        notifier: Notifier,
        clock: Clock = utc_now,
        operator_contact: Optional[str] = None,
    ):
        self.runner = runner
        self.assignment = assignment
        self.notifier = notifier
        self.clock = clock
        self.operator_contact = operator_contact or settings.operator_contact

    async def run(self, today: Optional[date] = None) -> RescheduleReport:
        """
        Run the sweep once.

        Dates are compared as calendar strings computed once here, so a
        sweep that straddles midnight still treats one day as "today".

        Args:
            today: Date riders are moved to; the service-timezone date by default
        """
        if today is None:
            today = settings.service_date(self.clock())
        today_str = today.isoformat()
        yesterday_str = (today - timedelta(days=1)).isoformat()

        log = logger.with_context(today=today_str, yesterday=yesterday_str)
        log.info("Reschedule sweep started")

        report = RescheduleReport(today=today_str)
        trips = await self.runner.run(
            partial(self._underfilled_trips, travel_date=yesterday_str),
            description="reschedule scan",
        )
        report.trips_scanned = len(trips)

        for trip_id, passengers in trips:
            for entry in passengers:
                report.passengers_processed += 1
                await self._migrate(entry, trip_id, today_str, report)

            # Riders left behind are unlinked along with the trip
            await self.runner.run(
                partial(self._delete_trip, trip_id=trip_id),
                lock_key=route_date_of_trip(trip_id),
                description="trip removal",
            )

        metrics_collector.record_reschedule_outcome("migrated", report.migrated)
        metrics_collector.record_reschedule_outcome("skipped", report.skipped)
        metrics_collector.record_reschedule_outcome("escalated", report.escalated)
        metrics_collector.record_reschedule_outcome("failed", report.failed)

        log.info(
            "Reschedule sweep finished",
            trips_scanned=report.trips_scanned,
            passengers_processed=report.passengers_processed,
            migrated=report.migrated,
            skipped=report.skipped,
            escalated=report.escalated,
            failed=report.failed,
        )
        return report

    async def _underfilled_trips(self, session: AsyncSession, travel_date: str) -> list[tuple[str, list[SeatEntry]]]:
        result = await session.execute(
            select(Trip)
            .where(Trip.date == travel_date, Trip.is_full.is_(False))
            .order_by(Trip.price_rule_id, Trip.vehicle_index)
        )
        now = self.clock()
        return [(trip.id, active_seats(trip.seat_entries, now)) for trip in result.scalars().all()]

    async def _migrate(self, entry: SeatEntry, trip_id: str, today: str, report: RescheduleReport) -> None:
        try:
            prepared = await self.runner.run(
                partial(self._prepare, booking_id=entry.booking_id, today=today),
                description="reschedule prepare",
            )

            if prepared.decision == _Decision.SKIP:
                report.skipped += 1
                return

            if prepared.decision == _Decision.ESCALATE:
                report.skipped += 1
                report.escalated += 1
                logger.warning(
                    "Booking already auto-rescheduled, escalating",
                    booking_id=entry.booking_id,
                    trip_id=trip_id,
                )
                await notify_safely(
                    self.notifier,
                    NotificationKind.RESCHEDULE_ESCALATION_ALERT,
                    self.operator_contact,
                    booking_payload(prepared.booking, trip_id=trip_id),
                )
                return

            booking = prepared.booking
            await self.assignment.assign(booking)
            report.migrated += 1
            await notify_safely(
                self.notifier,
                NotificationKind.BOOKING_RESCHEDULED_AUTO,
                booking.email,
                booking_payload(booking, old_date=prepared.previous_date, new_date=today),
            )
        except Exception as e:
            reason = e.reason if isinstance(e, ProblemDetailsException) else str(e)
            report.failed += 1
            report.errors.append(RescheduleFailure(booking_id=entry.booking_id, trip_id=trip_id, reason=reason))
            logger.error(
                "Reschedule failed for booking",
                booking_id=entry.booking_id,
                trip_id=trip_id,
                error=reason,
            )

    async def _prepare(self, session: AsyncSession, booking_id: str, today: str) -> _Preparation:
        booking = await session.get(Booking, booking_id)
        if booking is None:
            return _Preparation(_Decision.SKIP)

        if not booking.allow_reschedule or booking.booking_status in (BookingStatus.CANCELLED, BookingStatus.REFUNDED):
            return _Preparation(_Decision.SKIP, booking)

        if booking.rescheduled_count >= MAX_AUTO_RESCHEDULES:
            return _Preparation(_Decision.ESCALATE, booking)

        previous_date = booking.intended_date
        booking.trip_id = None
        booking.intended_date = today
        booking.rescheduled_count += 1
        return _Preparation(_Decision.MIGRATE, booking, previous_date)

    async def _delete_trip(self, session: AsyncSession, trip_id: str) -> None:
        result = await session.execute(select(Booking).where(Booking.trip_id == trip_id))
        for booking in result.scalars().all():
            booking.trip_id = None

        trip = await session.get(Trip, trip_id)
        if trip is not None:
            await session.delete(trip)
