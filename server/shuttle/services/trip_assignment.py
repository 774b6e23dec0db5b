"""Seat assignment engine: finds or creates a vehicle with a free seat."""

import logging
from datetime import date, timedelta
from functools import partial
from itertools import count
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import TransactionRunner
from ..core.exceptions import (
    InvalidBookingStateError,
    NotFoundError,
    RouteUnavailableError,
    TransactionConflictError,
    TripFullError,
)
from ..core.observability import get_tracer, metrics_collector
from ..models.booking import Booking, BookingStatus
from ..models.trip import Trip
from ..schemas.trip import SeatAvailability, SeatEntry
from ..schemas.trip import Trip as TripSchema
from .holds import Clock, active_seats, utc_now
from .notifications import NotificationKind, Notifier, booking_payload, notify_safely
from .route_capacity import RouteCapacityLookup, price_rule_id, route_date_key, trip_id
from .trip_confirmation import TripConfirmationChecker

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)


async def load_route_trips(session: AsyncSession, rule_id: str, travel_date: str) -> list[Trip]:
    """All vehicle instances for a route and date, lowest ordinal first."""
    result = await session.execute(
        select(Trip)
        .where(Trip.price_rule_id == rule_id, Trip.date == travel_date)
        .order_by(Trip.vehicle_index)
    )
    return list(result.scalars().all())


class TripAssignmentService:
    """
    Places bookings onto vehicle instances.

    The seat write for one route and date happens in a single
    transaction: existing instances are scanned in ordinal order and the
    first with a free active seat takes the booking, otherwise the next
    instance is created while the route's vehicle allocation allows it.
    """

    def __init__(
        self,
        runner: TransactionRunner,
        notifier: Notifier,
        confirmation: Optional[TripConfirmationChecker] = None,
        lookup: Optional[RouteCapacityLookup] = None,
        clock: Clock = utc_now,
        hold_duration: Optional[timedelta] = None,
        operator_contact: Optional[str] = None,
    ):
        self.runner = runner
        self.notifier = notifier
        self.confirmation = confirmation or TripConfirmationChecker(runner, notifier)
        self.lookup = lookup or RouteCapacityLookup()
        self.clock = clock
        self.hold_duration = hold_duration or settings.hold_duration
        self.operator_contact = operator_contact or settings.operator_contact

    async def assign(self, booking: Booking) -> str:
        """
        Reserve a seat for a booking on its intended date.

        Pending bookings receive a hold that lapses after the hold
        duration; any other status takes the seat unconditionally.

        Args:
            booking: Booking snapshot carrying route, date and status

        Returns:
            ID of the trip now holding the seat

        Raises:
            RouteUnavailableError: If the route has no usable rule or is disabled
            TripFullError: If every allocated vehicle is full
            NotFoundError: If the booking no longer exists
            InvalidBookingStateError: If the booking was cancelled or refunded
        """
        rule_id = price_rule_id(booking.pickup, booking.destination, booking.vehicle_type)
        route_date = route_date_key(rule_id, booking.intended_date)
        with tracer.start_as_current_span("trip.assign") as span:
            span.set_attribute("booking.id", booking.id)
            span.set_attribute("trip.route_date", route_date)

            try:
                assigned_trip_id, held = await self.runner.run(
                    partial(self._place_seat, booking=booking),
                    lock_key=route_date,
                    description="seat assignment",
                )
            except TransactionConflictError as e:
                failure = TripFullError(route_date)
                await self._report_failure(booking, failure)
                raise failure from e
            except (RouteUnavailableError, TripFullError) as e:
                await self._report_failure(booking, e)
                raise

            span.set_attribute("trip.id", assigned_trip_id)

        booking.trip_id = assigned_trip_id

        logger.info(
            "Seat assigned",
            extra={
                "booking_id": booking.id,
                "trip_id": assigned_trip_id,
                "held": held,
            }
        )

        try:
            await self.confirmation.check_and_confirm(assigned_trip_id)
        except Exception as e:
            logger.error(
                "Trip confirmation check failed after assignment",
                extra={"trip_id": assigned_trip_id, "booking_id": booking.id, "error": str(e)}
            )

        return assigned_trip_id

    async def _place_seat(self, session: AsyncSession, booking: Booking) -> tuple[str, bool]:
        stored = await self._load_assignable(session, booking.id)
        held = stored.booking_status == BookingStatus.PENDING

        capacity = await self.lookup.resolve(
            session, booking.pickup, booking.destination, booking.vehicle_type
        )
        route_date = route_date_key(capacity.price_rule_id, booking.intended_date)
        now = self.clock()
        trips = await load_route_trips(session, capacity.price_rule_id, booking.intended_date)

        # A retried assignment finds its own seat instead of taking a second one
        for trip in trips:
            if any(entry.booking_id == booking.id for entry in active_seats(trip.seat_entries, now)):
                stored.trip_id = trip.id
                return trip.id, held

        candidate = SeatEntry(
            booking_id=booking.id,
            name=booking.name,
            phone=booking.phone,
            hold_expires_at=now + self.hold_duration if held else None,
        )

        for trip in trips:
            active = active_seats(trip.seat_entries, now)
            if len(active) < trip.capacity:
                seats = active + [candidate]
                trip.replace_seats(seats, len(seats))
                metrics_collector.record_seat_assigned(capacity.price_rule_id, held)
                stored.trip_id = trip.id
                return trip.id, held

        if len(trips) < capacity.vehicle_count:
            used = {trip.vehicle_index for trip in trips}
            vehicle_index = next(index for index in count(1) if index not in used)
            trip = Trip(
                id=trip_id(route_date, vehicle_index),
                price_rule_id=capacity.price_rule_id,
                pickup=booking.pickup,
                destination=booking.destination,
                vehicle_type=booking.vehicle_type,
                date=booking.intended_date,
                vehicle_index=vehicle_index,
                capacity=capacity.capacity_per_vehicle,
            )
            trip.replace_seats([candidate], 1)
            session.add(trip)
            # Surfaces a concurrent creation of the same instance as IntegrityError
            await session.flush()

            metrics_collector.record_trip_created(capacity.price_rule_id)
            metrics_collector.record_seat_assigned(capacity.price_rule_id, held)
            logger.info(
                "Vehicle instance created",
                extra={"trip_id": trip.id, "vehicle_index": vehicle_index, "capacity": trip.capacity}
            )
            stored.trip_id = trip.id
            return trip.id, held

        raise TripFullError(route_date, vehicle_count=capacity.vehicle_count)

    async def _load_assignable(self, session: AsyncSession, booking_id: str) -> Booking:
        """The booking as committed, refused when it can no longer hold a seat."""
        stored = await session.get(Booking, booking_id)
        if stored is None:
            raise NotFoundError(resource_type="booking", resource_id=booking_id)
        status = stored.booking_status
        if status in (BookingStatus.CANCELLED, BookingStatus.REFUNDED):
            raise InvalidBookingStateError(
                booking_id, status.value, f"A {status.value.lower()} booking cannot take a seat"
            )
        return stored

    async def _report_failure(self, booking: Booking, error: Union[RouteUnavailableError, TripFullError]) -> None:
        metrics_collector.record_assignment_failure(error.code or type(error).__name__)
        logger.warning(
            "Seat assignment failed",
            extra={
                "booking_id": booking.id,
                "intended_date": booking.intended_date,
                "code": error.code,
                "reason": error.reason,
            }
        )
        await notify_safely(
            self.notifier,
            NotificationKind.CAPACITY_OVERFLOW_ALERT,
            self.operator_contact,
            booking_payload(booking, reason=error.reason, code=error.code),
        )

    async def availability(
        self,
        pickup: str,
        destination: str,
        vehicle_type: str,
        travel_date: Union[date, str],
    ) -> SeatAvailability:
        """
        Seats still bookable on a route and date.

        Uses the same hold expiry rule as assignment, so a seat shown as
        free here is one ``assign`` would hand out.
        """
        if isinstance(travel_date, date):
            travel_date = travel_date.isoformat()

        async def read(session: AsyncSession) -> SeatAvailability:
            capacity = await self.lookup.find(session, pickup, destination, vehicle_type)
            if capacity is None or capacity.vehicle_count <= 0:
                return SeatAvailability(available_seats=0, total_capacity=0, is_full=True)

            now = self.clock()
            trips = await load_route_trips(session, capacity.price_rule_id, travel_date)
            occupied = sum(len(active_seats(trip.seat_entries, now)) for trip in trips)
            available = max(0, capacity.total_capacity - occupied)
            return SeatAvailability(
                available_seats=available,
                total_capacity=capacity.total_capacity,
                is_full=available == 0,
            )

        return await self.runner.run(read, description="seat availability")

    async def list_trips(self, travel_date: Union[date, str, None] = None) -> list[TripSchema]:
        """Trips with their live occupancy, optionally for one date."""
        if isinstance(travel_date, date):
            travel_date = travel_date.isoformat()

        async def read(session: AsyncSession) -> list[Trip]:
            stmt = select(Trip).order_by(Trip.date, Trip.price_rule_id, Trip.vehicle_index)
            if travel_date:
                stmt = stmt.where(Trip.date == travel_date)
            result = await session.execute(stmt)
            return list(result.scalars().all())

        trips = await self.runner.run(read, description="trip listing")
        now = self.clock()
        return [
            TripSchema(
                id=trip.id,
                price_rule_id=trip.price_rule_id,
                pickup=trip.pickup,
                destination=trip.destination,
                vehicle_type=trip.vehicle_type,
                date=trip.date,
                vehicle_index=trip.vehicle_index,
                capacity=trip.capacity,
                passengers=trip.seat_entries,
                active_seats=len(active_seats(trip.seat_entries, now)),
                is_full=trip.is_full,
            )
            for trip in trips
        ]
