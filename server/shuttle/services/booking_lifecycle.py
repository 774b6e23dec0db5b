"""Booking lifecycle: intake, payment, cancellation, rescheduling and purges."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from functools import partial
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import IntakePolicy, settings
from ..core.database import TransactionRunner
from ..core.exceptions import (
    ExternalServiceError,
    InvalidBookingStateError,
    NotFoundError,
    PaymentVerificationError,
    RouteUnavailableError,
    TripFullError,
    ValidationError,
)
from ..core.observability import metrics_collector
from ..models.booking import Booking, BookingStatus, can_transition
from ..models.trip import Trip
from ..schemas.booking import CreateBookingRequest
from .cleanup import CleanupSweep
from .holds import Clock, is_active, utc_now
from .notifications import NotificationKind, Notifier, booking_payload, notify_safely
from .payments import PaymentGateway
from .route_capacity import price_rule_id, route_date_of_trip, vehicle_spec
from .trip_assignment import TripAssignmentService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingSubmission:
    booking: Booking
    authorization_url: Optional[str] = None


@dataclass(frozen=True)
class _CancelOutcome:
    booking: Booking
    changed: bool
    freed_trip_id: Optional[str] = None


class BookingLifecycle:
    """
    Customer-facing booking state machine.

    Pending -> Paid -> Confirmed, with Cancelled reachable from any of
    those and Refunded only from Cancelled. Seat work is delegated to
    the assignment engine, the confirmation checker and the cleanup
    sweep; notifications go out after the state change has committed.
    """

    def __init__(
        self,
        runner: TransactionRunner,
        assignment: TripAssignmentService,
        cleanup: CleanupSweep,
        notifier: Notifier,
        gateway: Optional[PaymentGateway] = None,
        policy: Optional[IntakePolicy] = None,
        clock: Clock = utc_now,
        operator_contact: Optional[str] = None,
    ):
        self.runner = runner
        self.assignment = assignment
        self.confirmation = assignment.confirmation
        self.cleanup = cleanup
        self.notifier = notifier
        self.gateway = gateway
        self.policy = policy or settings.intake_policy()
        self.clock = clock
        self.operator_contact = operator_contact or settings.operator_contact
        self.lookup = assignment.lookup

    # Intake

    async def create(self, request: CreateBookingRequest) -> Booking:
        """
        Validate and store a Pending booking, then hold a seat for it.

        The booking is kept even when no seat can be found, so an
        operator can repair it after the capacity alert. An unusable
        route has no fare, so nothing is stored; the operator is still
        alerted with the submitted request.

        Raises:
            ValidationError: If the date or luggage breaks the intake rules
            RouteUnavailableError: If the route cannot be booked (nothing is written)
            TripFullError: If the booking was stored but no seat was free
        """
        self._validate_intake(request)

        try:
            capacity = await self.runner.run(
                lambda session: self.lookup.resolve(
                    session, request.pickup, request.destination, request.vehicle_type
                ),
                description="route lookup",
            )
        except RouteUnavailableError as e:
            # No fare exists for the route, so only the request reaches the operator
            await notify_safely(
                self.notifier,
                NotificationKind.CAPACITY_OVERFLOW_ALERT,
                self.operator_contact,
                {**request.model_dump(mode="json"), "reason": e.reason, "code": e.code},
            )
            raise

        spec = vehicle_spec(request.vehicle_type)
        if spec is not None and request.luggage_count > spec.max_luggage:
            raise ValidationError(
                detail=f"A {request.vehicle_type} carries at most {spec.max_luggage} pieces of luggage",
                errors={"luggage_count": request.luggage_count},
            )

        booking = await self.runner.run(
            partial(self._insert, request=request, total_fare=capacity.fare),
            description="booking intake",
        )
        logger.info(
            "Booking created",
            extra={
                "booking_id": booking.id,
                "price_rule_id": capacity.price_rule_id,
                "intended_date": booking.intended_date,
            }
        )

        await self.assignment.assign(booking)

        if not self.policy.payment_enabled:
            await notify_safely(
                self.notifier,
                NotificationKind.BOOKING_RECEIVED,
                booking.email,
                booking_payload(booking),
            )
        return booking

    def _validate_intake(self, request: CreateBookingRequest) -> None:
        today = settings.service_date(self.clock())
        if request.intended_date < today:
            raise ValidationError(
                detail="The travel date is in the past",
                errors={"intended_date": request.intended_date.isoformat()},
            )
        if not self.policy.allows(request.intended_date):
            raise ValidationError(
                detail="Bookings are not open for the selected date",
                errors={"intended_date": request.intended_date.isoformat()},
            )

    async def _insert(self, session: AsyncSession, request: CreateBookingRequest, total_fare: int) -> Booking:
        booking = Booking(
            name=request.name.strip(),
            email=request.email.strip(),
            phone=request.phone.strip(),
            pickup=request.pickup.strip(),
            destination=request.destination.strip(),
            vehicle_type=request.vehicle_type.strip(),
            intended_date=request.intended_date.isoformat(),
            luggage_count=request.luggage_count,
            total_fare=total_fare,
            allow_reschedule=request.allow_reschedule,
            status=BookingStatus.PENDING,
            rescheduled_count=0,
            created_at=self.clock(),
        )
        session.add(booking)
        await session.flush()
        return booking

    async def submit(self, request: CreateBookingRequest) -> BookingSubmission:
        """Create a booking and, when payment is enabled, open a checkout for it."""
        if self.policy.payment_enabled:
            return await self.initialize_payment(request)
        return BookingSubmission(booking=await self.create(request))

    async def initialize_payment(self, request: CreateBookingRequest) -> BookingSubmission:
        """
        Hold a seat and start the hosted checkout for it.

        Raises:
            ExternalServiceError: If no gateway is configured or it refused
        """
        if self.gateway is None:
            raise ExternalServiceError("payment", "Online payment is not available")

        booking = await self.create(request)
        initialization = await self.gateway.initialize(
            booking.total_fare * settings.payment_currency_minor_factor,
            {
                "booking_id": booking.id,
                "pickup": booking.pickup,
                "destination": booking.destination,
                "intended_date": booking.intended_date,
            },
            booking.email,
        )
        logger.info(
            "Checkout started",
            extra={"booking_id": booking.id, "reference": initialization.reference}
        )
        return BookingSubmission(booking=booking, authorization_url=initialization.authorization_url)

    # Payment

    async def verify_payment(self, reference: str) -> Booking:
        """
        Verify a checkout with the gateway and mark its booking paid.

        Raises:
            PaymentVerificationError: If the payment failed or carries no booking id
        """
        if self.gateway is None:
            raise ExternalServiceError("payment", "Online payment is not available")

        verification = await self.gateway.verify(reference)
        metrics_collector.record_payment_verification(verification.success)
        if not verification.success:
            raise PaymentVerificationError(reference, verification.message or "Payment verification failed")

        booking_id = verification.metadata.get("booking_id")
        if not booking_id:
            logger.error("Verified payment carries no booking id", extra={"reference": reference})
            raise PaymentVerificationError(reference, "Booking ID is missing from transaction metadata")

        return await self.pay(str(booking_id), reference)

    async def pay(self, booking_id: str, reference: Optional[str] = None) -> Booking:
        """
        Mark a booking Paid and turn its hold into a permanent seat.

        Repeated calls for a booking that is already Paid or Confirmed
        succeed without changing its status. A hold that lapsed before
        payment arrived is replaced by a fresh assignment.

        Raises:
            NotFoundError: If the booking does not exist
            InvalidBookingStateError: If the booking was cancelled or refunded
        """
        booking = await self.runner.run(
            partial(self._mark_paid, booking_id=booking_id, reference=reference),
            description="booking payment",
        )

        if booking.booking_status == BookingStatus.CONFIRMED:
            return booking

        seated_trip_id = None
        if booking.trip_id:
            seated_trip_id = await self.runner.run(
                partial(self._secure_seat, booking_id=booking.id, seat_trip_id=booking.trip_id),
                lock_key=route_date_of_trip(booking.trip_id),
                description="seat securing",
            )
            booking.trip_id = seated_trip_id

        if seated_trip_id is None:
            try:
                await self.assignment.assign(booking)
            except (RouteUnavailableError, TripFullError) as e:
                # Operator already alerted by the assignment engine
                logger.error(
                    "Paid booking could not be seated",
                    extra={"booking_id": booking.id, "reason": e.reason}
                )
        else:
            await self._check_trip(seated_trip_id)

        return await self.get(booking.id)

    async def _mark_paid(self, session: AsyncSession, booking_id: str, reference: Optional[str]) -> Booking:
        booking = await self._load(session, booking_id)
        status = booking.booking_status

        if status in (BookingStatus.CANCELLED, BookingStatus.REFUNDED):
            raise InvalidBookingStateError(
                booking_id, status.value, f"A {status.value.lower()} booking cannot be paid"
            )

        if status == BookingStatus.PENDING:
            booking.status = BookingStatus.PAID
            if reference:
                booking.payment_reference = reference
            logger.info("Booking paid", extra={"booking_id": booking_id, "reference": reference})
        elif reference and not booking.payment_reference:
            booking.payment_reference = reference
        return booking

    async def _secure_seat(self, session: AsyncSession, booking_id: str, seat_trip_id: str) -> Optional[str]:
        """Clear the hold on a still-valid seat; drop a lapsed one and unlink the booking."""
        now = self.clock()
        trip = await session.get(Trip, seat_trip_id)
        if trip is not None:
            entries = trip.seat_entries
            own = next((e for e in entries if e.booking_id == booking_id and is_active(e, now)), None)
            if own is not None:
                if own.hold_expires_at is not None:
                    secured = [
                        e.model_copy(update={"hold_expires_at": None}) if e is own else e
                        for e in entries
                    ]
                    trip.replace_seats(secured, sum(1 for e in secured if is_active(e, now)))
                return trip.id

            remaining = [e for e in entries if e.booking_id != booking_id]
            if len(remaining) != len(entries):
                trip.replace_seats(remaining, sum(1 for e in remaining if is_active(e, now)))

        booking = await self._load(session, booking_id)
        booking.trip_id = None
        logger.info(
            "Seat hold lapsed before payment, reassigning",
            extra={"booking_id": booking_id, "trip_id": seat_trip_id}
        )
        return None

    async def _check_trip(self, trip_id: str) -> None:
        try:
            await self.confirmation.check_and_confirm(trip_id)
        except Exception as e:
            logger.error(
                "Trip confirmation check failed",
                extra={"trip_id": trip_id, "error": str(e)}
            )

    # Admin status override

    async def set_status(self, booking_id: str, status: BookingStatus) -> Booking:
        """
        Operator status override.

        Raises:
            NotFoundError: If the booking does not exist
            InvalidBookingStateError: If the transition is not permitted
        """
        status = BookingStatus(status)

        if status == BookingStatus.PAID:
            return await self.pay(booking_id)
        if status == BookingStatus.CANCELLED:
            return await self.cancel(booking_id)
        if status == BookingStatus.REFUNDED:
            return await self.refund(booking_id)
        if status == BookingStatus.CONFIRMED:
            return await self.confirm(booking_id)

        booking = await self.get(booking_id)
        raise InvalidBookingStateError(
            booking_id, booking.booking_status.value, "A booking cannot return to Pending"
        )

    async def confirm(self, booking_id: str) -> Booking:
        """Confirm a paid booking without waiting for its vehicle to fill."""
        booking, changed = await self.runner.run(
            partial(self._mark_confirmed, booking_id=booking_id),
            description="booking confirmation",
        )
        if changed:
            metrics_collector.record_bookings_confirmed(
                price_rule_id(booking.pickup, booking.destination, booking.vehicle_type), 1
            )
            await notify_safely(
                self.notifier,
                NotificationKind.BOOKING_CONFIRMED,
                booking.email,
                booking_payload(booking),
            )
            if booking.trip_id:
                await self._check_trip(booking.trip_id)
        return booking

    async def _mark_confirmed(self, session: AsyncSession, booking_id: str) -> tuple[Booking, bool]:
        booking = await self._load(session, booking_id)
        status = booking.booking_status
        if status == BookingStatus.CONFIRMED:
            return booking, False
        if status != BookingStatus.PAID:
            raise InvalidBookingStateError(
                booking_id, status.value, "Only paid bookings can be confirmed"
            )

        booking.status = BookingStatus.CONFIRMED
        trip = await session.get(Trip, booking.trip_id) if booking.trip_id else None
        booking.confirmed_date = trip.date if trip is not None else booking.intended_date
        return booking, True

    async def refund(self, booking_id: str) -> Booking:
        """
        Record that a cancelled booking was refunded.

        Paid or Confirmed bookings are cancelled first, which frees
        their seat.
        """
        booking = await self.get(booking_id)
        if booking.booking_status in (BookingStatus.PAID, BookingStatus.CONFIRMED):
            await self.cancel(booking_id, notify=False)

        booking, changed = await self.runner.run(
            partial(self._mark_refunded, booking_id=booking_id),
            description="booking refund",
        )
        if changed:
            await notify_safely(
                self.notifier,
                NotificationKind.BOOKING_REFUNDED,
                booking.email,
                booking_payload(booking),
            )
        return booking

    async def _mark_refunded(self, session: AsyncSession, booking_id: str) -> tuple[Booking, bool]:
        booking = await self._load(session, booking_id)
        status = booking.booking_status
        if status == BookingStatus.REFUNDED:
            return booking, False
        if not can_transition(status, BookingStatus.REFUNDED):
            raise InvalidBookingStateError(
                booking_id, status.value, "Only cancelled bookings can be refunded"
            )
        booking.status = BookingStatus.REFUNDED
        return booking, True

    # Cancellation and purges

    async def cancel(self, booking_id: str, notify: bool = True) -> Booking:
        """
        Cancel a booking and free its seat.

        Cancelling an already cancelled booking changes nothing.

        Raises:
            NotFoundError: If the booking does not exist
            InvalidBookingStateError: If the booking was already refunded
        """
        outcome = await self.runner.run(
            partial(self._mark_cancelled, booking_id=booking_id),
            description="booking cancellation",
        )
        if not outcome.changed:
            return outcome.booking

        if outcome.freed_trip_id:
            await self.cleanup.cleanup({booking_id}, trip_ids=[outcome.freed_trip_id])

        metrics_collector.record_booking_cancelled()
        logger.info(
            "Booking cancelled",
            extra={"booking_id": booking_id, "freed_trip_id": outcome.freed_trip_id}
        )

        if notify:
            await notify_safely(
                self.notifier,
                NotificationKind.BOOKING_CANCELLED,
                outcome.booking.email,
                booking_payload(outcome.booking),
            )
        return outcome.booking

    async def _mark_cancelled(self, session: AsyncSession, booking_id: str) -> _CancelOutcome:
        booking = await self._load(session, booking_id)
        status = booking.booking_status
        if status == BookingStatus.CANCELLED:
            return _CancelOutcome(booking, changed=False)
        if not can_transition(status, BookingStatus.CANCELLED):
            raise InvalidBookingStateError(
                booking_id, status.value, f"A {status.value.lower()} booking cannot be cancelled"
            )

        freed_trip_id = booking.trip_id
        booking.status = BookingStatus.CANCELLED
        booking.trip_id = None
        return _CancelOutcome(booking, changed=True, freed_trip_id=freed_trip_id)

    async def delete(self, booking_id: str) -> None:
        """
        Purge a booking record and free its seat. No rider notification.

        Raises:
            NotFoundError: If the booking does not exist
        """
        freed_trip_id = await self.runner.run(
            partial(self._delete_one, booking_id=booking_id),
            description="booking delete",
        )
        if freed_trip_id:
            await self.cleanup.cleanup({booking_id}, trip_ids=[freed_trip_id])
        logger.info("Booking deleted", extra={"booking_id": booking_id, "freed_trip_id": freed_trip_id})

    async def _delete_one(self, session: AsyncSession, booking_id: str) -> Optional[str]:
        booking = await self._load(session, booking_id)
        freed_trip_id = booking.trip_id
        await session.delete(booking)
        return freed_trip_id

    async def delete_in_range(self, start: Optional[date] = None, end: Optional[date] = None) -> int:
        """
        Purge bookings created between two service-timezone dates, inclusive.

        Every booking is purged when no range is given.

        Returns:
            Number of bookings deleted
        """
        if start and end and start > end:
            raise ValidationError(detail="The range start must not be after its end")

        freed = await self.runner.run(
            partial(self._delete_range, start=start, end=end),
            description="booking range delete",
        )
        if freed:
            seated = {booking_id: trip for booking_id, trip in freed if trip}
            if seated:
                await self.cleanup.cleanup(seated.keys(), trip_ids=set(seated.values()))

        logger.info(
            "Bookings purged",
            extra={"start": start.isoformat() if start else None, "end": end.isoformat() if end else None, "deleted": len(freed)}
        )
        return len(freed)

    async def _delete_range(
        self,
        session: AsyncSession,
        start: Optional[date],
        end: Optional[date],
    ) -> list[tuple[str, Optional[str]]]:
        conditions = []
        if start:
            conditions.append(Booking.created_at >= self._day_start(start))
        if end:
            conditions.append(Booking.created_at < self._day_start(end + timedelta(days=1)))

        result = await session.execute(select(Booking.id, Booking.trip_id).where(*conditions))
        rows = [(row.id, row.trip_id) for row in result.all()]
        if rows:
            await session.execute(
                delete(Booking)
                .where(Booking.id.in_([booking_id for booking_id, _ in rows]))
                .execution_options(synchronize_session=False)
            )
        return rows

    @staticmethod
    def _day_start(day: date) -> datetime:
        return datetime.combine(day, time.min, tzinfo=settings.timezone).astimezone(timezone.utc)

    # Manual reschedule and refunds

    async def reschedule(self, booking_id: str, new_date: date) -> Booking:
        """
        Operator move of a booking to any date.

        No eligibility check and no cap on how often a booking moves.

        Raises:
            NotFoundError: If the booking does not exist
            RouteUnavailableError: If the route cannot be booked
            TripFullError: If the new date has no free seat; the booking
                is left unassigned on the new date
        """
        current = await self.get(booking_id)
        lock_key = route_date_of_trip(current.trip_id) if current.trip_id else None

        booking = await self.runner.run(
            partial(self._move, booking_id=booking_id, new_date=new_date.isoformat()),
            lock_key=lock_key,
            description="manual reschedule",
        )
        await self.assignment.assign(booking)

        await notify_safely(
            self.notifier,
            NotificationKind.BOOKING_RESCHEDULED_MANUAL,
            booking.email,
            booking_payload(booking, new_date=booking.intended_date),
        )
        return await self.get(booking_id)

    async def _move(self, session: AsyncSession, booking_id: str, new_date: str) -> Booking:
        booking = await self._load(session, booking_id)

        if booking.trip_id:
            trip = await session.get(Trip, booking.trip_id)
            if trip is not None:
                now = self.clock()
                remaining = [e for e in trip.seat_entries if e.booking_id != booking_id]
                trip.replace_seats(remaining, sum(1 for e in remaining if is_active(e, now)))

        booking.trip_id = None
        booking.intended_date = new_date
        booking.rescheduled_count += 1
        return booking

    async def request_refund(self, booking_id: str) -> Booking:
        """
        Ask an operator to refund a cancelled, paid booking.

        The booking's status is not changed here.

        Raises:
            InvalidBookingStateError: If the booking is not cancelled or was never paid
            ExternalServiceError: If the request could not be delivered
        """
        booking = await self.get(booking_id)
        if booking.booking_status != BookingStatus.CANCELLED:
            raise InvalidBookingStateError(
                booking_id, booking.booking_status.value,
                "Refunds can only be requested for cancelled bookings"
            )
        if not booking.payment_reference:
            raise InvalidBookingStateError(
                booking_id, booking.booking_status.value,
                "This booking has no payment reference, so a refund cannot be processed"
            )

        try:
            await self.notifier.send(
                NotificationKind.REFUND_REQUEST,
                self.operator_contact,
                booking_payload(booking, payment_reference=booking.payment_reference),
            )
        except ExternalServiceError:
            raise
        except Exception as e:
            raise ExternalServiceError("notification", "Failed to send the refund request") from e

        logger.info("Refund requested", extra={"booking_id": booking_id})
        return booking

    # Reads

    async def get(self, booking_id: str) -> Booking:
        return await self.runner.run(partial(self._load, booking_id=booking_id), description="booking read")

    async def _load(self, session: AsyncSession, booking_id: str) -> Booking:
        booking = await session.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError(resource_type="booking", resource_id=booking_id)
        return booking
