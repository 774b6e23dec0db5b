"""FastAPI dependencies wiring the seat engine to its collaborators."""

from functools import lru_cache
from typing import Optional

from fastapi import Depends

from ..services.booking_lifecycle import BookingLifecycle
from ..services.cleanup import CleanupSweep
from ..services.holds import Clock, utc_now
from ..services.notifications import Notifier, build_notifier
from ..services.payments import PaymentGateway, PaystackGateway
from ..services.reschedule import RescheduleSweep
from ..services.trip_assignment import TripAssignmentService
from .config import IntakePolicy, settings
from .database import TransactionRunner, transaction_runner


def get_runner() -> TransactionRunner:
    """Transaction runner bound to the application database."""
    return transaction_runner


@lru_cache(maxsize=1)
def get_notifier() -> Notifier:
    return build_notifier()


def get_payment_gateway() -> Optional[PaymentGateway]:
    """Paystack gateway, or None when no secret key is configured."""
    if not settings.paystack_secret_key:
        return None
    return PaystackGateway()


def get_intake_policy() -> IntakePolicy:
    """Intake switches, read fresh for every request."""
    return settings.intake_policy()


def get_clock() -> Clock:
    return utc_now


RUNNER_DEPENDENCY = Depends(get_runner)
NOTIFIER_DEPENDENCY = Depends(get_notifier)
GATEWAY_DEPENDENCY = Depends(get_payment_gateway)
POLICY_DEPENDENCY = Depends(get_intake_policy)
CLOCK_DEPENDENCY = Depends(get_clock)


def get_assignment_service(
    runner: TransactionRunner = RUNNER_DEPENDENCY,
    notifier: Notifier = NOTIFIER_DEPENDENCY,
    clock: Clock = CLOCK_DEPENDENCY,
) -> TripAssignmentService:
    return TripAssignmentService(runner, notifier, clock=clock)


ASSIGNMENT_DEPENDENCY = Depends(get_assignment_service)


def get_cleanup_sweep(
    runner: TransactionRunner = RUNNER_DEPENDENCY,
    clock: Clock = CLOCK_DEPENDENCY,
) -> CleanupSweep:
    return CleanupSweep(runner, clock=clock)


CLEANUP_DEPENDENCY = Depends(get_cleanup_sweep)


def get_reschedule_sweep(
    runner: TransactionRunner = RUNNER_DEPENDENCY,
    assignment: TripAssignmentService = ASSIGNMENT_DEPENDENCY,
    notifier: Notifier = NOTIFIER_DEPENDENCY,
    clock: Clock = CLOCK_DEPENDENCY,
) -> RescheduleSweep:
    return RescheduleSweep(runner, assignment, notifier, clock=clock)


def get_booking_lifecycle(
    runner: TransactionRunner = RUNNER_DEPENDENCY,
    assignment: TripAssignmentService = ASSIGNMENT_DEPENDENCY,
    cleanup: CleanupSweep = CLEANUP_DEPENDENCY,
    notifier: Notifier = NOTIFIER_DEPENDENCY,
    gateway: Optional[PaymentGateway] = GATEWAY_DEPENDENCY,
    policy: IntakePolicy = POLICY_DEPENDENCY,
    clock: Clock = CLOCK_DEPENDENCY,
) -> BookingLifecycle:
    return BookingLifecycle(
        runner,
        assignment,
        cleanup,
        notifier,
        gateway=gateway,
        policy=policy,
        clock=clock,
    )


LIFECYCLE_DEPENDENCY = Depends(get_booking_lifecycle)
RESCHEDULE_DEPENDENCY = Depends(get_reschedule_sweep)
