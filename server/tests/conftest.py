"""Test configuration and fixtures."""

import os

# Must be set before the application settings are first imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PAYMENT_ENABLED", "false")

from datetime import date, datetime, timedelta, timezone
from itertools import count
from typing import Any, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from shuttle import models  # noqa: F401 - registers every table
from shuttle.core.config import IntakePolicy
from shuttle.core.database import Base, TransactionRunner
from shuttle.core.exceptions import ExternalServiceError
from shuttle.models.booking import Booking, BookingStatus
from shuttle.models.price_rule import PriceRule
from shuttle.models.trip import Trip
from shuttle.services.booking_lifecycle import BookingLifecycle
from shuttle.services.cleanup import CleanupSweep
from shuttle.services.notifications import NotificationKind
from shuttle.services.payments import PaymentInitialization, PaymentVerification
from shuttle.services.reschedule import RescheduleSweep
from shuttle.services.route_capacity import price_rule_id
from shuttle.services.trip_assignment import TripAssignmentService

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# 10:00 in Lagos, so the service date is 2025-03-10
NOW = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)
TODAY = date(2025, 3, 10)
TRAVEL_DATE = date(2025, 3, 12)

PICKUP = "Abeokuta"
DESTINATION = "Ibadan"
VEHICLE_TYPE = "4-Seater Sienna"
RULE_ID = price_rule_id(PICKUP, DESTINATION, VEHICLE_TYPE)
FARE = 8000


class FrozenClock:
    """Clock that only moves when a test advances it."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingNotifier:
    """Notifier that keeps every message and can be told to fail."""

    def __init__(self):
        self.sent: list[tuple[NotificationKind, str, dict[str, Any]]] = []
        self.failing: set[NotificationKind] = set()

    async def send(self, kind: NotificationKind, recipient: str, payload: dict[str, Any]) -> None:
        kind = NotificationKind(kind)
        if kind in self.failing:
            raise ExternalServiceError("notification", "Sink unavailable")
        self.sent.append((kind, recipient, payload))

    def of_kind(self, kind: NotificationKind) -> list[tuple[NotificationKind, str, dict[str, Any]]]:
        return [message for message in self.sent if message[0] == kind]


class FakeGateway:
    """In-memory hosted checkout."""

    def __init__(self):
        self.initialized: list[dict[str, Any]] = []
        self.verifications: dict[str, PaymentVerification] = {}

    async def initialize(self, amount_minor: int, metadata: dict[str, Any], email: str) -> PaymentInitialization:
        reference = f"ref-{len(self.initialized) + 1}"
        self.initialized.append({
            "amount": amount_minor,
            "metadata": metadata,
            "email": email,
            "reference": reference,
        })
        self.verifications.setdefault(
            reference,
            PaymentVerification(success=True, metadata={"booking_id": metadata["booking_id"]}),
        )
        return PaymentInitialization(
            authorization_url=f"https://checkout.test/{reference}",
            reference=reference,
        )

    async def verify(self, reference: str) -> PaymentVerification:
        return self.verifications.get(
            reference,
            PaymentVerification(success=False, message="Transaction not found"),
        )


class Store:
    """Direct reads of persisted state for assertions."""

    def __init__(self, runner: TransactionRunner):
        self.runner = runner

    async def booking(self, booking_id: str) -> Optional[Booking]:
        return await self.runner.run(lambda session: session.get(Booking, booking_id))

    async def trip(self, trip_id: str) -> Optional[Trip]:
        return await self.runner.run(lambda session: session.get(Trip, trip_id))

    async def trips(self, travel_date: Optional[str] = None) -> list[Trip]:
        async def read(session: AsyncSession) -> list[Trip]:
            stmt = select(Trip).order_by(Trip.date, Trip.vehicle_index)
            if travel_date:
                stmt = stmt.where(Trip.date == travel_date)
            return list((await session.execute(stmt)).scalars().all())

        return await self.runner.run(read)

    async def add_rule(
        self,
        pickup: str = PICKUP,
        destination: str = DESTINATION,
        vehicle_type: str = VEHICLE_TYPE,
        fare: int = FARE,
        vehicle_count: int = 2,
    ) -> PriceRule:
        async def insert(session: AsyncSession) -> PriceRule:
            rule = PriceRule(
                id=price_rule_id(pickup, destination, vehicle_type),
                pickup=pickup,
                destination=destination,
                vehicle_type=vehicle_type,
                fare=fare,
                vehicle_count=vehicle_count,
            )
            session.add(rule)
            return rule

        return await self.runner.run(insert)


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
def runner(session_factory):
    return TransactionRunner(session_factory, max_attempts=3)


@pytest.fixture
def store(runner):
    return Store(runner)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def policy():
    return IntakePolicy(payment_enabled=False)


@pytest_asyncio.fixture
async def route(store):
    """Abeokuta to Ibadan in two 4-seat vehicles."""
    return await store.add_rule()


@pytest.fixture
def assignment(runner, notifier, clock):
    return TripAssignmentService(runner, notifier, clock=clock)


@pytest.fixture
def cleanup(runner, clock):
    return CleanupSweep(runner, clock=clock)


@pytest.fixture
def reschedule(runner, assignment, notifier, clock):
    return RescheduleSweep(runner, assignment, notifier, clock=clock)


@pytest.fixture
def lifecycle(runner, assignment, cleanup, notifier, gateway, policy, clock):
    return BookingLifecycle(
        runner,
        assignment,
        cleanup,
        notifier,
        gateway=gateway,
        policy=policy,
        clock=clock,
    )


@pytest.fixture
def make_booking(runner, clock):
    """Insert a booking directly, bypassing intake and seat assignment."""
    sequence = count(1)

    async def _make(
        status: BookingStatus = BookingStatus.PENDING,
        intended_date: date = TRAVEL_DATE,
        allow_reschedule: bool = False,
        rescheduled_count: int = 0,
        payment_reference: Optional[str] = None,
        created_at: Optional[datetime] = None,
        vehicle_type: str = VEHICLE_TYPE,
    ) -> Booking:
        n = next(sequence)

        async def insert(session: AsyncSession) -> Booking:
            booking = Booking(
                name=f"Rider {n}",
                email=f"rider{n}@example.com",
                phone=f"0803000{n:04d}",
                pickup=PICKUP,
                destination=DESTINATION,
                vehicle_type=vehicle_type,
                intended_date=intended_date.isoformat(),
                luggage_count=1,
                total_fare=FARE,
                allow_reschedule=allow_reschedule,
                status=status,
                payment_reference=payment_reference,
                rescheduled_count=rescheduled_count,
                created_at=created_at or clock(),
            )
            session.add(booking)
            await session.flush()
            return booking

        return await runner.run(insert)

    return _make


@pytest.fixture
def booking_request_data():
    """Sample booking form submission."""
    return {
        "name": "Adaeze Okafor",
        "email": "adaeze@example.com",
        "phone": "08031234567",
        "pickup": PICKUP,
        "destination": DESTINATION,
        "vehicle_type": VEHICLE_TYPE,
        "intended_date": TRAVEL_DATE.isoformat(),
        "luggage_count": 2,
        "allow_reschedule": True,
    }


@pytest_asyncio.fixture(scope="function")
async def test_app(runner, notifier, gateway, policy, clock):
    """Application wired to the test database and fakes."""
    from shuttle.core.dependencies import (
        get_clock,
        get_intake_policy,
        get_notifier,
        get_payment_gateway,
        get_runner,
    )
    from shuttle.main import create_app

    app = create_app()
    app.dependency_overrides[get_runner] = lambda: runner
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_intake_policy] = lambda: policy
    app.dependency_overrides[get_clock] = lambda: clock

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
