"""Booking model definition."""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING = "Pending"
    PAID = "Paid"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"
    REFUNDED = "Refunded"


# Forward along Pending -> Paid -> Confirmed, sideways into Cancelled,
# and Cancelled -> Refunded as the only move out of a terminal status.
ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.PAID, BookingStatus.CANCELLED}),
    BookingStatus.PAID: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED}),
    BookingStatus.CANCELLED: frozenset({BookingStatus.REFUNDED}),
    BookingStatus.REFUNDED: frozenset(),
}


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[BookingStatus(current)]


class Booking(Base):
    """Booking entity representing one rider's seat reservation request."""

    __tablename__ = "bookings"

    # Primary key, generated at intake and never reused
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))

    # Rider contact
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    phone: Mapped[str] = mapped_column(String(32), nullable=False)

    # Route and travel date (calendar date string, YYYY-MM-DD)
    pickup: Mapped[str] = mapped_column(String(128), nullable=False)
    destination: Mapped[str] = mapped_column(String(128), nullable=False)
    vehicle_type: Mapped[str] = mapped_column(String(64), nullable=False)
    intended_date: Mapped[str] = mapped_column(String(10), nullable=False, index=True)

    luggage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_fare: Mapped[int] = mapped_column(Integer, nullable=False)
    allow_reschedule: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    status: Mapped[BookingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True
    )

    # Seat and payment state
    trip_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    payment_reference: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    confirmed_date: Mapped[str | None] = mapped_column(String(10), nullable=True)
    rescheduled_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Optimistic concurrency token
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("luggage_count >= 0", name="ck_booking_luggage_non_negative"),
        CheckConstraint("total_fare >= 0", name="ck_booking_total_fare_non_negative"),
        CheckConstraint("rescheduled_count >= 0", name="ck_booking_rescheduled_count_non_negative"),
        CheckConstraint("length(name) > 0", name="ck_booking_name_not_empty"),
    )

    @property
    def booking_status(self) -> BookingStatus:
        return BookingStatus(self.status)

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, status={self.status}, "
            f"date={self.intended_date}, trip_id={self.trip_id})>"
        )
