"""Trip (vehicle instance) model definition."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base
from ..schemas.trip import SeatEntry


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Trip(Base):
    """
    One physical vehicle run for a route and date.

    The primary key is derived from the route, the date and the ordinal
    index, so concurrent writers looking for "vehicle N of this route
    today" address the same row. Seat entries are stored inline as a
    JSON list and ``is_full`` is recomputed whenever that list changes.
    """

    __tablename__ = "trips"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)

    # Route identity
    price_rule_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    pickup: Mapped[str] = mapped_column(String(128), nullable=False)
    destination: Mapped[str] = mapped_column(String(128), nullable=False)
    vehicle_type: Mapped[str] = mapped_column(String(64), nullable=False)
    date: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    vehicle_index: Mapped[int] = mapped_column(Integer, nullable=False)

    # Copied from the vehicle catalogue when the instance is created
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)

    passengers: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    is_full: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)

    # Optimistic concurrency token
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_trip_capacity_positive"),
        CheckConstraint("vehicle_index >= 1", name="ck_trip_vehicle_index_positive"),
        UniqueConstraint("price_rule_id", "date", "vehicle_index", name="uq_trip_route_date_index"),
    )

    @property
    def seat_entries(self) -> list[SeatEntry]:
        return [SeatEntry.model_validate(raw) for raw in self.passengers or []]

    def replace_seats(self, entries: list[SeatEntry], active_count: int) -> None:
        """Store a new seat list and the fullness derived from it."""
        # Always a fresh list so the JSON column registers the change
        self.passengers = [entry.to_document() for entry in entries]
        self.is_full = active_count >= self.capacity

    def __repr__(self) -> str:
        return (
            f"<Trip(id={self.id}, seats={len(self.passengers or [])}/{self.capacity}, "
            f"is_full={self.is_full})>"
        )
