"""Route capacity rule ("price rule") model definition."""

from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class PriceRule(Base):
    """Operator-configured fare and vehicle allocation for one route."""

    __tablename__ = "price_rules"

    # Normalized slug of pickup, destination and vehicle type
    id: Mapped[str] = mapped_column(String(255), primary_key=True)

    pickup: Mapped[str] = mapped_column(String(128), nullable=False)
    destination: Mapped[str] = mapped_column(String(128), nullable=False)
    vehicle_type: Mapped[str] = mapped_column(String(64), nullable=False)

    fare: Mapped[int] = mapped_column(Integer, nullable=False)
    # Maximum vehicle instances per date; zero disables the route
    vehicle_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        CheckConstraint("fare >= 0", name="ck_price_rule_fare_non_negative"),
        CheckConstraint("vehicle_count >= 0", name="ck_price_rule_vehicle_count_non_negative"),
        UniqueConstraint("pickup", "destination", "vehicle_type", name="uq_price_rule_route"),
    )

    def __repr__(self) -> str:
        return f"<PriceRule(id='{self.id}', fare={self.fare}, vehicle_count={self.vehicle_count})>"
