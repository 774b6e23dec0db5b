"""Route capacity lookup and deterministic trip keys."""

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Union

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import RouteUnavailableError
from ..models.price_rule import PriceRule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VehicleSpec:
    capacity: int
    max_luggage: int


VEHICLE_CATALOG: dict[str, VehicleSpec] = {
    "4-Seater Sienna": VehicleSpec(capacity=4, max_luggage=4),
    "5-Seater Sienna": VehicleSpec(capacity=5, max_luggage=2),
    "7-Seater Bus": VehicleSpec(capacity=7, max_luggage=2),
}

_WHITESPACE = re.compile(r"\s+")


def price_rule_id(pickup: str, destination: str, vehicle_type: str) -> str:
    """Normalized slug identifying a route, e.g. ``abeokuta_ibadan_4-seater-sienna``."""
    raw = f"{pickup.strip()}_{destination.strip()}_{vehicle_type.strip()}".lower()
    return _WHITESPACE.sub("-", raw)


def route_date_key(rule_id: str, travel_date: Union[date, str]) -> str:
    if isinstance(travel_date, date):
        travel_date = travel_date.isoformat()
    return f"{rule_id}_{travel_date}"


def trip_id(route_date: str, vehicle_index: int) -> str:
    return f"{route_date}_{vehicle_index}"


def route_date_of_trip(trip_identifier: str) -> str:
    """Route+date key a trip id was built from."""
    return trip_identifier.rsplit("_", 1)[0]


def price_rule_of_trip(trip_identifier: str) -> str:
    return trip_identifier.rsplit("_", 2)[0]


def vehicle_spec(vehicle_type: str) -> VehicleSpec | None:
    return VEHICLE_CATALOG.get(vehicle_type.strip())


@dataclass(frozen=True)
class RouteCapacity:
    """Resolved capacity for one route."""

    price_rule_id: str
    capacity_per_vehicle: int
    vehicle_count: int
    fare: int

    @property
    def total_capacity(self) -> int:
        return self.capacity_per_vehicle * self.vehicle_count


class RouteCapacityLookup:
    """Resolves a (pickup, destination, vehicle type) tuple to its capacity."""

    async def find(
        self,
        session: AsyncSession,
        pickup: str,
        destination: str,
        vehicle_type: str,
    ) -> RouteCapacity | None:
        """
        Resolve a route without raising.

        Returns:
            RouteCapacity, or None when there is no rule or the vehicle
            type is not in the catalogue. A disabled route resolves with
            ``vehicle_count == 0``.
        """
        rule_id = price_rule_id(pickup, destination, vehicle_type)
        rule = await session.get(PriceRule, rule_id)
        if rule is None:
            return None

        spec = vehicle_spec(rule.vehicle_type)
        if spec is None:
            logger.warning(
                "Price rule references an unknown vehicle type",
                extra={"price_rule_id": rule_id, "vehicle_type": rule.vehicle_type}
            )
            return None

        return RouteCapacity(
            price_rule_id=rule_id,
            capacity_per_vehicle=spec.capacity,
            vehicle_count=rule.vehicle_count,
            fare=rule.fare,
        )

    async def resolve(
        self,
        session: AsyncSession,
        pickup: str,
        destination: str,
        vehicle_type: str,
    ) -> RouteCapacity:
        """
        Resolve a route that must be bookable.

        Raises:
            RouteUnavailableError: NO_CAPACITY_RULE when no usable rule
                exists, ROUTE_DISABLED when it allocates no vehicles
        """
        capacity = await self.find(session, pickup, destination, vehicle_type)
        if capacity is None:
            raise RouteUnavailableError(price_rule_id(pickup, destination, vehicle_type))
        if capacity.vehicle_count <= 0:
            raise RouteUnavailableError(capacity.price_rule_id, code=RouteUnavailableError.ROUTE_DISABLED)
        return capacity
