"""Unit tests for route capacity lookup and trip keys."""

from datetime import date

import pytest

from shuttle.core.exceptions import RouteUnavailableError
from shuttle.services.route_capacity import (
    RouteCapacityLookup,
    price_rule_id,
    price_rule_of_trip,
    route_date_key,
    route_date_of_trip,
    trip_id,
    vehicle_spec,
)


def test_price_rule_id_is_normalized():
    """Case and inner whitespace do not change the route slug."""
    assert price_rule_id("Abeokuta", "Ibadan", "4-Seater Sienna") == "abeokuta_ibadan_4-seater-sienna"
    assert price_rule_id(" abeokuta ", "IBADAN", "4-Seater   Sienna") == "abeokuta_ibadan_4-seater-sienna"


def test_trip_keys_are_deterministic():
    """Trip ids are rebuilt from route, date and ordinal, and split back apart."""
    rule = price_rule_id("Ibadan", "Lagos", "7-Seater Bus")
    route_date = route_date_key(rule, date(2025, 3, 12))

    assert route_date == "ibadan_lagos_7-seater-bus_2025-03-12"
    assert route_date == route_date_key(rule, "2025-03-12")

    second = trip_id(route_date, 2)
    assert second == "ibadan_lagos_7-seater-bus_2025-03-12_2"
    assert route_date_of_trip(second) == route_date
    assert price_rule_of_trip(second) == rule


def test_vehicle_catalogue():
    assert vehicle_spec("4-Seater Sienna").capacity == 4
    assert vehicle_spec(" 7-Seater Bus ").capacity == 7
    assert vehicle_spec("Danfo") is None


@pytest.mark.asyncio
async def test_resolve_known_route(runner, route):
    """A configured route resolves to its per-vehicle capacity and allocation."""
    lookup = RouteCapacityLookup()

    capacity = await runner.run(
        lambda session: lookup.resolve(session, "Abeokuta", "Ibadan", "4-Seater Sienna")
    )

    assert capacity.price_rule_id == "abeokuta_ibadan_4-seater-sienna"
    assert capacity.capacity_per_vehicle == 4
    assert capacity.vehicle_count == 2
    assert capacity.total_capacity == 8
    assert capacity.fare == 8000


@pytest.mark.asyncio
async def test_resolve_unknown_route(runner, route):
    """No rule means the route cannot be booked."""
    lookup = RouteCapacityLookup()

    with pytest.raises(RouteUnavailableError) as exc_info:
        await runner.run(lambda session: lookup.resolve(session, "Abeokuta", "Lagos", "4-Seater Sienna"))

    assert exc_info.value.code == RouteUnavailableError.NO_CAPACITY_RULE
    assert exc_info.value.status_code == 422
    assert await runner.run(lambda session: lookup.find(session, "Abeokuta", "Lagos", "4-Seater Sienna")) is None


@pytest.mark.asyncio
async def test_resolve_disabled_route(runner, store):
    """A rule with no vehicles disables the route without hiding it."""
    await store.add_rule(vehicle_count=0)
    lookup = RouteCapacityLookup()

    found = await runner.run(lambda session: lookup.find(session, "Abeokuta", "Ibadan", "4-Seater Sienna"))
    assert found is not None
    assert found.total_capacity == 0

    with pytest.raises(RouteUnavailableError) as exc_info:
        await runner.run(lambda session: lookup.resolve(session, "Abeokuta", "Ibadan", "4-Seater Sienna"))

    assert exc_info.value.code == RouteUnavailableError.ROUTE_DISABLED


@pytest.mark.asyncio
async def test_rule_with_unknown_vehicle_is_unusable(runner, store):
    await store.add_rule(vehicle_type="Danfo")
    lookup = RouteCapacityLookup()

    with pytest.raises(RouteUnavailableError) as exc_info:
        await runner.run(lambda session: lookup.resolve(session, "Abeokuta", "Ibadan", "Danfo"))

    assert exc_info.value.code == RouteUnavailableError.NO_CAPACITY_RULE
