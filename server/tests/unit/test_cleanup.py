"""Unit tests for the cleanup sweep."""

from datetime import date

import pytest

from shuttle.models.booking import BookingStatus
from shuttle.services.route_capacity import route_date_key, trip_id

TRAVEL_DATE = date(2025, 3, 12)
ROUTE_DATE = route_date_key("abeokuta_ibadan_4-seater-sienna", TRAVEL_DATE)
FIRST_TRIP = trip_id(ROUTE_DATE, 1)
SECOND_TRIP = trip_id(ROUTE_DATE, 2)


@pytest.mark.asyncio
async def test_cleanup_drops_expired_holds(route, assignment, cleanup, make_booking, store, clock):
    paid = await make_booking(status=BookingStatus.PAID)
    await assignment.assign(paid)
    for _ in range(3):
        await assignment.assign(await make_booking())
    assert (await store.trip(FIRST_TRIP)).is_full

    clock.advance(minutes=7, seconds=1)
    modified = await cleanup.cleanup()

    assert modified == 1
    trip = await store.trip(FIRST_TRIP)
    assert [e.booking_id for e in trip.seat_entries] == [paid.id]
    assert not trip.is_full


@pytest.mark.asyncio
async def test_cleanup_drops_deleted_bookings(route, assignment, cleanup, make_booking, store):
    """Listed bookings lose their seat even when it is paid."""
    keep = await make_booking(status=BookingStatus.PAID)
    gone = await make_booking(status=BookingStatus.PAID)
    await assignment.assign(keep)
    await assignment.assign(gone)

    modified = await cleanup.cleanup({gone.id})

    assert modified == 1
    assert [e.booking_id for e in (await store.trip(FIRST_TRIP)).seat_entries] == [keep.id]


@pytest.mark.asyncio
async def test_cleanup_is_idempotent(route, assignment, cleanup, make_booking, clock):
    for _ in range(2):
        await assignment.assign(await make_booking())
    clock.advance(minutes=30)

    assert await cleanup.cleanup() == 1
    assert await cleanup.cleanup() == 0


@pytest.mark.asyncio
async def test_cleanup_leaves_live_trips_untouched(route, assignment, cleanup, make_booking, store):
    booking = await make_booking()
    await assignment.assign(booking)
    before = await store.trip(FIRST_TRIP)

    assert await cleanup.cleanup() == 0

    after = await store.trip(FIRST_TRIP)
    assert after.version == before.version


@pytest.mark.asyncio
async def test_cleanup_restricted_to_given_trips(route, assignment, cleanup, make_booking, store, clock):
    for _ in range(5):
        await assignment.assign(await make_booking())
    clock.advance(minutes=8)

    assert await cleanup.cleanup(trip_ids=[SECOND_TRIP, "missing_trip_2025-03-12_1"]) == 1

    assert len((await store.trip(FIRST_TRIP)).passengers) == 4
    assert (await store.trip(SECOND_TRIP)).passengers == []
