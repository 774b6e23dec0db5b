"""Unit tests for trip confirmation."""

from datetime import date

import pytest

from shuttle.models.booking import BookingStatus
from shuttle.services.notifications import NotificationKind
from shuttle.services.route_capacity import route_date_key, trip_id

TRAVEL_DATE = date(2025, 3, 12)
FIRST_TRIP = trip_id(route_date_key("abeokuta_ibadan_4-seater-sienna", TRAVEL_DATE), 1)


@pytest.mark.asyncio
async def test_full_paid_vehicle_confirms_everyone(route, assignment, make_booking, store, notifier):
    """Filling a vehicle with paid riders confirms all of them for the trip date."""
    bookings = [await make_booking(status=BookingStatus.PAID) for _ in range(4)]
    for booking in bookings[:3]:
        await assignment.assign(booking)

    assert notifier.of_kind(NotificationKind.BOOKING_CONFIRMED) == []

    await assignment.assign(bookings[3])

    for booking in bookings:
        stored = await store.booking(booking.id)
        assert stored.booking_status == BookingStatus.CONFIRMED
        assert stored.confirmed_date == TRAVEL_DATE.isoformat()

    confirmed_to = {recipient for _, recipient, _ in notifier.of_kind(NotificationKind.BOOKING_CONFIRMED)}
    assert confirmed_to == {b.email for b in bookings}


@pytest.mark.asyncio
async def test_pending_hold_blocks_confirmation(route, assignment, make_booking, store):
    """A vehicle that is full but not fully paid stays unconfirmed."""
    paid = [await make_booking(status=BookingStatus.PAID) for _ in range(3)]
    pending = await make_booking()
    for booking in paid + [pending]:
        await assignment.assign(booking)

    assert (await store.trip(FIRST_TRIP)).is_full
    assert await assignment.confirmation.check_and_confirm(FIRST_TRIP) == []
    for booking in paid:
        assert (await store.booking(booking.id)).booking_status == BookingStatus.PAID


@pytest.mark.asyncio
async def test_confirmed_riders_count_towards_capacity(route, assignment, make_booking, store):
    already = await make_booking(status=BookingStatus.CONFIRMED)
    await assignment.assign(already)
    paid = [await make_booking(status=BookingStatus.PAID) for _ in range(3)]
    for booking in paid:
        await assignment.assign(booking)

    for booking in paid:
        assert (await store.booking(booking.id)).booking_status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_check_is_idempotent(route, assignment, make_booking, notifier, store):
    """A second check with no state change writes nothing and sends nothing."""
    riders = [await make_booking(status=BookingStatus.PAID) for _ in range(4)]
    for booking in riders:
        await assignment.assign(booking)
    sent = len(notifier.sent)
    trip_version = (await store.trip(FIRST_TRIP)).version
    booking_versions = [(await store.booking(b.id)).version for b in riders]

    assert await assignment.confirmation.check_and_confirm(FIRST_TRIP) == []
    assert len(notifier.sent) == sent
    assert (await store.trip(FIRST_TRIP)).version == trip_version
    assert [(await store.booking(b.id)).version for b in riders] == booking_versions


@pytest.mark.asyncio
async def test_unknown_trip_confirms_nobody(route, assignment):
    assert await assignment.confirmation.check_and_confirm("nowhere_nowhere_bus_2025-03-12_1") == []


@pytest.mark.asyncio
async def test_notification_failure_does_not_undo_confirmation(route, assignment, make_booking, store, notifier):
    notifier.failing.add(NotificationKind.BOOKING_CONFIRMED)
    bookings = [await make_booking(status=BookingStatus.PAID) for _ in range(4)]

    for booking in bookings:
        await assignment.assign(booking)

    for booking in bookings:
        assert (await store.booking(booking.id)).booking_status == BookingStatus.CONFIRMED
