"""Integration tests for API endpoints."""

import pytest

from shuttle.services.payments import PaymentVerification

AVAILABILITY_QUERY = {
    "pickup": "Abeokuta",
    "destination": "Ibadan",
    "vehicle_type": "4-Seater Sienna",
    "date": "2025-03-12",
}


async def _create(test_client, booking_request_data, **overrides):
    response = await test_client.post("/v1/booking/create", json={**booking_request_data, **overrides})
    assert response.status_code == 201, response.text
    return response.json()["booking"]


@pytest.mark.asyncio
async def test_create_booking_endpoint(route, test_client, booking_request_data):
    response = await test_client.post("/v1/booking/create", json=booking_request_data)

    assert response.status_code == 201
    data = response.json()
    assert data["authorization_url"] is None
    assert data["message"] == "Your booking has been received."
    assert data["booking"]["status"] == "Pending"
    assert data["booking"]["total_fare"] == 8000
    assert data["booking"]["trip_id"] == "abeokuta_ibadan_4-seater-sienna_2025-03-12_1"
    assert "X-Request-ID" in response.headers


@pytest.mark.asyncio
async def test_create_booking_invalid_data(route, test_client, booking_request_data):
    response = await test_client.post(
        "/v1/booking/create",
        json={**booking_request_data, "email": "not-an-email", "name": ""},
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_booking_past_date(route, test_client, booking_request_data):
    response = await test_client.post("/v1/booking/create", json={**booking_request_data, "intended_date": "2025-01-01"})

    assert response.status_code == 400
    data = response.json()
    assert data["code"] == "VALIDATION"
    assert data["title"] == "Validation Error"


@pytest.mark.asyncio
async def test_create_booking_unknown_route(route, test_client, booking_request_data):
    response = await test_client.post("/v1/booking/create", json={**booking_request_data, "destination": "Ilorin"})

    assert response.status_code == 422
    data = response.json()
    assert data["code"] == "NO_CAPACITY_RULE"
    assert data["price_rule_id"] == "abeokuta_ilorin_4-seater-sienna"


@pytest.mark.asyncio
async def test_create_booking_when_full(store, test_client, booking_request_data):
    await store.add_rule(vehicle_count=1)
    for n in range(4):
        await _create(test_client, booking_request_data, email=f"rider{n}@example.com")

    response = await test_client.post("/v1/booking/create", json=booking_request_data)

    assert response.status_code == 409
    assert response.json()["code"] == "TRIP_FULL"


@pytest.mark.asyncio
async def test_seat_availability_endpoint(route, test_client, booking_request_data):
    response = await test_client.post("/v1/seats/availability", json=AVAILABILITY_QUERY)
    assert response.status_code == 200
    assert response.json() == {"available_seats": 8, "total_capacity": 8, "is_full": False}

    await _create(test_client, booking_request_data)

    response = await test_client.post("/v1/seats/availability", json=AVAILABILITY_QUERY)
    assert response.json()["available_seats"] == 7


@pytest.mark.asyncio
async def test_seat_availability_unknown_route(test_client):
    response = await test_client.post("/v1/seats/availability", json=AVAILABILITY_QUERY)

    assert response.status_code == 200
    assert response.json() == {"available_seats": 0, "total_capacity": 0, "is_full": True}


@pytest.mark.asyncio
async def test_get_and_cancel_booking(route, test_client, booking_request_data):
    booking = await _create(test_client, booking_request_data)

    response = await test_client.post("/v1/booking/get", json={"booking_id": booking["id"]})
    assert response.status_code == 200
    assert response.json()["id"] == booking["id"]

    response = await test_client.post("/v1/booking/cancel", json={"booking_id": booking["id"]})
    assert response.status_code == 200
    assert response.json()["status"] == "Cancelled"
    assert response.json()["trip_id"] is None


@pytest.mark.asyncio
async def test_get_booking_not_found(test_client):
    response = await test_client.post("/v1/booking/get", json={"booking_id": "missing"})

    assert response.status_code == 404
    data = response.json()
    assert data["code"] == "NOT_FOUND"
    assert data["resource_id"] == "missing"


@pytest.mark.asyncio
async def test_verify_payment_endpoint(route, test_client, booking_request_data, gateway):
    booking = await _create(test_client, booking_request_data)
    gateway.verifications["ref-1"] = PaymentVerification(success=True, metadata={"booking_id": booking["id"]})

    response = await test_client.post("/v1/booking/verify-payment", json={"reference": "ref-1"})

    assert response.status_code == 200
    assert response.json()["status"] == "Paid"
    assert response.json()["payment_reference"] == "ref-1"

    response = await test_client.post("/v1/booking/verify-payment", json={"reference": "ref-404"})
    assert response.status_code == 400
    assert response.json()["code"] == "PAYMENT_NOT_VERIFIED"


@pytest.mark.asyncio
async def test_request_refund_endpoint(route, test_client, booking_request_data):
    booking = await _create(test_client, booking_request_data)

    response = await test_client.post("/v1/booking/request-refund", json={"booking_id": booking["id"]})
    assert response.status_code == 409
    assert response.json()["code"] == "INVALID_STATE"


@pytest.mark.asyncio
async def test_list_trips_endpoint(route, test_client, booking_request_data):
    await _create(test_client, booking_request_data)

    response = await test_client.post("/v1/trip/list", json={"date": "2025-03-12"})

    assert response.status_code == 200
    [trip] = response.json()["trips"]
    assert trip["vehicle_index"] == 1
    assert trip["active_seats"] == 1
    assert trip["passengers"][0]["name"] == booking_request_data["name"]

    response = await test_client.post("/v1/trip/list", json={})
    assert len(response.json()["trips"]) == 1


@pytest.mark.asyncio
async def test_admin_status_override(route, test_client, booking_request_data):
    booking = await _create(test_client, booking_request_data)

    response = await test_client.post(
        "/v1/admin/booking/status",
        json={"booking_id": booking["id"], "status": "Paid"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "Paid"

    response = await test_client.post(
        "/v1/admin/booking/status",
        json={"booking_id": booking["id"], "status": "Pending"},
    )
    assert response.status_code == 409

    response = await test_client.post(
        "/v1/admin/booking/status",
        json={"booking_id": booking["id"], "status": "Lost"},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_admin_reschedule(route, test_client, booking_request_data):
    booking = await _create(test_client, booking_request_data)

    response = await test_client.post(
        "/v1/admin/booking/reschedule",
        json={"booking_id": booking["id"], "new_date": "2025-03-15"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["intended_date"] == "2025-03-15"
    assert data["rescheduled_count"] == 1
    assert data["trip_id"] == "abeokuta_ibadan_4-seater-sienna_2025-03-15_1"


@pytest.mark.asyncio
async def test_admin_delete_endpoints(route, test_client, booking_request_data):
    first = await _create(test_client, booking_request_data)
    await _create(test_client, booking_request_data, email="second@example.com")

    response = await test_client.post("/v1/admin/booking/delete", json={"booking_id": first["id"]})
    assert response.status_code == 200
    assert response.json() == {"deleted": 1}

    response = await test_client.post("/v1/admin/booking/delete", json={"booking_id": first["id"]})
    assert response.status_code == 404

    response = await test_client.post("/v1/admin/booking/delete-range", json={"start": "2025-03-10", "end": "2025-03-10"})
    assert response.status_code == 200
    assert response.json() == {"deleted": 1}

    response = await test_client.post("/v1/admin/booking/delete-range", json={"start": "2025-03-10", "end": "2025-03-01"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_admin_sweeps(route, test_client, booking_request_data, clock):
    await _create(test_client, booking_request_data)
    clock.advance(minutes=10)

    response = await test_client.post("/v1/admin/sweep/cleanup", json={})
    assert response.status_code == 200
    assert response.json() == {"trips_modified": 1}

    response = await test_client.post("/v1/admin/sweep/reschedule", json={"today": "2025-03-13"})
    assert response.status_code == 200
    data = response.json()
    assert data["today"] == "2025-03-13"
    assert data["trips_scanned"] == 1
    assert data["passengers_processed"] == 0
