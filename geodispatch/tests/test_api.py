"""
HTTP surface tests.

Driver location publishing, nearby lookup and the ride offer endpoints.
"""

import pytest

RIDER = {"lat": 12.9716, "lng": 77.5946}


def _dispatcher(auth_headers):
    return auth_headers("dispatch_1", role="DISPATCHER")


def _offer_payload(request_id="ride_1", driver_id="driver_1"):
    return {
        "request_id": request_id,
        "driver_id": driver_id,
        "customer_name": "Sita",
        "pickup": {"address": "MG Road", "latitude": 12.9716, "longitude": 77.5946},
        "dropoff": {"address": "Koramangala"},
        "fare": 180.0,
    }


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "X-Correlation-ID" in response.headers
    assert "X-Process-Time" in response.headers


@pytest.mark.asyncio
async def test_correlation_id_is_echoed(client):
    response = await client.get("/", headers={"X-Correlation-ID": "abc-123"})
    assert response.headers["X-Correlation-ID"] == "abc-123"


@pytest.mark.asyncio
async def test_location_requires_token(client):
    response = await client.put("/v1/driver/location", json={"latitude": 12.97, "longitude": 77.59})
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_location_rejects_bad_token(client):
    response = await client.put(
        "/v1/driver/location",
        json={"latitude": 12.97, "longitude": 77.59},
        headers={"Authorization": "Bearer not-a-token"},
    )

    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_UNAUTHORIZED"


@pytest.mark.asyncio
async def test_publish_location_is_idempotent_per_driver(client, auth_headers, indexer):
    body = {"latitude": 12.9716, "longitude": 77.5946, "vehicle_type": "bike"}

    first = await client.put("/v1/driver/location", json=body, headers=auth_headers())
    second = await client.put("/v1/driver/location", json=body, headers=auth_headers())

    assert first.status_code == 200
    data = first.json()
    assert data["driver_id"] == "driver_1"
    assert data["cell_id"] == indexer.cell_for(12.9716, 77.5946)
    assert second.json()["record_id"] == data["record_id"]


@pytest.mark.asyncio
async def test_publish_location_validates_range(client, auth_headers):
    response = await client.put(
        "/v1/driver/location", json={"latitude": 95.0, "longitude": 77.59}, headers=auth_headers()
    )

    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_nearby_and_offline_flow(client, auth_headers):
    await client.put(
        "/v1/driver/location", json={"latitude": 12.9716, "longitude": 77.5946}, headers=auth_headers()
    )
    await client.put(
        "/v1/driver/location",
        json={"latitude": 12.9721, "longitude": 77.5946},
        headers=auth_headers("driver_2"),
    )

    response = await client.get("/v1/drivers/nearby", params={**RIDER, "rings": 2})
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert data["ring_radius"] == 2
    assert [d["driver"]["driver_id"] for d in data["drivers"]] == ["driver_1", "driver_2"]
    assert data["drivers"][0]["distance_km"] == pytest.approx(0.0, abs=1e-6)

    offline = await client.post("/v1/driver/offline", headers=auth_headers())
    assert offline.json() == {"driver_id": "driver_1", "removed": True}

    again = await client.post("/v1/driver/offline", headers=auth_headers())
    assert again.status_code == 200
    assert again.json()["removed"] is False

    response = await client.get("/v1/drivers/nearby", params={**RIDER, "rings": 2})
    assert [d["driver"]["driver_id"] for d in response.json()["drivers"]] == ["driver_2"]


@pytest.mark.asyncio
async def test_nearby_defaults_and_limits(client, auth_headers):
    for n in range(3):
        await client.put(
            "/v1/driver/location",
            json={"latitude": 12.9716, "longitude": 77.5946},
            headers=auth_headers(f"driver_{n}"),
        )

    response = await client.get("/v1/drivers/nearby", params={**RIDER, "limit": 2})

    data = response.json()
    assert data["ring_radius"] == 1
    assert data["total"] == 2


@pytest.mark.asyncio
async def test_nearby_rejects_negative_rings(client):
    response = await client.get("/v1/drivers/nearby", params={**RIDER, "rings": -1})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_offer_accept_flow(client, auth_headers):
    created = await client.post("/v1/offers", json=_offer_payload(), headers=_dispatcher(auth_headers))
    assert created.status_code == 201
    offer = created.json()
    assert offer["state"] == "OFFERED"
    assert offer["remaining_seconds"] == 30

    fetched = await client.get(f"/v1/offers/{offer['offer_id']}", headers=auth_headers())
    assert fetched.json()["offer_id"] == offer["offer_id"]

    accepted = await client.post(f"/v1/offers/{offer['offer_id']}/accept", headers=auth_headers())
    assert accepted.status_code == 200
    assert accepted.json()["state"] == "ACCEPTED"

    again = await client.post(f"/v1/offers/{offer['offer_id']}/reject", headers=auth_headers())
    assert again.status_code == 409
    assert again.json()["error_code"] == "ERR_OFFER_001"


@pytest.mark.asyncio
async def test_offer_not_repeated_to_driver(client, auth_headers):
    created = await client.post("/v1/offers", json=_offer_payload(), headers=_dispatcher(auth_headers))
    await client.post(f"/v1/offers/{created.json()['offer_id']}/reject", headers=auth_headers())

    repeat = await client.post("/v1/offers", json=_offer_payload(), headers=_dispatcher(auth_headers))

    assert repeat.status_code == 409
    assert repeat.json()["error_code"] == "ERR_OFFER_002"


@pytest.mark.asyncio
async def test_offer_answer_by_other_driver_forbidden(client, auth_headers):
    created = await client.post("/v1/offers", json=_offer_payload(), headers=_dispatcher(auth_headers))

    response = await client.post(
        f"/v1/offers/{created.json()['offer_id']}/accept", headers=auth_headers("driver_2")
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_unknown_offer(client, auth_headers):
    response = await client.get("/v1/offers/does-not-exist", headers=auth_headers())

    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_NOT_FOUND_002"


@pytest.mark.asyncio
async def test_location_response_cell_computed_without_read_back(client, app, auth_headers, indexer, mocker):
    read_back = mocker.spy(app.state.location_store, "get")

    response = await client.put(
        "/v1/driver/location", json={"latitude": 26.7271, "longitude": 85.9274}, headers=auth_headers()
    )

    assert response.status_code == 200
    assert response.json()["cell_id"] == indexer.cell_for(26.7271, 85.9274)
    assert read_back.call_count == 0


@pytest.mark.asyncio
async def test_offer_creation_requires_dispatcher(client, auth_headers, redis_client):
    anonymous = await client.post("/v1/offers", json=_offer_payload())
    assert anonymous.status_code in (401, 403)

    as_driver = await client.post("/v1/offers", json=_offer_payload(), headers=auth_headers("driver_1"))
    assert as_driver.status_code == 403
    assert as_driver.json()["error_code"] == "ERR_PERM_001"

    bogus_role = await client.post(
        "/v1/offers", json=_offer_payload(), headers=auth_headers("driver_1", role="ROOT")
    )
    assert bogus_role.status_code == 403

    # Refused callers leave no trace in the no-repeat ledger
    assert redis_client.sets == {}

    allowed = await client.post("/v1/offers", json=_offer_payload(), headers=_dispatcher(auth_headers))
    assert allowed.status_code == 201


@pytest.mark.asyncio
async def test_offer_lookup_requires_token(client, auth_headers):
    created = await client.post("/v1/offers", json=_offer_payload(), headers=_dispatcher(auth_headers))

    response = await client.get(f"/v1/offers/{created.json()['offer_id']}")

    assert response.status_code in (401, 403)
