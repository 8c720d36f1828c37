"""
Pre-Deploy and Smoke Test Script.

Validates the environment and runs a smoke test of the dispatch path:
1. Health Check
2. Driver publishes a location
3. Nearby lookup returns the driver
4. Ride offer is created and accepted
5. Driver goes offline and disappears from the lookup

Without arguments the app runs in-process through TestClient (its lifespan
opens the configured database and Redis). Pass a base URL to check a
running deployment over HTTP instead:

    python scripts/validate_deployment.py http://127.0.0.1:8000
"""

import sys
import uuid
from pathlib import Path

import requests

sys.path.insert(0, str(Path(__file__).parent.parent))

from geodispatch.app.core.jwt import create_access_token

SMOKE_POINT = {"latitude": 26.7271, "longitude": 85.9274}


class RemoteClient:
    """requests-backed client with the TestClient call shape."""

    def __init__(self, base_url):
        self.base_url = base_url.rstrip("/")
        self.session = requests.Session()

    def request(self, method, path, **kwargs):
        return self.session.request(method, f"{self.base_url}{path}", timeout=10, **kwargs)

    def get(self, path, **kwargs):
        return self.request("GET", path, **kwargs)

    def put(self, path, **kwargs):
        return self.request("PUT", path, **kwargs)

    def post(self, path, **kwargs):
        return self.request("POST", path, **kwargs)


def print_step(step, msg):
    print(f"[{step}] {msg}")


def fail(msg):
    print(f"❌ FAILURE: {msg}")
    sys.exit(1)


def success(msg):
    print(f"✅ {msg}")


def run_smoke(client):
    driver_id = f"smoke_{uuid.uuid4().hex[:8]}"
    token = create_access_token(data={"sub": driver_id, "user_id": driver_id})
    headers = {"Authorization": f"Bearer {token}"}
    dispatch_token = create_access_token(data={"sub": "smoke_dispatch", "user_id": "smoke_dispatch", "role": "DISPATCHER"})
    dispatch_headers = {"Authorization": f"Bearer {dispatch_token}"}

    # 1. Health Check
    print_step("PRE-DEPLOY", "Checking /health...")
    res = client.get("/health")
    if res.status_code != 200:
        fail(f"Health check failed: {res.status_code} {res.text}")
    success(f"Healthy: {res.json()}")

    # 2. Publish location
    print_step("SMOKE", f"Publishing location for {driver_id}...")
    res = client.put("/v1/driver/location", json=SMOKE_POINT, headers=headers)
    if res.status_code != 200:
        fail(f"Location update failed: {res.status_code} {res.text}")
    cell_id = res.json()["cell_id"]
    success(f"Stored in cell {cell_id}")

    try:
        # 3. Nearby lookup
        print_step("SMOKE", "Querying nearby drivers...")
        res = client.get(
            "/v1/drivers/nearby",
            params={"lat": SMOKE_POINT["latitude"], "lng": SMOKE_POINT["longitude"], "rings": 0},
        )
        found = [d["driver"]["driver_id"] for d in res.json().get("drivers", [])]
        if driver_id not in found:
            fail(f"Driver missing from nearby results: {res.text}")
        success(f"{len(found)} driver(s) in cell")

        # 4. Ride offer
        print_step("SMOKE", "Offering a ride...")
        res = client.post("/v1/offers", json={
            "request_id": f"smoke_ride_{uuid.uuid4().hex[:8]}",
            "driver_id": driver_id,
            "pickup": {"address": "Smoke pickup", **SMOKE_POINT},
            "dropoff": {"address": "Smoke dropoff"},
            "fare": 0,
        }, headers=dispatch_headers)
        if res.status_code != 201:
            fail(f"Offer creation failed: {res.status_code} {res.text}")
        offer_id = res.json()["offer_id"]

        res = client.post(f"/v1/offers/{offer_id}/accept", headers=headers)
        if res.status_code != 200 or res.json()["state"] != "ACCEPTED":
            fail(f"Offer accept failed: {res.status_code} {res.text}")
        success("Offer accepted")
    finally:
        # 5. Offline
        print_step("CLEANUP", "Taking smoke driver offline...")
        res = client.post("/v1/driver/offline", headers=headers)
        if res.status_code != 200 or not res.json()["removed"]:
            fail(f"Offline failed: {res.status_code} {res.text}")
        success("Driver removed")


def main():
    print("🚀 Starting Deployment Validation...")

    if len(sys.argv) > 1:
        run_smoke(RemoteClient(sys.argv[1]))
    else:
        from fastapi.testclient import TestClient
        from geodispatch.app.main import app

        with TestClient(app) as client:
            run_smoke(client)

    success("Deployment Validation Passed!")


if __name__ == "__main__":
    main()
