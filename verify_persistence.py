"""
Restart test: a published driver location survives a server restart and
is still returned by the nearby query.

Needs the configured database (DATABASE_URL) and Redis to be running.
"""

import os
import signal
import subprocess
import sys
import time

import httpx

from geodispatch.app.core.jwt import create_access_token

BASE_URL = "http://127.0.0.1:8000"
API_PREFIX = "/v1"
DRIVER_ID = "persist_driver"
POINT = {"latitude": 26.7271, "longitude": 85.9274}


def start_server(echo: bool = False) -> subprocess.Popen:
    env = {**os.environ, "DB_ECHO": "True"} if echo else dict(os.environ)
    return subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "geodispatch.app.main:app", "--host", "127.0.0.1", "--port", "8000"],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env=env,
    )


def stop_server(proc: subprocess.Popen) -> None:
    proc.send_signal(signal.SIGTERM)
    proc.wait()


def wait_for_server(retries=10, delay=2):
    url = f"{BASE_URL}/health"
    print(f"Waiting for server at {url}...")
    for _ in range(retries):
        try:
            if httpx.get(url).status_code == 200:
                print("✅ Server is up!")
                return True
        except httpx.ConnectError:
            pass
        time.sleep(delay)
    print("❌ Server failed to start.")
    return False


def run_verification():
    headers = {
        "Authorization": f"Bearer {create_access_token({'sub': DRIVER_ID, 'user_id': DRIVER_ID})}"
    }

    print("\n--- [Step 1] Starting Server (Initial) ---")
    proc = start_server(echo=True)
    try:
        if not wait_for_server():
            stdout, stderr = proc.communicate(timeout=2)
            print("Server Stdout:", stdout.decode())
            print("Server Stderr:", stderr.decode())
            raise RuntimeError("Server start failed")

        print("\n--- [Step 2] Publishing Driver Location ---")
        resp = httpx.put(f"{BASE_URL}{API_PREFIX}/driver/location", json=POINT, headers=headers)
        if resp.status_code != 200:
            raise RuntimeError(f"Location update failed: {resp.status_code} {resp.text}")
        print("✅ Location stored:", resp.json())
    finally:
        print("\n--- [Step 3] Stopping Server ---")
        stop_server(proc)

    time.sleep(2)  # Wait for port release

    print("\n--- [Step 4] Restarting Server (Verification) ---")
    proc = start_server()
    try:
        if not wait_for_server():
            raise RuntimeError("Server restart failed")

        print("\n--- [Step 5] Querying Nearby Drivers ---")
        resp = httpx.get(
            f"{BASE_URL}{API_PREFIX}/drivers/nearby",
            params={"lat": POINT["latitude"], "lng": POINT["longitude"], "rings": 0},
        )
        found = [d["driver"]["driver_id"] for d in resp.json().get("drivers", [])]
        if DRIVER_ID not in found:
            raise RuntimeError(f"Driver not found after restart: {resp.status_code} {resp.text}")
        print("✅ Driver location persisted across restart")

        print("\n--- [Step 6] Going Offline (Cleanup) ---")
        resp = httpx.post(f"{BASE_URL}{API_PREFIX}/driver/offline", headers=headers)
        print(resp.json())
    finally:
        print("\n--- [Step 7] Stopping Server ---")
        stop_server(proc)


if __name__ == "__main__":
    run_verification()
