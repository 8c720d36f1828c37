"""
Database seeding script for demo drivers.

Places a handful of online drivers around the demo location so the nearby
driver lookup has something to return in development.
Run this script after the database is set up.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from geodispatch.app.core.config import settings
from geodispatch.app.db.session import Database
from geodispatch.app.services.driver_location_store import DriverLocationStore
from geodispatch.app.services.spatial_index import SpatialIndexer

# Import models to ensure they are registered with Base
from geodispatch.app.models.driver_location import DriverLocation  # noqa: F401

# (driver_id, latitude offset, longitude offset, vehicle type, phone)
DEMO_DRIVERS = [
    ("demo_driver_1", 0.0000, 0.0000, "car", "+9779800000001"),
    ("demo_driver_2", 0.0015, 0.0010, "bike", "+9779800000002"),
    ("demo_driver_3", -0.0020, 0.0025, "car", "+9779800000003"),
    ("demo_driver_4", 0.0040, -0.0030, "auto", "+9779800000004"),
    ("demo_driver_5", -0.0080, -0.0060, "bike", "+9779800000005"),
]


async def seed_drivers():
    """
    Seed demo drivers around the configured demo location.

    Upserting is idempotent, so the script can be re-run safely.
    """
    database = Database(settings)
    store = DriverLocationStore(database, SpatialIndexer(settings.h3_resolution))

    print("🌱 Starting driver seeding...")
    try:
        await database.create_all()
        for driver_id, dlat, dlng, vehicle_type, phone in DEMO_DRIVERS:
            await store.upsert(
                driver_id,
                settings.mock_latitude + dlat,
                settings.mock_longitude + dlng,
                phone_number=phone,
                vehicle_type=vehicle_type,
            )
            print(f"✅ {driver_id} ({vehicle_type}) online")
    finally:
        await database.dispose()

    print(f"\n🎉 Seeded {len(DEMO_DRIVERS)} drivers around ({settings.mock_latitude}, {settings.mock_longitude})")


if __name__ == "__main__":
    asyncio.run(seed_drivers())
