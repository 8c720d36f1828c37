"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from geodispatch.app.api.v1.endpoints import driver_location, nearby_drivers, ride_offers

router = APIRouter()

# Driver-side location publishing
router.include_router(driver_location.router)

# Rider-side matching
router.include_router(nearby_drivers.router)

# Ride offer lifecycle
router.include_router(ride_offers.router)
