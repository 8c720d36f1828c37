"""
Driver Location API Endpoints.

Drivers publish their position while online and remove it when going offline.
"""

import logging
from fastapi import APIRouter, Body, Depends

from geodispatch.app.core.dependencies import get_current_driver, get_indexer, get_location_store
from geodispatch.app.core.exceptions import DriverNotFoundError
from geodispatch.app.schemas.driver_location import (
    LocationUpdate, LocationUpdateResponse, OfflineResponse
)
from geodispatch.app.services.collaborators import CurrentUser
from geodispatch.app.services.driver_location_store import DriverLocationStore
from geodispatch.app.services.spatial_index import SpatialIndexer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/driver", tags=["Driver - Location"])


@router.put("/location", response_model=LocationUpdateResponse)
async def update_location(
    payload: LocationUpdate = Body(...),
    current_driver: CurrentUser = Depends(get_current_driver),
    store: DriverLocationStore = Depends(get_location_store),
    indexer: SpatialIndexer = Depends(get_indexer),
):
    """
    Store the driver's current position (Driver only).

    Creates the record on first call and updates it afterwards; the cell id
    is derived from the coordinates.
    """
    record_id = await store.upsert(
        current_driver.driver_id,
        payload.latitude,
        payload.longitude,
        phone_number=current_driver.phone or "unknown",
        vehicle_type=payload.vehicle_type,
    )
    return LocationUpdateResponse(
        record_id=record_id,
        driver_id=current_driver.driver_id,
        cell_id=indexer.cell_for(payload.latitude, payload.longitude),
    )


@router.post("/offline", response_model=OfflineResponse)
async def go_offline(
    current_driver: CurrentUser = Depends(get_current_driver),
    store: DriverLocationStore = Depends(get_location_store),
):
    """
    Take the driver offline (Driver only).

    A driver without a stored location is not an error.
    """
    try:
        await store.set_offline(current_driver.driver_id)
    except DriverNotFoundError:
        logger.info("Driver %s went offline without a stored location", current_driver.driver_id)
        return OfflineResponse(driver_id=current_driver.driver_id, removed=False)

    return OfflineResponse(driver_id=current_driver.driver_id, removed=True)
