"""
Nearby Drivers API Endpoints.

Rider-side lookup of online drivers around a pickup point.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Request

from geodispatch.app.core.dependencies import get_nearby_query
from geodispatch.app.schemas.driver_location import NearbyDriversResponse
from geodispatch.app.services.nearby_query import NearbyDriverQuery

router = APIRouter(prefix="/drivers", tags=["Rider - Nearby Drivers"])


@router.get("/nearby", response_model=NearbyDriversResponse)
async def list_nearby_drivers(
    request: Request,
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    rings: Optional[int] = Query(None, ge=0, le=20),
    max_distance_km: Optional[float] = Query(None, gt=0),
    limit: Optional[int] = Query(None, ge=1, le=100),
    query: NearbyDriverQuery = Depends(get_nearby_query),
):
    """
    Online drivers within `rings` grid steps of the point, closest first.
    """
    ring_radius = request.app.state.settings.default_ring_radius if rings is None else rings
    drivers = await query.find_nearby(
        lat, lng, ring_radius=ring_radius, max_distance_km=max_distance_km, limit=limit
    )

    return NearbyDriversResponse(
        cell_id=request.app.state.indexer.cell_for(lat, lng),
        ring_radius=ring_radius,
        drivers=drivers,
        total=len(drivers),
    )
