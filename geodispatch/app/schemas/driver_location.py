"""
Driver location schemas.

DriverLocationRecord is the validating boundary for rows coming back from
the persistence layer.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List

from geodispatch.app.models.enums import DriverStatus


class LocationUpdate(BaseModel):
    """Schema for a driver reporting its position."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    vehicle_type: str = Field("car", min_length=1, max_length=32)


class LocationUpdateResponse(BaseModel):
    """Response after storing a driver location."""
    record_id: int
    driver_id: str
    cell_id: str


class OfflineResponse(BaseModel):
    """Response after taking a driver offline."""
    driver_id: str
    removed: bool


class DriverLocationRecord(BaseModel):
    """Strict view of a stored driver location."""
    driver_id: str = Field(..., min_length=1)
    cell_id: str = Field(..., min_length=1)
    latitude: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    longitude: float = Field(..., ge=-180, le=180, allow_inf_nan=False)
    status: DriverStatus
    vehicle_type: str
    phone_number: Optional[str] = None
    last_updated: datetime

    class Config:
        from_attributes = True


class NearbyDriver(BaseModel):
    """A driver found near a query point."""
    driver: DriverLocationRecord
    distance_km: float


class NearbyDriversResponse(BaseModel):
    """Nearby driver query response."""
    cell_id: str
    ring_radius: int
    drivers: List[NearbyDriver]
    total: int
