"""
Ride offer schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class Place(BaseModel):
    """Pickup or dropoff descriptor."""
    address: str
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class RideOfferCreate(BaseModel):
    """Schema for offering a ride request to one driver."""
    request_id: str = Field(..., min_length=1)
    driver_id: str = Field(..., min_length=1)
    customer_name: str = ""
    pickup: Place
    dropoff: Place
    fare: float = Field(..., ge=0)
    payment_method: str = "Cash"
    ride_type: str = "Regular"
    timeout_seconds: Optional[int] = Field(None, gt=0)


class RideOfferResponse(BaseModel):
    """Current view of a ride offer."""
    offer_id: str
    request_id: str
    driver_id: str
    state: str
    remaining_seconds: int
    expires_at: datetime
    pickup: Place
    dropoff: Place
    fare: float
