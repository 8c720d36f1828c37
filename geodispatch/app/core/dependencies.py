"""
FastAPI dependencies.

Authentication of the calling driver and access to the services held on
the application state.
"""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from geodispatch.app.core.jwt import decode_access_token
from geodispatch.app.services.collaborators import CurrentUser, user_from_token_payload
from geodispatch.app.services.driver_location_store import DriverLocationStore
from geodispatch.app.services.nearby_query import NearbyDriverQuery
from geodispatch.app.services.ride_offers import OfferManager
from geodispatch.app.services.spatial_index import SpatialIndexer

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_driver(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    """
    FastAPI dependency for JWT authentication.

    Returns:
        The driver identified by the bearer token

    Raises:
        HTTPException: 401 if the token is invalid or carries no driver id
    """
    payload = decode_access_token(credentials.credentials, request.app.state.settings)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = user_from_token_payload(payload)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_location_store(request: Request) -> DriverLocationStore:
    return request.app.state.location_store


def get_indexer(request: Request) -> SpatialIndexer:
    return request.app.state.indexer


def get_nearby_query(request: Request) -> NearbyDriverQuery:
    return request.app.state.nearby_query


def get_offer_manager(request: Request) -> OfferManager:
    return request.app.state.offer_manager
