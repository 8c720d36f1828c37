"""
Ride Offer API Endpoints.

The dispatch layer offers a ride request to one driver; the driver accepts
or rejects before the countdown runs out.
"""

from fastapi import APIRouter, Body, Depends, Path, status

from geodispatch.app.core.dependencies import get_current_driver, get_offer_manager
from geodispatch.app.core.guards import require_role
from geodispatch.app.models.enums import UserRole
from geodispatch.app.schemas.ride_offer import RideOfferCreate, RideOfferResponse
from geodispatch.app.services.collaborators import CurrentUser
from geodispatch.app.services.ride_offers import OfferManager

router = APIRouter(prefix="/offers", tags=["Ride Offers"])


@router.post("", response_model=RideOfferResponse, status_code=status.HTTP_201_CREATED)
async def create_offer(
    payload: RideOfferCreate = Body(...),
    dispatcher: CurrentUser = Depends(require_role([UserRole.DISPATCHER])),
    manager: OfferManager = Depends(get_offer_manager),
):
    """
    Offer a ride request to a driver and start its countdown (Dispatcher only).

    Returns 409 if the driver was already offered this request.
    """
    lifecycle = await manager.offer(payload)
    return lifecycle.to_response()


@router.get("/{offer_id}", response_model=RideOfferResponse)
async def get_offer(
    offer_id: str = Path(..., description="Offer ID"),
    current_user: CurrentUser = Depends(get_current_driver),
    manager: OfferManager = Depends(get_offer_manager),
):
    return manager.get(offer_id).to_response()


@router.post("/{offer_id}/accept", response_model=RideOfferResponse)
async def accept_offer(
    offer_id: str = Path(..., description="Offer ID"),
    current_driver: CurrentUser = Depends(get_current_driver),
    manager: OfferManager = Depends(get_offer_manager),
):
    """Accept an offer (addressed driver only, before it expires)."""
    lifecycle = await manager.accept(offer_id, current_driver.driver_id)
    return lifecycle.to_response()


@router.post("/{offer_id}/reject", response_model=RideOfferResponse)
async def reject_offer(
    offer_id: str = Path(..., description="Offer ID"),
    current_driver: CurrentUser = Depends(get_current_driver),
    manager: OfferManager = Depends(get_offer_manager),
):
    """Reject an offer (addressed driver only)."""
    lifecycle = await manager.reject(offer_id, current_driver.driver_id)
    return lifecycle.to_response()
