"""
Custom exceptions and error handlers for consistent error responses.

Provides the domain error taxonomy for location indexing, driver matching
and ride offers, plus the global exception handlers.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


# Spatial index

class InvalidCoordinateError(AppException):
    """Raised when a latitude/longitude pair is NaN or out of range."""

    def __init__(self, latitude: Any, longitude: Any):
        super().__init__(
            message=f"Invalid coordinate ({latitude}, {longitude})",
            error_code="ERR_GEO_001",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"latitude": str(latitude), "longitude": str(longitude)}
        )


class InvalidCellError(AppException):
    """Raised when a string is not a valid spatial index cell."""

    def __init__(self, cell_id: Any):
        super().__init__(
            message=f"Invalid cell id {cell_id!r}",
            error_code="ERR_GEO_002",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"cell_id": str(cell_id)}
        )


class InvalidRingRadiusError(AppException):
    """Raised when a k-ring radius is negative."""

    def __init__(self, k: Any):
        super().__init__(
            message=f"Ring radius must be >= 0, got {k}",
            error_code="ERR_GEO_003",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"k": str(k)}
        )


# Driver location store

class MissingDriverIdError(AppException):
    """Raised when a location write has no driver id."""

    def __init__(self):
        super().__init__(
            message="Driver ID is missing",
            error_code="ERR_DRIVER_001",
            status_code=status.HTTP_400_BAD_REQUEST
        )


class DriverNotFoundError(AppException):
    """Raised when no location record exists for a driver."""

    def __init__(self, driver_id: Any):
        super().__init__(
            message=f"No location record for driver {driver_id}",
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": "driver_location", "id": driver_id}
        )


class PersistenceError(AppException):
    """Raised when the backing store fails. The cause is kept opaque to callers."""

    def __init__(self, message: str = "Failed to persist driver location"):
        super().__init__(
            message=message,
            error_code="ERR_STORE_001",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE
        )


# Location acquisition

class LocationAcquisitionError(AppException):
    """Base class for failures of the geolocation collaborator."""

    def __init__(self, message: str, error_code: str):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE
        )


class PermissionDeniedError(LocationAcquisitionError):
    """Location permission was refused. Requires user action, never retried."""

    def __init__(self, message: str = "Location permission denied. Please enable in settings."):
        super().__init__(message=message, error_code="ERR_LOC_001")


class PositionUnavailableError(LocationAcquisitionError):
    """Location services are disabled or no provider could produce a fix."""

    def __init__(self, message: str = "Location services disabled. Please enable them."):
        super().__init__(message=message, error_code="ERR_LOC_002")


class AcquisitionTimeoutError(LocationAcquisitionError):
    """A position request did not complete within its timeout."""

    def __init__(self, message: str = "Location request timed out."):
        super().__init__(message=message, error_code="ERR_LOC_003")


# Ride offers

class OfferNotFoundError(AppException):
    """Raised when an offer id is unknown."""

    def __init__(self, offer_id: Any):
        super().__init__(
            message=f"Ride offer {offer_id} not found",
            error_code="ERR_NOT_FOUND_002",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": "ride_offer", "id": offer_id}
        )


class OfferAlreadyResolvedError(AppException):
    """Raised when acting on an offer that already reached a terminal state."""

    def __init__(self, offer_id: Any, state: str):
        super().__init__(
            message=f"Ride offer {offer_id} is already {state}",
            error_code="ERR_OFFER_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"id": offer_id, "state": state}
        )


class OfferAlreadyPresentedError(AppException):
    """Raised when a ride request would be re-offered to the same driver."""

    def __init__(self, request_id: Any, driver_id: Any):
        super().__init__(
            message=f"Ride request {request_id} was already offered to driver {driver_id}",
            error_code="ERR_OFFER_002",
            status_code=status.HTTP_409_CONFLICT,
            details={"request_id": request_id, "driver_id": driver_id}
        )


class InsufficientPermissionsError(AppException):
    """Raised when user doesn't have permission to perform an action."""

    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    if exc.status_code >= 500:
        logger.warning(
            "%s [%s] on %s: %s",
            exc.error_code, getattr(request.state, "correlation_id", "-"), request.url.path, exc.message
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": exc.errors()
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception(
        "Unhandled exception [%s] on %s: %s: %s",
        getattr(request.state, "correlation_id", "-"), request.url.path, type(exc).__name__, exc
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
