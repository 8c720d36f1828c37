"""
FastAPI Application Entry Point.

This is the main application file for the Geo-Dispatch Backend.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from geodispatch.app.core.config import Settings, settings as default_settings
from geodispatch.app.api.v1.router import router as api_v1_router
from geodispatch.app.core.observability import ObservabilityMiddleware
from geodispatch.app.core.redis_client import create_redis, ping_redis
from geodispatch.app.db.session import Database
from geodispatch.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)
from geodispatch.app.services.driver_location_store import DriverLocationStore
from geodispatch.app.services.nearby_query import NearbyDriverQuery
from geodispatch.app.services.ride_offers import OfferLedger, OfferManager
from geodispatch.app.services.spatial_index import SpatialIndexer

# Import models to ensure they are registered with Base
from geodispatch.app.models.driver_location import DriverLocation  # noqa: F401

logger = logging.getLogger(__name__)


def init_services(app: FastAPI, settings: Settings, database: Database, redis_client) -> None:
    """Wire the shared clients and the services built on them onto app.state."""
    indexer = SpatialIndexer(settings.h3_resolution)

    app.state.settings = settings
    app.state.database = database
    app.state.redis = redis_client
    app.state.indexer = indexer
    app.state.location_store = DriverLocationStore(database, indexer)
    app.state.nearby_query = NearbyDriverQuery(database, indexer)
    app.state.offer_manager = OfferManager(
        OfferLedger(redis_client, settings.offer_ledger_ttl_seconds),
        settings,
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Lifespan context manager for application startup/shutdown.

        1. Opens the database and Redis clients and creates tables.
        2. Stops running offer countdowns and closes the clients on shutdown.
        """
        database = Database(settings)
        redis_client = create_redis(settings)
        await database.create_all()
        if not await ping_redis(redis_client):
            logger.warning("Redis is not reachable at startup, ride offers will fail until it is")

        init_services(app, settings, database, redis_client)
        yield

        await app.state.offer_manager.shutdown()
        await redis_client.aclose()
        await database.dispose()

    app = FastAPI(
        title=settings.app_name,
        version=settings.api_version,
        debug=settings.debug,
        description="Driver location indexing, nearby driver matching and ride offers",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Register global exception handlers
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.add_middleware(ObservabilityMiddleware)

    @app.get("/health", tags=["Health"])
    async def health_check():
        """
        Health check endpoint.

        Returns:
            dict: Status and application information
        """
        return {
            "status": "healthy",
            "app_name": settings.app_name,
            "version": settings.api_version,
        }

    @app.get("/", tags=["Root"])
    async def root():
        return {
            "message": "Welcome to Geo-Dispatch Backend API",
            "docs": "/docs",
            "health": "/health",
        }

    # Include API v1 router
    app.include_router(api_v1_router, prefix=f"/{settings.api_version}")

    return app


app = create_app()
