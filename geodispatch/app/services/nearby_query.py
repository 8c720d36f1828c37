"""
Nearby driver query.

Coarse filter by spatial index cells (the k-ring around the rider's cell),
then client-side refinement by great-circle distance.
"""

import logging
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from geodispatch.app.core.exceptions import PersistenceError
from geodispatch.app.db.session import Database
from geodispatch.app.models.driver_location import DriverLocation
from geodispatch.app.models.enums import DriverStatus
from geodispatch.app.schemas.driver_location import DriverLocationRecord, NearbyDriver
from geodispatch.app.services.geo import haversine_km_many
from geodispatch.app.services.spatial_index import SpatialIndexer

logger = logging.getLogger(__name__)


class NearbyDriverQuery:
    """Finds online drivers around a point."""

    def __init__(self, database: Database, indexer: SpatialIndexer):
        self._database = database
        self._indexer = indexer

    async def find_nearby(
        self,
        latitude: float,
        longitude: float,
        ring_radius: int = 1,
        max_distance_km: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> List[NearbyDriver]:
        """
        Online drivers whose cell lies within ring_radius steps of the query cell.

        Args:
            latitude: Rider latitude
            longitude: Rider longitude
            ring_radius: k-ring size, 0 means the rider's own cell only
            max_distance_km: Optional cut-off applied after ranking
            limit: Optional maximum number of results

        Returns:
            Drivers ordered by distance, closest first

        Raises:
            InvalidCoordinateError: If the query point is invalid
            InvalidRingRadiusError: If ring_radius is negative
            PersistenceError: If the backend fails
        """
        cells = self._indexer.cells_near(latitude, longitude, ring_radius)

        try:
            async with self._database.session() as db:
                result = await db.execute(
                    select(DriverLocation).where(
                        DriverLocation.status == DriverStatus.ONLINE,
                        DriverLocation.cell_id.in_(sorted(cells)),
                    )
                )
                rows = result.scalars().all()
        except SQLAlchemyError as exc:
            logger.error("Nearby driver query failed: %s", exc)
            raise PersistenceError("Failed to query nearby drivers") from exc

        records = []
        for row in rows:
            try:
                records.append(DriverLocationRecord.model_validate(row))
            except ValidationError as exc:
                logger.warning("Skipping malformed location record for driver %s: %s", row.driver_id, exc)

        if not records:
            return []

        distances = haversine_km_many(
            latitude,
            longitude,
            [record.latitude for record in records],
            [record.longitude for record in records],
        )

        nearby = [
            NearbyDriver(driver=record, distance_km=float(distance))
            for record, distance in zip(records, distances)
        ]
        nearby.sort(key=lambda item: (item.distance_km, item.driver.driver_id))

        if max_distance_km is not None:
            nearby = [item for item in nearby if item.distance_km <= max_distance_km]
        if limit is not None:
            nearby = nearby[:limit]

        return nearby
