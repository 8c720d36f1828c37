"""
Driver location store.

Owns the persisted driver location records: one live row per driver,
written with an atomic upsert keyed on driver_id and removed when the
driver goes offline.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update, delete
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from geodispatch.app.core.exceptions import (
    MissingDriverIdError, DriverNotFoundError, PersistenceError
)
from geodispatch.app.db.session import Database
from geodispatch.app.models.driver_location import DriverLocation
from geodispatch.app.models.enums import DriverStatus
from geodispatch.app.schemas.driver_location import DriverLocationRecord
from geodispatch.app.services.spatial_index import SpatialIndexer

logger = logging.getLogger(__name__)

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class DriverLocationStore:
    """
    Persists driver positions with their spatial index cell.

    The cell id is computed here from the coordinates on every write and
    is never accepted from callers.
    """

    def __init__(self, database: Database, indexer: SpatialIndexer):
        self._database = database
        self._indexer = indexer

    async def upsert(
        self,
        driver_id: Optional[str],
        latitude: float,
        longitude: float,
        phone_number: Optional[str] = None,
        vehicle_type: str = "car",
    ) -> int:
        """
        Create or update the location record of a driver.

        Repeated calls for the same driver converge on a single row.

        Args:
            driver_id: Stable driver identifier
            latitude: Latitude in degrees
            longitude: Longitude in degrees
            phone_number: Contact reference (optional)
            vehicle_type: Vehicle classifier

        Returns:
            Record id

        Raises:
            MissingDriverIdError: If driver_id is empty
            InvalidCoordinateError: If the coordinate is invalid (nothing is written)
            PersistenceError: If the backend fails
        """
        if not driver_id:
            raise MissingDriverIdError()

        cell_id = self._indexer.cell_for(latitude, longitude)
        values = {
            "driver_id": str(driver_id),
            "cell_id": cell_id,
            "latitude": float(latitude),
            "longitude": float(longitude),
            "status": DriverStatus.ONLINE,
            "vehicle_type": vehicle_type,
            "phone_number": phone_number,
            "last_updated": datetime.now(timezone.utc),
        }

        try:
            async with self._database.session() as db:
                record_id = await self._write(db, values)
                await db.commit()
        except SQLAlchemyError as exc:
            logger.error("Failed to store location for driver %s: %s", driver_id, exc)
            raise PersistenceError() from exc

        logger.debug("Stored driver %s at cell %s (record %s)", driver_id, cell_id, record_id)
        return record_id

    async def _write(self, db: AsyncSession, values: dict) -> int:
        insert = _UPSERT_INSERTS.get(self._database.engine.dialect.name)

        if insert is not None:
            stmt = insert(DriverLocation).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[DriverLocation.driver_id],
                set_={key: stmt.excluded[key] for key in values if key != "driver_id"},
            ).returning(DriverLocation.id)
            result = await db.execute(stmt)
            return result.scalar_one()

        # Other dialects: rely on the unique index, update on conflict
        try:
            async with db.begin_nested():
                row = DriverLocation(**values)
                db.add(row)
                await db.flush()
                return row.id
        except IntegrityError:
            changes = {key: value for key, value in values.items() if key != "driver_id"}
            await db.execute(
                update(DriverLocation)
                .where(DriverLocation.driver_id == values["driver_id"])
                .values(**changes)
            )
            result = await db.execute(
                select(DriverLocation.id).where(DriverLocation.driver_id == values["driver_id"])
            )
            return result.scalar_one()

    async def set_offline(self, driver_id: Optional[str]) -> None:
        """
        Remove the driver's record so nearby queries never return it.

        Raises:
            MissingDriverIdError: If driver_id is empty
            DriverNotFoundError: If the driver has no record
            PersistenceError: If the backend fails
        """
        if not driver_id:
            raise MissingDriverIdError()

        try:
            async with self._database.session() as db:
                result = await db.execute(
                    delete(DriverLocation).where(DriverLocation.driver_id == str(driver_id))
                )
                await db.commit()
        except SQLAlchemyError as exc:
            logger.error("Failed to set driver %s offline: %s", driver_id, exc)
            raise PersistenceError("Failed to update driver status") from exc

        if result.rowcount == 0:
            raise DriverNotFoundError(driver_id)

        logger.info("Driver %s is offline, location record removed", driver_id)

    async def get(self, driver_id: str) -> Optional[DriverLocationRecord]:
        """Validated record for a driver, or None."""
        try:
            async with self._database.session() as db:
                result = await db.execute(
                    select(DriverLocation).where(DriverLocation.driver_id == str(driver_id))
                )
                row = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to read driver location") from exc

        if row is None:
            return None
        return DriverLocationRecord.model_validate(row)
