"""
Driver Location database model.

One live row per driver holding the last known position and its spatial
index cell.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Enum as SQLEnum, Index
from sqlalchemy.sql import func
from geodispatch.app.db.session import Base
from geodispatch.app.models.enums import DriverStatus


class DriverLocation(Base):
    """
    Driver Location model.

    The unique index on driver_id makes the store, not its callers,
    responsible for never holding two live records for one driver.
    cell_id is always derived from (latitude, longitude).
    """
    __tablename__ = "driver_locations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    driver_id = Column(String(64), nullable=False)
    cell_id = Column(String(16), nullable=False, index=True)

    # Raw coordinates
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)

    status = Column(
        SQLEnum(DriverStatus, values_callable=lambda e: [m.value for m in e], native_enum=False),
        nullable=False,
        default=DriverStatus.ONLINE
    )
    vehicle_type = Column(String(32), nullable=False, default="car")
    phone_number = Column(String(32), nullable=True)

    last_updated = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ux_driver_locations_driver_id", "driver_id", unique=True),
        Index("ix_driver_locations_status_cell", "status", "cell_id"),
    )

    def __repr__(self):
        return f"<DriverLocation(driver_id={self.driver_id}, cell={self.cell_id}, status={self.status})>"
