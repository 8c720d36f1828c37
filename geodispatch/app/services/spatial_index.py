"""
Hexagonal spatial index for driver positions.

Wraps H3: a coordinate maps to one cell at a fixed resolution, and a
search region is the k-ring (grid disk) around the rider's cell.
"""

import math
from typing import Optional, Set

import h3

from geodispatch.app.core.exceptions import (
    InvalidCoordinateError, InvalidCellError, InvalidRingRadiusError
)

DEFAULT_RESOLUTION = 9


def validate_coordinate(latitude: float, longitude: float) -> None:
    """
    Reject NaN, infinities and out-of-range coordinates.

    Raises:
        InvalidCoordinateError
    """
    try:
        lat = float(latitude)
        lng = float(longitude)
    except (TypeError, ValueError):
        raise InvalidCoordinateError(latitude, longitude)

    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise InvalidCoordinateError(latitude, longitude)
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        raise InvalidCoordinateError(latitude, longitude)


class SpatialIndexer:
    """Maps coordinates to cells and expands cells into k-rings."""

    def __init__(self, resolution: int = DEFAULT_RESOLUTION):
        if not 0 <= resolution <= 15:
            raise ValueError(f"H3 resolution must be in [0, 15], got {resolution}")
        self._resolution = resolution

    @property
    def resolution(self) -> int:
        return self._resolution

    def cell_for(self, latitude: float, longitude: float, resolution: Optional[int] = None) -> str:
        """
        Cell containing the coordinate.

        Args:
            latitude: Latitude in degrees
            longitude: Longitude in degrees
            resolution: Override of the system resolution (tests and tooling only)

        Returns:
            H3 cell id string

        Raises:
            InvalidCoordinateError: If the coordinate is invalid
        """
        validate_coordinate(latitude, longitude)
        res = self._resolution if resolution is None else resolution
        return h3.latlng_to_cell(float(latitude), float(longitude), res)

    def ring_around(self, cell_id: str, k: int) -> Set[str]:
        """
        All cells within k steps of cell_id, including cell_id itself.

        Raises:
            InvalidCellError: If cell_id is not a valid cell
            InvalidRingRadiusError: If k is negative
        """
        if not isinstance(k, int) or isinstance(k, bool) or k < 0:
            raise InvalidRingRadiusError(k)
        if not isinstance(cell_id, str) or not h3.is_valid_cell(cell_id):
            raise InvalidCellError(cell_id)
        return set(h3.grid_disk(cell_id, k))

    def cells_near(self, latitude: float, longitude: float, k: int) -> Set[str]:
        """k-ring around the cell containing the coordinate."""
        return self.ring_around(self.cell_for(latitude, longitude), k)
