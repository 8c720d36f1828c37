"""
Spatial index tests.

Cell assignment and k-ring expansion around a rider's cell.
"""

import math

import h3
import pytest

from geodispatch.app.core.exceptions import (
    InvalidCoordinateError, InvalidCellError, InvalidRingRadiusError
)
from geodispatch.app.services.spatial_index import SpatialIndexer, validate_coordinate

JANAKPUR = (26.7271, 85.9274)
BANGALORE = (12.9716, 77.5946)


def test_cell_for_is_deterministic(indexer):
    first = indexer.cell_for(*JANAKPUR)
    second = indexer.cell_for(*JANAKPUR)

    assert first == second
    assert h3.is_valid_cell(first)
    assert h3.get_resolution(first) == 9


def test_distant_points_get_different_cells(indexer):
    assert indexer.cell_for(*JANAKPUR) != indexer.cell_for(*BANGALORE)


def test_resolution_override(indexer):
    coarse = indexer.cell_for(*BANGALORE, resolution=5)
    assert h3.get_resolution(coarse) == 5


@pytest.mark.parametrize("lat,lng", [
    (float("nan"), 77.0),
    (12.0, float("nan")),
    (float("inf"), 77.0),
    (90.0001, 0.0),
    (-91.0, 0.0),
    (0.0, 180.5),
    (0.0, -181.0),
    (None, 77.0),
    ("north", 77.0),
])
def test_invalid_coordinates_rejected(indexer, lat, lng):
    with pytest.raises(InvalidCoordinateError):
        indexer.cell_for(lat, lng)


def test_boundary_coordinates_accepted(indexer):
    for lat, lng in [(90.0, 0.0), (-90.0, 0.0), (0.0, 180.0), (0.0, -180.0)]:
        assert h3.is_valid_cell(indexer.cell_for(lat, lng))


def test_validate_coordinate_passes_valid_pair():
    validate_coordinate(*BANGALORE)


def test_ring_zero_is_the_cell_itself(indexer):
    cell = indexer.cell_for(*BANGALORE)
    assert indexer.ring_around(cell, 0) == {cell}


def test_ring_sizes(indexer):
    cell = indexer.cell_for(*BANGALORE)
    assert not h3.is_pentagon(cell)

    ring1 = indexer.ring_around(cell, 1)
    ring2 = indexer.ring_around(cell, 2)

    assert len(ring1) == 7
    assert len(ring2) == 19
    assert cell in ring1
    assert ring1 <= ring2


def test_ring_contains_direct_neighbours(indexer):
    cell = indexer.cell_for(*JANAKPUR)
    neighbours = set(h3.grid_ring(cell, 1))

    assert neighbours <= indexer.ring_around(cell, 1)
    assert not neighbours & indexer.ring_around(cell, 0)


def test_negative_ring_radius_rejected(indexer):
    cell = indexer.cell_for(*BANGALORE)
    with pytest.raises(InvalidRingRadiusError):
        indexer.ring_around(cell, -1)


def test_invalid_cell_rejected(indexer):
    with pytest.raises(InvalidCellError):
        indexer.ring_around("not-a-cell", 1)


def test_cells_near_matches_ring_of_containing_cell(indexer):
    expected = indexer.ring_around(indexer.cell_for(*JANAKPUR), 2)
    assert indexer.cells_near(*JANAKPUR, 2) == expected


def test_neighbour_centre_is_one_step_away(indexer):
    cell = indexer.cell_for(*BANGALORE)
    neighbour = sorted(h3.grid_ring(cell, 1))[0]
    lat, lng = h3.cell_to_latlng(neighbour)

    assert indexer.cell_for(lat, lng) == neighbour
    assert indexer.cell_for(lat, lng) in indexer.cells_near(*BANGALORE, 1)
    assert indexer.cell_for(lat, lng) not in indexer.cells_near(*BANGALORE, 0)


def test_invalid_resolution_rejected():
    with pytest.raises(ValueError):
        SpatialIndexer(16)


def test_resolution_nine_cells_are_sub_kilometre(indexer):
    cell = indexer.cell_for(*BANGALORE)
    lat, lng = h3.cell_to_latlng(cell)
    # cell centre lies within one edge length of the point
    assert math.isclose(lat, BANGALORE[0], abs_tol=0.005)
    assert math.isclose(lng, BANGALORE[1], abs_tol=0.005)
