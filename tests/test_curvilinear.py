import logging

import numpy as np
import pytest
from conftest import regular_coords, warped_coords

from curvimesh import (
    BoundingBox,
    Cell,
    CurvilinearMesh,
    HorizontalPosition,
    IndexOutOfRangeError,
    InvalidMeshError,
    WGS84,
)

nan = np.nan


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def test_dimensions_follow_array_convention():
    lon, lat = regular_coords(7, 5)
    mesh = CurvilinearMesh(lon, lat)

    assert lon.shape == (5, 7)
    assert mesh.ni == mesh.get_cell_count_i() == 7
    assert mesh.nj == mesh.get_cell_count_j() == 5
    assert len(mesh) == mesh.ncells == 6 * 4
    assert len(mesh.get_cells()) == 24


def test_samples_are_stored_in_single_precision():
    lon, lat = warped_coords()
    mesh = CurvilinearMesh(lon, lat)

    assert mesh.longitudes.dtype == np.float32
    assert mesh.latitudes.dtype == np.float32
    np.testing.assert_allclose(mesh.longitudes, lon, atol=1e-5)
    with pytest.raises(ValueError):
        mesh.longitudes[0, 0] = 0.0


def test_mesh_does_not_alias_input():
    lon, lat = regular_coords(4, 3)
    lon = lon.astype(np.float32)
    mesh = CurvilinearMesh(lon, lat)
    lon[0, 0] = 1000.0
    assert mesh.get_sample(0, 0).x == -10.0


def test_bounding_box_is_exact_extrema():
    lon, lat = warped_coords()
    mesh = CurvilinearMesh(lon, lat)

    lon32 = lon.astype(np.float32)
    lat32 = lat.astype(np.float32)
    bbox = mesh.get_bounding_box()
    assert isinstance(bbox, BoundingBox)
    assert bbox.xmin == float(lon32.min())
    assert bbox.xmax == float(lon32.max())
    assert bbox.ymin == float(lat32.min())
    assert bbox.ymax == float(lat32.max())
    assert bbox.crs == WGS84


def test_repeated_queries_are_stable(warped_mesh):
    assert warped_mesh.get_cells() == warped_mesh.get_cells()
    assert warped_mesh.get_bounding_box() == warped_mesh.get_bounding_box()
    assert warped_mesh.get_bounding_box() is warped_mesh.bbox


def test_get_cells_returns_a_copy(regular_mesh):
    cells = regular_mesh.get_cells()
    cells.clear()
    assert len(regular_mesh.get_cells()) == 24


@pytest.mark.parametrize(
    "lon, lat",
    [
        (np.zeros((3, 4)), np.zeros((4, 3))),
        (np.zeros(4), np.zeros(4)),
        (np.zeros((1, 4)), np.zeros((1, 4))),
        (np.zeros((4, 1)), np.zeros((4, 1))),
        (np.zeros((2, 2, 2)), np.zeros((2, 2, 2))),
        ([["a", "b"], ["c", "d"]], np.zeros((2, 2))),
    ],
)
def test_malformed_arrays_are_rejected(lon, lat):
    with pytest.raises(InvalidMeshError):
        CurvilinearMesh(lon, lat)


@pytest.mark.parametrize("bad", [nan, np.inf, -np.inf])
def test_non_finite_coordinates_are_rejected(bad):
    lon, lat = regular_coords(4, 3)
    lat[1, 2] = bad
    with pytest.raises(InvalidMeshError) as ei:
        CurvilinearMesh(lon, lat)
    assert "non-finite" in str(ei.value)


def test_masked_coordinates_are_rejected():
    lon, lat = regular_coords(4, 3)
    lon = np.ma.masked_array(lon, mask=np.zeros(lon.shape, dtype=bool))
    lon[2, 3] = np.ma.masked
    with pytest.raises(InvalidMeshError):
        CurvilinearMesh(lon, lat)


def test_invalid_mesh_error_is_a_value_error():
    with pytest.raises(ValueError):
        CurvilinearMesh(np.zeros((1, 1)), np.zeros((1, 1)))


def test_invalid_options_are_rejected():
    lon, lat = regular_coords(4, 3)
    with pytest.raises(ValueError):
        CurvilinearMesh(lon, lat, n_candidates=0)
    with pytest.raises(ValueError):
        CurvilinearMesh(lon, lat, ftol=-1.0)


def test_construction_is_logged(caplog):
    caplog.set_level(logging.INFO, logger="curvimesh.curvilinear")
    CurvilinearMesh(*regular_coords(4, 3))
    assert any(
        "Building curvilinear mesh of 4 x 3 samples" in r.message
        for r in caplog.records
    )


def test_degenerate_cells_are_reported(caplog):
    lon, lat = regular_coords(4, 3)
    lon[:, 2] = lon[:, 1]  # collapse the third column of cells
    caplog.set_level(logging.WARNING, logger="curvimesh.curvilinear")
    mesh = CurvilinearMesh(lon, lat)
    assert any("2 degenerate" in r.message for r in caplog.records)
    assert np.count_nonzero(mesh.cell_areas == 0.0) == 2


# ---------------------------------------------------------------------------
# Cells, ordering and midpoints
# ---------------------------------------------------------------------------


def test_cell_order_is_row_major_with_i_fastest(warped_mesh):
    cells = warped_mesh.get_cells()
    nci = warped_mesh.ni - 1
    for j in range(warped_mesh.nj - 1):
        for i in range(nci):
            index = j * nci + i
            cell = warped_mesh.get_cell(i, j)
            assert cells[index] == cell
            assert (cell.i, cell.j) == (i, j)
            assert warped_mesh.cell_index(i, j) == index
            assert warped_mesh.cell_ij(index) == (i, j)


def test_cell_corners_are_adjacent_samples(warped_mesh):
    cell = warped_mesh.get_cell(4, 3)
    expected = [
        warped_mesh.get_sample(4, 3),
        warped_mesh.get_sample(5, 3),
        warped_mesh.get_sample(5, 4),
        warped_mesh.get_sample(4, 4),
    ]
    assert list(cell.corner_positions) == expected
    assert cell.corners[0] == (expected[0].x, expected[0].y)


def test_midpoint_is_mean_of_corners(warped_mesh):
    for cell in warped_mesh.get_cells():
        midpoint = warped_mesh.get_midpoint(cell.i, cell.j)
        corners = np.array(cell.corners)
        assert midpoint.x == pytest.approx(corners[:, 0].mean(), abs=1e-12)
        assert midpoint.y == pytest.approx(corners[:, 1].mean(), abs=1e-12)
        assert midpoint == cell.centre
        assert midpoint.crs == WGS84


def test_cells_are_frozen(regular_mesh):
    cell = regular_mesh.get_cell(0, 0)
    assert isinstance(cell, Cell)
    with pytest.raises(AttributeError):
        cell.i = 3


@pytest.mark.parametrize("i, j", [(6, 0), (0, 4), (-1, 0), (0, -1), (100, 100)])
def test_cell_indices_out_of_range(regular_mesh, i, j):
    with pytest.raises(IndexOutOfRangeError):
        regular_mesh.get_cell(i, j)
    with pytest.raises(IndexOutOfRangeError):
        regular_mesh.get_midpoint(i, j)
    with pytest.raises(IndexError):
        regular_mesh.cell_index(i, j)


def test_linear_index_out_of_range(regular_mesh):
    with pytest.raises(IndexOutOfRangeError):
        regular_mesh.cell_ij(24)
    with pytest.raises(IndexOutOfRangeError):
        regular_mesh.cell_ij(-1)


def test_sample_indices(regular_mesh):
    last = regular_mesh.get_sample(6, 4)
    assert last == HorizontalPosition(-10.0 + 6 * 0.125, -50.0 + 4 * 0.0625)
    with pytest.raises(IndexOutOfRangeError):
        regular_mesh.get_sample(7, 0)
    with pytest.raises(IndexOutOfRangeError):
        regular_mesh.get_sample(0, 5)


def test_index_errors_leave_mesh_usable(regular_mesh):
    with pytest.raises(IndexOutOfRangeError):
        regular_mesh.get_cell(99, 0)
    assert regular_mesh.get_cell(1, 1).centre == regular_mesh.get_midpoint(1, 1)


def test_numpy_integer_indices(regular_mesh):
    assert regular_mesh.get_cell(np.int64(2), np.int32(1)) == regular_mesh.get_cell(2, 1)


# ---------------------------------------------------------------------------
# Cell geometry
# ---------------------------------------------------------------------------


def test_regular_cell_geometry(regular_mesh):
    cell = regular_mesh.get_cell(2, 1)
    assert cell.footprint == BoundingBox(
        (-10.0 + 2 * 0.125, -10.0 + 3 * 0.125, -50.0 + 0.0625, -50.0 + 2 * 0.0625)
    )
    assert cell.area == pytest.approx(0.125 * 0.0625)
    assert cell.to_polygon().area == pytest.approx(cell.area)
    assert cell.contains(cell.centre)
    assert cell.contains(cell.corner_positions[2])
    assert not cell.contains((cell.centre.x + 0.125, cell.centre.y))


def test_cell_areas(warped_mesh):
    areas = warped_mesh.cell_areas
    assert areas.shape == (warped_mesh.ncells,)
    assert np.all(areas > 0)
    # every cell is a parallelogram of sides 0.5 and 0.4 before shearing
    np.testing.assert_allclose(areas, 0.5 * 0.4, rtol=1e-4)
    assert warped_mesh.mean_cell_area == pytest.approx(0.2, rel=1e-4)


def test_boundary_polygon_covers_cells(warped_mesh):
    polygon = warped_mesh.get_boundary_polygon()
    assert polygon.is_valid
    assert polygon.area == pytest.approx(warped_mesh.cell_areas.sum(), rel=1e-6)
    minx, miny, maxx, maxy = polygon.bounds
    assert (minx, maxx, miny, maxy) == pytest.approx(warped_mesh.bbox.bbox)


def test_plot(warped_mesh, tmp_path):
    filename = tmp_path / "mesh.png"
    fig, ax, lc = warped_mesh.plot(title="mesh", filename=str(filename))
    assert len(lc.get_segments()) == warped_mesh.ni + warped_mesh.nj
    assert filename.exists()

    _, _, lc = warped_mesh.plot(ax=ax, coarsen=2, holding=True)
    assert len(lc.get_segments()) == 6 + 5
    with pytest.raises(ValueError):
        warped_mesh.plot(coarsen=0)


def test_repr(regular_mesh):
    assert "ni=7" in repr(regular_mesh)
    assert "nj=5" in repr(regular_mesh)
