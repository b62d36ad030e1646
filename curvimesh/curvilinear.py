import logging
import operator
from dataclasses import dataclass

import matplotlib.pyplot as plt
import numpy as np
import scipy.spatial
import shapely
import shapely.geometry
from matplotlib import collections as mc
from pyproj import CRS

from .bbox import BoundingBox
from .errors import IndexOutOfRangeError, InvalidMeshError
from .geometry import get_border, quad_centroid, quad_corners, quad_vol
from .inpoly import inquad
from .region import (
    HorizontalPosition,
    get_crs_string,
    nearest_equivalent_longitude,
    to_3d,
)

logger = logging.getLogger(__name__)

__all__ = ["CurvilinearMesh", "Cell"]

# how much the candidate list grows when the first search finds nothing
_WIDEN_FACTOR = 8
# (point, candidate) pairs tested per batch, bounds the work arrays
_CHUNK = 2**19


def _coordinates(position, crs):
    """Unpack a query position, refusing positions in a different CRS."""
    if isinstance(position, HorizontalPosition):
        if not position.crs.equals(crs):
            raise ValueError(
                f"Position CRS {get_crs_string(position.crs)} does not match "
                f"mesh CRS {get_crs_string(crs)}; reproject the position first."
            )
        return position.x, position.y
    x, y = position
    return float(x), float(y)


def _as_coordinate_array(values, name):
    if np.ma.isMaskedArray(values):
        values = np.ma.filled(values.astype(float), np.nan)
    try:
        arr = np.array(values, dtype=np.float32)
    except (TypeError, ValueError) as e:
        raise InvalidMeshError(f"{name} is not a numeric array: {e}") from e
    if arr.ndim != 2:
        raise InvalidMeshError(f"{name} must be a 2-D array, got {arr.ndim}-D.")
    return arr


@dataclass(frozen=True)
class Cell:
    """A quadrilateral cell of a :class:`CurvilinearMesh`.

    Cell (i, j) is bounded by the samples (i, j), (i+1, j), (i+1, j+1) and
    (i, j+1), which is also the order of `corners`.

    Attributes
    ----------
    i: int
        Cell index along the first mesh dimension.
    j: int
        Cell index along the second mesh dimension.
    corners: tuple
        Four (x, y) tuples in ring order. For geographic meshes the corner
        longitudes are within 180 degrees of the first corner, so they may
        differ from the matching :meth:`CurvilinearMesh.get_sample` by 360.
    centre: :class:`HorizontalPosition`
        Arithmetic mean of the corners.
    """

    i: int
    j: int
    corners: tuple
    centre: HorizontalPosition

    @property
    def crs(self):
        return self.centre.crs

    @property
    def corner_positions(self):
        return tuple(HorizontalPosition(x, y, self.centre.crs) for x, y in self.corners)

    @property
    def footprint(self):
        """The minimal axis-aligned :class:`BoundingBox` around the corners."""
        xs = [c[0] for c in self.corners]
        ys = [c[1] for c in self.corners]
        return BoundingBox((min(xs), max(xs), min(ys), max(ys)), self.centre.crs)

    @property
    def area(self):
        """Planar area in squared CRS units."""
        return abs(float(quad_vol(np.array([self.corners]))[0]))

    def contains(self, position):
        """Whether `position` is inside (or on the edge of) this cell."""
        x, y = _coordinates(position, self.centre.crs)
        if self.centre.crs.is_geographic:
            x = nearest_equivalent_longitude(x, self.centre.x)
        stat, _ = inquad([[x, y]], [self.corners])
        return bool(stat[0])

    def to_polygon(self):
        """The cell outline as a :class:`shapely.geometry.Polygon`."""
        return shapely.geometry.Polygon(self.corners)


class CurvilinearMesh:
    """A two-dimensional mesh of sample points whose rows and columns need
    not follow lines of constant longitude or latitude, together with the
    quadrilateral cells between them and an index for locating points.

    The mesh is immutable. Everything is computed once, on construction.

    Parameters
    ----------
    longitudes: array-like
        2D array of x-coordinates (longitudes for geographic CRSs) with
        shape (nj, ni); `longitudes[j, i]` is sample (i, j).
    latitudes: array-like
        2D array of y-coordinates with the same shape as `longitudes`.
    crs: pyproj.CRS | str | int, optional
        Coordinate reference system of the samples. Carried through to
        every position and bounding box, never transformed.
    n_candidates: int, optional
        Number of nearest cell centroids tested exactly per query point.
    ftol: float, optional
        Floating-point tolerance for the point-in-cell boundary test.

    Attributes
    ----------
    ni: int
        number of sample points along i
    nj: int
        number of sample points along j
    bbox: :class:`BoundingBox`
        extent of all sample points

    Raises
    ------
    InvalidMeshError
        If the arrays are not 2D, differ in shape, have fewer than two
        samples along either dimension or contain non-finite values.
    """

    def __init__(
        self,
        longitudes,
        latitudes,
        crs="EPSG:4326",
        n_candidates=16,
        ftol=4.9485e-16,
    ):
        if int(n_candidates) < 1:
            raise ValueError("n_candidates must be >= 1")
        if ftol < 0:
            raise ValueError("ftol must be >= 0.0")
        self._crs = CRS.from_user_input(crs)
        self._n_candidates = int(n_candidates)
        self._ftol = float(ftol)
        self._geographic = self._crs.is_geographic

        lon = _as_coordinate_array(longitudes, "longitudes")
        lat = _as_coordinate_array(latitudes, "latitudes")
        if lon.shape != lat.shape:
            raise InvalidMeshError(
                f"longitudes and latitudes differ in shape: {lon.shape} vs {lat.shape}."
            )
        nj, ni = lon.shape
        if ni < 2 or nj < 2:
            raise InvalidMeshError(
                f"A mesh needs at least 2 x 2 samples, got ni={ni}, nj={nj}."
            )
        for name, arr in (("longitudes", lon), ("latitudes", lat)):
            nbad = arr.size - np.count_nonzero(np.isfinite(arr))
            if nbad:
                raise InvalidMeshError(f"{name} contains {nbad} non-finite value(s).")

        logger.info(
            f"Building curvilinear mesh of {ni} x {nj} samples "
            f"({(ni - 1) * (nj - 1)} cells) in {get_crs_string(self._crs)}..."
        )

        lon.setflags(write=False)
        lat.setflags(write=False)
        self._lon = lon
        self._lat = lat
        self._ni = ni
        self._nj = nj

        self._bbox = BoundingBox(
            (float(lon.min()), float(lon.max()), float(lat.min()), float(lat.max())),
            self._crs,
        )

        self._build_geometry()
        self._build_index()
        self._cells = self._build_cells()

    def _build_geometry(self):
        logger.debug("Entering:_build_geometry")
        corners = quad_corners(self._lon, self._lat)
        self._crosses_antimeridian = False
        if self._geographic:
            harmonised = nearest_equivalent_longitude(
                corners[:, :, 0], corners[:, :1, 0]
            )
            shifted = harmonised != corners[:, :, 0]
            if np.any(shifted):
                self._crosses_antimeridian = True
                logger.info(
                    f"{np.count_nonzero(np.any(shifted, axis=1))} cells straddle "
                    "the antimeridian; their corners were harmonised"
                )
            corners[:, :, 0] = harmonised

        areas = np.abs(quad_vol(corners))
        extent = max(self._bbox.width, self._bbox.height, 1.0)
        tiny = (np.finfo(np.float32).eps * extent) ** 2
        ndegenerate = np.count_nonzero(areas <= tiny)
        if ndegenerate:
            logger.warning(
                f"Mesh contains {ndegenerate} degenerate (zero-area) cells; "
                "points cannot be located in them"
            )

        self._corners = corners
        self._centres = quad_centroid(corners)
        self._areas = areas
        for arr in (self._corners, self._centres, self._areas):
            arr.setflags(write=False)
        logger.debug("Exiting:_build_geometry")

    def _to_index_space(self, xy):
        """Coordinates used by the k-d trees: points on the unit sphere for
        geographic meshes, the plane otherwise."""
        xy = np.asarray(xy, dtype=float)
        if self._geographic:
            return np.column_stack(to_3d(xy[:, 0], xy[:, 1]))
        return xy[:, :2]

    def _build_index(self):
        logger.debug("Entering:_build_index")
        self._tree = scipy.spatial.cKDTree(self._to_index_space(self._centres))
        samples = np.column_stack((self._lon.ravel(), self._lat.ravel()))
        self._sample_tree = scipy.spatial.cKDTree(self._to_index_space(samples))

        x = get_border(self._lon).astype(float)
        y = get_border(self._lat).astype(float)
        if self._geographic:
            x = np.unwrap(x, period=360.0)
        self._boundary = shapely.geometry.Polygon(np.column_stack((x, y)))
        self._boundary_valid = self._boundary.is_valid
        if self._boundary_valid:
            shapely.prepare(self._boundary)
        else:
            logger.debug("Mesh outline is not a simple polygon, searches are not pruned")
        logger.debug("Exiting:_build_index")

    def _build_cells(self):
        logger.debug("Entering:_build_cells")
        nci = self._ni - 1
        crs = self._crs
        cells = [
            Cell(
                i=n % nci,
                j=n // nci,
                corners=tuple(tuple(c) for c in quad),
                centre=HorizontalPosition(x, y, crs),
            )
            for n, (quad, (x, y)) in enumerate(
                zip(self._corners.tolist(), self._centres.tolist())
            )
        ]
        logger.debug("Exiting:_build_cells")
        return cells

    @property
    def crs(self):
        return self._crs

    @property
    def bbox(self):
        return self._bbox

    @property
    def ni(self):
        return self._ni

    @property
    def nj(self):
        return self._nj

    @property
    def ncells(self):
        return len(self._cells)

    @property
    def n_candidates(self):
        return self._n_candidates

    @property
    def ftol(self):
        return self._ftol

    @property
    def longitudes(self):
        return self._lon

    @property
    def latitudes(self):
        return self._lat

    @property
    def crosses_antimeridian(self):
        return self._crosses_antimeridian

    @property
    def cell_areas(self):
        """Planar cell areas in squared CRS units, in linear cell order."""
        return self._areas

    @property
    def mean_cell_area(self):
        return float(self._areas.mean())

    def get_bounding_box(self):
        return self._bbox

    def get_cell_count_i(self):
        """Number of sample points (not cells) along i."""
        return self._ni

    def get_cell_count_j(self):
        """Number of sample points (not cells) along j."""
        return self._nj

    def _check_cell(self, i, j):
        i = operator.index(i)
        j = operator.index(j)
        if not (0 <= i < self._ni - 1 and 0 <= j < self._nj - 1):
            raise IndexOutOfRangeError(
                f"Cell ({i}, {j}) is outside [0, {self._ni - 1}) x [0, {self._nj - 1})."
            )
        return i, j

    def cell_index(self, i, j):
        """Linear index of cell (i, j): ``j * (ni - 1) + i``."""
        i, j = self._check_cell(i, j)
        return j * (self._ni - 1) + i

    def cell_ij(self, index):
        """Inverse of :meth:`cell_index`."""
        index = operator.index(index)
        if not 0 <= index < len(self._cells):
            raise IndexOutOfRangeError(
                f"Cell index {index} is outside [0, {len(self._cells)})."
            )
        j, i = divmod(index, self._ni - 1)
        return i, j

    def get_sample(self, i, j):
        """The sample point at mesh index (i, j)."""
        i = operator.index(i)
        j = operator.index(j)
        if not (0 <= i < self._ni and 0 <= j < self._nj):
            raise IndexOutOfRangeError(
                f"Sample ({i}, {j}) is outside [0, {self._ni}) x [0, {self._nj})."
            )
        return HorizontalPosition(
            float(self._lon[j, i]), float(self._lat[j, i]), self._crs
        )

    def get_midpoint(self, i, j):
        """Centroid of cell (i, j): the mean of its four corners."""
        x, y = self._centres[self.cell_index(i, j)]
        return HorizontalPosition(x, y, self._crs)

    def get_cell(self, i, j):
        return self._cells[self.cell_index(i, j)]

    def get_cells(self):
        """All cells, ordered by :meth:`cell_index`."""
        return list(self._cells)

    def _in_extent(self, points):
        x = points[:, 0]
        y = points[:, 1]
        xmin, xmax, ymin, ymax = self._bbox.bbox
        inside = (y >= ymin) & (y <= ymax)
        if self._crosses_antimeridian:
            return inside & np.isfinite(x)
        if self._geographic:
            x = nearest_equivalent_longitude(x, (xmin + xmax) / 2.0)
        return inside & (x >= xmin) & (x <= xmax)

    def _in_outline(self, points):
        """Whether points lie inside (or on) the mesh outline. Always True
        when the outline is not a simple polygon."""
        if not self._boundary_valid:
            return np.ones(len(points), dtype=bool)
        x = points[:, 0]
        y = points[:, 1]
        inside = shapely.intersects_xy(self._boundary, x, y)
        if self._geographic:
            for shift in (-360.0, 360.0):
                inside |= shapely.intersects_xy(self._boundary, x + shift, y)
        return inside

    def _search(self, points, k):
        """Test each point against its `k` nearest cells, nearest first.
        Returns the first containing cell index or -1."""
        batch = max(1, _CHUNK // k)
        if len(points) > batch:
            return np.concatenate(
                [
                    self._search(points[s : s + batch], k)
                    for s in range(0, len(points), batch)
                ]
            )
        _, nbrs = self._tree.query(self._to_index_space(points), k=k, workers=-1)
        nbrs = np.asarray(nbrs).reshape(len(points), k)

        qx = np.broadcast_to(points[:, :1], nbrs.shape)
        qy = np.broadcast_to(points[:, 1:], nbrs.shape)
        if self._geographic:
            qx = nearest_equivalent_longitude(qx, self._centres[nbrs, 0])
        vert = np.stack((qx, qy), axis=-1).reshape(-1, 2)
        quads = self._corners[nbrs].reshape(-1, 4, 2)

        stat, _ = inquad(vert, quads, ftol=self._ftol)
        stat = stat.reshape(nbrs.shape)

        rows = np.arange(len(nbrs))
        first = np.argmax(stat, axis=1)
        return np.where(stat[rows, first], nbrs[rows, first], -1)

    def find_containing_cells(self, points):
        """Locate many points at once.

        Parameters
        ----------
        points: array-like
            Query points. 2D array of (x, y) with `float` type, in the
            mesh CRS.

        Returns
        -------
        indices: ndarray
            Linear cell indices (see :meth:`cell_index`), -1 where a
            point is not inside the mesh. 1D array with `int` type.
        """
        points = np.asarray(points, dtype=float)
        if points.ndim != 2 or points.shape[1] != 2:
            raise ValueError(f"points must be an N-by-2 array, got shape {points.shape}.")
        result = np.full(len(points), -1, dtype=np.int64)
        candidates = np.flatnonzero(self._in_extent(points))
        if candidates.size == 0:
            return result

        ncells = len(self._cells)
        k = min(self._n_candidates, ncells)
        found = self._search(points[candidates], k)
        result[candidates] = found

        missed = candidates[found < 0]
        wide = min(k * _WIDEN_FACTOR, ncells)
        if missed.size and wide > k:
            logger.debug(f"Widening search to {wide} candidates for {missed.size} points")
            found = self._search(points[missed], wide)
            result[missed] = found
            missed = missed[found < 0]

        # on strongly sheared meshes the containing cell can be further down
        # the centroid order, so points inside the outline keep going
        if missed.size:
            missed = missed[self._in_outline(points[missed])]
        k = wide
        while missed.size and k < ncells:
            k = min(2 * k, ncells)
            logger.debug(f"Extending search to {k} candidates for {missed.size} points")
            found = self._search(points[missed], k)
            result[missed] = found
            missed = missed[found < 0]
        return result

    def find_containing_cell(self, position):
        """The cell containing `position`, or None if it is outside the mesh.

        Parameters
        ----------
        position: :class:`HorizontalPosition` or tuple
            Query point in the mesh CRS.

        Returns
        -------
        cell: :class:`Cell` or None
        """
        x, y = _coordinates(position, self._crs)
        index = self.find_containing_cells(np.array([[x, y]]))[0]
        if index < 0:
            return None
        return self._cells[index]

    def find_nearest_sample(self, position):
        """Mesh index (i, j) of the sample point nearest to `position`, or
        None if `position` is outside the bounding box."""
        x, y = _coordinates(position, self._crs)
        point = np.array([[x, y]])
        if not self._in_extent(point)[0]:
            return None
        _, idx = self._sample_tree.query(self._to_index_space(point)[0])
        j, i = np.unravel_index(idx, self._lon.shape)
        return int(i), int(j)

    def get_boundary_polygon(self):
        """The outline through the perimeter samples as a
        :class:`shapely.geometry.Polygon`.

        For geographic meshes the perimeter longitudes are unwrapped, so a
        mesh across the antimeridian gives a contiguous outline.
        """
        return self._boundary

    def plot(
        self,
        ax=None,
        coarsen=1,
        xlabel=None,
        ylabel=None,
        title=None,
        holding=False,
        filename=None,
        **kwargs,
    ):
        """Draw the mesh lines (lines of constant i and constant j).

        Parameters
        ----------
        ax: matplotlib axis, optional
            Axis to draw on, a new figure is created if None.
        coarsen: int, optional
            Draw every `coarsen`-th mesh line only.
        holding: boolean, optional
            Whether to skip showing the plot.
        filename: str, optional
            Save the figure to this file.

        Returns
        -------
        fig:
        ax: handle to axis of plot
        lc: the :class:`matplotlib.collections.LineCollection` drawn
        """
        if int(coarsen) < 1:
            raise ValueError("coarsen must be a positive integer")
        lon = self._lon[:: int(coarsen), :: int(coarsen)]
        lat = self._lat[:: int(coarsen), :: int(coarsen)]
        lines = [np.column_stack((x, y)) for x, y in zip(lon, lat)]
        lines += [np.column_stack((x, y)) for x, y in zip(lon.T, lat.T)]

        kwargs.setdefault("linewidths", 0.5)
        lc = mc.LineCollection(lines, **kwargs)
        if ax is None:
            fig, ax = plt.subplots()
            ax.axis("equal")
        else:
            fig = ax.get_figure()
        ax.add_collection(lc)
        ax.autoscale()

        if xlabel is not None:
            ax.set_xlabel(xlabel)
        if ylabel is not None:
            ax.set_ylabel(ylabel)
        if title is not None:
            ax.set_title(title)

        if filename is not None:
            plt.savefig(filename)
        if holding is False:
            plt.show()
        return fig, ax, lc

    def __len__(self):
        return len(self._cells)

    def __repr__(self):
        return (
            f"CurvilinearMesh(ni={self._ni}, nj={self._nj}, "
            f"bbox={self._bbox.bbox!r}, crs={get_crs_string(self._crs)!r})"
        )
