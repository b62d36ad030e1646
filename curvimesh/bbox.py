import numpy as np
from pyproj import CRS

from .region import WGS84, HorizontalPosition, get_crs_string, nearest_equivalent_longitude

__all__ = ["BoundingBox"]


class BoundingBox:
    """An immutable axis-aligned rectangle.

    Parameters
    ----------
    extent: tuple
        (xmin, xmax, ymin, ymax)
    crs: pyproj.CRS | str | int, optional
        Coordinate reference system of the extent, defaults to WGS84.
    """

    __slots__ = ("_bbox", "_crs")

    def __init__(self, extent, crs=WGS84):
        extent = tuple(extent)
        if len(extent) != 4:
            raise ValueError("bbox has wrong number of values.")
        xmin, xmax, ymin, ymax = (float(v) for v in extent)
        if not np.all(np.isfinite((xmin, xmax, ymin, ymax))):
            raise ValueError("bbox has non-finite values.")
        if xmax < xmin:
            raise ValueError("bbox has wrong values.")
        if ymax < ymin:
            raise ValueError("bbox has wrong values.")
        self._bbox = (xmin, xmax, ymin, ymax)
        self._crs = crs if isinstance(crs, CRS) else CRS.from_user_input(crs)

    @property
    def crs(self):
        return self._crs

    @property
    def bbox(self):
        return self._bbox

    @property
    def xmin(self):
        return self._bbox[0]

    @property
    def xmax(self):
        return self._bbox[1]

    @property
    def ymin(self):
        return self._bbox[2]

    @property
    def ymax(self):
        return self._bbox[3]

    @property
    def width(self):
        return self.xmax - self.xmin

    @property
    def height(self):
        return self.ymax - self.ymin

    def contains(self, position):
        """Whether `position` lies inside the box (edges included).

        For geographic CRSs a longitude is accepted if any of its
        equivalents (+/- 360 degrees) falls inside the box.
        """
        x, y = position
        if not (self.ymin <= y <= self.ymax):
            return False
        if self._crs.is_geographic:
            centre = (self.xmin + self.xmax) / 2.0
            x = nearest_equivalent_longitude(x, centre)
        return self.xmin <= x <= self.xmax

    def centre(self):
        return HorizontalPosition(
            (self.xmin + self.xmax) / 2.0, (self.ymin + self.ymax) / 2.0, self._crs
        )

    def __iter__(self):
        return iter(self._bbox)

    def __eq__(self, other):
        if not isinstance(other, BoundingBox):
            return NotImplemented
        return self._bbox == other._bbox and self._crs == other._crs

    def __hash__(self):
        return hash((self._bbox, self._crs.to_string()))

    def __repr__(self):
        return f"BoundingBox({self._bbox!r}, crs={get_crs_string(self._crs)!r})"
