r"""Coordinate helpers shared by the curvilinear mesh.

This module holds the small amount of coordinate logic the mesh needs:

* :class:`HorizontalPosition`, an immutable (x, y, crs) value. The CRS is
    parsed with :mod:`pyproj` and carried along as metadata; positions are
    never reprojected.
* :func:`nearest_equivalent_longitude`, which moves a longitude by a whole
    turn so that it sits within half a turn of a reference longitude. Cells
    that straddle the antimeridian are made contiguous with it.
* :func:`to_3d`, the usual mapping of geographic coordinates onto a sphere
    of radius ``R``

.. math::

    x = R \cos\phi \cos\lambda, \quad
    y = R \cos\phi \sin\lambda, \quad
    z = R \sin\phi,

which lets a k-d tree measure proximity without seams at the dateline or
the poles.
"""

from dataclasses import dataclass

import numpy as np
from pyproj import CRS

__all__ = [
    "WGS84",
    "HorizontalPosition",
    "get_crs_string",
    "nearest_equivalent_longitude",
    "to_3d",
]

WGS84 = CRS.from_epsg(4326)


def get_crs_string(crs):
    """Return a compact string representation of a CRS-like object.

    Parameters
    ----------
    crs : pyproj.CRS | str | int | None
    """
    if crs is None:
        return "None"
    try:
        _crs = CRS.from_user_input(crs)
        return _crs.to_string()
    except Exception:
        return str(crs)


def nearest_equivalent_longitude(lon, reference):
    """Shift `lon` by 360 degrees where it is more than 180 degrees away
    from `reference`.

    Values already within 180 degrees of the reference are returned
    unchanged (bit for bit), so regular meshes are left untouched.

    Parameters
    ----------
    lon: float or array-like
        Longitudes in degrees.
    reference: float or array-like
        Reference longitudes in degrees, broadcastable against `lon`.

    Returns
    -------
    lon: float or ndarray
        The equivalent longitudes nearest to `reference`.
    """
    lon = np.asarray(lon, dtype=float)
    reference = np.asarray(reference, dtype=float)
    delta = lon - reference
    out = np.where(delta > 180.0, lon - 360.0, np.where(delta < -180.0, lon + 360.0, lon))
    if out.ndim == 0:
        return float(out)
    return out


def to_3d(x, y, R=1):
    lon = np.array(x)
    lat = np.array(y)
    # to 3D
    kx = np.cos(lat / 180 * np.pi) * np.cos(lon / 180 * np.pi) * R
    ky = np.cos(lat / 180 * np.pi) * np.sin(lon / 180 * np.pi) * R
    kz = np.sin(lat / 180 * np.pi) * R

    return kx, ky, kz


@dataclass(frozen=True)
class HorizontalPosition:
    """A point on the horizontal plane.

    Parameters
    ----------
    x: float
        Longitude for geographic CRSs, easting otherwise.
    y: float
        Latitude for geographic CRSs, northing otherwise.
    crs: pyproj.CRS | str | int, optional
        Anything :meth:`pyproj.CRS.from_user_input` understands.
        Defaults to WGS84 (EPSG:4326).
    """

    x: float
    y: float
    crs: CRS = WGS84

    def __post_init__(self):
        object.__setattr__(self, "x", float(self.x))
        object.__setattr__(self, "y", float(self.y))
        if not isinstance(self.crs, CRS):
            object.__setattr__(self, "crs", CRS.from_user_input(self.crs))

    def __iter__(self):
        yield self.x
        yield self.y

    def __repr__(self):
        return f"HorizontalPosition(x={self.x!r}, y={self.y!r}, crs={get_crs_string(self.crs)!r})"
