from curvimesh.bbox import BoundingBox
from curvimesh.curvilinear import Cell, CurvilinearMesh
from curvimesh.errors import IndexOutOfRangeError, InvalidMeshError
from curvimesh.geometry import get_border, quad_centroid, quad_corners, quad_vol
from curvimesh.inpoly import inquad
from curvimesh.region import (
    WGS84,
    HorizontalPosition,
    nearest_equivalent_longitude,
    to_3d,
)

__all__ = [
    "BoundingBox",
    "Cell",
    "CurvilinearMesh",
    "HorizontalPosition",
    "IndexOutOfRangeError",
    "InvalidMeshError",
    "WGS84",
    "get_border",
    "inquad",
    "nearest_equivalent_longitude",
    "quad_centroid",
    "quad_corners",
    "quad_vol",
    "to_3d",
]

__version__ = "0.1.0"
