"""Exact point-in-quadrilateral tests for curvilinear cells.

The crossing-number test follows Darren Engwirda's `inpoly` routine as
ported for oceanmesh: each polygon edge is oriented bottom-to-top, a
horizontal ray is cast from the query point, and points that lie on an
edge within a tolerance are reported as boundary points (and counted as
inside).

Unlike `inpoly`, which tests many points against one polygon, :func:`inquad`
pairs the k-th point with the k-th polygon. A cell search tests every
query point against its own list of candidate cells, so the pairing is the
natural layout.

The compiled (numba) kernel is used unless the environment variable
``CURVIMESH_INPOLY_ACCEL`` is set to ``0`` at import time, in which case the
vectorised numpy kernel is used. Both produce the same answers.
"""

import logging
import os

import numpy as np
from numba import jit

logger = logging.getLogger(__name__)

__all__ = ["inquad"]

_COMPILED_KERNEL_AVAILABLE = (
    os.environ.get("CURVIMESH_INPOLY_ACCEL", "1").strip() != "0"
)


def inquad(vert, quad, ftol=4.9485e-16):
    """Inside/outside status of points paired with polygons.

    Parameters
    ----------
    vert: array-like
        VERT is an N-by-2 array of XY coordinates to query.
    quad: array-like
        QUAD is an N-by-M-by-2 array of polygon vertices. Row k holds the
        M vertices of the polygon that VERT[k] is tested against, in ring
        order (either orientation).
    ftol: float, optional
        FTOL is a floating-point tolerance for boundary comparisons,
        scaled by the extent of each polygon. By default, FTOL = EPS ^ 0.85.

    Returns
    -------
    STAT: ndarray
        N-by-1 logical array, with STAT[k] = True if VERT[k] is inside or
        on the boundary of polygon k.
    BNDS: ndarray
        N-by-1 logical array, with BNDS[k] = True if VERT[k] lies "on" a
        boundary segment of polygon k.
    """
    vert = np.ascontiguousarray(vert, dtype=np.float64)
    quad = np.ascontiguousarray(quad, dtype=np.float64)
    if vert.ndim != 2 or vert.shape[1] != 2:
        raise ValueError(f"vert must be an N-by-2 array, got shape {vert.shape}.")
    if quad.ndim != 3 or quad.shape[2] != 2 or quad.shape[1] < 3:
        raise ValueError(
            f"quad must be an N-by-M-by-2 array with M >= 3, got shape {quad.shape}."
        )
    if len(vert) != len(quad):
        raise ValueError(
            f"vert and quad must pair up: {len(vert)} points vs {len(quad)} polygons."
        )
    if ftol < 0:
        raise ValueError("ftol must be >= 0.0")

    if len(vert) == 0:
        return np.zeros(0, dtype=bool), np.zeros(0, dtype=bool)

    if _COMPILED_KERNEL_AVAILABLE:
        stat, bnds = _inquad_compiled(vert, quad, ftol)
    else:
        stat, bnds = _inquad_numpy(vert, quad, ftol)
    return stat.astype(bool), bnds.astype(bool)


def _inquad_numpy(vert, quad, ftol):
    xpos = vert[:, 0]
    ypos = vert[:, 1]

    ddxy = quad.max(axis=1) - quad.min(axis=1)
    lbar = ddxy.sum(axis=1) / 2.0
    feps = ftol * lbar**2
    veps = ftol * lbar

    stat = np.zeros(len(vert), dtype=bool)
    bnds = np.zeros(len(vert), dtype=bool)

    nnod = quad.shape[1]
    for epos in range(nnod):
        one = quad[:, epos, :]
        two = quad[:, (epos + 1) % nnod, :]

        # orient edges bottom-to-top
        swap = two[:, 1] < one[:, 1]
        xone = np.where(swap, two[:, 0], one[:, 0])
        yone = np.where(swap, two[:, 1], one[:, 1])
        xtwo = np.where(swap, one[:, 0], two[:, 0])
        ytwo = np.where(swap, one[:, 1], two[:, 1])

        xdel = xtwo - xone
        ydel = ytwo - yone
        mul1 = ydel * (xpos - xone)
        mul2 = xdel * (ypos - yone)

        near = (
            (ypos >= yone - veps)
            & (ypos <= ytwo + veps)
            & (xpos >= np.minimum(xone, xtwo) - veps)
            & (xpos <= np.maximum(xone, xtwo) + veps)
        )
        onedge = near & (np.abs(mul2 - mul1) <= feps)
        bnds |= onedge

        # advance crossing number
        cross = (ypos >= yone) & (ypos < ytwo) & (mul1 < mul2)
        stat ^= cross

    stat |= bnds
    return stat, bnds


if _COMPILED_KERNEL_AVAILABLE:

    @jit(nopython=True)
    def _inquad_compiled(vert, quad, ftol):

        _nvrt = vert.shape[0]
        _nnod = quad.shape[1]

        _stat = np.zeros((_nvrt), dtype=np.bool_)
        _bnds = np.zeros((_nvrt), dtype=np.bool_)

        for ipos in range(_nvrt):

            xpos = vert[ipos, 0]
            ypos = vert[ipos, 1]

            # calc. polygon extent
            xlow = quad[ipos, 0, 0]
            xupp = quad[ipos, 0, 0]
            ylow = quad[ipos, 0, 1]
            yupp = quad[ipos, 0, 1]
            for npos in range(1, _nnod):
                xlow = min(xlow, quad[ipos, npos, 0])
                xupp = max(xupp, quad[ipos, npos, 0])
                ylow = min(ylow, quad[ipos, npos, 1])
                yupp = max(yupp, quad[ipos, npos, 1])

            lbar = ((xupp - xlow) + (yupp - ylow)) / 2.0
            feps = ftol * lbar**2
            veps = ftol * lbar

            inside = False
            onedge = False

            # loop over polygon edges
            for epos in range(_nnod):

                jpos = (epos + 1) % _nnod

                xone = quad[ipos, epos, 0]
                yone = quad[ipos, epos, 1]
                xtwo = quad[ipos, jpos, 0]
                ytwo = quad[ipos, jpos, 1]

                if ytwo < yone:
                    xone, xtwo = xtwo, xone
                    yone, ytwo = ytwo, yone

                xdel = xtwo - xone
                ydel = ytwo - yone

                mul1 = ydel * (xpos - xone)
                mul2 = xdel * (ypos - yone)

                if (
                    (ypos >= yone - veps)
                    and (ypos <= ytwo + veps)
                    and (xpos >= min(xone, xtwo) - veps)
                    and (xpos <= max(xone, xtwo) + veps)
                    and (abs(mul2 - mul1) <= feps)
                ):
                    # BNDS -- approx. on edge
                    onedge = True
                    break

                if (ypos >= yone) and (ypos < ytwo) and (mul1 < mul2):
                    # advance crossing number
                    inside = not inside

            if onedge:
                _bnds[ipos] = True
                _stat[ipos] = True
            else:
                _stat[ipos] = inside

        return _stat, _bnds

else:
    _inquad_compiled = None
    logger.debug("Using the numpy point-in-quadrilateral kernel")
