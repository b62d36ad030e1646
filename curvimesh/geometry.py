import numpy as np

__all__ = ["quad_vol", "quad_centroid", "quad_corners", "get_border"]


def quad_corners(x, y):
    """Corner coordinates of every cell of a structured mesh.

    :param x: x-coordinates of the mesh samples, indexed `x[j, i]`
    :type x: numpy.ndarray[`float` x (nj, ni)]
    :param y: y-coordinates of the mesh samples, indexed `y[j, i]`
    :type y: numpy.ndarray[`float` x (nj, ni)]
    :return: corners: cell corners in ring order (i,j), (i+1,j), (i+1,j+1),
        (i,j+1). Cells are ordered row-major with `i` varying fastest.
    :rtype: numpy.ndarray[`float` x ((nj-1)*(ni-1), 4, 2)]
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    cx = np.stack((x[:-1, :-1], x[:-1, 1:], x[1:, 1:], x[1:, :-1]), axis=-1)
    cy = np.stack((y[:-1, :-1], y[:-1, 1:], y[1:, 1:], y[1:, :-1]), axis=-1)
    return np.stack((cx, cy), axis=-1).reshape(-1, 4, 2)


def quad_vol(quad):
    """Signed areas of polygons with the shoelace formula.

    :param quad: polygon vertices
    :type quad: numpy.ndarray[`float` x (N, M, 2)]
    :return: volume: signed area, positive for counter-clockwise polygons.
    :rtype: numpy.ndarray[`float` x N]
    """
    quad = np.asarray(quad, dtype=float)
    x = quad[..., 0]
    y = quad[..., 1]
    xn = np.roll(x, -1, axis=-1)
    yn = np.roll(y, -1, axis=-1)
    return (x * yn - xn * y).sum(axis=-1) / 2


def quad_centroid(quad):
    """Vertex means of polygons (planar approximation).

    :param quad: polygon vertices
    :type quad: numpy.ndarray[`float` x (N, M, 2)]
    :return: centroid: mean x and y of each polygon
    :rtype: numpy.ndarray[`float` x (N, 2)]
    """
    quad = np.asarray(quad, dtype=float)
    return quad.sum(axis=-2) / quad.shape[-2]


def get_border(arr):
    """Get the border values of a 2D array, in ring order"""
    return np.concatenate(
        [arr[0, :-1], arr[:-1, -1], arr[-1, ::-1], arr[-2:0:-1, 0]], axis=0
    )
