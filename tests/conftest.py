import matplotlib
import matplotlib.pyplot as plt
import numpy as np
import pytest


matplotlib.use("Agg")  # non-interactive backend


@pytest.fixture(autouse=True)
def _suppress_matplotlib_show(monkeypatch):
    monkeypatch.setattr(plt, "show", lambda *args, **kwargs: None)


def regular_coords(ni, nj, lon0=-10.0, lat0=-50.0, dlon=0.125, dlat=0.0625):
    """A regular lon/lat grid laid out as curvilinear arrays of shape (nj, ni)."""
    lon = lon0 + np.arange(ni) * dlon
    lat = lat0 + np.arange(nj) * dlat
    return np.meshgrid(lon, lat)


def warped_coords(ni=12, nj=9, angle=30.0, warp=0.05):
    """A sheared and rotated mesh whose cells are convex parallelograms."""
    ii, jj = np.meshgrid(np.arange(ni, dtype=float), np.arange(nj, dtype=float))
    u = ii * 0.5
    v = jj * 0.4 + warp * np.sin(ii / 2.0)
    theta = np.deg2rad(angle)
    lon = -20.0 + u * np.cos(theta) - v * np.sin(theta)
    lat = 30.0 + u * np.sin(theta) + v * np.cos(theta)
    return lon, lat


def dateline_coords(ni=11, nj=6):
    """Longitudes 170, 172, ..., 178, -180, -178, ..., -170."""
    lon = ((170.0 + 2.0 * np.arange(ni) + 180.0) % 360.0) - 180.0
    lat = -10.0 + 2.0 * np.arange(nj)
    return np.meshgrid(lon, lat)


@pytest.fixture
def regular_mesh():
    from curvimesh import CurvilinearMesh

    return CurvilinearMesh(*regular_coords(7, 5))


@pytest.fixture
def warped_mesh():
    from curvimesh import CurvilinearMesh

    return CurvilinearMesh(*warped_coords())


@pytest.fixture
def dateline_mesh():
    from curvimesh import CurvilinearMesh

    return CurvilinearMesh(*dateline_coords())
