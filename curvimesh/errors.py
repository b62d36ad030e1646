__all__ = ["InvalidMeshError", "IndexOutOfRangeError"]


class InvalidMeshError(ValueError):
    """Raised when the coordinate arrays cannot form a curvilinear mesh."""


class IndexOutOfRangeError(IndexError):
    """Raised when a cell or sample index lies outside the mesh."""
