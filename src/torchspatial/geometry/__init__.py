"""Geometric primitives used by the spatial lookup structures."""

from ._axis_aligned_bounding_box import (
    AxisAlignedBoundingBox,
    axis_aligned_bounding_box,
    surface_area,
)
from ._exceptions import GeometryError, InsufficientPointsError
from ._sphere_intersects_box import (
    sphere_intersects_box,
    squared_distance,
    squared_distance_to_box,
)

__all__ = [
    "AxisAlignedBoundingBox",
    "GeometryError",
    "InsufficientPointsError",
    "axis_aligned_bounding_box",
    "sphere_intersects_box",
    "squared_distance",
    "squared_distance_to_box",
    "surface_area",
]
