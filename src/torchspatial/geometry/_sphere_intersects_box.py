"""Sphere-box overlap and point distance tests."""

from __future__ import annotations

import torch
from torch import Tensor


def squared_distance(points: Tensor, sample_point: Tensor) -> Tensor:
    """Squared Euclidean distance from every point to a sample point.

    The three per-axis terms are summed left to right, so results match
    scalar ``dx * dx + dy * dy + dz * dz`` arithmetic bit for bit.

    Parameters
    ----------
    points : Tensor, shape (n, 3)
        Points.
    sample_point : Tensor, shape (3,)
        Sample point.

    Returns
    -------
    Tensor, shape (n,)
        Squared distances.
    """
    difference = points - sample_point

    dx = difference[:, 0]
    dy = difference[:, 1]
    dz = difference[:, 2]

    return dx * dx + dy * dy + dz * dz


def squared_distance_to_box(
    sample_point: Tensor,
    box_min: Tensor,
    box_max: Tensor,
) -> Tensor:
    """Minimum squared distance from a point to an axis-aligned box.

    For each axis the squared distance to the nearest face is added when the
    point lies outside the box's span on that axis; inside the span the axis
    contributes zero. Points inside the box have distance zero.

    Parameters
    ----------
    sample_point : Tensor, shape (..., 3)
        Query points.
    box_min : Tensor, shape (..., 3)
        Box minimum corners.
    box_max : Tensor, shape (..., 3)
        Box maximum corners.

    Returns
    -------
    Tensor, shape (...,)
        Squared distances.
    """
    below = torch.clamp(box_min - sample_point, min=0.0)
    above = torch.clamp(sample_point - box_max, min=0.0)
    gap = below + above

    return (
        gap[..., 0] * gap[..., 0]
        + gap[..., 1] * gap[..., 1]
        + gap[..., 2] * gap[..., 2]
    )


def sphere_intersects_box(
    center: Tensor,
    radius: float,
    box_min: Tensor,
    box_max: Tensor,
) -> Tensor:
    """Test whether spheres overlap axis-aligned boxes.

    Based on Jim Arvo's box-sphere intersection test from "Graphics Gems":
    the sphere and box overlap iff the minimum squared distance from the
    sphere center to the box is at most ``radius ** 2``. Touching counts as
    overlapping.

    Parameters
    ----------
    center : Tensor, shape (..., 3)
        Sphere centers.
    radius : float
        Sphere radius (inclusive).
    box_min : Tensor, shape (..., 3)
        Box minimum corners.
    box_max : Tensor, shape (..., 3)
        Box maximum corners.

    Returns
    -------
    Tensor, shape (...,), dtype=bool
        ``True`` where the sphere and box overlap.

    Examples
    --------
    >>> box_min = torch.tensor([0.0, 0.0, 0.0])
    >>> box_max = torch.tensor([1.0, 1.0, 1.0])
    >>> sphere_intersects_box(torch.tensor([2.0, 0.5, 0.5]), 1.0, box_min, box_max)
    tensor(True)
    >>> sphere_intersects_box(torch.tensor([2.0, 2.0, 0.5]), 1.0, box_min, box_max)
    tensor(False)
    """
    return squared_distance_to_box(center, box_min, box_max) <= radius * radius
