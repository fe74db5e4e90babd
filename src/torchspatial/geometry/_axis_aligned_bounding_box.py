"""Axis-aligned bounding boxes of point sets."""

from __future__ import annotations

import torch
from tensordict import tensorclass
from torch import Tensor

from ._exceptions import InsufficientPointsError


@tensorclass
class AxisAlignedBoundingBox:
    """Axis-aligned bounding box (AABB).

    Use :func:`axis_aligned_bounding_box` to construct instances from points.

    Attributes
    ----------
    lower : Tensor, shape (3,)
        Left-bottom corner of the box.
    upper : Tensor, shape (3,)
        Top-right corner of the box. ``lower <= upper`` componentwise.
    """

    lower: Tensor
    upper: Tensor

    @property
    def extents(self) -> Tensor:
        """Edge lengths of the box, shape (3,)."""
        return self.upper - self.lower

    @property
    def center(self) -> Tensor:
        """Midpoint of the box, shape (3,)."""
        return (self.lower + self.upper) * 0.5

    def surface_area(self) -> float:
        """Total surface area of the box."""
        return float(surface_area(self.extents))


def surface_area(extents: Tensor) -> Tensor:
    r"""Total surface area of boxes with the given edge lengths.

    .. math::
        A = 2 (e_x e_y + e_x e_z + e_y e_z)

    Parameters
    ----------
    extents : Tensor, shape (..., 3)
        Edge lengths.

    Returns
    -------
    Tensor, shape (...,)
        Surface areas.
    """
    x = extents[..., 0]
    y = extents[..., 1]
    z = extents[..., 2]

    return x * y * 2.0 + x * z * 2.0 + y * z * 2.0


def axis_aligned_bounding_box(points: Tensor) -> AxisAlignedBoundingBox:
    """Compute the tight axis-aligned bounding box of a point set.

    Parameters
    ----------
    points : Tensor, shape (n, 3)
        Points to enclose. Must contain at least one point.

    Returns
    -------
    AxisAlignedBoundingBox
        Box whose corners are the componentwise minimum and maximum.

    Raises
    ------
    InsufficientPointsError
        If ``points`` is empty.

    Examples
    --------
    >>> box = axis_aligned_bounding_box(torch.tensor([[0.0, 1.0, 2.0],
    ...                                               [1.0, 0.0, 4.0]]))
    >>> box.lower
    tensor([0., 0., 2.])
    >>> box.surface_area()
    10.0
    """
    if points.dim() != 2 or points.size(-1) != 3:
        raise RuntimeError(
            f"points must be shape (n, 3), got {tuple(points.shape)}"
        )

    if points.size(0) == 0:
        raise InsufficientPointsError(
            "cannot compute the bounding box of an empty point set"
        )

    return AxisAlignedBoundingBox(
        lower=torch.amin(points, dim=0),
        upper=torch.amax(points, dim=0),
        batch_size=[],
    )
