"""Normalization of caller-supplied positions and radii."""

from __future__ import annotations

import math
from typing import Sequence, Tuple, Union

import torch
from torch import Tensor

Position = Tuple[float, float, float]
PositionLike = Union[Tensor, Sequence[float]]

# Positions are stored and compared in double precision everywhere so that
# every algorithm evaluates the same distance arithmetic.
DTYPE = torch.float64


def as_position(position: PositionLike) -> Position:
    """Convert a length-3 tensor or sequence to a finite ``(x, y, z)`` tuple."""
    if isinstance(position, Tensor):
        if position.numel() != 3:
            raise RuntimeError(
                f"position must have 3 components, got shape {tuple(position.shape)}"
            )
        components = position.detach().reshape(3).tolist()
    else:
        if len(position) != 3:
            raise RuntimeError(
                f"position must have 3 components, got {len(position)}"
            )
        components = position

    x, y, z = (float(component) for component in components)

    if not (math.isfinite(x) and math.isfinite(y) and math.isfinite(z)):
        raise RuntimeError(f"position must be finite, got {(x, y, z)}")

    return x, y, z


def as_position_tensor(position: PositionLike) -> Tensor:
    """Convert a position to a ``float64`` tensor of shape (3,)."""
    return torch.tensor(as_position(position), dtype=DTYPE)


def as_positions_tensor(positions: Union[Tensor, Sequence[Position]]) -> Tensor:
    """Convert a batch of positions to a ``float64`` tensor of shape (n, 3)."""
    if isinstance(positions, Tensor):
        tensor = positions.detach().to(dtype=DTYPE)
    else:
        tensor = torch.tensor(list(positions), dtype=DTYPE)

    if tensor.numel() == 0:
        return tensor.reshape(0, 3)

    if tensor.dim() != 2 or tensor.size(-1) != 3:
        raise RuntimeError(
            f"positions must be shape (n, 3), got {tuple(tensor.shape)}"
        )

    if not bool(torch.isfinite(tensor).all()):
        raise RuntimeError("positions must be finite")

    return tensor


def check_radius(radius: float) -> float:
    """Validate a query radius."""
    radius = float(radius)

    if not radius >= 0:
        raise RuntimeError(f"radius must be non-negative, got {radius}")

    return radius
