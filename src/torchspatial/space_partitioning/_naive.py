"""Brute-force spatial lookup."""

from __future__ import annotations

from typing import Hashable, List, Optional, Sequence

import torch
from torch import Tensor

from torchspatial.geometry import squared_distance

from ._position import (
    PositionLike,
    as_position_tensor,
    as_positions_tensor,
    check_radius,
)
from ._spatial_lookup_algorithm import SpatialLookupAlgorithm


class Naive(SpatialLookupAlgorithm):
    """Linear scan over every entity.

    Outperforms the tree-based algorithms for scenes with fewer than about
    1 000 000 entities and fewer than about 100 queries per cycle, so it is
    the default algorithm of :class:`SpatialLookupState`. It is also the
    reference every other algorithm is tested against.

    Examples
    --------
    >>> naive = Naive()
    >>> naive.prepare(["a", "b"], torch.tensor([[0.0, 0.0, 0.0], [5.0, 0.0, 0.0]]))
    >>> naive.entities_in_radius((1.0, 0.0, 0.0), 1.0)
    ['a']
    """

    def __init__(self) -> None:
        self._identifiers: List[Hashable] = []
        self._positions: Optional[Tensor] = None

    def prepare(
        self,
        identifiers: Sequence[Hashable],
        positions: Tensor,
    ) -> None:
        positions = as_positions_tensor(positions)

        if positions.size(0) != len(identifiers):
            raise RuntimeError(
                f"identifiers and positions must have same count, "
                f"got {len(identifiers)} and {positions.size(0)}"
            )

        self._identifiers = list(identifiers)
        self._positions = positions.clone()

    def entities_in_radius(
        self,
        sample_point: PositionLike,
        radius: float,
    ) -> List[Hashable]:
        radius = check_radius(radius)

        if self._positions is None or not self._identifiers:
            return []

        distances = squared_distance(
            self._positions, as_position_tensor(sample_point)
        )
        indices = torch.nonzero(distances <= radius * radius).flatten()

        return [self._identifiers[index] for index in indices.tolist()]
