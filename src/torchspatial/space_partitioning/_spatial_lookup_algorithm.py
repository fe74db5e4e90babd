"""Interface shared by all spatial lookup algorithms."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Hashable, List, NamedTuple, Sequence, Tuple

from torch import Tensor

from ._position import PositionLike


class DebugVolume(NamedTuple):
    """Box describing part of an index's internal structure.

    Diagnostic only: consumed by external renderers, never by queries.

    Parameters
    ----------
    center : tuple of float
        Center of the box.
    half_extents : tuple of float
        Half edge length along each axis.
    level : int
        Depth of the node that owns the box (root is 0).
    """

    center: Tuple[float, float, float]
    half_extents: Tuple[float, float, float]
    level: int


class SpatialLookupAlgorithm(ABC):
    """Base class for spatial lookup algorithms.

    Subclasses must implement :meth:`prepare` and :meth:`entities_in_radius`.
    Algorithms that can absorb per-entity changes without a full rebuild
    override :attr:`supports_incremental` to return ``True`` and implement
    :meth:`insert_entity`, :meth:`remove_entity` and :meth:`update_entity`.
    """

    @abstractmethod
    def prepare(
        self,
        identifiers: Sequence[Hashable],
        positions: Tensor,
    ) -> None:
        """Prepare the lookup with a fresh snapshot of entities.

        Parameters
        ----------
        identifiers : sequence of hashable
            Entity identifiers. Each appears at most once.
        positions : Tensor, shape (n, 3), dtype=float64
            Position of each identifier, in the same order.
        """

    @abstractmethod
    def entities_in_radius(
        self,
        sample_point: PositionLike,
        radius: float,
    ) -> List[Hashable]:
        """Return all identifiers within ``radius`` of ``sample_point``.

        The result must contain every identifier whose position lies within
        the radius (inclusive) and nothing else. Order is unspecified.
        """

    @property
    def supports_incremental(self) -> bool:
        """Whether the algorithm accepts per-entity insert/remove/update."""
        return False

    def insert_entity(self, identifier: Hashable, position: PositionLike) -> None:
        raise NotImplementedError(
            f"{type(self).__name__} does not support incremental updates"
        )

    def remove_entity(self, identifier: Hashable) -> None:
        raise NotImplementedError(
            f"{type(self).__name__} does not support incremental updates"
        )

    def update_entity(self, identifier: Hashable, position: PositionLike) -> None:
        raise NotImplementedError(
            f"{type(self).__name__} does not support incremental updates"
        )

    def reset(self) -> None:
        """Discard built state so the next :meth:`prepare` rebuilds from scratch."""

    def debug_volumes(self) -> List[DebugVolume]:
        return []
