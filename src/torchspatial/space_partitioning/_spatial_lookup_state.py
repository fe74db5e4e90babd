"""Owner of the tracked entity set and the active lookup algorithm."""

from __future__ import annotations

from typing import Hashable, Iterable, List, Optional, Tuple

from ._naive import Naive
from ._position import Position, PositionLike
from ._spatial_lookup_algorithm import DebugVolume, SpatialLookupAlgorithm
from ._tracked_set import TrackedSet


class SpatialLookupState:
    """Tracked (identifier, position) set plus the algorithm that indexes it.

    Mutations (:meth:`upsert`, :meth:`remove`) update the canonical set
    immediately. Algorithms that support incremental updates receive each
    change as it happens once the index is initialized; for all others a full
    rebuild is requested and paid once in the next :meth:`prepare`.

    Parameters
    ----------
    algorithm : SpatialLookupAlgorithm, optional
        Active algorithm. Defaults to :class:`Naive`.

    Notes
    -----
    The state has a single writer per update cycle: mutations and
    :meth:`prepare` must not run concurrently with each other or with
    queries. Queries between cycles are read-only and may run concurrently.

    Examples
    --------
    >>> state = SpatialLookupState.with_algorithm(Octree())
    >>> state.upsert("a", (0.0, 0.0, 0.0))
    >>> state.prepare()
    >>> state.upsert("a", (100.0, 100.0, 100.0))  # forwarded incrementally
    >>> state.entities_in_radius((100.0, 100.0, 100.0), 1.0)
    ['a']
    """

    def __init__(self, algorithm: Optional[SpatialLookupAlgorithm] = None) -> None:
        self._tracked = TrackedSet()
        self._algorithm = algorithm if algorithm is not None else Naive()
        self._initialized = False
        self._full_rebuild_requested = False

    @classmethod
    def with_algorithm(cls, algorithm: SpatialLookupAlgorithm) -> "SpatialLookupState":
        return cls(algorithm)

    @property
    def algorithm(self) -> SpatialLookupAlgorithm:
        return self._algorithm

    @property
    def initialized(self) -> bool:
        """Whether at least one :meth:`prepare` has completed."""
        return self._initialized

    @property
    def full_rebuild_requested(self) -> bool:
        return self._full_rebuild_requested

    @property
    def identifiers(self) -> List[Hashable]:
        """Copy of the tracked identifiers, in storage order."""
        return self._tracked.identifiers

    def __len__(self) -> int:
        return len(self._tracked)

    def __contains__(self, identifier: Hashable) -> bool:
        return identifier in self._tracked

    def position_of(self, identifier: Hashable) -> Optional[Position]:
        return self._tracked.position(identifier)

    def upsert(self, identifier: Hashable, position: PositionLike) -> None:
        """Track ``identifier`` at ``position``, inserting or moving it."""
        inserted = self._tracked.upsert(identifier, position)

        if not self._forwards_incrementally():
            self._full_rebuild_requested = True
            return

        stored = self._tracked.position(identifier)

        if inserted:
            self._algorithm.insert_entity(identifier, stored)
        else:
            self._algorithm.update_entity(identifier, stored)

    def remove(self, identifier: Hashable) -> None:
        """Stop tracking ``identifier``. Untracked identifiers are ignored."""
        if not self._tracked.remove(identifier):
            return

        if self._forwards_incrementally():
            self._algorithm.remove_entity(identifier)
        else:
            self._full_rebuild_requested = True

    def replace_all(self, entities: Iterable[Tuple[Hashable, PositionLike]]) -> None:
        """Replace the tracked set with a fresh snapshot and rebuild the index.

        Later duplicates of an identifier overwrite earlier ones.
        """
        self._tracked.clear()

        for identifier, position in entities:
            self._tracked.upsert(identifier, position)

        self._full_rebuild_requested = True
        self.prepare()

    def request_full_rebuild(self) -> None:
        """Force the next :meth:`prepare` to rebuild unconditionally."""
        self._full_rebuild_requested = True

    def set_algorithm(self, algorithm: SpatialLookupAlgorithm) -> None:
        """Swap the active algorithm; the next :meth:`prepare` rebuilds it."""
        self._algorithm = algorithm
        self._initialized = False
        self._full_rebuild_requested = True

    def prepare(self) -> None:
        """Bring the index up to date with the tracked set.

        Rebuilds from the whole tracked set on the first call and whenever a
        rebuild was requested; otherwise the index is already consistent and
        nothing happens.
        """
        if self._initialized and not self._full_rebuild_requested:
            return

        self._algorithm.reset()
        self._algorithm.prepare(self._tracked.identifiers, self._tracked.positions())

        self._full_rebuild_requested = False
        self._initialized = True

    def entities_in_radius(
        self,
        sample_point: PositionLike,
        radius: float,
    ) -> List[Hashable]:
        """Identifiers within ``radius`` (inclusive) of ``sample_point``."""
        return self._algorithm.entities_in_radius(sample_point, radius)

    query = entities_in_radius

    def debug_volumes(self) -> List[DebugVolume]:
        return self._algorithm.debug_volumes()

    def _forwards_incrementally(self) -> bool:
        return self._initialized and self._algorithm.supports_incremental
