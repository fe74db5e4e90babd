"""Dense identifier/position storage with O(1) upsert and removal."""

from __future__ import annotations

from typing import Dict, Hashable, Iterator, List, Optional, Tuple

import torch
from torch import Tensor

from ._position import DTYPE, Position, PositionLike, as_position


class TrackedSet:
    """Densely packed (identifier, position) pairs plus an identifier → slot map.

    Every identifier appears at most once and ``slot(identifier)`` always
    points at the entry holding it. Removal swaps the last entry into the
    vacated slot and repairs that entry's slot, so storage stays dense and
    order is not preserved.
    """

    def __init__(self) -> None:
        self._identifiers: List[Hashable] = []
        self._positions: List[Position] = []
        self._slots: Dict[Hashable, int] = {}

    def __len__(self) -> int:
        return len(self._identifiers)

    def __contains__(self, identifier: Hashable) -> bool:
        return identifier in self._slots

    def __iter__(self) -> Iterator[Tuple[Hashable, Position]]:
        return iter(zip(self._identifiers, self._positions))

    @property
    def identifiers(self) -> List[Hashable]:
        return list(self._identifiers)

    def positions(self) -> Tensor:
        """Tracked positions as a ``float64`` tensor of shape (n, 3)."""
        if not self._positions:
            return torch.empty(0, 3, dtype=DTYPE)

        return torch.tensor(self._positions, dtype=DTYPE)

    def slot(self, identifier: Hashable) -> Optional[int]:
        return self._slots.get(identifier)

    def position(self, identifier: Hashable) -> Optional[Position]:
        slot = self._slots.get(identifier)

        if slot is None:
            return None

        return self._positions[slot]

    def upsert(self, identifier: Hashable, position: PositionLike) -> bool:
        """Insert or overwrite an entry. Returns ``True`` if it was new."""
        p = as_position(position)
        slot = self._slots.get(identifier)

        if slot is not None:
            self._positions[slot] = p
            return False

        self._slots[identifier] = len(self._identifiers)
        self._identifiers.append(identifier)
        self._positions.append(p)

        return True

    def remove(self, identifier: Hashable) -> bool:
        """Remove an entry. Returns ``False`` if it was not tracked."""
        slot = self._slots.pop(identifier, None)

        if slot is None:
            return False

        last = len(self._identifiers) - 1

        if slot != last:
            moved = self._identifiers[last]
            self._identifiers[slot] = moved
            self._positions[slot] = self._positions[last]
            self._slots[moved] = slot

        self._identifiers.pop()
        self._positions.pop()

        return True

    def clear(self) -> None:
        self._identifiers.clear()
        self._positions.clear()
        self._slots.clear()
