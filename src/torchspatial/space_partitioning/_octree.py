"""Incrementally-updated loose octree spatial lookup."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Hashable, List, Optional, Sequence, Tuple

from torch import Tensor

from ._position import (
    Position,
    PositionLike,
    as_position,
    as_positions_tensor,
    check_radius,
)
from ._spatial_lookup_algorithm import DebugVolume, SpatialLookupAlgorithm


@dataclass(frozen=True)
class OctreeConfig:
    """Configuration parameters for the :class:`Octree`.

    Leaves store entities in buckets. Splitting is triggered only once a
    bucket holds more than ``split_threshold`` entities, so small fluctuations
    (insertions and removals) do not cause constant re-splitting.

    Parameters
    ----------
    bucket_capacity : int, default=16
        Target maximum number of entities per leaf before splitting is
        considered.
    split_threshold : int, default=32
        Soft threshold above ``bucket_capacity`` that a bucket must exceed
        before it is split.
    max_depth : int, default=16
        Maximum depth of the tree.
    min_half_size : float, default=0.25
        Minimum half extent of a node. Prevents over-splitting when bounds
        become tiny.
    loose_padding : float, default=0.5
        Extra padding on node bounds used for "still fits" checks during
        updates. Larger values reduce reinsertion of moving entities but make
        queries visit more nodes.
    initial_padding : float, default=1.0
        Extra padding added to the root bounds on the initial build.
    """

    bucket_capacity: int = 16
    split_threshold: int = 32
    max_depth: int = 16
    min_half_size: float = 0.25
    loose_padding: float = 0.5
    initial_padding: float = 1.0

    def __post_init__(self) -> None:
        if self.bucket_capacity < 1:
            raise ValueError(
                f"bucket_capacity must be >= 1, got {self.bucket_capacity}"
            )
        if self.split_threshold < self.bucket_capacity:
            raise ValueError(
                f"split_threshold ({self.split_threshold}) must be >= "
                f"bucket_capacity ({self.bucket_capacity})"
            )
        if self.max_depth < 0:
            raise ValueError(f"max_depth must be >= 0, got {self.max_depth}")
        if self.min_half_size <= 0:
            raise ValueError(
                f"min_half_size must be > 0, got {self.min_half_size}"
            )
        if self.loose_padding < 0:
            raise ValueError(
                f"loose_padding must be >= 0, got {self.loose_padding}"
            )
        if self.initial_padding < 0:
            raise ValueError(
                f"initial_padding must be >= 0, got {self.initial_padding}"
            )


class _Node:
    """Arena node: a cube plus either a bucket (leaf) or 8 child indices."""

    __slots__ = ["center", "half", "depth", "children", "bucket"]

    def __init__(self, center: Position, half: float, depth: int):
        self.center = center
        self.half = half
        self.depth = depth
        self.children: Optional[List[int]] = None
        self.bucket: List[Tuple[Hashable, Position]] = []

    @property
    def is_leaf(self) -> bool:
        return self.children is None

    def contains(self, p: Position, padding: float) -> bool:
        h = self.half + padding
        cx, cy, cz = self.center

        return abs(p[0] - cx) <= h and abs(p[1] - cy) <= h and abs(p[2] - cz) <= h

    def intersects_sphere(self, c: Position, r2: float, padding: float) -> bool:
        h = self.half + padding
        d2 = 0.0

        # Same arithmetic as contains(): any point it accepts has zero gap.
        for ci, center in zip(c, self.center):
            gap = abs(ci - center) - h
            if gap > 0.0:
                d2 += gap * gap

        return d2 <= r2


def _child_index(center: Position, p: Position) -> int:
    index = 0
    if p[0] >= center[0]:
        index |= 1
    if p[1] >= center[1]:
        index |= 2
    if p[2] >= center[2]:
        index |= 4
    return index


class Octree(SpatialLookupAlgorithm):
    """Incrementally-updated loose octree.

    Nodes live in an arena (a list addressed by index, root at index 0) and a
    reverse map from identifier to leaf index makes removal and update O(1)
    amortized. The tree is built once from a snapshot; afterwards it is only
    patched through :meth:`insert_entity`, :meth:`remove_entity` and
    :meth:`update_entity`, and :meth:`prepare` is a no-op.

    Parameters
    ----------
    config : OctreeConfig, optional
        Tree parameters. Defaults to ``OctreeConfig()``.

    Notes
    -----
    **Loose bounds:** an entity that moves but stays within its leaf cube
    inflated by ``loose_padding`` is updated in place without reindexing.
    Every entity therefore lies within its leaf's cube inflated by
    ``loose_padding``, and queries prune against those inflated cubes.

    **No merging:** removals leave sparse buckets behind; nodes are never
    merged or pruned. Occupancy affects query cost only, never correctness.

    **Root growth:** inserting outside the root doubles the root and demotes
    the old root into one of its octants until the point fits.

    Examples
    --------
    >>> tree = Octree()
    >>> tree.prepare(["a"], torch.tensor([[0.0, 0.0, 0.0]]))
    >>> tree.update_entity("a", (100.0, 100.0, 100.0))
    >>> tree.entities_in_radius((100.0, 100.0, 100.0), 1.0)
    ['a']
    """

    def __init__(self, config: Optional[OctreeConfig] = None) -> None:
        self.config = config if config is not None else OctreeConfig()
        self._built = False
        self._nodes: List[_Node] = []
        self._entity_leaf: Dict[Hashable, int] = {}

    @property
    def supports_incremental(self) -> bool:
        return True

    @property
    def built(self) -> bool:
        return self._built

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def leaf_count(self) -> int:
        return sum(1 for node in self._nodes if node.is_leaf)

    @property
    def depth(self) -> int:
        """Deepest node level (root is 0)."""
        return max((node.depth for node in self._nodes), default=0)

    @property
    def root_bounds(self) -> Optional[Tuple[Position, float]]:
        """``(center, half_extent)`` of the root cube, or ``None`` before build."""
        if not self._nodes:
            return None

        root = self._nodes[0]

        return root.center, root.half

    def __len__(self) -> int:
        return len(self._entity_leaf)

    def __contains__(self, identifier: Hashable) -> bool:
        return identifier in self._entity_leaf

    def prepare(
        self,
        identifiers: Sequence[Hashable],
        positions: Tensor,
    ) -> None:
        # Only the first call builds; afterwards the tree is kept consistent
        # through the incremental entry points.
        if self._built:
            return

        positions = as_positions_tensor(positions)

        if positions.size(0) != len(identifiers):
            raise RuntimeError(
                f"identifiers and positions must have same count, "
                f"got {len(identifiers)} and {positions.size(0)}"
            )

        self._build(
            list(identifiers),
            [(x, y, z) for x, y, z in positions.tolist()],
        )

    def reset(self) -> None:
        self._nodes.clear()
        self._entity_leaf.clear()
        self._built = False

    def entities_in_radius(
        self,
        sample_point: PositionLike,
        radius: float,
    ) -> List[Hashable]:
        radius = check_radius(radius)

        if not self._built or not self._nodes:
            return []

        c = as_position(sample_point)
        r2 = radius * radius
        padding = self.config.loose_padding

        out = []
        stack = [0]

        while stack:
            node = self._nodes[stack.pop()]

            if not node.intersects_sphere(c, r2, padding):
                continue

            if node.children is not None:
                stack.extend(node.children)
                continue

            for identifier, p in node.bucket:
                dx = p[0] - c[0]
                dy = p[1] - c[1]
                dz = p[2] - c[2]
                if dx * dx + dy * dy + dz * dz <= r2:
                    out.append(identifier)

        return out

    def insert_entity(self, identifier: Hashable, position: PositionLike) -> None:
        p = as_position(position)

        if not self._built:
            self._build([identifier], [p])
            return

        if identifier in self._entity_leaf:
            self._update(identifier, p)
        else:
            self._insert(identifier, p)

    def remove_entity(self, identifier: Hashable) -> None:
        if not self._built:
            return

        self._remove(identifier)

    def update_entity(self, identifier: Hashable, position: PositionLike) -> None:
        p = as_position(position)

        if not self._built:
            self._build([identifier], [p])
            return

        self._update(identifier, p)

    def debug_volumes(self) -> List[DebugVolume]:
        return [
            DebugVolume(node.center, (node.half, node.half, node.half), node.depth)
            for node in self._nodes
        ]

    def _build(
        self,
        identifiers: List[Hashable],
        positions: List[Position],
    ) -> None:
        self._nodes.clear()
        self._entity_leaf.clear()

        cfg = self.config

        if not positions:
            # Tiny root so later inserts still have somewhere to go.
            self._nodes.append(_Node((0.0, 0.0, 0.0), max(1.0, cfg.min_half_size), 0))
            self._built = True
            return

        xs, ys, zs = zip(*positions)
        minimum = (min(xs), min(ys), min(zs))
        maximum = (max(xs), max(ys), max(zs))

        center = tuple((lo + hi) * 0.5 for lo, hi in zip(minimum, maximum))
        half = max((hi - lo) * 0.5 for lo, hi in zip(minimum, maximum))
        half = max(half + cfg.initial_padding, cfg.min_half_size)

        self._nodes.append(_Node(center, half, 0))

        for identifier, p in zip(identifiers, positions):
            if identifier in self._entity_leaf:
                self._update(identifier, p)
            else:
                self._insert(identifier, p)

        self._built = True

    def _insert(self, identifier: Hashable, p: Position) -> None:
        self._ensure_root_contains(p)
        self._insert_into(0, identifier, p)

    def _remove(self, identifier: Hashable) -> None:
        leaf = self._entity_leaf.pop(identifier, None)
        if leaf is None:
            return

        bucket = self._nodes[leaf].bucket

        for i, (entry, _) in enumerate(bucket):
            if entry == identifier:
                bucket[i] = bucket[-1]
                bucket.pop()
                break

        # NOTE: nodes are intentionally never merged on removal.

    def _update(self, identifier: Hashable, p: Position) -> None:
        leaf = self._entity_leaf.get(identifier)

        if leaf is None:
            self._insert(identifier, p)
            return

        node = self._nodes[leaf]

        if node.contains(p, self.config.loose_padding):
            bucket = node.bucket
            for i, (entry, _) in enumerate(bucket):
                if entry == identifier:
                    bucket[i] = (identifier, p)
                    break
            return

        self._remove(identifier)
        self._insert(identifier, p)

    def _ensure_root_contains(self, p: Position) -> None:
        padding = self.config.loose_padding

        while not self._nodes[0].contains(p, padding):
            old = self._nodes[0]
            offset = tuple(
                old.half if p[axis] - old.center[axis] >= 0.0 else -old.half
                for axis in range(3)
            )
            new_center = tuple(c + o for c, o in zip(old.center, offset))

            # Old root moves to the end of the arena; the new root takes index 0.
            moved = len(self._nodes)
            self._nodes.append(old)

            root = _Node(new_center, old.half * 2.0, 0)
            self._nodes[0] = root

            if old.is_leaf:
                for identifier, _ in old.bucket:
                    self._entity_leaf[identifier] = moved

            # The octant holding the old center has exactly the old root's cube.
            slot = _child_index(new_center, old.center)
            children = []

            for i in range(8):
                if i == slot:
                    children.append(moved)
                    continue

                children.append(len(self._nodes))
                self._nodes.append(
                    _Node(self._octant_center(root, i), old.half, 1)
                )

            root.children = children
            self._deepen(moved)

    def _deepen(self, index: int) -> None:
        stack = [index]

        while stack:
            node = self._nodes[stack.pop()]
            node.depth += 1

            if node.children is not None:
                stack.extend(node.children)

    @staticmethod
    def _octant_center(node: _Node, i: int) -> Position:
        h = node.half * 0.5
        cx, cy, cz = node.center

        return (
            cx + (h if i & 1 else -h),
            cy + (h if i & 2 else -h),
            cz + (h if i & 4 else -h),
        )

    def _split_leaf(self, index: int) -> None:
        cfg = self.config
        node = self._nodes[index]
        child_half = node.half * 0.5

        # Beyond these limits a leaf may legitimately exceed its capacity.
        if node.depth >= cfg.max_depth or child_half < cfg.min_half_size:
            return

        children = []

        for i in range(8):
            children.append(len(self._nodes))
            self._nodes.append(
                _Node(self._octant_center(node, i), child_half, node.depth + 1)
            )

        bucket = node.bucket
        node.bucket = []
        node.children = children

        for identifier, p in bucket:
            self._insert_into(index, identifier, p)

    def _insert_into(self, index: int, identifier: Hashable, p: Position) -> None:
        node = self._nodes[index]

        while node.children is not None:
            index = node.children[_child_index(node.center, p)]
            node = self._nodes[index]

        node.bucket.append((identifier, p))
        self._entity_leaf[identifier] = index

        if len(node.bucket) > self.config.split_threshold:
            self._split_leaf(index)
