"""Bounding volume hierarchy spatial lookup using Surface Area Heuristic splits."""

from __future__ import annotations

import math
import os
import warnings
import weakref
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Hashable, Iterator, List, Optional, Sequence, Tuple

import torch
from torch import Tensor

from torchspatial.geometry import (
    AxisAlignedBoundingBox,
    axis_aligned_bounding_box,
    sphere_intersects_box,
    squared_distance,
    surface_area,
)

from ._exceptions import SpatialLookupWarning
from ._position import (
    PositionLike,
    as_position_tensor,
    as_positions_tensor,
    check_radius,
)
from ._spatial_lookup_algorithm import DebugVolume, SpatialLookupAlgorithm


@dataclass(frozen=True, eq=False)
class BvhNode:
    """Node of the BVH tree.

    Each node carries the exact AABB of every position in its subtree and is
    either a leaf (``identifiers`` and ``positions`` set) or a branch
    (``left`` and ``right`` set).

    Attributes
    ----------
    aabb : AxisAlignedBoundingBox
        Tight bounding box of the subtree.
    identifiers : list, optional
        Leaf entities.
    positions : Tensor, shape (n, 3), optional
        Leaf entity positions, in the same order as ``identifiers``.
    left, right : BvhNode, optional
        Branch children. Their entity sets partition this node's.
    """

    aabb: AxisAlignedBoundingBox
    identifiers: Optional[List[Hashable]] = None
    positions: Optional[Tensor] = None
    left: Optional["BvhNode"] = None
    right: Optional["BvhNode"] = None

    @property
    def is_leaf(self) -> bool:
        return self.left is None

    def intersects_sphere(self, sample_point: Tensor, radius: float) -> bool:
        return bool(
            sphere_intersects_box(
                sample_point, radius, self.aabb.lower, self.aabb.upper
            )
        )

    def entities_in_radius(
        self,
        sample_point: Tensor,
        radius: float,
    ) -> List[Hashable]:
        """Return the entities of this subtree within ``radius`` of the point."""
        if not self.intersects_sphere(sample_point, radius):
            return []

        if self.is_leaf:
            # The AABB test admits false positives; filter each entity exactly.
            inside = squared_distance(self.positions, sample_point) <= radius * radius

            return [
                self.identifiers[index]
                for index in torch.nonzero(inside).flatten().tolist()
            ]

        total = self.left.entities_in_radius(sample_point, radius)
        total.extend(self.right.entities_in_radius(sample_point, radius))

        return total

    def count_depth(self) -> int:
        if self.is_leaf:
            return 1

        return 1 + max(self.left.count_depth(), self.right.count_depth())

    def leaves(self, level: int = 0) -> Iterator[Tuple["BvhNode", int]]:
        """Yield ``(leaf, level)`` pairs, left to right."""
        stack = [(self, level)]

        while stack:
            node, node_level = stack.pop()

            if node.is_leaf:
                yield node, node_level
            else:
                stack.append((node.right, node_level + 1))
                stack.append((node.left, node_level + 1))


def _find_split_index_and_cost(
    points: Tensor,
    max_split_samples_per_axis: int,
) -> Tuple[int, float]:
    """Find the best split index and its cost for points sorted along an axis.

    Candidates are ``range(1, n - 1, n // min(n, max_split_samples_per_axis))``.
    Left and right bounding boxes for every candidate come from a prefix and
    a suffix min/max scan, so each candidate costs O(1) after an O(n) sweep.
    Among equally cheap candidates the most balanced one wins.
    """
    n = points.size(0)

    assert n > 1, "cannot split fewer than two entities"

    samples = min(n, max_split_samples_per_axis)
    step = n // samples

    candidates = torch.arange(1, n - 1, step, device=points.device)

    if candidates.numel() == 0:
        return 1, math.inf

    prefix_min = torch.cummin(points, dim=0).values
    prefix_max = torch.cummax(points, dim=0).values

    reversed_points = torch.flip(points, dims=[0])
    suffix_min = torch.flip(torch.cummin(reversed_points, dim=0).values, dims=[0])
    suffix_max = torch.flip(torch.cummax(reversed_points, dim=0).values, dims=[0])

    left_area = surface_area(prefix_max[candidates - 1] - prefix_min[candidates - 1])
    right_area = surface_area(suffix_max[candidates] - suffix_min[candidates])

    left_count = candidates.to(points.dtype)
    right_count = n - left_count

    costs = left_area * left_count + right_area * right_count

    # Coincident or collinear points tie at zero cost; splitting at the first
    # candidate would then grow the tree linearly.
    imbalance = torch.abs(left_count - right_count)
    imbalance = torch.where(costs == costs.min(), imbalance, math.inf)

    best = int(torch.argmin(imbalance))

    return int(candidates[best]), float(costs[best])


class BoundingVolumeHierarchy(SpatialLookupAlgorithm):
    """Bounding Volume Hierarchy spatial lookup.

    The tree is rebuilt from scratch on every :meth:`prepare`, splitting space
    with the Surface Area Heuristic (SAH). Lookups have two phases: the tree
    is traversed from the root, entering every node whose AABB intersects the
    query sphere, and the entities of every entered leaf are then filtered
    exactly against the sphere.

    Parameters
    ----------
    entities_per_leaf : int, default=10_000
        Maximum number of entities per leaf node. Larger leaves give a
        smaller tree with faster building and traversal, but slower final
        filtering.
    max_split_samples_per_axis : int, default=10
        Maximum number of candidate splits evaluated per axis. More samples
        give a better (faster to query) tree but slower construction.
    max_workers : int, optional
        Size of the thread pool used to build disjoint subtrees concurrently.
        Defaults to ``os.cpu_count()``. The tree is identical to a sequential
        build regardless of this value.

    Notes
    -----
    Only useful for scenes with very many entities (100 000 000+) or very
    many queries (10 000+); otherwise :class:`Naive` is faster.

    The worker pool is created on first use and released by :meth:`close`,
    on context-manager exit, or when the instance is garbage collected.

    Examples
    --------
    >>> points = torch.rand(1000, 3) * 20 - 10
    >>> with BoundingVolumeHierarchy(entities_per_leaf=16) as bvh:
    ...     bvh.prepare(list(range(1000)), points)
    ...     nearby = bvh.entities_in_radius((0.0, 0.0, 0.0), 1.0)
    """

    def __init__(
        self,
        *,
        entities_per_leaf: int = 10_000,
        max_split_samples_per_axis: int = 10,
        max_workers: Optional[int] = None,
    ) -> None:
        if entities_per_leaf < 1:
            raise ValueError(
                f"entities_per_leaf must be >= 1, got {entities_per_leaf}"
            )
        if max_split_samples_per_axis < 1:
            raise ValueError(
                f"max_split_samples_per_axis must be >= 1, "
                f"got {max_split_samples_per_axis}"
            )
        if max_workers is None:
            max_workers = os.cpu_count() or 1
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")

        self.entities_per_leaf = entities_per_leaf
        self.max_split_samples_per_axis = max_split_samples_per_axis
        self.max_workers = max_workers

        # Forked subtrees at levels below this never exceed the pool size, so
        # a waiting task always has its child running rather than queued.
        self._fork_levels = (max_workers + 1).bit_length() - 1

        self._root: Optional[BvhNode] = None
        self._prepared = False
        self._tree_depth = 0
        self._executor: Optional[ThreadPoolExecutor] = None
        self._finalizer: Optional[weakref.finalize] = None

    @property
    def root(self) -> Optional[BvhNode]:
        return self._root

    @property
    def tree_depth(self) -> int:
        """Depth of the last built tree (a single leaf has depth 1)."""
        return self._tree_depth

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

        if positions.size(0) == 0:
            root = None
        else:
            root = self._split_node(
                positions,
                list(identifiers),
                torch.arange(positions.size(0)),
                0,
            )

        self._root = root
        self._tree_depth = root.count_depth() if root is not None else 0
        self._prepared = True

    def entities_in_radius(
        self,
        sample_point: PositionLike,
        radius: float,
    ) -> List[Hashable]:
        radius = check_radius(radius)

        if not self._prepared:
            warnings.warn(
                "called BoundingVolumeHierarchy.entities_in_radius before "
                "initializing the lookup with prepare, no entities will be "
                "returned",
                SpatialLookupWarning,
                stacklevel=2,
            )
            return []

        if self._root is None:
            return []

        return self._root.entities_in_radius(
            as_position_tensor(sample_point), radius
        )

    def reset(self) -> None:
        self._root = None
        self._prepared = False
        self._tree_depth = 0

    def debug_volumes(self) -> List[DebugVolume]:
        if self._root is None:
            return []

        volumes = []

        for leaf, level in self._root.leaves():
            center = leaf.aabb.center.tolist()
            half_extents = (leaf.aabb.extents * 0.5).tolist()
            volumes.append(DebugVolume(tuple(center), tuple(half_extents), level))

        return volumes

    def close(self) -> None:
        """Shut down the worker pool. A later :meth:`prepare` starts a new one."""
        if self._finalizer is not None:
            self._finalizer()

        self._executor = None
        self._finalizer = None

    def __enter__(self) -> "BoundingVolumeHierarchy":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_workers,
                thread_name_prefix="bvh-build",
            )
            self._finalizer = weakref.finalize(
                self, self._executor.shutdown, wait=False
            )

        return self._executor

    def _split_node(
        self,
        points: Tensor,
        identifiers: List[Hashable],
        indices: Tensor,
        level: int,
    ) -> BvhNode:
        """Recursively split the entities ``points[indices]`` into BVH nodes."""
        slice_points = points[indices]
        aabb = axis_aligned_bounding_box(slice_points)

        if indices.numel() <= self.entities_per_leaf:
            return BvhNode(
                aabb=aabb,
                identifiers=[identifiers[index] for index in indices.tolist()],
                positions=slice_points,
            )

        # Find the axis of best split; the first axis wins ties.
        best_axis_order = None
        best_split_at = 1
        best_cost = math.inf

        for axis in range(3):
            order = torch.argsort(slice_points[:, axis], stable=True)
            split_at, cost = _find_split_index_and_cost(
                slice_points[order], self.max_split_samples_per_axis
            )

            if best_axis_order is None or cost < best_cost:
                best_axis_order = order
                best_split_at = split_at
                best_cost = cost

        ordered = indices[best_axis_order]
        left_indices = ordered[:best_split_at]
        right_indices = ordered[best_split_at:]

        assert left_indices.numel() > 0 and right_indices.numel() > 0, (
            f"inconsistent split of {indices.numel()} entities at {best_split_at}"
        )

        if level < self._fork_levels:
            right_future = self._get_executor().submit(
                self._split_node, points, identifiers, right_indices, level + 1
            )
            left = self._split_node(points, identifiers, left_indices, level + 1)
            right = right_future.result()
        else:
            left = self._split_node(points, identifiers, left_indices, level + 1)
            right = self._split_node(points, identifiers, right_indices, level + 1)

        return BvhNode(aabb=aabb, left=left, right=right)
