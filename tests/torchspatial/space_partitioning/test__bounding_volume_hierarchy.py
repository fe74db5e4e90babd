"""Tests for the BoundingVolumeHierarchy lookup algorithm."""

import math
import warnings

import pytest
import torch
import torch.testing

from torchspatial.space_partitioning import (
    BoundingVolumeHierarchy,
    BvhNode,
    Naive,
    SpatialLookupWarning,
)
from torchspatial.space_partitioning._bounding_volume_hierarchy import (
    _find_split_index_and_cost,
)

LOOKUP_RADIUS = 1.0


def _walk(node):
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        if not current.is_leaf:
            stack.extend([current.left, current.right])


def _leaf_identifiers(bvh):
    return [leaf.identifiers for leaf, _ in bvh.root.leaves()]


class TestBVHConstruction:
    """Tests for BVH tree construction."""

    def test_single_leaf_when_under_capacity(self, world):
        """Snapshots no larger than entities_per_leaf produce a single leaf."""
        identifiers, positions = world(100)
        bvh = BoundingVolumeHierarchy(entities_per_leaf=100, max_workers=1)
        bvh.prepare(identifiers, positions)

        assert isinstance(bvh.root, BvhNode)
        assert bvh.root.is_leaf
        assert bvh.tree_depth == 1

    def test_leaves_respect_capacity(self, world):
        """Every leaf holds at most entities_per_leaf entities."""
        identifiers, positions = world(500)
        bvh = BoundingVolumeHierarchy(entities_per_leaf=8, max_workers=2)
        bvh.prepare(identifiers, positions)

        for node in _walk(bvh.root):
            if node.is_leaf:
                assert 0 < len(node.identifiers) <= 8
                assert node.positions.shape == (len(node.identifiers), 3)
            else:
                assert node.left is not None and node.right is not None

    def test_leaves_partition_entities(self, world):
        """Every entity lands in exactly one leaf."""
        identifiers, positions = world(500)
        bvh = BoundingVolumeHierarchy(entities_per_leaf=8, max_workers=2)
        bvh.prepare(identifiers, positions)

        found = [i for leaf in _leaf_identifiers(bvh) for i in leaf]
        assert sorted(found) == identifiers

    def test_node_aabbs_are_tight(self, world):
        """Each node's AABB is the exact bounding box of its subtree."""
        identifiers, positions = world(300)
        bvh = BoundingVolumeHierarchy(entities_per_leaf=16, max_workers=2)
        bvh.prepare(identifiers, positions)

        for node in _walk(bvh.root):
            subtree = torch.cat([leaf.positions for leaf, _ in node.leaves()])
            torch.testing.assert_close(node.aabb.lower, subtree.amin(dim=0))
            torch.testing.assert_close(node.aabb.upper, subtree.amax(dim=0))

    def test_tree_depth_matches_structure(self, world):
        """tree_depth records the realized depth (leaf = 1)."""
        identifiers, positions = world(1000)
        bvh = BoundingVolumeHierarchy(entities_per_leaf=10, max_workers=2)
        bvh.prepare(identifiers, positions)

        deepest = max(level for _, level in bvh.root.leaves())
        assert bvh.tree_depth == deepest + 1
        assert bvh.tree_depth > 1

    def test_parallel_build_matches_sequential(self, world):
        """Tree shape does not depend on the worker pool size."""
        identifiers, positions = world(2000)

        with BoundingVolumeHierarchy(entities_per_leaf=16, max_workers=1) as sequential:
            sequential.prepare(identifiers, positions)
            expected = _leaf_identifiers(sequential)

        with BoundingVolumeHierarchy(entities_per_leaf=16, max_workers=7) as parallel:
            parallel.prepare(identifiers, positions)
            assert _leaf_identifiers(parallel) == expected

    def test_splits_between_clusters(self):
        """The SAH places two separated clusters in different subtrees."""
        near = [
            [0.0, 0.0, 0.0],
            [1.0, 1.0, 1.0],
            [0.0, 1.0, 0.0],
            [1.0, 0.0, 1.0],
        ]
        far = [[x + 100.0, y, z] for x, y, z in near]
        bvh = BoundingVolumeHierarchy(entities_per_leaf=4, max_workers=1)
        bvh.prepare(list("abcdefgh"), torch.tensor(near + far))

        assert sorted(bvh.root.left.identifiers) == list("abcd")
        assert sorted(bvh.root.right.identifiers) == list("efgh")

    def test_coincident_points_build_balanced(self):
        """Identical positions do not degenerate into a linear tree."""
        positions = torch.ones(2000, 3)
        bvh = BoundingVolumeHierarchy(entities_per_leaf=10, max_workers=1)
        bvh.prepare(list(range(2000)), positions)

        assert bvh.tree_depth < 20
        assert len(bvh.entities_in_radius((1.0, 1.0, 1.0), 0.0)) == 2000

    def test_empty_snapshot(self):
        """An empty snapshot is prepared without a tree and without warnings."""
        bvh = BoundingVolumeHierarchy()
        bvh.prepare([], torch.empty(0, 3))

        with warnings.catch_warnings():
            warnings.simplefilter("error")
            assert bvh.entities_in_radius((0.0, 0.0, 0.0), 5.0) == []

        assert bvh.root is None
        assert bvh.tree_depth == 0

    def test_rebuild_replaces_tree(self):
        """A second prepare replaces the whole tree."""
        bvh = BoundingVolumeHierarchy(max_workers=1)
        bvh.prepare(["a"], torch.tensor([[0.0, 0.0, 0.0]]))
        bvh.prepare(["b"], torch.tensor([[5.0, 5.0, 5.0]]))

        assert bvh.entities_in_radius((0.0, 0.0, 0.0), 1.0) == []
        assert bvh.entities_in_radius((5.0, 5.0, 5.0), 1.0) == ["b"]


class TestFindSplitIndexAndCost:
    """Tests for SAH split sampling."""

    def test_two_entities_have_no_candidates(self):
        """With two entities the candidate range is empty."""
        points = torch.tensor([[0.0, 0.0, 0.0], [1.0, 1.0, 1.0]], dtype=torch.float64)
        assert _find_split_index_and_cost(points, 10) == (1, math.inf)

    def test_integer_division_stride(self):
        """Candidates are strided by n // samples, so only odd indices are tried here."""
        near = [[i * 0.1, float(i % 2), float(i % 3)] for i in range(12)]
        far = [[100.0 + i * 0.1, float(i % 2), float(i % 3)] for i in range(13)]
        points = torch.tensor(near + far, dtype=torch.float64)

        split_at, cost = _find_split_index_and_cost(points, 10)

        # The natural split at 12 is skipped by the stride of 25 // 10 == 2.
        assert split_at == 13
        assert math.isfinite(cost)

    def test_every_index_sampled_when_samples_suffice(self):
        """With enough samples the natural split is found."""
        near = [[i * 0.1, float(i % 2), float(i % 3)] for i in range(12)]
        far = [[100.0 + i * 0.1, float(i % 2), float(i % 3)] for i in range(13)]
        points = torch.tensor(near + far, dtype=torch.float64)

        split_at, _ = _find_split_index_and_cost(points, 25)

        assert split_at == 12


class TestBVHQuery:
    """Tests for BVH radius queries."""

    def test_query_before_prepare_warns(self):
        """Querying before prepare returns nothing and warns."""
        bvh = BoundingVolumeHierarchy()

        with pytest.warns(SpatialLookupWarning, match="before initializing"):
            assert bvh.entities_in_radius((0.0, 0.0, 0.0), 1.0) == []

    def test_boundary_is_inclusive(self, world):
        """distance == radius is included, radius + eps excluded."""
        identifiers, positions = world(200)
        identifiers = identifiers + ["edge"]
        positions = torch.cat([positions, torch.tensor([[20.0, 0.0, 0.0]], dtype=torch.float64)])

        bvh = BoundingVolumeHierarchy(entities_per_leaf=4, max_workers=2)
        bvh.prepare(identifiers, positions)

        assert "edge" in bvh.entities_in_radius((23.0, 4.0, 0.0), 5.0)
        assert "edge" not in bvh.entities_in_radius((23.0, 4.0, 0.0), 4.999999)

    def test_matches_naive_on_random_queries(self, queries, world):
        """Same identifiers as the Naive scan for many samples and radii."""
        identifiers, positions = world(5000)

        naive = Naive()
        naive.prepare(identifiers, positions)
        bvh = BoundingVolumeHierarchy(entities_per_leaf=32, max_workers=4)
        bvh.prepare(identifiers, positions)

        for radius in (0.0, 0.5, 2.0, 7.5):
            for point in queries(25):
                assert sorted(bvh.entities_in_radius(point, radius)) == sorted(
                    naive.entities_in_radius(point, radius)
                )

    def test_hundred_thousand_points_matches_naive(self, world):
        """100 000 points in a cube of half-extent 10: same count as Naive at the origin."""
        identifiers, positions = world(100_000)

        naive = Naive()
        naive.prepare(identifiers, positions)
        expected = naive.entities_in_radius((0.0, 0.0, 0.0), LOOKUP_RADIUS)

        with BoundingVolumeHierarchy() as bvh:
            bvh.prepare(identifiers, positions)
            found = bvh.entities_in_radius((0.0, 0.0, 0.0), LOOKUP_RADIUS)

        assert len(found) == len(expected)
        assert sorted(found) == sorted(expected)
        assert len(found) > 0

    def test_debug_volumes_one_per_leaf(self, world):
        """debug_volumes describes each leaf box."""
        identifiers, positions = world(400)
        bvh = BoundingVolumeHierarchy(entities_per_leaf=16, max_workers=1)
        bvh.prepare(identifiers, positions)

        volumes = bvh.debug_volumes()

        assert len(volumes) == len(_leaf_identifiers(bvh))
        for volume in volumes:
            assert all(h >= 0.0 for h in volume.half_extents)
            assert 0 <= volume.level < bvh.tree_depth


class TestBVHValidation:
    """Tests for constructor validation."""

    def test_entities_per_leaf_must_be_positive(self):
        with pytest.raises(ValueError, match="entities_per_leaf"):
            BoundingVolumeHierarchy(entities_per_leaf=0)

    def test_max_split_samples_must_be_positive(self):
        with pytest.raises(ValueError, match="max_split_samples_per_axis"):
            BoundingVolumeHierarchy(max_split_samples_per_axis=0)

    def test_max_workers_must_be_positive(self):
        with pytest.raises(ValueError, match="max_workers"):
            BoundingVolumeHierarchy(max_workers=0)
