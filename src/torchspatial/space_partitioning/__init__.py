"""Spatial lookup structures for "entities within radius" queries.

This module provides interchangeable algorithms answering which tracked
entities lie within a radius of a sample point:

- :class:`Naive`: linear scan, the default and the correctness reference
- :class:`BoundingVolumeHierarchy`: static SAH-split tree rebuilt per cycle,
  built with fork-join parallelism
- :class:`Octree`: loose octree patched incrementally as entities move

:class:`SpatialLookupState` owns the tracked (identifier, position) set and
decides whether changes are forwarded incrementally or absorbed by a full
rebuild in the next :meth:`~SpatialLookupState.prepare`.

Note: every algorithm returns exactly the same identifiers for the same
snapshot and query; only their cost differs.
"""

from ._bounding_volume_hierarchy import BoundingVolumeHierarchy, BvhNode
from ._exceptions import SpatialLookupWarning
from ._naive import Naive
from ._octree import Octree, OctreeConfig
from ._spatial_lookup_algorithm import DebugVolume, SpatialLookupAlgorithm
from ._spatial_lookup_state import SpatialLookupState
from ._tracked_set import TrackedSet

__all__ = [
    "BoundingVolumeHierarchy",
    "BvhNode",
    "DebugVolume",
    "Naive",
    "Octree",
    "OctreeConfig",
    "SpatialLookupAlgorithm",
    "SpatialLookupState",
    "SpatialLookupWarning",
    "TrackedSet",
]
